#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/gemini_client.py

import json
import logging
import re
from typing import List, Optional

from google import genai
from google.genai import types

from . import config
from . import tool_registry
from .constants import HISTORY_MAX_CHARS
from .exceptions import ConfigurationError, RemoteServiceError
from .models import (
    AIReply, AmbientContext, ExecutionRecord, IntentClassification,
    Invocation, StructuredCalls, TextReply, ToolDescriptor, Turn,
)

logger = logging.getLogger(__name__)

_api_key = config.get_gemini_api_key()
if not _api_key:
    logger.warning("GEMINI_API_KEY 환경변수가 설정되지 않았습니다. Gemini API 호출 시 오류가 발생합니다.")

client: Optional[genai.Client] = genai.Client(api_key=_api_key) if _api_key else None

DEFAULT_HISTORY_MAX_CHARS = HISTORY_MAX_CHARS  # constants.py에서 중앙 관리

_CODE_FENCE_RE = re.compile(r"```(?:json|python|javascript|js)?\s*\n?")

_PARAM_TYPES = {
    "string": types.Type.STRING,
    "boolean": types.Type.BOOLEAN,
    "number": types.Type.NUMBER,
}


def _require_client() -> genai.Client:
    if client is None:
        raise ConfigurationError("GEMINI_API_KEY not configured")
    return client


def strip_code_fences(text: str) -> str:
    """```json ... ``` 같은 마크다운 래퍼를 제거합니다."""
    return _CODE_FENCE_RE.sub("", text or "").replace("```", "").strip()


def _truncate_history(history: List[Turn], max_chars: int = DEFAULT_HISTORY_MAX_CHARS) -> List[Turn]:
    """최근 대화 우선 보존하는 캐릭터 예산 기반 히스토리 truncation.

    뒤(최신)부터 역순으로 항목을 추가하되, max_chars를 초과하면 중단합니다.
    단일 항목이 예산을 넘더라도 최소 1개는 포함합니다.
    """
    selected: List[Turn] = []
    total = 0
    for turn in reversed(history):
        if total + len(turn.text) > max_chars and selected:
            break
        selected.append(turn)
        total += len(turn.text)
    selected.reverse()
    return selected


def _to_contents(history: List[Turn], message: Optional[str] = None) -> List[types.Content]:
    contents = [
        types.Content(role=turn.role, parts=[types.Part(text=turn.text)])
        for turn in _truncate_history(history)
        if turn.text
    ]
    if message is not None:
        contents.append(types.Content(role="user", parts=[types.Part(text=message)]))
    return contents


def _function_declaration(tool: ToolDescriptor) -> types.FunctionDeclaration:
    if not tool.parameters:
        return types.FunctionDeclaration(name=tool.name, description=tool.description)
    return types.FunctionDeclaration(
        name=tool.name,
        description=tool.description,
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                p.name: types.Schema(type=_PARAM_TYPES[p.type], description=p.description)
                for p in tool.parameters
            },
            required=tool.required_fields,
        ),
    )


def get_function_declarations() -> List[types.FunctionDeclaration]:
    """도구 레지스트리 전체를 Gemini function declaration 목록으로 변환합니다."""
    return [_function_declaration(tool) for tool in tool_registry.get_all_tools()]


def build_system_prompt(context_info: str = "") -> str:
    return f"""You are a helpful GitHub AI assistant. You can have casual conversations AND execute GitHub operations using tools.

BE CONVERSATIONAL for greetings and small talk:
- "hello", "hi", "hey" → Just respond naturally, be friendly
- General questions that don't need tools → Respond conversationally

USE TOOLS when users want to see information or do actions:
- "what can you do", "show tools", "list tools", "help", "capabilities" → list_tools()
- "list repositories", "show repos" → list_repos()
- "create repo/repository" → create_repo()
- "delete repo/repository" → delete_repo()
- "list files", "show files" → list_files()
- "read file", "show file" → read_file()
- "create file", "update file", "edit file" → update_file()
- "delete file" → delete_file()
- "open a pull request", "list pull requests", "merge pull request" → create_pr() / list_prs() / merge_pr()

IMPORTANT CONTEXT:{context_info}

When executing a tool, output ONLY the function call. NO explanations, NO code blocks, NO backticks.
When being conversational, just respond naturally like a helpful assistant."""


async def generate_with_tools(message: str, history: List[Turn], system_prompt: str) -> AIReply:
    """도구 호출 모드로 Gemini를 호출합니다.

    Returns:
        StructuredCalls: 모델이 function call을 하나 이상 반환한 경우 (인자는 그대로 사용).
        TextReply: 그 밖의 경우 모델의 텍스트.

    Raises:
        ConfigurationError: API 키가 없는 경우.
        RemoteServiceError: Gemini 호출 실패.
    """
    ai = _require_client()
    try:
        response = await ai.aio.models.generate_content(
            model=config.get_gemini_model(),
            contents=_to_contents(history, message),
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                tools=[types.Tool(function_declarations=get_function_declarations())],
                automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
                thinking_config=types.ThinkingConfig(thinking_budget=0),
            ),
        )
    except Exception as e:
        logger.error(f"Gemini 도구 호출 모드 실패: {e}")
        raise RemoteServiceError(f"AI service error: {e}") from e

    function_calls = response.function_calls or []
    if function_calls:
        calls = [Invocation(name=fc.name, args=dict(fc.args or {})) for fc in function_calls if fc.name]
        logger.info(f"Gemini function calls: {[c.name for c in calls]}")
        return StructuredCalls(calls=calls)

    text = ""
    try:
        text = response.text or ""
    except ValueError:
        # 안전 필터 등으로 후보가 비어 있으면 text 접근이 실패합니다.
        logger.warning("Gemini 응답에 텍스트가 없습니다.")
    return TextReply(text=text)


async def generate_text(prompt: str, json_mode: bool = False, model: Optional[str] = None) -> str:
    """도구 없이 일반 텍스트(또는 JSON) 응답을 생성합니다.

    Raises:
        ConfigurationError: API 키가 없는 경우.
        RemoteServiceError: Gemini 호출 실패 또는 빈 응답.
    """
    ai = _require_client()
    generation_config = types.GenerateContentConfig(
        response_mime_type="application/json" if json_mode else None,
        thinking_config=types.ThinkingConfig(thinking_budget=0),
    )
    try:
        response = await ai.aio.models.generate_content(
            model=model or config.get_gemini_model(),
            contents=prompt,
            config=generation_config,
        )
        text = response.text
    except Exception as e:
        logger.error(f"Gemini 텍스트 생성 실패: {e}")
        raise RemoteServiceError(f"AI service error: {e}") from e
    if not text:
        raise RemoteServiceError("AI service returned an empty response")
    return text.strip()


def build_classification_prompt(message: str, context: Optional[AmbientContext] = None) -> str:
    current_repo = ""
    if context is not None:
        current_repo = context.current_repository or (
            context.current_file.repository if context.current_file else ""
        )
    repo_hint = (
        f'The user is currently viewing the repository "{current_repo}". '
        f'If the user says "this repo", "current repo", "this repository" or does not name a repository '
        f'for a file operation, use "{current_repo}" as repo_name.'
        if current_repo else
        "The user is not viewing any repository right now."
    )
    return f"""You are an intent classifier for a GitHub assistant.
Classify the user's message into exactly one intent and extract its arguments.

Allowed intents: create_repo, delete_repo, list_repos, create_file, update_file, delete_file, none.
Use "none" for greetings, questions, or anything that is not one of the operations above.

{repo_hint}

Respond with ONLY a JSON object of this exact shape (use null for unknown fields):
{{"intent": "<intent>", "repo_name": <string or null>, "file_name": <string or null>, "file_content": <string or null>}}

User message: {json.dumps(message)}
"""


def parse_classification(raw: str) -> IntentClassification:
    """분류 응답을 파싱합니다. 형식이 맞지 않으면 intent=none."""
    try:
        data = json.loads(strip_code_fences(raw))
        if not isinstance(data, dict):
            raise ValueError("classification is not a JSON object")
        return IntentClassification(**{k: data.get(k) for k in ("repo_name", "file_name", "file_content")},
                                    intent=data.get("intent") or "none")
    except (ValueError, TypeError) as e:
        logger.warning(f"의도 분류 JSON 파싱 실패: {e}\n받은 응답: {raw!r}")
        return IntentClassification()


async def classify_intent(message: str, context: Optional[AmbientContext] = None) -> IntentClassification:
    """사용자 메시지를 고정된 의도 목록 중 하나로 분류합니다.

    실패 시 intent='none'을 반환합니다 (보수적 기본값).
    """
    try:
        raw = await generate_text(
            build_classification_prompt(message, context),
            json_mode=True,
            model=config.get_classifier_model(),
        )
    except (ConfigurationError, RemoteServiceError) as e:
        logger.warning(f"[IntentGate] 분류 실패: {e}")
        return IntentClassification()
    return parse_classification(raw)


async def compose_followup(
    message: str,
    history: List[Turn],
    records: List[ExecutionRecord],
    system_prompt: str,
) -> str:
    """실행 결과를 function response로 붙여 자연어 답변을 생성합니다.

    Raises:
        RemoteServiceError: Gemini 호출 실패 또는 빈 응답.
    """
    ai = _require_client()
    contents = _to_contents(history, message)
    contents.append(types.Content(
        role="model",
        parts=[types.Part(function_call=types.FunctionCall(name=r.name, args=r.args)) for r in records],
    ))
    contents.append(types.Content(
        role="user",
        parts=[types.Part.from_function_response(name=r.name, response=r.result.to_wire()) for r in records],
    ))
    try:
        response = await ai.aio.models.generate_content(
            model=config.get_gemini_model(),
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                thinking_config=types.ThinkingConfig(thinking_budget=0),
            ),
        )
        text = response.text
    except Exception as e:
        logger.error(f"Gemini 후속 응답 생성 실패: {e}", exc_info=True)
        raise RemoteServiceError(f"AI service error: {e}") from e
    if not text:
        raise RemoteServiceError("AI service returned an empty response")
    return text.strip()
