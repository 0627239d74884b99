#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/intent_resolver.py
"""사용자 메시지를 실행 가능한 도구 호출로 바꾸는 5단계 해석기.

각 단계는 같은 입력을 받아 Invocation 목록을 돌려주는 독립 함수이며,
앞 단계가 아무것도 찾지 못했을 때만 다음 단계를 시도합니다.

1. structured   : Gemini의 function call
2. embedded_json: 응답 텍스트 안의 {"tool_calls": [...]} JSON
3. inline_call  : 응답 텍스트 안의 name(key='value') 문법 (따옴표 문자열 인자만 인식)
4. classifier   : 별도 의도 분류 프롬프트
5. pattern      : "delete the repository 'x'" 같은 고정 문구 매칭
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from . import gemini_client
from . import tool_registry
from .context_injector import build_context_prompt, complete_arguments
from .exceptions import RemoteServiceError, ValidationError
from .models import (
    AIReply, AmbientContext, IntentClassification, Invocation,
    Resolution, StructuredCalls, TextReply, Turn,
)

logger = logging.getLogger(__name__)

_INLINE_CALL_RE = re.compile(r"(\w+)\s*\(\s*([^)]*)\s*\)")
# 따옴표로 감싼 문자열 값만 인식합니다. 숫자/불리언 리터럴은 이 단계에서 무시됩니다.
_INLINE_ARG_RE = re.compile(r"(\w+)\s*=\s*(['\"])(.*?)\2")

_TRAILING_PUNCTUATION = ".,!?;:"


def default_file_content(path: str) -> str:
    return f"# {path}\n\nCreated by GitHub AI Agent\n\nAdd your content here..."


# --- 1단계: structured function call ---

def from_structured_calls(reply: AIReply) -> List[Invocation]:
    if isinstance(reply, StructuredCalls):
        return [Invocation(name=c.name, args=dict(c.args)) for c in reply.calls]
    return []


# --- 2단계: 텍스트 안의 JSON ---

def from_embedded_json(text: str) -> List[Invocation]:
    try:
        data = json.loads(gemini_client.strip_code_fences(text))
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(data, dict):
        return []

    calls = data.get("tool_calls") or data.get("toolCalls") or []
    if not isinstance(calls, list):
        return []

    invocations = []
    for call in calls:
        if not isinstance(call, dict):
            continue
        name = call.get("function") or call.get("name")
        args = call.get("args") or {}
        if not tool_registry.is_known_tool(name) or not isinstance(args, dict):
            logger.info(f"JSON tool call 무시: {name!r}")
            continue
        invocations.append(Invocation(name=name, args=dict(args)))
    return invocations


# --- 3단계: name(key='value') 문법 ---

def from_inline_call(text: str) -> List[Invocation]:
    cleaned = gemini_client.strip_code_fences(text)
    for match in _INLINE_CALL_RE.finditer(cleaned):
        name = match.group(1)
        if not tool_registry.is_known_tool(name):
            continue
        args = {key: value for key, _, value in _INLINE_ARG_RE.findall(match.group(2))}
        return [Invocation(name=name, args=args)]
    return []


# --- 4단계: 의도 분류 결과 → 호출 ---

def _drop_empty(args: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in args.items() if v not in (None, "")}


def from_classification(classification: IntentClassification) -> List[Invocation]:
    intent = classification.intent
    repo = classification.repo_name
    path = classification.file_name

    if intent == "none":
        return []
    if intent == "list_repos":
        return [Invocation(name="list_repos")]
    if intent == "create_repo":
        # 새 저장소 이름에는 owner를 붙이지 않습니다.
        name = repo.rsplit("/", 1)[-1] if repo else None
        return [Invocation(name="create_repo", args=_drop_empty({"name": name}))]
    if intent == "delete_repo":
        return [Invocation(name="delete_repo", args=_drop_empty({"repo": repo}))]
    if intent == "delete_file":
        return [Invocation(name="delete_file", args=_drop_empty({"repo": repo, "path": path}))]

    # create_file / update_file
    content = classification.file_content
    message = None
    if intent == "create_file" and path:
        if content is None:
            content = default_file_content(path)
        message = f"Create {path}"
    return [Invocation(
        name="update_file",
        args=_drop_empty({"repo": repo, "path": path, "content": content, "message": message}),
    )]


# --- 5단계: 고정 문구 매칭 ---

def _match_phrase(phrase: str, text: str, flags: int = 0) -> Optional[str]:
    """따옴표 버전을 먼저, 없으면 공백까지의 단어를 대상 이름으로 잡습니다."""
    quoted = re.search(rf"{phrase}\s+['\"](.+?)['\"]", text, flags)
    if quoted:
        return quoted.group(1).strip()
    bare = re.search(rf"{phrase}\s+(\S+)", text, flags)
    if bare:
        return bare.group(1).rstrip(_TRAILING_PUNCTUATION) or None
    return None


_PHRASES: List[Tuple[str, str]] = [
    ("delete_repo", r"delete the repository"),
    ("delete_file", r"delete the file"),
    ("create_repo", r"create a new repository called"),
    ("update_file", r"create a new file called"),
]


def from_direct_pattern(message: str, ai_text: str = "") -> List[Invocation]:
    """사용자 메시지를 먼저, 그다음 AI 텍스트를 고정 문구로 검사합니다.

    사용자 메시지는 대소문자를 무시하고, AI 텍스트는 문장 첫머리처럼 대문자로
    시작하는 문구("Delete the file ...")만 인정합니다.
    """
    sources = [
        (message, re.IGNORECASE, False),
        (gemini_client.strip_code_fences(ai_text), 0, True),
    ]
    for source, flags, capitalized in sources:
        if not source:
            continue
        for tool_name, phrase in _PHRASES:
            if capitalized:
                phrase = phrase[0].upper() + phrase[1:]
            target = _match_phrase(phrase, source, flags)
            if target is None:
                continue
            if tool_name == "delete_repo":
                return [Invocation(name="delete_repo", args={"repo": target})]
            if tool_name == "delete_file":
                return [Invocation(name="delete_file", args={"path": target})]
            if tool_name == "create_repo":
                return [Invocation(name="create_repo", args={"name": target})]
            return [Invocation(name="update_file", args={
                "path": target,
                "content": default_file_content(target),
                "message": f"Create {target}",
            })]
    return []


# --- 인자 검증 ---

_FIELD_HINTS = {
    "repo": "Please select a repository first, or specify it in your request.",
    "name": "Please specify a repository name.",
    "path": "Please select a file first, or specify it in your request.",
    "content": "Please specify the content for the file.",
}


def validate_invocation(invocation: Invocation) -> None:
    """레지스트리의 required 목록을 검사합니다.

    Raises:
        ValidationError: 첫 번째로 빠진 필수 인자 이름과 예시 문장을 담아 발생.
    """
    descriptor = tool_registry.get_tool(invocation.name)
    if descriptor is None:
        return
    for field in descriptor.required_fields:
        value = invocation.args.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            hint = _FIELD_HINTS.get(field, f"Please specify the {field}.")
            raise ValidationError(
                f'❌ Missing required field "{field}" for {invocation.name}. {hint} '
                f'Example: "{descriptor.example}"',
                tool_name=invocation.name,
                field=field,
            )


def prepare_invocations(
    invocations: List[Invocation],
    context: Optional[AmbientContext],
    stage: str,
) -> Resolution:
    """컨텍스트 보충 → 필수 인자 검증. 하나라도 실패하면 되묻기 응답."""
    completed = [complete_arguments(inv, context) for inv in invocations]
    try:
        for inv in completed:
            validate_invocation(inv)
    except ValidationError as e:
        logger.info(f"필수 인자 누락 ({e.tool_name}.{e.field}), 사용자에게 되묻습니다.")
        return Resolution(kind="clarification", text=str(e), stage=stage)
    logger.info(f"[{stage}] resolved: {[(i.name, i.args) for i in completed]}")
    return Resolution(kind="invocations", invocations=completed, stage=stage)


async def resolve(
    message: str,
    history: List[Turn],
    context: Optional[AmbientContext] = None,
) -> Resolution:
    """메시지를 호출 목록 / 되묻기 / 일반 대화 응답 중 하나로 해석합니다."""
    system_prompt = gemini_client.build_system_prompt(build_context_prompt(context))

    ai_error: Optional[str] = None
    try:
        reply = await gemini_client.generate_with_tools(message, history, system_prompt)
    except RemoteServiceError as e:
        ai_error = str(e)
        reply = TextReply(text="")

    text = reply.text
    candidates = [
        ("structured", lambda: from_structured_calls(reply)),
        ("embedded_json", lambda: from_embedded_json(text)),
        ("inline_call", lambda: from_inline_call(text)),
    ]
    for stage, extract in candidates:
        invocations = extract()
        if invocations:
            return prepare_invocations(invocations, context, stage)

    # AI 호출 자체가 실패했다면 분류기도 믿을 수 없으므로 건너뜁니다.
    if ai_error is None:
        classification = await gemini_client.classify_intent(message, context)
        invocations = from_classification(classification)
        if invocations:
            return prepare_invocations(invocations, context, "classifier")

    invocations = from_direct_pattern(message, text)
    if invocations:
        return prepare_invocations(invocations, context, "pattern")

    reply_text = gemini_client.strip_code_fences(text)
    if not reply_text and ai_error is None:
        reply_text = "No response generated"
    return Resolution(kind="reply", text=reply_text, ai_error=ai_error)
