#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/models.py

import json
import logging
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Dict, Any, List, Literal, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
    """브라우저 UI와 주고받는 모델. JSON 키는 camelCase, 파이썬 속성은 snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- 도구 카탈로그 ---

class ToolParameter(BaseModel):
    """도구 인자 하나의 스키마"""
    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["string", "boolean", "number"] = "string"
    required: bool = False
    description: str = ""


class ToolDescriptor(BaseModel):
    """도구 레지스트리의 항목. 프로세스 시작 시 한 번 정의되고 변경되지 않습니다."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Tuple[ToolParameter, ...] = ()
    example: str = Field("", description="필수 인자가 빠졌을 때 안내 메시지에 보여줄 예시 문장")

    @property
    def required_fields(self) -> List[str]:
        return [p.name for p in self.parameters if p.required]


class Invocation(BaseModel):
    """실행 준비가 된 도구 호출 (이름 + 인자)"""
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class OperationResult(BaseModel):
    """GitHub 게이트웨이 호출 결과. success 또는 failure 중 정확히 하나."""
    success: bool
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data: Any) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str) -> "OperationResult":
        return cls(success=False, message=message)

    def to_wire(self) -> Dict[str, Any]:
        """원래 UI가 기대하는 `{success, ...}` / `{error}` 형태로 변환합니다."""
        if self.success:
            return {"success": self.message, **self.data}
        return {"error": self.message}


class ExecutionRecord(BaseModel):
    """한 턴에서 실제로 실행된 도구 호출과 그 결과의 기록"""
    model_config = ConfigDict(frozen=True)

    name: str
    args: Dict[str, Any]
    result: OperationResult

    def to_wire(self) -> Dict[str, Any]:
        return {"name": self.name, "args": self.args, "result": self.result.to_wire()}


class ConfirmationToken(BaseModel):
    """파괴적 작업 확인 토큰. 호출자가 보관했다가 다음 턴에 그대로 돌려보냅니다."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["repo", "file"]
    repository: str
    path: Optional[str] = None
    nonce: str

    @property
    def identifier(self) -> str:
        if self.kind == "file":
            return f"{self.repository}/{self.path}"
        return self.repository


# --- 대화 및 UI 컨텍스트 ---

class Turn(BaseModel):
    """호출자가 보관하는 대화 이력의 한 항목"""
    role: Literal["user", "model"]
    text: str = ""

    @model_validator(mode="before")
    @classmethod
    def _accept_gemini_shape(cls, data: Any) -> Any:
        # 원래 UI는 {role, parts: [{text}]} 형태로 이력을 보냈습니다.
        if isinstance(data, dict) and "parts" in data and "text" not in data:
            parts = data.get("parts") or []
            text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
            return {"role": data.get("role", "user"), "text": text}
        return data


class CurrentFile(WireModel):
    repository: str = Field(
        validation_alias=AliasChoices("repository", "repo"),
        serialization_alias="repository",
    )
    path: str
    content: str = ""


class AmbientContext(WireModel):
    """UI에서 현재 열려 있는 저장소/파일. 인자 보충에만 사용되고 저장되지 않습니다."""
    current_repository: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("currentRepository", "currentRepo", "current_repository"),
        serialization_alias="currentRepository",
    )
    current_file: Optional[CurrentFile] = Field(
        None,
        validation_alias=AliasChoices("currentFile", "current_file"),
        serialization_alias="currentFile",
    )


# --- HTTP 요청/응답 ---

class ChatRequest(WireModel):
    """UI(또는 CLI)가 서버로 보내는 채팅 요청"""
    message: str
    history: List[Turn] = Field(default_factory=list)
    context: Optional[AmbientContext] = None
    pending_deletion: Optional[str] = None  # 이전 턴에서 받은 확인 토큰
    deletion_type: Optional[Literal["repo", "file"]] = None

    @field_validator("history", mode="before")
    @classmethod
    def _none_history(cls, value: Any) -> Any:
        return value or []

    @field_validator("context", mode="before")
    @classmethod
    def _parse_context_string(cls, value: Any) -> Any:
        # 원래 UI는 context를 JSON 문자열로 보냈습니다.
        if isinstance(value, str):
            if not value.strip():
                return None
            try:
                return json.loads(value)
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse context: {e}")
                return None
        return value


class ChatResponse(WireModel):
    """서버가 UI로 보내는 응답"""
    response: str = ""
    tool_calls: Optional[List[Dict[str, Any]]] = None
    pending_deletion: Optional[str] = None
    deletion_type: Optional[Literal["repo", "file"]] = None
    system_messages: List[str] = Field(default_factory=list)  # UI의 'system' 말풍선으로 따로 표시
    error: Optional[str] = None


class DeleteRequest(WireModel):
    """원래 UI의 저장소 삭제 요청. /chat에서 받은 확인 토큰과 사용자의 응답이 함께 와야 합니다."""
    repo: str
    pending_deletion: Optional[str] = None
    message: Optional[str] = None


class CommitRequest(WireModel):
    repo: str
    file_path: str
    content: str
    message: Optional[str] = None


# --- AI 응답 / 해석 결과 ---

class StructuredCalls(BaseModel):
    """모델이 function call 형태로 응답한 경우"""
    kind: Literal["calls"] = "calls"
    calls: List[Invocation]
    text: str = ""


class TextReply(BaseModel):
    """모델이 일반 텍스트로 응답한 경우"""
    kind: Literal["text"] = "text"
    text: str = ""


AIReply = Union[StructuredCalls, TextReply]


class IntentClassification(BaseModel):
    """의도 분류 프롬프트가 반환하는 JSON"""
    intent: Literal[
        "create_repo", "delete_repo", "list_repos",
        "create_file", "update_file", "delete_file", "none",
    ] = "none"
    repo_name: Optional[str] = None
    file_name: Optional[str] = None
    file_content: Optional[str] = None


class Resolution(BaseModel):
    """Intent Resolver의 결과: 실행할 호출 목록, 되묻기, 또는 일반 대화 응답"""
    kind: Literal["invocations", "clarification", "reply"]
    invocations: List[Invocation] = Field(default_factory=list)
    text: str = ""
    stage: Optional[str] = None  # 호출을 찾아낸 단계 이름 (로그/테스트용)
    ai_error: Optional[str] = None  # AI 호출 자체가 실패한 경우의 메시지
