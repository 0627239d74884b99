#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/exceptions.py

from typing import Optional


class AgentError(Exception):
    """채팅 턴 처리 중 발생하는 모든 오류의 기본 클래스."""


class ConfigurationError(AgentError):
    """GITHUB_TOKEN / GEMINI_API_KEY 등 필수 설정이 없을 때 발생합니다. 턴 전체가 중단됩니다."""


class RemoteServiceError(AgentError):
    """GitHub 또는 Gemini가 성공이 아닌 응답을 반환했을 때 사용되는 예외입니다."""
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self):
        if self.body:
            return f"{super().__str__()} - {self.body}"
        return super().__str__()


class ResolutionAmbiguity(AgentError):
    """대상 리소스나 필수 인자를 결정할 수 없을 때 발생합니다. 사용자에게 되묻습니다."""
    def __init__(self, message: str, tool_name: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name
        self.field = field


class ValidationError(ResolutionAmbiguity):
    """컨텍스트 보충 후에도 필수 인자가 비어 있을 때 발생합니다."""


class ConfirmationMismatch(AgentError):
    """확인 토큰이 잘못되었거나 이미 사용되었을 때 발생합니다. 작업은 취소됩니다."""
