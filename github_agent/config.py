#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/config.py

import os
import logging
from typing import List

from dotenv import load_dotenv

from .constants import DEFAULT_HOST, DEFAULT_PORT
from .exceptions import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)


# --- 환경변수 헬퍼 ---

def get_env_with_fallback(primary: str, fallback: str) -> str:
    """환경변수를 primary → fallback 순서로 조회합니다."""
    return os.getenv(primary) or os.getenv(fallback) or ""


def get_github_token() -> str:
    return get_env_with_fallback("GITHUB_TOKEN", "GH_TOKEN")


def get_gemini_api_key() -> str:
    return get_env_with_fallback("GEMINI_API_KEY", "GOOGLE_API_KEY")


def get_github_username() -> str:
    """저장소 이름에 owner가 없을 때 붙일 운영자 계정명."""
    return os.getenv("GITHUB_USERNAME") or "compusophy-bot"


def get_github_api_url() -> str:
    return (os.getenv("GITHUB_API_URL") or "https://api.github.com").rstrip("/")


def get_github_timeout() -> float:
    raw = os.getenv("GITHUB_TIMEOUT", "30")
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"GITHUB_TIMEOUT 값이 숫자가 아닙니다: {raw!r}, 30초를 사용합니다.")
        return 30.0


# --- AI 모델 설정 ---

def get_gemini_model() -> str:
    return os.getenv("GEMINI_MODEL") or "gemini-flash-lite-latest"


def get_classifier_model() -> str:
    """의도 분류에 사용할 모델. 지정하지 않으면 기본 대화 모델을 사용합니다."""
    return os.getenv("GEMINI_CLASSIFIER_MODEL") or get_gemini_model()


# --- 서버 설정 ---

def get_server_host() -> str:
    return os.getenv("AGENT_HOST") or DEFAULT_HOST


def get_server_port() -> int:
    raw = os.getenv("AGENT_PORT") or os.getenv("PORT")
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"포트 값이 올바르지 않습니다: {raw!r}, {DEFAULT_PORT}을 사용합니다.")
        return DEFAULT_PORT


def missing_credentials() -> List[str]:
    """설정되지 않은 필수 환경변수 이름 목록을 반환합니다."""
    missing = []
    if not get_gemini_api_key():
        missing.append("GEMINI_API_KEY")
    if not get_github_token():
        missing.append("GITHUB_TOKEN")
    return missing


def require_credentials() -> None:
    """두 외부 서비스의 인증 정보가 모두 있는지 확인합니다.

    Raises:
        ConfigurationError: 하나라도 빠져 있으면 첫 번째 누락 항목 이름과 함께 발생.
    """
    missing = missing_credentials()
    if missing:
        raise ConfigurationError(f"{missing[0]} not configured")
