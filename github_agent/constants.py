#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/constants.py
"""프로젝트 전역 상수 정의.

이 파일에 정의된 상수들은 여러 모듈에서 공유됩니다.
값 변경 시 이 파일만 수정하면 됩니다.
"""

from typing import Final, FrozenSet

# 확인(yes) 없이는 절대 실행하지 않는 파괴적 도구
DESTRUCTIVE_TOOLS: Final[FrozenSet[str]] = frozenset({"delete_repo", "delete_file"})

# 저장소 범위에서 동작하는 도구 (repo 인자를 컨텍스트로 보충할 수 있음)
FILE_SCOPED_TOOLS: Final[FrozenSet[str]] = frozenset({
    "list_files", "read_file", "update_file", "delete_file",
    "create_pr", "list_prs", "merge_pr",
})

# 확인 단계에서 유일하게 허용되는 긍정 응답 (대소문자 무시)
CONFIRMATION_LITERAL: Final[str] = "yes"

# 파일 삭제 확정 명령 접두어 (원래 UI와의 호환)
FORCE_DELETE_FILE_PREFIX: Final[str] = "FORCE_DELETE_FILE:"

# 파일 삭제 확인 토큰의 repo/path 구분자
FILE_TOKEN_SEPARATOR: Final[str] = ":::"

# LLM에 전달하는 대화 이력 최대 문자 수
HISTORY_MAX_CHARS: Final[int] = 6000

# 시스템 프롬프트에 포함할 현재 파일 내용 최대 문자 수
MAX_CONTEXT_FILE_CHARS: Final[int] = 4000

# 소비된 확인 토큰을 기억하는 최대 개수
MAX_CONSUMED_TOKENS: Final[int] = 1024

# GitHub 목록 조회 시 페이지 크기
GITHUB_PER_PAGE: Final[int] = 100

# PR 생성 시 기준 브랜치와 작업 브랜치 접두어
DEFAULT_BASE_BRANCH: Final[str] = "main"
PR_BRANCH_PREFIX: Final[str] = "ai-agent-"

# API 서버 기본 바인딩 주소/포트
DEFAULT_HOST: Final[str] = "127.0.0.1"
DEFAULT_PORT: Final[int] = 3000
