#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/context_injector.py
"""UI 컨텍스트(현재 저장소/파일)로 빠진 인자를 보충하고 시스템 프롬프트용 문맥을 만듭니다.

모든 함수는 입력을 변경하지 않으며, 같은 입력에는 항상 같은 결과를 돌려줍니다.
"""

import logging
from typing import Any, Dict, Optional

from . import config
from .constants import FILE_SCOPED_TOOLS, MAX_CONTEXT_FILE_CHARS
from .models import AmbientContext, Invocation

logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def qualify_repo(repo: str, username: Optional[str] = None) -> str:
    """owner가 없는 저장소 이름에 운영자 계정명을 붙입니다. ('demo' → 'bot/demo')"""
    repo = repo.strip().strip("/")
    if "/" in repo:
        return repo
    return f"{username or config.get_github_username()}/{repo}"


def _context_repo(context: AmbientContext) -> Optional[str]:
    if context.current_repository:
        return context.current_repository
    if context.current_file:
        return context.current_file.repository
    return None


def complete_arguments(invocation: Invocation, context: Optional[AmbientContext] = None) -> Invocation:
    """빠진 인자를 컨텍스트로 채운 새 Invocation을 반환합니다."""
    name = invocation.name
    args: Dict[str, Any] = dict(invocation.args)

    if context is not None:
        if name == "delete_file" and _is_missing(args.get("path")) and context.current_file:
            args["path"] = context.current_file.path
            args["repo"] = context.current_file.repository
            logger.info(f"Using context file for delete_file: {args['repo']}/{args['path']}")

        if name == "delete_repo" and _is_missing(args.get("repo")) and context.current_repository:
            args["repo"] = context.current_repository
            logger.info(f"Using context repo for delete_repo: {args['repo']}")

        if name in FILE_SCOPED_TOOLS and _is_missing(args.get("repo")):
            repo = _context_repo(context)
            if repo:
                args["repo"] = repo
                logger.info(f"Using context repo for {name}: {repo}")

    if isinstance(args.get("repo"), str) and not _is_missing(args["repo"]):
        args["repo"] = qualify_repo(args["repo"])

    if name == "update_file" and _is_missing(args.get("message")) and not _is_missing(args.get("path")):
        args["message"] = f"Update {args['path']}"

    return Invocation(name=name, args=args)


def build_context_prompt(context: Optional[AmbientContext]) -> str:
    """시스템 프롬프트의 'CURRENT CONTEXT' 블록을 만듭니다. 컨텍스트가 없으면 빈 문자열."""
    if context is None:
        return ""
    if context.current_file:
        f = context.current_file
        content = f.content
        if len(content) > MAX_CONTEXT_FILE_CHARS:
            content = content[:MAX_CONTEXT_FILE_CHARS] + "\n... (truncated)"
        return (
            "\n\nCURRENT CONTEXT:\n"
            f"- Currently editing: {f.path} in {f.repository}\n"
            f"- Current file content: {content}\n\n"
            'When user says "update the file", "change this file", "the readme", etc., '
            f"they mean THIS file: {f.path} in repo {f.repository}."
        )
    if context.current_repository:
        return (
            "\n\nCURRENT CONTEXT:\n"
            f"- Currently viewing repo: {context.current_repository}\n\n"
            f"When user mentions files without specifying repo, assume they mean repo: {context.current_repository}"
        )
    return ""
