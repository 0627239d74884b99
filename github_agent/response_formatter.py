#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/response_formatter.py

import logging
from typing import Callable, Dict, List

from pydantic import BaseModel, Field

from . import gemini_client
from .exceptions import ConfigurationError, RemoteServiceError
from .models import ExecutionRecord, Turn

logger = logging.getLogger(__name__)


class FormattedReply(BaseModel):
    """사용자에게 보여줄 본문과, 별도 'system' 메시지로 표시할 오류 줄"""
    text: str = ""
    system_messages: List[str] = Field(default_factory=list)


def format_failure(record: ExecutionRecord) -> str:
    return f"❌ {record.name} failed: {record.result.message}"


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


# --- 도구별 고정 템플릿 ---

def _format_list_tools(record: ExecutionRecord) -> str:
    lines = ["Here's what I can do:", ""]
    for i, tool in enumerate(record.result.data.get("tools", []), 1):
        lines.append(f"{i}. {tool['name']}: {tool['description']}")
    lines.append("")
    lines.append("You can use these tools by clicking them in the sidebar, or by asking me in plain English!")
    lines.append('For example: "create a new repo called my-project" or "list my repositories"')
    return "\n".join(lines)


def _format_list_repos(record: ExecutionRecord) -> str:
    repos = record.result.data.get("repos", [])
    if not repos:
        return "No repositories found. You have no repositories yet."
    lines = ["Here are your repositories:", ""]
    for i, repo in enumerate(repos, 1):
        visibility = "private" if repo.get("private") else "public"
        line = f"{i}. {repo.get('fullName') or repo.get('name')} ({visibility})"
        if repo.get("url"):
            line += f" - {repo['url']}"
        lines.append(line)
    lines.append("")
    lines.append(f"Total: {_plural(len(repos), 'repository', 'repositories')}")
    return "\n".join(lines)


def _format_create_repo(record: ExecutionRecord) -> str:
    url = record.result.data.get("url")
    return f"{record.result.message}\n{url}" if url else record.result.message


def _format_update_file(record: ExecutionRecord) -> str:
    path = record.result.data.get("path") or record.args.get("path")
    verb = "created" if record.result.data.get("created") else "updated"
    return f"File {path} {verb} successfully"


def _format_read_file(record: ExecutionRecord) -> str:
    data = record.result.data
    return f"Contents of {data.get('path')}:\n\n{data.get('content', '')}"


def _format_list_files(record: ExecutionRecord) -> str:
    data = record.result.data
    location = data.get("repo", "")
    if data.get("path"):
        location = f"{location}/{data['path']}"
    files = data.get("files", [])
    if not files:
        return f"No files found in {location}."
    lines = [f"Files in {location}:", ""]
    for f in files:
        marker = "📁" if f.get("type") == "dir" else "📄"
        lines.append(f"{marker} {f.get('path') or f.get('name')}")
    lines.append("")
    lines.append(f"Total: {_plural(len(files), 'item', 'items')}")
    return "\n".join(lines)


def _format_list_prs(record: ExecutionRecord) -> str:
    data = record.result.data
    prs = data.get("prs", [])
    if not prs:
        return f"No open pull requests in {data.get('repo')}."
    lines = [f"Open pull requests in {data.get('repo')}:", ""]
    for pr in prs:
        lines.append(f"#{pr.get('number')} {pr.get('title')} - {pr.get('url')}")
    lines.append("")
    lines.append(f"Total: {_plural(len(prs), 'pull request', 'pull requests')}")
    return "\n".join(lines)


def _format_create_pr(record: ExecutionRecord) -> str:
    url = record.result.data.get("url")
    return f"{record.result.message}\n{url}" if url else record.result.message


def _format_message(record: ExecutionRecord) -> str:
    return record.result.message


TEMPLATES: Dict[str, Callable[[ExecutionRecord], str]] = {
    "list_tools": _format_list_tools,
    "list_repos": _format_list_repos,
    "create_repo": _format_create_repo,
    "delete_repo": _format_message,
    "delete_file": _format_message,
    "update_file": _format_update_file,
    "read_file": _format_read_file,
    "list_files": _format_list_files,
    "list_prs": _format_list_prs,
    "create_pr": _format_create_pr,
    "merge_pr": _format_message,
}


def format_conversational(text: str) -> str:
    """도구 호출이 없는 AI 답변은 코드 펜스만 제거해 그대로 전달합니다."""
    return gemini_client.strip_code_fences(text)


async def format_records(
    message: str,
    history: List[Turn],
    records: List[ExecutionRecord],
    system_prompt: str,
) -> FormattedReply:
    """실행 기록을 사용자용 텍스트로 만듭니다.

    실패한 기록은 본문에 섞지 않고 system_messages로만 내보냅니다.
    단일 호출이면서 템플릿이 있으면 고정 문구, 그 외에는 실패를 포함한 전체 기록을 붙여 AI가 답변을 작성합니다.
    """
    failures = [r for r in records if not r.result.success]
    successes = [r for r in records if r.result.success]
    system_messages = [format_failure(r) for r in failures]

    if not successes:
        return FormattedReply(system_messages=system_messages)

    if len(records) == 1 and records[0].name in TEMPLATES:
        return FormattedReply(text=TEMPLATES[records[0].name](records[0]), system_messages=system_messages)

    try:
        text = await gemini_client.compose_followup(message, history, records, system_prompt)
    except (ConfigurationError, RemoteServiceError) as e:
        logger.warning(f"후속 답변 생성 실패, 기본 문구 사용: {e}")
        text = "Action completed: " + ", ".join(r.name for r in successes)
    return FormattedReply(text=text, system_messages=system_messages)
