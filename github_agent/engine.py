#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/engine.py
"""한 번의 채팅 턴을 처음부터 끝까지 처리합니다.

대화 이력, UI 컨텍스트, 삭제 확인 토큰은 모두 호출자가 매 요청마다 보내며
서버는 세션 상태를 보관하지 않습니다. AI/GitHub 호출은 한 턴 안에서 순차적으로만 일어납니다.
"""

import logging
from typing import Any, Dict, List, Optional

from . import config
from . import confirmation
from . import gemini_client
from . import github_client
from . import intent_resolver
from . import response_formatter
from . import tool_registry
from .confirmation import ConfirmationState
from .constants import FORCE_DELETE_FILE_PREFIX
from .context_injector import build_context_prompt, qualify_repo
from .exceptions import ConfigurationError, ConfirmationMismatch
from .models import ChatRequest, ChatResponse, ExecutionRecord, Invocation, Resolution

logger = logging.getLogger(__name__)


async def _execute(invocations: List[Invocation]) -> List[ExecutionRecord]:
    records = []
    for inv in invocations:
        result = await github_client.execute_tool(inv.name, inv.args)
        if not result.success:
            logger.warning(f"도구 실행 실패: {inv.name} → {result.message}")
        records.append(ExecutionRecord(name=inv.name, args=inv.args, result=result))
    return records


async def _run_invocations(request: ChatRequest, resolution: Resolution) -> ChatResponse:
    invocations = resolution.invocations

    destructive = [inv for inv in invocations if tool_registry.is_destructive(inv.name)]
    if destructive:
        target = destructive[0]
        if len(invocations) > 1:
            skipped = [inv.name for inv in invocations if inv is not target]
            logger.warning(f"삭제 확인이 필요한 턴이므로 다른 호출은 실행하지 않습니다: {skipped}")
        proposal = await confirmation.propose(target)
        if proposal.state == ConfirmationState.PROPOSED:
            return ChatResponse(
                response=proposal.text,
                pending_deletion=proposal.token,
                deletion_type=proposal.deletion_type,
            )
        return ChatResponse(response=proposal.text)

    records = await _execute(invocations)
    system_prompt = gemini_client.build_system_prompt(build_context_prompt(request.context))
    reply = await response_formatter.format_records(request.message, request.history, records, system_prompt)
    return ChatResponse(
        response=reply.text,
        tool_calls=[r.to_wire() for r in records],
        system_messages=reply.system_messages,
    )


async def confirm_pending(raw_token: str, reply: str, deletion_type: Optional[str] = None) -> ChatResponse:
    """이전 턴에서 제안된 삭제에 대한 사용자의 응답을 처리합니다. 해석기는 거치지 않습니다."""
    outcome = await confirmation.respond(raw_token, reply, deletion_type)
    if outcome.state != ConfirmationState.CONFIRMED or outcome.record is None:
        return ChatResponse(response=outcome.text)

    record = outcome.record
    if not record.result.success:
        return ChatResponse(
            tool_calls=[record.to_wire()],
            system_messages=[response_formatter.format_failure(record)],
        )
    return ChatResponse(response=record.result.message, tool_calls=[record.to_wire()])


async def delete_repository(repo: str, raw_token: Optional[str], reply: Optional[str]) -> Dict[str, Any]:
    """/delete 엔드포인트용 저장소 삭제. 확인 토큰이 같은 저장소를 가리킬 때만 respond()로 넘깁니다."""
    if not raw_token:
        logger.warning(f"확인 토큰 없는 저장소 삭제 요청 거부: {repo}")
        return {"error": "Confirmation token required. Nothing was deleted."}
    try:
        token = confirmation.parse_token(raw_token, "repo")
    except ConfirmationMismatch as e:
        logger.warning(f"확인 토큰 오류: {e}")
        return {"error": "Invalid confirmation token. Deletion cancelled."}
    if token.repository != qualify_repo(repo):
        logger.warning(f"확인 토큰 대상 불일치: {token.repository} != {repo}")
        return {"error": "Confirmation token does not match this repository. Nothing was deleted."}

    outcome = await confirmation.respond(raw_token, reply or "", "repo")
    if outcome.state != ConfirmationState.CONFIRMED or outcome.record is None:
        return {"error": outcome.text}
    return outcome.record.result.to_wire()


async def force_delete_file(command: str) -> ChatResponse:
    """'FORCE_DELETE_FILE:<owner/repo>:<path>' 명령으로 확인이 끝난 파일을 바로 삭제합니다."""
    payload = command[len(FORCE_DELETE_FILE_PREFIX):]
    repo, _, path = payload.partition(":")  # path에 ':'가 있어도 첫 구분자에서만 나눕니다
    repo, path = repo.strip(), path.strip()
    if not repo or not path:
        return ChatResponse(error="FORCE_DELETE_FILE requires both a repository and a path")

    args = {"repo": qualify_repo(repo), "path": path}
    result = await github_client.execute_tool("delete_file", args)
    if not result.success:
        return ChatResponse(error=result.message)
    record = ExecutionRecord(name="delete_file", args=args, result=result)
    return ChatResponse(response=result.message, tool_calls=[record.to_wire()])


async def submit_turn(request: ChatRequest) -> ChatResponse:
    """채팅 턴 하나를 처리해 최종 응답을 돌려줍니다."""
    try:
        config.require_credentials()
    except ConfigurationError as e:
        logger.error(f"설정 오류: {e}")
        return ChatResponse(error=str(e))

    message = request.message

    if request.pending_deletion:
        return await confirm_pending(request.pending_deletion, message, request.deletion_type)

    if message.startswith(FORCE_DELETE_FILE_PREFIX):
        return await force_delete_file(message)

    resolution = await intent_resolver.resolve(message, request.history, request.context)

    if resolution.kind == "clarification":
        return ChatResponse(response=resolution.text)

    if resolution.kind == "reply":
        if resolution.ai_error and not resolution.text:
            return ChatResponse(system_messages=[f"❌ {resolution.ai_error}"])
        return ChatResponse(response=response_formatter.format_conversational(resolution.text))

    return await _run_invocations(request, resolution)
