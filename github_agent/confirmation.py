#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/confirmation.py
"""저장소/파일 삭제를 위한 2단계 확인 절차.

IDLE → PROPOSED → {CONFIRMED, CANCELLED}

- propose(): 대상이 실제로 있는지 먼저 확인하고, 있으면 경고 문구와 토큰을 돌려줍니다.
  대상이 없으면 PROPOSED를 거치지 않고 NOT_FOUND로 끝납니다.
- respond(): 호출자가 돌려보낸 토큰과 사용자의 다음 메시지를 받아
  정확히 "yes"(대소문자 무시)일 때만 삭제를 실행합니다.

토큰은 서버에 저장되지 않고 호출자가 보관합니다. 단, 한 번 쓰인 토큰의
nonce는 프로세스 안의 작은 원장에 기록해 같은 토큰으로 두 번 삭제되지 않게 합니다.
"""

import logging
import uuid
from collections import OrderedDict
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from . import github_client
from .constants import CONFIRMATION_LITERAL, FILE_TOKEN_SEPARATOR, MAX_CONSUMED_TOKENS
from .exceptions import ConfirmationMismatch, RemoteServiceError
from .models import ConfirmationToken, ExecutionRecord, Invocation

logger = logging.getLogger(__name__)


class ConfirmationState(str, Enum):
    IDLE = "idle"
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"
    CHECK_FAILED = "check_failed"


class Proposal(BaseModel):
    """propose()의 결과"""
    state: ConfirmationState
    text: str
    token: Optional[str] = None
    deletion_type: Optional[str] = None


class ConfirmationOutcome(BaseModel):
    """respond()의 결과. CONFIRMED일 때만 record가 있습니다."""
    state: ConfirmationState
    text: str = ""
    record: Optional[ExecutionRecord] = None


class ConsumedTokenLedger:
    """이미 사용된 토큰 nonce를 기억하는 크기 제한 원장."""

    def __init__(self, max_size: int = MAX_CONSUMED_TOKENS):
        self.max_size = max_size
        self._consumed: "OrderedDict[str, None]" = OrderedDict()

    def consume(self, nonce: str) -> bool:
        """처음 쓰이는 nonce면 기록하고 True, 이미 쓰였으면 False."""
        if nonce in self._consumed:
            return False
        self._consumed[nonce] = None
        while len(self._consumed) > self.max_size:
            self._consumed.popitem(last=False)
        return True

    def __contains__(self, nonce: str) -> bool:
        return nonce in self._consumed

    def clear(self) -> None:
        self._consumed.clear()


ledger = ConsumedTokenLedger()


# --- 토큰 직렬화 ---

def issue_token(invocation: Invocation) -> ConfirmationToken:
    nonce = uuid.uuid4().hex
    if invocation.name == "delete_file":
        return ConfirmationToken(
            kind="file", repository=invocation.args["repo"], path=invocation.args["path"], nonce=nonce
        )
    return ConfirmationToken(kind="repo", repository=invocation.args["repo"], nonce=nonce)


def serialize_token(token: ConfirmationToken) -> str:
    """호출자에게 건넬 불투명 문자열. 형식: '<kind>:<nonce>:<repo>[:::<path>]'"""
    body = token.repository
    if token.kind == "file":
        body = f"{token.repository}{FILE_TOKEN_SEPARATOR}{token.path}"
    return f"{token.kind}:{token.nonce}:{body}"


def parse_token(raw: str, deletion_type: Optional[str] = None) -> ConfirmationToken:
    """propose()가 발급한 토큰을 복원합니다.

    nonce가 없는 문자열('owner/repo' 등)은 발급된 적 없는 토큰이므로 거부합니다.
    deletion_type이 주어지면 토큰 종류와 같아야 합니다.

    Raises:
        ConfirmationMismatch: 형식이 올바르지 않거나 종류가 다른 경우.
    """
    raw = (raw or "").strip()
    if not raw:
        raise ConfirmationMismatch("empty confirmation token")

    kind, sep, rest = raw.partition(":")
    if not sep or kind not in ("repo", "file"):
        raise ConfirmationMismatch(f"confirmation token without nonce: {raw!r}")
    nonce, sep2, body = rest.partition(":")
    if not sep2 or not nonce:
        raise ConfirmationMismatch(f"malformed confirmation token: {raw!r}")
    if deletion_type and deletion_type != kind:
        raise ConfirmationMismatch(f"token kind {kind!r} does not match deletion type {deletion_type!r}")

    if kind == "file":
        repository, sep3, path = body.partition(FILE_TOKEN_SEPARATOR)
        if not sep3 or not repository or not path:
            raise ConfirmationMismatch(f"malformed file confirmation token: {raw!r}")
        return ConfirmationToken(kind="file", repository=repository, path=path, nonce=nonce)

    if "/" not in body:
        raise ConfirmationMismatch(f"malformed repository confirmation token: {raw!r}")
    return ConfirmationToken(kind="repo", repository=body, nonce=nonce)


def token_to_invocation(token: ConfirmationToken) -> Invocation:
    if token.kind == "file":
        return Invocation(name="delete_file", args={"repo": token.repository, "path": token.path})
    return Invocation(name="delete_repo", args={"repo": token.repository})


def is_affirmative(reply: str) -> bool:
    # 앞뒤 공백도 허용하지 않는 정확한 일치
    return (reply or "").lower() == CONFIRMATION_LITERAL


# --- 상태 전이 ---

async def propose(invocation: Invocation) -> Proposal:
    """IDLE → PROPOSED (대상이 존재할 때만)."""
    repo = invocation.args["repo"]
    is_file = invocation.name == "delete_file"
    path = invocation.args.get("path")

    try:
        exists = await (github_client.file_exists(repo, path) if is_file else github_client.repository_exists(repo))
    except RemoteServiceError as e:
        logger.warning(f"삭제 대상 확인 실패: {e}")
        return Proposal(state=ConfirmationState.CHECK_FAILED, text=f"❌ {e}")

    if not exists:
        logger.info(f"삭제 대상 없음: {repo}{'/' + path if is_file else ''}")
        if is_file:
            text = f'❌ File "{path}" not found in repository "{repo}". Cannot delete a file that doesn\'t exist.'
        else:
            text = f'❌ Repository "{repo}" not found. Cannot delete a repository that doesn\'t exist.'
        return Proposal(state=ConfirmationState.NOT_FOUND, text=text)

    token = issue_token(invocation)
    if is_file:
        text = (
            f'⚠️ WARNING: You are about to PERMANENTLY DELETE "{path}"\n\n'
            f'This will delete the file from "{repo}" forever.\n\n'
            'Type "yes" to confirm deletion, or anything else to cancel.'
        )
    else:
        text = (
            f'⚠️ DANGER: You are about to PERMANENTLY DELETE "{repo}"\n\n'
            "This will delete ALL code, issues, and history forever.\n\n"
            'Type "yes" to confirm deletion, or anything else to cancel.'
        )
    logger.info(f"삭제 확인 요청: {token.identifier}")
    return Proposal(
        state=ConfirmationState.PROPOSED,
        text=text,
        token=serialize_token(token),
        deletion_type=token.kind,
    )


async def respond(raw_token: str, reply: str, deletion_type: Optional[str] = None) -> ConfirmationOutcome:
    """PROPOSED → CONFIRMED | CANCELLED. 어느 쪽이든 토큰은 소비됩니다."""
    try:
        token = parse_token(raw_token, deletion_type)
    except ConfirmationMismatch as e:
        logger.warning(f"확인 토큰 오류: {e}")
        return ConfirmationOutcome(
            state=ConfirmationState.CANCELLED,
            text="Invalid confirmation token. Deletion cancelled.",
        )

    if not ledger.consume(token.nonce):
        logger.warning(f"이미 사용된 확인 토큰 재사용 시도: {token.identifier}")
        return ConfirmationOutcome(
            state=ConfirmationState.CANCELLED,
            text="This confirmation has already been used. Nothing was deleted.",
        )

    if not is_affirmative(reply):
        logger.info(f"삭제 취소: {token.identifier}")
        return ConfirmationOutcome(state=ConfirmationState.CANCELLED, text="Deletion cancelled")

    invocation = token_to_invocation(token)
    logger.info(f"삭제 확정: {invocation.name} {invocation.args}")
    result = await github_client.execute_tool(invocation.name, invocation.args)
    record = ExecutionRecord(name=invocation.name, args=invocation.args, result=result)
    return ConfirmationOutcome(state=ConfirmationState.CONFIRMED, text=result.message, record=record)
