#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
github_client.py

GitHub REST API(v3)를 감싸는 게이트웨이 모음입니다.
도구 레지스트리의 각 도구마다 같은 이름의 비동기 함수가 하나씩 있으며,
모든 함수는 OperationResult(success 또는 failure)를 반환합니다.
파일 내용은 base64로 주고받고, 수정/삭제 전에는 현재 SHA를 조회해 함께 보냅니다.
재시도는 하지 않습니다. 실패는 즉시 호출자에게 전달됩니다.
"""

import base64
import logging
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import httpx

from . import config
from . import tool_registry
from .constants import DEFAULT_BASE_BRANCH, GITHUB_PER_PAGE, PR_BRANCH_PREFIX
from .exceptions import RemoteServiceError
from .models import OperationResult

logger = logging.getLogger(__name__)

# 테스트에서 httpx.MockTransport로 교체합니다.
_transport: Optional[httpx.AsyncBaseTransport] = None

# 레지스트리(camelCase) 인자 이름 → 파이썬 함수 인자 이름
_ARG_NAMES = {
    "autoInit": "auto_init",
    "filePath": "file_path",
    "prNumber": "pr_number",
}


# --- 헬퍼 함수 ---

def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"token {config.get_github_token()}",
        "Accept": "application/vnd.github.v3+json",
        "Content-Type": "application/json",
    }


def _contents_endpoint(repo: str, path: str) -> str:
    return f"/repos/{repo}/contents/{quote(path.lstrip('/'), safe='/')}"


async def _github_request(
    method: str,
    endpoint: str,
    json_body: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
) -> httpx.Response:
    """인증 헤더와 기본 URL을 붙여 GitHub API를 호출하는 중앙 함수.

    Raises:
        httpx.HTTPError: 네트워크 수준 오류 (연결 실패, 타임아웃 등).
    """
    url = endpoint if endpoint.startswith("http") else f"{config.get_github_api_url()}{endpoint}"
    logger.info(f"GitHub {method} {endpoint}")
    async with httpx.AsyncClient(timeout=config.get_github_timeout(), transport=_transport) as client:
        return await client.request(method, url, headers=_headers(), json=json_body, params=params)


def _failure(action: str, response: httpx.Response) -> OperationResult:
    body = response.text.strip()
    message = f"Failed to {action}: {response.reason_phrase}"
    if body:
        message = f"{message} - {body}"
    logger.warning(f"GitHub 호출 실패 ({response.status_code}): {message}")
    return OperationResult.fail(message)


def _as_bool(value: Any, default: bool) -> bool:
    """인라인 호출 문법에서는 불리언도 문자열로 들어오므로 함께 처리합니다."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _decode_content(encoded: str) -> str:
    # GitHub는 60자마다 줄바꿈을 넣어 base64를 반환합니다.
    return base64.b64decode("".join(encoded.split())).decode("utf-8")


def _encode_content(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


async def _current_sha(repo: str, path: str, ref: Optional[str] = None) -> Optional[str]:
    """파일의 현재 SHA를 반환합니다. 파일이 없으면 None.

    Raises:
        RemoteServiceError: 404 이외의 실패 응답.
    """
    params = {"ref": ref} if ref else None
    response = await _github_request("GET", _contents_endpoint(repo, path), params=params)
    if response.status_code == 404:
        return None
    if not response.is_success:
        raise RemoteServiceError(
            f"Failed to get file info: {response.reason_phrase}",
            status_code=response.status_code, body=response.text.strip(),
        )
    data = response.json()
    if isinstance(data, list):
        raise RemoteServiceError(f"'{path}' is a directory, not a file")
    return data.get("sha")


# --- 존재 확인 (삭제 확인 절차에서 사용) ---

async def repository_exists(repo: str) -> bool:
    """저장소 존재 여부. 404면 False, 그 밖의 실패는 RemoteServiceError."""
    try:
        response = await _github_request("GET", f"/repos/{repo}")
    except httpx.HTTPError as e:
        raise RemoteServiceError(f"Error checking repository: {e}") from e
    if response.status_code == 404:
        return False
    if not response.is_success:
        raise RemoteServiceError(
            f"Error checking repository: {response.reason_phrase}", status_code=response.status_code
        )
    return True


async def file_exists(repo: str, path: str) -> bool:
    """파일 존재 여부. 404면 False, 그 밖의 실패는 RemoteServiceError."""
    try:
        response = await _github_request("GET", _contents_endpoint(repo, path))
    except httpx.HTTPError as e:
        raise RemoteServiceError(f"Error checking file: {e}") from e
    if response.status_code == 404:
        return False
    if not response.is_success:
        raise RemoteServiceError(
            f"Error checking file: {response.reason_phrase}", status_code=response.status_code
        )
    return True


# --- 도구 구현 ---

async def list_tools() -> OperationResult:
    return OperationResult.ok("Available tools listed", **tool_registry.list_tools_payload())


async def list_repos(type: Optional[str] = None) -> OperationResult:
    params = {"type": type or "owner", "per_page": GITHUB_PER_PAGE, "sort": "updated"}
    response = await _github_request("GET", "/user/repos", params=params)
    if not response.is_success:
        return _failure("list repos", response)
    repos = [
        {
            "name": r.get("name"),
            "fullName": r.get("full_name"),
            "description": r.get("description"),
            "private": r.get("private", False),
            "url": r.get("html_url"),
            "updatedAt": r.get("updated_at"),
        }
        for r in response.json()
    ]
    return OperationResult.ok(f"Found {len(repos)} repositories", repos=repos)


async def create_repo(
    name: str,
    description: Optional[str] = None,
    private: Any = None,
    auto_init: Any = None,
) -> OperationResult:
    body = {
        "name": name,
        "description": description or "",
        "private": _as_bool(private, False),
        "auto_init": _as_bool(auto_init, True),
    }
    response = await _github_request("POST", "/user/repos", json_body=body)
    if not response.is_success:
        return _failure("create repo", response)
    repo = response.json()
    return OperationResult.ok(
        f"Repository {repo.get('full_name')} created successfully",
        url=repo.get("html_url"),
        fullName=repo.get("full_name"),
    )


async def delete_repo(repo: str) -> OperationResult:
    response = await _github_request("DELETE", f"/repos/{repo}")
    if not response.is_success:
        return _failure("delete repo", response)
    return OperationResult.ok(f"Repository {repo} deleted successfully", repo=repo)


async def list_files(repo: str, path: Optional[str] = None) -> OperationResult:
    path = path or ""
    response = await _github_request("GET", _contents_endpoint(repo, path))
    if not response.is_success:
        return _failure("list files", response)
    entries = response.json()
    if isinstance(entries, dict):
        # 경로가 파일을 가리키면 GitHub는 객체 하나를 반환합니다.
        entries = [entries]
    files = [{"name": f.get("name"), "type": f.get("type"), "path": f.get("path")} for f in entries]
    return OperationResult.ok(f"Found {len(files)} entries", files=files, repo=repo, path=path)


async def read_file(repo: str, path: str) -> OperationResult:
    response = await _github_request("GET", _contents_endpoint(repo, path))
    if not response.is_success:
        return _failure("read file", response)
    data = response.json()
    if isinstance(data, list) or data.get("type") not in (None, "file"):
        return OperationResult.fail(f"Failed to read file: '{path}' is not a file")
    content = _decode_content(data.get("content", ""))
    return OperationResult.ok(f"File {path} read successfully", content=content, sha=data.get("sha"), path=path)


async def update_file(repo: str, path: str, content: str, message: Optional[str] = None) -> OperationResult:
    """파일을 생성하거나 수정합니다.

    기존 파일이 있으면 현재 SHA를 먼저 조회해 함께 보냅니다. 조회와 쓰기 사이에
    다른 곳에서 파일이 바뀌면 GitHub가 409로 거부하며, 이 경우 재시도 없이 실패를 반환합니다.
    """
    try:
        current_sha = await _current_sha(repo, path)
    except RemoteServiceError as e:
        return OperationResult.fail(str(e))

    created = current_sha is None
    body: Dict[str, Any] = {
        "message": message or (f"Create {path}" if created else f"Update {path}"),
        "content": _encode_content(content),
    }
    if current_sha:
        body["sha"] = current_sha

    response = await _github_request("PUT", _contents_endpoint(repo, path), json_body=body)
    if not response.is_success:
        return _failure("update file", response)
    new_sha = (response.json().get("content") or {}).get("sha")
    verb = "created" if created else "updated"
    return OperationResult.ok(f"File {path} {verb} successfully", path=path, created=created, sha=new_sha)


async def create_pr(
    repo: str,
    title: str,
    file_path: str,
    content: str,
    body: Optional[str] = None,
) -> OperationResult:
    """main에서 새 브랜치를 만들고, 파일을 수정한 뒤 PR을 엽니다."""
    branch_name = f"{PR_BRANCH_PREFIX}{int(time.time() * 1000)}"

    base_response = await _github_request("GET", f"/repos/{repo}/git/ref/heads/{DEFAULT_BASE_BRANCH}")
    if not base_response.is_success:
        return _failure(f"get {DEFAULT_BASE_BRANCH} branch", base_response)
    base_sha = base_response.json()["object"]["sha"]

    branch_response = await _github_request(
        "POST", f"/repos/{repo}/git/refs",
        json_body={"ref": f"refs/heads/{branch_name}", "sha": base_sha},
    )
    if not branch_response.is_success:
        return _failure("create branch", branch_response)

    try:
        file_sha = await _current_sha(repo, file_path, ref=branch_name)
    except RemoteServiceError as e:
        return OperationResult.fail(str(e))
    if file_sha is None:
        return OperationResult.fail(f"Failed to get file: {file_path} not found")

    update_response = await _github_request(
        "PUT", _contents_endpoint(repo, file_path),
        json_body={
            "message": "Update from AI agent",
            "content": _encode_content(content),
            "sha": file_sha,
            "branch": branch_name,
        },
    )
    if not update_response.is_success:
        return _failure("update file on branch", update_response)

    pr_response = await _github_request(
        "POST", f"/repos/{repo}/pulls",
        json_body={
            "title": title,
            "body": body or "Changes made via AI agent",
            "head": branch_name,
            "base": DEFAULT_BASE_BRANCH,
        },
    )
    if not pr_response.is_success:
        return _failure("create PR", pr_response)
    pr = pr_response.json()
    return OperationResult.ok(
        f"PR created: #{pr.get('number')}", url=pr.get("html_url"), number=pr.get("number"), branch=branch_name
    )


async def list_prs(repo: str) -> OperationResult:
    response = await _github_request("GET", f"/repos/{repo}/pulls", params={"state": "open"})
    if not response.is_success:
        return _failure("list PRs", response)
    prs = [
        {"number": pr.get("number"), "title": pr.get("title"), "body": pr.get("body"), "url": pr.get("html_url")}
        for pr in response.json()
    ]
    return OperationResult.ok(f"Found {len(prs)} open pull requests", prs=prs, repo=repo)


async def merge_pr(repo: str, pr_number: Any) -> OperationResult:
    try:
        number = int(float(str(pr_number).strip().lstrip("#")))
    except ValueError:
        return OperationResult.fail(f"Invalid pull request number: {pr_number}")
    response = await _github_request(
        "PUT", f"/repos/{repo}/pulls/{number}/merge",
        json_body={"commit_title": f"Merge pull request #{number}", "merge_method": "merge"},
    )
    if not response.is_success:
        return _failure("merge PR", response)
    return OperationResult.ok(f"PR #{number} merged successfully", number=number)


async def delete_file(repo: str, path: str, message: Optional[str] = None) -> OperationResult:
    try:
        current_sha = await _current_sha(repo, path)
    except RemoteServiceError as e:
        return OperationResult.fail(str(e))
    if current_sha is None:
        return OperationResult.fail(f"Failed to get file info: {path} not found in {repo}")

    response = await _github_request(
        "DELETE", _contents_endpoint(repo, path),
        json_body={"message": message or f"Delete {path}", "sha": current_sha},
    )
    if not response.is_success:
        return _failure("delete file", response)
    return OperationResult.ok(f"File {path} deleted successfully", path=path, repo=repo)


_OPERATIONS: Dict[str, Callable[..., Any]] = {
    "list_tools": list_tools,
    "list_repos": list_repos,
    "create_repo": create_repo,
    "delete_repo": delete_repo,
    "list_files": list_files,
    "read_file": read_file,
    "update_file": update_file,
    "create_pr": create_pr,
    "list_prs": list_prs,
    "merge_pr": merge_pr,
    "delete_file": delete_file,
}


async def execute_tool(name: str, args: Dict[str, Any]) -> OperationResult:
    """도구 이름으로 게이트웨이 함수를 찾아 실행합니다.

    레지스트리에 없는 인자는 버리고, 네트워크 오류는 Failure로 변환합니다.
    """
    operation = _OPERATIONS.get(name)
    descriptor = tool_registry.get_tool(name)
    if operation is None or descriptor is None:
        return OperationResult.fail(f"Unknown tool: {name}")

    allowed = {p.name for p in descriptor.parameters}
    kwargs = {_ARG_NAMES.get(k, k): v for k, v in (args or {}).items() if k in allowed}
    ignored = set(args or {}) - allowed
    if ignored:
        logger.info(f"{name}: 알 수 없는 인자 무시 {sorted(ignored)}")

    try:
        return await operation(**kwargs)
    except httpx.HTTPError as e:
        logger.error(f"GitHub 요청 실패 ({name}): {e}")
        return OperationResult.fail(str(e) or e.__class__.__name__)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"{name} 실행 중 오류: {e}", exc_info=True)
        return OperationResult.fail(f"{name} failed: {e}")
