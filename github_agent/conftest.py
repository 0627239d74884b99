#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/conftest.py
"""
github_agent 테스트 공용 픽스처.

실제 GitHub 대신 메모리 안에서 동작하는 FakeGitHub를 httpx.MockTransport로 연결합니다.
"""

import base64
import hashlib
import json
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from unittest.mock import patch

from . import confirmation
from . import github_client

OWNER = "bot"


def _sha(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


def _wrap_base64(content: str) -> str:
    # GitHub처럼 60자마다 줄바꿈을 넣습니다.
    encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
    return "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))


class FakeGitHub:
    """저장소/파일/PR을 딕셔너리로 흉내 내는 최소한의 GitHub REST API."""

    def __init__(self, owner: str = OWNER):
        self.owner = owner
        self.repos: Dict[str, Dict[str, Any]] = {}
        self.pulls: Dict[str, List[Dict[str, Any]]] = {}
        self.requests: List[Tuple[str, str, Dict[str, Any]]] = []
        self.fail_with: Optional[int] = None

    def add_repo(self, full_name: str, files: Optional[Dict[str, str]] = None, private: bool = False):
        self.repos[full_name] = {"files": dict(files or {}), "private": private}

    def calls(self, method: str, path_fragment: str = "") -> List[Tuple[str, str, Dict[str, Any]]]:
        return [r for r in self.requests if r[0] == method and path_fragment in r[1]]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else {}
        self.requests.append((request.method, path, body))

        if self.fail_with:
            return httpx.Response(self.fail_with, json={"message": "Server Error"})

        if path == "/user/repos":
            if request.method == "GET":
                return httpx.Response(200, json=[self._repo_json(name) for name in self.repos])
            full_name = f"{self.owner}/{body['name']}"
            if full_name in self.repos:
                return httpx.Response(422, json={"message": "name already exists on this account"})
            self.add_repo(full_name, private=body.get("private", False))
            return httpx.Response(201, json=self._repo_json(full_name))

        match = re.match(r"^/repos/([^/]+/[^/]+)(?:/(.*))?$", path)
        if not match or match.group(1) not in self.repos:
            return httpx.Response(404, json={"message": "Not Found"})
        full_name, rest = match.group(1), match.group(2) or ""
        repo = self.repos[full_name]

        if rest == "":
            if request.method == "DELETE":
                del self.repos[full_name]
                return httpx.Response(204)
            return httpx.Response(200, json=self._repo_json(full_name))

        if rest == "contents" or rest.startswith("contents/"):
            return self._contents(request.method, repo, rest[len("contents"):].lstrip("/"), body)

        if rest == "git/ref/heads/main":
            return httpx.Response(200, json={"object": {"sha": "base-sha"}})
        if rest == "git/refs" and request.method == "POST":
            return httpx.Response(201, json={"ref": body["ref"]})

        if rest == "pulls":
            pulls = self.pulls.setdefault(full_name, [])
            if request.method == "GET":
                return httpx.Response(200, json=pulls)
            pr = {
                "number": len(pulls) + 1,
                "title": body["title"],
                "body": body.get("body"),
                "html_url": f"https://github.com/{full_name}/pull/{len(pulls) + 1}",
            }
            pulls.append(pr)
            return httpx.Response(201, json=pr)

        merge = re.match(r"^pulls/(\d+)/merge$", rest)
        if merge and request.method == "PUT":
            return httpx.Response(200, json={"merged": True})

        return httpx.Response(404, json={"message": "Not Found"})

    def _repo_json(self, full_name: str) -> Dict[str, Any]:
        return {
            "name": full_name.split("/", 1)[1],
            "full_name": full_name,
            "description": None,
            "private": self.repos[full_name]["private"],
            "html_url": f"https://github.com/{full_name}",
            "updated_at": "2024-01-01T00:00:00Z",
        }

    def _contents(self, method: str, repo: Dict[str, Any], path: str, body: Dict[str, Any]) -> httpx.Response:
        files: Dict[str, str] = repo["files"]
        existing = files.get(path)

        if method == "GET":
            if existing is not None:
                return httpx.Response(200, json={
                    "type": "file",
                    "name": path.rsplit("/", 1)[-1],
                    "path": path,
                    "sha": _sha(existing),
                    "content": _wrap_base64(existing),
                })
            prefix = f"{path}/" if path else ""
            children: Dict[str, str] = {}
            for file_path in files:
                if file_path.startswith(prefix):
                    head, sep, _ = file_path[len(prefix):].partition("/")
                    children[head] = "dir" if sep else "file"
            if not children and path:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=[
                {"name": name, "type": kind, "path": f"{prefix}{name}"} for name, kind in children.items()
            ])

        if existing is not None and body.get("sha") != _sha(existing):
            return httpx.Response(409, json={"message": "sha does not match"})

        if method == "PUT":
            files[path] = base64.b64decode(body["content"]).decode("utf-8")
            return httpx.Response(200 if existing is not None else 201, json={
                "content": {"path": path, "sha": _sha(files[path])},
            })

        if method == "DELETE":
            if existing is None:
                return httpx.Response(404, json={"message": "Not Found"})
            del files[path]
            return httpx.Response(200, json={"content": None})

        return httpx.Response(405)


@pytest.fixture(autouse=True)
def credentials(monkeypatch):
    """모든 테스트는 가짜 인증 정보와 고정된 운영자 계정명으로 실행합니다."""
    monkeypatch.setenv("GITHUB_TOKEN", "test-github-token")
    monkeypatch.setenv("GEMINI_API_KEY", "test-gemini-key")
    monkeypatch.setenv("GITHUB_USERNAME", OWNER)
    monkeypatch.delenv("GITHUB_API_URL", raising=False)


@pytest.fixture(autouse=True)
def fresh_ledger():
    confirmation.ledger.clear()
    yield
    confirmation.ledger.clear()


@pytest.fixture
def fake_github():
    fake = FakeGitHub()
    with patch.object(github_client, "_transport", httpx.MockTransport(fake.handler)):
        yield fake
