#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""github_agent/api.py + engine.py 통합 테스트 (Gemini는 mock, GitHub는 FakeGitHub)"""

import json

import pytest
from unittest.mock import patch, AsyncMock
from httpx import AsyncClient, ASGITransport

from .api import app
from .exceptions import RemoteServiceError
from .models import IntentClassification, Invocation, StructuredCalls, TextReply


async def _post(path, payload):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.post(path, json=payload)
    assert resp.status_code == 200
    return resp.json()


async def _get(path, params=None):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.get(path, params=params)
    assert resp.status_code == 200
    return resp.json()


@pytest.fixture
def gemini():
    """도구 호출 모드 응답과 분류기를 함께 mock"""
    with patch("github_agent.gemini_client.generate_with_tools", new_callable=AsyncMock) as mock_gen, \
         patch("github_agent.gemini_client.classify_intent", new_callable=AsyncMock) as mock_cls, \
         patch("github_agent.gemini_client.compose_followup", new_callable=AsyncMock) as mock_compose:
        mock_gen.return_value = TextReply(text="")
        mock_cls.return_value = IntentClassification()
        mock_compose.return_value = "Done."
        yield mock_gen


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_missing_gemini_key(self, monkeypatch, gemini):
        monkeypatch.delenv("GEMINI_API_KEY")
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        data = await _post("/chat", {"message": "hi"})
        assert data == {"error": "GEMINI_API_KEY not configured", "response": "", "systemMessages": []}
        gemini.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_github_token(self, monkeypatch, gemini):
        monkeypatch.delenv("GITHUB_TOKEN")
        monkeypatch.delenv("GH_TOKEN", raising=False)
        data = await _post("/chat", {"message": "hi"})
        assert data["error"] == "GITHUB_TOKEN not configured"


class TestChatScenarios:
    @pytest.mark.asyncio
    async def test_greeting(self, fake_github, gemini):
        gemini.return_value = TextReply(text="Hello! What would you like to do?")
        data = await _post("/chat", {"message": "hello", "history": []})
        assert data["response"] == "Hello! What would you like to do?"
        assert "toolCalls" not in data
        assert fake_github.requests == []

    @pytest.mark.asyncio
    async def test_list_repos_when_empty(self, fake_github, gemini):
        gemini.return_value = StructuredCalls(calls=[Invocation(name="list_repos")])
        data = await _post("/chat", {"message": "list my repos"})
        assert "No repositories found" in data["response"]
        assert data["toolCalls"][0]["name"] == "list_repos"

    @pytest.mark.asyncio
    async def test_create_repo_without_name_asks_back(self, fake_github, gemini):
        gemini.return_value = StructuredCalls(calls=[Invocation(name="create_repo", args={})])
        data = await _post("/chat", {"message": "make me a repo"})
        assert 'Missing required field "name"' in data["response"]
        assert fake_github.requests == []

    @pytest.mark.asyncio
    async def test_failure_is_reported_as_system_message(self, fake_github, gemini):
        fake_github.add_repo("bot/demo")
        gemini.return_value = StructuredCalls(calls=[Invocation(name="read_file", args={"path": "nope.md"})])
        data = await _post("/chat", {"message": "show nope.md", "context": {"currentRepository": "bot/demo"}})

        assert data["response"] == ""
        [line] = data["systemMessages"]
        assert line.startswith("❌ read_file failed: Failed to read file: Not Found")
        assert "error" in data["toolCalls"][0]["result"]

    @pytest.mark.asyncio
    async def test_ai_failure_is_reported(self, fake_github, gemini):
        gemini.side_effect = RemoteServiceError("AI service error: 503")
        data = await _post("/chat", {"message": "hello"})
        assert data["systemMessages"] == ["❌ AI service error: 503"]
        assert data["response"] == ""

    @pytest.mark.asyncio
    async def test_create_file_in_open_repo(self, fake_github, gemini):
        fake_github.add_repo("bot/demo")
        gemini.return_value = TextReply(text="update_file(path='notes.md', content='# Notes')")
        data = await _post("/chat", {"message": "add notes.md", "context": {"currentRepository": "bot/demo"}})

        assert data["response"] == "File notes.md created successfully"
        assert fake_github.repos["bot/demo"]["files"]["notes.md"] == "# Notes"


class TestDeletionFlow:
    @pytest.mark.asyncio
    async def test_propose_then_confirm_then_replay(self, fake_github, gemini):
        fake_github.add_repo("bot/demo")

        first = await _post("/chat", {"message": "delete the repository 'demo'"})
        assert first["deletionType"] == "repo"
        assert "PERMANENTLY DELETE" in first["response"]
        assert "bot/demo" in fake_github.repos

        gemini.reset_mock()
        confirm = {"message": "yes", "pendingDeletion": first["pendingDeletion"], "deletionType": "repo"}
        second = await _post("/chat", confirm)
        assert second["response"] == "Repository bot/demo deleted successfully"
        assert "bot/demo" not in fake_github.repos
        gemini.assert_not_awaited()

        fake_github.add_repo("bot/demo")
        third = await _post("/chat", confirm)
        assert "already been used" in third["response"]
        assert "bot/demo" in fake_github.repos

    @pytest.mark.asyncio
    async def test_cancel(self, fake_github, gemini):
        fake_github.add_repo("bot/demo")
        first = await _post("/chat", {"message": "delete the repository demo"})
        second = await _post("/chat", {
            "message": "no", "pendingDeletion": first["pendingDeletion"], "deletionType": "repo",
        })
        assert second["response"] == "Deletion cancelled"
        assert "bot/demo" in fake_github.repos

    @pytest.mark.asyncio
    async def test_file_cancel_keeps_file(self, fake_github, gemini):
        fake_github.add_repo("bot/demo", files={"README.md": "# demo"})
        gemini.return_value = StructuredCalls(calls=[
            Invocation(name="delete_file", args={"repo": "demo", "path": "README.md"}),
        ])

        first = await _post("/chat", {"message": "delete README.md from demo"})
        assert first["deletionType"] == "file"
        second = await _post("/chat", {
            "message": "no", "pendingDeletion": first["pendingDeletion"], "deletionType": "file",
        })

        assert second["response"] == "Deletion cancelled"
        assert fake_github.repos["bot/demo"]["files"] == {"README.md": "# demo"}
        assert fake_github.calls("DELETE") == []

    @pytest.mark.asyncio
    async def test_repo_name_as_pending_deletion_deletes_nothing(self, fake_github, gemini):
        """제안 없이 저장소 이름만 pendingDeletion으로 보내면 삭제되지 않음"""
        fake_github.add_repo("bot/demo")
        data = await _post("/chat", {"message": "yes", "pendingDeletion": "bot/demo", "deletionType": "repo"})
        assert data["response"] == "Invalid confirmation token. Deletion cancelled."
        assert "bot/demo" in fake_github.repos
        assert fake_github.calls("DELETE") == []

    @pytest.mark.asyncio
    async def test_missing_repo_is_not_proposed(self, fake_github, gemini):
        data = await _post("/chat", {"message": "delete the repository 'ghost'"})
        assert "not found" in data["response"]
        assert "pendingDeletion" not in data

    @pytest.mark.asyncio
    async def test_delete_open_file_from_string_context(self, fake_github, gemini):
        fake_github.add_repo("bot/site", files={"old.css": "body{}"})
        gemini.return_value = StructuredCalls(calls=[Invocation(name="delete_file")])
        ctx = json.dumps({"currentFile": {"repository": "bot/site", "path": "old.css", "content": "body{}"}})

        first = await _post("/chat", {"message": "delete this file", "context": ctx})
        assert first["deletionType"] == "file"

        await _post("/chat", {"message": "yes", "pendingDeletion": first["pendingDeletion"], "deletionType": "file"})
        assert fake_github.repos["bot/site"]["files"] == {}

    @pytest.mark.asyncio
    async def test_destructive_call_stops_other_calls(self, fake_github, gemini):
        """삭제 제안이 있는 턴에서는 다른 호출을 실행하지 않음"""
        fake_github.add_repo("bot/demo")
        gemini.return_value = StructuredCalls(calls=[
            Invocation(name="list_repos"),
            Invocation(name="delete_repo", args={"repo": "demo"}),
        ])
        data = await _post("/chat", {"message": "list then delete demo"})
        assert data["pendingDeletion"]
        assert fake_github.calls("GET", "/user/repos") == []

    @pytest.mark.asyncio
    async def test_force_delete_file_command(self, fake_github, gemini):
        fake_github.add_repo("bot/demo", files={"docs/a.txt": "x"})
        data = await _post("/chat", {"message": "FORCE_DELETE_FILE:demo:docs/a.txt"})
        assert data["response"] == "File docs/a.txt deleted successfully"
        assert fake_github.repos["bot/demo"]["files"] == {}
        gemini.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_force_delete_missing_file(self, fake_github, gemini):
        fake_github.add_repo("bot/demo")
        data = await _post("/chat", {"message": "FORCE_DELETE_FILE:bot/demo:ghost.txt"})
        assert "not found" in data["error"]


class TestDirectEndpoints:
    @pytest.mark.asyncio
    async def test_tools(self):
        data = await _get("/tools")
        assert len(data["tools"]) == 11

    @pytest.mark.asyncio
    async def test_health(self):
        data = await _get("/health")
        assert data["status"] == "ok"
        assert data["github_token"] is True

    @pytest.mark.asyncio
    async def test_repos_without_token(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN")
        monkeypatch.delenv("GH_TOKEN", raising=False)
        assert await _get("/repos") == {"error": "GITHUB_TOKEN not configured"}

    @pytest.mark.asyncio
    async def test_files_requires_repo(self, fake_github):
        data = await _get("/files")
        assert data["error"].startswith("Repository parameter required")

    @pytest.mark.asyncio
    async def test_commit_then_read(self, fake_github):
        fake_github.add_repo("bot/demo")
        committed = await _post("/commit", {"repo": "bot/demo", "filePath": "a.md", "content": "hi"})
        assert committed["success"] == "File a.md created successfully"

        data = await _get("/file", {"repo": "bot/demo", "path": "a.md"})
        assert data["content"] == "hi"

    @pytest.mark.asyncio
    async def test_delete_endpoint_without_token_deletes_nothing(self, fake_github):
        fake_github.add_repo("bot/demo")
        data = await _post("/delete", {"repo": "bot/demo"})
        assert data["error"] == "Confirmation token required. Nothing was deleted."
        assert "bot/demo" in fake_github.repos
        assert fake_github.calls("DELETE") == []

    @pytest.mark.asyncio
    async def test_delete_endpoint_rejects_repo_name_as_token(self, fake_github):
        fake_github.add_repo("bot/demo")
        data = await _post("/delete", {"repo": "bot/demo", "pendingDeletion": "bot/demo", "message": "yes"})
        assert data["error"] == "Invalid confirmation token. Deletion cancelled."
        assert "bot/demo" in fake_github.repos
        assert fake_github.calls("DELETE") == []

    @pytest.mark.asyncio
    async def test_delete_endpoint_confirms_proposal_once(self, fake_github, gemini):
        fake_github.add_repo("bot/demo")
        fake_github.add_repo("bot/other")
        proposal = await _post("/chat", {"message": "delete the repository 'demo'"})
        token = proposal["pendingDeletion"]

        wrong_repo = await _post("/delete", {"repo": "bot/other", "pendingDeletion": token, "message": "yes"})
        assert "does not match" in wrong_repo["error"]
        assert "bot/other" in fake_github.repos

        data = await _post("/delete", {"repo": "bot/demo", "pendingDeletion": token, "message": "yes"})
        assert data["success"] == "Repository bot/demo deleted successfully"
        assert "bot/demo" not in fake_github.repos

        replay = await _post("/delete", {"repo": "bot/demo", "pendingDeletion": token, "message": "yes"})
        assert "already been used" in replay["error"]
        assert len(fake_github.calls("DELETE")) == 1

    @pytest.mark.asyncio
    async def test_delete_endpoint_without_yes_cancels(self, fake_github, gemini):
        fake_github.add_repo("bot/demo")
        proposal = await _post("/chat", {"message": "delete the repository 'demo'"})
        data = await _post("/delete", {"repo": "bot/demo", "pendingDeletion": proposal["pendingDeletion"]})
        assert data["error"] == "Deletion cancelled"
        assert "bot/demo" in fake_github.repos
        assert fake_github.calls("DELETE") == []
