#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""github_agent/models.py에 대한 단위 테스트"""

import json

from .models import ChatRequest, ChatResponse, ExecutionRecord, OperationResult, Turn


class TestChatRequest:
    def test_camel_case_fields(self):
        req = ChatRequest.model_validate({
            "message": "yes",
            "pendingDeletion": "repo:n:bot/a",
            "deletionType": "repo",
            "context": {"currentRepository": "bot/a"},
        })
        assert req.pending_deletion == "repo:n:bot/a"
        assert req.deletion_type == "repo"
        assert req.context.current_repository == "bot/a"

    def test_context_as_json_string(self):
        """원래 UI는 context를 JSON 문자열로 보냄"""
        ctx = json.dumps({"currentFile": {"repo": "bot/a", "path": "x.md", "content": "hi"}})
        req = ChatRequest.model_validate({"message": "m", "context": ctx})
        assert req.context.current_file.repository == "bot/a"
        assert req.context.current_file.path == "x.md"

    def test_broken_context_string_ignored(self):
        req = ChatRequest.model_validate({"message": "m", "context": "{not json"})
        assert req.context is None

    def test_null_history(self):
        req = ChatRequest.model_validate({"message": "m", "history": None})
        assert req.history == []

    def test_gemini_shaped_history(self):
        turn = Turn.model_validate({"role": "model", "parts": [{"text": "Hello "}, {"text": "there"}]})
        assert turn.text == "Hello there"


class TestWireShapes:
    def test_chat_response_aliases(self):
        resp = ChatResponse(response="r", pending_deletion="t", deletion_type="file")
        data = resp.model_dump(by_alias=True, exclude_none=True)
        assert data == {"response": "r", "pendingDeletion": "t", "deletionType": "file", "systemMessages": []}

    def test_operation_result_wire(self):
        assert OperationResult.ok("done", url="u").to_wire() == {"success": "done", "url": "u"}
        assert OperationResult.fail("bad").to_wire() == {"error": "bad"}

    def test_execution_record_wire(self):
        record = ExecutionRecord(name="list_repos", args={}, result=OperationResult.fail("x"))
        assert record.to_wire() == {"name": "list_repos", "args": {}, "result": {"error": "x"}}
