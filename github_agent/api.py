#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/api.py

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from . import engine
from . import github_client
from . import tool_registry
from .exceptions import AgentError
from .models import ChatRequest, ChatResponse, CommitRequest, DeleteRequest

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"GitHub Token: {'✓ Configured' if config.get_github_token() else '✗ Missing'}")
    logger.info(f"Gemini API Key: {'✓ Configured' if config.get_gemini_api_key() else '✗ Missing'}")
    logger.info(f"GitHub Username: {config.get_github_username()}")
    yield


app = FastAPI(title="GitHub Chat Agent", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


# 어떤 실패든 HTTP 200 + {error} 형태로 돌려줍니다.
@app.exception_handler(AgentError)
async def agent_error_handler(request: Request, exc: AgentError):
    logger.warning(f"{request.url.path}: {exc}")
    return JSONResponse(status_code=200, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.url.path} 처리 중 예기치 않은 오류: {exc}", exc_info=True)
    return JSONResponse(status_code=200, content={"error": str(exc) or exc.__class__.__name__})


def _github_ready() -> Optional[Dict[str, Any]]:
    if not config.get_github_token():
        return {"error": "GITHUB_TOKEN not configured"}
    return None


@app.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(request: ChatRequest):
    """자연어 메시지를 해석해 GitHub 작업을 수행하거나 대화로 답합니다."""
    return await engine.submit_turn(request)


@app.post("/delete")
async def delete_repository(request: DeleteRequest):
    """원래 UI의 저장소 삭제 단계. /chat과 같은 확인 절차를 거치며 토큰 없이는 삭제하지 않습니다."""
    not_ready = _github_ready()
    if not_ready:
        return not_ready
    return await engine.delete_repository(request.repo, request.pending_deletion, request.message)


@app.get("/repos")
async def repos():
    not_ready = _github_ready()
    if not_ready:
        return not_ready
    return (await github_client.execute_tool("list_repos", {})).to_wire()


@app.get("/files")
async def files(repo: Optional[str] = None, path: str = ""):
    if not repo:
        return {"error": "Repository parameter required (format: username/repo-name)"}
    not_ready = _github_ready()
    if not_ready:
        return not_ready
    return (await github_client.execute_tool("list_files", {"repo": repo, "path": path})).to_wire()


@app.get("/file")
async def file(repo: Optional[str] = None, path: Optional[str] = None):
    if not repo or not path:
        return {"error": "Repository and path parameters required"}
    not_ready = _github_ready()
    if not_ready:
        return not_ready
    return (await github_client.execute_tool("read_file", {"repo": repo, "path": path})).to_wire()


@app.post("/commit")
async def commit(request: CommitRequest):
    not_ready = _github_ready()
    if not_ready:
        return not_ready
    result = await github_client.execute_tool("update_file", {
        "repo": request.repo,
        "path": request.file_path,
        "content": request.content,
        "message": request.message or f"Update {request.file_path}",
    })
    return result.to_wire()


@app.get("/tools")
async def tools():
    return tool_registry.list_tools_payload()


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "github_token": bool(config.get_github_token()),
        "gemini_api_key": bool(config.get_gemini_api_key()),
        "github_username": config.get_github_username(),
    }
