#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# github_agent/tool_registry.py

import logging
from typing import Dict, Any, List, Optional

from .constants import DESTRUCTIVE_TOOLS
from .models import ToolDescriptor, ToolParameter

logger = logging.getLogger(__name__)

_REPO_PARAM = ToolParameter(
    name="repo", type="string", required=True,
    description="Repository name (format: username/repo-name)",
)

_DESCRIPTORS: List[ToolDescriptor] = [
    ToolDescriptor(
        name="list_tools",
        description='Lists all available tools and their capabilities. Use this when users ask "what can you do", "what are your capabilities", "help", etc.',
        example="What can you do?",
    ),
    ToolDescriptor(
        name="list_repos",
        description="Lists all GitHub repositories. Use this when users specifically ask to see or list repositories.",
        parameters=(
            ToolParameter(name="type", description="Filter by repo type: all, owner, public, private, member (default: owner)"),
        ),
        example="List my repositories",
    ),
    ToolDescriptor(
        name="create_repo",
        description="CALL THIS to create a new GitHub repository. Required when user wants to create/make a new repo.",
        parameters=(
            ToolParameter(name="name", required=True, description="Repository name (REQUIRED)"),
            ToolParameter(name="description", description="Repository description (optional)"),
            ToolParameter(name="private", type="boolean", description="Whether the repo should be private, default false"),
            ToolParameter(name="autoInit", type="boolean", description="Initialize with README, default true"),
        ),
        example="Create a new repository called 'my-repo'",
    ),
    ToolDescriptor(
        name="delete_repo",
        description="CALL THIS to delete a GitHub repository. CAUTION: Permanent deletion! Required when user wants to delete/remove a repo.",
        parameters=(
            ToolParameter(name="repo", required=True, description="Repository name in format username/repo-name (REQUIRED)"),
        ),
        example="Delete the repository 'repository-name'",
    ),
    ToolDescriptor(
        name="list_files",
        description="Lists files and directories in a GitHub repository at a given path",
        parameters=(
            _REPO_PARAM,
            ToolParameter(name="path", description="The directory path to list files from (empty string for root)"),
        ),
        example="List the files in 'my-repo'",
    ),
    ToolDescriptor(
        name="read_file",
        description="Reads the content of a file from a GitHub repository",
        parameters=(
            _REPO_PARAM,
            ToolParameter(name="path", required=True, description="The file path to read"),
        ),
        example="Show me the file 'README.md'",
    ),
    ToolDescriptor(
        name="update_file",
        description="Updates or creates a file in a GitHub repository",
        parameters=(
            _REPO_PARAM,
            ToolParameter(name="path", required=True, description="The file path to update or create"),
            ToolParameter(name="content", required=True, description="The new content for the file"),
            ToolParameter(name="message", required=True, description="Commit message"),
        ),
        example="Create a new file called 'myfile.txt'",
    ),
    ToolDescriptor(
        name="create_pr",
        description="Creates a pull request with changes to a file",
        parameters=(
            _REPO_PARAM,
            ToolParameter(name="title", required=True, description="PR title"),
            ToolParameter(name="body", description="PR description"),
            ToolParameter(name="filePath", required=True, description="Path to the file to modify"),
            ToolParameter(name="content", required=True, description="New content for the file"),
        ),
        example="Open a pull request titled 'Fix typo' that changes 'README.md'",
    ),
    ToolDescriptor(
        name="list_prs",
        description="Lists open pull requests in a repository",
        parameters=(_REPO_PARAM,),
        example="List the open pull requests in 'my-repo'",
    ),
    ToolDescriptor(
        name="merge_pr",
        description="Merges a pull request",
        parameters=(
            _REPO_PARAM,
            ToolParameter(name="prNumber", type="number", required=True, description="The PR number to merge"),
        ),
        example="Merge pull request #3 in 'my-repo'",
    ),
    ToolDescriptor(
        name="delete_file",
        description="Deletes a file from a GitHub repository",
        parameters=(
            _REPO_PARAM,
            ToolParameter(name="path", required=True, description="The file path to delete"),
            ToolParameter(name="message", description="Commit message for the deletion"),
        ),
        example="Delete the file 'filename.txt'",
    ),
]


def _build_registry(descriptors: List[ToolDescriptor]) -> Dict[str, ToolDescriptor]:
    registry: Dict[str, ToolDescriptor] = {}
    for descriptor in descriptors:
        if descriptor.name in registry:
            raise ValueError(f"도구 이름이 중복되었습니다: {descriptor.name}")
        registry[descriptor.name] = descriptor
    return registry


TOOLS: Dict[str, ToolDescriptor] = _build_registry(_DESCRIPTORS)
logger.debug(f"Tool registry loaded: {len(TOOLS)} tools")


def get_tool(name: str) -> Optional[ToolDescriptor]:
    """이름으로 도구 정의를 가져옵니다."""
    return TOOLS.get(name)


def is_known_tool(name: Optional[str]) -> bool:
    return bool(name) and name in TOOLS


def is_destructive(name: str) -> bool:
    """확인 절차가 필요한 삭제 도구인지 여부."""
    return name in DESTRUCTIVE_TOOLS


def get_all_tools() -> List[ToolDescriptor]:
    """등록 순서대로 모든 도구 정의를 반환합니다."""
    return list(TOOLS.values())


def get_all_tool_descriptions() -> Dict[str, str]:
    """모든 도구의 이름과 설명을 반환합니다."""
    return {name: tool.description for name, tool in TOOLS.items()}


def list_tools_payload() -> Dict[str, Any]:
    """list_tools 도구의 결과 데이터. UI 사이드바에서도 그대로 사용합니다."""
    return {
        "tools": [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": {
                    p.name: {"type": p.type, "description": p.description, "required": p.required}
                    for p in tool.parameters
                },
            }
            for tool in TOOLS.values()
        ]
    }
