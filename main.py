#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# main.py
import sys
import asyncio

# (수정) 한글 깨짐 방지를 위해 표준 입출력 인코딩을 UTF-8로 강제 설정
if sys.stdout.encoding and sys.stdout.encoding.lower() != 'utf-8':
    sys.stdout.reconfigure(encoding='utf-8')
if sys.stdin.encoding and sys.stdin.encoding.lower() != 'utf-8':
    sys.stdin.reconfigure(encoding='utf-8')

import typer
import httpx
import uvicorn
import socket
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.prompt import Prompt, Confirm
from typing_extensions import Annotated
from typing import List, Dict, Any, Optional

from github_agent import config, github_client, tool_registry
from github_agent.constants import DEFAULT_HOST, DEFAULT_PORT

app = typer.Typer()
console = Console()

ORCHESTRATOR_URL = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"


# (수정) 모바일/SSH 환경 등에서 입력 오류를 줄이기 위한 입력 헬퍼 함수
def safe_input(prompt_text: str, default: str = None) -> str:
    """
    typer.prompt 대신 rich.prompt를 사용하여 안전하게 입력을 받습니다.
    이는 터미널 인코딩 문제나 모바일에서의 중복 입력 문제를 완화합니다.
    """
    return Prompt.ask(prompt_text, default=default)


def display_tools():
    table = Table(title="[bold]사용 가능한 도구[/bold]")
    table.add_column("No.", style="cyan")
    table.add_column("Tool", style="magenta")
    table.add_column("Parameters")
    table.add_column("Description")

    for i, tool in enumerate(tool_registry.get_all_tools(), 1):
        params = []
        for p in tool.parameters:
            label = f"{p.name}: {p.type}"
            params.append(f"[bold]{label}[/bold]" if p.required else label)
        name = f"[bold red]{tool.name}[/bold red]" if tool_registry.is_destructive(tool.name) else tool.name
        table.add_row(str(i), name, "\n".join(params), tool.description)

    console.print(table)


class ChatSession:
    """CLI 쪽에서 보관하는 대화 상태 (이력, UI 컨텍스트, 삭제 확인 토큰).

    서버는 세션을 저장하지 않으므로 매 요청마다 이 값들을 그대로 보냅니다.
    """

    def __init__(self, repo: Optional[str] = None):
        self.history: List[Dict[str, str]] = []
        self.current_repository: Optional[str] = repo
        self.current_file: Optional[Dict[str, str]] = None
        self.pending_deletion: Optional[str] = None
        self.deletion_type: Optional[str] = None

    def context(self) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {}
        if self.current_repository:
            ctx["currentRepository"] = self.current_repository
        if self.current_file:
            ctx["currentFile"] = self.current_file
        return ctx

    def build_request(self, message: str) -> Dict[str, Any]:
        request_data: Dict[str, Any] = {
            "message": message,
            "history": self.history,
            "context": self.context(),
        }
        if self.pending_deletion:
            # 확인 대기 중이면 이번 메시지는 확인 응답으로만 쓰이고 토큰은 버립니다.
            request_data["pendingDeletion"] = self.pending_deletion
            request_data["deletionType"] = self.deletion_type
            self.pending_deletion = None
            self.deletion_type = None
        return request_data

    def record(self, message: str, data: Dict[str, Any]):
        self.history.append({"role": "user", "text": message})
        if data.get("response"):
            self.history.append({"role": "model", "text": data["response"]})
        if data.get("pendingDeletion"):
            self.pending_deletion = data["pendingDeletion"]
            self.deletion_type = data.get("deletionType") or "repo"


def render_response(data: Dict[str, Any]):
    if data.get("error"):
        console.print(f"[bold red]❌ Error: {data['error']}[/bold red]")
        return
    if data.get("response"):
        style = "yellow" if data.get("pendingDeletion") else "green"
        console.print(Panel(data["response"], title="Assistant", border_style=style))
    for line in data.get("systemMessages") or []:
        console.print(f"[bold red]{line}[/bold red]")
    for call in data.get("toolCalls") or []:
        status = "✓" if "success" in call.get("result", {}) else "✗"
        console.print(f"[dim]  {status} {call.get('name')} {call.get('args')}[/dim]")


def _handle_slash_command(session: ChatSession, client: httpx.Client, url: str, line: str) -> bool:
    """'/repo', '/open', '/close' 명령을 처리합니다. 처리했으면 True."""
    command, _, arg = line.partition(" ")
    arg = arg.strip()

    if command == "/repo":
        session.current_repository = arg or None
        session.current_file = None
        console.print(f"[cyan]현재 저장소: {session.current_repository or '(없음)'}[/cyan]")
        return True

    if command == "/open":
        if not session.current_repository or not arg:
            console.print("[bold red]먼저 /repo <owner/name>으로 저장소를 선택하고 파일 경로를 입력하세요.[/bold red]")
            return True
        response = client.get(f"{url}/file", params={"repo": session.current_repository, "path": arg})
        data = response.json()
        if data.get("error"):
            console.print(f"[bold red]파일을 열 수 없습니다: {data['error']}[/bold red]")
            return True
        session.current_file = {
            "repository": session.current_repository,
            "path": arg,
            "content": data.get("content", ""),
        }
        console.print(Panel(data.get("content", ""), title=arg, border_style="blue"))
        return True

    if command == "/close":
        session.current_file = None
        console.print("[cyan]열린 파일을 닫았습니다.[/cyan]")
        return True

    return False


@app.command()
def chat(
    repo: Annotated[Optional[str], typer.Option("--repo", "-r", help="시작할 때 선택할 저장소 (owner/name)")] = None,
    url: Annotated[str, typer.Option("--url", help="에이전트 서버 주소")] = ORCHESTRATOR_URL,
):
    """
    GitHub 에이전트와 대화를 시작합니다. (/repo, /open, /close, /exit)
    """
    session = ChatSession(repo=repo)
    client = httpx.Client(timeout=300)
    console.print("[bold]GitHub AI Agent[/bold] ('/exit'로 종료)")

    while True:
        prompt_label = "[bold red]확인[/bold red]" if session.pending_deletion else "You"
        message = safe_input(prompt_label)
        if not message:
            continue
        if message.strip() in ("/exit", "/quit"):
            break

        try:
            if message.startswith("/") and _handle_slash_command(session, client, url, message.strip()):
                continue

            request_data = session.build_request(message)
            response = client.post(f"{url}/chat", json=request_data)
            response.raise_for_status()
            data = response.json()
            session.record(message, data)
            render_response(data)

        except httpx.RequestError:
            console.print("[bold red]오류: 서버에 연결할 수 없습니다.[/bold red]")
            break
        except httpx.HTTPStatusError as e:
            console.print(f"[bold red]오류: 서버 응답 에러 {e.response.text}[/bold red]")
            break


@app.command()
def tools():
    """등록된 도구 목록을 표시합니다."""
    display_tools()


# -------------------------------------------
# tool 커맨드: 서버/AI 없이 GitHub 게이트웨이를 직접 실행
# -------------------------------------------
@app.command()
def tool(
    name: Annotated[str, typer.Argument(help="실행할 도구의 이름 (예: list_repos)")],
    args: Annotated[List[str], typer.Argument(help="도구에 전달할 인자 (key=value 형태)")] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="삭제 도구 확인 생략")] = False,
):
    """
    로컬 환경에서 특정 GitHub 도구를 직접 실행합니다. (서버 불필요)
    """
    if not tool_registry.is_known_tool(name):
        console.print(f"[bold red]오류: '{name}' 도구를 찾을 수 없습니다.[/bold red]")
        console.print(f"사용 가능한 도구: {', '.join(tool_registry.TOOLS)}")
        raise typer.Exit(code=1)

    if not config.get_github_token():
        console.print("[bold red]오류: GITHUB_TOKEN이 설정되지 않았습니다.[/bold red]")
        raise typer.Exit(code=1)

    # 인자 파싱 (key=value 리스트 -> dict)
    kwargs = {}
    for arg in args or []:
        if "=" in arg:
            k, v = arg.split("=", 1)
            kwargs[k] = v
        else:
            console.print(f"[yellow]경고: 인자 '{arg}'는 key=value 형식이 아니어서 무시됩니다.[/yellow]")

    if tool_registry.is_destructive(name) and not yes:
        if not Confirm.ask(f"[bold red]'{name}' {kwargs} 은(는) 되돌릴 수 없습니다. 실행할까요?[/bold red]", default=False):
            console.print("[bold red]작업을 중단합니다.[/bold red]")
            raise typer.Exit()

    console.print(f"[cyan]도구 실행: {name}[/cyan]")
    result = asyncio.run(github_client.execute_tool(name, kwargs))
    if result.success:
        console.print(Panel(str(result.to_wire()), title="실행 결과", border_style="green"))
    else:
        console.print(Panel(result.message, title="실행 실패", border_style="red"))
        raise typer.Exit(code=1)


# --- Server ---
def is_port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


@app.command(name="server")
def run_server(
    host: Annotated[Optional[str], typer.Option(help="호스트 주소")] = None,
    port: Annotated[Optional[int], typer.Option(help="포트 번호")] = None,
    reload: Annotated[bool, typer.Option(help="자동 재시작 여부")] = False,
):
    """FastAPI 에이전트 서버를 실행합니다."""
    host = host or config.get_server_host()
    port = port or config.get_server_port()

    if is_port_in_use(port, host):
        typer.secho(f"{port}번 포트가 이미 사용 중입니다.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    missing = config.missing_credentials()
    if missing:
        typer.secho(f"경고: {', '.join(missing)} 미설정, /chat 요청은 오류를 반환합니다.", fg=typer.colors.YELLOW)

    typer.echo(f"FastAPI 서버 시작: http://{host}:{port}")
    uvicorn.run("github_agent.api:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
