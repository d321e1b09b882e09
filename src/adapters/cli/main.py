"""
adapters.cli.main - CLI adapter for the agent orchestration core.

Uses the same ServiceFactory and AgentOrchestrator an HTTP layer would, so
behaviour (transcripts, tools, audit log) is identical. The caller's user id
is taken from --user-id; authentication belongs to the outer layer.

Commands
--------
  chat            Interactive chat session
  ask             One-shot question
  conversations   List your conversations
  history         Show the stored transcript of a conversation
  stats           Message/token/latency statistics for a conversation
  archive         Mark a conversation archived
  delete          Delete a conversation and its messages
  tools           List the registered tools

Usage
-----
  agent-core --user-id 1 --project-id 7 ask "What is the DC capacity?"
  agent-core --user-id 1 chat
  agent-core --user-id 1 history <conversation-id>
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from application.dto import AgentRequest, AgentResponse
from domain.entities import ROLE_ASSISTANT, ROLE_TOOL, ROLE_USER
from domain.exceptions import DomainError
from factory import ServiceFactory
from infrastructure.config import Settings

__version__ = "0.1.0"

console = Console()
app = typer.Typer(
    help="Agent orchestration core CLI",
    add_completion=False,
    no_args_is_help=True,
)

_ROLE_STYLES = {
    ROLE_USER: "bold cyan",
    ROLE_ASSISTANT: "bold green",
    ROLE_TOOL: "bold magenta",
}


@dataclass
class CliState:
    user_id: int = 1
    project_id: Optional[int] = None


_state = CliState()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

async def _make_factory() -> ServiceFactory:
    factory = ServiceFactory(Settings.from_env())
    await factory.initialize()
    return factory


def _run(coro) -> None:
    """Run a command coroutine, turning domain errors into a clean exit."""
    try:
        asyncio.run(coro)
    except DomainError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)


def _print_response(response: AgentResponse) -> None:
    meta = response.metadata
    footer = f"{meta.latency_ms} ms"
    if meta.tokens is not None:
        footer += f" · {meta.tokens} tokens"
    if meta.tools_used:
        footer += f" · tools: {', '.join(meta.tools_used)}"
    console.print(Panel(
        Markdown(response.message),
        title="Assistant",
        subtitle=f"[dim]{footer}[/dim]",
        border_style="green",
    ))


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"agent-core v{__version__}")
        raise typer.Exit()


# ---------------------------------------------------------------------------
# Commands: Agent
# ---------------------------------------------------------------------------

@app.command()
def ask(
    message: str = typer.Argument(..., help="Your question."),
    conversation_id: Optional[str] = typer.Option(
        None, "--conversation", "-c", help="Continue an existing conversation.",
    ),
) -> None:
    """Ask a one-shot question."""
    async def _ask() -> None:
        factory = await _make_factory()
        orchestrator = factory.create_orchestrator()
        with console.status("[bold cyan]Thinking…", spinner="dots"):
            response = await orchestrator.process_message(AgentRequest(
                user_id=_state.user_id,
                message=message,
                project_id=_state.project_id,
                conversation_id=conversation_id,
            ))
        _print_response(response)
        console.print(f"[dim]conversation: {response.conversation_id}[/dim]")

    _run(_ask())


@app.command()
def chat(
    conversation_id: Optional[str] = typer.Option(
        None, "--conversation", "-c", help="Resume an existing conversation.",
    ),
) -> None:
    """Start an interactive chat session."""
    async def _chat() -> None:
        factory = await _make_factory()
        orchestrator = factory.create_orchestrator()
        current = conversation_id

        scope = f"project {_state.project_id}" if _state.project_id is not None else "no project"
        console.print(Panel(
            f"[bold]Agent Chat[/bold]\n"
            f"User [bold]{_state.user_id}[/bold], {scope}\n"
            "Type your question, or [bold]exit[/bold] / [bold]quit[/bold] to stop.",
            border_style="cyan",
        ))

        while True:
            try:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")
            except (KeyboardInterrupt, EOFError):
                console.print("\n[dim]Goodbye![/dim]")
                break

            if user_input.strip().lower() in ("exit", "quit", "q", "bye"):
                console.print("[dim]Goodbye![/dim]")
                break
            if not user_input.strip():
                continue

            with console.status("[bold cyan]Thinking…", spinner="dots"):
                response = await orchestrator.process_message(AgentRequest(
                    user_id=_state.user_id,
                    message=user_input,
                    project_id=_state.project_id,
                    conversation_id=current,
                ))
            current = response.conversation_id
            console.print()
            _print_response(response)

    _run(_chat())


@app.command()
def tools() -> None:
    """List the registered tools and their parameters."""
    async def _tools() -> None:
        factory = await _make_factory()
        registry = factory.create_tool_registry()

        t = Table(box=box.SIMPLE, padding=(0, 2))
        t.add_column("Tool", style="bold", no_wrap=True)
        t.add_column("Type")
        t.add_column("Parameters")
        t.add_column("Description", overflow="fold")
        for tool in registry.all():
            params = ", ".join(
                f"{name}*" if name in tool.parameters.required else name
                for name in tool.parameters.properties
            )
            t.add_row(tool.name, registry.action_type(tool.name), params or "[dim]none[/dim]", tool.description)
        console.print(Panel(t, title=f"Tools ({len(registry.names())})", border_style="blue"))

    _run(_tools())


# ---------------------------------------------------------------------------
# Commands: Conversations
# ---------------------------------------------------------------------------

@app.command()
def conversations(
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum conversations to list."),
) -> None:
    """List your conversations, most recently updated first."""
    async def _list() -> None:
        factory = await _make_factory()
        transcript = factory.create_transcript_service()
        items = await transcript.list_conversations(_state.user_id, _state.project_id, limit)
        if not items:
            console.print("[dim]No conversations yet.[/dim]")
            return

        t = Table(box=box.SIMPLE, padding=(0, 2))
        t.add_column("ID", style="bold", no_wrap=True)
        t.add_column("Title")
        t.add_column("Project")
        t.add_column("Status")
        t.add_column("Updated")
        for c in items:
            t.add_row(
                c.id, c.title,
                str(c.project_id) if c.project_id is not None else "[dim]-[/dim]",
                c.status, c.updated_at,
            )
        console.print(t)

    _run(_list())


@app.command()
def history(
    conversation_id: str = typer.Argument(..., help="Conversation id."),
    limit: int = typer.Option(100, "--limit", "-n", help="Maximum messages to show."),
) -> None:
    """Show the stored transcript of a conversation."""
    async def _history() -> None:
        factory = await _make_factory()
        transcript = factory.create_transcript_service()
        conversation = await transcript.require_conversation(conversation_id)
        messages = await transcript.get_messages(conversation_id, limit)

        console.print(Panel(f"[bold]{conversation.title}[/bold]", border_style="blue"))
        for m in messages:
            style = _ROLE_STYLES.get(m.role, "bold")
            label = m.role if m.role != ROLE_TOOL else f"tool ({m.tool_call_id})"
            console.print(f"[{style}]{label}[/{style}] [dim]{m.created_at}[/dim]")
            if m.content:
                console.print(m.content)
            for call in m.tool_calls or []:
                console.print(
                    f"  [magenta]→ {call.name}[/magenta] "
                    f"{json.dumps(call.arguments, default=str)} [dim]({call.id})[/dim]"
                )

    _run(_history())


@app.command()
def stats(conversation_id: str = typer.Argument(..., help="Conversation id.")) -> None:
    """Show message, token and latency statistics for a conversation."""
    async def _stats() -> None:
        factory = await _make_factory()
        transcript = factory.create_transcript_service()
        await transcript.require_conversation(conversation_id)
        s = await transcript.compute_stats(conversation_id)

        t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
        t.add_column("Field", style="bold")
        t.add_column("Value")
        t.add_row("Messages", str(s.message_count))
        t.add_row("User / assistant / tool", f"{s.user_messages} / {s.assistant_messages} / {s.tool_messages}")
        t.add_row("Tool calls", str(s.tool_calls))
        t.add_row("Total tokens", str(s.total_tokens))
        t.add_row("Average latency", f"{s.average_latency_ms:.0f} ms")
        console.print(Panel(t, title="Conversation Stats", border_style="yellow"))

    _run(_stats())


@app.command()
def archive(conversation_id: str = typer.Argument(..., help="Conversation id.")) -> None:
    """Mark a conversation archived."""
    async def _archive() -> None:
        factory = await _make_factory()
        transcript = factory.create_transcript_service()
        await transcript.require_conversation(conversation_id)
        await transcript.archive_conversation(conversation_id)
        console.print(f"[green]Archived[/green] {conversation_id}")

    _run(_archive())


@app.command()
def delete(
    conversation_id: str = typer.Argument(..., help="Conversation id."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Delete a conversation and all of its messages."""
    if not yes and not Confirm.ask(f"Delete conversation [bold]{conversation_id}[/bold]?"):
        return

    async def _delete() -> None:
        factory = await _make_factory()
        transcript = factory.create_transcript_service()
        await transcript.require_conversation(conversation_id)
        await transcript.delete_conversation(conversation_id)
        console.print(f"[green]Deleted[/green] {conversation_id}")

    _run(_delete())


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------

@app.callback()
def _callback(
    user_id: int = typer.Option(1, "--user-id", "-u", envvar="AGENT_USER_ID", help="Caller's user id."),
    project_id: Optional[int] = typer.Option(
        None, "--project-id", "-p", envvar="AGENT_PROJECT_ID", help="Project to scope the request to.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    version: bool = typer.Option(
        False, "--version", "-v",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Agent orchestration core CLI"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state.user_id = user_id
    _state.project_id = project_id


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
