"""agentlab CLI implementation.

Provides the command-line interface for managing agents, chatting with
them and running evaluation suites.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, TypeVar

import typer
from pydantic import SecretStr
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from agentlab.app import AgentLab, load_connection, reset_connection, update_connection
from agentlab.config import CLIOverrides, ConfigLoader, FileConfig, RemoteOverrides
from agentlab.exceptions import AgentLabError
from agentlab.models.agent import AgentConfig, DraftConfig, TestCase
from agentlab.models.chat import Attachment, Message, Role
from agentlab.models.evaluation import EvaluationCase, EvaluationRun, TestResult
from agentlab.persistence import StateStore
from agentlab.providers.factory import ProviderRegistry

T = TypeVar("T")

app = typer.Typer(
    name="agentlab",
    help="Agent administration console: drafts, chat and evaluations.",
    no_args_is_help=True,
)
agents_app = typer.Typer(help="Manage agents and their prompt versions.", no_args_is_help=True)
suites_app = typer.Typer(help="Manage and run evaluation suites.", no_args_is_help=True)
chat_app = typer.Typer(help="Chat with the active agent.", no_args_is_help=True)
playground_app = typer.Typer(help="Try agents against the remote backend.", no_args_is_help=True)
settings_app = typer.Typer(help="Remote backend connection settings.", no_args_is_help=True)
app.add_typer(agents_app, name="agents")
app.add_typer(suites_app, name="suites")
app.add_typer(chat_app, name="chat")
app.add_typer(playground_app, name="playground")
app.add_typer(settings_app, name="settings")

console = Console()


@dataclass
class CLIState:
    """Options shared by every command."""

    config_file: Path | None = None
    state_dir: Path | None = None
    language: str | None = None
    provider: str | None = None
    model: str | None = None
    base_url: str | None = None
    remote_url: str | None = None
    max_concurrency: int | None = None


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[red]Error:[/red] {error}")
    return typer.Exit(code=1)


def _state(ctx: typer.Context) -> CLIState:
    return ctx.obj if isinstance(ctx.obj, CLIState) else CLIState()


def _load_file_config(state: CLIState) -> FileConfig | None:
    try:
        return ConfigLoader.load_config(state.config_file)
    except AgentLabError as e:
        raise _fail(e) from e


def _build(ctx: typer.Context) -> AgentLab:
    state = _state(ctx)
    file_config = _load_file_config(state)
    try:
        return AgentLab.from_config(
            file_config,
            llm_overrides=CLIOverrides(
                provider=state.provider, model=state.model, base_url=state.base_url
            ),
            remote_overrides=RemoteOverrides(base_url=state.remote_url),
            state_dir=state.state_dir,
            language=state.language,
            max_concurrency=state.max_concurrency,
        )
    except AgentLabError as e:
        raise _fail(e) from e


def _run(lab: AgentLab, action: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine against the application, closing it afterwards."""

    async def runner() -> T:
        try:
            return await action()
        finally:
            await lab.aclose()

    try:
        return asyncio.run(runner())
    except AgentLabError as e:
        raise _fail(e) from e


def _require_agent(lab: AgentLab, agent_id: str) -> AgentConfig:
    agent = lab.registry.get(agent_id)
    if agent is None:
        console.print(f"[red]Error:[/red] Unknown agent: {agent_id}")
        raise typer.Exit(code=1)
    return agent


def _read_attachment(path: Path) -> Attachment:
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    try:
        data = base64.b64encode(path.read_bytes()).decode("ascii")
    except OSError as e:
        raise _fail(e) from e
    return Attachment(name=path.name, mime_type=mime_type, data=data)


@app.callback()
def main_callback(  # noqa: PLR0913 - Typer requires CLI args as function parameters
    ctx: typer.Context,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to agentlab.yaml configuration file."),
    ] = None,
    state_dir: Annotated[
        Path | None,
        typer.Option("--state-dir", help="Directory holding persisted state."),
    ] = None,
    language: Annotated[
        str | None,
        typer.Option("--language", "-l", help="Reply language: 'en' or 'zh'."),
    ] = None,
    provider: Annotated[
        str | None,
        typer.Option("--provider", "-p", help="LLM provider (e.g., 'ollama', 'openai')."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Model name for chat, judge and suggestions."),
    ] = None,
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", "-u", help="Base URL for LLM API."),
    ] = None,
    remote_url: Annotated[
        str | None,
        typer.Option("--remote-url", help="Base URL of the remote agent backend."),
    ] = None,
    max_concurrency: Annotated[
        int | None,
        typer.Option("--max-concurrency", min=1, help="Evaluation cases run in parallel."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """Agent administration console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CLIState(
        config_file=config_file,
        state_dir=state_dir,
        language=language,
        provider=provider,
        model=model,
        base_url=base_url,
        remote_url=remote_url,
        max_concurrency=max_concurrency,
    )


@app.command()
def providers() -> None:
    """List available LLM providers."""
    table = Table(title="Available Providers")
    table.add_column("Provider", style="cyan")

    for provider_name in sorted(ProviderRegistry.list_providers()):
        table.add_row(provider_name)

    console.print(table)


# Agents


@agents_app.command("list")
def list_agents(ctx: typer.Context) -> None:
    """List agents with their version and quality metrics."""
    lab = _build(ctx)
    table = Table(title="Agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version", justify="right")
    table.add_column("Draft", justify="center")
    table.add_column("Quality", justify="right")
    table.add_column("Interactions", justify="right")

    for agent in lab.registry.agents:
        table.add_row(
            agent.id,
            agent.display_name(lab.chat_settings.language),
            f"v{agent.current_version}",
            "[yellow]yes[/yellow]" if agent.has_draft else "",
            str(agent.metrics.quality_score),
            str(agent.metrics.interaction_count),
        )

    console.print(table)


@agents_app.command("show")
def show_agent(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Show an agent's live configuration and pending draft."""
    lab = _build(ctx)
    agent = _require_agent(lab, agent_id)

    console.print(
        Panel(
            f"[bold]{agent.display_name(lab.chat_settings.language)}[/bold] "
            f"(v{agent.current_version}, model: {agent.model or 'default'})\n"
            f"{agent.description}\n\n{agent.system_instruction}",
            title=agent.id,
        )
    )
    if agent.draft_config is not None:
        draft = agent.draft_config
        console.print(
            Panel(
                f"[bold]{draft.name or agent.name}[/bold]\n"
                f"{draft.description or agent.description}\n\n"
                f"{draft.system_instruction or agent.system_instruction}",
                title="Draft",
                border_style="yellow",
            )
        )
    if agent.test_cases:
        console.print(f"\n[blue]{len(agent.test_cases)} test case(s)[/blue]")


@agents_app.command("create")
def create_agent(  # noqa: PLR0913 - Typer requires CLI args as function parameters
    ctx: typer.Context,
    name: Annotated[str, typer.Option("--name", "-n", help="Display name.")],
    instruction: Annotated[
        str, typer.Option("--instruction", "-i", help="System instruction.")
    ],
    description: Annotated[str, typer.Option("--description", "-d", help="Description.")] = "",
    model: Annotated[
        str | None, typer.Option("--agent-model", help="Model the agent runs on.")
    ] = None,
    agent_id: Annotated[str | None, typer.Option("--id", help="Explicit agent ID.")] = None,
) -> None:
    """Create a new agent at version 1."""
    lab = _build(ctx)
    new_id = agent_id or uuid.uuid4().hex
    if lab.registry.get(new_id) is not None:
        console.print(f"[red]Error:[/red] Agent {new_id} already exists")
        raise typer.Exit(code=1)

    lab.registry.create_agent(
        AgentConfig(
            id=new_id,
            name=name,
            description=description,
            system_instruction=instruction,
            model=model,
        )
    )
    console.print(f"[green]Created agent {new_id}[/green]")


@agents_app.command("delete")
def delete_agent(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Delete an agent."""
    lab = _build(ctx)
    _require_agent(lab, agent_id)
    lab.registry.delete_agent(agent_id)
    console.print(f"[green]Deleted agent {agent_id}[/green]")


@agents_app.command("draft")
def save_draft(  # noqa: PLR0913 - Typer requires CLI args as function parameters
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
    name: Annotated[str | None, typer.Option("--name", "-n", help="Draft name.")] = None,
    description: Annotated[
        str | None, typer.Option("--description", "-d", help="Draft description.")
    ] = None,
    instruction: Annotated[
        str | None, typer.Option("--instruction", "-i", help="Draft system instruction.")
    ] = None,
    instruction_file: Annotated[
        Path | None,
        typer.Option("--instruction-file", exists=True, help="Read the instruction from a file."),
    ] = None,
) -> None:
    """Save changes to an agent's draft without touching the live version."""
    lab = _build(ctx)
    _require_agent(lab, agent_id)

    if instruction_file is not None:
        instruction = instruction_file.read_text(encoding="utf-8")
    patch = DraftConfig.model_validate(
        {
            key: value
            for key, value in {
                "name": name,
                "description": description,
                "system_instruction": instruction,
            }.items()
            if value is not None
        }
    )
    if not patch.set_fields():
        console.print("[yellow]Nothing to change.[/yellow]")
        return

    lab.registry.save_draft(agent_id, patch)
    console.print(f"[green]Draft saved for {agent_id}[/green]")


@agents_app.command("publish")
def publish_draft(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
    message: Annotated[str, typer.Option("--message", "-m", help="Change log entry.")] = "",
) -> None:
    """Publish the pending draft as a new version."""
    lab = _build(ctx)
    agent = _require_agent(lab, agent_id)
    if not agent.has_draft:
        console.print("[yellow]No draft to publish.[/yellow]")
        return

    lab.registry.publish_draft(agent_id, message)
    published = _require_agent(lab, agent_id)
    console.print(f"[green]Published {agent_id} as v{published.current_version}[/green]")


@agents_app.command("discard")
def discard_draft(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Throw away the pending draft."""
    lab = _build(ctx)
    _require_agent(lab, agent_id)
    lab.registry.discard_draft(agent_id)
    console.print(f"[green]Draft discarded for {agent_id}[/green]")


@agents_app.command("restore")
def restore_version(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
    version: Annotated[int, typer.Argument(help="Version to restore into the draft.")],
) -> None:
    """Load an earlier prompt version into the draft."""
    lab = _build(ctx)
    agent = _require_agent(lab, agent_id)
    if not any(v.version == version for v in agent.prompt_versions):
        console.print(f"[red]Error:[/red] No version {version} recorded for {agent_id}")
        raise typer.Exit(code=1)

    lab.registry.restore_version(agent_id, version)
    console.print(f"[green]Version {version} restored into the draft of {agent_id}[/green]")


@agents_app.command("history")
def version_history(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Show the prompt version history of an agent."""
    lab = _build(ctx)
    agent = _require_agent(lab, agent_id)

    table = Table(title=f"Prompt history: {agent.name}")
    table.add_column("Version", justify="right", style="cyan")
    table.add_column("Date")
    table.add_column("Author")
    table.add_column("Change")

    for entry in sorted(agent.prompt_versions, key=lambda v: v.version, reverse=True):
        table.add_row(
            f"v{entry.version}",
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            entry.author,
            entry.change_log,
        )

    console.print(table)


@agents_app.command("add-case")
def add_test_case(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
    input_text: Annotated[str, typer.Option("--input", "-i", help="Case input.")],
    expected: Annotated[
        str | None, typer.Option("--expected", "-e", help="Expected output.")
    ] = None,
) -> None:
    """Add a case to an agent's test lab."""
    lab = _build(ctx)
    agent = _require_agent(lab, agent_id)
    case = TestCase(id=uuid.uuid4().hex, input=input_text, expected_output=expected)
    lab.registry.update_test_cases(agent_id, [*agent.test_cases, case])
    console.print(f"[green]Added test case {case.id}[/green]")


@agents_app.command("test")
def run_test_lab(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Run an agent's test lab cases against the remote backend."""
    lab = _build(ctx)
    agent = _require_agent(lab, agent_id)
    if not agent.test_cases:
        console.print("[yellow]No test cases.[/yellow]")
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Running {len(agent.test_cases)} case(s)...", total=None)
        results = _run(lab, lambda: lab.evaluation.run_test_cases(agent))

    inputs = {case.id: case.input for case in agent.test_cases}
    _display_results([(inputs.get(r.test_case_id, ""), r) for r in results.values()])


@agents_app.command("evaluate")
def evaluate_agent(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Review an agent's replies in the current chat session."""
    lab = _build(ctx)
    _require_agent(lab, agent_id)
    if not lab.chat.messages:
        console.print("[yellow]The current chat session is empty.[/yellow]")
        return

    evaluation = _run(lab, lambda: lab.evaluate_performance(agent_id))

    table = Table(title="Performance")
    table.add_column("Metric", style="cyan")
    table.add_column("Score", justify="right")
    table.add_row("Overall", f"{evaluation.overall_score}/100")
    table.add_row("Relevance", f"{evaluation.relevance}/10")
    table.add_row("Accuracy", f"{evaluation.accuracy}/10")
    table.add_row("Clarity", f"{evaluation.clarity}/10")
    table.add_row("Safety", f"{evaluation.safety}/10")
    console.print(table)
    console.print(evaluation.summary)
    if evaluation.suggestions:
        console.print("\n[yellow]Suggestions:[/yellow]")
        for suggestion in evaluation.suggestions:
            console.print(f"  - {suggestion}")


@agents_app.command("remote")
def list_remote_agents(ctx: typer.Context) -> None:
    """List agents served by the remote backend."""
    lab = _build(ctx)
    remote = lab.remote
    if remote is None:
        console.print("[red]Error:[/red] Remote service URL not configured.")
        raise typer.Exit(code=1)

    remote_agents = _run(lab, remote.list_agents)
    table = Table(title="Remote Agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    for agent in remote_agents:
        table.add_row(agent.agent_id, agent.name or "")
    console.print(table)


def _display_results(rows: list[tuple[str, TestResult]]) -> None:
    table = Table(title="Results")
    table.add_column("Input", style="cyan", max_width=40)
    table.add_column("Status", justify="center")
    table.add_column("Score", justify="right")
    table.add_column("Reasoning", max_width=60)

    for input_text, result in rows:
        status = "[green]PASS[/green]" if result.passed else "[red]FAIL[/red]"
        table.add_row(input_text, status, str(result.score), result.reasoning)

    console.print(table)


# Suites


@suites_app.command("create")
def create_suite(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Suite name.")],
    description: Annotated[str, typer.Option("--description", "-d", help="Description.")] = "",
) -> None:
    """Create an empty evaluation suite."""
    lab = _build(ctx)
    suite_id = lab.evaluation.create_suite(name, description)
    console.print(f"[green]Created suite {suite_id}[/green]")


@suites_app.command("add-case")
def add_suite_case(
    ctx: typer.Context,
    suite_id: Annotated[str, typer.Argument(help="Suite ID.")],
    input_text: Annotated[str, typer.Option("--input", "-i", help="Case input.")],
    expected: Annotated[
        str | None, typer.Option("--expected", "-e", help="Expected output.")
    ] = None,
) -> None:
    """Append a case to a suite."""
    lab = _build(ctx)
    suite = lab.evaluation.get_suite(suite_id)
    if suite is None:
        console.print(f"[red]Error:[/red] Unknown suite: {suite_id}")
        raise typer.Exit(code=1)

    case = EvaluationCase(id=uuid.uuid4().hex, input=input_text, expected_output=expected)
    lab.evaluation.update_suite_cases(suite_id, [*suite.cases, case])
    console.print(f"[green]Added case {case.id}[/green]")


@suites_app.command("list")
def list_suites(ctx: typer.Context) -> None:
    """List evaluation suites."""
    lab = _build(ctx)
    table = Table(title="Evaluation Suites")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Cases", justify="right")
    table.add_column("Runs", justify="right")
    table.add_column("Updated")

    for suite in lab.evaluation.suites:
        table.add_row(
            suite.id,
            suite.name,
            str(len(suite.cases)),
            str(len(lab.evaluation.get_runs_by_suite(suite.id))),
            suite.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@suites_app.command("delete")
def delete_suite(
    ctx: typer.Context,
    suite_id: Annotated[str, typer.Argument(help="Suite ID.")],
) -> None:
    """Delete a suite and all of its runs."""
    lab = _build(ctx)
    lab.evaluation.delete_suite(suite_id)
    console.print(f"[green]Deleted suite {suite_id}[/green]")


@suites_app.command("run")
def run_suite(
    ctx: typer.Context,
    suite_id: Annotated[str, typer.Argument(help="Suite ID.")],
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Run a suite against an agent and record the run."""
    lab = _build(ctx)
    agent = _require_agent(lab, agent_id)
    suite = lab.evaluation.get_suite(suite_id)
    if suite is None or not suite.cases:
        console.print("[yellow]Suite not found or has no cases.[/yellow]")
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Running {suite.name}...", total=None)
        evaluation_run = _run(lab, lambda: lab.evaluation.run_suite(suite_id, agent))

    if evaluation_run is None:
        return
    inputs = {case.id: case.input for case in suite.cases}
    _display_results([(inputs.get(r.test_case_id, ""), r) for r in evaluation_run.results])
    _display_run_summary(evaluation_run)


def _display_run_summary(evaluation_run: EvaluationRun) -> None:
    passed = sum(1 for r in evaluation_run.results if r.passed)
    total = len(evaluation_run.results)
    console.print(
        f"\n[bold]{evaluation_run.suite_name_snapshot} on {evaluation_run.agent_name_snapshot} "
        f"v{evaluation_run.agent_version_snapshot}: "
        f"score {evaluation_run.overall_score}, {passed}/{total} passed[/bold]"
    )


@suites_app.command("runs")
def list_runs(
    ctx: typer.Context,
    suite_id: Annotated[str, typer.Argument(help="Suite ID.")],
) -> None:
    """Show the run history of a suite, newest first."""
    lab = _build(ctx)
    table = Table(title="Runs")
    table.add_column("Date")
    table.add_column("Agent", style="cyan")
    table.add_column("Version", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Passed", justify="right")

    for evaluation_run in lab.evaluation.get_runs_by_suite(suite_id):
        passed = sum(1 for r in evaluation_run.results if r.passed)
        table.add_row(
            evaluation_run.timestamp.strftime("%Y-%m-%d %H:%M"),
            evaluation_run.agent_name_snapshot,
            f"v{evaluation_run.agent_version_snapshot}",
            str(evaluation_run.overall_score),
            f"{passed}/{len(evaluation_run.results)}",
        )

    console.print(table)


# Chat


def _print_reply(reply: Message | None) -> None:
    if reply is None:
        return
    label = reply.agent_name or "Agent"
    console.print(Panel(reply.text, title=label))


@chat_app.command("send")
def send_message(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="Message to send.")],
    agent_id: Annotated[
        str | None, typer.Option("--agent", "-a", help="Agent to talk to.")
    ] = None,
    new: Annotated[bool, typer.Option("--new", help="Start a new session.")] = False,
    attach: Annotated[
        list[Path] | None,
        typer.Option("--attach", exists=True, dir_okay=False, help="Files to attach."),
    ] = None,
) -> None:
    """Send a message in the current session and print the finished reply."""
    lab = _build(ctx)
    if agent_id is not None:
        _require_agent(lab, agent_id)
        if lab.chat.current_session and lab.chat.current_session.agent_id != agent_id:
            lab.chat.new_chat()
        lab.chat.change_agent(agent_id)
    if new:
        lab.chat.new_chat()

    attachments = [_read_attachment(path) for path in attach or []]

    async def converse() -> tuple[Message | None, list[str]]:
        reply = await lab.chat.send_message(text, attachments)
        return reply, await lab.chat.wait_for_suggestions()

    reply, suggestions = _run(lab, converse)
    _print_reply(reply)

    if suggestions:
        console.print("\n[yellow]Suggestions:[/yellow]")
        for suggestion in suggestions:
            console.print(f"  - {suggestion}")


@chat_app.command("sessions")
def list_sessions(ctx: typer.Context) -> None:
    """List chat sessions, most recent first."""
    lab = _build(ctx)
    table = Table(title="Chat Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Agent")
    table.add_column("Messages", justify="right")
    table.add_column("Modified")

    for session in lab.chat.sessions:
        agent = lab.registry.get(session.agent_id)
        current = " *" if session.id == lab.chat.current_session_id else ""
        table.add_row(
            session.id + current,
            session.title,
            agent.display_name(lab.chat_settings.language) if agent else session.agent_id,
            str(len(session.messages)),
            session.last_modified.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@chat_app.command("show")
def show_session(
    ctx: typer.Context,
    session_id: Annotated[
        str | None, typer.Argument(help="Session ID (defaults to the current one).")
    ] = None,
) -> None:
    """Print the messages of a session."""
    lab = _build(ctx)
    if session_id is not None:
        lab.chat.select_session(session_id)
    for message in lab.chat.messages:
        if message.role == Role.USER:
            console.print(f"[bold cyan]You:[/bold cyan] {message.text}")
        else:
            label = message.agent_name or "Agent"
            console.print(f"[bold green]{label}:[/bold green] {message.text}")


@chat_app.command("delete")
def delete_session(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session ID.")],
) -> None:
    """Delete a chat session."""
    lab = _build(ctx)
    lab.chat.delete_session(session_id)
    console.print(f"[green]Deleted session {session_id}[/green]")


@chat_app.command("export")
def export_chat(
    ctx: typer.Context,
    directory: Annotated[
        Path, typer.Option("--output", "-o", help="Directory for the exported file.")
    ] = Path(),
    session_id: Annotated[
        str | None, typer.Option("--session", "-s", help="Session to export.")
    ] = None,
) -> None:
    """Export a chat session as markdown."""
    lab = _build(ctx)
    if session_id is not None:
        lab.chat.select_session(session_id)
    try:
        path = lab.chat.export_chat(directory)
    except OSError as e:
        raise _fail(e) from e
    if path is None:
        console.print("[yellow]Nothing to export.[/yellow]")
        return
    console.print(f"[green]Exported to {path}[/green]")


# Playground


@playground_app.command("send")
def playground_send(
    ctx: typer.Context,
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
    text: Annotated[str, typer.Argument(help="Message to send.")],
) -> None:
    """Run one message through an agent on the remote backend."""
    lab = _build(ctx)
    _require_agent(lab, agent_id)
    reply = _run(lab, lambda: lab.playground.send(agent_id, text))
    _print_reply(reply)
    if reply is not None and reply.metrics:
        console.print(f"[dim]{reply.metrics}[/dim]")


# Settings


def _settings_store(ctx: typer.Context) -> StateStore:
    state = _state(ctx)
    file_config = _load_file_config(state)
    return StateStore(ConfigLoader.resolve_state_dir(file_config, cli_state_dir=state.state_dir))


@settings_app.command("set")
def set_connection(
    ctx: typer.Context,
    url: Annotated[str | None, typer.Option("--url", help="Remote backend base URL.")] = None,
    api_key: Annotated[
        str | None, typer.Option("--api-key", help="Bearer token for the backend.")
    ] = None,
    timeout: Annotated[
        float | None, typer.Option("--timeout", min=0.1, help="Request timeout in seconds.")
    ] = None,
) -> None:
    """Save the remote backend connection."""
    store = _settings_store(ctx)
    updates: dict[str, object] = {}
    if url is not None:
        updates["base_url"] = url
    if api_key is not None:
        updates["api_key"] = SecretStr(api_key)
    if timeout is not None:
        updates["timeout_seconds"] = timeout

    if not updates:
        console.print("[yellow]Nothing to change.[/yellow]")
        return

    try:
        update_connection(store, updates)
    except AgentLabError as e:
        raise _fail(e) from e
    console.print(f"[green]Saved connection settings in {store.state_dir}[/green]")


@settings_app.command("reset")
def reset_saved_connection(ctx: typer.Context) -> None:
    """Forget the saved remote backend connection."""
    store = _settings_store(ctx)
    try:
        reset_connection(store)
    except OSError as e:
        raise _fail(e) from e
    console.print("[green]Saved connection settings removed[/green]")


@settings_app.command("show")
def show_connection(ctx: typer.Context) -> None:
    """Show the effective remote backend connection."""
    state = _state(ctx)
    file_config = _load_file_config(state)
    store = _settings_store(ctx)
    connection = ConfigLoader.resolve_connection(
        file_config, load_connection(store), RemoteOverrides(base_url=state.remote_url)
    )

    table = Table(title="Connection")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Base URL", connection.base_url or "[dim]not configured[/dim]")
    table.add_row("API key", "set" if connection.api_key else "[dim]none[/dim]")
    table.add_row(
        "Timeout",
        f"{connection.timeout_seconds}s" if connection.timeout_seconds else "[dim]none[/dim]",
    )
    table.add_row("State directory", str(store.state_dir))
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
