"""Main CLI application using Typer."""
import asyncio
import contextlib
from collections.abc import AsyncIterator, Coroutine
from typing import Any

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ..chat import ChatEvent, ChatEventKind, ChatSession, SessionManager
from ..errors import PersistenceError
from ..llm import PROVIDER_CATALOG, ProviderKind
from ..settings import SettingsManager
from ..storage import KeyValueStore
from .providers import configure_logging, get_store, resolve_settings

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="chatbox",
    help="Streaming multi-session chat with pluggable LLM providers",
    no_args_is_help=True,
    add_completion=True,
)
config_app = typer.Typer(help="Show or change chat settings", no_args_is_help=True)
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()

CHAT_HELP = """[bold]Commands[/bold]
  /new            start a new session
  /sessions       list sessions
  /select N       switch to session N (number or id prefix)
  /rename TITLE   rename the current session
  /delete         delete the current session
  /history        show the current session
  /help           show this help
  /quit           leave (Ctrl+C while a reply streams stops it)"""


class StreamPrinter:
    """Prints assistant messages as they stream into the chat state.

    Observes the state and writes only the part of each assistant message
    that has not been printed yet.
    """

    def __init__(self, manager: SessionManager, console: Console) -> None:
        self._manager = manager
        self._console = console
        self._printed: dict[str, int] = {}

    def __call__(self, event: ChatEvent) -> None:
        if event.kind is ChatEventKind.MESSAGE_REMOVED:
            if self._printed.pop(event.message_id, None) is not None:
                self._console.print()
            return
        if event.kind not in (ChatEventKind.MESSAGE_ADDED, ChatEventKind.MESSAGE_UPDATED):
            return

        session = self._manager.state.get_session(event.session_id) if event.session_id else None
        message = session.find_message(event.message_id) if session and event.message_id else None
        if message is None or message.is_user:
            return

        if message.is_error:
            self._console.print(Text(message.content, style="bold red"))
            return

        if message.id not in self._printed:
            self._console.print("[bold green]Assistant:[/bold green] ", end="")
            self._printed[message.id] = 0

        printed = self._printed[message.id]
        if len(message.content) > printed:
            self._console.print(
                message.content[printed:], end="", markup=False, highlight=False, soft_wrap=True
            )
            self._printed[message.id] = len(message.content)

        if not message.streaming:
            self._console.print()
            del self._printed[message.id]


async def _open_chat(create_if_empty: bool = True) -> tuple[KeyValueStore, SessionManager, SettingsManager]:
    store = get_store()
    await store.connect()
    settings_manager = SettingsManager(store)
    await settings_manager.load()
    manager = SessionManager(store)
    await manager.load(create_if_empty=create_if_empty)
    return store, manager, settings_manager


async def _close_chat(store: KeyValueStore, manager: SessionManager) -> None:
    try:
        await manager.close()
    finally:
        await store.disconnect()


@contextlib.asynccontextmanager
async def open_chat(create_if_empty: bool = True) -> AsyncIterator[tuple[SessionManager, SettingsManager]]:
    """Connect the store and load settings and sessions for one command.

    Read-only commands pass create_if_empty=False so an empty store stays empty.
    """
    store, manager, settings_manager = await _open_chat(create_if_empty)
    try:
        yield manager, settings_manager
    finally:
        await _close_chat(store, manager)


def _run(coro: Coroutine[Any, Any, None]) -> None:
    """Run one command body, reporting storage failures without a traceback."""
    try:
        asyncio.run(coro)
    except PersistenceError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


def _find_session(manager: SessionManager, ref: str) -> ChatSession | None:
    """Resolve a 1-based list position or a unique id prefix."""
    sessions = manager.sessions
    if ref.isdigit() and 1 <= int(ref) <= len(sessions):
        return sessions[int(ref) - 1]
    matches = [s for s in sessions if s.id.startswith(ref)]
    return matches[0] if len(matches) == 1 else None


def _sessions_table(manager: SessionManager) -> Table:
    current = manager.current_session
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("ID", style="dim", width=10)
    table.add_column("Title", style="cyan")
    table.add_column("Messages", style="yellow", width=8)
    table.add_column("Updated", style="green")

    for i, session in enumerate(manager.sessions, 1):
        marker = "*" if current is not None and session.id == current.id else ""
        table.add_row(
            f"{i}{marker}",
            session.id[:8],
            session.title,
            str(len(session.messages)),
            session.last_updated.astimezone().strftime("%Y-%m-%d %H:%M"),
        )
    return table


def _print_session(session: ChatSession) -> None:
    console.print(f"[bold cyan]{session.title}[/bold cyan] [dim]({session.id[:8]})[/dim]\n")
    for message in session.messages:
        if message.is_user:
            console.print("[bold yellow]You:[/bold yellow] ", end="")
            console.print(message.content, markup=False, highlight=False)
        elif message.is_error:
            console.print(Text(message.content, style="bold red"))
        else:
            console.print("[bold green]Assistant:[/bold green] ", end="")
            console.print(message.content, markup=False, highlight=False)
    console.print()


def _handle_command(runner: asyncio.Runner, manager: SessionManager, line: str) -> bool:
    """Run one slash command. Returns False when the user wants to quit."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()
    current = manager.current_session

    if command in ("/quit", "/exit", "/q"):
        console.print("[dim]Goodbye![/dim]")
        return False

    if command == "/help":
        console.print(CHAT_HELP)
    elif command == "/new":
        runner.run(manager.create_session())
        console.print("[green]Started a new session[/green]")
    elif command == "/sessions":
        console.print(_sessions_table(manager))
    elif command == "/select":
        session = _find_session(manager, argument) if argument else None
        if session is None or not manager.select_session(session.id):
            console.print(f"[red]No such session: {argument or '(missing)'}[/red]")
        else:
            _print_session(session)
    elif command == "/rename":
        if current is None or not runner.run(manager.rename_session(current.id, argument)):
            console.print("[red]Usage: /rename TITLE[/red]")
        else:
            console.print(f"[green]Renamed to {argument}[/green]")
    elif command == "/delete":
        if current is not None and runner.run(manager.delete_session(current.id)):
            console.print(f"[green]Deleted {current.title}[/green]")
    elif command == "/history":
        if current is not None:
            _print_session(current)
    else:
        console.print(f"[red]Unknown command: {command}[/red] [dim](try /help)[/dim]")
    return True


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        "warning",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, or error"
    )
):
    """Streaming multi-session chat with pluggable LLM providers."""
    configure_logging(log_level)


@app.command()
def chat(
    new: bool = typer.Option(
        False,
        "--new",
        "-n",
        help="Start in a new session"
    )
):
    """Interactive chat mode."""
    with asyncio.Runner() as runner:
        try:
            store, manager, settings_manager = runner.run(_open_chat())
        except PersistenceError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(code=1)

        manager.subscribe(StreamPrinter(manager, console))

        try:
            if new:
                runner.run(manager.create_session())

            settings = settings_manager.settings
            console.print("[bold cyan]Chatbox Interactive Chat[/bold cyan]")
            console.print(f"[dim]{settings.provider_display_name} / {settings.model} - type /help for commands[/dim]\n")

            current = manager.current_session
            if current is not None and current.messages:
                _print_session(current)

            while True:
                try:
                    user_input = console.input("[bold yellow]You:[/bold yellow] ")
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                text = user_input.strip()
                if not text:
                    continue

                if text.startswith("/"):
                    if not _handle_command(runner, manager, text):
                        break
                    continue

                turn_settings = resolve_settings(settings_manager.settings, console)
                try:
                    accepted = runner.run(manager.send_message(text, turn_settings))
                except KeyboardInterrupt:
                    console.print("\n[dim]Stopped.[/dim]")
                    continue

                if not accepted:
                    console.print("[yellow]Message not sent: a reply is still streaming[/yellow]")
                console.print()
        finally:
            runner.run(_close_chat(store, manager))


@app.command()
def send(
    text: str = typer.Argument(..., help="Message to send"),
    new: bool = typer.Option(
        False,
        "--new",
        "-n",
        help="Send in a new session instead of the current one"
    )
):
    """Send one message and stream the reply."""
    async def _send():
        async with open_chat() as (manager, settings_manager):
            manager.subscribe(StreamPrinter(manager, console))
            if new:
                await manager.create_session()

            settings = resolve_settings(settings_manager.settings, console)
            if not await manager.send_message(text, settings):
                console.print("[red]Error: message is empty[/red]")
                raise typer.Exit(code=1)

            session = manager.current_session
            if session is not None and session.messages and session.messages[-1].is_error:
                raise typer.Exit(code=1)

    _run(_send())


@app.command()
def sessions():
    """List sessions, most recently created first."""
    async def _sessions():
        async with open_chat(create_if_empty=False) as (manager, _):
            if not manager.sessions:
                console.print("[dim]No sessions yet. Start one with 'chatbox send' or 'chatbox chat'.[/dim]")
                return
            console.print(_sessions_table(manager))

    _run(_sessions())


@app.command()
def show(
    session_ref: str = typer.Argument(..., help="Session number or id prefix")
):
    """Print the messages of a session."""
    async def _show():
        async with open_chat(create_if_empty=False) as (manager, _):
            session = _find_session(manager, session_ref)
            if session is None:
                console.print(f"[red]Error: no such session: {session_ref}[/red]")
                raise typer.Exit(code=1)
            _print_session(session)

    _run(_show())


@app.command()
def rename(
    session_ref: str = typer.Argument(..., help="Session number or id prefix"),
    title: str = typer.Argument(..., help="New title")
):
    """Rename a session."""
    async def _rename():
        async with open_chat(create_if_empty=False) as (manager, _):
            session = _find_session(manager, session_ref)
            if session is None or not await manager.rename_session(session.id, title):
                console.print(f"[red]Error: cannot rename {session_ref}[/red]")
                raise typer.Exit(code=1)
            console.print(f"[green]Renamed to {title.strip()}[/green]")

    _run(_rename())


@app.command()
def delete(
    session_ref: str = typer.Argument(..., help="Session number or id prefix"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt"
    )
):
    """Delete a session."""
    async def _delete():
        async with open_chat(create_if_empty=False) as (manager, _):
            session = _find_session(manager, session_ref)
            if session is None:
                console.print(f"[red]Error: no such session: {session_ref}[/red]")
                raise typer.Exit(code=1)

            if not yes:
                confirm = typer.confirm(f"Delete '{session.title}'?")
                if not confirm:
                    console.print("[dim]Aborted.[/dim]")
                    return

            await manager.delete_session(session.id)
            console.print(f"[green]Deleted {session.title}[/green]")

    _run(_delete())


@app.command()
def providers():
    """List supported providers and their models."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Provider", style="cyan")
    table.add_column("Name")
    table.add_column("Base URL", style="dim")
    table.add_column("Models", style="yellow")
    table.add_column("Streaming", style="green")

    for info in PROVIDER_CATALOG.values():
        table.add_row(
            info.kind.value,
            info.display_name,
            info.base_url,
            ", ".join(info.models),
            "yes" if info.streaming_implemented else "placeholder",
        )
    console.print(table)


def _mask_key(api_key: str) -> str:
    if not api_key:
        return "[dim]not set[/dim]"
    return f"...{api_key[-4:]}" if len(api_key) > 8 else "****"


@config_app.command("show")
def config_show():
    """Show the stored settings."""
    async def _show():
        async with open_chat(create_if_empty=False) as (_, settings_manager):
            settings = settings_manager.settings
            table = Table(show_header=False, box=None)
            table.add_column("Setting", style="bold cyan", width=15)
            table.add_column("Value")

            table.add_row("Provider", f"{settings.provider.value} ({settings.provider_display_name})")
            table.add_row("Model", settings.model)
            table.add_row("API Key", _mask_key(settings.api_key))
            table.add_row("Temperature", f"{settings.temperature:.2f}")
            table.add_row("Max Tokens", str(settings.max_tokens))
            table.add_row("System Prompt", settings.system_prompt or "[dim]none[/dim]")
            table.add_row("Base URL", settings.base_url or "[dim]provider default[/dim]")
            console.print(table)

    _run(_show())


@config_app.command("set")
def config_set(
    provider: ProviderKind | None = typer.Option(
        None,
        "--provider",
        "-p",
        help="Provider (switches to its first model unless --model is given)"
    ),
    model: str | None = typer.Option(None, "--model", "-m", help="Model identifier"),
    api_key: str | None = typer.Option(None, "--api-key", "-k", help="API key"),
    temperature: float | None = typer.Option(None, "--temperature", "-t", help="Sampling temperature (0.0-2.0)"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Maximum output tokens"),
    system_prompt: str | None = typer.Option(None, "--system-prompt", "-s", help="System prompt (empty to disable)"),
    base_url: str | None = typer.Option(None, "--base-url", help="Override the provider base URL (empty to reset)"),
):
    """Change stored settings."""
    changes = {
        name: value
        for name, value in {
            "model": model,
            "api_key": api_key,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "system_prompt": system_prompt,
            "base_url": base_url,
        }.items()
        if value is not None
    }

    async def _set():
        async with open_chat(create_if_empty=False) as (_, settings_manager):
            if provider is not None:
                await settings_manager.update_provider(provider)
            if changes:
                await settings_manager.update(**changes)
            settings = settings_manager.settings
            console.print(
                f"[green]Saved:[/green] {settings.provider_display_name} / {settings.model}"
            )

    try:
        _run(_set())
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            console.print(f"[red]Error: {field}: {error['msg']}[/red]")
        raise typer.Exit(code=1)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
