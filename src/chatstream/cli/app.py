"""Main CLI application using Typer."""
import asyncio

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console

from ..chat import ConversationState, ConversationStore, Sender
from ..config import ClientSettings, ERROR_PREFIX
from ..stream import StreamEnd
from .log import configure_logging
from .providers import get_settings, get_store
from .render import StreamPrinter

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="chatstream",
    help="Chat with a streaming text-generation service from the terminal",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()


def _load_settings(endpoint: str | None, log_level: str | None) -> ClientSettings:
    try:
        settings = get_settings(endpoint=endpoint, log_level=log_level)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(code=2)
    configure_logging(settings.log_level)
    return settings


def _last_answer(state: ConversationState) -> str:
    answers = state.messages_from(Sender.ASSISTANT)
    return answers[-1].text if answers else ""


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to ask"),
    rag: bool = typer.Option(
        False,
        "--rag",
        "-r",
        help="Ask the service to answer with retrieval-augmented generation"
    ),
    no_context: bool = typer.Option(
        False,
        "--no-context",
        help="Send the question as-is, without conversation framing"
    ),
    endpoint: str | None = typer.Option(
        None,
        "--endpoint",
        "-e",
        help="Streaming endpoint (default: CHATSTREAM_ENDPOINT)"
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (default: CHATSTREAM_LOG_LEVEL or WARNING)"
    ),
):
    """Ask a single question and stream the answer."""
    if not question.strip():
        console.print("[yellow]Nothing to ask.[/yellow]")
        raise typer.Exit(code=1)

    settings = _load_settings(endpoint, log_level)

    async def _ask() -> tuple[ConversationState, StreamEnd | None]:
        async with get_store(settings) as store:
            store.subscribe(StreamPrinter(console))
            task = store.send(question, rag_mode=rag, bypass_context=no_context)
            end = await task if task is not None else None
            console.print()
            return store.state, end

    state, end = asyncio.run(_ask())

    if end is None:
        # Setup failure, already printed as the answer
        raise typer.Exit(code=1)
    if end.failed:
        console.print(f"[red]Stream failed: {state.last_error}[/red]")
        raise typer.Exit(code=1)
    if _last_answer(state).startswith(ERROR_PREFIX):
        raise typer.Exit(code=1)


@app.command()
def chat(
    rag: bool = typer.Option(
        False,
        "--rag",
        "-r",
        help="Start with retrieval-augmented generation enabled"
    ),
    endpoint: str | None = typer.Option(
        None,
        "--endpoint",
        "-e",
        help="Streaming endpoint (default: CHATSTREAM_ENDPOINT)"
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (default: CHATSTREAM_LOG_LEVEL or WARNING)"
    ),
):
    """Start an interactive conversation.

    Commands: /reset clears the conversation, /rag toggles RAG mode,
    /raw toggles sending questions without context, /quit exits.
    """
    settings = _load_settings(endpoint, log_level)

    console.print(f"[dim]Connected to {settings.endpoint}[/dim]")
    console.print("[dim]/reset  /rag  /raw  /quit[/dim]\n")

    # Input is read on the main thread between exchanges; the runner keeps
    # one event loop alive for the store's client
    with asyncio.Runner() as runner:
        store = get_store(settings)
        store.subscribe(StreamPrinter(console))
        try:
            _chat_loop(runner, store, rag)
        finally:
            runner.run(store.dispose())


async def _exchange(
    store: ConversationStore, line: str, rag_mode: bool, bypass_context: bool
) -> StreamEnd | None:
    task = store.send(line, rag_mode=rag_mode, bypass_context=bypass_context)
    return await task if task is not None else None


def _chat_loop(runner: asyncio.Runner, store: ConversationStore, rag_mode: bool) -> None:
    bypass_context = False

    while True:
        try:
            line = console.input("[bold cyan]You:[/] ")
        except (EOFError, KeyboardInterrupt):
            console.print()
            break

        command = line.strip().lower()
        if command in ("/quit", "/exit"):
            break
        if command == "/reset":
            store.reset()
            console.print("[dim]Conversation cleared.[/dim]")
            continue
        if command == "/rag":
            rag_mode = not rag_mode
            console.print(f"[dim]RAG mode {'on' if rag_mode else 'off'}.[/dim]")
            continue
        if command == "/raw":
            bypass_context = not bypass_context
            console.print(f"[dim]Context {'off' if bypass_context else 'on'}.[/dim]")
            continue

        try:
            end = runner.run(_exchange(store, line, rag_mode, bypass_context))
        except KeyboardInterrupt:
            console.print("\n[dim]Interrupted.[/dim]")
            break

        if end is None:
            if command:
                console.print()
            continue

        console.print()
        if end.failed:
            console.print(f"[red]Stream failed: {end.detail}[/red]")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
