"""Click CLI: runs the relay, an interactive terminal debate, or a single lookup."""

import asyncio
import logging
import sys
from pathlib import Path

import click
import httpx
from aiohttp import web
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from sophron.backends import ConversationBackend, LocalBackend
from sophron.client import RelayClient, relay_sources
from sophron.gateway import configure_provider
from sophron.healthcheck import ping_provider
from sophron.models import DEBATE_STYLES, SOURCE_SEP, SOURCE_WIKIPEDIA
from sophron.orchestrator import Conversation
from sophron.output import (
    print_enriched_analysis,
    print_fallacies,
    print_improvements,
    print_message,
    print_mode,
    print_reference,
    print_topics,
    save_transcript,
)
from sophron.providers.base import GatewayError
from sophron.prompts import PREDEFINED_TOPICS
from sophron.references import (
    ReferenceSource,
    build_sources,
    enrich_analysis,
    lookup,
    make_http_client,
)
from sophron.server import create_app

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_CHAT_HELP = """Commands:
  /style <none|socratic|formal|devils-advocate>
  /fallacies on|off    /steelman on|off    /debate on|off
  /topics              /topics <number>    /analyze
  /lookup <term>       /clear              /save
  /quit"""


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _load(verbose: bool) -> AppConfig:
    load_dotenv()
    _setup_logging(verbose)
    try:
        return load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def _parse_switch(arg: str) -> bool | None:
    value = arg.strip().lower()
    if value in ("on", "true", "yes", "1"):
        return True
    if value in ("off", "false", "no", "0"):
        return False
    return None


@click.group()
def main() -> None:
    """sophron-bot -- debate philosophical claims with a language model."""
    # Reconfigure stdout/stderr to UTF-8 on Windows so model replies containing
    # Unicode chars don't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")


@main.command()
@click.option("--host", default=None, help="Bind address (default: from config)")
@click.option("--port", default=None, type=int, help="Port (default: from config)")
@click.option("--check-upstream", is_flag=True, default=False,
              help="Ping the completion API once before serving")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def serve(host: str | None, port: int | None, check_upstream: bool, verbose: bool) -> None:
    """Run the HTTP relay for the browser client."""
    config = _load(verbose)
    provider = configure_provider(config.model)

    if check_upstream:
        ok, err = asyncio.run(ping_provider(provider))
        if ok:
            console.print(f"  [green]OK  [/green] {config.model.name} ({config.model.model})")
        else:
            console.print(f"  [red]FAIL[/red] {config.model.name}: {err.splitlines()[0][:120] if err else 'unknown error'}")

    http_client = make_http_client(config.references)
    app = create_app(provider, build_sources(http_client, config.references))

    async def _close_http(_app: web.Application) -> None:
        await http_client.aclose()

    app.on_cleanup.append(_close_http)

    effective_host = host or config.server.host
    effective_port = port or config.server.port
    console.print(f"[bold cyan]sophron-bot[/bold cyan] relay on http://{effective_host}:{effective_port}")
    console.print(f"OpenAI API key configured: {not isinstance(provider, GatewayError)}")
    web.run_app(app, host=effective_host, port=effective_port, print=None)


def _print_new(conversation: Conversation, seen: dict[str, int]) -> None:
    """Print transcript entries and findings that appeared since the last call."""
    for msg in conversation.transcript[seen["messages"]:]:
        if not msg.is_loading:
            print_message(msg)
    seen["messages"] = len(conversation.transcript)
    print_fallacies(conversation.fallacies[seen["fallacies"]:])
    seen["fallacies"] = len(conversation.fallacies)
    print_improvements(conversation.improvements[seen["improvements"]:])
    seen["improvements"] = len(conversation.improvements)


async def _handle_command(
    line: str,
    conversation: Conversation,
    sources: dict[str, ReferenceSource],
    output_dir: Path,
    seen: dict[str, int],
) -> bool:
    """Run one slash command. Returns False when the session should end."""
    name, _, arg = line[1:].partition(" ")
    name = name.lower()

    if name in ("quit", "exit"):
        return False
    if name == "help":
        console.print(_CHAT_HELP)
    elif name == "style":
        try:
            conversation.select_style(arg)
        except ValueError as exc:
            console.print(f"[red]{exc}[/red]")
    elif name in ("fallacies", "steelman", "debate"):
        enabled = _parse_switch(arg)
        if enabled is None:
            console.print(f"[red]Usage: /{name} on|off[/red]")
        elif name == "fallacies":
            conversation.set_fallacy_detection(enabled)
        elif name == "steelman":
            conversation.set_steel_manning(enabled)
        else:
            conversation.set_debate_mode(enabled)
    elif name == "clear":
        conversation.clear_findings()
        seen["fallacies"] = seen["improvements"] = 0
        console.print("[dim]Findings cleared.[/dim]")
    elif name == "topics":
        if not arg.strip():
            print_topics(PREDEFINED_TOPICS)
        elif not arg.strip().isdigit():
            console.print("[red]Usage: /topics <number>[/red]")
        else:
            try:
                with console.status("sophron-bot is thinking..."):
                    await conversation.select_topic(int(arg.strip()))
            except ValueError as exc:
                console.print(f"[red]{exc}[/red]")
    elif name == "analyze":
        try:
            with console.status("Analyzing conversation..."):
                analysis = await conversation.analyze()
                enriched = await enrich_analysis(analysis, sources)
        except GatewayError as exc:
            logger.error("Chat analysis failed: %s", exc)
            console.print(f"[yellow]Analysis unavailable:[/yellow] {exc.user_message}")
        else:
            print_enriched_analysis(enriched)
    elif name == "lookup":
        if not arg.strip():
            console.print("[red]Usage: /lookup <term>[/red]")
        else:
            print_reference(await lookup(arg.strip(), sources))
    elif name == "save":
        path = save_transcript(
            conversation.transcript,
            conversation.fallacies,
            conversation.improvements,
            conversation.mode,
            output_dir,
        )
        console.print(f"[dim]Saved to: {path}[/dim]")
    else:
        console.print(f"[red]Unknown command: /{name}[/red]")
        console.print(_CHAT_HELP)

    _print_new(conversation, seen)
    print_mode(conversation.mode)
    return True


async def _chat_loop(
    backend: ConversationBackend,
    sources: dict[str, ReferenceSource],
    debate_mode: bool,
    style: str,
    fallacies: bool,
    steelman: bool,
    output_dir: Path,
) -> None:
    conversation = Conversation(backend, debate_mode=debate_mode)
    conversation.select_style(style)
    conversation.set_fallacy_detection(fallacies)
    conversation.set_steel_manning(steelman)

    seen = {"messages": 0, "fallacies": 0, "improvements": 0}
    _print_new(conversation, seen)
    print_mode(conversation.mode)
    console.print("[dim]Type /help for commands.[/dim]")

    while True:
        try:
            line = (await asyncio.to_thread(console.input, "[bold]you> [/bold]")).strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not line:
            continue
        if line.startswith("/"):
            if not await _handle_command(line, conversation, sources, output_dir, seen):
                break
            continue

        # The user's own line is already on screen
        seen["messages"] += 1
        with console.status("sophron-bot is thinking..."):
            await conversation.submit(line)
        _print_new(conversation, seen)
        if conversation.last_analysis_error is not None:
            console.print(f"[yellow]Analysis unavailable:[/yellow] {conversation.last_analysis_error.user_message}")


@main.command()
@click.option("--relay", "relay_url", default=None,
              help="Base URL of a running relay (default: call the API directly)")
@click.option("--debate", "debate_mode", is_flag=True, help="Start in debate mode")
@click.option("--style", type=click.Choice(DEBATE_STYLES), default=DEBATE_STYLES[0],
              help="Debate style")
@click.option("--fallacies", is_flag=True, help="Enable fallacy detection")
@click.option("--steelman", is_flag=True, help="Enable steel-manning mode")
@click.option("--output", "output_path", default="./sessions", help="Directory for /save")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def chat(
    relay_url: str | None,
    debate_mode: bool,
    style: str,
    fallacies: bool,
    steelman: bool,
    output_path: str,
    verbose: bool,
) -> None:
    """Debate interactively in the terminal."""
    config = _load(verbose)

    async def _run() -> None:
        if relay_url:
            async with httpx.AsyncClient(base_url=relay_url, timeout=None) as client:
                await _chat_loop(
                    RelayClient(client), relay_sources(client),
                    debate_mode or config.session.debate_mode, style, fallacies, steelman,
                    Path(output_path),
                )
            return
        provider = configure_provider(config.model)
        if isinstance(provider, GatewayError):
            console.print(f"[yellow]Warning:[/yellow] {provider.user_message}")
        async with make_http_client(config.references) as client:
            await _chat_loop(
                LocalBackend(provider), build_sources(client, config.references),
                debate_mode or config.session.debate_mode, style, fallacies, steelman,
                Path(output_path),
            )

    asyncio.run(_run())


@main.command("lookup")
@click.argument("term")
@click.option("--source", type=click.Choice([SOURCE_WIKIPEDIA, SOURCE_SEP]),
              default=SOURCE_WIKIPEDIA, help="Source to try first")
@click.option("--relay", "relay_url", default=None, help="Look up through a running relay")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def lookup_command(term: str, source: str, relay_url: str | None, verbose: bool) -> None:
    """Look up a philosophical term on Wikipedia or the SEP."""
    config = _load(verbose)

    async def _run() -> None:
        if relay_url:
            async with httpx.AsyncClient(base_url=relay_url) as client:
                record = await lookup(term, relay_sources(client), preferred=source)
        else:
            async with make_http_client(config.references) as client:
                record = await lookup(term, build_sources(client, config.references), preferred=source)
        print_reference(record)

    asyncio.run(_run())


if __name__ == "__main__":
    main()
