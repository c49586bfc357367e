"""CLI commands for polychat."""

import asyncio
import json
import os
import select
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout

from polychat import __logo__, __version__
from polychat.config.schema import Config

app = typer.Typer(
    name="polychat",
    help=f"{__logo__} polychat - Chat without barriers",
    no_args_is_help=True,
)

console = Console()
EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit", ":q"}
STATS_FILE = "ai_stats.json"

# ---------------------------------------------------------------------------
# CLI input: prompt_toolkit for editing, paste, history, and display
# ---------------------------------------------------------------------------

_PROMPT_SESSION: PromptSession | None = None
_SAVED_TERM_ATTRS = None  # original termios settings, restored on exit


def _flush_pending_tty_input() -> None:
    """Drop unread keypresses typed while Poly was answering."""
    try:
        fd = sys.stdin.fileno()
        if not os.isatty(fd):
            return
    except Exception:
        return

    try:
        import termios
        termios.tcflush(fd, termios.TCIFLUSH)
        return
    except Exception:
        pass

    try:
        while True:
            ready, _, _ = select.select([fd], [], [], 0)
            if not ready:
                break
            if not os.read(fd, 4096):
                break
    except Exception:
        return


def _restore_terminal() -> None:
    """Restore terminal to its original state (echo, line buffering, etc.)."""
    if _SAVED_TERM_ATTRS is None:
        return
    try:
        import termios
        termios.tcsetattr(sys.stdin.fileno(), termios.TCSADRAIN, _SAVED_TERM_ATTRS)
    except Exception:
        pass


def _init_prompt_session() -> None:
    """Create the prompt_toolkit session with persistent file history."""
    global _PROMPT_SESSION, _SAVED_TERM_ATTRS

    try:
        import termios
        _SAVED_TERM_ATTRS = termios.tcgetattr(sys.stdin.fileno())
    except Exception:
        pass

    history_file = Path.home() / ".polychat" / "history" / "cli_history"
    history_file.parent.mkdir(parents=True, exist_ok=True)

    _PROMPT_SESSION = PromptSession(
        history=FileHistory(str(history_file)),
        enable_open_in_editor=False,
        multiline=False,
    )


async def _read_interactive_input_async(mode: str) -> str:
    """Read one line with prompt_toolkit; the prompt shows the compose mode."""
    if _PROMPT_SESSION is None:
        raise RuntimeError("Call _init_prompt_session() first")
    label = "practice" if mode == "target" else "you"
    try:
        with patch_stdout():
            return await _PROMPT_SESSION.prompt_async(HTML(f"<b fg='ansiblue'>{label}:</b> "))
    except EOFError as exc:
        raise KeyboardInterrupt from exc


def _is_exit_command(command: str) -> bool:
    """Return True when input should end interactive chat."""
    return command.lower() in EXIT_COMMANDS


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} polychat v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """polychat - Chat without barriers."""
    pass


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Initialize polychat configuration."""
    from polychat.config.loader import get_config_path, load_config, save_config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        console.print("  [bold]y[/bold] = overwrite with defaults (existing values will be lost)")
        console.print("  [bold]N[/bold] = refresh config, keeping existing values and adding new fields")
        if typer.confirm("Overwrite?"):
            save_config(Config())
            console.print(f"[green]✓[/green] Config reset to defaults at {config_path}")
        else:
            save_config(load_config())
            console.print(f"[green]✓[/green] Config refreshed at {config_path} (existing values preserved)")
    else:
        save_config(Config())
        console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} polychat is ready!")
    console.print("\nNext steps:")
    console.print("  1. Set your name and target language in [cyan]~/.polychat/config.json[/cyan]")
    console.print("  2. Add a Gemini API key (ai.apiKey) and run [cyan]polychat proxy[/cyan]")
    console.print("  3. Chat with Poly: [cyan]polychat chat[/cyan]")


# ============================================================================
# AI wiring
# ============================================================================


def _make_provider(config: Config):
    """Create the LLM provider from config, or None when no credentials are set."""
    from polychat.providers.custom_provider import CustomProvider
    from polychat.providers.litellm_provider import LiteLLMProvider
    from polychat.providers.registry import find_by_name

    ai = config.ai
    spec = find_by_name(ai.provider) if ai.provider else None

    # Custom: direct OpenAI-compatible endpoint, bypasses LiteLLM
    if spec and spec.is_direct:
        return CustomProvider(
            api_key=ai.api_key or "no-key",
            api_base=ai.api_base or "http://localhost:8000/v1",
            default_model=ai.model,
        )

    if not ai.api_key and not (spec and spec.is_local):
        return None

    return LiteLLMProvider(
        api_key=ai.api_key or None,
        api_base=ai.api_base,
        default_model=ai.model,
        extra_headers=ai.extra_headers,
        provider_name=ai.provider,
    )


def _make_ai_service(config: Config):
    """Build the AI text service the chat session talks to."""
    from polychat.ai import LLMTextService, ProxyAIService

    if config.ai.mode == "proxy":
        return ProxyAIService(config.ai.proxy_url, timeout=config.ai.timeout_s)

    provider = _make_provider(config)
    if provider is None:
        console.print("[red]Error: No API key configured.[/red]")
        console.print("Set ai.apiKey in ~/.polychat/config.json or POLYCHAT_AI_API_KEY")
        raise typer.Exit(1)
    return LLMTextService(provider, model=config.ai.model)


# ============================================================================
# Proxy server
# ============================================================================


@app.command()
def proxy(
    port: int = typer.Option(None, "--port", "-p", help="Proxy port (defaults to proxy.port)"),
    host: str = typer.Option(None, "--host", help="Bind address (defaults to proxy.host)"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Run the AI proxy HTTP server."""
    from loguru import logger

    from polychat.ai import LLMTextService
    from polychat.config.loader import load_config
    from polychat.proxy.server import run_proxy

    if not verbose:
        logger.remove()
        logger.add(sys.stderr, level="INFO")

    config = load_config()
    provider = _make_provider(config)
    service = LLMTextService(provider, model=config.ai.model) if provider else None
    if service is None:
        console.print("[yellow]Warning: no API key configured, every request will fail with 500.[/yellow]")

    bind_host = host or config.proxy.host
    bind_port = port or config.proxy.port
    console.print(f"{__logo__} Starting AI proxy on {bind_host}:{bind_port} (model {config.ai.model})...")
    run_proxy(service, host=bind_host, port=bind_port)


# ============================================================================
# Chat
# ============================================================================


def _print_message(msg) -> None:
    """Render one chat message."""
    if msg.is_bot:
        console.print(f"[cyan]{__logo__} {msg.display_name}[/cyan]")
        console.print(Text(msg.text))
        if msg.original_text and msg.original_text != msg.text:
            console.print(f"[dim italic]\"{escape(msg.original_text)}\"[/dim italic]")
    else:
        console.print(f"[bold]{escape(msg.display_name)}[/bold]: {escape(msg.text)}")
        if msg.original_text and msg.original_text != msg.text:
            console.print(f"  [dim italic]\"{escape(msg.original_text)}\"[/dim italic]")
        if msg.correction:
            console.print(f"  [yellow]✎ {escape(msg.correction.correction)}[/yellow] [dim]({escape(msg.correction.reason)})[/dim]")
    console.print()


def _print_help() -> None:
    console.print(
        "[dim]/practice  write in your target language (grammar checked)\n"
        "/english   write in English (translated for you)\n"
        "/lang NAME switch target language\n"
        "/topic N   pick a conversation topic   /focus N  pick a grammar focus\n"
        "/define W  look up a word              /save     save the last lookup\n"
        "/notebook  list saved words            /more     load older messages\n"
        "/reset     clear the conversation      /exit     quit[/dim]\n"
    )


@app.command()
def chat(
    lang: str = typer.Option(None, "--lang", "-l", help="Target language (defaults to user.targetLang)"),
    practice: bool = typer.Option(False, "--practice", help="Start in practice mode"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show polychat runtime logs during chat"),
):
    """Chat with Poly, the language tutor."""
    from loguru import logger

    from polychat.ai.monitoring import monitor
    from polychat.chat.channels import ChannelCache
    from polychat.chat.client import ChatClient
    from polychat.chat.directory import UserDirectory
    from polychat.chat.languages import GRAMMAR_FOCUS, LANGUAGES, TOPICS, find_language
    from polychat.chat.models import AI_CHANNEL
    from polychat.chat.paths import StorePaths
    from polychat.config.loader import get_data_dir, load_config
    from polychat.store import InMemoryDocumentStore
    from polychat.utils.helpers import get_channels_path

    config = load_config()

    target = find_language(lang or config.user.target_lang)
    if target is None:
        console.print(f"[red]Unknown language: {lang}[/red]")
        console.print("Supported: " + ", ".join(l.name for l in LANGUAGES))
        raise typer.Exit(1)

    if logs:
        logger.enable("polychat")
    else:
        logger.disable("polychat")

    ai = _make_ai_service(config)
    store = InMemoryDocumentStore()
    paths = StorePaths(config.app_id)
    mode = "target" if practice else "english"

    async def run_interactive():
        nonlocal mode
        await UserDirectory(store, paths).register(config.user.id, config.user.display_name, target.name)
        client = ChatClient(
            store,
            ai,
            config.user.id,
            config.user.display_name,
            target_lang=target.name,
            paths=paths,
            cache=ChannelCache(get_channels_path(config.user.id)),
            ai_timeout_s=config.ai.timeout_s,
            page_size=config.history.page_size,
            presence_window_ms=config.presence.window_s * 1000,
            heartbeat_interval_s=config.presence.heartbeat_interval_s,
        )
        await client.start()
        window = client.open_channel(AI_CHANNEL)
        last_lookup = None

        console.print(f"{__logo__} Chatting with Poly in {target.flag} {target.name} (type [bold]/help[/bold] for commands)\n")
        try:
            while True:
                try:
                    _flush_pending_tty_input()
                    user_input = await _read_interactive_input_async(mode)
                except KeyboardInterrupt:
                    break
                command = user_input.strip()
                if not command:
                    continue
                if _is_exit_command(command):
                    break

                name, _, arg = command.partition(" ")
                arg = arg.strip()
                if name == "/help":
                    _print_help()
                elif name == "/practice":
                    mode = "target"
                    console.print(f"[dim]Practice mode: write in {client.target_lang}.[/dim]")
                elif name == "/english":
                    mode = "english"
                    console.print("[dim]English mode: your messages are translated.[/dim]")
                elif name == "/lang":
                    found = find_language(arg)
                    if found is None:
                        console.print(f"[red]Unknown language: {arg}[/red]")
                    else:
                        client.target_lang = found.name
                        console.print(f"[dim]Target language: {found.flag} {found.name}[/dim]")
                elif name in ("/topic", "/focus"):
                    options = TOPICS if name == "/topic" else GRAMMAR_FOCUS
                    if arg.isdigit() and 1 <= int(arg) <= len(options):
                        if name == "/topic":
                            client.ai_context.topic = options[int(arg) - 1]
                        else:
                            client.ai_context.grammar_focus = options[int(arg) - 1]
                        console.print(f"[dim]{client.ai_context.prompt()}[/dim]")
                    else:
                        for i, option in enumerate(options, 1):
                            console.print(f"  {i}. {option}")
                elif name == "/define":
                    last_lookup = await client.notebook.lookup(arg)
                    console.print(f"[bold]{last_lookup.text}[/bold]: {last_lookup.definition}")
                    if last_lookup.error:
                        console.print(f"[red]{last_lookup.error}[/red]")
                elif name == "/save":
                    if last_lookup is None or last_lookup.error or not last_lookup.text:
                        console.print("[yellow]Look up a word with /define first.[/yellow]")
                    else:
                        await client.notebook.save(last_lookup.text, last_lookup.definition, client.target_lang)
                        console.print(f"[green]✓[/green] Saved \"{last_lookup.text}\" to Notebook!")
                elif name == "/notebook":
                    entries = await client.notebook.entries()
                    if not entries:
                        console.print("[dim]No words saved yet. Look up words in chat to save them![/dim]")
                    for entry in entries:
                        console.print(f"  [bold]{entry.word}[/bold] ({entry.lang}): {entry.definition}")
                elif name == "/more":
                    window.load_more()
                    await store.wait_idle()
                    for msg in window.messages:
                        _print_message(msg)
                    if not window.has_more:
                        console.print("[dim]Beginning of the conversation.[/dim]")
                elif name == "/reset":
                    removed = await client.notebook.reset_ai_chat()
                    console.print(f"[dim]Chat reset ({removed} messages removed).[/dim]")
                else:
                    with console.status("[dim]Poly is thinking...[/dim]", spinner="dots"):
                        outcome = await client.send(user_input, mode=mode)
                    if outcome:
                        for msg in outcome.messages:
                            _print_message(msg)
                    if client.last_error:
                        console.print(f"[red]{client.last_error}[/red]")
        finally:
            _restore_terminal()
            console.print("\nGoodbye!")
            await client.stop()
            await ai.close()
            monitor.save_to_file(get_data_dir() / STATS_FILE)

    _init_prompt_session()
    asyncio.run(run_interactive())


# ============================================================================
# Channel Commands
# ============================================================================


channels_app = typer.Typer(help="Manage the cached channel list")
app.add_typer(channels_app, name="channels")


@channels_app.command("list")
def channels_list(
    user: str = typer.Option(None, "--user", "-u", help="User id (defaults to user.id)"),
):
    """Show the cached channel list."""
    from polychat.chat.channels import ChannelCache
    from polychat.config.loader import load_config
    from polychat.utils.helpers import get_channels_path

    config = load_config()
    user_id = user or config.user.id
    channels = ChannelCache(get_channels_path(user_id)).load()

    table = Table(title=f"Channels for {user_id}")
    table.add_column("Channel", style="cyan")
    table.add_column("Name")
    table.add_column("DM", style="green")
    table.add_column("Unread", style="yellow")

    for channel in channels:
        table.add_row(
            channel.id,
            channel.name,
            "✓" if channel.is_dm else "",
            "●" if channel.unread else "",
        )

    console.print(table)


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """Show polychat status."""
    from polychat.config.loader import get_config_path, get_data_dir, load_config
    from polychat.chat.channels import ChannelCache
    from polychat.providers.registry import PROVIDERS
    from polychat.utils.helpers import get_channels_path

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} polychat Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")

    if config_path.exists():
        console.print(f"User: {config.user.display_name} ({config.user.id}), learning {config.user.target_lang}")
        console.print(f"AI mode: {config.ai.mode}")
        if config.ai.mode == "proxy":
            console.print(f"Proxy URL: {config.ai.proxy_url}")
        console.print(f"Model: {config.ai.model}")

        provider = next((s for s in PROVIDERS if s.name == config.ai.provider), None)
        if provider and provider.is_local:
            console.print(f"{provider.label}: {'[green]✓ ' + config.ai.api_base + '[/green]' if config.ai.api_base else '[dim]not set[/dim]'}")
        else:
            label = provider.label if provider else "API key"
            console.print(f"{label}: {'[green]✓[/green]' if config.ai.api_key else '[dim]not set[/dim]'}")

    channels = ChannelCache(get_channels_path(config.user.id)).load()
    unread = sum(1 for c in channels if c.unread)
    console.print(f"Cached channels: {len(channels)} ({unread} unread)")

    stats_path = get_data_dir() / STATS_FILE
    if stats_path.exists():
        try:
            data = json.loads(stats_path.read_text(encoding="utf-8"))["data"]
        except (OSError, ValueError, KeyError):
            console.print("[dim]AI stats unreadable[/dim]")
            return
        console.print(
            f"AI calls (last session): {data['total_calls']}, "
            f"{data['success_rate_percent']:.1f}% success, "
            f"avg {data['avg_latency_seconds']:.2f}s"
        )
        for action, stats in data["actions"].items():
            line = f"  • {action}: {stats['call_count']} calls, {stats['error_count']} errors"
            if stats.get("last_error"):
                line += f" [dim](last: {stats['last_error'][:80]})[/dim]"
            console.print(line)


if __name__ == "__main__":
    app()
