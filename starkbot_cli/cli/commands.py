"""CLI commands for starkbot-cli."""

from __future__ import annotations

import asyncio
import shutil
import sys
from typing import Any, Awaitable, Callable, TypeVar

import typer
from loguru import logger
from rich.markup import escape
from rich.table import Table

from starkbot_cli import __version__
from starkbot_cli.utils.ui import console

app = typer.Typer(
    name="starkbot",
    help="starkbot - chat with your bot and drive module dashboards",
    no_args_is_help=True,
)
modules_app = typer.Typer(help="List and connect to module TUI dashboards.")
app.add_typer(modules_app, name="modules")

T = TypeVar("T")


def version_callback(value: bool) -> None:
    if value:
        console.print(f"starkbot-cli v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Also log debug output to stderr."),
) -> None:
    """starkbot-cli entrypoint."""
    del version
    from starkbot_cli.config.loader import load_config
    from starkbot_cli.utils.logging import setup_logging

    config = load_config()
    setup_logging(config.logging.level, config.log_path, verbose=verbose)


# ── Helpers ───────────────────────────────────────────────────────────


def _run(factory: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine; turn known failures into ``Error: ...`` and exit 1."""
    from starkbot_cli.errors import StarkbotError
    from starkbot_cli.utils.ui import print_error

    try:
        return asyncio.run(factory())
    except StarkbotError as exc:
        logger.error(f"[cli] {exc}")
        print_error(str(exc))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print()
        raise typer.Exit(130)


def _is_interactive() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def _terminal_size(config: Any) -> tuple[int, int]:
    size = shutil.get_terminal_size((config.dashboard.fallback_width, config.dashboard.fallback_height))
    return size.columns, size.lines


def _token_refresher(config: Any, creds: Any):
    """Async callback that fetches a fresh gateway token and stores it."""
    from starkbot_cli.config.credentials import is_jwt_expired, update_credentials
    from starkbot_cli.gateway.flash import FlashClient

    if is_jwt_expired(creds):
        return None

    async def refresh() -> str:
        flash = FlashClient(config.flash_base_url, creds.jwt, config.gateway.request_timeout_s)
        resp = await flash.get_gateway_token()
        update_credentials(gateway_token=resp.token, instance_domain=resp.domain)
        logger.info(f"[cli] refreshed gateway token for {resp.domain}")
        return resp.token

    return refresh


def _gateway_client():
    from starkbot_cli.config.credentials import instance_url, require_gateway_credentials
    from starkbot_cli.config.loader import load_config
    from starkbot_cli.errors import StarkbotError
    from starkbot_cli.gateway.client import GatewayClient
    from starkbot_cli.utils.ui import print_error

    config = load_config()
    try:
        creds = require_gateway_credentials()
    except StarkbotError as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    client = GatewayClient(
        instance_url(creds),
        creds.gateway_token or "",
        token_refresher=_token_refresher(config, creds),
        request_timeout_s=config.gateway.request_timeout_s,
        connect_timeout_s=config.gateway.connect_timeout_s,
    )
    return config, client


async def _interactive_dashboard(
    client: Any,
    config: Any,
    module: str,
    width: int,
    height: int,
    refresh_interval_s: float,
    push_updates: bool,
) -> None:
    from starkbot_cli.dashboard.session import DashboardSession
    from starkbot_cli.dashboard.terminal import RawTerminal

    session = DashboardSession(
        client,
        module,
        width,
        height,
        terminal=RawTerminal(),
        refresh_interval_s=refresh_interval_s,
        page_size=config.dashboard.page_size,
        error_flash_s=config.dashboard.error_flash_s,
        push_updates=push_updates,
        # Live sessions navigate without a declared list; the server clamps.
        gate_navigation=not push_updates,
    )
    await session.run()


# ── Chat ──────────────────────────────────────────────────────────────


@app.command()
def chat(
    message: str = typer.Argument("", help="Send one message and exit. Omit for the interactive REPL."),
) -> None:
    """Chat with your bot."""
    from starkbot_cli.chat.repl import ChatRepl, run_one_shot

    _, client = _gateway_client()

    async def one_shot() -> None:
        async with client:
            await run_one_shot(client, message, console)

    async def repl() -> None:
        async with client:
            await ChatRepl(client, console).run()

    _run(one_shot if message.strip() else repl)


@app.command()
def sessions() -> None:
    """List chat sessions."""
    _, client = _gateway_client()

    async def run() -> None:
        async with client:
            with console.status("Fetching sessions...", spinner_style="magenta"):
                resp = await client.list_sessions()
        if not resp.sessions:
            console.print("[dim]  No sessions found.[/dim]")
            return
        console.print(f"\n  [bold]Sessions ({len(resp.sessions)}):[/bold]\n")
        for s in resp.sessions:
            console.print(
                f"  [cyan]{s.id:>4}[/cyan]  {escape(s.session_key)}  [dim]{s.message_count} msgs[/dim]  "
                f"[dim]{escape(s.last_activity_at)}[/dim]",
                highlight=False,
            )
        console.print()

    _run(run)


@app.command()
def history(session_id: str = typer.Argument(..., help="Session id")) -> None:
    """Show the message history of a session."""
    from starkbot_cli.chat.repl import print_history
    from starkbot_cli.utils.ui import print_error

    try:
        sid = int(session_id)
    except ValueError:
        print_error(f"Invalid session ID: {session_id}")
        raise typer.Exit(1)

    _, client = _gateway_client()

    async def run() -> None:
        async with client:
            with console.status("Fetching message history...", spinner_style="magenta"):
                resp = await client.get_history(sid)
        if not resp.messages:
            console.print("[dim]  No messages in this session.[/dim]")
            return
        console.print()
        print_history(console, resp)
        console.print()

    _run(run)


# ── Dashboards ────────────────────────────────────────────────────────


@app.command()
def dashboard(
    module: str = typer.Argument("", help="Module name. Omit to list modules with TUI dashboards."),
    watch: float = typer.Option(0.0, "--watch", "-w", help="Auto-refresh interval in seconds (default 5)."),
) -> None:
    """View a module's TUI dashboard."""
    from starkbot_cli.dashboard.session import print_frame_once

    config, client = _gateway_client()

    async def list_tui_modules() -> None:
        async with client:
            modules = [m for m in await client.list_modules() if m.enabled and m.supports_tui]
        if not modules:
            console.print("[dim]No modules with TUI dashboards found.[/dim]")
            return
        console.print("\n[bold]Modules with TUI dashboards:[/bold]\n")
        for m in modules:
            console.print(f"  [cyan]{escape(m.name)}[/cyan]  [dim]{escape(m.description)}[/dim]")
        console.print("[dim]\nUsage: starkbot dashboard <module-name>\n[/dim]")

    async def show() -> None:
        width, height = _terminal_size(config)
        async with client:
            if not _is_interactive():
                await print_frame_once(client, module, width, height)
                return
            await _interactive_dashboard(
                client,
                config,
                module,
                width,
                height,
                refresh_interval_s=watch or config.dashboard.refresh_interval_s,
                push_updates=False,
            )

    _run(show if module else list_tui_modules)


@modules_app.callback(invoke_without_command=True)
def modules_main(ctx: typer.Context) -> None:
    """List installed modules when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        modules_list()


@modules_app.command("list")
def modules_list() -> None:
    """List installed modules."""
    _, client = _gateway_client()

    async def run() -> None:
        async with client:
            modules = await client.list_modules()
        if not modules:
            console.print("[dim]No modules installed.[/dim]")
            return
        table = Table(title="Installed modules", title_justify="left", box=None, header_style="dim")
        table.add_column("NAME")
        table.add_column("VERSION", style="dim")
        table.add_column("TUI")
        table.add_column("DESCRIPTION", style="dim")
        for m in modules:
            tui = "[cyan]yes[/cyan]" if m.supports_tui else "[dim]no[/dim]"
            table.add_row(escape(m.name), escape(m.version), tui, escape(m.description))
        console.print()
        console.print(table)
        console.print()

    _run(run)


@modules_app.command("connect")
def modules_connect(name: str = typer.Argument(..., help="Module name")) -> None:
    """Connect to a module's TUI dashboard with live updates."""
    from starkbot_cli.dashboard.session import print_frame_once
    from starkbot_cli.errors import StarkbotError

    config, client = _gateway_client()

    async def run() -> bool:
        async with client:
            modules = await client.list_modules()
            found = next((m for m in modules if m.name == name), None)
            if found is None:
                raise StarkbotError(
                    f"Module '{name}' not found. Run `starkbot modules list` to see available modules."
                )
            if not found.supports_tui:
                raise StarkbotError(f"Module '{name}' does not have a TUI dashboard.")

            width, height = _terminal_size(config)
            # One row stays free for the shell prompt.
            height = max(height - 1, 1)
            if not _is_interactive():
                await print_frame_once(client, name, width, height)
                return False
            await _interactive_dashboard(
                client,
                config,
                name,
                width,
                height,
                refresh_interval_s=config.dashboard.refresh_interval_s,
                push_updates=True,
            )
            return True

    if _run(run):
        console.print("[dim]Back to shell.[/dim]")


# ── Account ───────────────────────────────────────────────────────────


async def _ping(config: Any, base_url: str, token: str) -> bool:
    from starkbot_cli.gateway.client import GatewayClient

    async with GatewayClient(
        base_url,
        token,
        request_timeout_s=config.gateway.request_timeout_s,
        connect_timeout_s=config.gateway.connect_timeout_s,
    ) as gw:
        return await gw.ping()


def _report_ping(ok: bool, domain: str) -> None:
    from starkbot_cli.utils.ui import print_success, print_warning

    if ok:
        print_success(f"Connected to {domain}")
        console.print("[dim]  Run `starkbot chat` to start chatting.[/dim]")
    else:
        print_warning(f"Gateway token saved for {domain}, but instance is not responding yet.")
        console.print("[dim]  The instance may still be starting. Try again in a moment.[/dim]")


@app.command()
def connect(
    token: str = typer.Option("", "--token", "-t", help="Gateway token for an existing instance."),
    domain: str = typer.Option("", "--domain", "-d", help="Instance domain (e.g. mybot.starkbot.cloud)."),
    jwt: str = typer.Option("", "--jwt", help="Store an account token used to fetch gateway credentials."),
) -> None:
    """Save gateway credentials and test the connection."""
    from starkbot_cli.config.credentials import (
        instance_url,
        load_credentials,
        require_credentials,
        update_credentials,
    )
    from starkbot_cli.config.loader import get_config_path, load_config, save_config
    from starkbot_cli.errors import StarkbotError
    from starkbot_cli.gateway.flash import FlashClient
    from starkbot_cli.utils.ui import print_error, print_warning

    config = load_config()
    if not get_config_path().exists():
        console.print(f"[dim]Created config at {save_config(config)}[/dim]")
    if jwt:
        update_credentials(jwt=jwt.strip())

    if token:
        creds = load_credentials()
        target = domain or (creds.instance_domain if creds else "")
        if not target:
            print_error("Instance domain required. Use --domain <your-instance.starkbot.cloud>.")
            raise typer.Exit(1)
        creds = update_credentials(gateway_token=token.strip(), instance_domain=target)
        with console.status("Testing connection...", spinner_style="magenta"):
            ok = _run(lambda: _ping(config, instance_url(creds), token.strip()))
        _report_ping(ok, target)
        return

    async def auto_fetch():
        creds = require_credentials()
        flash = FlashClient(config.flash_base_url, creds.jwt, config.gateway.request_timeout_s)
        resp = await flash.get_gateway_token()
        creds = update_credentials(gateway_token=resp.token, instance_domain=resp.domain)
        return resp.domain, await _ping(config, instance_url(creds), resp.token)

    try:
        with console.status("Fetching gateway credentials...", spinner_style="magenta"):
            target, ok = asyncio.run(auto_fetch())
    except StarkbotError as exc:
        logger.warning(f"[cli] gateway credential fetch failed: {exc}")
        print_warning("Could not auto-fetch gateway credentials. You can enter them manually.")
        console.print(f"[dim]  ({escape(str(exc))})\n[/dim]")
        existing = load_credentials()
        manual_token = typer.prompt("Gateway token").strip()
        manual_domain = typer.prompt(
            "Instance domain (e.g. my-bot.starkbot.cloud)",
            default=(existing.instance_domain if existing else None) or "",
        ).strip()
        if not manual_token or not manual_domain:
            print_error("Token and domain are required.")
            raise typer.Exit(1)
        connect(token=manual_token, domain=manual_domain, jwt="")
        return
    _report_ping(ok, target)


@app.command()
def logout() -> None:
    """Remove stored credentials."""
    from starkbot_cli.config.credentials import clear_credentials, load_credentials
    from starkbot_cli.utils.ui import print_success

    creds = load_credentials()
    clear_credentials()
    if creds is not None:
        who = f"@{creds.username}" if creds.username else (creds.instance_domain or "instance")
        print_success(f"Logged out from {who}")
    else:
        console.print("[dim]No credentials stored.[/dim]")


@app.command()
def status() -> None:
    """Show configuration, credentials and gateway reachability."""
    from starkbot_cli.config.credentials import get_credentials_path, instance_url, is_jwt_expired, load_credentials
    from starkbot_cli.config.loader import get_config_path, load_config
    from starkbot_cli.utils.ui import print_key_value

    config_path = get_config_path()
    config = load_config()
    creds = load_credentials()

    console.print("[bold]\n  Configuration[/bold]")
    print_key_value("Config", f"{config_path} {'[green]OK[/green]' if config_path.exists() else '[red]NO[/red]'}")
    print_key_value("Credentials", str(get_credentials_path()))
    print_key_value("Account API", config.flash_base_url)
    print_key_value(
        "Dashboard",
        f"refresh {config.dashboard.refresh_interval_s}s, page size {config.dashboard.page_size}",
    )

    console.print("[bold]\n  Account[/bold]")
    if creds is None:
        print_key_value("User", None)
        console.print("[dim]\n  Not connected. Run `starkbot connect`.\n[/dim]")
        return
    print_key_value("User", f"@{creds.username}" if creds.username else None)
    if creds.jwt:
        print_key_value("Account token", "[yellow]expired[/yellow]" if is_jwt_expired(creds) else "[green]valid[/green]")
    else:
        print_key_value("Account token", None)

    console.print("[bold]\n  Instance[/bold]")
    if not creds.has_gateway:
        print_key_value("Gateway", "[yellow]not configured[/yellow]")
        console.print()
        return
    url = instance_url(creds)
    print_key_value("Domain", creds.instance_domain)
    print_key_value("URL", url)
    with console.status("Testing connection...", spinner_style="magenta"):
        ok = _run(lambda: _ping(config, url, creds.gateway_token or ""))
    print_key_value("Gateway", "[green]reachable[/green]" if ok else "[red]unreachable[/red]")
    console.print()
