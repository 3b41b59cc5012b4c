"""CLI entry point for utilitysign-proxy."""

import asyncio
import sys
from datetime import datetime

import httpx
from rich.console import Console

from app import build_proxy, create_app
from core.config import CONFIG_FILE, Config, load_config
from core.request_types import Failure
from core.token_store import TOKENS_FILE, create_token_store
from ui.dashboard import Dashboard
from ui.log_utils import CLI_LOG_FILE, FileLogger, clear_logs, write_cli_log

console = Console()


def main():
    """Main CLI entry point."""
    config = load_config()

    # Handle CLI arguments
    if len(sys.argv) > 1:
        arg = sys.argv[1]

        if arg in ("--check", "--auth"):
            ok = asyncio.run(check_connection(config, force_refresh="--refresh" in sys.argv[2:]))
            sys.exit(0 if ok else 1)

        if arg == "--config":
            console.print(f"[bold]Config:[/bold] {CONFIG_FILE}")
            console.print(f"[bold]Tokens:[/bold] {TOKENS_FILE} [dim](token.store={config.token.store})[/dim]")
            console.print(f"[bold]Log:[/bold]    {CLI_LOG_FILE}")
            return

        if arg in ("--help", "-h"):
            _print_help()
            return

    # Plugin key and secret are required for every proxied call
    if not config.credentials().is_configured:
        console.print("[red][ERROR][/red] Plugin key/secret not configured!")
        console.print(f"[dim]Edit {CONFIG_FILE} and set backend.api_key and backend.api_secret[/dim]")
        sys.exit(1)

    # Clear previous logs and start dashboard
    clear_logs()
    dashboard = Dashboard(config)

    import uvicorn

    app = create_app(config, dashboard)

    # Run with dashboard
    uvicorn_config = uvicorn.Config(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="warning",
        timeout_keep_alive=config.server.keep_alive_timeout,
    )
    server = uvicorn.Server(uvicorn_config)

    dashboard.start()
    start_time = datetime.now()
    write_cli_log("STARTUP", "Proxy started", port=config.server.port, backend=config.backend.base_url)
    try:
        server.run()
    finally:
        duration = datetime.now() - start_time
        write_cli_log("SHUTDOWN", "Proxy stopped", duration=str(duration))
        dashboard.stop()


async def check_connection(config: Config, *, force_refresh: bool = False) -> bool:
    """Authenticate against the backend and print the outcome."""
    logger = FileLogger(debug=config.server.debug)
    async with httpx.AsyncClient(timeout=config.backend.timeout_seconds) as client:
        proxy = build_proxy(config, client, create_token_store(config), logger)
        result = await proxy.check_connection(force_refresh=force_refresh)

    if isinstance(result, Failure):
        console.print(f"[red]Not authenticated[/red] ({result.kind.value}, HTTP {result.http_status})")
        console.print(f"  {result.message}")
        console.print(f"[dim]Correlation id:[/dim] {result.correlation_id}")
        return False

    console.print(f"[green]Authenticated[/green] against {config.backend.base_url}")
    return True


def _print_help():
    """Print help message."""
    help_text = """
[bold cyan]UtilitySign Proxy[/bold cyan]

Forwards browser signing requests to the UtilitySign API with a cached bearer token.

[bold]Usage:[/bold]
    utilitysign-proxy                      Start with live dashboard
    utilitysign-proxy --check [--refresh]  Check plugin key authentication
    utilitysign-proxy --config             Show config locations
    utilitysign-proxy --help               Show this help

[bold]Authentication:[/bold]
    Set backend.api_key and backend.api_secret in the config file.
    The secret never leaves this process; browsers only see proxied responses.
"""
    console.print(help_text)


if __name__ == "__main__":
    main()
