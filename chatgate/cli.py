"""Command-line interface for chatgate."""

import sys

import structlog
import uvicorn
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from chatgate.config import get_settings

console = Console()
logger = structlog.get_logger()


def _option(args: list[str], flag: str) -> str | None:
    if flag not in args:
        return None
    index = args.index(flag)
    if index + 1 >= len(args):
        return None
    return args[index + 1]


def cmd_serve(args: list[str]) -> int:
    """Run the API server."""
    settings = get_settings()

    host = _option(args, "--host") or settings.api.host
    port_arg = _option(args, "--port")
    try:
        port = int(port_arg) if port_arg else settings.api.port
    except ValueError:
        console.print(f"[red]Error: Invalid port: {port_arg}[/red]")
        return 1

    console.print(f"[bold blue]{settings.app_name}[/bold blue] v{settings.version} on {host}:{port}")
    logger.info("Starting API server", host=host, port=port)

    uvicorn.run(
        "chatgate.api.app:app",
        host=host,
        port=port,
        reload="--reload" in args,
        log_level=settings.log_level.lower(),
    )
    return 0


def cmd_config(args: list[str]) -> int:
    """Show the effective configuration."""
    settings = get_settings()

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("App Name", settings.app_name)
    table.add_row("Version", settings.version)
    table.add_row("Debug", str(settings.debug))
    table.add_row("Log Level", settings.log_level)
    table.add_row("API", f"{settings.api.host}:{settings.api.port}")
    table.add_row("Bridge URL", settings.engine.bridge_url)
    table.add_row("Bridge Token", "set" if settings.engine.bridge_token else "not set")
    table.add_row("Request Timeout", f"{settings.engine.request_timeout_seconds}s")
    table.add_row("Scan Timeout", f"{settings.session.scan_timeout_seconds}s")
    table.add_row("Ready Wait", f"{settings.session.ready_wait_seconds}s")
    table.add_row("Max Sessions", str(settings.session.max_sessions or "unlimited"))

    console.print(table)
    return 0


def cmd_help(args: list[str]) -> int:
    """Show help information."""
    help_text = """
# chatgate CLI

## Commands

### serve [--host HOST] [--port PORT] [--reload]
Run the HTTP gateway.

### config
Show the effective configuration (environment and `.env`).

### help
Show this help message.

## Environment

Settings are read from the environment or a `.env` file:
`SESSION_*`, `ENGINE_*` and `API_*` variables.
"""
    console.print(Markdown(help_text))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    load_dotenv()
    argv = argv if argv is not None else sys.argv[1:]

    if not argv:
        return cmd_help([])

    command = argv[0]
    args = argv[1:]

    commands = {
        "serve": cmd_serve,
        "config": cmd_config,
        "help": cmd_help,
        "--help": cmd_help,
        "-h": cmd_help,
    }

    if command in commands:
        return commands[command](args)
    else:
        console.print(f"[red]Unknown command: {command}[/red]")
        console.print("Run 'chatgate help' for usage information")
        return 1


if __name__ == "__main__":
    sys.exit(main())
