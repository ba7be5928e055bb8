"""
Click CLI for the Synaptik MCP server.

Resolves settings (YAML file, environment, options), configures logging to
stderr, and runs the MCP server over stdio, SSE or streamable HTTP.
`--check-health` checks the Synaptik readiness endpoint instead of serving.
"""

import asyncio
import json
import logging
import socket
import sys
from typing import Any, Dict

import click

from .client import SynaptikApiClient
from .config import LOG_LEVELS, ConfigurationError, Settings, load_settings, set_settings
from .mcp_server import create_mcp_server

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class PortConflictError(Exception):
    """Raised when the requested SSE/HTTP port is already in use."""


def check_port_available(host: str, port: int) -> bool:
    """True if a TCP socket can be bound to host:port right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
            return True
        except OSError:
            return False


def configure_logging(level: str) -> None:
    # stdout carries the stdio MCP transport, so logs must go to stderr
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        format=LOG_FORMAT, stream=sys.stderr, force=True)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def print_startup_banner(settings: Settings, transport: str, host: str, port: int) -> None:
    click.echo("=" * 60, err=True)
    click.echo(f"{settings.server_name}", err=True)
    click.echo(f"  Synaptik API:   {settings.api_url}", err=True)
    if transport == "stdio":
        click.echo("  MCP transport:  stdio", err=True)
    else:
        path = "/sse" if transport == "sse" else "/mcp"
        click.echo(f"  MCP transport:  {transport} on http://{host}:{port}{path}", err=True)
    concurrency = settings.link_max_concurrency or "unbounded"
    click.echo(f"  Link fan-out:   {concurrency}", err=True)
    click.echo(f"  Timezone:       {settings.timezone}", err=True)
    click.echo("=" * 60, err=True)


async def run_health_check(settings: Settings) -> Dict[str, Any]:
    async with SynaptikApiClient(base_url=settings.api_url, timeout=settings.api_timeout) as client:
        readiness = await client.check_readiness()
    return {"api_url": settings.api_url, **readiness}


async def start_mcp_server(settings: Settings, transport: str, host: str, port: int) -> None:
    server = create_mcp_server(settings)
    async with server.lifecycle_manager():
        await server.start_server(transport=transport, host=host, port=port)


@click.command()
@click.option("--api-url", default=None, help="Synaptik API base URL [env: SYNAPTIK_API_URL]")
@click.option("--mcp-transport", type=click.Choice(["stdio", "sse", "http"], case_sensitive=False),
              default="stdio", show_default=True, help="MCP transport mode")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address for sse/http")
@click.option("--port", type=int, default=8000, show_default=True, help="Port for sse/http")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML settings file")
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False), default=None,
              help="Log level [env: SYNAPTIK_LOG_LEVEL]")
@click.option("--max-concurrency", type=click.IntRange(min=0), default=None,
              help="Max in-flight link/unlink calls per batch, 0 = unbounded")
@click.option("--batch-timeout", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Overall deadline for one link/unlink batch, seconds")
@click.option("--timezone", default=None, help="Timezone for overdue/today queries")
@click.option("--check-health", is_flag=True, help="Check the Synaptik readiness endpoint and exit")
@click.option("--verbose", "-v", is_flag=True, help="Shortcut for --log-level DEBUG")
def main(api_url, mcp_transport, host, port, config_path, log_level, max_concurrency,
         batch_timeout, timezone, check_health, verbose):
    """Run the Synaptik MCP server."""
    try:
        settings = load_settings(
            config_path,
            api_url=api_url,
            log_level="DEBUG" if verbose else log_level,
            link_max_concurrency=max_concurrency,
            batch_timeout=batch_timeout,
            timezone=timezone,
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    configure_logging(settings.log_level)
    set_settings(settings)

    if check_health:
        result = asyncio.run(run_health_check(settings))
        click.echo(json.dumps(result))
        sys.exit(0 if result["status"] == "healthy" else 1)

    transport = mcp_transport.lower()
    if transport != "stdio" and not check_port_available(host, port):
        raise click.ClickException(str(PortConflictError(f"Port {port} on {host} is already in use")))

    print_startup_banner(settings, transport, host, port)
    try:
        asyncio.run(start_mcp_server(settings, transport, host, port))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting")


if __name__ == "__main__":
    main()
