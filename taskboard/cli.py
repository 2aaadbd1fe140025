"""
Task board CLI.

Command-line interface for running and checking the service.
"""

import asyncio
import json
import sys
import time
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.engine import make_url

from taskboard import __version__
from taskboard.shared.config.settings import get_settings

app = typer.Typer(
    name="taskboard",
    help="Realtime task board CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Server Commands
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Port (defaults to PORT setting)"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the API and realtime feed."""
    import uvicorn

    settings = get_settings()
    bind_port = port or settings.port
    console.print(f"[blue]Starting task board on {host}:{bind_port} ({settings.environment})[/blue]")
    uvicorn.run(
        "taskboard.main:app",
        host=host,
        port=bind_port,
        reload=reload,
        ws_ping_interval=settings.ws_ping_interval,
        ws_ping_timeout=settings.ws_ping_timeout,
    )


@app.command()
def config():
    """Show effective settings and configuration problems."""
    settings = get_settings()

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.model_dump().items():
        if name == "database_url":
            value = make_url(value).render_as_string(hide_password=True)
        table.add_row(name, str(value))

    console.print(table)

    errors = settings.validate_production_settings()
    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/red]")
        raise typer.Exit(code=1)
    console.print("[green]✓ Configuration OK[/green]")


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Service base URL"),
):
    """Check service health."""

    async def _health() -> bool:
        table = Table(title="Service Health")
        table.add_column("Check", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Response Time", style="yellow")
        table.add_column("Details")

        healthy = True
        async with httpx.AsyncClient(base_url=url, timeout=5.0) as client:
            for name, path in (("Snapshot", "/"), ("Detailed", "/health/detailed")):
                start = time.perf_counter()
                try:
                    response = await client.get(path)
                except httpx.HTTPError as e:
                    healthy = False
                    table.add_row(name, f"✗ {type(e).__name__}", "-", str(e))
                    continue
                elapsed = (time.perf_counter() - start) * 1000

                body = response.json()
                details = (
                    f"store={body.get('storeReachable')} "
                    f"sessions={body.get('activeSessionCount')}"
                )
                if response.status_code == 200:
                    table.add_row(name, "✓ Healthy", f"{elapsed:.0f}ms", details)
                else:
                    healthy = False
                    table.add_row(name, f"✗ Status {response.status_code}", f"{elapsed:.0f}ms", details)

        console.print(table)
        return healthy

    if not asyncio.run(_health()):
        raise typer.Exit(code=1)


# =============================================================================
# WebSocket Commands
# =============================================================================

@app.command()
def ws_test(
    url: str = typer.Option("ws://localhost:8080/ws", help="Feed URL"),
    email: str = typer.Option(..., help="Identity claim sent at handshake"),
    listen: float = typer.Option(0.0, help="Seconds to keep printing events"),
):
    """Test realtime feed connectivity."""
    import websockets

    async def _test() -> None:
        target = f"{url}?email={email}"
        console.print(f"[blue]Testing WebSocket: {target}[/blue]")

        try:
            async with websockets.connect(target, close_timeout=5) as ws:
                greeting = await asyncio.wait_for(ws.recv(), timeout=5)
                console.print(f"[green]✓ Connected! {greeting}[/green]")

                await ws.send(json.dumps({"type": "ping"}))
                response = await asyncio.wait_for(ws.recv(), timeout=5)
                console.print(f"[green]✓ Heartbeat: {response}[/green]")

                deadline = time.monotonic() + listen
                while (remaining := deadline - time.monotonic()) > 0:
                    try:
                        event = await asyncio.wait_for(ws.recv(), timeout=remaining)
                    except asyncio.TimeoutError:
                        break
                    console.print(event)
        except asyncio.TimeoutError:
            console.print("[red]✗ Connection timed out[/red]")
            raise typer.Exit(code=1)
        except (OSError, websockets.WebSocketException) as e:
            console.print(f"[red]✗ Connection failed: {e}[/red]")
            raise typer.Exit(code=1)

    asyncio.run(_test())


@app.command()
def version():
    """Show version information."""
    table = Table(title="Task Board Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("taskboard", __version__)
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
