"""Typer CLI for Ballotguard."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="ballotguard", help="Ballotguard: vote integrity and election lifecycle engine")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Ballotguard API server."""
    import uvicorn
    from ballotguard.app import create_app

    console.print(f"[bold green]Starting Ballotguard on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def tick():
    """Run one election reconciliation tick against the configured database."""
    from ballotguard.deps import get_db, get_reconciler

    async def _run():
        db = get_db()
        await db.init()
        await db.create_all()
        try:
            return await get_reconciler().tick()
        finally:
            await db.close()

    report = asyncio.run(_run())
    table = Table(title="Reconciliation tick")
    table.add_column("Elections")
    table.add_column("Transitioned")
    table.add_column("Failed")
    table.add_row(str(report.total), str(report.transitioned), str(report.failed))
    console.print(table)
    if report.failed:
        raise typer.Exit(1)


@app.command()
def remind(hours: int = typer.Option(24, help="Look-ahead window in hours")):
    """Send reminders for election deadlines falling inside the window."""
    from datetime import timedelta

    from ballotguard.deps import get_db, get_reconciler

    async def _run():
        db = get_db()
        await db.init()
        await db.create_all()
        try:
            return await get_reconciler().send_deadline_reminders(
                horizon=timedelta(hours=hours),
            )
        finally:
            await db.close()

    report = asyncio.run(_run())
    table = Table(title="Deadline reminders")
    for column in ("Elections", "Reminders", "Delivered", "Failed"):
        table.add_column(column)
    table.add_row(
        str(report.elections), str(report.reminders), str(report.delivered), str(report.failed),
    )
    console.print(table)
    if report.failed:
        raise typer.Exit(1)


@app.command("purge-audit")
def purge_audit():
    """Delete audit entries past their retention date."""
    from ballotguard.deps import get_audit_service, get_db

    async def _run():
        db = get_db()
        await db.init()
        try:
            async with db.get_session() as session:
                return await get_audit_service().purge_expired(session)
        finally:
            await db.close()

    purged = asyncio.run(_run())
    console.print(f"[bold]{purged}[/bold] expired audit entries purged")


@app.command("generate-code")
def generate_code(
    count: int = typer.Option(1, min=1, max=1000, help="Number of codes"),
):
    """Generate secret codes (offline, no DB required)."""
    from ballotguard.secret_codes.generator import generate_code as _generate

    for _ in range(count):
        console.print(f"[bold]{_generate()}[/bold]")


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Ballotguard server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
