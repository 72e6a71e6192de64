"""
Command line entry point for the ledger back office.

Usage:
    ledger serve --port 8000
    ledger init-db
    ledger create-user ops@example.com "Ops Desk"
    ledger set-status ops@example.com inactive
    ledger issue-token ops@example.com
    ledger cache-status
    ledger cache-clear "cache:/api/travel-data/*"
    ledger import-file ledger.xlsx --user ops@example.com
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .api.deps import AppServices
from .cache import CacheConnectionError, CacheStore
from .database import Database, TravelDataRepository, UploadSessionRepository, User, UserRepository
from .models.enums import UserRole, UserStatus
from .services.ingest import IngestError, process_upload
from .utils.config import AppConfig, get_config
from .utils.logging_config import configure_logging
from .utils.security import create_access_token

app = typer.Typer(
    help="Travel ledger back office: API server, accounts and cache tools",
    add_completion=False,
)
console = Console()


def _config() -> AppConfig:
    config = get_config()
    configure_logging(config.log_level, config.log_json)
    return config


async def _find_user(database: Database, identifier: str) -> Optional[User]:
    async with database.session() as session:
        users = UserRepository(session)
        if "@" in identifier:
            return await users.get_by_email(identifier)
        return await users.get(identifier)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the API server"""
    import uvicorn

    config = _config()
    console.print(Panel.fit(
        f"[bold cyan]Travel Ledger API[/bold cyan]\n"
        f"[dim]http://{host}:{port}  database: {config.database_url.split('@')[-1]}[/dim]",
        border_style="cyan",
        box=box.ROUNDED,
    ))
    uvicorn.run(
        "ledger.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


@app.command("init-db")
def init_db():
    """Create the database tables"""
    config = _config()

    async def run():
        database = Database(config.database_url, echo=config.database_echo)
        await database.open()
        await database.close()

    asyncio.run(run())
    console.print("[green]✓[/green] Database ready")


@app.command("create-user")
def create_user(
    email: str = typer.Argument(..., help="Login email"),
    name: str = typer.Argument(..., help="Display name"),
    role: UserRole = typer.Option(UserRole.USER, "--role", help="Account role"),
    inactive: bool = typer.Option(False, "--inactive", help="Create the account deactivated"),
):
    """Create a back-office account"""
    config = _config()

    async def run() -> Optional[User]:
        database = Database(config.database_url, echo=config.database_echo)
        await database.open()
        try:
            async with database.session() as session:
                users = UserRepository(session)
                if await users.get_by_email(email) is not None:
                    return None
                status = UserStatus.INACTIVE if inactive else UserStatus.ACTIVE
                return await users.create(email, name, role.value, status.value)
        finally:
            await database.close()

    user = asyncio.run(run())
    if user is None:
        console.print(f"[red]✗[/red] A user with email {email} already exists")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Created {user.email} [dim]({user.id})[/dim]")


@app.command("set-status")
def set_status(
    user: str = typer.Argument(..., help="User email or id"),
    status: UserStatus = typer.Argument(..., help="active or inactive"),
):
    """Activate or deactivate an account"""
    config = _config()

    async def run() -> Optional[User]:
        database = Database(config.database_url, echo=config.database_echo)
        await database.open()
        try:
            account = await _find_user(database, user)
            if account is None:
                return None
            async with database.session() as session:
                account = await session.merge(account)
                return await UserRepository(session).set_status(account, status.value)
        finally:
            await database.close()

    account = asyncio.run(run())
    if account is None:
        console.print(f"[red]✗[/red] No user {user}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {account.email} is now [bold]{account.status}[/bold]")


@app.command("issue-token")
def issue_token(
    user: str = typer.Argument(..., help="User email or id"),
    minutes: Optional[int] = typer.Option(None, "--minutes", help="Token lifetime"),
):
    """Issue an access token for an account"""
    config = _config()

    async def run() -> Optional[User]:
        database = Database(config.database_url, echo=config.database_echo)
        await database.open()
        try:
            return await _find_user(database, user)
        finally:
            await database.close()

    account = asyncio.run(run())
    if account is None:
        console.print(f"[red]✗[/red] No user {user}")
        raise typer.Exit(1)

    expires = timedelta(minutes=minutes) if minutes else None
    token = create_access_token(account.id, config, expires_delta=expires)
    # Plain output so the token can be captured by scripts
    typer.echo(token)


@app.command("cache-status")
def cache_status():
    """Show the response cache connection"""
    config = _config()

    async def run():
        store = CacheStore(config.cache_config())
        try:
            await store.connect()
        except CacheConnectionError:
            pass
        info = store.get_connection_info()
        await store.close()
        return info, store.config.default_ttl

    info, ttl = asyncio.run(run())
    table = Table(title="Response cache", box=box.ROUNDED)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("State", info["state"])
    table.add_row("Server", info["config"])
    table.add_row("Attempts", str(info["connection_attempts"]))
    table.add_row("TTL", f"{ttl}s")
    console.print(table)


@app.command("cache-clear")
def cache_clear(
    pattern: str = typer.Argument("cache:*", help="Glob pattern of keys to delete"),
):
    """Delete cached responses"""
    config = _config()

    async def run() -> int:
        async with CacheStore(config.cache_config()) as store:
            return await store.delete_matching(pattern)

    try:
        deleted = asyncio.run(run())
    except CacheConnectionError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Deleted {deleted} keys matching [bold]{pattern}[/bold]")


@app.command("import-file")
def import_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV or Excel ledger"),
    user: str = typer.Option(..., "--user", "-u", help="Owner email or id"),
):
    """Import a ledger file as a new upload session"""
    config = _config()

    try:
        parsed = process_upload(path.read_bytes(), path.name, config.upload_max_bytes)
    except IngestError as e:
        console.print(f"[red]✗[/red] {e} [dim]({e.code})[/dim]")
        raise typer.Exit(1)

    async def run() -> Optional[str]:
        services = AppServices.from_config(config)
        await services.open()
        try:
            owner = await _find_user(services.database, user)
            if owner is None:
                return None
            async with services.database.session() as session:
                upload = await UploadSessionRepository(session).create(
                    filename=path.name,
                    size=path.stat().st_size,
                    user_id=owner.id,
                    total_records=parsed.total_records,
                    opening_balance=parsed.opening_balance,
                )
                await TravelDataRepository(session).bulk_create(
                    parsed.entries, session_id=upload.id, owner_id=owner.id
                )
            await services.invalidator.invalidate_session(upload.id)
            return upload.id
        finally:
            await services.close()

    session_id = asyncio.run(run())
    if session_id is None:
        console.print(f"[red]✗[/red] No user {user}")
        raise typer.Exit(1)

    summary = parsed.summary()
    table = Table(title=f"Imported {path.name}", box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Session", session_id)
    table.add_row("Records", str(parsed.total_records))
    table.add_row("Revenue", f"{summary['total_revenue']:,.2f}")
    table.add_row("Expenses", f"{summary['total_expenses']:,.2f}")
    if parsed.opening_balance:
        table.add_row("Opening balance", f"{parsed.opening_balance['amount']:,.2f}")
    console.print(table)


if __name__ == "__main__":
    app()
