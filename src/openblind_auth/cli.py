"""Typer CLI for OpenBlind auth."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="openblind-auth", help="OpenBlind auth: sessions, roles and permissions")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the OpenBlind auth API server."""
    import uvicorn
    from openblind_auth.app import create_app

    console.print(f"[bold green]Starting OpenBlind auth on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


async def _init_db() -> list[tuple[str, int]]:
    from openblind_auth.deps import get_db, get_role_service

    db = get_db()
    await db.init()
    try:
        await db.create_all()
        roles = get_role_service()
        async with db.get_session() as session:
            await roles.seed_defaults(session)
            summary = []
            for role in await roles.list_roles(session):
                granted = await roles.permissions_of_role(session, role.name)
                summary.append((role.name, len(granted)))
        return summary
    finally:
        await db.close()


@app.command("init-db")
def init_db():
    """Create tables and seed the default roles and permissions."""
    summary = asyncio.run(_init_db())

    table = Table(title="Roles")
    table.add_column("Role")
    table.add_column("Permissions", justify="right")
    for name, count in summary:
        table.add_row(name, str(count))
    console.print(table)
    console.print("[bold green]Database initialized[/bold green]")


async def _create_admin(email: str, password: str, display_name: str) -> str:
    from openblind_auth.common.config import get_settings
    from openblind_auth.deps import get_db, get_identity_service, get_role_service
    from openblind_auth.identity.models import IdentityRole
    from openblind_auth.identity.passwords import hash_password

    db = get_db()
    await db.init()
    try:
        await db.create_all()
        roles = get_role_service()
        async with db.get_session() as session:
            await roles.seed_defaults(session)
            password_hash = await hash_password(password, get_settings().bcrypt_rounds)
            identity = await get_identity_service().create(
                session, email, password_hash,
                role=IdentityRole.ADMIN, display_name=display_name,
            )
            await roles.assign(session, identity.id, IdentityRole.ADMIN.value)
            return identity.id
    finally:
        await db.close()


@app.command("create-admin")
def create_admin(
    email: str = typer.Argument(..., help="Admin email"),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True, help="Admin password"
    ),
    display_name: str = typer.Option("", help="Display name"),
):
    """Create an admin identity."""
    from openblind_auth.common.exceptions import DuplicateEmailError

    try:
        identity_id = asyncio.run(_create_admin(email, password, display_name))
    except DuplicateEmailError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1)
    console.print(f"[bold green]Admin created[/bold green] {identity_id}")


async def _sweep() -> int:
    from openblind_auth.deps import get_db, get_session_sweeper

    db = get_db()
    await db.init()
    try:
        return await get_session_sweeper().run_once()
    finally:
        await db.close()


@app.command()
def sweep():
    """Delete expired sessions once and report how many were removed."""
    removed = asyncio.run(_sweep())
    console.print(f"[bold]{removed}[/bold] expired sessions removed")


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check OpenBlind auth server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
