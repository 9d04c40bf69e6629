import hashlib
import subprocess
import sys
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()

app = typer.Typer(
    name="dropshot",
    help="dropshot - link and file drop service",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich"
)


def print_banner():
    title = Text("dropshot", style="bold #FFD700")
    console.print(Panel(title, border_style="cyan", padding=(0, 2)))
    console.print()


def api_client(url: str, token: str) -> httpx.Client:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.Client(base_url=url.rstrip("/"), headers=headers, timeout=10.0)


def read_blacklist(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[bold red]ERROR[/bold red] Could not read {path}: {e}\n")
        raise typer.Exit(code=1)


@app.command()
def serve(
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind"),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Reload on code changes")
):
    """Start the HTTP server"""
    print_banner()

    info_table = Table(box=None, show_header=False, padding=(0, 2), show_lines=False)
    info_table.add_row("[dim]>[/dim] [bold]Entries:[/bold]", f"[cyan]http://localhost:{port}/<name>[/cyan]")
    info_table.add_row("[dim]>[/dim] [bold]Admin API:[/bold]", f"[cyan]http://localhost:{port}/admin/api/entries[/cyan]")
    info_table.add_row("[dim]>[/dim] [bold]Health:[/bold]", f"[cyan]http://localhost:{port}/health[/cyan]")
    console.print(Panel(info_table, border_style="cyan", padding=(1, 2)))
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    cmd = [sys.executable, "-m", "uvicorn", "dropshot.main:app", "--host", host, "--port", str(port)]
    if reload:
        cmd.append("--reload")

    try:
        subprocess.run(cmd, cwd=Path.cwd())
    except KeyboardInterrupt:
        console.print("\n[dim]Server stopped[/dim]\n")


@app.command()
def parse(
    path: Path = typer.Argument(..., help="Blacklist file"),
    databases: list[str] = typer.Option([], "--db", help="Configured database names")
):
    """Show how a blacklist file is understood"""
    from dropshot.security.blacklist import parse_blacklist

    blacklist = parse_blacklist(read_blacklist(path), databases)

    table = Table(box=None, show_header=True, header_style="bold cyan", padding=(0, 2))
    table.add_column("#", justify="right", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Rule")
    table.add_column("Effect")
    table.add_column("Comment", style="dim")

    for index, rule in enumerate(blacklist, start=1):
        if not rule.matchable:
            effect = "[red]error[/red]" if rule.comment.startswith("Error:") else ""
        else:
            effect = "[green]allow[/green]" if rule.negated else "[red]deny[/red]"
        table.add_row(str(index), type(rule).__name__, rule.payload(), effect, rule.comment)

    console.print()
    console.print(table)
    console.print(f"\n[bold]{blacklist.item_count}[/bold] matchable rules\n")


@app.command()
def check(
    path: Path = typer.Argument(..., help="Blacklist file"),
    ip: str = typer.Argument(..., help="Requester address"),
    geo_db: str = typer.Option(None, "--geo-db", help="MaxMind City database")
):
    """Evaluate a blacklist file against an address"""
    import geoip2.database
    from dropshot.security.blacklist import parse_blacklist
    from dropshot.security.evaluator import BlacklistContext, allow
    from dropshot.security.geolocation import GeoLocator
    from dropshot.security.ip_databases import IPDatabases

    databases = IPDatabases.from_settings()
    geolocator = GeoLocator(geoip2.database.Reader(geo_db)) if geo_db else GeoLocator.from_settings()

    blacklist = parse_blacklist(read_blacklist(path), databases.names)
    context = BlacklistContext(geolocator=geolocator, databases=databases)

    try:
        allowed = allow(blacklist, ip, context)
    except ValueError:
        console.print(f"[bold red]ERROR[/bold red] Invalid address: {ip}\n")
        raise typer.Exit(code=1)

    if allowed:
        console.print(f"[bold green]ALLOW[/bold green] {ip}\n")
    else:
        console.print(f"[bold red]DENY[/bold red] {ip}\n")
        raise typer.Exit(code=2)


@app.command()
def entries(
    url: str = typer.Option("http://localhost:8080", "--url", help="dropshot server"),
    token: str = typer.Option("", "--token", envvar="DROPSHOT_ADMIN_TOKEN", help="Admin token"),
    owner: str = typer.Option(None, "--owner", help="Only entries published with this owner token")
):
    """List published entries"""
    try:
        with api_client(url, token) as client:
            response = client.get("/admin/api/entries", params={"owner": owner} if owner else None)
    except httpx.ConnectError:
        console.print("[bold red]ERROR[/bold red] Could not connect to the server\n")
        raise typer.Exit(code=1)

    if response.status_code != 200:
        console.print(f"[bold red]ERROR[/bold red] {response.status_code}: {response.text}\n")
        raise typer.Exit(code=1)

    table = Table(box=None, show_header=True, header_style="bold cyan", padding=(0, 2))
    table.add_column("Name", style="cyan")
    table.add_column("Source")
    table.add_column("Access", justify="right")
    table.add_column("Denied", justify="right", style="red")
    table.add_column("Training")
    table.add_column("On deny", style="dim")

    for entry in response.json():
        if entry["url"]:
            source = f"{entry['url']} ({'redirect' if entry['redirect'] else 'proxy'})"
        else:
            source = f"{entry['filename']} ({entry['content_type']})"
        access = str(entry["access_count"])
        if entry["access_expire"]:
            access += f"/{entry['access_expire_count']}"
        table.add_row(
            entry["name"],
            source,
            access,
            str(entry["access_blacklist_count"]),
            "[yellow]on[/yellow]" if entry["access_train"] else "off",
            entry["access_redirect_on_deny"],
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def train(
    name: str = typer.Argument(..., help="Entry name"),
    url: str = typer.Option("http://localhost:8080", "--url", help="dropshot server"),
    token: str = typer.Option("", "--token", envvar="DROPSHOT_ADMIN_TOKEN", help="Admin token")
):
    """Toggle training mode of an entry"""
    try:
        with api_client(url, token) as client:
            response = client.post(f"/admin/api/entries/{name}/train")
    except httpx.ConnectError:
        console.print("[bold red]ERROR[/bold red] Could not connect to the server\n")
        raise typer.Exit(code=1)

    if response.status_code != 200:
        console.print(f"[bold red]ERROR[/bold red] {response.status_code}: {response.text}\n")
        raise typer.Exit(code=1)

    state = "[yellow]on[/yellow]" if response.json()["access_train"] else "off"
    console.print(f"[bold green]OK[/bold green] Training for [cyan]{name}[/cyan] is {state}\n")


@app.command()
def digest(token: str = typer.Argument(..., help="Admin token to hash")):
    """Print the ADMIN_TOKEN_DIGEST value for a token"""
    console.print(hashlib.sha256(token.encode("utf-8")).hexdigest())


if __name__ == "__main__":
    app()
