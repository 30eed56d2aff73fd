"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from jellyfin_sync import __version__
from jellyfin_sync.api.auth import JellyfinAuthenticator
from jellyfin_sync.api.client import JellyfinClient
from jellyfin_sync.core.library_manager import LibraryManager
from jellyfin_sync.core.notifications import FanoutNotifier, LoggingNotifier
from jellyfin_sync.media.downloader import Downloader
from jellyfin_sync.models.config import SyncConfig
from jellyfin_sync.storage.config_manager import ConfigManager, default_data_root
from jellyfin_sync.storage.credentials import CredentialStore
from jellyfin_sync.storage.repository import DEFAULT_PAGE_SIZE, LibraryRepository

from .formatters import (
    print_album_details,
    print_config,
    print_search_results,
    print_stats_table,
    print_summary_panel,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("jellyfin_sync")

app = typer.Typer(
    name="jellyfin-sync",
    help=(
        "Download albums from a Jellyfin server for offline listening. Use"
        " 'jellyfin-sync <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "jellyfin-sync"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"
SESSION_FILE = CONFIG_DIR / "session.json"


def _load_config() -> SyncConfig:
    return ConfigManager(CONFIG_FILE).load_config()


def _build_client(config: SyncConfig) -> JellyfinClient:
    return JellyfinClient(
        config.server_url,
        client_name=config.client_name,
        device_name=config.device_name,
        device_id=config.device_id,
        downloader=Downloader(chunk_size=config.chunk_size),
    )


def _verbose() -> bool:
    return log.getEffectiveLevel() <= logging.INFO


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Jellyfin offline library CLI"""
    if version:
        console.print(f"[bold]jellyfin-sync[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    log.setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]jellyfin-sync init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager.load_config()
        print_config(CONFIG_FILE, config_manager.get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    server_url: str = typer.Argument(..., help="Base URL of the Jellyfin server."),
    data_root: Path | None = typer.Option(
        None,
        "--data-root",
        help="Where the library database and downloads are stored.",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Create a configuration pointing at a Jellyfin server."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "server_url": server_url.strip().rstrip("/"),
        "device_id": uuid.uuid4().hex,
        "data_root": str(data_root or default_data_root()),
    }
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    # Validates the freshly written file.
    _load_config()
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Next, log in: [cyan]jellyfin-sync login <username>[/cyan]")


@app.command()
def login(
    username: str = typer.Argument(..., help="Jellyfin user name."),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Jellyfin password."
    ),
):
    """Authenticate with the server and store the access token."""
    config = _load_config()

    async def _login_async():
        client = _build_client(config)
        try:
            authenticator = JellyfinAuthenticator(client, CredentialStore(SESSION_FILE))
            return await authenticator.login(username, password)
        finally:
            await client.close()

    user = asyncio.run(_login_async())
    ConfigManager(CONFIG_FILE).update_values(
        username=username, user_id=user.get("Id") or ""
    )
    console.print(f"[green]✓ Logged in as[/green] [bold]{user.get('Name', username)}[/bold]")


@app.command()
def logout():
    """Forget the stored access token."""
    config = _load_config()
    authenticator = JellyfinAuthenticator(
        _build_client(config), CredentialStore(SESSION_FILE)
    )
    authenticator.logout()
    console.print("[green]✓ Logged out.[/green]")


async def _run_downloads(config: SyncConfig, enqueue) -> bool:
    """Runs a download session, printing the summary. Returns True if nothing failed."""
    client = _build_client(config)
    credentials = CredentialStore(SESSION_FILE)

    with ProgressManager(console) as progress_manager:
        sinks = [progress_manager]
        if _verbose():
            sinks.append(LoggingNotifier())
        manager = LibraryManager.from_config(
            config, client, credentials, FanoutNotifier(*sinks)
        )
        start_time = time.monotonic()
        try:
            async with manager:
                enqueue(manager)
                await manager.wait_until_idle()
        finally:
            await client.close()
        duration = time.monotonic() - start_time

    print_summary_panel(manager.stats, duration)
    return not progress_manager.failures


@app.command(name="download")
def download_command(
    album_ids: list[str] = typer.Argument(  # noqa: B008
        ..., help="One or more Jellyfin album IDs."
    ),
):
    """Download albums into the offline library."""
    config = _load_config()

    def _enqueue(manager: LibraryManager):
        for album_id in album_ids:
            manager.enqueue_album_download(album_id, config.user_id or None)

    if not asyncio.run(_run_downloads(config, _enqueue)):
        raise typer.Exit(code=1)


@app.command(name="track")
def track_command(
    track_id: str = typer.Argument(..., help="Jellyfin item ID of the track."),
    destination: Path = typer.Argument(..., help="File to write the track to."),
):
    """Download a single track to an explicit path."""
    config = _load_config()

    def _enqueue(manager: LibraryManager):
        manager.enqueue_track_download(track_id, destination.expanduser())

    if not asyncio.run(_run_downloads(config, _enqueue)):
        raise typer.Exit(code=1)


@app.command()
def delete(
    album_id: str = typer.Argument(..., help="Jellyfin ID of a downloaded album."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Delete a downloaded album's files and library entries."""
    config = _load_config()

    async def _delete_async():
        repository = LibraryRepository(config.database_path)
        album = await repository.find_album_by_remote_id(album_id)
        if (
            album is not None
            and not force
            and not typer.confirm(f"Delete '{album.artist} - {album.title}' from disk?")
        ):
            console.print("[yellow]Operation cancelled.[/yellow]")
            raise typer.Abort()

        client = _build_client(config)
        manager = LibraryManager(
            client,
            repository,
            CredentialStore(SESSION_FILE),
            LoggingNotifier(),
            config.downloads_dir,
        )
        try:
            await manager.delete_album(album_id)
        finally:
            await client.close()

    asyncio.run(_delete_async())
    console.print(f"[green]✓ Album '{album_id}' deleted.[/green]")


def _query_manager(config: SyncConfig) -> tuple[LibraryManager, JellyfinClient]:
    client = _build_client(config)
    manager = LibraryManager.from_config(
        config, client, CredentialStore(SESSION_FILE), LoggingNotifier()
    )
    return manager, client


@app.command()
def search(
    query: str = typer.Argument("", help="Album title or artist. Empty lists recent albums."),
    offline: bool = typer.Option(
        False, "--offline", help="Search the local library only."
    ),
    limit: int = typer.Option(DEFAULT_PAGE_SIZE, "--limit", "-l", min=1),
    offset: int = typer.Option(0, "--offset", min=0),
):
    """Search albums on the server, or in the local library."""
    config = _load_config()

    async def _search_async():
        manager, client = _query_manager(config)
        try:
            if offline:
                return await manager.search_offline(query, limit, offset)
            return await manager.search_albums(
                query, limit, offset, config.user_id or None
            )
        finally:
            await client.close()

    print_search_results(asyncio.run(_search_async()), offline=offline)


@app.command()
def recent(
    limit: int = typer.Option(DEFAULT_PAGE_SIZE, "--limit", "-l", min=1),
    offset: int = typer.Option(0, "--offset", min=0),
):
    """List the most recently updated albums in the local library."""
    config = _load_config()

    async def _recent_async():
        manager, client = _query_manager(config)
        try:
            return await manager.recent_offline(limit, offset)
        finally:
            await client.close()

    print_search_results(asyncio.run(_recent_async()), offline=True)


@app.command()
def show(album_id: str = typer.Argument(..., help="Jellyfin album ID.")):
    """Show a cached album and its tracks."""
    config = _load_config()

    async def _show_async():
        manager, client = _query_manager(config)
        try:
            return await manager.album_details(album_id)
        finally:
            await client.close()

    print_album_details(asyncio.run(_show_async()))


@app.command()
def stats():
    """Show statistics from the library database."""
    config = _load_config()
    repository = LibraryRepository(config.database_path)
    print_stats_table(asyncio.run(repository.stats()))


@app.command()
def vacuum():
    """Optimize the library database."""
    config = _load_config()
    console.print("[cyan]Optimizing library database...[/cyan]")
    repository = LibraryRepository(config.database_path)
    asyncio.run(repository.vacuum())
    console.print("[green]✓ Database optimized.[/green]")
