"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from jellyfin_sync.models.library import AlbumDetails, AlbumSearchResult
from jellyfin_sync.models.stats import SyncStats
from jellyfin_sync.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "UnauthenticatedError": [
            "• Run `jellyfin-sync login <username>` to store an access token.",
        ],
        "AuthenticationError": [
            "• Check the username and password.",
            "• Make sure the account is enabled on the Jellyfin server.",
        ],
        "RemoteApiError": [
            "• The Jellyfin server rejected the request.",
            "• Your access token may have been revoked. Log in again.",
        ],
        "NotFoundError": [
            "• Check the album ID with `jellyfin-sync search`.",
            "• Only downloaded albums can be deleted.",
        ],
        "ConfigurationError": [
            "• Run `jellyfin-sync init <server-url>` to create a configuration.",
            "• Use `jellyfin-sync --show-config` to inspect the current settings.",
        ],
        "LocalIOError": [
            "• Check free disk space and permissions of the data directory.",
        ],
        "RepositoryError": [
            "• The library database may be locked or corrupted.",
            "• Try `jellyfin-sync vacuum`.",
        ],
        "ClientConnectorError": [
            "• The Jellyfin server could not be reached.",
            "• Check the server URL and your network connection.",
            "• Use `search --offline` to browse downloaded albums.",
        ],
        "TimeoutError": [
            "• The server took too long to answer.",
            "• Check your network connection and try again.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in config_data.items())
    console.print(
        Panel(
            content,
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_search_results(result: AlbumSearchResult, offline: bool = False):
    """Displays album search results with their download state."""
    console = Console()
    if not result.items:
        console.print("[yellow]No albums found.[/yellow]")
        return

    source = "local library" if offline else "server"
    table = Table(
        title=f"Albums ({source}, {result.total_record_count} total)",
        box=box.SIMPLE_HEAVY,
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column("Album", style="bold")
    table.add_column("Artist", style="cyan")
    table.add_column("ID", style="dim")
    table.add_column("Offline", justify="center")

    for i, item in enumerate(result.items, result.start_index + 1):
        table.add_row(
            str(i),
            item.name,
            item.album_artist,
            item.id,
            "[green]✓[/green]" if item.downloaded else "",
        )
    console.print(table)


def print_album_details(details: AlbumDetails):
    """Displays a cached album and the local paths of its tracks."""
    console = Console()
    album = details.album
    state = (
        f"[green]Downloaded[/green] to [dim]{album.local_directory}[/dim]"
        if album.local_directory
        else "[yellow]Not downloaded[/yellow]"
    )

    table = Table(box=box.SIMPLE, show_header=True)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Track")
    table.add_column("File", style="dim")
    for track in details.tracks:
        table.add_row(
            str(track.track_index),
            track.name,
            Path(track.local_path).name if track.local_path else "[red]missing[/red]",
        )

    console.print(
        Panel(
            table,
            title=f"[bold]{album.artist} - {album.title}[/bold]",
            subtitle=state,
            border_style="cyan",
        )
    )


def print_stats_table(stats_data: dict[str, Any]):
    """Displays library database statistics."""
    console = Console()
    console.print(
        "\n[bold]Albums in Library:[/] "
        f"[green]{stats_data['downloaded_albums']}[/green] downloaded "
        f"of {stats_data['total_albums']} cached, "
        f"[green]{stats_data['downloaded_tracks']}[/green] tracks on disk\n"
    )

    if top_artists := stats_data.get("top_artists"):
        table = Table(title="Top 10 Artists")
        table.add_column("Rank", style="dim")
        table.add_column("Artist", style="cyan")
        table.add_column("Albums", justify="right", style="green")
        for i, (artist, count) in enumerate(top_artists, 1):
            table.add_row(str(i), artist, str(count))
        console.print(table)
    else:
        console.print("[dim]No albums downloaded yet.[/dim]")


def print_summary_panel(stats: SyncStats, duration_s: float):
    """Displays a final summary of the download session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=22)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Albums Downloaded:", f"[bold green]{stats.albums_completed}[/bold green]"
    )
    if stats.albums_already_downloaded > 0:
        stats_table.add_row(
            "○ Already Offline:", f"[yellow]{stats.albums_already_downloaded}[/yellow]"
        )
    if stats.albums_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.albums_failed}[/bold red]")

    stats_table.add_row("", "")
    stats_table.add_row("Tracks:", str(stats.tracks_downloaded))
    stats_table.add_row("Downloaded Size:", format_size(stats.total_size_downloaded))
    stats_table.add_row("Duration:", format_duration(duration_s))
    if duration_s > 0 and stats.total_size_downloaded > 0:
        stats_table.add_row(
            "Average Speed:", f"{format_size(stats.total_size_downloaded / duration_s)}/s"
        )

    border = "red" if stats.albums_failed else "green"
    console.print(
        Panel(
            stats_table,
            title="[bold]Download Summary[/bold]",
            border_style=border,
            expand=False,
        )
    )
