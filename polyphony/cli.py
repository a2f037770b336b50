"""Command-line interface for Polyphony."""

import logging
import sys
from typing import List, Optional

# Configure logging before importing polyphony - WARNING for normal runs
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("polyphony")

# Suppress noisy third-party loggers
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("requests").setLevel(logging.WARNING)
logging.getLogger("spotipy").setLevel(logging.WARNING)

import typer
from rich.console import Console
from rich.table import Table

from polyphony import Polyphony, __version__
from polyphony.app import PlaybackState
from polyphony.core.queue import LoopMode, PlayMode
from polyphony.models import SearchResults, SearchType, StreamQuality

app = typer.Typer(help="Polyphony - search, stream and queue music across services")
queue_app = typer.Typer(help="Manage the playback queue")
app.add_typer(queue_app, name="queue")
console = Console()

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to config file (defaults to ./polyphony.yaml when present)",
)

NOTHING_QUEUED = "[yellow]⚠[/yellow] Nothing queued - start with 'polyphony queue play'"


def debug_callback(value: bool):
    """Enable debug mode."""
    if value:
        logging.getLogger("polyphony").setLevel(logging.DEBUG)
        console.print("[dim]Debug mode enabled[/dim]")


@app.callback()
def common_options(
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Enable debug logging",
        callback=debug_callback,
        is_eager=True,
    ),
):
    """Polyphony - search, stream and queue music across services."""
    pass


def _print_state(state: Optional[PlaybackState]) -> None:
    if state is None:
        console.print("[yellow]⚠[/yellow] Queue finished - nothing is playing")
        return
    now = state.now_playing
    console.print(
        f"[green]▶[/green] [bold]{now.title}[/bold] - {now.artist}"
        f" [dim]({now.album}, {now.formatted_source}, #{now.index + 1})[/dim]"
    )
    cached = "cached" if state.stream.is_cached else "fresh"
    console.print(f"  [dim]{cached} {state.stream.quality.value} URL:[/dim] {state.stream.stream_url}")


def _print_results(results: SearchResults) -> None:
    if results.tracks:
        table = Table(title="Tracks")
        table.add_column("ID")
        table.add_column("Title")
        table.add_column("Artist")
        table.add_column("Album")
        table.add_column("Length")
        table.add_column("Quality")
        table.add_column("Source")
        for track in results.tracks:
            table.add_row(
                track.id,
                track.title,
                track.artist,
                track.album,
                track.formatted_duration,
                track.formatted_quality,
                track.formatted_source,
            )
        console.print(table)

    if results.albums:
        table = Table(title="Albums")
        table.add_column("ID")
        table.add_column("Title")
        table.add_column("Artist")
        table.add_column("Released")
        table.add_column("Source")
        for album in results.albums:
            table.add_row(
                album.id,
                album.title,
                album.artist,
                album.release_date or "",
                album.source.display_name if album.source else "",
            )
        console.print(table)

    if results.playlists:
        table = Table(title="Playlists")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Owner")
        table.add_column("Tracks")
        table.add_column("Source")
        for playlist in results.playlists:
            name = f"[red]{playlist.name}[/red]" if playlist.is_placeholder else playlist.name
            table.add_row(
                playlist.id,
                name,
                playlist.owner,
                str(playlist.track_count),
                playlist.formatted_source,
            )
        console.print(table)

    shown = len(results.tracks) + len(results.albums) + len(results.playlists)
    console.print(
        f"[dim]{shown} shown of ~{results.total} (offset {results.offset}, "
        f"from {', '.join(p.display_name for p in results.providers)})[/dim]"
    )
    for provider, reason in results.failed_providers.items():
        console.print(f"[yellow]⚠[/yellow] {provider} returned nothing: {reason}")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"[bold]Polyphony[/bold] v{__version__}")
    console.print("Streaming aggregation & playback queue engine")


@app.command()
def providers(config_path: Optional[str] = CONFIG_OPTION) -> None:
    """List configured providers and their auth status."""
    try:
        polyphony = Polyphony(config_path)
        status = polyphony.providers_status()
        if not status:
            console.print("[yellow]⚠[/yellow] No providers configured")
        for entry in status:
            auth = "[green]authenticated[/green]" if entry["authenticated"] else "[dim]anonymous[/dim]"
            kind = "full tracks" if entry["full_tracks"] else "previews"
            console.print(f"[green]✓[/green] {entry['name']} ({kind}, {auth})")
        polyphony.shutdown()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to load providers: {e}")
        sys.exit(1)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search text"),
    search_type: SearchType = typer.Option(SearchType.ALL, "--type", "-t", help="What to search for"),
    provider: Optional[List[str]] = typer.Option(
        None,
        "--provider",
        "-p",
        help="Provider to query (repeatable; defaults to all)",
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Page size"),
    offset: int = typer.Option(0, "--offset", help="Page offset"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Search every configured provider at once."""
    try:
        polyphony = Polyphony(config_path)
        results = polyphony.search(
            query,
            search_type=search_type,
            offset=offset,
            limit=limit,
            providers=provider or None,
        )
        if results.is_empty():
            console.print(f"[yellow]⚠[/yellow] No results for '{query}'")
        _print_results(results)
        polyphony.shutdown()
    except Exception as e:
        console.print(f"[red]✗[/red] Search failed: {e}")
        sys.exit(1)


@app.command()
def stream(
    track_id: str = typer.Argument(..., help="Provider track id"),
    provider: str = typer.Option(..., "--provider", "-p", help="Provider of the track"),
    quality: Optional[StreamQuality] = typer.Option(None, "--quality", "-q", help="Requested quality"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Resolve a playable stream URL for a track."""
    try:
        polyphony = Polyphony(config_path)
        resolved = polyphony.stream_url(track_id, provider, quality)
        console.print(f"[green]✓[/green] {resolved.stream_url}")
        console.print(f"[dim]expires {resolved.expires_at.isoformat()}[/dim]")
        polyphony.shutdown()
    except Exception as e:
        console.print(f"[red]✗[/red] Stream resolution failed: {e}")
        sys.exit(1)


@queue_app.command("play")
def queue_play(
    provider: str = typer.Argument(..., help="Provider of the album"),
    album_id: str = typer.Argument(..., help="Provider album id"),
    shuffle: bool = typer.Option(False, "--shuffle", "-s", help="Shuffle the album"),
    loop: Optional[LoopMode] = typer.Option(None, "--loop", "-l", help="Loop mode"),
    repeat: Optional[int] = typer.Option(None, "--repeat", "-r", help="Restarts for --loop repeat"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Queue an album and start playing it."""
    try:
        polyphony = Polyphony(config_path)
        try:
            state = polyphony.play_album(
                provider,
                album_id,
                play_mode=PlayMode.SHUFFLE if shuffle else PlayMode.NORMAL,
                loop_mode=loop,
                repeat_count=repeat,
            )
        finally:
            if not polyphony.queue.is_empty:
                polyphony.save_queue()
        _print_state(state)
        polyphony.shutdown()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to start playback: {e}")
        sys.exit(1)


@queue_app.command("next")
def queue_next(config_path: Optional[str] = CONFIG_OPTION) -> None:
    """Advance to the next track."""
    try:
        polyphony = Polyphony(config_path)
        if polyphony.restore_queue() is None:
            console.print(NOTHING_QUEUED)
            polyphony.shutdown()
            return
        try:
            state = polyphony.next()
        finally:
            # Keep the new position even when its stream cannot be resolved
            polyphony.save_queue()
        _print_state(state)
        polyphony.shutdown()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to advance: {e}")
        sys.exit(1)


@queue_app.command("prev")
def queue_prev(config_path: Optional[str] = CONFIG_OPTION) -> None:
    """Go back to the previous track."""
    try:
        polyphony = Polyphony(config_path)
        if polyphony.restore_queue() is None:
            console.print(NOTHING_QUEUED)
            polyphony.shutdown()
            return
        try:
            state = polyphony.previous()
        finally:
            # Keep the new position even when its stream cannot be resolved
            polyphony.save_queue()
        _print_state(state)
        polyphony.shutdown()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to go back: {e}")
        sys.exit(1)


@queue_app.command("show")
def queue_show(config_path: Optional[str] = CONFIG_OPTION) -> None:
    """Show the stored queue."""
    try:
        polyphony = Polyphony(config_path)
        polyphony.restore_queue()
        queue = polyphony.queue
        if queue.is_empty:
            console.print("[dim]Queue is empty[/dim]")
        else:
            title = queue.playlist_name or queue.id
            console.print(
                f"[bold]{title}[/bold] [dim]({queue.play_mode.value}, loop {queue.loop_mode.value})[/dim]"
            )
            for index, track in enumerate(queue.tracks()):
                marker = "[green]▶[/green]" if index == queue.current_index else " "
                console.print(f"{marker} {index + 1:>3}. {track} [dim]{track.formatted_duration}[/dim]")
        polyphony.shutdown()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to show queue: {e}")
        sys.exit(1)


@queue_app.command("stop")
def queue_stop(config_path: Optional[str] = CONFIG_OPTION) -> None:
    """Stop playback and forget the stored queue."""
    try:
        polyphony = Polyphony(config_path)
        polyphony.restore_queue()
        polyphony.stop()
        console.print("[green]✓[/green] Playback stopped")
        polyphony.shutdown()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to stop: {e}")
        sys.exit(1)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
