import functools
import logging
import time

import click
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shared import config
from shared.api_client import ApiClient
from shared.exceptions import SoundspotsError
from shared.models import ItemType
from shared.storage import SessionStorage
from session import SessionStore
from repositories import (
    AudioItemRepository,
    FavoritesRepository,
    SoundspotRepository,
    SubscriptionRepository,
)
from .audio_session import AudioSessionManager, PlaybackState

# Try to import engine, handle missing libmpv
try:
    from .engine import MpvBackend
    MPV_AVAILABLE = True
except OSError:
    MPV_AVAILABLE = False

console = Console()
logger = logging.getLogger(__name__)


class App:
    """Everything a command needs, wired to one API client and one session store."""

    def __init__(self, api: ApiClient, storage):
        self.api = api
        self.session = SessionStore(api, storage)
        self.session.load()
        self.soundspots = SoundspotRepository(api, self.session)
        self.audio_items = AudioItemRepository(api, self.session)
        self.favorites = FavoritesRepository(api, self.session)
        self.subscriptions = SubscriptionRepository(api, self.session)

    @classmethod
    def create(cls, api_url=None) -> 'App':
        return cls(ApiClient(base_url=api_url), SessionStorage(config.CONFIG_DIR))


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def handle_errors(fn):
    """Print the user-facing message of a client error and exit non-zero."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SoundspotsError as e:
            console.print(f"[red]{e.message}[/red]")
            raise SystemExit(1)
    return wrapper


def _fmt_time(seconds: float) -> str:
    return f"{int(seconds // 60)}:{int(seconds % 60):02d}"


def _spots_table(title, spots) -> Table:
    table = Table(title=f"{title} ({len(spots)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold white")
    table.add_column("Location", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Items", style="magenta", justify="right")
    for s in spots:
        table.add_row(
            s.id, s.name,
            f"{s.location.latitude:.5f}, {s.location.longitude:.5f}",
            s.status.value, str(s.audio_items_count),
        )
    return table


def _items_table(title, items) -> Table:
    table = Table(title=f"{title} ({len(items)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold white")
    table.add_column("Soundspot", style="green")
    table.add_column("Rating", style="yellow")
    table.add_column("Plays", style="magenta", justify="right")
    table.add_column("Duration", style="magenta")
    for i in items:
        table.add_row(
            i.id, i.title, i.soundspot.name or i.soundspot.id,
            f"{i.average_rating:.1f} ({i.total_reviews})", str(i.play_count),
            _fmt_time(i.duration) if i.duration else "-",
        )
    return table


@click.group()
@click.option('--api-url', default=None, help="Override the API base URL.")
@click.option('-v', '--verbose', is_flag=True, help="Show debug logging.")
@click.pass_context
def cli(ctx, api_url, verbose):
    """🎧 Soundspots audio tours"""
    _setup_logging(verbose)
    if ctx.obj is None:
        ctx.obj = App.create(api_url)


pass_app = click.make_pass_decorator(App)


# Sessions

@cli.command()
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True)
@pass_app
@handle_errors
def login(app, email, password):
    """Log in with a regular account."""
    user = app.session.login(email, password)
    console.print(f"[green]✓ Logged in as {user.name or user.email}[/green]")


@cli.command('admin-login')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True)
@pass_app
@handle_errors
def admin_login(app, email, password):
    """Log in with an admin or reviewer account."""
    admin = app.session.admin_login(email, password)
    console.print(f"[green]✓ Logged in as {admin.email} ({admin.role})[/green]")


@cli.command()
@click.option('--admin', is_flag=True, help="Log out the admin session instead.")
@pass_app
@handle_errors
def logout(app, admin):
    """Log out and forget the stored session."""
    if admin:
        app.session.admin_logout()
        console.print("[yellow]Admin session cleared.[/yellow]")
    else:
        app.session.logout()
        console.print("[yellow]Logged out.[/yellow]")


@cli.command()
@pass_app
def whoami(app):
    """Show the active sessions."""
    user = app.session.user
    admin = app.session.admin_user
    if user:
        console.print(Panel.fit(f"[bold]{user.name}[/bold]\n{user.email}\nrole: {user.role}",
                                title="User", border_style="green"))
    else:
        console.print("[dim]No user session.[/dim]")
    if admin:
        console.print(Panel.fit(f"[bold]{admin.name}[/bold]\n{admin.email}\nrole: {admin.role}",
                                title="Admin", border_style="magenta"))


# Browsing

@cli.command()
@pass_app
@handle_errors
def spots(app):
    """List approved soundspots."""
    result = app.soundspots.fetch_soundspots()
    if not result:
        console.print("[yellow]No soundspots yet.[/yellow]")
        return
    console.print(_spots_table("Soundspots", result))


@cli.command('my-spots')
@pass_app
@handle_errors
def my_spots(app):
    """List the spots you uploaded."""
    if not app.session.is_logged_in:
        console.print("[red]Please log in first.[/red]")
        raise SystemExit(1)
    console.print(_spots_table("My spots", app.soundspots.fetch_my_spots()))


@cli.command()
@click.option('--spot', 'spot_id', default=None, help="Only items of this soundspot.")
@pass_app
@handle_errors
def items(app, spot_id):
    """List audio items."""
    if spot_id:
        result = app.audio_items.fetch_by_soundspot(spot_id)
    else:
        result = app.audio_items.fetch_audio_items()
    console.print(_items_table("Audio items", result))


@cli.command()
@pass_app
@handle_errors
def favorites(app):
    """List your favorites."""
    if not app.session.is_logged_in:
        console.print("[red]Please log in first.[/red]")
        raise SystemExit(1)
    result = app.favorites.fetch_favorites()
    table = Table(title=f"Favorites ({len(result)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Item", style="bold white")
    table.add_column("Type", style="green")
    for f in result:
        table.add_row(f.id, f.item_id, f.item_type.value)
    console.print(table)


@cli.command()
@click.argument('item_id')
@click.option('--type', 'item_type', type=click.Choice([t.value for t in ItemType]),
              default=ItemType.SOUNDSPOT.value, show_default=True)
@pass_app
@handle_errors
def favorite(app, item_id, item_type):
    """Add or remove a favorite."""
    app.favorites.fetch_favorites()
    if app.favorites.toggle_favorite(item_id, item_type):
        console.print(f"[green]★ Added {item_id} to favorites[/green]")
    else:
        console.print(f"[yellow]☆ Removed {item_id} from favorites[/yellow]")


# Moderation

@cli.command()
@pass_app
@handle_errors
def pending(app):
    """List spots and audio items waiting for review."""
    console.print(_spots_table("Pending spots", app.soundspots.fetch_pending_spots()))
    console.print(_items_table("Pending audio items", app.audio_items.fetch_pending_items()))


@cli.command()
@click.argument('target_id')
@click.option('--approve/--reject', default=True)
@click.option('--notes', default=None)
@click.option('--item', 'is_item', is_flag=True, help="TARGET_ID is an audio item, not a spot.")
@pass_app
@handle_errors
def review(app, target_id, approve, notes, is_item):
    """Approve or reject a pending spot or audio item."""
    if is_item:
        app.audio_items.fetch_pending_items()
        app.audio_items.review_audio_item(target_id, approve, notes)
    else:
        app.soundspots.fetch_pending_spots()
        app.soundspots.review_spot(target_id, approve, notes)
    verdict = "[green]approved[/green]" if approve else "[red]rejected[/red]"
    console.print(f"{target_id} {verdict}")


# Playback

@cli.command()
@click.argument('target_id')
@click.option('--item', 'is_item', is_flag=True, help="TARGET_ID is an audio item, not a spot.")
@pass_app
@handle_errors
def play(app, target_id, is_item):
    """Play a soundspot's narration or an audio item."""
    if not MPV_AVAILABLE:
        console.print(Panel.fit(
            "[red bold]Missing System Dependency: libmpv[/red bold]\n\n"
            "Playback requires the [cyan]libmpv[/cyan] library.\n\n"
            "• Ubuntu/Debian: [green]sudo apt install libmpv2[/green]\n"
            "• Fedora: [green]sudo dnf install mpv-libs[/green]\n"
            "• Arch: [green]sudo pacman -S mpv[/green]",
            border_style="red"
        ))
        raise SystemExit(1)

    if is_item:
        item = app.audio_items.get_audio_item(target_id)
        title, url, on_play = item.title, item.audio_url, app.audio_items.track_play
    else:
        spot = app.soundspots.get_soundspot(target_id)
        title, url, on_play = spot.name, spot.audio_url, None

    with AudioSessionManager(MpvBackend(), on_play=on_play) as audio:
        if not audio.play(target_id, url):
            console.print(f"[red]{audio.error}[/red]")
            raise SystemExit(1)

        console.print(f"[bold green]▶ Playing: {title}[/bold green]")
        try:
            with Live(refresh_per_second=4) as live:
                while audio.state in (PlaybackState.LOADING, PlaybackState.PLAYING):
                    curr = audio.position
                    total = audio.duration or 1
                    percent = min(100, (curr / total) * 100)

                    status = Text()
                    status.append(f"{_fmt_time(curr)} ", style="cyan")
                    status.append("━" * int(percent / 2), style="blue")
                    status.append(" " * (50 - int(percent / 2)), style="gray")
                    status.append(f" {_fmt_time(audio.duration)}", style="cyan")

                    live.update(Panel(status, title="Now Playing"))
                    time.sleep(0.25)
        except KeyboardInterrupt:
            console.print("\n[yellow]Stopped.[/yellow]")


# Subscriptions and connectivity

@cli.command()
@pass_app
@handle_errors
def plans(app):
    """List subscription plans."""
    result = app.subscriptions.fetch_plans()
    table = Table(title="Subscription plans")
    table.add_column("Plan", style="cyan")
    table.add_column("Name", style="bold white")
    table.add_column("Price", style="green")
    table.add_column("Features", style="dim")
    for p in result:
        table.add_row(p.id, p.name, p.price_formatted or f"{p.price:.2f}", ", ".join(p.features))
    console.print(table)


@cli.command()
@pass_app
def ping(app):
    """Check that the backend is reachable."""
    report = app.api.check_connection()
    style = "green" if report.success else "red"
    console.print(Panel.fit(f"{report.message}\n[dim]{report.url}[/dim]", border_style=style))
    if not report.success:
        raise SystemExit(1)


if __name__ == '__main__':
    cli()
