"""CLI entry point for Gmail Domain Cleaner."""

from __future__ import annotations

import click

from .auth import connect
from .cache import IndexCache
from .cleaner import Session, interactive_session, rebuild_index
from .config import Settings
from .display import console, display_domain_summary, format_age, format_size
from .errors import CacheIOError, RemoteCallError
from .logging_setup import configure_logging

_test_option = click.option("--test", "test_mode", is_flag=True, help="Index only a sample of the newest messages.")
_max_option = click.option(
    "-m",
    "--max-messages",
    default=0,
    type=click.IntRange(min=0),
    help="Index only the newest N messages (0 = whole mailbox).",
)


def _connect(settings: Settings, mailbox: str):
    try:
        return connect(settings, mailbox)
    except (FileNotFoundError, RemoteCallError) as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version="0.1.0", prog_name="gmail-domain-cleaner")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Gmail Domain Cleaner - group your mailbox by sender domain and clean it up."""
    settings = Settings.load()
    configure_logging(settings.log_dir, settings.log_level)
    ctx.obj = settings


@cli.command()
@click.argument("mailbox")
@_test_option
@_max_option
@click.option("--rebuild", is_flag=True, help="Ignore the cached index and rebuild it.")
@click.pass_obj
def run(settings: Settings, mailbox: str, test_mode: bool, max_messages: int, rebuild: bool) -> None:
    """Open the interactive domain overview for MAILBOX."""
    remote = _connect(settings, mailbox)
    interactive_session(
        settings,
        mailbox,
        remote,
        test_mode=test_mode,
        max_messages=max_messages,
        rebuild=rebuild,
    )


@cli.command()
@click.argument("mailbox")
@_test_option
@_max_option
@click.pass_obj
def index(settings: Settings, mailbox: str, test_mode: bool, max_messages: int) -> None:
    """Rebuild and save the sender-domain index for MAILBOX."""
    remote = _connect(settings, mailbox)
    session = Session(
        mailbox=mailbox,
        settings=settings,
        remote=remote,
        cache=IndexCache(settings.cache_path(mailbox)),
    )
    if not rebuild_index(session, test_mode=test_mode, max_messages=max_messages):
        raise click.ClickException(f"Indexing {mailbox} failed; see the log for details.")
    display_domain_summary(session.index.snapshot())
    console.print(f"[dim]Saved to {session.cache.path}[/dim]")


@cli.command()
@click.argument("mailbox")
@click.pass_obj
def auth(settings: Settings, mailbox: str) -> None:
    """Test or refresh Gmail authentication for MAILBOX."""
    _connect(settings, mailbox)
    console.print(f"[green]Authenticated as {mailbox}[/green]")


@cli.group(name="cache")
def cache_group() -> None:
    """Manage the cached index."""


@cache_group.command(name="info")
@click.argument("mailbox")
@click.pass_obj
def cache_info(settings: Settings, mailbox: str) -> None:
    """Show cache statistics for MAILBOX."""
    cache = IndexCache(settings.cache_path(mailbox))
    info = cache.get_info()

    if info["last_updated"] is None and info["domain_count"] == 0:
        console.print("[dim]Cache is empty.[/dim]")
        return

    console.print(f"[bold]File:[/bold] {info['path']}")
    console.print(f"[bold]File size:[/bold] {format_size(info['file_size'])}")
    console.print(f"[bold]Last updated:[/bold] {info['last_updated'] or 'unknown'}")
    console.print(f"[bold]Age:[/bold] {format_age(info['age'])}")
    console.print(f"[bold]Domains:[/bold] {info['domain_count']}")
    console.print(f"[bold]Messages:[/bold] {info['message_count']}")


@cache_group.command(name="clear")
@click.argument("mailbox")
@click.pass_obj
def cache_clear(settings: Settings, mailbox: str) -> None:
    """Delete the cached index for MAILBOX."""
    cache = IndexCache(settings.cache_path(mailbox))
    try:
        removed = cache.clear()
    except CacheIOError as e:
        raise click.ClickException(str(e)) from e
    console.print("[green]Cache cleared.[/green]" if removed else "[dim]No cache to clear.[/dim]")
