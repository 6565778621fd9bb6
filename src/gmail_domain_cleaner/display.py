"""Rich-based display functions for Gmail Domain Cleaner."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta
from typing import Callable, TypeVar

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from .constants import MIN_VIEWPORT_SIZE, NOT_AVAILABLE, SCREEN_CHROME_LINES, SUMMARY_TOP_DOMAINS
from .models import AttachmentInfo, BatchResult, DomainBucket, MessageRecord
from .navigator import ListNavigator

console = Console()

T = TypeVar("T")


def format_size(size: int | None) -> str:
    if size is None:
        return NOT_AVAILABLE
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def format_date(message: MessageRecord) -> str:
    if message.received_at is None:
        return NOT_AVAILABLE
    return message.received_at.astimezone().strftime("%Y-%m-%d %H:%M")


def format_age(age: timedelta | None) -> str:
    if age is None:
        return "unknown"
    hours = age.total_seconds() / 3600
    if hours < 1:
        return f"{int(age.total_seconds() // 60)} minutes"
    if hours < 48:
        return f"{hours:.0f} hours"
    return f"{age.days} days"


def viewport_size_for_terminal(configured: int = 0) -> int:
    """Rows that fit on screen, unless a fixed size is configured."""
    if configured > 0:
        return configured
    return max(MIN_VIEWPORT_SIZE, console.size.height - SCREEN_CHROME_LINES)


def create_progress(description: str) -> Progress:
    """Create a configured Rich Progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )


# --- row renderers: each returns the cells for one row ---


def domain_columns() -> list[tuple[str, str]]:
    return [("Domain", "left"), ("Messages", "right"), ("Size", "right")]


def domain_cells(entry: tuple[str, DomainBucket]) -> list[str]:
    key, bucket = entry
    return [key, str(bucket.count), format_size(bucket.total_size)]


def message_columns() -> list[tuple[str, str]]:
    return [("Received", "left"), ("From", "left"), ("Subject", "left"), ("Size", "right"), ("Att", "center")]


def message_cells(message: MessageRecord) -> list[str]:
    sender = message.sender_name or message.sender_address
    return [
        format_date(message),
        sender,
        message.subject or "(no subject)",
        format_size(message.size_bytes),
        "*" if message.has_attachments else "",
    ]


def render_list(
    title: str,
    navigator: ListNavigator[T],
    columns: Sequence[tuple[str, str]],
    cells: Callable[[T], list[str]],
    footer: str,
    status: str = "",
) -> None:
    """Redraw one list screen from the navigator state.

    The title and cells are mailbox text and are never read as markup.
    """
    console.clear()
    table = Table(title=Text(title), expand=True)
    table.add_column(" ", width=3)
    table.add_column("#", justify="right", style="dim")
    for name, justify in columns:
        table.add_column(name, justify=justify, overflow="ellipsis", no_wrap=True)

    for idx, row in navigator.visible():
        mark = "[x]" if navigator.is_checked(row) else "[ ]"
        style = "reverse" if idx == navigator.highlight_index else None
        table.add_row(Text(mark), str(idx + 1), *(Text(cell) for cell in cells(row)), style=style)

    console.print(table)
    checked = len(navigator.checked_ids)
    position = f"{navigator.highlight_index + 1}/{len(navigator.items)}" if navigator.items else "0/0"
    console.print(f"[dim]{position}  checked: {checked}  |  {footer}[/dim]")
    if status:
        console.print(status)


def render_message(message: MessageRecord, snippet: str, attachments: Sequence[AttachmentInfo] | None) -> None:
    console.clear()
    lines = [
        f"[bold]From:[/bold] {escape(message.sender_name)} <{escape(message.sender_address)}>",
        f"[bold]To:[/bold] {escape(', '.join(message.recipients)) or NOT_AVAILABLE}",
        f"[bold]Date:[/bold] {format_date(message)}",
        f"[bold]Subject:[/bold] {escape(message.subject) or '(no subject)'}",
        f"[bold]Size:[/bold] {format_size(message.size_bytes)}",
        f"[bold]Labels:[/bold] {escape(', '.join(message.categories)) or '-'}",
    ]
    if snippet:
        lines.extend(["", escape(snippet)])
    if attachments:
        lines.extend(["", "[bold]Attachments:[/bold]"])
        for att in attachments:
            lines.append(f"  - {escape(att.name)} ({format_size(att.size)}, {escape(att.content_type)})")
    console.print(Panel("\n".join(lines), title="Message"))
    console.print("[dim]d delete  |  m move  |  s save attachments  |  q back[/dim]")


def display_domain_summary(entries: Sequence[tuple[str, DomainBucket]], limit: int = SUMMARY_TOP_DOMAINS) -> None:
    table = Table(title="Top sender domains")
    table.add_column("#", justify="right", style="dim")
    for name, justify in domain_columns():
        table.add_column(name, justify=justify)
    for idx, entry in enumerate(entries[:limit], start=1):
        table.add_row(str(idx), *(Text(cell) for cell in domain_cells(entry)))
    console.print(table)
    total = sum(b.count for _, b in entries)
    console.print(Panel(f"Domains: {len(entries)}  |  Messages: {total}", title="Summary"))


def confirm_action(verb: str, targets: Sequence[str], message_count: int) -> bool:
    """Show what is about to happen and ask the user to type the verb to confirm."""
    lines = [f"[bold]{escape(verb.capitalize())} {message_count} messages from:[/bold]", ""]
    for target in targets[:15]:
        lines.append(f"  - {escape(target)}")
    if len(targets) > 15:
        lines.append(f"  ... and {len(targets) - 15} more")
    console.print(Panel("\n".join(lines), title=f"Confirm {escape(verb)}"))

    word = verb.upper()
    answer = Prompt.ask(f'[bold red]Type "{word}" to confirm[/bold red]', console=console, default="")
    return answer.strip().upper() == word


def batch_summary(result: BatchResult, verb: str) -> str:
    """One status line for a finished bulk action; failures are always spelled out."""
    if result.has_failures:
        return f"[yellow]{result.summary(verb)}[/yellow]"
    return f"[green]{result.summary(verb)}[/green]"


def ask_text(prompt: str) -> str:
    return Prompt.ask(prompt, console=console, default="").strip()


def pause(message: str) -> None:
    console.print(message)
    Prompt.ask("[dim]Press Enter to continue[/dim]", console=console, default="", show_default=False)
