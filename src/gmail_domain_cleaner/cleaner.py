"""Interactive cleaning session - domain overview, message lists, message view."""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Generic, TypeVar

from rich.markup import escape

from .cache import IndexCache
from .config import Settings, safe_filename
from .constants import RECENT_MESSAGES_LIMIT, SEARCH_RESULTS_LIMIT
from .display import (
    ask_text,
    batch_summary,
    confirm_action,
    console,
    create_progress,
    domain_cells,
    domain_columns,
    format_age,
    format_size,
    message_cells,
    message_columns,
    pause,
    render_list,
    render_message,
    viewport_size_for_terminal,
)
from .errors import CacheIOError, RemoteCallError
from .gmail_client import MailRemote
from .index import SenderIndex
from .keys import Key, read_key
from .models import (
    AttachmentInfo,
    BatchResult,
    CachedDomain,
    DomainBucket,
    Folder,
    LiveRecentView,
    LiveSearchView,
    MessageRecord,
    View,
)
from .navigator import ListNavigator
from .reconcile import ReconciliationEngine
from .scanner import build_full_index

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Session:
    """Everything one interactive run shares; the index lives here and nowhere else."""

    mailbox: str
    settings: Settings
    remote: MailRemote
    cache: IndexCache
    index: SenderIndex = field(default_factory=SenderIndex)
    engine: ReconciliationEngine = field(init=False)
    status: str = ""

    def __post_init__(self) -> None:
        self.engine = ReconciliationEngine(self.index, self.cache)

    def replace_index(self, index: SenderIndex) -> None:
        self.index = index
        self.engine = ReconciliationEngine(index, self.cache)


class Outcome(enum.Enum):
    STAY = "stay"
    REFRESH = "refresh"
    EXIT = "exit"


Refresher = Callable[[Session], Sequence[T]]
Handler = Callable[["ListScreen[T]"], Outcome]

_NAV_FOOTER = "↑/↓ move  PgUp/PgDn page  space check  a all  u none"


class ListScreen(Generic[T]):
    """A list view driven entirely by a ListNavigator.

    `refresher` returns a fresh snapshot of the rows each time the view is
    refreshed; an empty snapshot closes the view unless `keep_when_empty`.
    """

    def __init__(
        self,
        session: Session,
        title: Callable[[], str] | str,
        refresher: Refresher[T],
        row_id: Callable[[T], str],
        columns: Sequence[tuple[str, str]],
        cells: Callable[[T], list[str]],
        handlers: dict[Key, Handler] | None = None,
        footer: str = "",
        keep_when_empty: bool = False,
    ) -> None:
        self.session = session
        self._title = title
        self.refresher = refresher
        self.columns = columns
        self.cells = cells
        self.handlers = handlers or {}
        self.footer = f"{_NAV_FOOTER}  {footer}  q back".strip()
        self.keep_when_empty = keep_when_empty
        self.navigator: ListNavigator[T] = ListNavigator(
            [], row_id, viewport_size_for_terminal(session.settings.viewport_size)
        )
        self.chosen: T | None = None

    @property
    def title(self) -> str:
        return self._title() if callable(self._title) else self._title

    def refresh(self) -> None:
        self.navigator.replace_items(self.refresher(self.session))

    def run(self) -> T | None:
        self.refresh()
        while self.keep_when_empty or not self.navigator.is_empty:
            render_list(self.title, self.navigator, self.columns, self.cells, self.footer, self.session.status)
            self.session.status = ""
            key = read_key()
            if key is Key.BACK:
                break
            if self._navigate(key):
                continue
            handler = self.handlers.get(key)
            if handler is None:
                continue
            outcome = handler(self)
            if outcome is Outcome.EXIT:
                break
            if outcome is Outcome.REFRESH:
                self.refresh()
        return self.chosen

    def _navigate(self, key: Key) -> bool:
        nav = self.navigator
        if key is Key.UP:
            nav.move_highlight(-1)
        elif key is Key.DOWN:
            nav.move_highlight(1)
        elif key is Key.PAGE_UP:
            nav.page_move(-1)
        elif key is Key.PAGE_DOWN:
            nav.page_move(1)
        elif key is Key.HOME:
            nav.move_highlight(-len(nav.items))
        elif key is Key.END:
            nav.move_highlight(len(nav.items))
        elif key is Key.TOGGLE:
            nav.toggle_highlighted()
        elif key is Key.CHECK_ALL:
            nav.check_all()
        elif key is Key.CHECK_NONE:
            nav.check_none()
        else:
            return False
        return True


# --- index lifecycle ---


def rebuild_index(session: Session, test_mode: bool = False, max_messages: int = 0) -> bool:
    """Rebuild the index from the mailbox and save it. Returns False when the build failed."""
    with create_progress("Indexing mailbox") as progress:
        fetch_task = progress.add_task("fetching", total=None)
        group_task = progress.add_task("grouping", total=None)

        def on_fetch(done: int, total: int) -> None:
            progress.update(fetch_task, completed=done, total=total)

        def on_group(done: int, total: int) -> None:
            progress.update(group_task, completed=done, total=total)

        try:
            index = build_full_index(
                session.remote,
                limit=max_messages,
                test_mode=test_mode,
                test_sample_size=session.settings.test_sample_size,
                progress=on_group,
                fetch_progress=on_fetch,
            )
        except RemoteCallError as exc:
            logger.error("Index build failed: %s", exc)
            session.status = f"[red]Index build failed: {escape(str(exc))}[/red]"
            return False

    session.replace_index(index)
    try:
        session.cache.save(index)
    except CacheIOError as exc:
        logger.warning("Index built but not saved: %s", exc)
    session.status = f"[green]Indexed {index.message_count} messages from {index.domain_count} domains.[/green]"
    return True


def load_or_build(session: Session, test_mode: bool = False, max_messages: int = 0, rebuild: bool = False) -> bool:
    if not rebuild:
        cached = session.cache.load()
        if cached is not None:
            session.replace_index(cached)
            age = session.cache.compute_age(cached)
            session.status = f"[dim]Loaded cached index ({cached.message_count} messages, updated {format_age(age)} ago)[/dim]"
            max_age = session.settings.cache_max_age_hours
            if max_age and age is not None and age.total_seconds() > max_age * 3600:
                session.status += f"\n[yellow]The index is older than {max_age} hours; press r to rebuild.[/yellow]"
            return True
        console.print("[yellow]No usable cached index. Building one now...[/yellow]")
    return rebuild_index(session, test_mode=test_mode, max_messages=max_messages)


# --- bulk actions ---


def pick_folder(session: Session) -> Folder | None:
    try:
        folders = session.remote.list_folders()
    except RemoteCallError as exc:
        session.status = f"[red]Could not list folders: {escape(str(exc))}[/red]"
        return None

    def cells(folder: Folder) -> list[str]:
        depth = folder.path.count("/")
        return ["  " * depth + folder.display_name]

    def choose(screen: ListScreen[Folder]) -> Outcome:
        selection = screen.navigator.effective_selection()
        screen.chosen = selection[0] if selection else None
        return Outcome.EXIT

    screen: ListScreen[Folder] = ListScreen(
        session,
        "Move to folder",
        lambda s: folders,
        lambda f: f.id,
        [("Folder", "left")],
        cells,
        handlers={Key.ENTER: choose},
        footer="enter choose",
    )
    return screen.run()


def _run_batches(
    session: Session,
    batches: Sequence[tuple[View, Sequence[MessageRecord]]],
    action: Callable[[str], None],
    verb: str,
    whole_domain: bool,
) -> BatchResult:
    total = BatchResult()
    message_count = sum(len(records) for _, records in batches)
    with create_progress(verb) as progress:
        task = progress.add_task(verb.lower(), total=message_count)
        for view, records in batches:
            result = session.engine.run(
                view,
                records,
                action,
                whole_domain=whole_domain,
                progress=lambda done, _total: progress.advance(task),
                persist=False,
            )
            total.merge(result)
    if total.index_changed:
        total.saved = session.engine.save()
    session.status = batch_summary(total, verb)
    for error in total.errors[:5]:
        session.status += f"\n[dim]  {error.message_id}: {escape(error.error)}[/dim]"
    return total


def bulk_action(
    session: Session,
    batches: Sequence[tuple[View, Sequence[MessageRecord]]],
    targets: Sequence[str],
    move: bool,
    whole_domain: bool = False,
) -> BatchResult | None:
    """Confirm, execute and reconcile one delete or move. None when the user backed out."""
    message_count = sum(len(records) for _, records in batches)
    if message_count == 0:
        return None

    session.engine.begin()
    if move:
        folder = pick_folder(session)
        if folder is None:
            session.engine.cancel()
            return None
        verb = "Moved"
        if not confirm_action(f"move to {folder.path}", targets, message_count):
            session.status = "[dim]Cancelled.[/dim]"
            session.engine.cancel()
            return None

        def action(message_id: str) -> None:
            session.remote.move_message(message_id, folder.id)

    else:
        verb = "Deleted"
        if not confirm_action("delete", targets, message_count):
            session.status = "[dim]Cancelled.[/dim]"
            session.engine.cancel()
            return None
        action = session.remote.delete_message

    return _run_batches(session, batches, action, verb, whole_domain)


# --- screens ---


def _message_batches(view: View, selection: Sequence[MessageRecord]) -> list[tuple[View, Sequence[MessageRecord]]]:
    return [(view, list(selection))]


def fetch_view_messages(session: Session, view: View) -> list[MessageRecord]:
    """Rows for a message list: index-backed for cached domains, live otherwise."""
    if isinstance(view, CachedDomain):
        return session.index.messages_for(view.key)
    try:
        if isinstance(view, LiveSearchView):
            return session.remote.list_messages(top=SEARCH_RESULTS_LIMIT, query=view.query)
        return session.remote.list_messages(top=RECENT_MESSAGES_LIMIT)
    except RemoteCallError as exc:
        logger.warning("Live view %s failed: %s", view.title, exc)
        pause(f"[red]Could not load {escape(view.title)}: {escape(str(exc))}[/red]")
        return []


def save_attachments(session: Session, message: MessageRecord) -> None:
    try:
        attachments = session.remote.get_attachments(message.id)
    except RemoteCallError as exc:
        session.status = f"[red]Could not list attachments: {escape(str(exc))}[/red]"
        return
    if not attachments:
        session.status = "[dim]This message has no attachments.[/dim]"
        return

    saved: list[Path] = []
    failed = 0

    def download(screen: ListScreen[AttachmentInfo]) -> Outcome:
        nonlocal failed
        target_dir = session.settings.download_dir
        for att in screen.navigator.effective_selection():
            try:
                data = session.remote.download_attachment(message.id, att.id)
                target_dir.mkdir(parents=True, exist_ok=True)
                path = _unique_path(target_dir / safe_filename(att.name))
                path.write_bytes(data)
            except (RemoteCallError, OSError) as exc:
                failed += 1
                logger.warning("Could not save attachment %s of %s: %s", att.name, message.id, exc)
                continue
            saved.append(path)
        return Outcome.EXIT

    screen: ListScreen[AttachmentInfo] = ListScreen(
        session,
        f"Attachments: {message.subject or '(no subject)'}",
        lambda s: attachments,
        lambda a: a.id,
        [("Name", "left"), ("Size", "right"), ("Type", "left")],
        lambda a: [a.name, format_size(a.size), a.content_type],
        handlers={Key.ENTER: download},
        footer="enter save",
    )
    screen.run()
    if saved or failed:
        session.status = f"[green]Saved {len(saved)} attachments to {escape(str(session.settings.download_dir))}[/green]"
        if failed:
            session.status += f"\n[yellow]{failed} attachments could not be saved.[/yellow]"


def _unique_path(path: Path) -> Path:
    candidate = path
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        counter += 1
    return candidate


def message_view(session: Session, view: View, message: MessageRecord) -> None:
    """Single-message screen. Returns after the user leaves or acts on the message."""
    try:
        snippet = message.snippet or session.remote.get_snippet(message.id)
    except RemoteCallError as exc:
        logger.warning("Could not fetch snippet for %s: %s", message.id, exc)
        snippet = ""

    while True:
        render_message(message, snippet, None)
        if session.status:
            console.print(session.status)
            session.status = ""
        key = read_key()
        if key is Key.BACK:
            return
        if key in (Key.DELETE, Key.MOVE):
            target = message.subject or message.id
            result = bulk_action(session, _message_batches(view, [message]), [target], move=key is Key.MOVE)
            if result is not None and result.succeeded:
                return
        elif key is Key.SAVE_ATTACHMENTS:
            save_attachments(session, message)


def message_list(session: Session, view: View) -> None:
    def open_message(screen: ListScreen[MessageRecord]) -> Outcome:
        selection = screen.navigator.effective_selection()
        if selection:
            message_view(session, view, selection[0])
        return Outcome.REFRESH

    def act(move: bool) -> Handler:
        def handler(screen: ListScreen[MessageRecord]) -> Outcome:
            selection = screen.navigator.effective_selection()
            targets = [m.subject or m.id for m in selection]
            bulk_action(session, _message_batches(view, selection), targets, move=move)
            return Outcome.REFRESH

        return handler

    screen: ListScreen[MessageRecord] = ListScreen(
        session,
        lambda: f"{view.title} ({len(screen.navigator.items)} messages)",
        lambda s: fetch_view_messages(s, view),
        lambda m: m.id,
        message_columns(),
        message_cells,
        handlers={Key.ENTER: open_message, Key.DELETE: act(False), Key.MOVE: act(True)},
        footer="enter open  d delete  m move",
    )
    screen.run()


def domain_overview(session: Session, test_mode: bool = False, max_messages: int = 0) -> None:
    def open_domain(screen: ListScreen[tuple[str, DomainBucket]]) -> Outcome:
        selection = screen.navigator.effective_selection()
        if selection:
            message_list(session, CachedDomain(selection[0][0]))
        return Outcome.REFRESH

    def act(move: bool) -> Handler:
        def handler(screen: ListScreen[tuple[str, DomainBucket]]) -> Outcome:
            selection = screen.navigator.effective_selection()
            batches = [(CachedDomain(key), list(bucket.messages)) for key, bucket in selection]
            targets = [f"{key} ({bucket.count} messages)" for key, bucket in selection]
            bulk_action(session, batches, targets, move=move, whole_domain=True)
            return Outcome.REFRESH

        return handler

    def search(screen: ListScreen[tuple[str, DomainBucket]]) -> Outcome:
        query = ask_text("Gmail search query")
        if query:
            message_list(session, LiveSearchView(query))
        return Outcome.REFRESH

    def recent(screen: ListScreen[tuple[str, DomainBucket]]) -> Outcome:
        message_list(session, LiveRecentView())
        return Outcome.REFRESH

    def rebuild(screen: ListScreen[tuple[str, DomainBucket]]) -> Outcome:
        rebuild_index(session, test_mode=test_mode, max_messages=max_messages)
        return Outcome.REFRESH

    screen: ListScreen[tuple[str, DomainBucket]] = ListScreen(
        session,
        lambda: f"{session.mailbox}: {session.index.domain_count} domains, {session.index.message_count} messages",
        lambda s: s.index.snapshot(),
        lambda entry: entry[0],
        domain_columns(),
        domain_cells,
        handlers={
            Key.ENTER: open_domain,
            Key.DELETE: act(False),
            Key.MOVE: act(True),
            Key.SEARCH: search,
            Key.RECENT: recent,
            Key.REBUILD: rebuild,
        },
        footer="enter open  d delete  m move  / search  n recent  r rebuild",
        keep_when_empty=True,
    )
    screen.run()


def interactive_session(
    settings: Settings,
    mailbox: str,
    remote: MailRemote,
    test_mode: bool = False,
    max_messages: int = 0,
    rebuild: bool = False,
) -> Session:
    """Load or build the index for `mailbox`, then run the domain overview until the user quits."""
    session = Session(
        mailbox=mailbox,
        settings=settings,
        remote=remote,
        cache=IndexCache(settings.cache_path(mailbox)),
    )
    load_or_build(session, test_mode=test_mode, max_messages=max_messages, rebuild=rebuild)
    domain_overview(session, test_mode=test_mode, max_messages=max_messages)
    console.clear()
    return session
