"""Paging, highlighting and multi-selection over an ordered list of rows.

The navigator knows nothing about what the rows are. Callers supply a
function that returns a stable id for a row; everything else (domain
buckets, cached messages, live search hits, folders) looks the same here.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class ListNavigator(Generic[T]):
    def __init__(self, items: Sequence[T], row_id: Callable[[T], str], viewport_size: int = 10) -> None:
        if viewport_size < 1:
            raise ValueError("viewport_size must be at least 1")
        self.row_id = row_id
        self.viewport_size = viewport_size
        self.items: list[T] = list(items)
        self.highlight_index = 0
        self.viewport_start = 0
        self.checked_ids: set[str] = set()

    # --- movement ---

    def move_highlight(self, delta: int) -> None:
        """Move the highlight by `delta` rows, clamped to the list (no wrap-around)."""
        self.highlight_index = self._clamp_index(self.highlight_index + delta)
        self._scroll_to_highlight()

    def page_move(self, direction: int) -> None:
        """Shift highlight and viewport by one page; `direction` is +1 or -1."""
        step = self.viewport_size * (1 if direction >= 0 else -1)
        self.highlight_index = self._clamp_index(self.highlight_index + step)
        self.viewport_start = self._clamp_viewport(self.viewport_start + step)
        self._scroll_to_highlight()

    def set_viewport_size(self, size: int) -> None:
        self.viewport_size = max(1, size)
        self.viewport_start = self._clamp_viewport(self.viewport_start)
        self._scroll_to_highlight()

    # --- checks ---

    def toggle_check(self, row_id: str) -> None:
        if row_id in self.checked_ids:
            self.checked_ids.discard(row_id)
        else:
            self.checked_ids.add(row_id)

    def toggle_highlighted(self) -> None:
        row = self.highlighted
        if row is not None:
            self.toggle_check(self.row_id(row))

    def check_all(self) -> None:
        self.checked_ids = {self.row_id(row) for row in self.items}

    def check_none(self) -> None:
        self.checked_ids = set()

    def is_checked(self, row: T) -> bool:
        return self.row_id(row) in self.checked_ids

    # --- selection ---

    @property
    def highlighted(self) -> T | None:
        if not self.items:
            return None
        return self.items[self.highlight_index]

    def effective_selection(self) -> list[T]:
        """Checked rows if any are checked, otherwise the highlighted row."""
        if self.checked_ids:
            return [row for row in self.items if self.row_id(row) in self.checked_ids]
        row = self.highlighted
        return [row] if row is not None else []

    # --- refresh ---

    def replace_items(self, new_items: Sequence[T]) -> None:
        """Swap in a fresh list and re-clamp highlight and viewport.

        Checks on rows that no longer exist are dropped. An empty result means
        the caller should leave the view.
        """
        self.items = list(new_items)
        present = {self.row_id(row) for row in self.items}
        self.checked_ids &= present
        self.highlight_index = self._clamp_index(self.highlight_index)
        self.viewport_start = self._clamp_viewport(self.viewport_start)
        self._scroll_to_highlight()

    @property
    def is_empty(self) -> bool:
        return not self.items

    def visible(self) -> list[tuple[int, T]]:
        """(absolute index, row) pairs for the rows inside the viewport."""
        end = self.viewport_start + self.viewport_size
        return list(enumerate(self.items[self.viewport_start:end], start=self.viewport_start))

    # --- internals ---

    def _clamp_index(self, index: int) -> int:
        if not self.items:
            return 0
        return max(0, min(index, len(self.items) - 1))

    def _clamp_viewport(self, start: int) -> int:
        return max(0, min(start, len(self.items) - self.viewport_size))

    def _scroll_to_highlight(self) -> None:
        if self.highlight_index < self.viewport_start:
            self.viewport_start = self.highlight_index
        elif self.highlight_index >= self.viewport_start + self.viewport_size:
            self.viewport_start = self.highlight_index - self.viewport_size + 1
