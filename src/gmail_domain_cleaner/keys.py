"""Keystroke capture for the list screens."""

from __future__ import annotations

import enum

import click


class Key(enum.Enum):
    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    HOME = "home"
    END = "end"
    TOGGLE = "toggle"
    CHECK_ALL = "check_all"
    CHECK_NONE = "check_none"
    ENTER = "enter"
    BACK = "back"
    DELETE = "delete"
    MOVE = "move"
    SEARCH = "search"
    RECENT = "recent"
    REBUILD = "rebuild"
    SAVE_ATTACHMENTS = "save_attachments"
    UNKNOWN = "unknown"


# POSIX escape sequences plus the Windows console two-byte codes
_SEQUENCES = {
    "\x1b[A": Key.UP,
    "\x1bOA": Key.UP,
    "\xe0H": Key.UP,
    "\x00H": Key.UP,
    "\x1b[B": Key.DOWN,
    "\x1bOB": Key.DOWN,
    "\xe0P": Key.DOWN,
    "\x00P": Key.DOWN,
    "\x1b[5~": Key.PAGE_UP,
    "\xe0I": Key.PAGE_UP,
    "\x1b[6~": Key.PAGE_DOWN,
    "\xe0Q": Key.PAGE_DOWN,
    "\x1b[H": Key.HOME,
    "\x1b[1~": Key.HOME,
    "\xe0G": Key.HOME,
    "\x1b[F": Key.END,
    "\x1b[4~": Key.END,
    "\xe0O": Key.END,
    "\x1b": Key.BACK,
    "\r": Key.ENTER,
    "\n": Key.ENTER,
    " ": Key.TOGGLE,
}

_LETTERS = {
    "k": Key.UP,
    "j": Key.DOWN,
    "b": Key.PAGE_UP,
    "f": Key.PAGE_DOWN,
    "g": Key.HOME,
    "G": Key.END,
    "a": Key.CHECK_ALL,
    "u": Key.CHECK_NONE,
    "q": Key.BACK,
    "d": Key.DELETE,
    "m": Key.MOVE,
    "/": Key.SEARCH,
    "n": Key.RECENT,
    "r": Key.REBUILD,
    "s": Key.SAVE_ATTACHMENTS,
}


def decode_key(raw: str) -> Key:
    """Map the raw string returned by click.getchar() to a Key."""
    if raw in _SEQUENCES:
        return _SEQUENCES[raw]
    if raw in _LETTERS:
        return _LETTERS[raw]
    if len(raw) == 1 and raw.lower() in _LETTERS and raw.lower() != "g":
        return _LETTERS[raw.lower()]
    return Key.UNKNOWN


def read_key() -> Key:
    return decode_key(click.getchar())
