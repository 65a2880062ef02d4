"""Path normalization for comparing paths pulled from Cursor's storage.

Cursor records the same file in several shapes: ``file:///c%3A/Users/me/x.ts``,
``/c:/Users/me/x.ts``, ``C:\\Users\\me\\x.ts``. Everything that compares paths
goes through :func:`normalize` first.
"""

import re
import sys
import urllib.parse

_SCHEME = "file://"
_DRIVE_AFTER_BACKSLASH = re.compile(r"^\\([a-zA-Z]:)")


def is_windows() -> bool:
    return sys.platform == "win32"


def separator(windows: bool | None = None) -> str:
    if windows is None:
        windows = is_windows()
    return "\\" if windows else "/"


def strip_scheme(raw: str) -> str:
    """Drop a leading ``file://``. A ``file:///`` URI keeps its path's leading slash."""
    if raw.startswith(_SCHEME):
        return raw[len(_SCHEME):]
    return raw


def _unquote(value: str) -> str:
    try:
        return urllib.parse.unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def _normalize_once(value: str, windows: bool) -> str:
    value = _unquote(strip_scheme(value))
    if windows:
        value = value.replace("/", "\\")
        value = _DRIVE_AFTER_BACKSLASH.sub(r"\1", value)
        value = value.lower()
    return value


def normalize(raw: str, windows: bool | None = None) -> str:
    """Return the canonical comparable form of a path or ``file://`` URI.

    Never raises. Non-string input normalizes to ``""``. On Windows the
    result uses backslashes and is lower-cased; elsewhere it keeps forward
    slashes and its case.
    """
    if not isinstance(raw, str):
        return ""
    if windows is None:
        windows = is_windows()

    value = raw
    # A pass that changes anything other than case or separators makes the
    # string shorter, so this reaches a fixed point.
    for _ in range(len(raw) + 2):
        nxt = _normalize_once(value, windows)
        if nxt == value:
            break
        value = nxt
    return value


def basename(path: str) -> str:
    """Last non-empty segment of a path, splitting on both separators."""
    if not isinstance(path, str):
        return ""
    trimmed = strip_scheme(path).rstrip("/\\")
    return re.split(r"[/\\]", trimmed)[-1] if trimmed else ""
