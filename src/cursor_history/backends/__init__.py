"""Storage backends and default provider detection."""

from ..provider import HistoryProvider
from .cursor import CursorProvider


def get_default_provider() -> HistoryProvider | None:
    """Return the Cursor provider if Cursor's data exists on this machine."""
    provider = CursorProvider()
    if provider.is_available():
        return provider
    return None
