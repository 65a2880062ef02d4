"""Abstract base class for chat history storage providers."""

from abc import ABC, abstractmethod
from pathlib import Path

from .core import ConversationRecord, WorkspaceRoot


class HistoryProvider(ABC):
    """Read-only access to an editor's stored chat data.

    A provider only loads; attribution and assembly happen in the pipeline
    over what it returns.
    """

    name: str

    @abstractmethod
    def get_base_path(self) -> Path:
        """Return the root directory where the editor stores workspace data."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the editor's data exists on this machine."""
        ...

    @abstractmethod
    def list_workspaces(self) -> list[WorkspaceRoot]:
        """Return every workspace the editor knows about."""
        ...

    @abstractmethod
    def load_direct_mapping(self) -> dict[str, str]:
        """Return conversation id -> workspace id from authoritative indexes."""
        ...

    @abstractmethod
    def load_conversations(self) -> list[ConversationRecord]:
        """Return every stored conversation with its fragments and context."""
        ...
