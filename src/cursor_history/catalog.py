"""In-memory index of known workspace roots.

Built once per run from the workspaces the provider found and shared
read-only by every attribution.
"""

import logging
from typing import Iterable, Iterator

from .core import WorkspaceRoot
from .paths import basename, is_windows, normalize, separator

logger = logging.getLogger(__name__)


class WorkspaceCatalog:
    """Lookup tables over a fixed set of workspace roots.

    Roots are kept in input order; that order breaks every tie. The path and
    basename indexes keep the first workspace that claims a key.
    """

    def __init__(self, workspaces: Iterable[WorkspaceRoot], windows: bool | None = None):
        self.windows = is_windows() if windows is None else windows
        self.separator = separator(self.windows)

        self._workspaces: dict[str, WorkspaceRoot] = {}
        self._roots: list[tuple[str, str]] = []  # (normalized root, workspace id)
        self._path_index: dict[str, str] = {}
        self._basename_index: dict[str, str] = {}
        self._folder_names: list[tuple[str, str]] = []

        for ws in workspaces:
            if ws.id in self._workspaces:
                logger.debug("Duplicate workspace id %s ignored", ws.id)
                continue
            self._workspaces[ws.id] = ws

            for raw in ws.root_paths:
                root = self.normalize(raw)
                if not root:
                    continue
                self._roots.append((root, ws.id))
                self._path_index.setdefault(root, ws.id)

                name = basename(root)
                if name:
                    self._basename_index.setdefault(name, ws.id)
                    self._folder_names.append((name, ws.id))

    def normalize(self, raw: str) -> str:
        return normalize(raw, windows=self.windows)

    # ── Lookups ──────────────────────────────────────────────────────

    def longest_prefix_match(self, normalized_path: str) -> str | None:
        """Workspace whose root is the longest string prefix of the path.

        This is a plain string-prefix test: ``/a/bee`` matches ``/a/beetle/x``.
        """
        if not normalized_path:
            return None
        best_id = None
        best_len = 0
        for root, ws_id in self._roots:
            if len(root) > best_len and normalized_path.startswith(root):
                best_id = ws_id
                best_len = len(root)
        return best_id

    def exact_match(self, normalized_path: str) -> str | None:
        return self._path_index.get(normalized_path)

    def basename_match(self, name: str) -> str | None:
        if not name:
            return None
        return self._basename_index.get(name)

    def folder_names(self) -> list[tuple[str, str]]:
        """``(basename, workspace id)`` for every root, in input order."""
        return list(self._folder_names)

    def get(self, workspace_id: str) -> WorkspaceRoot | None:
        return self._workspaces.get(workspace_id)

    # ── Container protocol ───────────────────────────────────────────

    def __iter__(self) -> Iterator[WorkspaceRoot]:
        return iter(self._workspaces.values())

    def __len__(self) -> int:
        return len(self._workspaces)

    def __contains__(self, workspace_id: object) -> bool:
        return workspace_id in self._workspaces
