"""Cursor IDE chat history backend.

Reads Cursor's SQLite databases (state.vscdb). Workspace-level databases
live under ``workspaceStorage/<hash>/`` next to a ``workspace.json`` naming
the workspace folders; conversations themselves are in the global database
under ``globalStorage/``, in the ``cursorDiskKV`` table:

- ``composerData:<composerId>``: conversation header list, name, timestamps,
  created files and code-block data.
- ``bubbleId:<composerId>:<bubbleId>``: one message.
- ``messageRequestContext:<composerId>:<contextId>``: request context,
  including the ``projectLayouts`` roots the conversation ran in.
- ``codeBlockDiff:<composerId>:<diffId>``: one stored code edit.

All database access is read-only.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from ..config import get_cursor_global_path, get_cursor_workspace_path
from ..core import CodeEdit, ConversationRecord, RequestContext, WorkspaceRoot
from ..provider import HistoryProvider
from ..records import (
    code_edit_from_diff,
    composer_ids,
    conversation_from_composer,
    declared_roots_from_context,
    parse_json,
    request_context_from_json,
    workspace_from_json,
)

logger = logging.getLogger(__name__)


class CursorProvider(HistoryProvider):
    """Provider for Cursor IDE chat history."""

    name = "cursor"

    def get_base_path(self) -> Path:
        return get_cursor_workspace_path()

    def get_global_path(self) -> Path:
        return get_cursor_global_path(self.get_base_path())

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    def list_workspaces(self) -> list[WorkspaceRoot]:
        workspaces = []
        for ws_dir in self._workspace_dirs():
            ws_json = ws_dir / "workspace.json"
            if not ws_json.exists():
                continue
            try:
                data = json.loads(ws_json.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
                logger.warning("Failed to read workspace.json in %s: %s", ws_dir, e)
                data = None

            workspaces.append(workspace_from_json(
                ws_dir.name, data, last_modified=_mtime(ws_dir / "state.vscdb") or _mtime(ws_json),
            ))
        return workspaces

    def load_direct_mapping(self) -> dict[str, str]:
        mapping: dict[str, str] = {}
        for ws_dir in self._workspace_dirs():
            db_path = ws_dir / "state.vscdb"
            if not (ws_dir / "workspace.json").exists() or not db_path.exists():
                continue
            raw = self._query_item_table(db_path, "composer.composerData")
            for composer_id in composer_ids(parse_json(raw)):
                mapping.setdefault(composer_id, ws_dir.name)
        return mapping

    def load_conversations(self) -> list[ConversationRecord]:
        global_db = self.get_global_path()
        if not global_db.exists():
            logger.warning("Cursor global storage not found: %s", global_db)
            return []

        bubbles: dict[str, dict[str, dict]] = {}
        for key, value in self._query_disk_kv(global_db, "bubbleId:"):
            parts = key.split(":", 2)
            bubble = parse_json(value)
            if len(parts) == 3 and isinstance(bubble, dict):
                bubbles.setdefault(parts[1], {})[parts[2]] = bubble

        declared: dict[str, list[str]] = {}
        contexts: dict[str, list[RequestContext]] = {}
        for key, value in self._query_disk_kv(global_db, "messageRequestContext:"):
            composer_id = key.split(":")[1]
            context = parse_json(value)
            if not composer_id or context is None:
                continue
            declared.setdefault(composer_id, []).extend(declared_roots_from_context(context))
            ctx = request_context_from_json(context)
            if ctx is not None:
                contexts.setdefault(composer_id, []).append(ctx)

        edits: dict[str, list[CodeEdit]] = {}
        for key, value in self._query_disk_kv(global_db, "codeBlockDiff:"):
            parts = key.split(":", 2)
            if len(parts) < 3 or not parts[1]:
                continue
            edit = code_edit_from_diff(parts[2], parse_json(value))
            if edit is not None:
                edits.setdefault(parts[1], []).append(edit)

        records = []
        for key, value in self._query_disk_kv(global_db, "composerData:"):
            composer_id = key.split(":")[1]
            data = parse_json(value)
            if not composer_id or not isinstance(data, dict) or not data.get("fullConversationHeadersOnly"):
                continue
            record = conversation_from_composer(
                composer_id,
                data,
                bubbles.get(composer_id, {}),
                declared_root_paths=declared.get(composer_id, ()),
                request_contexts=contexts.get(composer_id, ()),
                code_edits=edits.get(composer_id, ()),
            )
            if record is not None:
                records.append(record)

        logger.info("Loaded %d conversations from %s", len(records), global_db)
        return records

    # ── Private helpers ──────────────────────────────────────────────

    def _workspace_dirs(self) -> list[Path]:
        base = self.get_base_path()
        if not base.is_dir():
            return []
        return sorted((d for d in base.iterdir() if d.is_dir()), key=lambda d: d.name)

    def _query_item_table(self, db_path: Path, key: str) -> str | None:
        """Read a single key from the ItemTable."""
        try:
            conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
            try:
                row = conn.execute("SELECT value FROM ItemTable WHERE key = ?", (key,)).fetchone()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            logger.warning("Failed to read key '%s' from %s: %s", key, db_path, e)
            return None
        if row and row[0] is not None:
            val = row[0]
            return val if isinstance(val, str) else bytes(val).decode("utf-8", errors="replace")
        return None

    def _query_disk_kv(self, db_path: Path, prefix: str) -> list[tuple[str, object]]:
        """Read every cursorDiskKV row whose key starts with ``prefix``, in insertion order."""
        try:
            conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
            try:
                rows = conn.execute(
                    "SELECT key, value FROM cursorDiskKV WHERE key LIKE ? ORDER BY rowid",
                    (prefix + "%",),
                ).fetchall()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            logger.warning("Failed to read '%s*' rows from %s: %s", prefix, db_path, e)
            return []
        return [(key, value) for key, value in rows if isinstance(key, str)]


def _mtime(path: Path) -> datetime | None:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except (OSError, ValueError, OverflowError):
        return None
