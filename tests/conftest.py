"""Shared test fixtures for cursor-history."""

import json
import sqlite3
from datetime import datetime, timezone

import pytest

from cursor_history.backends.cursor import CursorProvider
from cursor_history.core import ConversationRecord, MessageFragment, Role, WorkspaceRoot

T0 = int(datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc).timestamp() * 1000)
T1 = int(datetime(2025, 1, 15, 11, 0, 0, tzinfo=timezone.utc).timestamp() * 1000)
T2 = int(datetime(2025, 1, 16, 9, 0, 0, tzinfo=timezone.utc).timestamp() * 1000)
T3 = int(datetime(2025, 1, 16, 9, 30, 0, tzinfo=timezone.utc).timestamp() * 1000)
T4 = int(datetime(2025, 1, 17, 8, 0, 0, tzinfo=timezone.utc).timestamp() * 1000)


def _create_db(db_path):
    conn = sqlite3.connect(str(db_path))
    conn.execute("CREATE TABLE ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
    conn.execute("CREATE TABLE cursorDiskKV (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
    return conn


@pytest.fixture
def tmp_cursor_workspace(tmp_path):
    """Create a synthetic Cursor workspaceStorage with two workspaces.

    ``ws-alpha`` lists ``comp-direct-001`` in its composer index; ``ws-beta``
    lists nothing. A third folder has no workspace.json and is ignored.
    """
    ws_storage = tmp_path / "User" / "workspaceStorage"

    alpha = ws_storage / "ws-alpha"
    alpha.mkdir(parents=True)
    (alpha / "workspace.json").write_text(
        json.dumps({"folder": "file:///Users/testuser/dev/alpha"}), encoding="utf-8"
    )
    conn = _create_db(alpha / "state.vscdb")
    composer_data = {
        "allComposers": [
            {"composerId": "comp-direct-001", "name": "Fix auth bug", "createdAt": T0},
        ],
        "selectedComposerIds": ["comp-direct-001"],
    }
    conn.execute("INSERT INTO ItemTable VALUES (?, ?)", ("composer.composerData", json.dumps(composer_data)))
    conn.commit()
    conn.close()

    beta = ws_storage / "ws-beta"
    beta.mkdir(parents=True)
    (beta / "workspace.json").write_text(
        json.dumps({"folder": "file:///Users/testuser/dev/beta-app"}), encoding="utf-8"
    )
    conn = _create_db(beta / "state.vscdb")
    conn.commit()
    conn.close()

    (ws_storage / "no-json").mkdir()

    return ws_storage


@pytest.fixture
def tmp_cursor_global(tmp_cursor_workspace):
    """Create the matching globalStorage/state.vscdb with composer data.

    - ``comp-direct-001``: claimed by ws-alpha's index.
    - ``comp-declared-002``: untitled, its request context declares a root
      inside beta-app; has a tool call and a stored code edit.
    - ``comp-orphan-003``: no path hints at all.
    - ``comp-empty-004``: no headers (not loaded).
    - ``comp-bad-005``: malformed JSON (skipped).
    """
    global_dir = tmp_cursor_workspace.parent / "globalStorage"
    global_dir.mkdir(parents=True)
    db_path = global_dir / "state.vscdb"
    conn = _create_db(db_path)

    rich_text = {
        "root": {
            "children": [
                {"type": "paragraph", "children": [{"type": "text", "text": "Add dark mode to the settings page"}]},
            ]
        }
    }

    rows = [
        ("composerData:comp-direct-001", json.dumps({
            "name": "Fix auth bug",
            "createdAt": T0,
            "lastUpdatedAt": T1,
            "fullConversationHeadersOnly": [
                {"bubbleId": "b-001", "type": 1},
                {"bubbleId": "b-002", "type": 2},
            ],
        })),
        ("bubbleId:comp-direct-001:b-001", json.dumps({
            "text": "Fix the login authentication bug in auth.ts",
            "createdAt": T0,
        })),
        ("bubbleId:comp-direct-001:b-002", json.dumps({
            "text": "Updated the token validation.",
            "createdAt": T0 + 5000,
            "tokenCount": {"inputTokens": 100, "outputTokens": 50},
            "modelInfo": {"modelName": "claude-3.5-sonnet"},
            "thinking": {"text": "The expiry check is inverted."},
            "thinkingDurationMs": 1200,
        })),
        ("composerData:comp-declared-002", json.dumps({
            "name": "",
            "createdAt": T2,
            "lastUpdatedAt": T3,
            "fullConversationHeadersOnly": [
                {"bubbleId": "b-003", "type": 1},
                {"bubbleId": "b-004", "type": 2},
                {"bubbleId": "b-missing", "type": 2},
            ],
        })),
        ("bubbleId:comp-declared-002:b-003", json.dumps({
            "text": "",
            "richText": json.dumps(rich_text),
            "createdAt": T2,
        })),
        ("bubbleId:comp-declared-002:b-004", json.dumps({
            "text": "",
            "createdAt": T2 + 8000,
            "toolFormerData": {
                "name": "edit_file",
                "params": '{"target_file": "src/settings.tsx"}',
                "result": "ok",
                "status": "completed",
            },
        })),
        ("messageRequestContext:comp-declared-002:ctx-1", json.dumps({
            "bubbleId": "b-003",
            "projectLayouts": [json.dumps({"rootPath": "/Users/testuser/dev/beta-app/src"})],
            "gitStatusRaw": "M src/settings.tsx",
        })),
        ("codeBlockDiff:comp-declared-002:diff-1", json.dumps({
            "newModelDiffWrtV0": [{"modified": ["const dark = true;"]}],
            "filePath": "/Users/testuser/dev/beta-app/src/settings.tsx",
        })),
        ("composerData:comp-orphan-003", json.dumps({
            "name": "Random question",
            "createdAt": T4,
            "fullConversationHeadersOnly": [{"bubbleId": "b-005", "type": 1}],
        })),
        ("bubbleId:comp-orphan-003:b-005", json.dumps({"text": "What is Python?", "createdAt": T4})),
        ("bubbleId:comp-orphan-003:b-bad", "not json"),
        ("composerData:comp-empty-004", json.dumps({
            "name": "Empty",
            "createdAt": T4,
            "fullConversationHeadersOnly": [],
        })),
        ("composerData:comp-bad-005", "{not valid json"),
    ]
    conn.executemany("INSERT INTO cursorDiskKV VALUES (?, ?)", rows)
    conn.commit()
    conn.close()

    return db_path


@pytest.fixture
def catalog_workspaces():
    """The two-project catalog used across attribution tests."""
    return [
        WorkspaceRoot(id="W1", root_paths=("/home/u/proj1",)),
        WorkspaceRoot(id="W2", root_paths=("/home/u/proj2",)),
    ]


@pytest.fixture
def make_record():
    """Factory for records; fragments default to one user message."""

    def _make(conv_id="conv-1", fragments=None, **kwargs) -> ConversationRecord:
        if fragments is None:
            fragments = (MessageFragment(id="f1", role=Role.USER, text="hello", timestamp=T0),)
        return ConversationRecord(id=conv_id, fragments=tuple(fragments), **kwargs)

    return _make


@pytest.fixture
def cursor_provider(tmp_cursor_workspace, tmp_cursor_global):
    """A CursorProvider pointed at the synthetic stores."""
    provider = CursorProvider()
    provider.get_base_path = lambda: tmp_cursor_workspace
    return provider
