"""Tests for export functionality."""

import json
from datetime import date

import pytest

from cursor_history.export import (
    MANIFEST_NAME,
    STATE_NAME,
    conversation_to_json,
    conversation_to_markdown,
    export_snapshot,
    slugify,
)
from cursor_history.pipeline import load_snapshot


@pytest.fixture
def snapshot(cursor_provider):
    return load_snapshot(cursor_provider)


def _render(snapshot, conv_id, fn):
    attribution = snapshot.attributions[conv_id]
    return fn(
        snapshot.conversations[conv_id],
        attribution,
        snapshot.workspace_name(attribution.workspace_id),
    )


class TestMarkdownExport:
    def test_front_matter(self, snapshot):
        result = _render(snapshot, "comp-direct-001", conversation_to_markdown)
        assert result.startswith("---\nlog_id: comp-direct-001\n")
        assert "title: Fix auth bug" in result
        assert "workspace_id: ws-alpha" in result
        assert "workspace_name: alpha" in result
        assert "matched_via: direct" in result
        assert "message_count: 2" in result
        assert "total_input_tokens: 100" in result
        assert "models_used: claude-3.5-sonnet" in result
        assert "thinking_count: 1" in result

    def test_messages(self, snapshot):
        result = _render(snapshot, "comp-direct-001", conversation_to_markdown)
        assert "# Fix auth bug" in result
        assert "## User (2025-01-15 10:00)" in result
        assert "## Assistant (2025-01-15 10:00)" in result
        assert "Fix the login authentication bug in auth.ts" in result
        assert "_Model: claude-3.5-sonnet_" in result
        assert "_Response time: 5.0s_" in result
        assert "<details><summary>Thinking</summary>" in result
        assert "The expiry check is inverted." in result

    def test_tools_and_code_edits(self, snapshot):
        result = _render(snapshot, "comp-declared-002", conversation_to_markdown)
        assert "> **Tool: edit_file** (completed)" in result
        assert '> Params: `{"target_file": "src/settings.tsx"}`' in result
        assert "## Code edit history" in result
        assert "- **/Users/testuser/dev/beta-app/src/settings.tsx** (diff-1)" in result
        assert "  const dark = true;" in result

    def test_unassigned_goes_to_global(self, snapshot):
        result = conversation_to_markdown(snapshot.conversations["comp-orphan-003"])
        assert "workspace_id: global" in result
        assert "workspace_name: null" in result


class TestJsonExport:
    def test_produces_valid_json(self, snapshot):
        data = json.loads(_render(snapshot, "comp-declared-002", conversation_to_json))
        assert data["conversation"]["id"] == "comp-declared-002"
        assert data["conversation"]["workspace_id"] == "ws-beta"
        assert data["conversation"]["matched_via"] == "declared-path"
        assert data["conversation"]["metrics"]["total_tool_calls"] == 1
        assert data["code_edits"][0]["diff_id"] == "diff-1"

    def test_messages(self, snapshot):
        data = json.loads(_render(snapshot, "comp-declared-002", conversation_to_json))
        messages = data["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "assistant"]
        assert messages[1]["tool_call"]["name"] == "edit_file"
        assert messages[1]["response_time_ms"] == 8000
        assert messages[2]["is_code_edit"] is True

    def test_no_metrics(self, snapshot):
        data = json.loads(conversation_to_json(snapshot.conversations["comp-orphan-003"]))
        assert data["conversation"]["metrics"] is None
        assert data["conversation"]["workspace_id"] == "global"


class TestSlugify:
    def test_reserved_characters(self):
        assert slugify('a/b\\c:d*e?"f<g>h|i') == "a_b_c_d_e_f_g_h_i"

    def test_whitespace(self):
        assert slugify("  Fix   auth bug ") == "Fix-auth-bug"

    def test_empty(self):
        assert slugify("") == "untitled"

    def test_length(self):
        assert len(slugify("x" * 200)) == 80


class TestExportSnapshot:
    def test_layout(self, snapshot, tmp_path):
        result = export_snapshot(snapshot, tmp_path / "out", today=date(2025, 2, 1))
        root = tmp_path / "out" / "2025-02-01"

        assert result.count == 3
        assert (root / "alpha" / "chat" / "2025-01-15T11-00-00__Fix-auth-bug__comp-dir.md").exists()
        assert (root / "beta-app" / "chat" / "2025-01-16T09-30-00__Add-dark-mode-to-the-settings-page__comp-dec.md").exists()
        assert (root / "other-chats" / "chat" / "2025-01-17T08-00-00__Random-question__comp-orp.md").exists()

    def test_state_file(self, snapshot, tmp_path):
        out = tmp_path / "out"
        export_snapshot(snapshot, out, today=date(2025, 2, 1))
        state = json.loads((out / STATE_NAME).read_text(encoding="utf-8"))
        assert state["exportedCount"] == 3
        assert state["exportDir"] == str(out.resolve())
        assert state["lastExportTime"]

    def test_manifest_has_no_duplicates(self, snapshot, tmp_path):
        out = tmp_path / "out"
        export_snapshot(snapshot, out, today=date(2025, 2, 1))
        export_snapshot(snapshot, out, today=date(2025, 2, 2))

        lines = (out / MANIFEST_NAME).read_text(encoding="utf-8").splitlines()
        ids = [json.loads(line)["log_id"] for line in lines]
        assert sorted(ids) == ["comp-declared-002", "comp-direct-001", "comp-orphan-003"]
        assert all(json.loads(line)["path"].startswith("2025-02-02/") for line in lines)

    def test_since_last_skips_unchanged(self, snapshot, tmp_path):
        out = tmp_path / "out"
        export_snapshot(snapshot, out, today=date(2025, 2, 1))
        result = export_snapshot(snapshot, out, since="last", today=date(2025, 2, 1))
        assert result.count == 0
        assert result.skipped == 3
        assert len((out / MANIFEST_NAME).read_text(encoding="utf-8").splitlines()) == 3

    def test_since_last_uses_previous_time(self, snapshot, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        (out / STATE_NAME).write_text(json.dumps({"lastExportTime": "2025-01-16T00:00:00Z"}), encoding="utf-8")
        result = export_snapshot(snapshot, out, since="last", today=date(2025, 2, 1))
        assert result.count == 2
        assert result.skipped == 1

    def test_since_last_with_unreadable_state(self, snapshot, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        (out / STATE_NAME).write_text("{broken", encoding="utf-8")
        assert export_snapshot(snapshot, out, since="last", today=date(2025, 2, 1)).count == 3
