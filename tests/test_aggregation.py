"""Tests for grouping conversations by workspace."""

from datetime import datetime, timezone

from cursor_history.aggregation import GLOBAL_WORKSPACE_ID, GLOBAL_WORKSPACE_NAME, group, summarize
from cursor_history.catalog import WorkspaceCatalog
from cursor_history.core import AssembledConversation, AttributionResult, MatchedVia, WorkspaceRoot


def _conv(cid, created=None, updated=None):
    return AssembledConversation(id=cid, title=cid, created_at=created, updated_at=updated)


class TestGroup:
    def test_buckets_and_global(self):
        convs = [_conv("a", 1), _conv("b", 2), _conv("c", 3)]
        attributions = {
            "a": AttributionResult("a", "W1", MatchedVia.DIRECT),
            "b": AttributionResult("b", None, MatchedVia.NONE),
        }
        groups = group(convs, attributions)
        assert [c.id for c in groups["W1"]] == ["a"]
        assert sorted(c.id for c in groups[GLOBAL_WORKSPACE_ID]) == ["b", "c"]

    def test_newest_first_with_created_fallback(self):
        convs = [_conv("old", created=100), _conv("new", created=100, updated=900), _conv("mid", created=500)]
        attributions = [AttributionResult(c.id, None, MatchedVia.NONE) for c in convs]
        groups = group(convs, attributions)
        assert [c.id for c in groups[GLOBAL_WORKSPACE_ID]] == ["new", "mid", "old"]


class TestSummarize:
    def test_includes_empty_workspaces_and_global(self):
        catalog = WorkspaceCatalog([
            WorkspaceRoot(id="W1", root_paths=("/home/u/proj1",)),
            WorkspaceRoot(id="W2", root_paths=("/home/u/proj2",)),
        ], windows=False)
        groups = {"W1": [_conv("a", updated=2000)], GLOBAL_WORKSPACE_ID: [_conv("b", updated=1000)]}
        summaries = summarize(groups, catalog)

        by_id = {s.id: s for s in summaries}
        assert by_id["W1"].conversation_count == 1
        assert by_id["W1"].name == "proj1"
        assert by_id["W2"].conversation_count == 0
        assert by_id[GLOBAL_WORKSPACE_ID].name == GLOBAL_WORKSPACE_NAME
        assert [s.id for s in summaries] == ["W1", GLOBAL_WORKSPACE_ID, "W2"]

    def test_no_global_when_empty(self):
        catalog = WorkspaceCatalog([WorkspaceRoot(id="W1")], windows=False)
        summaries = summarize({}, catalog)
        assert [s.id for s in summaries] == ["W1"]
        assert summaries[0].name == "Project W1"

    def test_workspace_mtime_counts(self):
        modified = datetime(2030, 1, 1, tzinfo=timezone.utc)
        catalog = WorkspaceCatalog([WorkspaceRoot(id="W1", last_modified=modified)], windows=False)
        summaries = summarize({"W1": [_conv("a", updated=1000)]}, catalog)
        assert summaries[0].last_modified == modified
