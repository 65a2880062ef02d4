"""FastAPI web server for cursor-history."""

import logging
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel

from . import __version__
from .aggregation import GLOBAL_WORKSPACE_ID
from .backends import get_default_provider
from .config import get_export_path
from .core import WorkspaceSummary
from .export import conversation_to_dict, conversation_to_json, conversation_to_markdown, export_snapshot, slugify
from .pipeline import HistorySnapshot, load_snapshot
from .provider import HistoryProvider

logger = logging.getLogger(__name__)

app = FastAPI(title="cursor-history", version=__version__)

# Provider cache (populated on first request that finds Cursor data)
_provider: HistoryProvider | None = None


class ExportRequest(BaseModel):
    since: str = "all"
    outDir: str | None = None


def _get_provider() -> HistoryProvider:
    """Lazily detect and cache the provider; 503 if Cursor data is missing."""
    global _provider
    if _provider is None:
        _provider = get_default_provider()
        if _provider is None:
            raise HTTPException(status_code=503, detail="No Cursor chat history found on this machine")
        logger.info("Using provider %s at %s", _provider.name, _provider.get_base_path())
    return _provider


def _snapshot() -> HistorySnapshot:
    provider = _get_provider()
    try:
        return load_snapshot(provider)
    except Exception as e:
        logger.error("Failed to load history from %s: %s", provider.name, e)
        raise HTTPException(status_code=500, detail="Failed to load chat history")


def _summary_to_dict(summary: WorkspaceSummary) -> dict:
    return {
        "id": summary.id,
        "name": summary.name,
        "conversation_count": summary.conversation_count,
        "last_modified": summary.last_modified.isoformat() if summary.last_modified else None,
        "root_paths": list(summary.root_paths),
    }


def _find_conversation(snapshot: HistorySnapshot, conversation_id: str):
    conv = snapshot.conversations.get(conversation_id)
    if conv is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    attribution = snapshot.attributions.get(conversation_id)
    ws_id = attribution.workspace_id if attribution and attribution.is_assigned else GLOBAL_WORKSPACE_ID
    return conv, attribution, snapshot.workspace_name(ws_id)


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/workspaces")
async def get_workspaces():
    """Return every workspace with its conversation count, newest first."""
    snapshot = _snapshot()
    return [_summary_to_dict(s) for s in snapshot.summaries()]


@app.get("/api/workspaces/{workspace_id}/conversations")
async def get_workspace_conversations(workspace_id: str):
    """Return the conversations attributed to one workspace."""
    snapshot = _snapshot()
    if not snapshot.has_workspace(workspace_id):
        raise HTTPException(status_code=404, detail="Workspace not found")

    ws_name = snapshot.workspace_name(workspace_id)
    conversations = []
    for conv in snapshot.groups.get(workspace_id, []):
        data = conversation_to_dict(conv, snapshot.attributions.get(conv.id), ws_name)
        conversations.append(data)
    return {"workspace_id": workspace_id, "total": len(conversations), "conversations": conversations}


@app.get("/api/conversations/{conversation_id}")
async def get_conversation(conversation_id: str):
    """Return one assembled conversation with its attribution."""
    snapshot = _snapshot()
    conv, attribution, ws_name = _find_conversation(snapshot, conversation_id)
    return conversation_to_dict(conv, attribution, ws_name)


@app.get("/api/export/{conversation_id}")
async def export_conversation(
    conversation_id: str,
    format: str = Query("md", description="Export format: md or json"),
):
    """Export a conversation as Markdown or JSON."""
    snapshot = _snapshot()
    conv, attribution, ws_name = _find_conversation(snapshot, conversation_id)
    safe_title = slugify(conv.title, max_len=50)

    if format == "json":
        content = conversation_to_json(conv, attribution, ws_name)
        return Response(
            content=content,
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{safe_title}.json"'},
        )
    else:
        content = conversation_to_markdown(conv, attribution, ws_name)
        return Response(
            content=content,
            media_type="text/markdown",
            headers={"Content-Disposition": f'attachment; filename="{safe_title}.md"'},
        )


@app.post("/api/export")
async def export_all(request: ExportRequest):
    """Write every conversation to disk as Markdown."""
    if request.since not in ("all", "last"):
        raise HTTPException(status_code=400, detail="since must be 'all' or 'last'")
    snapshot = _snapshot()
    out_dir = Path(request.outDir).expanduser() if request.outDir else get_export_path()
    try:
        result = export_snapshot(snapshot, out_dir, since=request.since)
    except OSError as e:
        logger.error("Export to %s failed: %s", out_dir, e)
        raise HTTPException(status_code=500, detail="Export failed")
    return {"exportDir": str(result.out_dir), "exportedCount": result.count, "skipped": result.skipped}
