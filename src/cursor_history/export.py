"""Export assembled conversations to Markdown and JSON.

``export_snapshot`` writes one Markdown file per conversation under
``<out>/<date>/<workspace>/chat/``, keeps a ``manifest.jsonl`` of everything
exported so far and an ``export_state.json`` used by ``since="last"``.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path

from .aggregation import GLOBAL_WORKSPACE_ID
from .core import AssembledConversation, AttributionResult, ConversationMessage, Role
from .pipeline import HistorySnapshot

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.jsonl"
STATE_NAME = "export_state.json"
CODE_EDIT_PREVIEW_LINES = 30
TOOL_PREVIEW_LEN = 200


def conversation_to_dict(
    conversation: AssembledConversation,
    attribution: AttributionResult | None = None,
    workspace_name: str | None = None,
) -> dict:
    """Convert an assembled conversation to a JSON-serializable dict."""
    metrics = conversation.metrics
    return {
        "conversation": {
            "id": conversation.id,
            "title": conversation.title,
            "created": _iso(conversation.created_at),
            "updated": _iso(conversation.updated_at),
            "message_count": len(conversation.messages),
            "workspace_id": _workspace_id(attribution),
            "workspace_name": workspace_name,
            "matched_via": attribution.matched_via.value if attribution else None,
            "metrics": None if metrics is None else {
                "total_input_tokens": metrics.total_input_tokens,
                "total_output_tokens": metrics.total_output_tokens,
                "total_cached_tokens": metrics.total_cached_tokens,
                "models_used": list(metrics.models_used),
                "total_response_time_ms": metrics.total_response_time_ms,
                "total_cost": metrics.total_cost,
                "total_tool_calls": metrics.total_tool_calls,
                "total_reasoning_traces": metrics.total_reasoning_traces,
                "total_reasoning_duration_ms": metrics.total_reasoning_duration_ms,
            },
        },
        "messages": [_message_to_dict(m) for m in conversation.messages],
        "code_edits": [
            {
                "diff_id": edit.diff_id,
                "file_path": edit.file_path,
                "modified_lines": list(edit.modified_lines),
            }
            for edit in conversation.code_edits
        ],
    }


def conversation_to_json(
    conversation: AssembledConversation,
    attribution: AttributionResult | None = None,
    workspace_name: str | None = None,
) -> str:
    """Export a conversation as structured JSON."""
    data = conversation_to_dict(conversation, attribution, workspace_name)
    return json.dumps(data, indent=2, ensure_ascii=False)


def conversation_to_markdown(
    conversation: AssembledConversation,
    attribution: AttributionResult | None = None,
    workspace_name: str | None = None,
) -> str:
    """Export a conversation as Markdown with a front-matter header."""
    front = {
        "log_id": conversation.id,
        "title": conversation.title,
        "created_at": _iso(conversation.created_at),
        "updated_at": _iso(conversation.updated_at),
        "workspace_id": _workspace_id(attribution),
        "workspace_name": workspace_name,
        "matched_via": attribution.matched_via.value if attribution else None,
        "message_count": len(conversation.messages),
    }
    metrics = conversation.metrics
    if metrics is not None:
        if metrics.total_input_tokens:
            front["total_input_tokens"] = metrics.total_input_tokens
        if metrics.total_output_tokens:
            front["total_output_tokens"] = metrics.total_output_tokens
        if metrics.total_cached_tokens:
            front["total_cached_tokens"] = metrics.total_cached_tokens
        if metrics.models_used:
            front["models_used"] = ", ".join(metrics.models_used)
        if metrics.total_response_time_ms:
            front["total_response_time_ms"] = metrics.total_response_time_ms
        if metrics.total_cost:
            front["total_cost"] = metrics.total_cost
        if metrics.total_tool_calls:
            front["tool_calls_count"] = metrics.total_tool_calls
        if metrics.total_reasoning_traces:
            front["thinking_count"] = metrics.total_reasoning_traces

    lines = ["---"]
    lines.extend(f"{k}: {'null' if v is None else v}" for k, v in front.items())
    lines.extend(["---", "", f"# {conversation.title}", ""])

    if workspace_name:
        lines.append(f"**Workspace:** {workspace_name}")
    if conversation.created_at:
        lines.append(f"**Created:** {_iso(conversation.created_at)}")
    if conversation.updated_at:
        lines.append(f"**Updated:** {_iso(conversation.updated_at)}")
    lines.append(f"**Messages:** {len(conversation.messages)}")
    if metrics is not None and metrics.total_response_time_ms:
        lines.append(f"**Total response time:** {metrics.total_response_time_ms / 1000:.1f}s")
    lines.extend(["", "---", ""])

    for msg in conversation.messages:
        lines.extend(_message_to_markdown(msg))
        lines.extend(["", "---", ""])

    if conversation.code_edits:
        lines.extend(["## Code edit history", ""])
        for i, edit in enumerate(conversation.code_edits):
            lines.append(f"- **{edit.file_path or f'diff-{edit.diff_id or i}'}** ({edit.diff_id or i})")
            if edit.modified_lines:
                shown = list(edit.modified_lines[:CODE_EDIT_PREVIEW_LINES])
                if len(edit.modified_lines) > CODE_EDIT_PREVIEW_LINES:
                    shown.append("...")
                lines.append("  ```")
                lines.extend(f"  {line}" for line in shown)
                lines.append("  ```")
            lines.append("")
        lines.extend(["---", ""])

    return "\n".join(lines)


# ── Batch export ─────────────────────────────────────────────────────


@dataclass
class ExportResult:
    out_dir: Path
    exported: list[Path] = field(default_factory=list)
    skipped: int = 0

    @property
    def count(self) -> int:
        return len(self.exported)


def slugify(value: str, max_len: int = 80) -> str:
    """Filesystem-safe slug: reserved characters to ``_``, whitespace to ``-``."""
    slug = re.sub(r'[<>:"/\\|?*]', "_", str(value or ""))
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:max_len] or "untitled"


def export_snapshot(
    snapshot: HistorySnapshot,
    out_dir: Path,
    since: str = "all",
    today: date | None = None,
) -> ExportResult:
    """Write every conversation in the snapshot as Markdown.

    With ``since="last"``, conversations not updated after the previous run's
    ``lastExportTime`` are skipped.
    """
    out_dir = Path(out_dir).resolve()
    today = today or datetime.now(timezone.utc).date()
    state_path = out_dir / STATE_NAME
    last_export_ms = _read_last_export(state_path) if since == "last" else 0

    result = ExportResult(out_dir=out_dir)
    written = []
    for conv in snapshot.conversations.values():
        if since == "last" and conv.last_activity <= last_export_ms:
            result.skipped += 1
            continue

        attribution = snapshot.attributions.get(conv.id)
        ws_id = _workspace_id(attribution)
        ws_name = snapshot.workspace_name(ws_id)
        ws_slug = "other-chats" if ws_id == GLOBAL_WORKSPACE_ID else slugify(ws_name or ws_id[:12])

        stamp = _iso(conv.last_activity) or today.isoformat()
        filename = f"{re.sub(r'[:.]', '-', stamp)[:19]}__{slugify(conv.title)}__{conv.id[:8]}.md"
        path = out_dir / today.isoformat() / ws_slug / "chat" / filename

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(conversation_to_markdown(conv, attribution, ws_name), encoding="utf-8")
        result.exported.append(path)
        written.append((conv, path))

    out_dir.mkdir(parents=True, exist_ok=True)
    _write_manifest(out_dir, written)
    state = {
        "lastExportTime": datetime.now(timezone.utc).isoformat(),
        "exportedCount": result.count,
        "exportDir": str(out_dir),
    }
    state_path.write_text(json.dumps(state, indent=2), encoding="utf-8")

    logger.info("Exported %d chat(s) to %s (%d unchanged)", result.count, out_dir, result.skipped)
    return result


def _write_manifest(out_dir: Path, written: list[tuple[AssembledConversation, Path]]) -> None:
    """Merge this run into manifest.jsonl, one line per conversation id."""
    manifest_path = out_dir / MANIFEST_NAME
    entries: dict[str, dict] = {}
    if manifest_path.exists():
        try:
            for line in manifest_path.read_text(encoding="utf-8").splitlines():
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Skipping bad manifest line in %s", manifest_path)
                    continue
                if isinstance(entry, dict) and entry.get("log_id"):
                    entries[entry["log_id"]] = entry
        except OSError as e:
            logger.warning("Failed to read %s: %s", manifest_path, e)

    for conv, path in written:
        entries[conv.id] = {
            "log_id": conv.id,
            "title": conv.title,
            "path": path.relative_to(out_dir).as_posix(),
            "updated_at": _iso(conv.last_activity),
        }

    if entries:
        manifest_path.write_text(
            "".join(json.dumps(e) + "\n" for e in entries.values()), encoding="utf-8"
        )


def _read_last_export(state_path: Path) -> int:
    if not state_path.exists():
        return 0
    try:
        state = json.loads(state_path.read_text(encoding="utf-8"))
        value = state.get("lastExportTime")
        if not value:
            return 0
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return int(datetime.fromisoformat(value).timestamp() * 1000)
    except (json.JSONDecodeError, OSError, ValueError, TypeError, AttributeError) as e:
        logger.warning("Ignoring unreadable export state %s: %s", state_path, e)
        return 0


# ── Helpers ──────────────────────────────────────────────────────────


def _message_to_dict(msg: ConversationMessage) -> dict:
    tool = msg.tool_invocation
    usage = msg.token_usage
    return {
        "role": msg.role.value,
        "text": msg.text,
        "timestamp": _iso(msg.timestamp),
        "fragment_id": msg.fragment_id,
        "model": msg.model_id,
        "input_tokens": usage.input if usage else None,
        "output_tokens": usage.output if usage else None,
        "cached_tokens": usage.cached if usage else None,
        "cost": msg.cost,
        "response_time_ms": msg.response_time_ms,
        "tool_call": None if tool is None else {
            "name": tool.name,
            "params": tool.parameters,
            "result": tool.result,
            "status": tool.status,
        },
        "thinking": msg.reasoning,
        "thinking_duration_ms": msg.reasoning_duration_ms,
        "is_code_edit": msg.is_code_edit,
    }


def _message_to_markdown(msg: ConversationMessage) -> list[str]:
    label = "User" if msg.role == Role.USER else "Assistant"
    ts = ""
    if msg.timestamp:
        ts = f" ({datetime.fromtimestamp(msg.timestamp / 1000, tz=timezone.utc).strftime('%Y-%m-%d %H:%M')})"
    lines = [f"## {label}{ts}", ""]

    if msg.model_id:
        lines.extend([f"_Model: {msg.model_id}_", ""])
    if msg.token_usage is not None:
        u = msg.token_usage
        lines.extend([f"_Tokens: in {u.input}, out {u.output}, cached {u.cached}_", ""])
    if msg.response_time_ms is not None:
        lines.extend([f"_Response time: {msg.response_time_ms / 1000:.1f}s_", ""])
    if msg.cost is not None:
        lines.extend([f"_Cost: {msg.cost}_", ""])
    if msg.reasoning:
        lines.extend(["<details><summary>Thinking</summary>", "", msg.reasoning, "", "</details>", ""])

    lines.append(msg.text)

    tool = msg.tool_invocation
    if tool is not None:
        head = f"> **Tool: {tool.name or 'unknown'}**"
        if tool.status:
            head += f" ({tool.status})"
        lines.extend(["", head])
        if tool.parameters:
            lines.append(f"> Params: `{tool.parameters[:TOOL_PREVIEW_LEN]}`")
        if tool.result:
            lines.append(f"> Result: `{tool.result[:TOOL_PREVIEW_LEN]}`")
    return lines


def _workspace_id(attribution: AttributionResult | None) -> str:
    if attribution is None or not attribution.is_assigned:
        return GLOBAL_WORKSPACE_ID
    return attribution.workspace_id


def _iso(ms: int | None) -> str | None:
    """Convert an epoch-millisecond timestamp to ISO 8601, or None."""
    if not ms:
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()
    except (ValueError, OSError, OverflowError):
        return None
