"""Turn raw JSON values from Cursor's key-value storage into typed records.

Every function here is best-effort: fields that are missing or have the wrong
shape come back empty or ``None``. Nothing raises on bad stored data.
"""

import json
import logging
import math
from datetime import datetime
from typing import Any, Iterable, Mapping

from .core import (
    CodeBlock,
    CodeEdit,
    ConversationRecord,
    MessageFragment,
    RequestContext,
    Role,
    TokenUsage,
    ToolInvocation,
    WorkspaceRoot,
)

logger = logging.getLogger(__name__)

USER_HEADER_TYPE = 1
TOOL_RESULT_LIMIT = 500


def parse_json(value: Any) -> Any:
    """Decode a stored value (str or bytes). Returns None if it is not JSON."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        logger.debug("Skipping value that is not valid JSON: %s", e)
        return None


# ── Workspaces ───────────────────────────────────────────────────────


def workspace_folders(data: Any) -> list[str]:
    """Root folders declared by a ``workspace.json`` (``folder`` and ``folders``)."""
    if not isinstance(data, dict):
        return []
    paths = []
    folder = data.get("folder")
    if isinstance(folder, str) and folder:
        paths.append(folder)
    folders = data.get("folders")
    if isinstance(folders, list):
        for entry in folders:
            path = entry.get("path") if isinstance(entry, dict) else None
            if isinstance(path, str) and path:
                paths.append(path)
    return paths


def workspace_from_json(workspace_id: str, data: Any, last_modified: datetime | None = None) -> WorkspaceRoot:
    return WorkspaceRoot(
        id=workspace_id,
        root_paths=tuple(workspace_folders(data)),
        last_modified=last_modified,
    )


def composer_ids(data: Any) -> list[str]:
    """Conversation ids listed in a workspace's ``composer.composerData``."""
    if not isinstance(data, dict):
        return []
    composers = data.get("allComposers")
    if not isinstance(composers, list):
        return []
    return [
        c["composerId"] for c in composers
        if isinstance(c, dict) and isinstance(c.get("composerId"), str) and c["composerId"]
    ]


# ── Request context ──────────────────────────────────────────────────


def declared_roots_from_context(context: Any) -> list[str]:
    """``rootPath`` of each entry in ``projectLayouts``.

    Layout entries are usually JSON-encoded strings; plain objects are
    accepted too.
    """
    if not isinstance(context, dict):
        return []
    layouts = context.get("projectLayouts")
    if not isinstance(layouts, list):
        return []
    roots = []
    for layout in layouts:
        if isinstance(layout, str):
            layout = parse_json(layout)
        if isinstance(layout, dict):
            root = layout.get("rootPath")
            if isinstance(root, str) and root:
                roots.append(root)
    return roots


def request_context_from_json(context: Any) -> RequestContext | None:
    if not isinstance(context, dict):
        return None
    bubble_id = context.get("bubbleId")
    if not isinstance(bubble_id, str) or not bubble_id:
        return None

    folders = []
    for folder in _dicts(context.get("attachedFoldersListDirResults")):
        files = tuple(
            (str(f.get("name", "")), str(f.get("type", "")))
            for f in _dicts(folder.get("files"))
        )
        if files:
            folders.append((str(folder.get("path") or "Unknown"), files))

    git_status = context.get("gitStatusRaw")
    return RequestContext(
        bubble_id=bubble_id,
        git_status=git_status if isinstance(git_status, str) and git_status else None,
        terminal_files=tuple(
            f["path"] for f in _dicts(context.get("terminalFiles")) if isinstance(f.get("path"), str)
        ),
        attached_folders=tuple(folders),
        rules=tuple(
            str(r.get("name") or r.get("description") or "Rule") for r in _dicts(context.get("cursorRules"))
        ),
        related_conversations=tuple(
            str(c.get("name") or c.get("composerId") or "Conversation")
            for c in _dicts(context.get("summarizedComposers"))
        ),
    )


# ── Messages ─────────────────────────────────────────────────────────


def fragment_from_bubble(bubble_id: str, header_type: Any, bubble: Any) -> MessageFragment | None:
    """Build a fragment from a ``bubbleId:*`` value and its header type."""
    if not isinstance(bubble, dict):
        return None

    text = bubble.get("text")
    rich_text = bubble.get("richText")
    if isinstance(rich_text, str):
        rich_text = parse_json(rich_text)

    tool = None
    tfd = bubble.get("toolFormerData")
    if isinstance(tfd, dict):
        params = tfd.get("params")
        if not isinstance(params, str):
            params = tfd.get("rawArgs") if isinstance(tfd.get("rawArgs"), str) else None
        result = tfd.get("result")
        tool = ToolInvocation(
            name=_str_or_none(tfd.get("name")),
            parameters=params,
            result=result[:TOOL_RESULT_LIMIT] if isinstance(result, str) else None,
            status=_str_or_none(tfd.get("status")),
        )

    reasoning = None
    reasoning_duration = None
    thinking = bubble.get("thinking")
    if isinstance(thinking, dict):
        thinking = thinking.get("text")
    if isinstance(thinking, str) and thinking:
        reasoning = thinking
        reasoning_duration = _int_or_none(bubble.get("thinkingDurationMs"))

    model_info = bubble.get("modelInfo")
    model_id = model_info.get("modelName") if isinstance(model_info, dict) else None

    context = bubble.get("context")
    selections = context.get("fileSelections") if isinstance(context, dict) else None

    return MessageFragment(
        id=bubble_id,
        role=Role.USER if header_type == USER_HEADER_TYPE else Role.ASSISTANT,
        text=text if isinstance(text, str) else "",
        rich_text=rich_text if isinstance(rich_text, dict) else None,
        tool_invocation=tool,
        reasoning=reasoning,
        reasoning_duration_ms=reasoning_duration,
        code_blocks=tuple(
            CodeBlock(language=str(cb.get("language") or ""), content=cb["content"])
            for cb in _dicts(bubble.get("codeBlocks"))
            if isinstance(cb.get("content"), str) and cb["content"]
        ),
        relevant_files=tuple(p for p in _list(bubble.get("relevantFiles")) if isinstance(p, str) and p),
        attached_files=tuple(_uri_paths(_list(bubble.get("attachedFileCodeChunksUris")))),
        selected_files=tuple(_uri_paths(s.get("uri") for s in _dicts(selections))),
        timestamp=to_epoch_ms(bubble.get("createdAt")) or to_epoch_ms(bubble.get("timestamp")),
        token_usage=_token_usage(bubble.get("tokenCount")),
        model_id=model_id if isinstance(model_id, str) and model_id else None,
        cost=_cost(bubble),
    )


def code_edit_from_diff(diff_id: str, data: Any) -> CodeEdit | None:
    """Build a code edit from a ``codeBlockDiff:*`` value."""
    if not isinstance(data, dict):
        return None
    modified = []
    for diff in _dicts(data.get("newModelDiffWrtV0")):
        modified.extend(line for line in _list(diff.get("modified")) if isinstance(line, str))
    return CodeEdit(
        diff_id=diff_id,
        file_path=_str_or_none(data.get("filePath")) or _str_or_none(data.get("file")),
        modified_lines=tuple(modified),
        command=_str_or_none(data.get("command")),
        tool_name=_str_or_none(data.get("toolName")),
        parameters=data.get("parameters"),
        result=data.get("result"),
        actions_taken=tuple(str(a) for a in _list(data.get("actionsTaken"))),
        files_modified=tuple(str(f) for f in _list(data.get("filesModified"))),
        git_status=_str_or_none(data.get("gitStatus")),
        directory_listed=_str_or_none(data.get("directoryListed")),
    )


def conversation_from_composer(
    composer_id: str,
    data: Any,
    bubbles: Mapping[str, Any],
    declared_root_paths: Iterable[str] = (),
    request_contexts: Iterable[RequestContext] = (),
    code_edits: Iterable[CodeEdit] = (),
    direct_workspace_id: str | None = None,
) -> ConversationRecord | None:
    """Build a record from a ``composerData:*`` value and the bubbles it lists.

    Headers whose bubble is missing or unreadable are skipped.
    """
    if not isinstance(data, dict):
        return None

    fragments = []
    for header in _dicts(data.get("fullConversationHeadersOnly")):
        bubble_id = header.get("bubbleId")
        if not isinstance(bubble_id, str):
            continue
        fragment = fragment_from_bubble(bubble_id, header.get("type"), bubbles.get(bubble_id))
        if fragment is not None:
            fragments.append(fragment)

    created = _uri_paths(f.get("uri") for f in _dicts(data.get("newlyCreatedFiles")))
    code_block_data = data.get("codeBlockData")
    code_block_files = list(code_block_data) if isinstance(code_block_data, dict) else []

    name = data.get("name")
    return ConversationRecord(
        id=composer_id,
        name=name.strip() if isinstance(name, str) else "",
        fragments=tuple(fragments),
        declared_root_paths=tuple(declared_root_paths),
        created_files=tuple(created),
        code_block_files=tuple(code_block_files),
        direct_workspace_id=direct_workspace_id,
        created_at=to_epoch_ms(data.get("createdAt")),
        updated_at=to_epoch_ms(data.get("lastUpdatedAt")),
        cost=_cost(data, direct=False),
        code_edits=tuple(code_edits),
        request_contexts=tuple(request_contexts),
    )


# ── Helpers ──────────────────────────────────────────────────────────


def to_epoch_ms(value: Any) -> int | None:
    """Epoch milliseconds from a number, a numeric string or an ISO 8601 string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        return int(value)
    if isinstance(value, str) and value:
        if value.isdigit():
            return int(value) or None
        try:
            if value.endswith("Z"):
                value = value[:-1] + "+00:00"
            return int(datetime.fromisoformat(value).timestamp() * 1000)
        except (ValueError, OverflowError, OSError):
            return None
    return None


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _dicts(value: Any) -> list[dict]:
    return [v for v in _list(value) if isinstance(v, dict)]


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return int(value)


def _uri_paths(uris: Iterable[Any]) -> list[str]:
    """Paths from URI values, which may be ``{"path"|"fsPath": ...}`` or strings."""
    paths = []
    for uri in uris:
        if isinstance(uri, dict):
            uri = uri.get("path") or uri.get("fsPath")
        if isinstance(uri, str) and uri:
            paths.append(uri)
    return paths


def _token_usage(value: Any) -> TokenUsage | None:
    if not isinstance(value, dict):
        return None
    counts = [_int_or_none(value.get(k)) for k in ("inputTokens", "outputTokens", "cachedTokens")]
    if all(c is None for c in counts):
        return None
    return TokenUsage(*(c or 0 for c in counts))


def _cost(data: dict, direct: bool = True) -> float | None:
    """A ``cost`` number, else ``usageData.cost`` / ``usageData.estimatedCost``."""
    if direct:
        cost = data.get("cost")
        if isinstance(cost, (int, float)) and not isinstance(cost, bool) and math.isfinite(cost):
            return float(cost)
    usage = data.get("usageData")
    if isinstance(usage, dict):
        for key in ("cost", "estimatedCost"):
            cost = usage.get(key)
            if isinstance(cost, (int, float)) and not isinstance(cost, bool) and math.isfinite(cost):
                return float(cost)
    return None
