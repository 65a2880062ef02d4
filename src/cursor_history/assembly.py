"""Build the displayable timeline of one conversation.

Fragments are flattened to text, empty ones are dropped, stored code edits
are appended as trailing assistant messages, and the result is ordered by
time before response times and totals are derived.
"""

import json
from dataclasses import replace
from typing import Any, Iterable

from .core import (
    AssembledConversation,
    CodeEdit,
    ConversationMessage,
    ConversationMetrics,
    ConversationRecord,
    MessageFragment,
    RequestContext,
    Role,
)

TITLE_MAX_LEN = 100
REASONING_PREVIEW_LEN = 200


def assemble(record: ConversationRecord) -> AssembledConversation:
    """Assemble a record. Pure: the same record always gives the same result."""
    contexts: dict[str, list[RequestContext]] = {}
    for ctx in record.request_contexts:
        contexts.setdefault(ctx.bubble_id, []).append(ctx)

    messages = []
    for fragment in record.fragments:
        text = fragment_text(fragment)
        text += "".join(context_notes(ctx) for ctx in contexts.get(fragment.id, ()))
        if not text.strip() and fragment.tool_invocation is None and not fragment.reasoning:
            continue
        messages.append(_message(fragment, text))

    title = derive_title(record, messages)

    edit_time = record.updated_at or record.created_at
    for edit in record.code_edits:
        formatted = format_code_edit(edit)
        if formatted.strip():
            messages.append(ConversationMessage(
                role=Role.ASSISTANT,
                text=f"**Tool Action:**{formatted}",
                timestamp=edit_time,
                is_code_edit=True,
            ))

    messages = with_response_times(order_messages(messages))

    return AssembledConversation(
        id=record.id,
        title=title,
        messages=tuple(messages),
        metrics=aggregate_metrics(messages, fallback_cost=record.cost),
        code_edits=record.code_edits,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


# ── Text ─────────────────────────────────────────────────────────────


def flatten_rich_text(children: Any) -> str:
    """Depth-first concatenation of ``text`` leaves; ``code`` nodes are fenced."""
    if not isinstance(children, list):
        return ""
    out = []
    for child in children:
        if not isinstance(child, dict):
            continue
        if child.get("type") == "text" and isinstance(child.get("text"), str):
            out.append(child["text"])
        elif child.get("type") == "code" and isinstance(child.get("children"), list):
            out.append("\n```\n" + flatten_rich_text(child["children"]) + "\n```\n")
        elif isinstance(child.get("children"), list):
            out.append(flatten_rich_text(child["children"]))
    return "".join(out)


def fragment_text(fragment: MessageFragment) -> str:
    """Plain text of a fragment followed by its code blocks."""
    text = fragment.text if fragment.text.strip() else ""
    if not text and isinstance(fragment.rich_text, dict):
        root = fragment.rich_text.get("root")
        if isinstance(root, dict):
            text = flatten_rich_text(root.get("children"))

    for block in fragment.code_blocks:
        if block.content:
            text += f"\n\n```{block.language}\n{block.content}\n```"
    return text


def context_notes(ctx: RequestContext) -> str:
    out = ""
    if ctx.git_status:
        out += f"\n\n**Git Status:**\n```\n{ctx.git_status}\n```"
    if ctx.terminal_files:
        out += "\n\n**Terminal Files:**"
        out += "".join(f"\n- {path}" for path in ctx.terminal_files)
    if ctx.attached_folders:
        out += "\n\n**Attached Folders:**"
        for folder, files in ctx.attached_folders:
            out += f"\n\n**Folder:** {folder}"
            out += "".join(f"\n- {name} ({kind})" for name, kind in files)
    if ctx.rules:
        out += "\n\n**Cursor Rules:**"
        out += "".join(f"\n- {rule}" for rule in ctx.rules)
    if ctx.related_conversations:
        out += "\n\n**Related Conversations:**"
        out += "".join(f"\n- {name}" for name in ctx.related_conversations)
    return out


def format_code_edit(edit: CodeEdit) -> str:
    """Markdown description of a stored code edit. Empty if it has nothing to show."""
    out = ""
    if edit.modified_lines:
        out += "\n\n**Code Changes:**\n```\n" + "\n".join(edit.modified_lines) + "\n```"
    if edit.file_path:
        out += f"\n\n**File:** {edit.file_path}"
    if edit.command:
        out += f"\n\n**Command:** `{edit.command}`"

    if edit.tool_name:
        out += f"\n\n**Tool Action:** {edit.tool_name}"
        params = _as_dict(edit.parameters)
        if params.get("command"):
            out += f"\n**Command:** `{params['command']}`"
        if params.get("target_file"):
            out += f"\n**File:** {params['target_file']}"
        if params.get("query"):
            out += f"\n**Query:** {params['query']}"
        if params.get("instructions"):
            out += f"\n**Instructions:** {params['instructions']}"

        result = _as_dict(edit.result)
        if result.get("output"):
            out += f"\n\n**Output:**\n```\n{result['output']}\n```"
        if result.get("contents"):
            out += f"\n\n**File Contents:**\n```\n{result['contents']}\n```"
        if result.get("exitCodeV2") is not None:
            out += f"\n\n**Exit Code:** {result['exitCodeV2']}"
        files = [f for f in result.get("files") or [] if isinstance(f, dict)]
        if files:
            out += "\n\n**Files Found:**"
            for f in files:
                out += f"\n- {f.get('name') or f.get('path')} ({f.get('type') or 'file'})"
        hits = [
            r for r in result.get("results") or []
            if isinstance(r, dict) and r.get("file") and r.get("content")
        ]
        if hits:
            out += "\n\n**Results:**"
            for hit in hits:
                out += f"\n\n**File:** {hit['file']}\n```\n{hit['content']}\n```"

    if edit.actions_taken:
        out += f"\n\n**Actions Taken:** {', '.join(edit.actions_taken)}"
    if edit.files_modified:
        out += "\n\n**Files Modified:**" + "".join(f"\n- {f}" for f in edit.files_modified)
    if edit.git_status:
        out += f"\n\n**Git Status:**\n```\n{edit.git_status}\n```"
    if edit.directory_listed:
        out += f"\n\n**Directory Listed:** {edit.directory_listed}"
    return out


def derive_title(record: ConversationRecord, messages: Iterable[ConversationMessage]) -> str:
    """Record name, else the first line of the first fragment message in stored order."""
    if record.name:
        return record.name
    first = next(iter(messages), None)
    if first is not None:
        for line in first.text.split("\n"):
            if line.strip():
                if len(line) > TITLE_MAX_LEN:
                    return line[:TITLE_MAX_LEN] + "..."
                return line
    return f"Conversation {record.id[:8]}"


# ── Ordering and metrics ─────────────────────────────────────────────


def order_messages(messages: list[ConversationMessage]) -> list[ConversationMessage]:
    """Stable sort by timestamp.

    A message without a timestamp sorts as if it had the timestamp of the
    message before it, so it stays right behind that message.
    """
    keys = []
    last = None
    for msg in messages:
        if msg.timestamp is not None:
            last = msg.timestamp
        keys.append((last is not None, last or 0))
    order = sorted(range(len(messages)), key=lambda i: keys[i])
    return [messages[i] for i in order]


def with_response_times(messages: list[ConversationMessage]) -> list[ConversationMessage]:
    """Set ``response_time_ms`` on assistant messages that follow a user message."""
    out = []
    last_user_ts = None
    for msg in messages:
        if msg.role == Role.USER:
            last_user_ts = msg.timestamp
        elif (
            last_user_ts is not None
            and msg.timestamp is not None
            and msg.timestamp > last_user_ts
        ):
            msg = replace(msg, response_time_ms=msg.timestamp - last_user_ts)
        out.append(msg)
    return out


def aggregate_metrics(
    messages: Iterable[ConversationMessage], fallback_cost: float | None = None
) -> ConversationMetrics | None:
    """Totals over the timeline, or None when there is nothing to report."""
    tokens_in = tokens_out = tokens_cached = 0
    response_ms = reasoning_ms = 0
    tool_calls = reasoning_traces = 0
    cost = 0.0
    models: list[str] = []

    for msg in messages:
        if msg.token_usage is not None:
            tokens_in += msg.token_usage.input
            tokens_out += msg.token_usage.output
            tokens_cached += msg.token_usage.cached
        if msg.response_time_ms is not None:
            response_ms += msg.response_time_ms
        if msg.cost is not None:
            cost += msg.cost
        if msg.model_id and msg.model_id not in models:
            models.append(msg.model_id)
        if msg.tool_invocation is not None:
            tool_calls += 1
        if msg.reasoning:
            reasoning_traces += 1
            if msg.reasoning_duration_ms is not None:
                reasoning_ms += msg.reasoning_duration_ms

    if cost == 0 and fallback_cost is not None:
        cost = fallback_cost

    if not any((tokens_in, tokens_out, tokens_cached, response_ms, cost > 0,
                models, tool_calls, reasoning_traces, reasoning_ms)):
        return None

    return ConversationMetrics(
        total_input_tokens=tokens_in,
        total_output_tokens=tokens_out,
        total_cached_tokens=tokens_cached,
        models_used=tuple(models),
        total_response_time_ms=response_ms,
        total_cost=cost,
        total_tool_calls=tool_calls,
        total_reasoning_traces=reasoning_traces,
        total_reasoning_duration_ms=reasoning_ms,
    )


# ── Helpers ──────────────────────────────────────────────────────────


def _message(fragment: MessageFragment, text: str) -> ConversationMessage:
    display = text.strip()
    tool = fragment.tool_invocation
    if not display and tool is not None:
        display = f"**Tool: {tool.name or 'unknown'}**"
        if tool.status:
            display += f" ({tool.status})"
    if not display and fragment.reasoning:
        display = fragment.reasoning[:REASONING_PREVIEW_LEN]
        if len(fragment.reasoning) > REASONING_PREVIEW_LEN:
            display += "..."

    return ConversationMessage(
        role=fragment.role,
        text=display,
        timestamp=fragment.timestamp,
        fragment_id=fragment.id,
        model_id=fragment.model_id,
        token_usage=fragment.token_usage,
        cost=fragment.cost,
        tool_invocation=tool,
        reasoning=fragment.reasoning,
        reasoning_duration_ms=fragment.reasoning_duration_ms,
    )


def _as_dict(value: Any) -> dict:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return {}
    return value if isinstance(value, dict) else {}
