"""Group assembled conversations by the workspace they were attributed to."""

from datetime import datetime, timezone
from typing import Iterable, Mapping

from .catalog import WorkspaceCatalog
from .core import AssembledConversation, AttributionResult, WorkspaceSummary

GLOBAL_WORKSPACE_ID = "global"
GLOBAL_WORKSPACE_NAME = "Other chats"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def group(
    conversations: Iterable[AssembledConversation],
    attributions: Mapping[str, AttributionResult] | Iterable[AttributionResult],
) -> dict[str, list[AssembledConversation]]:
    """Bucket conversations by workspace id, newest first within each bucket.

    Unassigned conversations, and any without an attribution, go to the
    ``"global"`` bucket.
    """
    if not isinstance(attributions, Mapping):
        attributions = {a.conversation_id: a for a in attributions}

    groups: dict[str, list[AssembledConversation]] = {}
    for conv in conversations:
        result = attributions.get(conv.id)
        ws_id = result.workspace_id if result is not None and result.is_assigned else None
        groups.setdefault(ws_id or GLOBAL_WORKSPACE_ID, []).append(conv)

    for bucket in groups.values():
        bucket.sort(key=lambda c: c.last_activity, reverse=True)
    return groups


def summarize(
    groups: Mapping[str, list[AssembledConversation]], catalog: WorkspaceCatalog
) -> list[WorkspaceSummary]:
    """One row per catalog workspace, plus "Other chats" when it has any.

    Sorted by last modification, newest first.
    """
    summaries = []
    for ws in catalog:
        convs = groups.get(ws.id, [])
        summaries.append(WorkspaceSummary(
            id=ws.id,
            name=ws.name,
            conversation_count=len(convs),
            last_modified=_latest(ws.last_modified, convs),
            root_paths=ws.root_paths,
        ))

    global_convs = groups.get(GLOBAL_WORKSPACE_ID, [])
    if global_convs:
        summaries.append(WorkspaceSummary(
            id=GLOBAL_WORKSPACE_ID,
            name=GLOBAL_WORKSPACE_NAME,
            conversation_count=len(global_convs),
            last_modified=_latest(None, global_convs),
        ))

    summaries.sort(key=lambda s: s.last_modified or _EPOCH, reverse=True)
    return summaries


def _latest(modified: datetime | None, convs: list[AssembledConversation]) -> datetime | None:
    latest_ms = max((c.last_activity for c in convs), default=0)
    latest = datetime.fromtimestamp(latest_ms / 1000, tz=timezone.utc) if latest_ms else None
    if modified is None:
        return latest
    if latest is None:
        return modified
    return max(modified, latest)
