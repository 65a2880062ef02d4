"""One attribution-and-assembly run over an in-memory snapshot."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from .aggregation import GLOBAL_WORKSPACE_ID, group, summarize
from .assembly import assemble
from .attribution import resolve_all
from .catalog import WorkspaceCatalog
from .core import (
    AssembledConversation,
    AttributionResult,
    ConversationRecord,
    WorkspaceRoot,
    WorkspaceSummary,
)
from .provider import HistoryProvider

logger = logging.getLogger(__name__)


@dataclass
class HistorySnapshot:
    """Everything one run derived: attribution and timeline per conversation."""

    catalog: WorkspaceCatalog
    attributions: dict[str, AttributionResult] = field(default_factory=dict)
    conversations: dict[str, AssembledConversation] = field(default_factory=dict)
    groups: dict[str, list[AssembledConversation]] = field(default_factory=dict)

    def summaries(self) -> list[WorkspaceSummary]:
        return summarize(self.groups, self.catalog)

    def has_workspace(self, workspace_id: str) -> bool:
        return workspace_id in self.catalog or workspace_id in self.groups

    def workspace_name(self, workspace_id: str | None) -> str | None:
        if not workspace_id or workspace_id == GLOBAL_WORKSPACE_ID:
            return None
        ws = self.catalog.get(workspace_id)
        return ws.name if ws else None


def build_snapshot(
    workspaces: Iterable[WorkspaceRoot],
    records: Iterable[ConversationRecord],
    direct_mapping: Mapping[str, str] | None = None,
    windows: bool | None = None,
) -> HistorySnapshot:
    """Build the catalog, then resolve, assemble and group every record.

    Conversations whose timeline comes out empty are attributed but left out
    of ``conversations`` and ``groups``.
    """
    records = list(records)
    catalog = WorkspaceCatalog(workspaces, windows=windows)
    attributions = resolve_all(records, catalog, direct_mapping)

    conversations = {}
    for record in records:
        assembled = assemble(record)
        if not assembled.messages:
            logger.debug("Conversation %s has no displayable messages", record.id)
            continue
        conversations[record.id] = assembled

    groups = group(conversations.values(), attributions)
    unassigned = len(groups.get(GLOBAL_WORKSPACE_ID, []))
    logger.info(
        "Attributed %d conversations across %d workspaces (%d unassigned)",
        len(conversations), len(catalog), unassigned,
    )
    return HistorySnapshot(
        catalog=catalog,
        attributions=attributions,
        conversations=conversations,
        groups=groups,
    )


def load_snapshot(provider: HistoryProvider) -> HistorySnapshot:
    """Read everything from a provider and run the pipeline over it."""
    return build_snapshot(
        provider.list_workspaces(),
        provider.load_conversations(),
        provider.load_direct_mapping(),
    )
