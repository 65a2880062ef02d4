"""Assign each conversation to one workspace, or leave it unassigned.

Heuristics run in a fixed order and the first one that finds a workspace
wins:

1. ``direct``: a workspace database lists the conversation id.
2. ``declared-path`` / ``declared-basename``: the project roots captured in
   the conversation's request context.
3. ``referenced-path``: files the conversation created, edited or attached.
4. ``segment-heuristic``: a workspace folder name appears as a whole path
   segment in any of the paths above.
"""

import logging
from dataclasses import replace
from typing import Iterable, Mapping

from .catalog import WorkspaceCatalog
from .core import AttributionResult, ConversationRecord, MatchedVia
from .signals import OrderedSignals, PathSignal, extract

logger = logging.getLogger(__name__)


def resolve(record: ConversationRecord, catalog: WorkspaceCatalog) -> AttributionResult:
    """Resolve one record against the catalog. Pure; never raises on bad data."""
    if record.direct_workspace_id:
        return AttributionResult(record.id, record.direct_workspace_id, MatchedVia.DIRECT)

    signals = extract(record, windows=catalog.windows)

    ws_id = _match_declared_paths(signals.declared, catalog)
    if ws_id:
        return AttributionResult(record.id, ws_id, MatchedVia.DECLARED_PATH)

    ws_id = _match_declared_basenames(signals.declared, catalog)
    if ws_id:
        return AttributionResult(record.id, ws_id, MatchedVia.DECLARED_BASENAME)

    for signal in signals.referenced:
        ws_id = catalog.longest_prefix_match(signal.normalized)
        if ws_id:
            return AttributionResult(record.id, ws_id, MatchedVia.REFERENCED_PATH)

    ws_id = _match_path_segments(signals, catalog)
    if ws_id:
        return AttributionResult(record.id, ws_id, MatchedVia.SEGMENT_HEURISTIC)

    return AttributionResult(record.id, None, MatchedVia.NONE)


def resolve_all(
    records: Iterable[ConversationRecord],
    catalog: WorkspaceCatalog,
    direct_mapping: Mapping[str, str] | None = None,
) -> dict[str, AttributionResult]:
    """Resolve a batch of records, keyed by conversation id.

    ``direct_mapping`` (conversation id -> workspace id) fills in
    ``direct_workspace_id`` for records that do not carry one.
    """
    results = {}
    for record in records:
        if direct_mapping and not record.direct_workspace_id:
            mapped = direct_mapping.get(record.id)
            if mapped:
                record = replace(record, direct_workspace_id=mapped)

        result = resolve(record, catalog)
        if result.is_assigned:
            logger.debug(
                "Matched conversation %s (%s) to workspace %s via %s",
                record.id, record.name or "Untitled", result.workspace_id, result.matched_via.value,
            )
        else:
            logger.debug("Conversation %s (%s) left unassigned", record.id, record.name or "Untitled")
        results[record.id] = result
    return results


# ── Heuristics ───────────────────────────────────────────────────────


def _match_declared_paths(declared: tuple[PathSignal, ...], catalog: WorkspaceCatalog) -> str | None:
    """Among declared roots that fall inside a workspace, take the most specific."""
    best_id = None
    best_len = 0
    for signal in declared:
        ws_id = catalog.longest_prefix_match(signal.normalized)
        if ws_id and len(signal.normalized) > best_len:
            best_id = ws_id
            best_len = len(signal.normalized)
    return best_id


def _match_declared_basenames(declared: tuple[PathSignal, ...], catalog: WorkspaceCatalog) -> str | None:
    for signal in declared:
        ws_id = catalog.basename_match(signal.basename)
        if ws_id:
            return ws_id
    return None


def _match_path_segments(signals: OrderedSignals, catalog: WorkspaceCatalog) -> str | None:
    """Longest workspace folder name found as a whole segment of any path."""
    sep = catalog.separator
    folders = catalog.folder_names()
    best_id = None
    best_len = 0
    for path in signals.normalized_paths():
        for name, ws_id in folders:
            if len(name) <= best_len:
                continue
            if (sep + name + sep) in path or path.endswith(sep + name):
                best_id = ws_id
                best_len = len(name)
    return best_id
