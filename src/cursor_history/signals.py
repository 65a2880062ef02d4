"""Collect the path hints a conversation carries, in trust order."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .core import ConversationRecord
from .paths import basename, normalize


class SignalSource(str, Enum):
    DECLARED_ROOT = "declared-root"
    CREATED_FILE = "created-file"
    CODE_BLOCK = "code-block"
    RELEVANT_FILE = "relevant-file"
    ATTACHED_FILE = "attached-file"
    FILE_SELECTION = "file-selection"


@dataclass(frozen=True)
class PathSignal:
    raw: str
    normalized: str
    basename: str
    source: SignalSource


@dataclass(frozen=True)
class OrderedSignals:
    direct_workspace_id: Optional[str]
    declared: tuple[PathSignal, ...]
    referenced: tuple[PathSignal, ...]

    def normalized_paths(self) -> list[str]:
        """Every normalized path, declared first, in extraction order."""
        return [s.normalized for s in self.declared + self.referenced]


def _signals(paths: Iterable[object], source: SignalSource, windows: bool | None) -> list[PathSignal]:
    out = []
    for raw in paths:
        if not isinstance(raw, str) or not raw.strip():
            continue
        normalized = normalize(raw, windows=windows)
        if not normalized:
            continue
        out.append(PathSignal(
            raw=raw,
            normalized=normalized,
            basename=basename(normalized),
            source=source,
        ))
    return out


def extract(record: ConversationRecord, windows: bool | None = None) -> OrderedSignals:
    """Pull every candidate path out of a record.

    Order: declared roots, created files, code-block file keys, then per
    fragment its relevant files, attached code chunks and file selections.
    Entries that are not usable strings are skipped.
    """
    declared = _signals(record.declared_root_paths, SignalSource.DECLARED_ROOT, windows)

    referenced = _signals(record.created_files, SignalSource.CREATED_FILE, windows)
    referenced += _signals(record.code_block_files, SignalSource.CODE_BLOCK, windows)
    for fragment in record.fragments:
        referenced += _signals(fragment.relevant_files, SignalSource.RELEVANT_FILE, windows)
        referenced += _signals(fragment.attached_files, SignalSource.ATTACHED_FILE, windows)
        referenced += _signals(fragment.selected_files, SignalSource.FILE_SELECTION, windows)

    return OrderedSignals(
        direct_workspace_id=record.direct_workspace_id or None,
        declared=tuple(declared),
        referenced=tuple(referenced),
    )
