"""Core data models for cursor-history."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .paths import basename


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MatchedVia(str, Enum):
    """How a conversation was attributed. Diagnostic only."""

    DIRECT = "direct"
    DECLARED_PATH = "declared-path"
    DECLARED_BASENAME = "declared-basename"
    REFERENCED_PATH = "referenced-path"
    SEGMENT_HEURISTIC = "segment-heuristic"
    NONE = "none"


@dataclass(frozen=True)
class WorkspaceRoot:
    """A workspace known to the editor (one or more root folders)."""

    id: str  # workspaceStorage folder hash
    root_paths: tuple[str, ...] = ()
    last_modified: Optional[datetime] = None

    @property
    def basenames(self) -> tuple[str, ...]:
        return tuple(b for b in (basename(p) for p in self.root_paths) if b)

    @property
    def name(self) -> str:
        names = self.basenames
        return names[0] if names else f"Project {self.id[:8]}"


@dataclass(frozen=True)
class ToolInvocation:
    name: Optional[str] = None
    parameters: Optional[str] = None
    result: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0
    cached: int = 0


@dataclass(frozen=True)
class CodeBlock:
    language: str = ""
    content: str = ""


@dataclass(frozen=True)
class MessageFragment:
    """One raw turn of a conversation (a Cursor "bubble")."""

    id: str
    role: Role
    text: str = ""
    rich_text: object = None  # lexical-style tree: {"root": {"children": [...]}}
    tool_invocation: Optional[ToolInvocation] = None
    reasoning: Optional[str] = None
    reasoning_duration_ms: Optional[int] = None
    code_blocks: tuple[CodeBlock, ...] = ()
    relevant_files: tuple[str, ...] = ()
    attached_files: tuple[str, ...] = ()
    selected_files: tuple[str, ...] = ()
    timestamp: Optional[int] = None  # epoch ms
    token_usage: Optional[TokenUsage] = None
    model_id: Optional[str] = None
    cost: Optional[float] = None

    @property
    def referenced_paths(self) -> tuple[str, ...]:
        return self.relevant_files + self.attached_files + self.selected_files


@dataclass(frozen=True)
class CodeEdit:
    """A code-block diff stored alongside a conversation."""

    diff_id: str
    file_path: Optional[str] = None
    modified_lines: tuple[str, ...] = ()
    command: Optional[str] = None
    tool_name: Optional[str] = None
    parameters: object = None
    result: object = None
    actions_taken: tuple[str, ...] = ()
    files_modified: tuple[str, ...] = ()
    git_status: Optional[str] = None
    directory_listed: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    """Context captured when a message was sent."""

    bubble_id: str
    git_status: Optional[str] = None
    terminal_files: tuple[str, ...] = ()
    attached_folders: tuple[tuple[str, tuple[tuple[str, str], ...]], ...] = ()  # (folder, ((name, type), ...))
    rules: tuple[str, ...] = ()
    related_conversations: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConversationRecord:
    """One chat/composer session as loaded from storage."""

    id: str
    name: str = ""
    fragments: tuple[MessageFragment, ...] = ()
    declared_root_paths: tuple[str, ...] = ()
    created_files: tuple[str, ...] = ()
    code_block_files: tuple[str, ...] = ()
    direct_workspace_id: Optional[str] = None
    created_at: Optional[int] = None  # epoch ms
    updated_at: Optional[int] = None
    cost: Optional[float] = None
    code_edits: tuple[CodeEdit, ...] = ()
    request_contexts: tuple[RequestContext, ...] = ()


@dataclass(frozen=True)
class AttributionResult:
    conversation_id: str
    workspace_id: Optional[str]  # None means unassigned
    matched_via: MatchedVia

    @property
    def is_assigned(self) -> bool:
        return self.workspace_id is not None


@dataclass(frozen=True)
class ConversationMessage:
    """A single displayable entry of an assembled timeline."""

    role: Role
    text: str
    timestamp: Optional[int] = None
    fragment_id: Optional[str] = None
    model_id: Optional[str] = None
    token_usage: Optional[TokenUsage] = None
    cost: Optional[float] = None
    tool_invocation: Optional[ToolInvocation] = None
    reasoning: Optional[str] = None
    reasoning_duration_ms: Optional[int] = None
    response_time_ms: Optional[int] = None
    is_code_edit: bool = False


@dataclass(frozen=True)
class ConversationMetrics:
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cached_tokens: int = 0
    models_used: tuple[str, ...] = ()
    total_response_time_ms: int = 0
    total_cost: float = 0.0
    total_tool_calls: int = 0
    total_reasoning_traces: int = 0
    total_reasoning_duration_ms: int = 0


@dataclass(frozen=True)
class AssembledConversation:
    id: str
    title: str
    messages: tuple[ConversationMessage, ...] = ()
    metrics: Optional[ConversationMetrics] = None
    code_edits: tuple[CodeEdit, ...] = ()
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @property
    def last_activity(self) -> int:
        return self.updated_at or self.created_at or 0


@dataclass(frozen=True)
class WorkspaceSummary:
    """A workspace row with its conversation count."""

    id: str
    name: str
    conversation_count: int
    last_modified: Optional[datetime] = None
    root_paths: tuple[str, ...] = ()
