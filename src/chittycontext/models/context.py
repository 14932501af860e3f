"""
Runtime context entities.

A Context is a typed, scored unit of tracked work owned by a principal
(ChittyID). Every model here is frozen: lifecycle operations in
``chittycontext.lifecycle`` return new values instead of mutating.

Python attribute names are snake_case; the stored/wire form is camelCase
(``trustScore``, ``chittyId``...) via the alias generator.
"""

import enum
import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ContextType(str, enum.Enum):
    """What kind of operation a context tracks."""

    SESSION = "session"  # Ephemeral per-session context
    CONVERSATION = "conversation"  # AI conversation context
    WORKFLOW = "workflow"  # Approval/provisioning workflow
    TRANSACTION = "transaction"  # Financial/ledger transaction
    IDENTITY = "identity"  # Authentication/authorization
    AGENT = "agent"  # Agent execution context
    MCP = "mcp"  # MCP tool invocation
    SYSTEM = "system"  # Internal system operations


class ContextStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"
    PROMOTED = "promoted"
    DEMOTED = "demoted"
    ARCHIVED = "archived"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ContextStatus.COMPLETED,
            ContextStatus.FAILED,
            ContextStatus.ARCHIVED,
        )


class ContextGrade(str, enum.Enum):
    """Letter bucket derived from the trust score."""

    A = "A"  # Excellent - high trust, consistent success
    B = "B"  # Good - reliable, minor issues
    C = "C"  # Average - acceptable, needs monitoring
    D = "D"  # Poor - unreliable, frequent issues
    F = "F"  # Failed - untrustworthy, restricted


class OutcomeType(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class AuditStatus(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"


class MessageRole(str, enum.Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ContextModel(BaseModel):
    """Base for all context entities: frozen, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


MIN_SCORE_IMPACT = -10
MAX_SCORE_IMPACT = 10


class Outcome(ContextModel):
    """Immutable record of something that happened during a context's life."""

    id: str
    timestamp: datetime
    type: OutcomeType
    action: str
    resource: str
    details: Optional[dict[str, Any]] = None
    score_impact: int = Field(0, ge=MIN_SCORE_IMPACT, le=MAX_SCORE_IMPACT)


class Context(ContextModel):
    """The central entity: one unit of tracked work belonging to a principal."""

    # Identity
    id: str
    chitty_id: str
    type: ContextType

    # Status & lifecycle
    status: ContextStatus = ContextStatus.ACTIVE
    grade: ContextGrade = ContextGrade.C
    trust_score: int = Field(50, ge=0, le=100)

    # Temporal
    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime] = None

    # Provenance chain
    parent_context_id: Optional[str] = None
    root_context_id: Optional[str] = None
    depth: int = Field(0, ge=0)

    # Request correlation
    session_id: str
    request_id: str

    # ChittyDNA link (weak reference to a DNAPattern id)
    dna_fingerprint: Optional[str] = None
    preferences: Optional[dict[str, Any]] = None

    # Provenance metadata
    source: str = "unknown"
    user_agent: Optional[str] = None
    ip_hash: Optional[str] = None
    tags: Optional[tuple[str, ...]] = None

    outcomes: tuple[Outcome, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.parent_context_id is None


class ConversationContext(Context):
    type: ContextType = ContextType.CONVERSATION
    conversation_id: str
    message_count: int = 0
    provider: Optional[str] = None
    model: Optional[str] = None
    total_tokens: int = 0


class WorkflowStep(ContextModel):
    name: str
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None


class WorkflowContext(Context):
    type: ContextType = ContextType.WORKFLOW
    workflow_id: str
    workflow_type: str
    current_step: Optional[str] = None
    steps: tuple[WorkflowStep, ...] = ()


class AgentContext(Context):
    type: ContextType = ContextType.AGENT
    agent_id: str
    agent_type: str
    tools_used: tuple[str, ...] = ()
    delegations: tuple[str, ...] = ()


class TransactionContext(Context):
    type: ContextType = ContextType.TRANSACTION
    transaction_id: str
    transaction_type: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    counterparty_id: Optional[str] = None


class AuditEvent(ContextModel):
    """One middleware-observed action. Created once, never mutated."""

    id: str
    context_id: str
    chitty_id: str
    timestamp: datetime
    event_type: str
    action: str
    resource: str
    status: AuditStatus = AuditStatus.SUCCESS
    details: Optional[dict[str, Any]] = None


class ToolCall(ContextModel):
    name: str
    args: Any = None
    result: Any = None


class ConversationMessage(ContextModel):
    """A message owned by a conversation; retrievable only through its id."""

    id: str
    context_id: str
    chitty_id: str
    conversation_id: str
    timestamp: datetime
    role: MessageRole
    content: str
    provider: Optional[str] = None
    model: Optional[str] = None
    token_count: Optional[int] = None
    tool_calls: Optional[tuple[ToolCall, ...]] = None


class DNAPattern(ContextModel):
    """External pattern record, linked to a context by id only."""

    id: str
    chitty_id: str
    pattern_type: str
    weight: float
    last_seen: datetime
    occurrences: int


# Presence of a subtype's identifying field selects the subtype when decoding.
_SUBTYPE_DISCRIMINATORS: tuple[tuple[str, type[Context]], ...] = (
    ("conversation_id", ConversationContext),
    ("workflow_id", WorkflowContext),
    ("agent_id", AgentContext),
    ("transaction_id", TransactionContext),
)


def context_class_for(data: dict[str, Any]) -> type[Context]:
    """Pick the Context subtype matching a decoded record."""
    for field_name, cls in _SUBTYPE_DISCRIMINATORS:
        if field_name in data or to_camel(field_name) in data:
            return cls
    return Context


def context_from_json(data: str | bytes | dict[str, Any]) -> Context:
    """Decode a stored context record into the right Context subtype."""
    if isinstance(data, (str, bytes)):
        data = json.loads(data)
    return context_class_for(data).model_validate(data)
