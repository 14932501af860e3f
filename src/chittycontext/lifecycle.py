"""
Context lifecycle.

Pure functions that create, derive and transition contexts. Contexts are
frozen values; every "mutation" here returns a new Context and leaves the
input untouched, so a context may be shared freely between concurrent
request handlers.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from chittycontext.models.context import (
    MAX_SCORE_IMPACT,
    MIN_SCORE_IMPACT,
    AuditEvent,
    AuditStatus,
    Context,
    ContextGrade,
    ContextStatus,
    ContextType,
    ConversationContext,
    ConversationMessage,
    Outcome,
    OutcomeType,
    StepStatus,
    WorkflowContext,
    WorkflowStep,
)
from chittycontext.utils.hashing import hash_ip

C = TypeVar("C", bound=Context)

DEFAULT_TRUST_SCORE = 50

PROMOTE_IMPACT = 10
DEMOTE_IMPACT = -10
COMPLETE_SUCCESS_IMPACT = 5
COMPLETE_FAILURE_IMPACT = -5

SESSION_HEADER = "X-Session-ID"
CLIENT_ADDRESS_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For")

# Provenance is only ever set by create_child_context.
_PROVENANCE_FIELDS = frozenset({"parent_context_id", "root_context_id", "depth"})

_STEP_FINISHED = (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def calculate_grade(score: int) -> ContextGrade:
    """Map a trust score onto its letter grade."""
    if score >= 90:
        return ContextGrade.A
    if score >= 75:
        return ContextGrade.B
    if score >= 50:
        return ContextGrade.C
    if score >= 25:
        return ContextGrade.D
    return ContextGrade.F


def clamp_score(score: int) -> int:
    return max(0, min(100, score))


def _reject_provenance(options: dict[str, Any], caller: str) -> None:
    illegal = _PROVENANCE_FIELDS & options.keys()
    if illegal:
        raise TypeError(
            f"{caller}() does not accept {', '.join(sorted(illegal))}; "
            "use create_child_context() to derive a context from a parent"
        )


def _build_context(
    context_class: type[C],
    chitty_id: str,
    context_type: ContextType,
    options: dict[str, Any],
    provenance: dict[str, Any],
) -> C:
    context_id = options.pop("id", None) or new_id()
    created_at = options.pop("created_at", None) or utc_now()
    trust_score = clamp_score(options.pop("trust_score", DEFAULT_TRUST_SCORE))
    options.pop("grade", None)  # always derived from trust_score

    values: dict[str, Any] = {
        "id": context_id,
        "chitty_id": chitty_id,
        "type": ContextType(context_type),
        "status": ContextStatus.ACTIVE,
        "trust_score": trust_score,
        "grade": calculate_grade(trust_score),
        "created_at": created_at,
        "updated_at": created_at,
        "depth": 0,
        "root_context_id": context_id,
        "session_id": new_id(),
        "request_id": new_id(),
        "source": "unknown",
        "outcomes": (),
    }
    values.update({key: value for key, value in options.items() if value is not None})
    values.update(provenance)
    return context_class(**values)


def create_context(
    chitty_id: str,
    context_type: ContextType | str,
    context_class: type[C] = Context,
    **options: Any,
) -> C:
    """
    Create a new root context.

    Args:
        chitty_id: Owning principal
        context_type: What kind of operation the context tracks
        context_class: Context subtype to build (e.g. ConversationContext)
        **options: Any other Context field. ``id``, ``session_id`` and
            ``request_id`` default to fresh UUIDs.

    Returns:
        A root context: depth 0 and ``root_context_id`` equal to its own id

    Raises:
        TypeError: If provenance fields are passed; derive children with
            create_child_context() instead
    """
    _reject_provenance(options, "create_context")
    return _build_context(context_class, chitty_id, ContextType(context_type), options, {})


def client_address(headers: Any) -> Optional[str]:
    """First client address reported by the edge headers, if any."""
    for header in CLIENT_ADDRESS_HEADERS:
        value = headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return None


def create_from_request(
    chitty_id: str,
    request: Any,
    context_type: ContextType | str = ContextType.SESSION,
    context_class: type[C] = Context,
    **options: Any,
) -> C:
    """
    Create a root context for an inbound request.

    Session id comes from ``X-Session-ID`` when present, the user agent from
    ``User-Agent``, and the client address is stored only as a one-way hash.
    """
    headers = request.headers
    defaults: dict[str, Any] = {
        "session_id": headers.get(SESSION_HEADER),
        "source": "api",
        "user_agent": headers.get("User-Agent"),
        "ip_hash": hash_ip(client_address(headers)),
    }
    defaults.update(options)
    return create_context(chitty_id, context_type, context_class, **defaults)


def create_child_context(
    parent: Context,
    context_type: ContextType | str,
    context_class: type[C] = Context,
    **options: Any,
) -> C:
    """
    Derive a child context from ``parent``.

    The child inherits the principal, session/request correlation, DNA
    fingerprint and preferences, and points back at the parent and at the
    chain's root. Options left as None keep the inherited value.
    """
    _reject_provenance(options, "create_child_context")
    inherited: dict[str, Any] = {
        "session_id": parent.session_id,
        "request_id": parent.request_id,
        "dna_fingerprint": parent.dna_fingerprint,
        "preferences": parent.preferences,
    }
    inherited.update({key: value for key, value in options.items() if value is not None})
    provenance = {
        "parent_context_id": parent.id,
        "root_context_id": parent.root_context_id or parent.id,
        "depth": parent.depth + 1,
    }
    return _build_context(
        context_class, parent.chitty_id, ContextType(context_type), inherited, provenance
    )


def record_outcome(
    ctx: C,
    outcome_type: OutcomeType | str,
    action: str,
    resource: str,
    score_impact: int = 0,
    details: Optional[dict[str, Any]] = None,
) -> C:
    """
    Append an outcome and rescore the context.

    The score impact is clamped to [-10, 10] and the resulting trust score to
    [0, 100]; the grade is recomputed from the new score.
    """
    now = utc_now()
    impact = max(MIN_SCORE_IMPACT, min(MAX_SCORE_IMPACT, int(score_impact)))
    outcome = Outcome(
        id=new_id(),
        timestamp=now,
        type=OutcomeType(outcome_type),
        action=action,
        resource=resource,
        details=details,
        score_impact=impact,
    )
    new_score = clamp_score(ctx.trust_score + impact)
    return ctx.model_copy(
        update={
            "trust_score": new_score,
            "grade": calculate_grade(new_score),
            "updated_at": max(now, ctx.updated_at),
            "outcomes": (*ctx.outcomes, outcome),
        }
    )


def promote_context(ctx: C, reason: str) -> C:
    return record_outcome(
        ctx,
        OutcomeType.SUCCESS,
        action="promote",
        resource=ctx.id,
        score_impact=PROMOTE_IMPACT,
        details={"reason": reason},
    )


def demote_context(ctx: C, reason: str) -> C:
    return record_outcome(
        ctx,
        OutcomeType.WARNING,
        action="demote",
        resource=ctx.id,
        score_impact=DEMOTE_IMPACT,
        details={"reason": reason},
    )


def complete_context(ctx: C, success: bool) -> C:
    """Record the final outcome and move the context to completed/failed."""
    scored = record_outcome(
        ctx,
        OutcomeType.SUCCESS if success else OutcomeType.ERROR,
        action="complete",
        resource=ctx.id,
        score_impact=COMPLETE_SUCCESS_IMPACT if success else COMPLETE_FAILURE_IMPACT,
    )
    return scored.model_copy(
        update={"status": ContextStatus.COMPLETED if success else ContextStatus.FAILED}
    )


def update_workflow_step(
    ctx: WorkflowContext,
    step_name: str,
    status: StepStatus | str,
    result: Any = None,
    error: Optional[str] = None,
) -> WorkflowContext:
    """
    Move a workflow step to ``status`` and make it the current step.

    Unknown step names are appended to the step list. ``started_at`` is set
    the first time a step runs; ``completed_at`` when it finishes.
    """
    now = utc_now()
    status = StepStatus(status)
    steps = list(ctx.steps)
    index = next((i for i, step in enumerate(steps) if step.name == step_name), None)
    step = steps[index] if index is not None else WorkflowStep(name=step_name)

    update: dict[str, Any] = {"status": status}
    if status == StepStatus.RUNNING and step.started_at is None:
        update["started_at"] = now
    if status in _STEP_FINISHED:
        update["completed_at"] = now
    if result is not None:
        update["result"] = result
    if error is not None:
        update["error"] = error
    step = step.model_copy(update=update)

    if index is None:
        steps.append(step)
    else:
        steps[index] = step

    return ctx.model_copy(
        update={
            "steps": tuple(steps),
            "current_step": step_name,
            "updated_at": max(now, ctx.updated_at),
        }
    )


def as_conversation(ctx: Context, conversation_id: str) -> ConversationContext:
    """Lift any context into a ConversationContext, keeping its type."""
    if isinstance(ctx, ConversationContext):
        if ctx.conversation_id == conversation_id:
            return ctx
        return ctx.model_copy(update={"conversation_id": conversation_id})
    return ConversationContext(**ctx.model_dump(), conversation_id=conversation_id)


def track_message(
    ctx: ConversationContext, message: ConversationMessage
) -> ConversationContext:
    """Account for a stored message on its conversation context."""
    return ctx.model_copy(
        update={
            "message_count": ctx.message_count + 1,
            "total_tokens": ctx.total_tokens + (message.token_count or 0),
            "provider": message.provider or ctx.provider,
            "model": message.model or ctx.model,
            "updated_at": max(message.timestamp, ctx.updated_at),
        }
    )


def create_audit_event(
    ctx: Context,
    event_type: str,
    action: str,
    resource: str,
    status: AuditStatus | str = AuditStatus.SUCCESS,
    details: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    return AuditEvent(
        id=new_id(),
        context_id=ctx.id,
        chitty_id=ctx.chitty_id,
        timestamp=utc_now(),
        event_type=event_type,
        action=action,
        resource=resource,
        status=AuditStatus(status),
        details=details,
    )
