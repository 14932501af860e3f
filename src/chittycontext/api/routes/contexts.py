"""
Context API routes.

Contexts are scoped to the calling principal: a context owned by another
ChittyID is reported as not found. Mutating routes count against the
caller's rate limit window; promote/demote are restricted to admin and
service principals.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chittycontext.api.dependencies import (
    get_audit_log,
    get_audit_repository,
    get_context_repository,
    get_pattern_repository,
)
from chittycontext.api.guards import (
    configured_rate_limit,
    get_chitty_context,
    require_chitty_group,
)
from chittycontext.api.schemas import (
    CompleteRequest,
    ContextCreate,
    DNAPatternCreate,
    OutcomeCreate,
    ReasonRequest,
)
from chittycontext.db.repositories import (
    AuditRepository,
    ContextRepository,
    PatternRepository,
)
from chittycontext.lifecycle import (
    complete_context,
    create_audit_event,
    create_child_context,
    create_context,
    demote_context,
    promote_context,
    record_outcome,
    utc_now,
)
from chittycontext.models.context import (
    AuditEvent,
    Context,
    ContextStatus,
    ContextType,
    DNAPattern,
)
from chittycontext.routing import ContextRouting, get_context_routing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contexts", tags=["contexts"])

PRIVILEGED_GROUPS = ("A", "S")

# Context subtypes carry extra fields, so context-returning routes skip
# response_model coercion and serialize the stored instance by alias.


async def _load_owned(
    context_id: str, caller: Context, repo: ContextRepository
) -> Context:
    stored = await repo.load(context_id)
    if stored is None or stored.chitty_id != caller.chitty_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Context {context_id} not found",
        )
    return stored


async def _record(
    audit: Optional[AuditRepository],
    ctx: Context,
    action: str,
    details: Optional[dict] = None,
) -> None:
    if audit is None:
        return
    await audit.log(
        create_audit_event(
            ctx, f"context.{action}", action=action, resource=ctx.id, details=details
        )
    )


@router.post(
    "",
    response_model=None,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(configured_rate_limit)],
    summary="Create a context",
)
async def create(
    body: ContextCreate,
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
    audit: Optional[AuditRepository] = Depends(get_audit_log),
) -> Context:
    """
    Create and persist a context for the caller.

    With ``parentContextId`` the new context is derived from that parent
    (which must belong to the caller) and joins its provenance chain.
    """
    options = {"source": "api"}
    if body.tags is not None:
        options["tags"] = tuple(body.tags)
    if body.preferences is not None:
        options["preferences"] = body.preferences
    if caller.user_agent is not None:
        options["user_agent"] = caller.user_agent
    if caller.ip_hash is not None:
        options["ip_hash"] = caller.ip_hash
    if body.expires_in_seconds is not None:
        options["expires_at"] = utc_now() + timedelta(seconds=body.expires_in_seconds)

    if body.parent_context_id is not None:
        parent = await _load_owned(body.parent_context_id, caller, repo)
        if body.session_id is not None:
            options["session_id"] = body.session_id
        ctx = create_child_context(parent, body.type, **options)
    else:
        ctx = create_context(
            caller.chitty_id,
            body.type,
            session_id=body.session_id or caller.session_id,
            request_id=caller.request_id,
            **options,
        )

    await repo.save(ctx)
    await _record(audit, ctx, "create", {"parentContextId": ctx.parent_context_id})
    logger.info(f"Created {ctx.type.value} context {ctx.id} (depth {ctx.depth})")
    return ctx


@router.get("", response_model=None, summary="List the caller's contexts")
async def list_contexts(
    type: Optional[ContextType] = Query(None),
    status_filter: Optional[ContextStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
) -> List[Context]:
    return await repo.list(
        caller.chitty_id, context_type=type, status=status_filter, limit=limit
    )


@router.get("/active", response_model=None, summary="Get the caller's active context")
async def get_active(
    type: ContextType = Query(ContextType.SESSION),
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
) -> Context:
    ctx = await repo.get_active(caller.chitty_id, type)
    if ctx is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active {type.value} context",
        )
    return ctx


@router.get("/{context_id}", response_model=None, summary="Get a context")
async def get_context(
    context_id: str,
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
) -> Context:
    return await _load_owned(context_id, caller, repo)


@router.post(
    "/{context_id}/outcomes",
    response_model=None,
    dependencies=[Depends(configured_rate_limit)],
    summary="Record an outcome",
)
async def add_outcome(
    context_id: str,
    body: OutcomeCreate,
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
    audit: Optional[AuditRepository] = Depends(get_audit_log),
) -> Context:
    stored = await _load_owned(context_id, caller, repo)
    updated = record_outcome(
        stored,
        body.type,
        action=body.action,
        resource=body.resource,
        score_impact=body.score_impact,
        details=body.details,
    )
    await repo.save(updated)
    await _record(audit, updated, "outcome", {"scoreImpact": body.score_impact})
    return updated


@router.post(
    "/{context_id}/promote",
    response_model=None,
    dependencies=[Depends(configured_rate_limit)],
    summary="Promote a context",
)
async def promote(
    context_id: str,
    body: ReasonRequest,
    caller: Context = Depends(require_chitty_group(PRIVILEGED_GROUPS)),
    repo: ContextRepository = Depends(get_context_repository),
    audit: Optional[AuditRepository] = Depends(get_audit_log),
) -> Context:
    stored = await _load_owned(context_id, caller, repo)
    updated = promote_context(stored, body.reason)
    await repo.save(updated)
    await _record(audit, updated, "promote", {"reason": body.reason})
    logger.info(f"Promoted context {context_id}: {stored.trust_score} -> {updated.trust_score}")
    return updated


@router.post(
    "/{context_id}/demote",
    response_model=None,
    dependencies=[Depends(configured_rate_limit)],
    summary="Demote a context",
)
async def demote(
    context_id: str,
    body: ReasonRequest,
    caller: Context = Depends(require_chitty_group(PRIVILEGED_GROUPS)),
    repo: ContextRepository = Depends(get_context_repository),
    audit: Optional[AuditRepository] = Depends(get_audit_log),
) -> Context:
    stored = await _load_owned(context_id, caller, repo)
    updated = demote_context(stored, body.reason)
    await repo.save(updated)
    await _record(audit, updated, "demote", {"reason": body.reason})
    logger.info(f"Demoted context {context_id}: {stored.trust_score} -> {updated.trust_score}")
    return updated


@router.post(
    "/{context_id}/complete",
    response_model=None,
    dependencies=[Depends(configured_rate_limit)],
    summary="Complete a context",
)
async def complete(
    context_id: str,
    body: CompleteRequest,
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
    audit: Optional[AuditRepository] = Depends(get_audit_log),
) -> Context:
    stored = await _load_owned(context_id, caller, repo)
    updated = complete_context(stored, body.success)
    await repo.save(updated)
    await _record(audit, updated, "complete", {"success": body.success})
    return updated


@router.get(
    "/{context_id}/routing",
    response_model=ContextRouting,
    summary="Get routing hints for a context",
)
async def routing(
    context_id: str,
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
) -> ContextRouting:
    return get_context_routing(await _load_owned(context_id, caller, repo))


@router.put(
    "/{context_id}/pattern",
    response_model=None,
    dependencies=[Depends(configured_rate_limit)],
    summary="Link a DNA pattern",
)
async def link_pattern(
    context_id: str,
    body: DNAPatternCreate,
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
    patterns: PatternRepository = Depends(get_pattern_repository),
) -> Context:
    stored = await _load_owned(context_id, caller, repo)
    pattern = DNAPattern(
        id=body.id,
        chitty_id=caller.chitty_id,
        pattern_type=body.pattern_type,
        weight=body.weight,
        occurrences=body.occurrences,
        last_seen=body.last_seen or utc_now(),
    )
    linked = await patterns.link(stored, pattern)
    await repo.save(linked)
    return linked


@router.get(
    "/{context_id}/pattern",
    response_model=DNAPattern,
    summary="Get the linked DNA pattern",
)
async def get_pattern(
    context_id: str,
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
    patterns: PatternRepository = Depends(get_pattern_repository),
) -> DNAPattern:
    await _load_owned(context_id, caller, repo)
    pattern = await patterns.get(context_id)
    if pattern is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pattern linked to context {context_id}",
        )
    return pattern


@router.get(
    "/{context_id}/audit",
    response_model=List[AuditEvent],
    summary="List audit events for a context",
)
async def list_audit(
    context_id: str,
    limit: int = Query(50, ge=1, le=500),
    caller: Context = Depends(get_chitty_context),
    repo: ContextRepository = Depends(get_context_repository),
    audit: AuditRepository = Depends(get_audit_repository),
) -> List[AuditEvent]:
    await _load_owned(context_id, caller, repo)
    return await audit.list_for_context(context_id, limit=limit)
