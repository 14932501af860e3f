"""
Routing advisory.

The ContextRouting projection is the only thing a downstream request router
sees of a context. It decides the service tier from the grade; what the
router does with it is outside this package.
"""

from typing import Any, Optional

from chittycontext.models.context import (
    Context,
    ContextGrade,
    ContextModel,
    ContextType,
)

PREMIUM = "premium"
STANDARD = "standard"
RESTRICTED = "restricted"

FALLBACK_SERVICES: dict[str, tuple[str, ...]] = {
    PREMIUM: (STANDARD,),
    STANDARD: (RESTRICTED,),
    RESTRICTED: (),
}


class ContextRouting(ContextModel):
    context_id: str
    chitty_id: str
    type: ContextType
    grade: ContextGrade
    trust_score: int
    preferred_service: str
    fallback_services: tuple[str, ...] = ()
    constraints: Optional[dict[str, Any]] = None


def preferred_service_for(grade: ContextGrade) -> str:
    if grade in (ContextGrade.A, ContextGrade.B):
        return PREMIUM
    if grade == ContextGrade.F:
        return RESTRICTED
    return STANDARD


def get_context_routing(ctx: Context) -> ContextRouting:
    """Project a context into the shape consumed by the request router."""
    preferred = preferred_service_for(ctx.grade)
    return ContextRouting(
        context_id=ctx.id,
        chitty_id=ctx.chitty_id,
        type=ctx.type,
        grade=ctx.grade,
        trust_score=ctx.trust_score,
        preferred_service=preferred,
        fallback_services=FALLBACK_SERVICES[preferred],
        constraints=ctx.preferences,
    )
