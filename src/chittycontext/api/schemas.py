"""
API schemas for ChittyContext.

Pydantic models for request validation. Bodies are accepted in camelCase
(matching the stored form) or snake_case. Context records themselves are
returned as-is, serialized by alias.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chittycontext.models.context import (
    MAX_SCORE_IMPACT,
    MIN_SCORE_IMPACT,
    ContextType,
    MessageRole,
    OutcomeType,
    ToolCall,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ===== Context Schemas =====


class ContextCreate(ApiModel):
    """Request schema for creating a context."""

    type: ContextType = ContextType.SESSION
    parent_context_id: Optional[str] = None  # Must be owned by the caller
    session_id: Optional[str] = None
    tags: Optional[list[str]] = None
    preferences: Optional[dict[str, Any]] = None
    expires_in_seconds: Optional[int] = Field(None, gt=0)


class OutcomeCreate(ApiModel):
    """Request schema for recording an outcome."""

    type: OutcomeType
    action: str = Field(..., min_length=1)
    resource: str = Field(..., min_length=1)
    score_impact: int = Field(0, ge=MIN_SCORE_IMPACT, le=MAX_SCORE_IMPACT)
    details: Optional[dict[str, Any]] = None


class ReasonRequest(ApiModel):
    """Request schema for promote/demote."""

    reason: str = Field(..., min_length=1)


class CompleteRequest(ApiModel):
    success: bool = True


class DNAPatternCreate(ApiModel):
    """Request schema for linking a DNA pattern to a context."""

    id: str = Field(..., min_length=1)
    pattern_type: str
    weight: float
    occurrences: int = Field(1, ge=0)
    last_seen: Optional[datetime] = None  # Defaults to now


# ===== Conversation Schemas =====


class MessageCreate(ApiModel):
    """Request schema for storing a conversation message."""

    role: MessageRole
    content: str
    provider: Optional[str] = None
    model: Optional[str] = None
    token_count: Optional[int] = Field(None, ge=0)
    tool_calls: Optional[list[ToolCall]] = None


# ===== Health Schemas =====


class HealthResponse(BaseModel):
    status: str
    store: str
    version: str
