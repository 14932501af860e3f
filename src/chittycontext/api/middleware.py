"""
Boundary middleware for runtime contexts.

Every inbound request gets a Context attached at ``request.state.chitty_context``:
a system context on public paths, otherwise one for the caller's ChittyID
(or the system identity when anonymous access is allowed). Completed and
failed requests are written to the audit log on a best-effort basis.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from chittycontext.chittyid import SYSTEM_CHITTY_ID, extract_chitty_id
from chittycontext.db.repositories.audit import AuditRepository
from chittycontext.exceptions import ContextAccessError
from chittycontext.lifecycle import create_audit_event, create_from_request
from chittycontext.logging_config import bind_request_context, reset_request_context
from chittycontext.models.context import AuditStatus, Context, ContextType
from chittycontext.store.base import KeyValueStore
from chittycontext.tasks import TaskChannel

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
CHITTY_ID_HEADER = "X-Chitty-ID"
CONTEXT_ID_HEADER = "X-Context-ID"

IDENTITY_HINT = "Provide X-Chitty-ID header or chittyId in request body"


def identity_required() -> ContextAccessError:
    return ContextAccessError(
        status_code=401,
        error="ChittyID required",
        code="IDENTITY_REQUIRED",
        message=IDENTITY_HINT,
    )


@dataclass(frozen=True)
class ContextMiddlewareOptions:
    """Explicit configuration for ChittyContextMiddleware."""

    public_paths: tuple[str, ...] = ("/health", "/api/v1/status", "/.well-known")
    allow_anonymous: bool = False
    system_chitty_id: str = SYSTEM_CHITTY_ID
    enable_audit_log: bool = True
    context_type: ContextType = ContextType.SESSION

    def is_public(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.public_paths)


def attach_context_headers(response: Response, ctx: Context) -> None:
    response.headers[REQUEST_ID_HEADER] = ctx.request_id
    response.headers[CHITTY_ID_HEADER] = ctx.chitty_id
    response.headers[CONTEXT_ID_HEADER] = ctx.id


async def read_json_body(request: Request) -> Optional[Any]:
    """Parse a JSON body for identity extraction; anything else yields None."""
    if "application/json" not in request.headers.get("Content-Type", ""):
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug("Ignoring malformed JSON body during identity extraction")
        return None


class ChittyContextMiddleware(BaseHTTPMiddleware):
    """Attach a runtime context to each request and audit its outcome."""

    def __init__(
        self,
        app: Any,
        options: Optional[ContextMiddlewareOptions] = None,
        store: Optional[KeyValueStore] = None,
        channel: Optional[TaskChannel] = None,
    ):
        super().__init__(app)
        self.options = options or ContextMiddlewareOptions()
        self.audit = AuditRepository(store, channel) if store is not None else None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path

        if self.options.is_public(path):
            ctx = create_from_request(
                self.options.system_chitty_id, request, ContextType.SYSTEM
            )
            request.state.chitty_context = ctx
            token = bind_request_context(
                request_id=ctx.request_id, context_id=ctx.id, chitty_id=ctx.chitty_id
            )
            try:
                response = await call_next(request)
            finally:
                reset_request_context(token)
            attach_context_headers(response, ctx)
            return response

        body = await read_json_body(request)
        chitty_id = extract_chitty_id(request, body)

        if chitty_id is None:
            if not self.options.allow_anonymous:
                logger.info(f"Rejected {request.method} {path}: no ChittyID")
                rejection = identity_required()
                return JSONResponse(
                    status_code=rejection.status_code, content=rejection.to_dict()
                )
            chitty_id = self.options.system_chitty_id

        ctx = create_from_request(chitty_id, request, self.options.context_type)
        request.state.chitty_context = ctx

        token = bind_request_context(
            request_id=ctx.request_id, context_id=ctx.id, chitty_id=ctx.chitty_id
        )
        start_time = time.time()
        try:
            try:
                response = await call_next(request)
            except Exception as e:
                await self._audit(
                    ctx, request, AuditStatus.ERROR, {"errorMessage": str(e)}
                )
                raise

            status = AuditStatus.ERROR if response.status_code >= 400 else AuditStatus.SUCCESS
            await self._audit(ctx, request, status, {"statusCode": response.status_code})

            # Downstream helpers may have refined the context (e.g. conversation id).
            attach_context_headers(response, getattr(request.state, "chitty_context", ctx))
            logger.debug(
                f"{request.method} {path} -> {response.status_code} "
                f"in {int((time.time() - start_time) * 1000)}ms"
            )
            return response
        finally:
            reset_request_context(token)

    async def _audit(
        self,
        ctx: Context,
        request: Request,
        status: AuditStatus,
        details: dict[str, Any],
    ) -> None:
        """Best-effort audit record; failures are logged, never raised."""
        if not self.options.enable_audit_log or self.audit is None:
            return
        try:
            event = create_audit_event(
                ctx,
                "api.request",
                action=request.method,
                resource=request.url.path,
                status=status,
                details=details,
            )
            await self.audit.log(event)
        except Exception as e:
            logger.warning(f"Failed to write audit event for context {ctx.id}: {e}")
