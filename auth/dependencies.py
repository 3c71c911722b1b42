"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The request headers are forwarded verbatim to the auth engine's
get_session(); whatever credential scheme the engine accepts (session
cookie, Bearer header) is its business, not ours.

get_request_context() is the soft variant (identity is None on failure).
require_user() raises 401 "Unauthorized access" if unauthenticated.

Both store a RequestContext on request.state.context. That is the only
mutation of the request made here; route handlers receive the Identity as an
explicit parameter rather than reading request.state.

Layer rule: no imports from api/, mail/, or cache/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.models import Identity, RequestContext
from core.responses import UNAUTHORIZED, ApiError

logger = logging.getLogger("gatekeeper.auth")


async def require_user(request: Request) -> Identity:
    """Require authentication. Raises ApiError(401) if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: Identity = Depends(require_user)): ...

    A session without a user sub-object counts as no session. ApiErrors from
    the engine pass through unchanged; anything else becomes the same 401 so
    driver or library errors never reach the client.
    """
    engine = request.app.state.auth_engine
    try:
        session = await engine.get_session(request.headers)
    except ApiError:
        raise
    except Exception as exc:
        logger.warning("Session resolution failed: %s", exc)
        raise ApiError(UNAUTHORIZED, 401) from exc

    if session is None or session.user is None:
        raise ApiError(UNAUTHORIZED, 401)

    identity = Identity.from_session(session)
    request.state.context = RequestContext(identity=identity)
    return identity


async def get_request_context(request: Request) -> RequestContext:
    """Resolve the caller if possible. Never raises."""
    try:
        identity = await require_user(request)
    except ApiError:
        identity = None
    context = RequestContext(identity=identity)
    request.state.context = context
    return context
