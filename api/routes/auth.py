"""
api/routes/auth.py -- Catch-all mount for the auth engine.

ANY /auth/{path} is handed to app.state.auth_engine.handle() untouched. The
engine owns routing, parsing and the response for its own sub-routes; this
module only adds the providers listing, which reads configuration rather
than engine state.
"""

from fastapi import APIRouter, Request

from auth.oauth import get_enabled_providers
from core.responses import SuccessResponse

router = APIRouter()


@router.get("/auth/providers")
async def list_providers(request: Request):
    """OAuth providers with credentials configured, for rendering sign-in buttons."""
    providers = get_enabled_providers(request.app.state.settings)
    return SuccessResponse(message="OAuth providers", data={"providers": providers}).to_response()


@router.api_route("/auth/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def auth_handler(request: Request):
    return await request.app.state.auth_engine.handle(request)
