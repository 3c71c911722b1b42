"""
api/routes/health.py -- Health, liveness and readiness checks.

  GET /health        uptime, timestamp, environment, database state.
                     200 when the database is connected, else 503.
  GET /health/live   always 200 -- the process is running.
  GET /health/ready  200 only when the database is connected, else 503
                     with a reason.

All three read state synchronously and have no side effects. They are
exempt from rate limiting (see api/main.py) so load balancers and
monitoring are never throttled.
"""

import time

from fastapi import APIRouter, Request

from core.database import DatabaseConnector
from core.responses import ErrorResponse, SuccessResponse

router = APIRouter()


def _db(request: Request) -> DatabaseConnector:
    return request.app.state.db


@router.get("/health")
async def health(request: Request):
    db_state = _db(request).health_state()
    data = {
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "message": "OK",
        "timestamp": int(time.time() * 1000),
        "environment": request.app.state.settings.environment,
        "services": {"database": db_state},
    }
    if db_state == "connected":
        return SuccessResponse(message="Service is healthy", data=data).to_response()
    return ErrorResponse(message="Service is unhealthy", status_code=503, data=data).to_response()


@router.get("/health/live")
async def live():
    return SuccessResponse(message="Service is alive", data={"status": "alive"}).to_response()


@router.get("/health/ready")
async def ready(request: Request):
    if _db(request).is_connected:
        return SuccessResponse(message="Service is ready", data={"status": "ready"}).to_response()
    return ErrorResponse(
        message="Service is not ready",
        status_code=503,
        data={"status": "not ready", "reason": "database not connected"},
    ).to_response()
