"""
api/limiter.py -- slowapi rate limiter factory.

One Limiter per app instance, created in create_app() and stored on
app.state.limiter, which is where SlowAPIMiddleware looks for it. The limit
is application-wide (every route shares it) and keyed by client address:
RATE_LIMIT_MAX_REQUESTS per RATE_LIMIT_WINDOW_MS.

A per-app instance (rather than a module-level singleton) keeps counters
from leaking between test apps.

Storage is in-memory: counters are per process and reset on restart.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import Settings


def build_limiter(settings: Settings) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        application_limits=[settings.rate_limit],
        storage_uri="memory://",
    )
