"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in route modules
(to apply per-route limits with @limiter.limit()).

default_limits applies the global ceiling (RATE_LIMIT_MAX requests per
RATE_LIMIT_WINDOW_SECONDS per client IP) to every route that has no explicit
limit. Using a single shared instance ensures all routes share the same
in-memory counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    default_limits=[_settings.default_rate_limit],
)

# Per-route limit for credential-guessing surfaces (login, register).
LOGIN_RATE_LIMIT = _settings.login_rate_limit
