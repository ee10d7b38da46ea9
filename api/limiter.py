"""
api/limiter.py -- The one slowapi Limiter shared by the app and its routers.

api/main.py mounts it (app.state.limiter + SlowAPIMiddleware); api/routes/auth.py
decorates the credential routes with @limiter.limit(AUTH_RATE_LIMIT). Counters
live in process memory and are keyed by client IP, so every router must use
this instance for the limits to add up.

AUTH_RATE_LIMIT comes from Settings.auth_rate_limit (default "10/minute").
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

AUTH_RATE_LIMIT: str = get_settings().auth_rate_limit
