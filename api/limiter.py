"""
api/limiter.py -- Shared slowapi rate limiter instance.

api/main.py mounts it as middleware; the auth routers apply per-route limits
to login and forgot-password with @limiter.limit(). One shared instance means
one counter store -- separate instances per module would never trip.

Counters live in process memory and are per client IP. They are not shared
between workers.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

LOGIN_LIMIT = get_settings().login_rate_limit
