"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Tests switch the limiter off with `limiter.enabled = False`; the login tests
would otherwise exhaust the budget for the shared "testclient" address.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Applied to login, register and resend-verification [H2].
AUTH_RATE_LIMIT = "10/minute"

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
