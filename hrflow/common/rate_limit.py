"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance that routers import for
per-endpoint limits, and that main.py wires into the FastAPI app.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from hrflow.config import settings

# Default: 60 requests/minute per client IP for all endpoints.
# Submission endpoints tighten this with @limiter.limit(SUBMISSION_LIMIT).
SUBMISSION_LIMIT = "20/minute"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)
