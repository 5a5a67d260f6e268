"""Rate limiting configuration for the admin API.

Limits are tracked per client address in process memory and applied per
endpoint via decorators.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

# Create limiter with default rate (global fallback)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
)

# ── Per-endpoint rate limit presets ──────────────────────────
# These are applied via @limiter.limit() decorators on endpoints.

RATE_EXPORT = "10/minute"        # CSV export and template download
RATE_BULK = "10/minute"          # bulk update/status/delete and CSV import
