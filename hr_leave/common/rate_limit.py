"""Rate limiting configuration using slowapi.

Module-level Limiter shared by the leave router and wired into the FastAPI
app in main.py. Limits are per client IP.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# 60/minute default; write endpoints tighten it with @limiter.limit("N/period").
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
)
