"""
Shared slowapi limiter.

Attached to the app in main.py; mutating routes opt in with
`@limiter.limit(...)` and must accept a `request: Request` argument.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Money-moving and lifecycle actions
ACTION_LIMIT = "20/minute"
# Comments, votes, follows
COMMUNITY_LIMIT = "60/minute"
