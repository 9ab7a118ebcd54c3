"""
lmeve_auth.auth

Authentication/authorization package.

Responsibilities:
- Permission catalog and role resolution.
- Principal model and the session/identity store.
- Session tokens, password hashing and FastAPI auth dependencies.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Everything the UI consults before rendering a gated action lives in this package.
