"""
lmeve_auth.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide ORM models, engine/session setup, and repositories.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Persistence is the external key-value collaborator of the auth core; swapping the
# backend should not touch the callback graph or the resolver.
