"""
lmeve_auth.services

Service-layer package.

Responsibilities:
- Own transaction boundaries and persistence decisions.
- Coordinate the callback graph, registry, directory and session store.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services should be pure Python and easily testable with fake exchanges/sessions.
