"""
lmeve_auth.api.routers

Router modules grouped by resource.
"""
