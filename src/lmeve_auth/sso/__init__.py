"""
lmeve_auth.sso

EVE Online SSO collaborator package.

Responsibilities:
- HTTP client for the SSO and ESI endpoints.
- PKCE login requests and anti-forgery state tracking.
- Authorization-code exchange into a verified identity.
"""

# Package marker.
