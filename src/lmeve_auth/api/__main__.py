"""
lmeve_auth.api.__main__

Entrypoint for running the auth service via `python -m lmeve_auth.api`.

Responsibilities:
- Load settings and refuse to serve production traffic with development secrets.
- Create the app and start uvicorn with structlog-compatible logging config.
"""

from __future__ import annotations

import sys

import uvicorn

from lmeve_auth.api.app import create_app
from lmeve_auth.settings import Settings, get_settings

_DEV_DEFAULTS = {
    "jwt_secret": "dev-secret-change-me",
    "admin_password": "change-me",
}


def insecure_settings(settings: Settings) -> list[str]:
    """Names of secrets still set to their development defaults."""

    return [name for name, value in _DEV_DEFAULTS.items() if getattr(settings, name) == value]


def main() -> None:
    settings = get_settings()
    if settings.env == "prod":
        insecure = insecure_settings(settings)
        if insecure:
            sys.exit(f"Refusing to start in prod with default values for: {', '.join(insecure)}")

    app = create_app(settings=settings)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
        # EVE SSO redirects back through the public URL; honour the proxy's scheme/host.
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
