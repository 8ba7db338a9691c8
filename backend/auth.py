"""Bearer-token authentication for the ReplyGate API.

Tokens are static and come from REPLYGATE_API_TOKENS (comma-separated).
With no tokens configured every protected route answers 401.
"""

import secrets

# Paths that do NOT require authentication
PUBLIC_PATHS = {
    "/health",
    "/api/health",
    "/api/docs",
    "/api/redoc",
    "/api/openapi.json",
}


def validate_token(token: str, allowed: set[str]) -> bool:
    """Constant-time check of ``token`` against the configured set."""
    if not token:
        return False
    return any(secrets.compare_digest(token, candidate) for candidate in allowed)


def is_public(path: str) -> bool:
    path = path.rstrip("/") or "/"
    return (
        path in PUBLIC_PATHS
        or path.startswith("/api/docs")
        or path.startswith("/api/redoc")
    )

