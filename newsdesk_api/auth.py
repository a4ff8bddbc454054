"""Admin authentication for mutating endpoints.

A bearer token compared against ``ADMIN_TOKEN``. With no token configured
the check is off, which is how local development runs.
"""

import secrets

from fastapi import Header, HTTPException

from newsdesk_api.deps import get_services


def require_admin(authorization: str | None = Header(None)) -> None:
    expected = get_services().admin_token
    if not expected:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
