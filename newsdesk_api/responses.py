"""Response envelope: ``{"status": "success", "cached": …, …}``."""

from typing import Any


def ok(payload: Any = None, *, cached: bool | None = None, **extra: Any) -> dict:
    body: dict[str, Any] = {"status": "success"}
    if cached is not None:
        body["cached"] = cached
    if isinstance(payload, dict):
        body.update(payload)
    elif payload is not None:
        body["data"] = payload
    body.update(extra)
    return body


def fail(message: str, errors: list[dict] | None = None) -> dict:
    body: dict[str, Any] = {"status": "fail", "message": message}
    if errors:
        body["errors"] = errors
    return body
