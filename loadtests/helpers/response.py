"""Turn marketplace API error bodies into one-line messages for Locust.

Three body shapes come back from the API:

- schema validation (422): {"detail": [{"loc": [...], "msg": "..."}]}
- HTTPException (401/403): {"detail": "msg"}
- domain errors (400/404): {"error": {"field": ["msg", ...]}} or {"error": "msg"}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response

_MAX_LENGTH = 300


def _join_messages(value) -> str:
    if isinstance(value, list):
        return "; ".join(str(item) for item in value)
    return str(value)


def extract_error_detail(response: Response) -> str:
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or ""
        return text[:_MAX_LENGTH] or "(empty response body)"

    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, list):
        parts = []
        for err in detail:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)
    if isinstance(detail, str):
        return detail

    if isinstance(body, dict) and "error" in body:
        error = body["error"]
        if isinstance(error, dict):
            return " | ".join(f"{key}: {_join_messages(value)}" for key, value in error.items())
        return str(error)

    return str(body)[:_MAX_LENGTH]
