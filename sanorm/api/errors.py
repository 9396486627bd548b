from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Tuple

from sanorm.core.normalization.models import API_VERSION, utc_timestamp

SANITIZATION_VIOLATION = "SANITIZATION_VIOLATION"
SANITIZATION_ERROR = "SANITIZATION_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"


def split_error_body(body: Any, status_code: int) -> Tuple[Any, Optional[str], Any]:
    """Split a framework error payload into (error, code, details).

    Understands the shapes handlers and FastAPI produce:
    - {"message": ..., "code": ..., "details": ...}
    - {"detail": "text"} / {"detail": {...}} / {"detail": [...]}
    - plain strings

    The code falls back to HTTP_<status> when the payload carries none.
    """

    fallback = f"HTTP_{status_code}"

    if isinstance(body, str):
        return {"message": body}, fallback, None

    if not isinstance(body, Mapping):
        return body, fallback, None

    if "message" not in body and "detail" in body:
        detail = body["detail"]
        if isinstance(detail, Mapping):
            return split_error_body(detail, status_code)
        if isinstance(detail, str):
            return {"message": detail}, fallback, None
        return {"message": "Request validation failed"}, fallback, detail

    code = body.get("code")
    details = body.get("details")
    if details is None and "violations" in body:
        details = {"violations": body["violations"]}
    return body, (str(code) if code else fallback), details


def violation_envelope(
    code: str,
    message: str,
    request_id: str,
    *,
    violations: Optional[list] = None,
) -> dict:
    """Error envelope emitted by adapters before a handler runs."""

    now = utc_timestamp()
    error: dict = {"code": code, "message": message}
    if violations is not None:
        error["violations"] = list(violations)
    error["timestamp"] = now
    error["requestId"] = request_id
    return {
        "success": False,
        "error": error,
        "metadata": {"timestamp": now, "requestId": request_id, "version": API_VERSION},
    }
