from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from fastapi import HTTPException
from starlette.requests import Request

from sanorm.api.errors import SANITIZATION_ERROR, SANITIZATION_VIOLATION
from sanorm.api.middleware import context_from_scope
from sanorm.core.normalization.models import RequestContext
from sanorm.core.sanitization.engine import SanitizationEngine
from sanorm.core.sanitization.exceptions import SanitizationViolation

log = logging.getLogger("sanorm.api")


def request_context(request: Request) -> RequestContext:
    """FastAPI dependency: the RequestContext for the current request."""
    return context_from_scope(request.scope)


def sanitized_body(
    engine: SanitizationEngine,
    rules: Optional[Sequence[str]] = None,
) -> Callable[[Request], Awaitable[Any]]:
    """Build a FastAPI dependency that returns the sanitized JSON body.

    Usage:
        @app.post("/users")
        def create_user(body = Depends(sanitized_body(engine, ["trim", "html"]))): ...

    Outcomes
    - engine disabled or empty body: the body as sent
    - strict_mode and any violation: 400 SANITIZATION_VIOLATION
    - anything else failing: 400 SANITIZATION_ERROR
    """

    selected = list(rules) if rules is not None else None

    async def dependency(request: Request) -> Any:
        raw = await request.body()
        if not raw:
            return None
        try:
            value = await request.json()
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail={"code": SANITIZATION_ERROR, "message": "Request body is not valid JSON"},
            )

        if not engine.config.enabled or value is None:
            return value

        try:
            result = engine.sanitize(value, selected)
        except SanitizationViolation as e:
            raise HTTPException(
                status_code=400,
                detail={
                    "code": SANITIZATION_VIOLATION,
                    "message": "Input validation failed",
                    "violations": [v.describe() for v in e.violations],
                },
            )
        except Exception as e:
            log.exception("sanitization_failed", extra={"path": request.url.path})
            raise HTTPException(
                status_code=400,
                detail={
                    "code": SANITIZATION_ERROR,
                    "message": "Input sanitization failed",
                    "details": {"error": str(e)},
                },
            )

        if engine.config.strict_mode and result.violations:
            raise HTTPException(
                status_code=400,
                detail={
                    "code": SANITIZATION_VIOLATION,
                    "message": "Input validation failed",
                    "violations": result.violations,
                },
            )
        return result.sanitized

    return dependency
