from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from sanorm.api.errors import SANITIZATION_VIOLATION, VALIDATION_ERROR, split_error_body
from sanorm.api.middleware import context_from_scope
from sanorm.core.normalization.engine import NormalizationEngine
from sanorm.core.sanitization.exceptions import SanitizationViolation
from sanorm.utils.json_safe import to_jsonable

log = logging.getLogger("sanorm.api")


def install_error_handlers(app: FastAPI, engine: NormalizationEngine) -> None:
    """Register exception handlers that answer with error envelopes.

    Security notes:
    - Unhandled exceptions never leak their stack unless include_debug_info.
    - Details pass through the engine's key-based redaction.

    """

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        ctx = context_from_scope(request.scope)
        error, code, details = split_error_body({"detail": exc.detail}, exc.status_code)
        return JSONResponse(
            engine.normalize_error(error, ctx, code, details),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        ctx = context_from_scope(request.scope)
        return JSONResponse(
            engine.normalize_error(
                "Request validation failed", ctx, VALIDATION_ERROR, to_jsonable(exc.errors())
            ),
            status_code=422,
        )

    @app.exception_handler(SanitizationViolation)
    async def _violation(request: Request, exc: SanitizationViolation) -> JSONResponse:
        ctx = context_from_scope(request.scope)
        return JSONResponse(
            engine.normalize_error(
                exc,
                ctx,
                SANITIZATION_VIOLATION,
                {"violations": [v.describe() for v in exc.violations]},
            ),
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        ctx = context_from_scope(request.scope)
        log.exception("unhandled_error", extra={"request_id": ctx.request_id})
        status = getattr(exc, "status_code", None) or getattr(exc, "status", None) or 500
        code = getattr(exc, "code", None) or "INTERNAL_ERROR"
        return JSONResponse(
            engine.normalize_error(exc, ctx, str(code), getattr(exc, "details", None)),
            status_code=int(status),
        )
