from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlencode
from uuid import uuid4

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from sanorm.api.errors import SANITIZATION_ERROR, SANITIZATION_VIOLATION, split_error_body, violation_envelope
from sanorm.core.normalization.engine import NormalizationEngine, is_already_normalized
from sanorm.core.normalization.models import RequestContext
from sanorm.core.sanitization.engine import SanitizationEngine
from sanorm.core.sanitization.exceptions import SanitizationViolation

log = logging.getLogger("sanorm.api")

REQUEST_ID_HEADERS = ("x-request-id", "x-correlation-id", "x-trace-id")
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})
_MAX_REQUEST_ID_LEN = 128

ViolationCallback = Callable[[List[str], Scope], None]
ErrorCallback = Callable[[Exception, Scope], None]


def _is_json(content_type: Optional[str]) -> bool:
    mt = (content_type or "").split(";", 1)[0].strip().lower()
    return mt == "application/json" or mt.endswith("+json")


def _is_text(content_type: Optional[str]) -> bool:
    return (content_type or "").lower().startswith("text/")


def request_id_from_scope(scope: Scope) -> Optional[str]:
    """Request id from correlation headers or request state, if any.

    Client-supplied ids longer than 128 chars are ignored.
    """

    state = scope.get("state") or {}
    ctx = state.get("request_context")
    if isinstance(ctx, RequestContext):
        return ctx.request_id
    rid = state.get("request_id")
    if rid:
        return str(rid)

    headers = Headers(scope=scope)
    for name in REQUEST_ID_HEADERS:
        value = headers.get(name)
        if value and len(value) <= _MAX_REQUEST_ID_LEN:
            return value
    return None


def client_ip_from_scope(scope: Scope) -> str:
    headers = Headers(scope=scope)
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip
    client = scope.get("client")
    if client:
        return str(client[0])
    return "unknown"


def context_from_scope(scope: Scope) -> RequestContext:
    """RequestContext stored by RequestContextMiddleware, or a fresh one."""

    state = scope.get("state") or {}
    ctx = state.get("request_context")
    if isinstance(ctx, RequestContext):
        return ctx
    return RequestContext.create(
        request_id_from_scope(scope),
        user_agent=Headers(scope=scope).get("user-agent"),
        ip=client_ip_from_scope(scope),
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Create one RequestContext per request and log an access line.

    Header:
      - X-Request-ID (echoed on every response)

    Security notes:
    - Client-supplied ids are accepted only if short; otherwise a fresh
      uuid4 is used to reduce header abuse/log injection.
    - Request bodies are never logged.

    """

    def __init__(self, app, *, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable):
        rid = request_id_from_scope(request.scope) or str(uuid4())
        ctx = RequestContext.create(
            rid,
            user_agent=request.headers.get("user-agent"),
            ip=client_ip_from_scope(request.scope),
        )
        request.state.request_id = rid
        request.state.request_context = ctx

        response: Optional[Response] = None
        try:
            response = await call_next(request)
            response.headers[self._header_name] = rid
            return response
        finally:
            log.info(
                "api_request",
                extra={
                    "request_id": rid,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": getattr(response, "status_code", None),
                    "duration_ms": ctx.elapsed_ms(),
                },
            )


class SanitizationMiddleware:
    """Sanitize JSON request bodies and query strings before routing.

    Pure ASGI: the sanitized body is replayed to the downstream app with an
    updated content-length; the query string is re-encoded in the scope.
    With sanitize_headers, request headers other than authorization, cookie
    and set-cookie are sanitized in place; violations name the header.

    Outcomes
    - strict_mode + reject_on_violation: 400 SANITIZATION_VIOLATION envelope
    - violations otherwise: reported to on_violation, request continues
    - unexpected failure: 500 SANITIZATION_ERROR in strict mode, else the
      original request continues untouched
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        engine: SanitizationEngine,
        rules: Optional[Sequence[str]] = None,
        sanitize_body: bool = True,
        sanitize_query: bool = True,
        sanitize_headers: bool = False,
        exclude_paths: Sequence[str] = (),
        on_violation: Optional[ViolationCallback] = None,
    ):
        self.app = app
        self._engine = engine
        self._rules = list(rules) if rules is not None else None
        self._sanitize_body = sanitize_body
        self._sanitize_query = sanitize_query
        self._sanitize_headers = sanitize_headers
        self._exclude_paths = frozenset(exclude_paths)
        self._on_violation = on_violation

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or not self._engine.config.enabled
            or scope.get("path") in self._exclude_paths
        ):
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        body_messages: List[Message] = []
        body: Optional[bytes] = None
        if self._sanitize_body and _is_json(headers.get("content-type")):
            body, body_messages = await _read_body(receive)

        violations: List[str] = []
        new_scope = scope
        new_body = body
        strict = self._engine.config.strict_mode
        try:
            if self._sanitize_query and scope.get("query_string"):
                query, found = self._sanitize_query_string(scope["query_string"])
                violations.extend(found)
                new_scope = dict(scope, query_string=query)

            if self._sanitize_headers:
                headers_raw, found = self._sanitize_header_list(new_scope["headers"])
                violations.extend(found)
                new_scope = dict(new_scope, headers=headers_raw)

            if body:
                new_body, found = self._sanitize_json_body(body)
                violations.extend(found)
        except SanitizationViolation as e:
            if self._on_violation is not None:
                self._on_violation([v.describe() for v in e.violations], scope)
            rid = request_id_from_scope(scope) or str(uuid4())
            log.warning(
                "request_rejected",
                extra={"request_id": rid, "violation_count": len(e.violations)},
            )
            response = JSONResponse(
                violation_envelope(
                    SANITIZATION_VIOLATION,
                    "Input validation failed",
                    rid,
                    violations=[v.describe() for v in e.violations],
                ),
                status_code=400,
            )
            await response(scope, receive, send)
            return
        except Exception:
            log.exception("sanitization_failed", extra={"request_id": request_id_from_scope(scope)})
            if strict:
                rid = request_id_from_scope(scope) or str(uuid4())
                response = JSONResponse(
                    violation_envelope(SANITIZATION_ERROR, "Internal sanitization error", rid),
                    status_code=500,
                )
                await response(scope, receive, send)
                return
            new_scope, new_body = scope, body

        if violations and self._on_violation is not None:
            self._on_violation(violations, scope)

        if body is None:
            await self.app(new_scope, receive, send)
            return

        if new_body is not body:
            raw = [(k, v) for k, v in new_scope["headers"] if k.lower() != b"content-length"]
            raw.append((b"content-length", str(len(new_body)).encode("latin-1")))
            new_scope = dict(new_scope, headers=raw)
            body_messages = [{"type": "http.request", "body": new_body, "more_body": False}]

        await self.app(new_scope, _replay(body_messages, receive), send)

    def _sanitize_json_body(self, body: bytes) -> Tuple[bytes, List[str]]:
        try:
            payload = json.loads(body)
        except ValueError:
            # Not our concern: the handler reports malformed JSON.
            return body, []
        result = self._engine.sanitize(payload, self._rules)
        return json.dumps(result.sanitized).encode("utf-8"), result.violations

    def _sanitize_header_list(
        self, raw: List[Tuple[bytes, bytes]]
    ) -> Tuple[List[Tuple[bytes, bytes]], List[str]]:
        grouped: Dict[str, List[str]] = {}
        for key, value in raw:
            name = key.decode("latin-1").lower()
            if name not in SENSITIVE_HEADERS:
                grouped.setdefault(name, []).append(value.decode("latin-1"))

        flat = {k: v[0] if len(v) == 1 else v for k, v in grouped.items()}
        result = self._engine.sanitize(flat, self._rules)

        pending: Dict[str, List[str]] = {
            k: list(v) if isinstance(v, list) else [v] for k, v in result.sanitized.items()
        }
        out: List[Tuple[bytes, bytes]] = []
        for key, value in raw:
            name = key.decode("latin-1").lower()
            if name in pending:
                value = pending[name].pop(0).encode("latin-1", errors="replace")
            out.append((key, value))
        return out, result.violations

    def _sanitize_query_string(self, raw: bytes) -> Tuple[bytes, List[str]]:
        pairs = parse_qsl(raw.decode("latin-1"), keep_blank_values=True)
        grouped: Dict[str, Any] = {}
        for key, value in pairs:
            if key in grouped:
                prev = grouped[key]
                grouped[key] = (prev if isinstance(prev, list) else [prev]) + [value]
            else:
                grouped[key] = value

        result = self._engine.sanitize(grouped, self._rules)

        out: List[Tuple[str, str]] = []
        for key, value in result.sanitized.items():
            for item in value if isinstance(value, list) else [value]:
                out.append((key, item))
        return urlencode(out).encode("latin-1"), result.violations


async def _read_body(receive: Receive) -> Tuple[bytes, List[Message]]:
    chunks: List[bytes] = []
    messages: List[Message] = []
    while True:
        message = await receive()
        messages.append(message)
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks), messages


def _replay(messages: List[Message], receive: Receive) -> Receive:
    pending = list(messages)

    async def replay() -> Message:
        if pending:
            return pending.pop(0)
        return await receive()

    return replay


class NormalizationMiddleware:
    """Wrap JSON responses in success/error envelopes.

    Pure ASGI: JSON (and, for errors, text) response bodies are buffered,
    rewritten, and sent with an updated content-length.

    - status >= 400: normalize_error(body, ctx, HTTP_<status> or body code)
    - already-normalized bodies: unchanged
    - other JSON: normalize_result() with optional pagination detection
    - anything else (files, HTML, streams of other types): untouched

    A failure while rewriting is logged and the original body is sent.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        engine: NormalizationEngine,
        auto_detect_pagination: bool = True,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.app = app
        self._engine = engine
        self._auto_detect_pagination = auto_detect_pagination
        self._on_error = on_error

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self._engine.config.enabled:
            await self.app(scope, receive, send)
            return

        start: Optional[Message] = None
        chunks: List[bytes] = []
        passthrough = False

        async def send_wrapper(message: Message) -> None:
            nonlocal start, passthrough

            if message["type"] == "http.response.start":
                headers = Headers(raw=message.get("headers", []))
                content_type = headers.get("content-type")
                status = int(message["status"])
                if _is_json(content_type) or (status >= 400 and _is_text(content_type)):
                    start = message
                else:
                    passthrough = True
                    await send(message)
                return

            if message["type"] != "http.response.body" or passthrough or start is None:
                await send(message)
                return

            chunks.append(message.get("body", b""))
            if message.get("more_body", False):
                return

            original = b"".join(chunks)
            body = self._rewrite(scope, start, original)
            headers = MutableHeaders(raw=list(start.get("headers", [])))
            if body is not original:
                headers["content-type"] = "application/json"
                headers["content-length"] = str(len(body))
            await send({**start, "headers": headers.raw})
            await send({"type": "http.response.body", "body": body, "more_body": False})

        await self.app(scope, receive, send_wrapper)

    def _rewrite(self, scope: Scope, start: Message, body: bytes) -> bytes:
        status = int(start["status"])
        content_type = Headers(raw=start.get("headers", [])).get("content-type")
        try:
            if _is_json(content_type):
                try:
                    decoded = json.loads(body)
                except ValueError:
                    return body
            else:
                decoded = body.decode("utf-8", errors="replace")

            context = context_from_scope(scope)
            if status >= 400:
                if is_already_normalized(decoded):
                    return body
                error, code, details = split_error_body(decoded, status)
                envelope = self._engine.normalize_error(error, context, code, details)
            else:
                envelope = self._engine.normalize_result(
                    decoded, context, auto_detect_pagination=self._auto_detect_pagination
                )
                if envelope is decoded:
                    return body
            return json.dumps(envelope).encode("utf-8")
        except Exception as e:
            log.exception("normalization_failed", extra={"request_id": request_id_from_scope(scope)})
            if self._on_error is not None:
                self._on_error(e, scope)
            return body
