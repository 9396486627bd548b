from __future__ import annotations

import logging
import os
import platform
import traceback
from collections.abc import Mapping
from dataclasses import replace
from threading import Lock
from typing import Any, Dict, List, Optional

from sanorm.config import NormalizationConfig

from .models import API_VERSION, RequestContext, utc_timestamp
from .pagination import PaginationInput, extract_pagination, normalize_pagination, unwrap_paginated
from .redaction import redact_details

log = logging.getLogger("sanorm.normalization")

DEFAULT_HELP_BASE_URL = "https://docs.example.com/errors"
UNKNOWN_ERROR_MESSAGE = "An unexpected error occurred"

POSSIBLE_CAUSES: Dict[str, List[str]] = {
    "VALIDATION_ERROR": [
        "Invalid input format",
        "Missing required fields",
        "Field length constraints violated",
    ],
    "AUTHENTICATION_ERROR": [
        "Invalid credentials",
        "Expired token",
        "Insufficient permissions",
    ],
    "NOT_FOUND": [
        "Resource does not exist",
        "Incorrect resource ID",
        "Resource has been deleted",
    ],
    "INTERNAL_ERROR": [
        "Server configuration issue",
        "Database connection problem",
        "Third-party service unavailable",
    ],
}
DEFAULT_CAUSES = ["Unknown error cause"]


def is_already_normalized(value: Any) -> bool:
    """True for values that already carry an envelope.

    Detection: "success" and "metadata" keys, and "requestId" in metadata.
    """

    if not isinstance(value, Mapping):
        return False
    if "success" not in value or "metadata" not in value:
        return False
    metadata = value.get("metadata")
    return isinstance(metadata, Mapping) and "requestId" in metadata


def server_label() -> str:
    """Deployment environment label used by detailed formats."""
    return os.environ.get("SANORM_ENV") or "development"


def runtime_version() -> str:
    return f"v{platform.python_version()}"


def help_url(code: str, *, base_url: str = DEFAULT_HELP_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/{code.lower()}"


def possible_causes(code: str) -> List[str]:
    return list(POSSIBLE_CAUSES.get(code, DEFAULT_CAUSES))


def _nested(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


class NormalizationEngine:
    """
    Builds success and error envelopes from handler output.

    Security invariants
    - Error details are redacted before they leave the process
    - Stack traces are included only with include_debug_info
    - normalize_error never raises (it backs global error boundaries)

    The live config is an immutable object swapped under a lock by
    update_config(); every call reads it exactly once.
    """

    def __init__(
        self,
        config: Optional[NormalizationConfig] = None,
        *,
        help_base_url: str = DEFAULT_HELP_BASE_URL,
    ):
        self._config = config if config is not None else NormalizationConfig()
        self._help_base_url = help_base_url
        self._lock = Lock()

    @property
    def config(self) -> NormalizationConfig:
        with self._lock:
            return self._config

    def update_config(self, changes: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> NormalizationConfig:
        """Merge fields into the live configuration.

        Raises
        - TypeError for unknown field names
        - ValueError for unknown format values
        """

        merged: Dict[str, Any] = dict(changes or {})
        merged.update(kwargs)
        with self._lock:
            self._config = replace(self._config, **merged)
            return self._config

    def create_request_context(
        self,
        request_id: Optional[str] = None,
        *,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> RequestContext:
        return RequestContext.create(request_id, user_agent=user_agent, ip=ip)

    def _metadata(self, context: RequestContext, config: NormalizationConfig) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "timestamp": utc_timestamp(),
            "requestId": context.request_id,
            "version": API_VERSION,
        }
        elapsed = context.elapsed_ms()
        if config.include_metadata and elapsed is not None:
            metadata["processingTime"] = elapsed
        return metadata

    @staticmethod
    def _detailed_metadata(metadata: Mapping[str, Any]) -> Dict[str, Any]:
        return {**metadata, "server": server_label(), "nodeVersion": runtime_version()}

    def normalize_success(
        self,
        data: Any,
        context: RequestContext,
        pagination: Optional[PaginationInput] = None,
    ) -> Dict[str, Any]:
        """Wrap data in a success envelope and apply the output format."""

        config = self.config
        response: Dict[str, Any] = {
            "success": True,
            "data": data,
            "metadata": self._metadata(context, config),
        }
        if pagination is not None:
            response["pagination"] = normalize_pagination(
                pagination, include_links=config.include_links
            ).to_dict()

        if config.format == "minimal":
            return {"success": True, "data": data}
        if config.format == "detailed":
            response["metadata"] = self._detailed_metadata(response["metadata"])
        return response

    def normalize_result(
        self,
        value: Any,
        context: RequestContext,
        *,
        auto_detect_pagination: bool = True,
    ) -> Any:
        """Normalization boundary for arbitrary handler results.

        Envelopes pass through unchanged. Paginated results are unwrapped to
        their items and the pagination facts move into the envelope.
        """

        if is_already_normalized(value):
            return value
        pagination = extract_pagination(value) if auto_detect_pagination else None
        data = unwrap_paginated(value) if pagination is not None else value
        return self.normalize_success(data, context, pagination)

    def normalize_error(
        self,
        error: Any,
        context: RequestContext,
        code: Optional[str] = None,
        details: Any = None,
    ) -> Dict[str, Any]:
        """Coerce any error value into an error envelope. Never raises."""

        try:
            return self._normalize_error(error, context, code, details)
        except Exception:
            log.exception("normalize_error_failed", extra={"request_id": getattr(context, "request_id", None)})
            request_id = getattr(context, "request_id", None) or "unknown"
            now = utc_timestamp()
            return {
                "success": False,
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": UNKNOWN_ERROR_MESSAGE,
                    "timestamp": now,
                    "requestId": request_id,
                },
                "metadata": {"timestamp": now, "requestId": request_id, "version": API_VERSION},
            }

    def _normalize_error(
        self,
        error: Any,
        context: RequestContext,
        code: Optional[str],
        details: Any,
    ) -> Dict[str, Any]:
        config = self.config
        stack: Optional[str] = None

        if isinstance(error, BaseException):
            message = str(error)
            error_code = code or error.__class__.__name__ or "INTERNAL_ERROR"
            if config.include_debug_info:
                stack = "".join(traceback.format_exception(error))
        elif isinstance(error, str):
            message = error
            error_code = code or "VALIDATION_ERROR"
        else:
            nested_message = _nested(error, "message") if error is not None else None
            nested_code = _nested(error, "code") if error is not None else None
            message = str(nested_message) if nested_message else UNKNOWN_ERROR_MESSAGE
            error_code = code or (str(nested_code) if nested_code else "UNKNOWN_ERROR")

        body: Dict[str, Any] = {
            "code": error_code,
            "message": message,
        }
        if details is not None:
            body["details"] = redact_details(details)
        body["timestamp"] = utc_timestamp()
        body["requestId"] = context.request_id
        if stack:
            body["stack"] = stack

        response: Dict[str, Any] = {
            "success": False,
            "error": body,
            "metadata": self._metadata(context, config),
        }

        if config.error_format == "simple":
            response["error"] = {
                "code": body["code"],
                "message": body["message"],
                "timestamp": body["timestamp"],
                "requestId": body["requestId"],
            }
        elif config.error_format == "detailed":
            body["helpUrl"] = help_url(error_code, base_url=self._help_base_url)
            body["possibleCauses"] = possible_causes(error_code)
            response["metadata"] = self._detailed_metadata(response["metadata"])

        return response
