"""Response normalization for sanorm.

Normalization reshapes arbitrary handler output (and errors of any shape)
into the uniform success/error envelope:

    {"success": true, "data": ..., "metadata": {...}, "pagination": {...}}
    {"success": false, "error": {...}, "metadata": {...}}

Security notes:
- Error details are redacted by key name before serialization.
- normalize_error is total: it backs global error handlers and must not raise.
"""

from .engine import (
    NormalizationEngine,
    help_url,
    is_already_normalized,
    possible_causes,
    runtime_version,
    server_label,
)
from .models import API_VERSION, REDACTED, PaginationLinks, PaginationMeta, RequestContext, utc_timestamp
from .pagination import extract_pagination, normalize_pagination, unwrap_paginated
from .redaction import SENSITIVE_KEY_FRAGMENTS, is_sensitive_key, redact_details

__all__ = [
    "NormalizationEngine",
    "is_already_normalized",
    "help_url",
    "possible_causes",
    "server_label",
    "runtime_version",
    "RequestContext",
    "PaginationMeta",
    "PaginationLinks",
    "API_VERSION",
    "REDACTED",
    "utc_timestamp",
    "normalize_pagination",
    "extract_pagination",
    "unwrap_paginated",
    "redact_details",
    "is_sensitive_key",
    "SENSITIVE_KEY_FRAGMENTS",
]
