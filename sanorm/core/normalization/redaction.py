from __future__ import annotations

from collections.abc import Mapping
from typing import Any, FrozenSet

from .models import REDACTED

SENSITIVE_KEY_FRAGMENTS: FrozenSet[str] = frozenset(
    {
        "password",
        "token",
        "secret",
        "key",
        "authorization",
        "auth",
        "credential",
        "ssn",
        "social",
        "credit",
        "card",
    }
)


def is_sensitive_key(name: Any) -> bool:
    """True when the lowercased key contains any sensitive fragment."""
    lowered = str(name).lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)


def redact_details(details: Any) -> Any:
    """Return a copy of details with sensitive mapping values replaced.

    Recurses through mappings, lists and tuples. Other values are returned
    unchanged. The input is never mutated.

    Time:  O(n) for n nodes
    Space: O(n)
    """

    if isinstance(details, Mapping):
        return {
            k: (REDACTED if is_sensitive_key(k) else redact_details(v)) for k, v in details.items()
        }
    if isinstance(details, (list, tuple)):
        return [redact_details(item) for item in details]
    return details
