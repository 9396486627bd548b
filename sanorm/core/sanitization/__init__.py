"""Sanitization engine for untrusted request payloads.

Walks arbitrary JSON-like values and applies named rules to every string leaf,
recording violations as it goes.

Security notes:
- Rules run in caller order; validation sees the partially transformed value.
- Unknown rule names are dropped by sanitize() and rejected by validate_names().
"""

from .engine import SanitizationEngine, strip_all_markup
from .exceptions import ConfigError, InternalError, SanitizationError, SanitizationViolation
from .models import SanitizationResult, SecurityViolation, Severity, ViolationType
from .registry import RuleRegistry, cache_key
from .rules import (
    DEFAULT_RULE_NAMES,
    DEFAULT_RULES,
    Rule,
    get_violation_severity,
    get_violation_type,
)

__all__ = [
    "SanitizationEngine",
    "strip_all_markup",
    "RuleRegistry",
    "cache_key",
    "Rule",
    "DEFAULT_RULES",
    "DEFAULT_RULE_NAMES",
    "get_violation_type",
    "get_violation_severity",
    "SanitizationResult",
    "SecurityViolation",
    "Severity",
    "ViolationType",
    "SanitizationError",
    "ConfigError",
    "SanitizationViolation",
    "InternalError",
]
