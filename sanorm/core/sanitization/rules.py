from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Pattern

from .models import Severity, ViolationType

Transform = Callable[[str], str]
Validator = Callable[[str], bool]


@dataclass(frozen=True)
class Rule:
    """
    Named string rule: an optional validator and an optional transform.

    Invariants
    - A rule without validate never reports a violation.
    - A rule without transform never changes the value.
    - name is a non-empty string; it is the registry key.
    """

    name: str
    pattern: Optional[Pattern[str]] = None
    transform: Optional[Transform] = None
    validate: Optional[Validator] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError("Rule name must be a string")
        if not self.name.strip():
            raise ValueError("Rule name must be non-empty")
        if self.transform is not None and not callable(self.transform):
            raise TypeError("Rule transform must be callable")
        if self.validate is not None and not callable(self.validate):
            raise TypeError("Rule validate must be callable")

    def matches(self, value: str) -> bool:
        """Return True when the rule's pattern occurs in value."""
        if self.pattern is None:
            return False
        return self.pattern.search(value) is not None


_HTML_TAG = re.compile(r"<[^>]*>")
_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_SQL_KEYWORD = re.compile(
    r"\b(ALTER|CREATE|DELETE|DROP|EXEC(UTE)?|INSERT|SELECT|UNION|UPDATE)\b", re.IGNORECASE
)
_XSS_VECTOR = re.compile(r"(javascript:|vbscript:|onload|onerror|onclick|onmouseover)", re.IGNORECASE)
_EMAIL = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_PHONE = re.compile(r"\+?[0-9\s\-()]+")
_PHONE_FORMATTING = re.compile(r"[\s\-()]")
_PHONE_DIGITS = re.compile(r"\+?[0-9]+")
_URL = re.compile(
    r"https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b([-a-zA-Z0-9()@:%_+.~#?&/=]*)"
)
_PATH_TRAVERSAL = re.compile(r"(\.\.[/\\]|\.\.%2f|\.\.%5c)", re.IGNORECASE)
_SHELL_META = re.compile(r"[;&|`$(){}\[\]]")


def _strip_phone_formatting(value: str) -> str:
    return _PHONE_FORMATTING.sub("", value)


def _build_default_rules() -> Dict[str, Rule]:
    rules = [
        Rule(
            name="html",
            pattern=_HTML_TAG,
            transform=lambda v: _HTML_TAG.sub("", v),
            validate=lambda v: _HTML_TAG.search(v) is None,
            description="Removes HTML tags from input",
        ),
        Rule(
            name="script",
            pattern=_SCRIPT_BLOCK,
            transform=lambda v: _SCRIPT_BLOCK.sub("", v),
            validate=lambda v: _SCRIPT_BLOCK.search(v) is None,
            description="Removes script tags to prevent XSS",
        ),
        Rule(
            name="sql",
            pattern=_SQL_KEYWORD,
            validate=lambda v: _SQL_KEYWORD.search(v) is None,
            description="Detects potential SQL injection patterns",
        ),
        Rule(
            name="xss",
            pattern=_XSS_VECTOR,
            transform=lambda v: _XSS_VECTOR.sub("", v),
            validate=lambda v: _XSS_VECTOR.search(v) is None,
            description="Removes common XSS attack vectors",
        ),
        Rule(
            name="trim",
            transform=lambda v: v.strip(),
            validate=lambda v: True,
            description="Removes leading and trailing whitespace",
        ),
        Rule(
            name="email-normalize",
            pattern=_EMAIL,
            transform=lambda v: v.lower().strip(),
            validate=lambda v: _EMAIL.fullmatch(v) is not None,
            description="Normalizes email addresses to lowercase",
        ),
        Rule(
            name="phone-normalize",
            pattern=_PHONE,
            transform=_strip_phone_formatting,
            validate=lambda v: _PHONE_DIGITS.fullmatch(_strip_phone_formatting(v)) is not None,
            description="Normalizes phone numbers by removing formatting",
        ),
        Rule(
            name="url-validate",
            pattern=_URL,
            validate=lambda v: _URL.fullmatch(v) is not None,
            description="Validates URL format",
        ),
        Rule(
            name="path-traversal",
            pattern=_PATH_TRAVERSAL,
            validate=lambda v: _PATH_TRAVERSAL.search(v) is None,
            description="Detects path traversal attempts",
        ),
        Rule(
            name="command-injection",
            pattern=_SHELL_META,
            transform=lambda v: _SHELL_META.sub("", v),
            validate=lambda v: _SHELL_META.search(v) is None,
            description="Removes command injection characters",
        ),
    ]
    return {r.name: r for r in rules}


# Process-wide, read-only. Registries copy references out of it, never into it.
DEFAULT_RULES: Mapping[str, Rule] = MappingProxyType(_build_default_rules())

DEFAULT_RULE_NAMES = ("html", "script", "xss", "trim")

_VIOLATION_TYPES: Mapping[str, ViolationType] = MappingProxyType(
    {
        "html": ViolationType.HTML_INJECTION,
        "script": ViolationType.SCRIPT_INJECTION,
        "xss": ViolationType.XSS,
        "sql": ViolationType.SQL_INJECTION,
        "path-traversal": ViolationType.PATH_TRAVERSAL,
        "command-injection": ViolationType.COMMAND_INJECTION,
    }
)

_SEVERITIES: Mapping[ViolationType, Severity] = MappingProxyType(
    {
        ViolationType.XSS: Severity.HIGH,
        ViolationType.SQL_INJECTION: Severity.CRITICAL,
        ViolationType.HTML_INJECTION: Severity.MEDIUM,
        ViolationType.SCRIPT_INJECTION: Severity.CRITICAL,
        ViolationType.PATH_TRAVERSAL: Severity.HIGH,
        ViolationType.COMMAND_INJECTION: Severity.CRITICAL,
    }
)


def get_violation_type(rule_name: str) -> ViolationType:
    """Map a rule name to its violation type (XSS for unmapped rules)."""
    return _VIOLATION_TYPES.get(rule_name, ViolationType.XSS)


def get_violation_severity(violation_type: ViolationType) -> Severity:
    """Map a violation type to its severity (medium for unmapped types)."""
    return _SEVERITIES.get(violation_type, Severity.MEDIUM)
