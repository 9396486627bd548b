from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class ViolationType(str, Enum):
    """
    Category of a detected injection pattern.

    Using str Enum keeps the value stable on the wire ("XSS", ...).
    """

    XSS = "XSS"
    SQL_INJECTION = "SQL_INJECTION"
    HTML_INJECTION = "HTML_INJECTION"
    SCRIPT_INJECTION = "SCRIPT_INJECTION"
    PATH_TRAVERSAL = "PATH_TRAVERSAL"
    COMMAND_INJECTION = "COMMAND_INJECTION"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class SecurityViolation:
    """
    Immutable record of one rule failing validation on one string leaf.

    field is the dotted/bracketed path of the leaf (e.g. "user.tags[2]");
    it is the empty string when the input itself is a string.
    """

    type: ViolationType
    field: str
    original_value: str
    sanitized_value: str
    rule: str
    severity: Severity

    def describe(self) -> str:
        return f"{self.field}: {self.type.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "field": self.field,
            "originalValue": self.original_value,
            "sanitizedValue": self.sanitized_value,
            "rule": self.rule,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class SanitizationResult:
    """Outcome of a single sanitize() call."""

    sanitized: Any
    violations: List[str] = field(default_factory=list)
    applied_rules: List[str] = field(default_factory=list)

    @property
    def has_violations(self) -> bool:
        return bool(self.violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sanitized": self.sanitized,
            "violations": list(self.violations),
            "appliedRules": list(self.applied_rules),
        }
