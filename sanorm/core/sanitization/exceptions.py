from __future__ import annotations

from typing import List, Optional, Sequence


class SanitizationError(Exception):
    """
    Base exception for all sanitization failures.
    """

    pass


class ConfigError(SanitizationError):
    """
    Raised when a configuration names rules that are not registered,
    or when a configuration file is malformed.
    """

    def __init__(self, message: str, *, invalid_rules: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.invalid_rules: List[str] = list(invalid_rules or [])


class SanitizationViolation(SanitizationError):
    """
    Raised when strict mode rejects an input that produced violations.
    """

    def __init__(self, message: str, *, violations: Optional[Sequence] = None):
        super().__init__(message)
        self.violations = list(violations or [])


class InternalError(SanitizationError):
    """
    Raised when a rule function fails while walking an input.
    """

    def __init__(self, message: str, *, rule: str = "", field: str = ""):
        super().__init__(message)
        self.rule = rule
        self.field = field
