from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence

import bleach

from .exceptions import InternalError, SanitizationError, SanitizationViolation
from .models import SanitizationResult, SecurityViolation
from .registry import RuleRegistry
from .rules import Rule, get_violation_severity, get_violation_type

if TYPE_CHECKING:
    from sanorm.config import SanitizationConfig

log = logging.getLogger("sanorm.sanitization")

HtmlCleaner = Callable[[str], str]


def strip_all_markup(value: str) -> str:
    """Remove every tag and attribute, keeping text content."""
    return bleach.clean(value, tags=[], attributes={}, strip=True)


class SanitizationEngine:
    """
    Applies named rules to every string leaf of a JSON-like value.

    Responsibilities
    - Resolve rule names through a RuleRegistry (lenient, cached)
    - Walk dicts/lists depth-first, tracking the field path
    - Record violations against the current, partially transformed value
    - Reject, report, or log violations according to the config

    Invariants
    - Rules run in the caller's order; validation sees earlier transforms
    - Non-string leaves and None are returned unchanged
    - Key order of mappings and element order of sequences are preserved
    """

    def __init__(
        self,
        config: Optional["SanitizationConfig"] = None,
        *,
        registry: Optional[RuleRegistry] = None,
        html_cleaner: Optional[HtmlCleaner] = None,
    ):
        if config is None:
            # Lazy import: sanorm.config imports this package.
            from sanorm.config import SanitizationConfig

            config = SanitizationConfig()

        self._config = config
        self._registry = registry if registry is not None else RuleRegistry()
        self._html_cleaner = html_cleaner or strip_all_markup

        for rule in config.custom_rules:
            self._registry.register(rule)

    @property
    def config(self) -> "SanitizationConfig":
        return self._config

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    def sanitize(self, value: Any, rules: Optional[Sequence[str]] = None) -> SanitizationResult:
        """Sanitize value with the given rule names (config.rules by default).

        Raises
        - SanitizationViolation: strict_mode and reject_on_violation, with violations
        - InternalError: a rule function raised
        """

        names = list(self._config.rules if rules is None else rules)
        compiled = self._registry.resolve(names)

        violations: List[SecurityViolation] = []
        applied: List[str] = []
        sanitized = self._sanitize_value(value, compiled, "", violations, applied)

        if violations and self._config.strict_mode and self._config.reject_on_violation:
            types = ", ".join(v.type.value for v in violations)
            raise SanitizationViolation(
                f"Sanitization violations detected: {types}", violations=violations
            )

        if violations and self._config.log_violations:
            log.warning(
                "sanitization_violations",
                extra={
                    "violation_count": len(violations),
                    "violations": [
                        {"field": v.field, "type": v.type.value, "rule": v.rule, "severity": v.severity.value}
                        for v in violations
                    ],
                },
            )

        return SanitizationResult(
            sanitized=sanitized,
            violations=[v.describe() for v in violations],
            applied_rules=applied,
        )

    def _sanitize_value(
        self,
        value: Any,
        rules: List[Rule],
        path: str,
        violations: List[SecurityViolation],
        applied: List[str],
    ) -> Any:
        if value is None:
            return None

        if isinstance(value, str):
            return self._sanitize_string(value, rules, path, violations, applied)

        if isinstance(value, (list, tuple)):
            return [
                self._sanitize_value(item, rules, f"{path}[{i}]", violations, applied)
                for i, item in enumerate(value)
            ]

        if isinstance(value, Mapping):
            out = {}
            for key, item in value.items():
                child = f"{path}.{key}" if path else str(key)
                out[key] = self._sanitize_value(item, rules, child, violations, applied)
            return out

        return value

    def _sanitize_string(
        self,
        value: str,
        rules: List[Rule],
        path: str,
        violations: List[SecurityViolation],
        applied: List[str],
    ) -> str:
        current = value
        for rule in rules:
            before = current
            try:
                if rule.validate is not None and not rule.validate(current):
                    vtype = get_violation_type(rule.name)
                    violations.append(
                        SecurityViolation(
                            type=vtype,
                            field=path,
                            original_value=before,
                            sanitized_value=current,
                            rule=rule.name,
                            severity=get_violation_severity(vtype),
                        )
                    )

                if rule.transform is not None:
                    current = rule.transform(current)
                    if current != before:
                        applied.append(rule.name)

                if rule.name == "html" and "<" in current:
                    current = self._html_cleaner(current)
            except SanitizationError:
                raise
            except Exception as e:
                raise InternalError(
                    f"Rule '{rule.name}' failed on field '{path}': {e.__class__.__name__}",
                    rule=rule.name,
                    field=path,
                ) from e
        return current

    def add_custom_rule(self, rule: Rule) -> None:
        self._registry.register(rule)

    def remove_rule(self, name: str) -> None:
        self._registry.unregister(name)

    def get_rules(self) -> List[Rule]:
        return self._registry.list_all()

    def validate_config(self, config: Optional["SanitizationConfig"] = None) -> bool:
        """Check that every rule named by config (default: own) is registered.

        Raises
        - ConfigError listing unknown names.
        """

        cfg = config if config is not None else self._config
        return self._registry.validate_names(cfg.rules)
