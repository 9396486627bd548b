from dataclasses import dataclass
from datetime import UTC, datetime

from sanorm.core.sanitization import SanitizationResult, Severity, ViolationType
from sanorm.core.sanitization.models import SecurityViolation
from sanorm.utils.json_safe import to_jsonable


@dataclass
class _Point:
    x: int
    tags: tuple


def test_enums_and_datetimes():
    assert to_jsonable(ViolationType.XSS) == "XSS"
    assert to_jsonable(Severity.CRITICAL) == "critical"
    assert to_jsonable(datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)) == "2024-01-02T03:04:05+00:00"


def test_objects_with_to_dict():
    violation = SecurityViolation(
        type=ViolationType.HTML_INJECTION,
        field="a",
        original_value="<b>x</b>",
        sanitized_value="<b>x</b>",
        rule="html",
        severity=Severity.MEDIUM,
    )
    assert to_jsonable(violation) == {
        "type": "HTML_INJECTION",
        "field": "a",
        "originalValue": "<b>x</b>",
        "sanitizedValue": "<b>x</b>",
        "rule": "html",
        "severity": "medium",
    }
    assert to_jsonable(SanitizationResult(sanitized=1))["appliedRules"] == []


def test_dataclasses_mappings_and_exceptions():
    assert to_jsonable(_Point(x=1, tags=("a",))) == {"x": 1, "tags": ["a"]}
    assert to_jsonable({1: {ValueError("bad")}}) == {"1": ["bad"]}
    assert to_jsonable(object).startswith("<class")
