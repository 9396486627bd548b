from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping


def to_jsonable(obj: Any) -> Any:
    """
    Convert sanitization/normalization objects to JSON-serializable values.

    - objects with to_dict() (results, violations, pagination) use it
    - enums serialize by value, datetimes as ISO 8601
    - exceptions become their message (never their traceback)
    - anything else unknown falls back to str()

    Does NOT execute or import anything dynamically.
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, Enum):
        return to_jsonable(obj.value)

    if isinstance(obj, (datetime, date)):
        return obj.isoformat()

    if isinstance(obj, BaseException):
        return str(obj)

    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_jsonable(to_dict())

    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))

    if isinstance(obj, Mapping):
        return {str(k): to_jsonable(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_jsonable(x) for x in obj]

    return str(obj)
