from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Union

from .models import PaginationMeta

MAX_LIMIT = 100
DEFAULT_LIMIT = 10

PaginationInput = Union[PaginationMeta, Mapping[str, Any]]


def _as_meta(pagination: PaginationInput) -> PaginationMeta:
    if isinstance(pagination, PaginationMeta):
        return pagination
    if isinstance(pagination, Mapping):
        return PaginationMeta.from_mapping(pagination)
    raise TypeError("pagination must be a PaginationMeta or a mapping")


def normalize_pagination(pagination: PaginationInput, *, include_links: bool = False) -> PaginationMeta:
    """Clamp pagination into a consistent shape.

    Invariants on the result
    - page >= 1, 1 <= limit <= 100, total >= 0
    - total_pages = max(1, ceil(total / limit))
    - has_next = page < total_pages, has_prev = page > 1

    Links are carried only when include_links is set.

    Time:  O(1)
    Space: O(1)
    """

    raw = _as_meta(pagination)
    page = max(1, raw.page)
    limit = max(1, min(MAX_LIMIT, raw.limit))
    total = max(0, raw.total)
    total_pages = max(1, math.ceil(total / limit))

    return PaginationMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
        links=raw.links if include_links else None,
    )


def extract_pagination(value: Any) -> Optional[PaginationMeta]:
    """Detect pagination facts in a handler result.

    - value["pagination"] when present
    - otherwise top-level page/limit/total keys
    - otherwise None
    """

    if not isinstance(value, Mapping):
        return None

    explicit = value.get("pagination")
    if isinstance(explicit, (Mapping, PaginationMeta)):
        return _as_meta(explicit)

    if not any(k in value for k in ("page", "limit", "total")):
        return None

    limit = int(value.get("limit") or DEFAULT_LIMIT)
    total = int(value.get("total") or 0)
    return PaginationMeta(
        page=int(value.get("page") or 1),
        limit=limit,
        total=total,
        total_pages=int(value.get("totalPages") or math.ceil(total / limit)),
        has_next=bool(value.get("hasNext") or False),
        has_prev=bool(value.get("hasPrev") or False),
    )


def unwrap_paginated(value: Any) -> Any:
    """Return the item payload of a paginated result (data, then items).

    An empty page is still a page: [] and {} are returned as the payload.
    """

    if isinstance(value, Mapping):
        for key in ("data", "items"):
            inner = value.get(key)
            if inner is not None:
                return inner
    return value
