import pytest

from sanorm.core.normalization import (
    PaginationMeta,
    extract_pagination,
    normalize_pagination,
    unwrap_paginated,
)


def test_out_of_range_values_are_clamped():
    meta = normalize_pagination({"page": 0, "limit": 500, "total": 23})
    assert meta.to_dict() == {
        "page": 1,
        "limit": 100,
        "total": 23,
        "totalPages": 1,
        "hasNext": False,
        "hasPrev": False,
    }


@pytest.mark.parametrize(
    "page,limit,total,expected_pages,has_next,has_prev",
    [
        (1, 10, 0, 1, False, False),
        (1, 10, 25, 3, True, False),
        (3, 10, 25, 3, False, True),
        (2, 0, 5, 5, True, True),
        (-4, -1, -9, 1, False, False),
    ],
)
def test_normalized_pagination_is_consistent(page, limit, total, expected_pages, has_next, has_prev):
    meta = normalize_pagination(PaginationMeta(page=page, limit=limit, total=total))

    assert meta.page >= 1
    assert 1 <= meta.limit <= 100
    assert meta.total >= 0
    assert meta.total_pages == expected_pages
    assert meta.has_next is has_next
    assert meta.has_prev is has_prev


def test_caller_supplied_derived_fields_are_recomputed():
    meta = normalize_pagination(
        {"page": 1, "limit": 10, "total": 50, "totalPages": 99, "hasNext": False, "hasPrev": True}
    )
    assert meta.total_pages == 5
    assert meta.has_next is True
    assert meta.has_prev is False


def test_normalize_pagination_rejects_other_types():
    with pytest.raises(TypeError):
        normalize_pagination([1, 10, 3])  # type: ignore[arg-type]


def test_extract_explicit_pagination_key():
    meta = extract_pagination({"data": [1], "pagination": {"page": 2, "limit": 5, "total": 9}})
    assert (meta.page, meta.limit, meta.total) == (2, 5, 9)


def test_extract_top_level_keys_with_defaults():
    meta = extract_pagination({"items": [1, 2, 3], "total": 3})
    assert meta.page == 1
    assert meta.limit == 10
    assert meta.total == 3
    assert meta.total_pages == 1


def test_extract_returns_none_without_pagination_facts():
    assert extract_pagination({"id": 1}) is None
    assert extract_pagination([1, 2]) is None
    assert extract_pagination(None) is None


def test_unwrap_prefers_data_then_items():
    assert unwrap_paginated({"data": [1], "items": [2]}) == [1]
    assert unwrap_paginated({"items": [2]}) == [2]
    value = {"page": 1}
    assert unwrap_paginated(value) is value


def test_unwrap_keeps_empty_pages():
    assert unwrap_paginated({"data": [], "items": [1]}) == []
    assert unwrap_paginated({"items": [], "page": 5}) == []
    assert unwrap_paginated({"data": {}, "page": 1}) == {}
    assert unwrap_paginated({"data": None, "items": [3]}) == [3]
