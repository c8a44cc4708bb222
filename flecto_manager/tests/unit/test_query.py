from __future__ import annotations

from sqlalchemy import select

from flecto_manager.domain.models import Redirect
from flecto_manager.persistence.query import (
    REDIRECT_SORT_COLUMNS,
    SORT_ASC,
    SORT_DESC,
    PageResult,
    PaginationInput,
    SortInput,
    apply_sort,
    parse_sort_param,
)


def test_parse_sort_param() -> None:
    assert parse_sort_param(None) == []
    assert parse_sort_param("source, -updatedAt,,") == [
        SortInput("source", SORT_ASC),
        SortInput("updatedAt", SORT_DESC),
    ]


def test_apply_sort_skips_unknown_keys() -> None:
    stmt = apply_sort(
        select(Redirect),
        REDIRECT_SORT_COLUMNS,
        [SortInput("password", SORT_DESC), SortInput("source", "desc")],
    )
    order_by = str(stmt).split("ORDER BY", 1)[1]
    assert "source DESC" in order_by
    assert "password" not in order_by


def test_apply_sort_without_known_keys_leaves_statement_unordered() -> None:
    stmt = apply_sort(select(Redirect), REDIRECT_SORT_COLUMNS, [SortInput("nope")])
    assert "ORDER BY" not in str(stmt)


def test_pagination_defaults() -> None:
    assert PaginationInput().resolved_limit(default=20) == 20
    assert PaginationInput(limit=0, offset=-5).resolved_limit(default=500) == 500
    assert PaginationInput(limit=0, offset=-5).resolved_offset() == 0
    assert PaginationInput(limit=5, offset=10).resolved_limit(default=20) == 5
    assert PaginationInput(limit=5, offset=10).resolved_offset() == 10


def test_page_result_has_more() -> None:
    assert PageResult(items=[1, 2], total=5, limit=2, offset=0).has_more
    assert not PageResult(items=[5], total=5, limit=2, offset=4).has_more
