"""Property-based tests for service listing pagination math."""

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from services.work_orders_service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    count_pages,
    normalize_pagination,
)

pytestmark = pytest.mark.unit


class TestNormalizePagination:
    def test_defaults(self):
        assert normalize_pagination(None, None) == (1, DEFAULT_PAGE_SIZE)

    def test_limit_is_clamped_to_maximum(self):
        assert normalize_pagination(1, 500) == (1, MAX_PAGE_SIZE)

    @pytest.mark.parametrize("page", [0, -3])
    def test_page_floors_at_one(self, page: int):
        assert normalize_pagination(page, 10)[0] == 1

    @pytest.mark.parametrize("limit", [0, -1])
    def test_limit_floors_at_one(self, limit: int):
        assert normalize_pagination(1, limit)[1] == 1

    @given(
        page=st.integers(min_value=-1000, max_value=1000),
        limit=st.integers(min_value=-1000, max_value=1000),
    )
    def test_result_is_always_in_range(self, page: int, limit: int):
        norm_page, norm_limit = normalize_pagination(page, limit)
        assert norm_page >= 1
        assert 1 <= norm_limit <= MAX_PAGE_SIZE


class TestCountPages:
    def test_twenty_five_services_ten_per_page(self):
        assert count_pages(25, 10) == 3

    def test_empty_listing_still_has_one_page(self):
        assert count_pages(0, 10) == 1

    @given(
        total=st.integers(min_value=0, max_value=100_000),
        limit=st.integers(min_value=1, max_value=MAX_PAGE_SIZE),
    )
    def test_pages_cover_total_exactly(self, total: int, limit: int):
        pages = count_pages(total, limit)
        assert pages == max(math.ceil(total / limit), 1)
        assert (pages - 1) * limit < max(total, 1) <= pages * limit
