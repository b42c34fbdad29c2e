# tests/test_reports.py

from datetime import timedelta

import pytest

from tableserve.services.feedback import FeedbackQuery, InMemoryOrderStore
from tableserve.services.feedback.reports import (
    get_restaurant_feedback,
    get_zone_feedback,
    review_source,
    review_type,
)
from tests.conftest import FIXED_NOW, make_order, rated


@pytest.fixture
def feedback_store() -> InMemoryOrderStore:
    return InMemoryOrderStore([
        make_order(1, restaurant_id="rest-1", feedback=rated(5, "Loved it", minutes_ago=30)),
        make_order(2, restaurant_id="rest-1", feedback=rated(4, minutes_ago=10)),
        make_order(3, restaurant_id="rest-1"),
        make_order(4, order_type="zone_shop", zone_id="zone-1", shop_id="rest-1",
                   shop_name="Pizza Palace", parent_order_id=5, feedback=rated(4, minutes_ago=20)),
        make_order(5, order_type="zone_main", zone_id="zone-1", feedback=rated(2, minutes_ago=5)),
        make_order(6, order_type="zone_shop", zone_id="zone-1", shop_id="shop-9",
                   feedback=rated(3, minutes_ago=1)),
    ])


class TestLabels:
    """Test cases for review labels"""

    @pytest.mark.parametrize("order_type, expected", [
        ("single", "Direct Restaurant Order"),
        ("zone_shop", "Zone Shop Order"),
        ("zone_main", "Zone Main Order"),
        ("catering", "Other"),
    ])
    def test_review_source(self, order_type, expected):
        assert review_source(order_type) == expected

    @pytest.mark.parametrize("order_type, expected", [
        ("zone_main", "Zone Review"),
        ("zone_shop", "Shop Review"),
        ("single", "Order Review"),
    ])
    def test_review_type(self, order_type, expected):
        assert review_type(order_type) == expected


class TestRestaurantFeedback:
    """Test cases for restaurant feedback listings"""

    @pytest.mark.asyncio
    async def test_listing_and_summary(self, feedback_store):
        data = await get_restaurant_feedback(feedback_store, "rest-1", FeedbackQuery())

        assert [item["order_number"] for item in data["feedback"]] == ["ORD2", "ORD4", "ORD1"]
        assert data["feedback"][2]["comment"] == "Loved it"
        assert data["feedback"][1]["review_source"] == "Zone Shop Order"
        assert data["summary"] == {
            "total_reviews": 3,
            "average_rating": 4.3,
            "review_sources": {"Direct Restaurant Order": 2, "Zone Shop Order": 1},
        }

    @pytest.mark.asyncio
    async def test_summary_covers_all_pages(self, feedback_store):
        data = await get_restaurant_feedback(feedback_store, "rest-1", FeedbackQuery(page=2, limit=2))

        assert [item["order_number"] for item in data["feedback"]] == ["ORD1"]
        assert data["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
        assert data["summary"]["total_reviews"] == 3
        assert data["summary"]["average_rating"] == 4.3

    @pytest.mark.asyncio
    async def test_rating_and_date_filters(self, feedback_store):
        by_rating = await get_restaurant_feedback(feedback_store, "rest-1", FeedbackQuery(rating=4))
        by_date = await get_restaurant_feedback(
            feedback_store, "rest-1", FeedbackQuery(date_to=FIXED_NOW - timedelta(minutes=15))
        )

        assert {item["order_number"] for item in by_rating["feedback"]} == {"ORD2", "ORD4"}
        assert [item["order_number"] for item in by_date["feedback"]] == ["ORD4", "ORD1"]

    @pytest.mark.asyncio
    async def test_empty(self, feedback_store):
        data = await get_restaurant_feedback(feedback_store, "rest-404", FeedbackQuery())

        assert data["feedback"] == []
        assert data["pagination"]["pages"] == 0
        assert data["summary"]["average_rating"] == 0.0


class TestZoneFeedback:
    """Test cases for zone feedback listings"""

    @pytest.mark.asyncio
    async def test_listing_and_breakdown(self, feedback_store):
        data = await get_zone_feedback(feedback_store, "zone-1", FeedbackQuery())

        items = data["feedback"]
        assert [item["order_number"] for item in items] == ["ORD6", "ORD5", "ORD4"]
        assert [item["review_type"] for item in items] == ["Shop Review", "Zone Review", "Shop Review"]
        assert items[1]["shop_name"] == "Zone Order"
        assert items[2]["shop_name"] == "Pizza Palace"
        assert items[2]["parent_order_id"] == 5
        assert data["summary"]["review_breakdown"] == {"Shop Review": 2, "Zone Review": 1}
        assert data["summary"]["average_rating"] == 3.0

    @pytest.mark.asyncio
    async def test_shop_filter(self, feedback_store):
        data = await get_zone_feedback(feedback_store, "zone-1", FeedbackQuery(shop_id="shop-9"))

        assert [item["order_number"] for item in data["feedback"]] == ["ORD6"]
