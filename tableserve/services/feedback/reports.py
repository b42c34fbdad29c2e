"""
Feedback Retrieval

Restaurant and zone feedback listings for the owner dashboards: rated
orders newest first, labelled by where the review came from, with a
summary over every match.
"""

import logging
from typing import Any, Optional

from tableserve.models import OrderType
from tableserve.services.feedback.base import (
    BaseOrderStore,
    FeedbackListing,
    FeedbackQuery,
    FeedbackScope,
    OrderRecord,
)
from tableserve.services.feedback.rules import plain_value

logger = logging.getLogger(__name__)

REVIEW_SOURCES = {
    OrderType.SINGLE.value: "Direct Restaurant Order",
    OrderType.ZONE_SHOP.value: "Zone Shop Order",
    OrderType.ZONE_MAIN.value: "Zone Main Order",
}
DEFAULT_REVIEW_SOURCE = "Other"

REVIEW_TYPES = {
    OrderType.ZONE_MAIN.value: "Zone Review",
    OrderType.ZONE_SHOP.value: "Shop Review",
}
DEFAULT_REVIEW_TYPE = "Order Review"

DEFAULT_SHOP_NAME = "Zone Order"


def review_source(order_type: Any) -> str:
    return REVIEW_SOURCES.get(plain_value(order_type), DEFAULT_REVIEW_SOURCE)


def review_type(order_type: Any) -> str:
    return REVIEW_TYPES.get(plain_value(order_type), DEFAULT_REVIEW_TYPE)


def round_rating(average: Optional[float]) -> float:
    """One decimal place; 0 when there is nothing to average."""
    return round(average, 1) if average is not None else 0.0


async def get_restaurant_feedback(
    store: BaseOrderStore,
    restaurant_id: str,
    query: FeedbackQuery,
) -> dict[str, Any]:
    """
    Feedback left on a restaurant's own orders and on its zone shop orders.

    Returns:
        dict with ``feedback``, ``pagination`` and ``summary`` keys; the
        summary breaks reviews down by ``review_source``.
    """
    listing = await store.list_feedback(FeedbackScope.RESTAURANT, restaurant_id, query)

    feedback = []
    for order in listing.records:
        item = _base_item(order)
        item["review_source"] = review_source(order.order_type)
        feedback.append(item)

    logger.info(
        f"Restaurant {restaurant_id} feedback retrieved: "
        f"{listing.total} total, {len(feedback)} on page {query.page}"
    )

    return {
        "feedback": feedback,
        "pagination": _pagination(listing, query),
        "summary": {
            "total_reviews": listing.total,
            "average_rating": round_rating(listing.average_rating),
            "review_sources": _breakdown(listing, review_source),
        },
    }


async def get_zone_feedback(
    store: BaseOrderStore,
    zone_id: str,
    query: FeedbackQuery,
) -> dict[str, Any]:
    """
    Feedback left on a zone's main orders and its shop orders.

    ``query.shop_id`` narrows the listing to one shop. The summary breaks
    reviews down by ``review_type``.
    """
    listing = await store.list_feedback(FeedbackScope.ZONE, zone_id, query)

    feedback = []
    for order in listing.records:
        item = _base_item(order)
        item["review_type"] = review_type(order.order_type)
        item["shop_name"] = order.shop_name or DEFAULT_SHOP_NAME
        item["parent_order_id"] = order.parent_order_id
        feedback.append(item)

    logger.info(
        f"Zone {zone_id} feedback retrieved: "
        f"{listing.total} total, {len(feedback)} on page {query.page}"
    )

    return {
        "feedback": feedback,
        "pagination": _pagination(listing, query),
        "summary": {
            "total_reviews": listing.total,
            "average_rating": round_rating(listing.average_rating),
            "review_breakdown": _breakdown(listing, review_type),
        },
    }


def _base_item(order: OrderRecord) -> dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "order_type": plain_value(order.order_type),
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "shop_id": order.shop_id,
        "rating": order.feedback.rating,
        "comment": order.feedback.comment,
        "submitted_at": order.feedback.submitted_at,
        "is_public": order.feedback.is_public,
        "order_date": order.created_at,
    }


def _pagination(listing: FeedbackListing, query: FeedbackQuery) -> dict[str, int]:
    return {
        "page": query.page,
        "limit": query.limit,
        "total": listing.total,
        "pages": -(-listing.total // query.limit),
    }


def _breakdown(listing: FeedbackListing, label) -> dict[str, int]:
    breakdown: dict[str, int] = {}
    for order_type, count in listing.counts_by_type.items():
        name = label(order_type)
        breakdown[name] = breakdown.get(name, 0) + count
    return breakdown
