"""
Feedback Rules

Pure functions shared by the propagator and the HTTP layer:
    - normalize_lookup: canonical (order number, phone) key
    - check_eligibility / is_eligible: may this order take feedback
    - validate_feedback_input: rating/comment/visibility checks
"""

import logging
import re
from typing import Any

from tableserve.models import OrderStatus, OrderType
from tableserve.services.feedback.base import LookupKey, OrderRecord
from tableserve.services.feedback.errors import IneligibleOrderError, InvalidFeedbackError

logger = logging.getLogger(__name__)

NON_DIGITS = re.compile(r"\D")

MIN_RATING = 1
MAX_RATING = 5

ZONE_ORDER_TYPES = (OrderType.ZONE_MAIN.value, OrderType.ZONE_SHOP.value)


def normalize_phone(phone: str) -> str:
    """Strip every character outside 0-9."""
    return NON_DIGITS.sub("", phone)


def normalize_lookup(order_number: str, phone: str) -> LookupKey:
    """
    Build the canonical lookup key for a customer-supplied order reference.

    The order number is uppercased and otherwise left alone; the phone is
    reduced to its digits, so ``"(782) 648-2736"`` and ``"7826482736"``
    address the same order.
    """
    return LookupKey(order_number=order_number.upper(), phone_digits=normalize_phone(phone))


def check_eligibility(order: OrderRecord) -> None:
    """
    Raise IneligibleOrderError unless ``order`` may receive feedback.

    Zone orders take feedback in any status; single orders only once
    completed. Any other type is a data problem and is rejected.
    """
    order_type = plain_value(order.order_type)

    if order_type in ZONE_ORDER_TYPES:
        return

    if order_type == OrderType.SINGLE.value:
        if plain_value(order.status) != OrderStatus.COMPLETED.value:
            raise IneligibleOrderError(
                IneligibleOrderError.NOT_COMPLETED,
                f"Order {order.order_number} is not completed yet",
            )
        return

    logger.error(
        f"Order {order.order_number} has unknown order type {order_type!r}; "
        f"rejecting feedback"
    )
    raise IneligibleOrderError(
        IneligibleOrderError.WRONG_TYPE,
        f"Order {order.order_number} has an unsupported order type",
    )


def is_eligible(order: OrderRecord) -> bool:
    """Boolean form of check_eligibility."""
    try:
        check_eligibility(order)
    except IneligibleOrderError:
        return False
    return True


def validate_feedback_input(
    order_number: Any,
    phone: Any,
    rating: Any,
    comment: Any,
    is_public: Any,
    max_comment_length: int = 1000,
) -> None:
    """
    Reject malformed submissions before any lookup happens.

    Raises:
        InvalidFeedbackError: Describing the first problem found
    """
    if not isinstance(order_number, str) or not order_number:
        raise InvalidFeedbackError("Order number is required")
    if not isinstance(phone, str) or not normalize_phone(phone):
        raise InvalidFeedbackError("Customer phone is required")

    # bool is an int subclass; True is not a rating
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidFeedbackError("Rating must be an integer")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidFeedbackError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

    if not isinstance(comment, str):
        raise InvalidFeedbackError("Comment must be a string")
    if len(comment) > max_comment_length:
        raise InvalidFeedbackError(
            f"Feedback comment cannot exceed {max_comment_length} characters"
        )

    if not isinstance(is_public, bool):
        raise InvalidFeedbackError("is_public must be a boolean")


def plain_value(v: Any) -> Any:
    """Plain value of an enum member, or the value itself."""
    return getattr(v, "value", v)
