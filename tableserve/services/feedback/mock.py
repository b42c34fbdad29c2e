"""
In-Memory Order Store Implementation

Keeps orders in a dict instead of a database. Used by:
    - The manual smoke script (scripts/smoke_feedback.py)
    - Unit tests of the propagator and the HTTP layer
    - Local experiments without PostgreSQL

Behavior:
    - Returns copies, so callers cannot mutate stored orders by accident
    - save_feedback_if_unrated only writes the feedback field, and never
      over an existing rating
    - Orders listed in ``fail_on_save`` raise PersistenceError on save,
      simulating a storage outage for that record
"""

import logging
from dataclasses import replace
from typing import Any, Iterable, Optional

from tableserve.services.feedback.base import (
    BaseOrderStore,
    FeedbackListing,
    FeedbackQuery,
    FeedbackScope,
    OrderRecord,
)
from tableserve.services.feedback.errors import PersistenceError
from tableserve.services.feedback.rules import normalize_phone, plain_value

logger = logging.getLogger(__name__)


class InMemoryOrderStore(BaseOrderStore):
    """
    Dict-backed order store.

    Attributes:
        saves: Number of feedback writes that were applied
        fail_on_save: Order ids whose save raises PersistenceError

    Example:
        >>> store = InMemoryOrderStore([order])
        >>> await store.find_order_by_id(order.id)
    """

    def __init__(
        self,
        orders: Iterable[OrderRecord] = (),
        fail_on_save: Iterable[Any] = (),
    ):
        self._orders: dict[Any, OrderRecord] = {}
        self.saves = 0
        self.fail_on_save = set(fail_on_save)
        for order in orders:
            self.add(order)

    @property
    def provider_name(self) -> str:
        return "memory"

    def add(self, order: OrderRecord) -> None:
        """Insert or replace an order."""
        self._orders[order.id] = _copy(order)

    def get(self, order_id: Any) -> Optional[OrderRecord]:
        """Synchronous read for scripts and assertions."""
        order = self._orders.get(order_id)
        return _copy(order) if order else None

    async def find_order_by_normalized_key(
        self,
        order_number: str,
        phone_digits: str,
    ) -> Optional[OrderRecord]:
        for order in self._orders.values():
            if (
                order.order_number.upper() == order_number
                and normalize_phone(order.customer_phone) == phone_digits
            ):
                return _copy(order)
        return None

    async def find_order_by_id(self, order_id: Any) -> Optional[OrderRecord]:
        return self.get(order_id)

    async def save_feedback_if_unrated(self, order: OrderRecord) -> tuple[bool, OrderRecord]:
        if order.id in self.fail_on_save:
            raise PersistenceError(f"Simulated write failure for order {order.id}")

        stored = self._orders.get(order.id)
        if stored is None:
            raise PersistenceError(f"Order {order.id} does not exist")

        if stored.has_rating:
            logger.debug(f"Order {stored.order_number} already rated, write skipped")
            return False, _copy(stored)

        stored.feedback = order.feedback
        self.saves += 1
        logger.debug(f"Saved feedback for order {stored.order_number}")
        return True, _copy(stored)

    async def list_feedback(
        self,
        scope: FeedbackScope,
        scope_id: str,
        query: FeedbackQuery,
    ) -> FeedbackListing:
        matches = [
            order for order in self._orders.values()
            if order.has_rating
            and _in_scope(order, scope, scope_id, query)
            and _matches(order, query)
        ]
        matches.sort(key=lambda o: o.feedback.submitted_at, reverse=True)

        counts: dict[str, int] = {}
        for order in matches:
            order_type = plain_value(order.order_type)
            counts[order_type] = counts.get(order_type, 0) + 1

        average = (
            sum(o.feedback.rating for o in matches) / len(matches) if matches else None
        )
        page = matches[query.offset:query.offset + query.limit]

        return FeedbackListing(
            records=[_copy(o) for o in page],
            total=len(matches),
            average_rating=average,
            counts_by_type=counts,
        )

    async def health_check(self) -> bool:
        return True


def _copy(order: OrderRecord) -> OrderRecord:
    return replace(order, child_order_ids=list(order.child_order_ids))


def _in_scope(order: OrderRecord, scope: FeedbackScope, scope_id: str, query: FeedbackQuery) -> bool:
    if scope == FeedbackScope.RESTAURANT:
        return scope_id in (order.restaurant_id, order.shop_id)
    if order.zone_id != scope_id:
        return False
    return query.shop_id is None or order.shop_id == query.shop_id


def _matches(order: OrderRecord, query: FeedbackQuery) -> bool:
    feedback = order.feedback
    if query.rating is not None and feedback.rating != query.rating:
        return False
    if query.date_from is not None and feedback.submitted_at < query.date_from:
        return False
    if query.date_to is not None and feedback.submitted_at > query.date_to:
        return False
    return True
