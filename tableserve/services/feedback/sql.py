"""
SQLAlchemy Order Store Implementation

Reads and writes orders through an AsyncSession. One session per request
(FastAPI dependency) or per Celery task run. Every feedback write is a
single conditional UPDATE (only where no rating is stored yet) committed
on its own, so each order's write is atomic and independent of the other
orders touched by the same fan-out.

Error Handling:
    SQLAlchemy errors are rolled back and re-raised as PersistenceError
    with the original exception chained.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tableserve.models import Order
from tableserve.services.feedback.base import (
    BaseOrderStore,
    FeedbackListing,
    FeedbackQuery,
    FeedbackRecord,
    FeedbackScope,
    OrderRecord,
)
from tableserve.services.feedback.errors import PersistenceError
from tableserve.services.feedback.rules import plain_value

logger = logging.getLogger(__name__)


class SqlAlchemyOrderStore(BaseOrderStore):
    """
    Order store backed by the ``orders`` table.

    Attributes:
        session: Async session used for every statement
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def provider_name(self) -> str:
        return "sqlalchemy"

    async def find_order_by_normalized_key(
        self,
        order_number: str,
        phone_digits: str,
    ) -> Optional[OrderRecord]:
        query = (
            select(Order)
            .where(
                func.upper(Order.order_number) == order_number,
                Order.customer_phone_digits == phone_digits,
            )
            .limit(1)
        )
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Order lookup failed: {e}") from e

        row = result.scalars().first()
        return to_record(row) if row else None

    async def find_order_by_id(self, order_id: Any) -> Optional[OrderRecord]:
        pk = _primary_key(order_id)
        if pk is None:
            return None
        row = await self._get(pk)
        return to_record(row) if row else None

    async def save_feedback_if_unrated(self, order: OrderRecord) -> tuple[bool, OrderRecord]:
        pk = _primary_key(order.id)
        if pk is None:
            raise PersistenceError(f"Order {order.id} does not exist")

        feedback = order.feedback
        statement = (
            update(Order)
            .where(Order.id == pk, Order.feedback_rating.is_(None))
            .values(
                feedback_rating=feedback.rating,
                feedback_comment=feedback.comment,
                feedback_submitted_at=feedback.submitted_at,
                feedback_is_public=feedback.is_public,
            )
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.session.execute(statement)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to save feedback for order {order.order_number}: {e}")
            raise PersistenceError(f"Failed to save order {order.id}: {e}") from e

        written = result.rowcount == 1

        # Reload: the identity map may hold the row as it was before the update
        row = await self._get(pk, refresh=True)
        if row is None:
            raise PersistenceError(f"Order {order.id} does not exist")

        if written:
            logger.debug(f"Saved feedback for order {row.order_number}")
        else:
            logger.info(f"Order {row.order_number} was already rated, write skipped")
        return written, to_record(row)

    async def list_feedback(
        self,
        scope: FeedbackScope,
        scope_id: str,
        query: FeedbackQuery,
    ) -> FeedbackListing:
        conditions = [Order.feedback_rating.is_not(None)]

        if scope == FeedbackScope.RESTAURANT:
            conditions.append(or_(Order.restaurant_id == scope_id, Order.shop_id == scope_id))
        else:
            conditions.append(Order.zone_id == scope_id)
            if query.shop_id is not None:
                conditions.append(Order.shop_id == query.shop_id)

        if query.rating is not None:
            conditions.append(Order.feedback_rating == query.rating)
        if query.date_from is not None:
            conditions.append(Order.feedback_submitted_at >= query.date_from)
        if query.date_to is not None:
            conditions.append(Order.feedback_submitted_at <= query.date_to)

        page_query = (
            select(Order)
            .where(*conditions)
            .order_by(Order.feedback_submitted_at.desc(), Order.id.desc())
            .offset(query.offset)
            .limit(query.limit)
        )
        totals_query = select(func.count(Order.id), func.avg(Order.feedback_rating)).where(*conditions)
        types_query = (
            select(Order.order_type, func.count(Order.id))
            .where(*conditions)
            .group_by(Order.order_type)
        )

        try:
            total, average = (await self.session.execute(totals_query)).one()
            types = (await self.session.execute(types_query)).all()
            rows = (await self.session.execute(page_query)).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Feedback listing failed: {e}") from e

        return FeedbackListing(
            records=[to_record(row) for row in rows],
            total=total or 0,
            average_rating=float(average) if average is not None else None,
            counts_by_type={plain_value(t): count for t, count in types},
        )

    async def health_check(self) -> bool:
        try:
            await self.session.execute(select(func.now()))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Order store health check failed: {e}")
            return False

    async def _get(self, pk: int, refresh: bool = False) -> Optional[Order]:
        try:
            return await self.session.get(Order, pk, populate_existing=refresh)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Order {pk} could not be loaded: {e}") from e


def to_record(row: Order) -> OrderRecord:
    """Convert an ORM row to an OrderRecord."""
    feedback = None
    if row.feedback_rating is not None:
        feedback = FeedbackRecord(
            rating=row.feedback_rating,
            comment=row.feedback_comment or "",
            submitted_at=_aware(row.feedback_submitted_at),
            is_public=bool(row.feedback_is_public),
        )

    return OrderRecord(
        id=row.id,
        order_number=row.order_number,
        order_type=plain_value(row.order_type),
        status=plain_value(row.status),
        customer_phone=row.customer_phone,
        customer_name=row.customer_name,
        feedback=feedback,
        child_order_ids=list(row.child_order_ids or []),
        restaurant_id=row.restaurant_id,
        zone_id=row.zone_id,
        shop_id=row.shop_id,
        shop_name=row.shop_name,
        parent_order_id=row.parent_order_id,
        created_at=row.created_at,
    )


def _primary_key(order_id: Any) -> Optional[int]:
    try:
        return int(order_id)
    except (TypeError, ValueError):
        return None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; stored values are UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
