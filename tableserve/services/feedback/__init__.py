"""
Feedback Service Factory

Provides the entry points for feedback submission and retrieval.
The rest of the application only sees BaseOrderStore, so the same
propagator runs against the database or an in-memory store.

Usage:
    from tableserve.services.feedback import get_order_store, FeedbackPropagator

    store = get_order_store(session)
    result = await FeedbackPropagator(store).submit_feedback(
        "ZN16FGV", "782-648-2736", rating=5, comment="Great!", is_public=True
    )

Store Selection:
    - Request handlers and Celery tasks → SqlAlchemyOrderStore
    - Smoke script and tests → InMemoryOrderStore
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tableserve.services.feedback.base import (
    BaseOrderStore,
    ChildOutcome,
    ChildResult,
    FeedbackListing,
    FeedbackQuery,
    FeedbackRecord,
    FeedbackResult,
    FeedbackScope,
    LookupKey,
    OrderRecord,
    TargetOutcome,
)
from tableserve.services.feedback.errors import (
    FeedbackError,
    IneligibleOrderError,
    InvalidFeedbackError,
    OrderNotFoundError,
    PersistenceError,
)
from tableserve.services.feedback.mock import InMemoryOrderStore
from tableserve.services.feedback.propagator import FeedbackPropagator
from tableserve.services.feedback.rules import (
    check_eligibility,
    is_eligible,
    normalize_lookup,
    validate_feedback_input,
)
from tableserve.services.feedback.sql import SqlAlchemyOrderStore

logger = logging.getLogger(__name__)


def get_order_store(session: AsyncSession) -> BaseOrderStore:
    """
    Get the order store bound to a database session.

    Args:
        session: Request- or task-scoped AsyncSession

    Returns:
        BaseOrderStore: SqlAlchemyOrderStore for the session
    """
    return SqlAlchemyOrderStore(session)


__all__ = [
    "get_order_store",
    "FeedbackPropagator",
    "BaseOrderStore",
    "InMemoryOrderStore",
    "SqlAlchemyOrderStore",
    "OrderRecord",
    "FeedbackRecord",
    "FeedbackResult",
    "ChildResult",
    "ChildOutcome",
    "TargetOutcome",
    "LookupKey",
    "FeedbackQuery",
    "FeedbackListing",
    "FeedbackScope",
    "FeedbackError",
    "InvalidFeedbackError",
    "OrderNotFoundError",
    "IneligibleOrderError",
    "PersistenceError",
    "normalize_lookup",
    "check_eligibility",
    "is_eligible",
    "validate_feedback_input",
]
