"""
Order Store Abstract Base Class

Defines the records the feedback service works on and the interface
contract for the stores that load and persist them. Both
InMemoryOrderStore and SqlAlchemyOrderStore implement these methods,
so the propagator behaves identically on either.

Design Pattern: Strategy Pattern
    - The propagator receives a store, it never builds one
    - The in-memory store backs development tooling and tests
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class FeedbackRecord:
    """
    Customer feedback attached to an order.

    Attributes:
        rating: Integer rating 1..5
        comment: Free text, may be empty
        submitted_at: Timezone-aware submission time
        is_public: Whether the review may be shown publicly
    """
    rating: int
    comment: str
    submitted_at: datetime
    is_public: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "rating": self.rating,
            "comment": self.comment,
            "submitted_at": self.submitted_at.isoformat(),
            "is_public": self.is_public,
        }


@dataclass
class OrderRecord:
    """
    Store-neutral view of an order.

    ``order_type`` and ``status`` are plain strings so that records with
    unexpected values can still be loaded and rejected by the eligibility
    check instead of failing in the store.
    """
    id: Any
    order_number: str
    order_type: str
    status: str
    customer_phone: str
    customer_name: Optional[str] = None
    feedback: Optional[FeedbackRecord] = None
    child_order_ids: list = field(default_factory=list)
    restaurant_id: Optional[str] = None
    zone_id: Optional[str] = None
    shop_id: Optional[str] = None
    shop_name: Optional[str] = None
    parent_order_id: Any = None
    created_at: Optional[datetime] = None

    @property
    def has_rating(self) -> bool:
        """True once feedback with a rating has been stored."""
        return self.feedback is not None and self.feedback.rating is not None

    def with_feedback(self, feedback: FeedbackRecord) -> "OrderRecord":
        """Return a copy carrying ``feedback``."""
        return replace(self, feedback=feedback, child_order_ids=list(self.child_order_ids))


@dataclass(frozen=True)
class LookupKey:
    """Canonical order lookup key: uppercased order number, digits-only phone."""
    order_number: str
    phone_digits: str


# =============================================================================
# OUTCOMES
# =============================================================================

class TargetOutcome(str, Enum):
    """What happened to the order the customer addressed."""
    APPLIED = "applied"
    ALREADY_RATED = "already_rated"


class ChildOutcome(str, Enum):
    """What happened to one child order during zone fan-out."""
    APPLIED = "applied"
    SKIPPED_NOT_FOUND = "skipped:not_found"
    SKIPPED_NOT_COMPLETED = "skipped:not_completed"
    SKIPPED_ALREADY_RATED = "skipped:already_rated"


@dataclass
class ChildResult:
    """Outcome of fan-out for a single child order id."""
    id: Any
    outcome: ChildOutcome
    order_number: Optional[str] = None
    order: Optional[OrderRecord] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "outcome": self.outcome.value,
        }


@dataclass
class FeedbackResult:
    """
    Aggregate result of a feedback submission.

    Attributes:
        target: Outcome for the addressed order
        order: The addressed order after the submission
        children: Per-child outcomes in ``child_order_ids`` order
    """
    target: TargetOutcome
    order: OrderRecord
    children: list[ChildResult] = field(default_factory=list)

    @property
    def applied_children(self) -> list[ChildResult]:
        return [c for c in self.children if c.outcome == ChildOutcome.APPLIED]

    def outcome_counts(self) -> dict[str, int]:
        """Count children per outcome value."""
        counts: dict[str, int] = {}
        for child in self.children:
            counts[child.outcome.value] = counts.get(child.outcome.value, 0) + 1
        return counts

    def to_dict(self) -> dict:
        return {
            "target": self.target.value,
            "order_number": self.order.order_number,
            "children": [c.to_dict() for c in self.children],
        }


# =============================================================================
# LISTINGS
# =============================================================================

class FeedbackScope(str, Enum):
    """Which ownership column a feedback listing filters on."""
    RESTAURANT = "restaurant"
    ZONE = "zone"


@dataclass
class FeedbackQuery:
    """
    Filters and pagination for feedback listings.

    Attributes:
        rating: Only feedback with exactly this rating
        date_from: Submitted at or after this time
        date_to: Submitted at or before this time
        shop_id: Zone listings only, narrow to one shop
        page: 1-based page number
        limit: Page size
    """
    rating: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    shop_id: Optional[str] = None
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class FeedbackListing:
    """
    One page of rated orders plus aggregates over all matches.

    Attributes:
        records: Rated orders on the requested page, newest feedback first
        total: Number of matching rated orders
        average_rating: Mean rating over all matches (None when empty)
        counts_by_type: Number of matches per order type value
    """
    records: list[OrderRecord]
    total: int
    average_rating: Optional[float] = None
    counts_by_type: dict[str, int] = field(default_factory=dict)


# =============================================================================
# STORE INTERFACE
# =============================================================================

class BaseOrderStore(ABC):
    """
    Abstract base class for order stores.

    Implementations must raise PersistenceError (with the backend error
    chained) when the underlying storage fails, and must return None
    rather than raising when an order simply does not exist.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the storage backend.

        Returns:
            str: Provider name (e.g., "memory", "sqlalchemy")
        """
        pass

    @abstractmethod
    async def find_order_by_normalized_key(
        self,
        order_number: str,
        phone_digits: str,
    ) -> Optional[OrderRecord]:
        """
        Find an order by its normalized lookup key.

        Args:
            order_number: Uppercased order number
            phone_digits: Customer phone with non-digits removed

        Returns:
            OrderRecord or None when nothing matches
        """
        pass

    @abstractmethod
    async def find_order_by_id(self, order_id: Any) -> Optional[OrderRecord]:
        """
        Find an order by id.

        Returns:
            OrderRecord or None when the id does not exist
        """
        pass

    @abstractmethod
    async def save_feedback_if_unrated(self, order: OrderRecord) -> tuple[bool, OrderRecord]:
        """
        Persist the order's feedback unless the stored order already has a rating.

        The check and the write are one atomic step against the stored
        order, so a stale ``order`` can never overwrite an existing rating.
        Only the feedback fields are written.

        Returns:
            (True, stored order) when written; (False, stored order) when
            the stored order was already rated

        Raises:
            PersistenceError: Storage failure, or the order does not exist
        """
        pass

    @abstractmethod
    async def list_feedback(
        self,
        scope: FeedbackScope,
        scope_id: str,
        query: FeedbackQuery,
    ) -> FeedbackListing:
        """
        List rated orders for a restaurant or zone.

        Restaurant scope matches ``restaurant_id`` or ``shop_id``; zone
        scope matches ``zone_id`` and, when given, ``query.shop_id``.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify the store is reachable.

        Returns:
            bool: True if the store is operational
        """
        pass
