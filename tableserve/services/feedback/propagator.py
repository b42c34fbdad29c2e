"""
Feedback Propagator

Applies a customer's rating to the order they addressed and, for zone
main orders, fans the same rating out to the completed per-shop child
orders that have not been rated yet.

Flow:
    1. Validate input (before any lookup)
    2. Normalize the lookup key and find the order
    3. Check eligibility
    4. Apply feedback to the order (no-op if already rated)
    5. Zone main orders: walk child_order_ids in order and apply or skip

Every step re-checks stored state, so a submission interrupted by a
storage failure can be re-run as a whole without rating anything twice.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from tableserve.core.config import get_settings
from tableserve.models import OrderStatus, OrderType
from tableserve.services.feedback.base import (
    BaseOrderStore,
    ChildOutcome,
    ChildResult,
    FeedbackRecord,
    FeedbackResult,
    OrderRecord,
    TargetOutcome,
)
from tableserve.services.feedback.errors import (
    IneligibleOrderError,
    OrderNotFoundError,
    PersistenceError,
)
from tableserve.services.feedback.rules import (
    check_eligibility,
    plain_value,
    normalize_lookup,
    validate_feedback_input,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FeedbackPropagator:
    """
    Feedback submission and zone fan-out over an injected order store.

    Attributes:
        store: Order store used for every read and write
        zone_review_suffix: Appended to the comment propagated to children
        max_comment_length: Longest comment accepted by submit_feedback
        clock: Returns the submission timestamp

    Example:
        >>> propagator = FeedbackPropagator(InMemoryOrderStore(orders))
        >>> result = await propagator.submit_feedback(
        ...     "zn16fgv", "(782) 648-2736", 5, "Excellent service!", True
        ... )
        >>> [c.outcome.value for c in result.children]
        ['applied', 'applied']
    """

    def __init__(
        self,
        store: BaseOrderStore,
        zone_review_suffix: Optional[str] = None,
        max_comment_length: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        settings = get_settings()
        self.store = store
        self.zone_review_suffix = (
            settings.zone_review_suffix if zone_review_suffix is None else zone_review_suffix
        )
        self.max_comment_length = max_comment_length or settings.feedback_comment_max_length
        self.clock = clock

    # =========================================================================
    # PUBLIC ENTRY POINT
    # =========================================================================

    async def submit_feedback(
        self,
        order_number: str,
        phone: str,
        rating: int,
        comment: str = "",
        is_public: bool = False,
    ) -> FeedbackResult:
        """
        Submit customer feedback for an order identified by number and phone.

        Args:
            order_number: Order number as typed by the customer (any case)
            phone: Customer phone in any formatting
            rating: Integer rating 1..5
            comment: Free text, may be empty
            is_public: Whether the review may be shown publicly

        Returns:
            FeedbackResult: Outcome for the order and each zone child

        Raises:
            InvalidFeedbackError: Malformed input, nothing was looked up
            OrderNotFoundError: No order matches the normalized key
            IneligibleOrderError: Order found but cannot take feedback
            PersistenceError: The store failed; safe to retry
        """
        validate_feedback_input(
            order_number, phone, rating, comment, is_public,
            max_comment_length=self.max_comment_length,
        )

        key = normalize_lookup(order_number, phone)
        logger.info(f"Looking up order {key.order_number} for feedback submission")

        order = await self.store.find_order_by_normalized_key(key.order_number, key.phone_digits)
        if order is None:
            logger.info(f"Order {key.order_number} not found for feedback submission")
            raise OrderNotFoundError(f"Order {key.order_number} not found")

        result = await self.propagate(order, rating, comment, is_public)

        logger.info(
            f"Order feedback added: order={result.order.order_number} "
            f"type={plain_value(result.order.order_type)} rating={result.order.feedback.rating} "
            f"target={result.target.value} children={result.outcome_counts()}"
        )
        return result

    # =========================================================================
    # CORE OPERATIONS
    # =========================================================================

    async def propagate(
        self,
        target: OrderRecord,
        rating: int,
        comment: str,
        is_public: bool,
    ) -> FeedbackResult:
        """
        Apply feedback to ``target`` and fan out if it is a zone main order.

        Raises:
            IneligibleOrderError: ``target`` fails the eligibility check
        """
        check_eligibility(target)

        outcome, order = await self.apply_feedback(target, rating, comment, is_public)

        if plain_value(order.order_type) != OrderType.ZONE_MAIN.value:
            return FeedbackResult(target=outcome, order=order)

        return await self.fan_out(order, target_outcome=outcome)

    async def apply_feedback(
        self,
        order: OrderRecord,
        rating: int,
        comment: str,
        is_public: bool,
    ) -> tuple[TargetOutcome, OrderRecord]:
        """
        Store feedback on a single order unless it already has a rating.

        The store only writes when its copy of the order is still unrated,
        so a concurrent submission that got there first wins and this one
        reports ALREADY_RATED with the stored feedback.

        Returns:
            (APPLIED, saved order) or (ALREADY_RATED, stored order)
        """
        if order.has_rating:
            logger.debug(f"Order {order.order_number} already rated, leaving feedback untouched")
            return TargetOutcome.ALREADY_RATED, order

        feedback = FeedbackRecord(
            rating=rating,
            comment=comment,
            submitted_at=self.clock(),
            is_public=is_public,
        )
        written, saved = await self.store.save_feedback_if_unrated(order.with_feedback(feedback))
        if not written:
            return TargetOutcome.ALREADY_RATED, saved
        return TargetOutcome.APPLIED, saved

    async def fan_out(
        self,
        main: OrderRecord,
        target_outcome: TargetOutcome = TargetOutcome.ALREADY_RATED,
    ) -> FeedbackResult:
        """
        Propagate the main order's stored feedback to its child orders.

        Children are visited in ``child_order_ids`` order. A child receives
        the main rating, the main comment plus the zone review suffix and
        the same visibility, unless it is missing, not completed or
        already rated.

        Raises:
            IneligibleOrderError: ``main`` carries no feedback yet
            PersistenceError: With ``partial_result`` set to the outcomes
                recorded before the failure
        """
        result = FeedbackResult(target=target_outcome, order=main)

        if not main.has_rating:
            raise IneligibleOrderError(
                IneligibleOrderError.NOT_RATED,
                f"Order {main.order_number} has no feedback to propagate",
            )

        if plain_value(main.order_type) != OrderType.ZONE_MAIN.value:
            return result

        feedback = main.feedback
        child_comment = f"{feedback.comment}{self.zone_review_suffix}"

        logger.info(
            f"Propagating feedback from zone order {main.order_number} "
            f"to {len(main.child_order_ids)} child orders"
        )

        for child_id in list(main.child_order_ids):
            try:
                child_result = await self._apply_to_child(
                    child_id, feedback.rating, child_comment, feedback.is_public
                )
            except PersistenceError as exc:
                exc.partial_result = result
                logger.error(
                    f"Fan-out for zone order {main.order_number} stopped at child {child_id}: "
                    f"{exc} (processed: {result.outcome_counts()})"
                )
                raise
            result.children.append(child_result)

        return result

    async def resume_fan_out(self, order_id: Any) -> FeedbackResult:
        """
        Re-run fan-out for an order that already carries feedback.

        Used to finish a zone fan-out interrupted by a storage failure.

        Raises:
            OrderNotFoundError: ``order_id`` does not exist
            IneligibleOrderError: The order has not been rated yet
        """
        order = await self.store.find_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        result = await self.fan_out(order)
        logger.info(
            f"Resumed fan-out for order {order.order_number}: {result.outcome_counts()}"
        )
        return result

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _apply_to_child(
        self,
        child_id: Any,
        rating: int,
        comment: str,
        is_public: bool,
    ) -> ChildResult:
        child = await self.store.find_order_by_id(child_id)

        if child is None:
            logger.debug(f"Child order {child_id} not found, skipping")
            return ChildResult(id=child_id, outcome=ChildOutcome.SKIPPED_NOT_FOUND)

        if plain_value(child.status) != OrderStatus.COMPLETED.value:
            logger.debug(f"Child order {child.order_number} not completed, skipping")
            return ChildResult(
                id=child_id,
                outcome=ChildOutcome.SKIPPED_NOT_COMPLETED,
                order_number=child.order_number,
                order=child,
            )

        outcome, saved = await self.apply_feedback(child, rating, comment, is_public)
        if outcome == TargetOutcome.ALREADY_RATED:
            logger.debug(f"Child order {saved.order_number} already rated, skipping")
            return ChildResult(
                id=child_id,
                outcome=ChildOutcome.SKIPPED_ALREADY_RATED,
                order_number=saved.order_number,
                order=saved,
            )

        logger.info(f"Applied zone feedback to child order {saved.order_number}")
        return ChildResult(
            id=child_id,
            outcome=ChildOutcome.APPLIED,
            order_number=saved.order_number,
            order=saved,
        )
