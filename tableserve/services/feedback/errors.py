"""
Feedback Service Errors

Every failure of a feedback submission is one of these kinds. The HTTP
layer maps them to status codes; nothing in the service swallows them.
"""

from typing import Optional


class FeedbackError(Exception):
    """Base class for feedback service errors."""


class InvalidFeedbackError(FeedbackError):
    """Rating, comment or lookup input rejected before any lookup."""


class OrderNotFoundError(FeedbackError):
    """No order matched the normalized lookup key or id."""


class IneligibleOrderError(FeedbackError):
    """
    Order exists but cannot take feedback.

    Attributes:
        reason: ``wrong_type``, ``not_completed`` or ``not_rated``
    """

    WRONG_TYPE = "wrong_type"
    NOT_COMPLETED = "not_completed"
    NOT_RATED = "not_rated"

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Order is not eligible for feedback ({reason})")


class PersistenceError(FeedbackError):
    """
    The order store failed a read or write.

    When raised during zone fan-out, ``partial_result`` holds the
    FeedbackResult accumulated before the failure.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.partial_result = None
