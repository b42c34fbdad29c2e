"""
Pydantic Schemas for Request/Response Validation

Feedback submission and retrieval payloads for the TableServe
feedback API.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Any, Dict
from datetime import datetime
from enum import Enum
import re


# =============================================================================
# ENUMS
# =============================================================================

class TargetOutcomeEnum(str, Enum):
    APPLIED = "applied"
    ALREADY_RATED = "already_rated"


class ChildOutcomeEnum(str, Enum):
    APPLIED = "applied"
    SKIPPED_NOT_FOUND = "skipped:not_found"
    SKIPPED_NOT_COMPLETED = "skipped:not_completed"
    SKIPPED_ALREADY_RATED = "skipped:already_rated"


class FeedbackSavedToEnum(str, Enum):
    ZONE_AND_SHOPS = "zone_and_shops"
    SINGLE_ORDER = "single_order"


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class FeedbackSubmitRequest(BaseModel):
    """Request schema for submitting feedback on a tracked order."""

    phone: str = Field(..., min_length=1, max_length=30, examples=["(782) 648-2736"])
    rating: int = Field(..., ge=1, le=5, examples=[5])
    # Length limit is feedback_comment_max_length, enforced by the propagator
    comment: str = Field(default="", examples=["Excellent service across all shops!"])
    is_public: bool = Field(default=False, examples=[True])

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not re.sub(r'[^\d]', '', v):
            raise ValueError('Phone number must contain digits')
        return v


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class ChildOutcomeResponse(BaseModel):
    """Fan-out outcome for one child order."""
    id: Any
    order_number: Optional[str] = None
    outcome: ChildOutcomeEnum


class FeedbackSubmitData(BaseModel):
    """Feedback as stored on the addressed order."""
    order_number: str
    order_type: str
    rating: int
    comment: str
    is_public: bool
    submitted_at: datetime
    target: TargetOutcomeEnum
    feedback_saved_to: FeedbackSavedToEnum
    children: List[ChildOutcomeResponse] = []


class FeedbackSubmitResponse(BaseModel):
    """Response after a feedback submission."""
    success: bool
    message: str
    data: FeedbackSubmitData


class FeedbackItem(BaseModel):
    """One rated order in a feedback listing."""
    id: Any
    order_number: str
    order_type: str
    customer_name: Optional[str] = None
    customer_phone: str
    shop_id: Optional[str] = None
    rating: int
    comment: str
    submitted_at: datetime
    is_public: bool
    order_date: Optional[datetime] = None


class RestaurantFeedbackItem(FeedbackItem):
    review_source: str


class ZoneFeedbackItem(FeedbackItem):
    review_type: str
    shop_name: str
    parent_order_id: Optional[Any] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class RestaurantFeedbackSummary(BaseModel):
    total_reviews: int
    average_rating: float
    review_sources: Dict[str, int]


class ZoneFeedbackSummary(BaseModel):
    total_reviews: int
    average_rating: float
    review_breakdown: Dict[str, int]


class RestaurantFeedbackData(BaseModel):
    feedback: List[RestaurantFeedbackItem]
    pagination: Pagination
    summary: RestaurantFeedbackSummary


class ZoneFeedbackData(BaseModel):
    feedback: List[ZoneFeedbackItem]
    pagination: Pagination
    summary: ZoneFeedbackSummary


class RestaurantFeedbackResponse(BaseModel):
    """Response for a restaurant feedback listing."""
    success: bool = True
    data: RestaurantFeedbackData


class ZoneFeedbackResponse(BaseModel):
    """Response for a zone feedback listing."""
    success: bool = True
    data: ZoneFeedbackData


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    order_store: str
    timestamp: datetime
