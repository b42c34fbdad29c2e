"""
SQLAlchemy Database Models

Order table as seen by the feedback service:
- Single, zone main and zone shop order types
- Zone main orders reference their per-shop child orders
- Customer feedback stored inline on the order
- Digits-only phone column maintained for lookups
"""

import enum
import re

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON
from sqlalchemy.orm import validates
from sqlalchemy.sql import func

from tableserve.database import Base


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderType(str, enum.Enum):
    """Single restaurant order or part of a zone grouping."""
    SINGLE = "single"
    ZONE_MAIN = "zone_main"
    ZONE_SHOP = "zone_shop"


class Order(Base):
    """
    Order table.

    Orders are created and transitioned by the order-management side of
    TableServe; the feedback service reads type, status and child references
    and writes the feedback columns.
    """
    __tablename__ = "orders"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # IDENTIFICATION
    # =========================================================================
    order_number = Column(String(32), nullable=False, unique=True, index=True)
    # Plain strings so rows with values unknown to this service still load
    order_type = Column(
        String(20),
        default=OrderType.SINGLE.value,
        nullable=False,
        index=True
    )
    status = Column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True
    )

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=True)
    customer_phone = Column(String(20), nullable=False)
    customer_phone_digits = Column(String(20), nullable=False, index=True)

    # =========================================================================
    # OWNERSHIP
    # =========================================================================
    restaurant_id = Column(String(64), nullable=True, index=True)
    zone_id = Column(String(64), nullable=True, index=True)
    shop_id = Column(String(64), nullable=True, index=True)
    shop_name = Column(String(100), nullable=True)

    # =========================================================================
    # ZONE GROUPING
    # =========================================================================
    parent_order_id = Column(Integer, nullable=True, index=True)
    child_order_ids = Column(JSON, nullable=False, default=list)

    # =========================================================================
    # FEEDBACK
    # =========================================================================
    feedback_rating = Column(Integer, nullable=True, index=True)
    feedback_comment = Column(Text, nullable=True)
    feedback_submitted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    feedback_is_public = Column(Boolean, default=False)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @validates("order_type", "status")
    def _store_enum_value(self, key, value):
        return getattr(value, "value", value)

    @validates("customer_phone")
    def _sync_phone_digits(self, key, value):
        self.customer_phone_digits = re.sub(r"\D", "", value or "")
        return value

    def __repr__(self):
        return f"<Order {self.order_number} - {self.order_type} - {self.status}>"
