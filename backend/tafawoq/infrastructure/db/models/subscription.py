"""
Subscription Database Model

SQLModel table for the authoritative per-user subscription record.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field

from tafawoq.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class SubscriptionModel(UUIDMixin, TimestampMixin, table=True):
    """
    Subscription table, one row per user, never deleted.

    Maps to the 'user_subscriptions' table in PostgreSQL.
    """

    __tablename__ = "user_subscriptions"

    user_id: UUID = Field(unique=True, index=True, nullable=False)

    # Stripe IDs
    stripe_customer_id: Optional[str] = Field(default=None, unique=True, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None, unique=True, index=True)

    # Subscription details
    tier: str = Field(default="free")
    status: str = Field(default="active")

    # Billing dates
    trial_end_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    current_period_start: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    current_period_end: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    canceled_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    cancel_at_period_end: bool = Field(default=False)

    # Processor timestamp of the newest applied lifecycle event
    last_event_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
