from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.ssm.models import Base


class Subscription(Base):
    """Local mirror of the organization's Stripe subscription (one per organization)."""

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("idx_subscriptions_stripe_subscription_id", "stripe_subscription_id"),
        Index("idx_subscriptions_stripe_customer_id", "stripe_customer_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    plan_id: Mapped[str | None] = mapped_column(String(32), nullable=True)  # starter|professional|enterprise
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # active|trial|past_due|canceled

    current_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    grace_period_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class WebhookEventLog(Base):
    __tablename__ = "webhook_events_log"
    __table_args__ = (
        Index("idx_webhook_events_log_event_id", "event_id"),
        Index("idx_webhook_events_log_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="stripe")
    event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False)
    organization_id: Mapped[int | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[str] = mapped_column(String(16), nullable=False)  # success|failed|ignored
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
