from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.ssm.models import Base

MODULE_STATUSES = ("active", "trial", "canceled", "expired", "past_due")


class OrganizationModule(Base):
    """
    Per-tenant state of one paid module. Rows are never deleted; they move to canceled/expired.
    Base modules never get a row.
    """

    __tablename__ = "organization_modules"
    __table_args__ = (
        UniqueConstraint("organization_id", "module_key", name="uq_organization_modules_org_key"),
        Index("idx_organization_modules_status", "status"),
        Index("idx_organization_modules_trial_expires", "trial_expires_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    module_key: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # active|trial|canceled|expired|past_due

    trial_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    trial_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
