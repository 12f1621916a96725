"""Configurable absence types per tenant (Annual, Sick, Personal, etc.)."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from absence_tracker.db.session import Base


class AbsenceType(Base):
    __tablename__ = "absence_types"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_absence_type_tenant_code"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    is_paid = Column(Boolean, nullable=False, default=True)
    requires_approval = Column(Boolean, nullable=False, default=True)
    max_days_per_year = Column(Integer, nullable=True)
    advance_notice_days = Column(Integer, nullable=False, default=0)
    color = Column(String(20), nullable=True)
    # Referenced types are deactivated instead of deleted
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", backref="absence_types", foreign_keys=[tenant_id])
