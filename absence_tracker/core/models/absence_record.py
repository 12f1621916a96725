"""Concrete absence intervals per employee, with status and provenance."""

import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from absence_tracker.core.enums import AbsenceSource, AbsenceStatus
from absence_tracker.db.session import Base


class AbsenceRecord(Base):
    __tablename__ = "absence_records"
    __table_args__ = (
        Index("ix_absence_records_employee_range", "employee_id", "start_date", "end_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    absence_type_id = Column(UUID(as_uuid=True), ForeignKey("absence_types.id", ondelete="RESTRICT"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    # Business days (Mon-Fri) in [start_date, end_date]
    total_days = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=AbsenceStatus.PENDING.value)
    source = Column(String(20), nullable=False, default=AbsenceSource.MANUAL.value)
    # processing_logs.id when source is ai-extraction
    source_reference = Column(String(100), nullable=True)
    confidence_score = Column(Float, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    # User ids come from the auth service; no FK
    created_by = Column(UUID(as_uuid=True), nullable=True)
    approved_by = Column(UUID(as_uuid=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", backref="absence_records", foreign_keys=[tenant_id])
    employee = relationship("Employee", backref="absence_records", foreign_keys=[employee_id])
    absence_type = relationship("AbsenceType", backref="absence_records", foreign_keys=[absence_type_id])
