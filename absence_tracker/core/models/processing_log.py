"""
Audit trail of extraction pipeline runs. One row per run: created as processing,
closed once as completed or failed. Afterwards only related_record_id and merged
feedback in input_data change.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from absence_tracker.core.enums import ProcessingStatus, ProcessingType
from absence_tracker.db.session import Base


class ProcessingLog(Base):
    __tablename__ = "processing_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    processing_type = Column(String(50), nullable=False, default=ProcessingType.EMAIL_PARSING.value)
    provider = Column(String(50), nullable=True)
    input_data = Column(JSON, nullable=False, default=dict)
    ai_response = Column(JSON, nullable=True)
    confidence_score = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default=ProcessingStatus.PROCESSING.value)
    outcome = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    tokens_used = Column(Integer, nullable=False, default=0)
    cost_usd = Column(Float, nullable=False, default=0.0)
    related_record_id = Column(
        UUID(as_uuid=True),
        ForeignKey("absence_records.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", backref="processing_logs", foreign_keys=[tenant_id])
    related_record = relationship("AbsenceRecord", foreign_keys=[related_record_id])
