import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from absence_tracker.db.session import Base


class Tenant(Base):
    """
    Company account that scopes employees, absence types, records and processing logs.
    Billing and subscription data live elsewhere; only identity and status are kept here.
    """

    __tablename__ = "tenants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    employees = relationship("Employee", back_populates="tenant", cascade="all, delete-orphan")
