# backend/goreserve/models/business.py
"""
Business and service catalog models.

Working hours are stored as JSON and parsed into ``WeeklySchedule`` by the
catalog repository.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import BusinessStatus, CancellationPolicyKind
from ..database import Base

service_staff = Table(
    "service_staff",
    Base.metadata,
    Column("service_id", String(26), ForeignKey("services.id", ondelete="CASCADE"), primary_key=True),
    Column("staff_id", String(26), ForeignKey("staff.id", ondelete="CASCADE"), primary_key=True),
)


class BusinessModel(Base):
    __tablename__ = "businesses"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    working_hours = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=BusinessStatus.ACTIVE.value)
    bookings_enabled = Column(Boolean, nullable=False, default=True)
    cancellation_policy = Column(
        String(20), nullable=False, default=CancellationPolicyKind.TIERED.value
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    services = relationship("ServiceModel", back_populates="business")
    staff = relationship("StaffModel", back_populates="business")

    def __repr__(self) -> str:
        return f"<Business {self.id} {self.name!r} {self.status}>"


class ServiceModel(Base):
    """
    Bookable service.

    The nullable policy columns fall back to the configured defaults.
    """

    __tablename__ = "services"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    slot_interval_minutes = Column(Integer, nullable=True)
    advance_booking_days = Column(Integer, nullable=True)
    min_advance_hours = Column(Integer, nullable=True)
    cancellation_hours = Column(Integer, nullable=True)
    capacity_per_slot = Column(Integer, nullable=False, default=1)
    requires_staff = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    cancellation_policy = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    business = relationship("BusinessModel", back_populates="services")
    staff = relationship("StaffModel", secondary=service_staff, back_populates="services")

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        CheckConstraint("capacity_per_slot >= 1", name="check_service_capacity_positive"),
    )

    def __repr__(self) -> str:
        return f"<Service {self.id} {self.name!r} {self.duration_minutes}min>"
