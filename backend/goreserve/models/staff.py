# backend/goreserve/models/staff.py
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .business import service_staff


class StaffModel(Base):
    __tablename__ = "staff"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    working_hours = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    business = relationship("BusinessModel", back_populates="staff")
    services = relationship("ServiceModel", secondary=service_staff, back_populates="staff")
    availability_exceptions = relationship(
        "StaffAvailabilityExceptionModel",
        back_populates="staff",
        cascade="all, delete-orphan",
        order_by="StaffAvailabilityExceptionModel.date",
    )

    def __repr__(self) -> str:
        return f"<Staff {self.id} {self.name!r}>"


class StaffAvailabilityExceptionModel(Base):
    """Dated override of a staff member's weekly hours."""

    __tablename__ = "staff_availability_exceptions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    staff_id = Column(String(26), ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    kind = Column(String(20), nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    staff = relationship("StaffModel", back_populates="availability_exceptions")

    __table_args__ = (
        CheckConstraint(
            "kind IN ('available', 'vacation', 'sick', 'blocked')",
            name="check_exception_kind",
        ),
        CheckConstraint(
            "(start_time IS NULL AND end_time IS NULL) OR "
            "(start_time IS NOT NULL AND end_time IS NOT NULL AND start_time < end_time)",
            name="check_exception_range",
        ),
    )
