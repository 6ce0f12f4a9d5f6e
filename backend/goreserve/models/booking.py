# backend/goreserve/models/booking.py
"""
Booking model.

Bookings are self-contained records: date, times, amount and timezone are
stored on the row so a booking persists as a commitment regardless of later
calendar or catalog changes.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.sql import func
import ulid

from ..core.enums import BookingStatus, PaymentStatus
from ..database import Base


class BookingModel(Base):
    __tablename__ = "bookings"

    # Primary key
    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    booking_ref = Column(String(10), nullable=False, unique=True)

    # Core relationships
    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(String(26), ForeignKey("services.id"), nullable=False)
    staff_id = Column(String(26), ForeignKey("staff.id"), nullable=True)
    customer_id = Column(String(26), nullable=False, index=True)

    # Self-contained booking data
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Cancellation tracking
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)

    # Reschedule lineage
    rescheduled_from_id = Column(String(26), ForeignKey("bookings.id"), nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_booking_time_order"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
            name="check_booking_status",
        ),
        Index("ix_bookings_staff_date", "staff_id", "booking_date"),
        Index("ix_bookings_service_date", "service_id", "booking_date"),
        # Two active bookings can never claim the same staff start time
        Index(
            "uq_bookings_active_staff_start",
            "staff_id",
            "booking_date",
            "start_time",
            unique=True,
            sqlite_where=text("status != 'cancelled' AND staff_id IS NOT NULL"),
            postgresql_where=text("status != 'cancelled' AND staff_id IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id} {self.booking_date} {self.start_time}-{self.end_time} "
            f"{self.status}>"
        )
