# backend/goreserve/repositories/booking_repository.py
"""
SQLAlchemy implementation of ``BookingRepository``.

List queries use ``populate_existing`` so rows already in the identity map
are refreshed; the critical section must never decide on stale status.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.enums import (
    CANCELLABLE_STATUSES,
    BookingStatus,
    CancellationActor,
    PaymentStatus,
)
from ..core.exceptions import RepositoryException
from ..core.timezone_utils import ensure_aware
from ..domain.booking import Booking
from ..models.booking import BookingModel
from .base_repository import BaseRepository
from .interfaces import BookingRepository

logger = logging.getLogger(__name__)

_CANCELLED = BookingStatus.CANCELLED.value


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_aware(value).astimezone(timezone.utc)


def to_domain(row: BookingModel) -> Booking:
    return Booking(
        id=row.id,
        booking_ref=row.booking_ref,
        business_id=row.business_id,
        service_id=row.service_id,
        customer_id=row.customer_id,
        staff_id=row.staff_id,
        booking_date=row.booking_date,
        start_time=row.start_time,
        end_time=row.end_time,
        timezone=row.timezone or "UTC",
        status=BookingStatus(row.status),
        payment_status=PaymentStatus(row.payment_status),
        amount=Decimal(str(row.amount or 0)),
        notes=row.notes,
        created_at=_utc(row.created_at),
        confirmed_at=_utc(row.confirmed_at),
        completed_at=_utc(row.completed_at),
        cancelled_at=_utc(row.cancelled_at),
        cancellation_reason=row.cancellation_reason,
        cancelled_by=CancellationActor(row.cancelled_by) if row.cancelled_by else None,
        refund_amount=Decimal(str(row.refund_amount)) if row.refund_amount is not None else None,
        rescheduled_from_id=row.rescheduled_from_id,
        reschedule_count=row.reschedule_count or 0,
    )


def to_columns(booking: Booking) -> dict:
    return {
        "booking_ref": booking.booking_ref,
        "business_id": booking.business_id,
        "service_id": booking.service_id,
        "customer_id": booking.customer_id,
        "staff_id": booking.staff_id,
        "booking_date": booking.booking_date,
        "start_time": booking.start_time,
        "end_time": booking.end_time,
        "timezone": booking.timezone,
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "amount": booking.amount,
        "notes": booking.notes,
        "created_at": _utc(booking.created_at),
        "confirmed_at": _utc(booking.confirmed_at),
        "completed_at": _utc(booking.completed_at),
        "cancelled_at": _utc(booking.cancelled_at),
        "cancellation_reason": booking.cancellation_reason,
        "cancelled_by": booking.cancelled_by.value if booking.cancelled_by else None,
        "refund_amount": booking.refund_amount,
        "rescheduled_from_id": booking.rescheduled_from_id,
        "reschedule_count": booking.reschedule_count,
    }


class SqlBookingRepository(BaseRepository[BookingModel], BookingRepository):
    """Booking storage backed by the ``bookings`` table."""

    def __init__(self, db: Session):
        super().__init__(db, BookingModel)

    def _active(self) -> Query:
        return (
            self.db.query(BookingModel)
            .execution_options(populate_existing=True)
            .filter(BookingModel.status != _CANCELLED)
        )

    def _fetch(self, query: Query, operation: str) -> List[Booking]:
        try:
            return [to_domain(row) for row in query.all()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error in {operation}: {str(e)}")
            raise RepositoryException(f"Failed to {operation}: {str(e)}") from e

    def get(self, booking_id: str, for_update: bool = False) -> Optional[Booking]:
        row = self.get_by_id(booking_id, for_update=for_update)
        return to_domain(row) if row is not None else None

    def add(self, booking: Booking) -> Booking:
        row = self.create(id=booking.id, **to_columns(booking))
        self.logger.debug("Staged booking %s", row.id)
        return booking

    def save(self, booking: Booking) -> Booking:
        row = self.update(booking.id, **to_columns(booking))
        if row is None:
            raise RepositoryException(f"Booking {booking.id} does not exist")
        return booking

    def list_active_for_staff(
        self, staff_id: str, day: date, exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        query = self._active().filter(
            BookingModel.staff_id == staff_id, BookingModel.booking_date == day
        )
        if exclude_booking_id:
            query = query.filter(BookingModel.id != exclude_booking_id)
        return self._fetch(query.order_by(BookingModel.start_time), "list staff bookings")

    def list_active_for_service(
        self, service_id: str, day: date, exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        query = self._active().filter(
            BookingModel.service_id == service_id, BookingModel.booking_date == day
        )
        if exclude_booking_id:
            query = query.filter(BookingModel.id != exclude_booking_id)
        return self._fetch(query.order_by(BookingModel.start_time), "list service bookings")

    def count_active_for_customer_on(self, customer_id: str, day: date) -> int:
        try:
            return (
                self._active()
                .filter(BookingModel.customer_id == customer_id, BookingModel.booking_date == day)
                .count()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting customer bookings: {str(e)}")
            raise RepositoryException(f"Failed to count customer bookings: {str(e)}") from e

    def list_for_customer(
        self,
        customer_id: str,
        status: Optional[BookingStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Booking]:
        query = (
            self.db.query(BookingModel)
            .execution_options(populate_existing=True)
            .filter(BookingModel.customer_id == customer_id)
        )
        if status is not None:
            query = query.filter(BookingModel.status == status.value)
        if date_from is not None:
            query = query.filter(BookingModel.booking_date >= date_from)
        if date_to is not None:
            query = query.filter(BookingModel.booking_date <= date_to)
        query = query.order_by(BookingModel.booking_date, BookingModel.start_time)
        return self._fetch(query, "list customer bookings")

    def list_future_active_for_business(self, business_id: str, from_date: date) -> List[Booking]:
        query = (
            self.db.query(BookingModel)
            .execution_options(populate_existing=True)
            .filter(
                BookingModel.business_id == business_id,
                BookingModel.booking_date >= from_date,
                BookingModel.status.in_([s.value for s in CANCELLABLE_STATUSES]),
            )
            .order_by(BookingModel.booking_date, BookingModel.start_time)
        )
        return self._fetch(query, "list future business bookings")

    def list_for_staff_between(self, staff_id: str, start: date, end: date) -> List[Booking]:
        query = self._active().filter(
            BookingModel.staff_id == staff_id,
            BookingModel.booking_date >= start,
            BookingModel.booking_date <= end,
        )
        query = query.order_by(BookingModel.booking_date, BookingModel.start_time)
        return self._fetch(query, "list staff schedule bookings")

    def list_expired_pending(self, created_before: datetime, from_date: date) -> List[Booking]:
        query = (
            self.db.query(BookingModel)
            .execution_options(populate_existing=True)
            .filter(
                and_(
                    BookingModel.status == BookingStatus.PENDING.value,
                    BookingModel.payment_status == PaymentStatus.PENDING.value,
                    BookingModel.created_at < _utc(created_before),
                    BookingModel.booking_date >= from_date,
                )
            )
            .order_by(BookingModel.created_at)
        )
        return self._fetch(query, "list expired pending bookings")
