# backend/goreserve/repositories/interfaces.py
"""
Storage interfaces the scheduling services depend on.

Both interfaces speak in domain values (``Booking``, ``Business``,
``Service``, ``Staff``), never ORM rows, so alternative storage can be
plugged in without touching the services.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Any, List, Optional

from ..core.enums import BookingStatus
from ..domain.booking import Booking
from ..domain.catalog import Business, Service, Staff
from ..schemas.calendar import AvailabilityException


class BookingRepository(ABC):
    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """Unit of work; commits on success and rolls back on error."""

    @abstractmethod
    def refresh_all(self) -> None:
        """Discard cached state before re-reading under a lock."""

    @abstractmethod
    def get(self, booking_id: str, for_update: bool = False) -> Optional[Booking]:
        """Fetch a booking; ``for_update`` locks the row until the transaction ends."""

    @abstractmethod
    def add(self, booking: Booking) -> Booking:
        """
        Stage a new booking.

        Raises:
            RepositoryConflictException: an active booking already holds the
                same staff start time
        """

    @abstractmethod
    def save(self, booking: Booking) -> Booking:
        """Stage changes to an existing booking."""

    @abstractmethod
    def list_active_for_staff(
        self, staff_id: str, day: date, exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        """Non-cancelled bookings of a staff member on a date, across all services."""

    @abstractmethod
    def list_active_for_service(
        self, service_id: str, day: date, exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        """Non-cancelled bookings of a service on a date."""

    @abstractmethod
    def count_active_for_customer_on(self, customer_id: str, day: date) -> int:
        pass

    @abstractmethod
    def list_for_customer(
        self,
        customer_id: str,
        status: Optional[BookingStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Booking]:
        pass

    @abstractmethod
    def list_future_active_for_business(self, business_id: str, from_date: date) -> List[Booking]:
        """Pending and confirmed bookings of a business from ``from_date`` on."""

    @abstractmethod
    def list_for_staff_between(self, staff_id: str, start: date, end: date) -> List[Booking]:
        """Non-cancelled bookings of a staff member in ``[start, end]``."""

    @abstractmethod
    def list_expired_pending(self, created_before: datetime, from_date: date) -> List[Booking]:
        """Unpaid pending bookings created before the cutoff that have not taken place."""


class CatalogRepository(ABC):
    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        pass

    @abstractmethod
    def get_business(self, business_id: str) -> Optional[Business]:
        pass

    @abstractmethod
    def get_service(self, service_id: str) -> Optional[Service]:
        pass

    @abstractmethod
    def get_staff(self, staff_id: str) -> Optional[Staff]:
        pass

    @abstractmethod
    def list_staff_for_service(self, service_id: str) -> List[Staff]:
        """Active staff members assigned to a service, in a stable order."""

    @abstractmethod
    def is_staff_assigned(self, service_id: str, staff_id: str) -> bool:
        pass

    @abstractmethod
    def add_staff_exception(
        self, staff_id: str, exception: AvailabilityException
    ) -> AvailabilityException:
        pass
