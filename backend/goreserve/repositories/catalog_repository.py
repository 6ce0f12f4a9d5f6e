# backend/goreserve/repositories/catalog_repository.py
"""
SQLAlchemy implementation of ``CatalogRepository``.

Rows are converted into domain values here. Working-hours JSON is validated
into ``WeeklySchedule``; a row with malformed hours raises
``RepositoryException`` instead of leaking a half-parsed calendar.
"""

from decimal import Decimal
import logging
from typing import Any, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.config import settings
from ..core.enums import BusinessStatus, CancellationPolicyKind
from ..core.exceptions import RepositoryException
from ..domain.catalog import Business, Service, Staff
from ..models.business import BusinessModel, ServiceModel, service_staff
from ..models.staff import StaffAvailabilityExceptionModel, StaffModel
from ..schemas.calendar import (
    AvailabilityException,
    BusinessCalendar,
    StaffCalendar,
    WeeklySchedule,
)
from .base_repository import BaseRepository
from .interfaces import CatalogRepository

logger = logging.getLogger(__name__)


def _weekly(raw: Any, owner: str) -> WeeklySchedule:
    try:
        return WeeklySchedule.model_validate(raw or {})
    except ValidationError as exc:
        logger.error("Invalid working hours for %s: %s", owner, exc)
        raise RepositoryException(f"Invalid working hours for {owner}") from exc


def _exception_to_schema(row: StaffAvailabilityExceptionModel) -> AvailabilityException:
    return AvailabilityException(
        date=row.date,
        kind=row.kind,
        start_time=row.start_time,
        end_time=row.end_time,
        reason=row.reason,
    )


def _or_default(value: Optional[int], default: int) -> int:
    return default if value is None else value


class SqlCatalogRepository(BaseRepository[BusinessModel], CatalogRepository):
    """Read access to businesses, services and staff, plus staff exceptions."""

    def __init__(self, db: Session):
        super().__init__(db, BusinessModel)

    def get_business(self, business_id: str) -> Optional[Business]:
        row = self.get_by_id(business_id)
        if row is None:
            return None
        return Business(
            id=row.id,
            name=row.name,
            calendar=BusinessCalendar(
                weekly=_weekly(row.working_hours, f"business {row.id}"),
                timezone=row.timezone or "UTC",
            ),
            status=BusinessStatus(row.status),
            bookings_enabled=bool(row.bookings_enabled),
            cancellation_policy=CancellationPolicyKind(
                row.cancellation_policy or CancellationPolicyKind.TIERED.value
            ),
        )

    def get_service(self, service_id: str) -> Optional[Service]:
        try:
            row = self.db.get(ServiceModel, service_id, populate_existing=True)
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting service {service_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve service: {str(e)}") from e
        if row is None:
            return None
        return Service(
            id=row.id,
            business_id=row.business_id,
            name=row.name,
            duration_minutes=row.duration_minutes,
            price=Decimal(str(row.price or 0)),
            slot_interval_minutes=_or_default(
                row.slot_interval_minutes, settings.default_slot_interval_minutes
            ),
            advance_booking_days=_or_default(
                row.advance_booking_days, settings.default_advance_booking_days
            ),
            min_advance_hours=_or_default(row.min_advance_hours, settings.default_min_advance_hours),
            cancellation_hours=_or_default(
                row.cancellation_hours, settings.default_cancellation_hours
            ),
            capacity_per_slot=row.capacity_per_slot or 1,
            requires_staff=bool(row.requires_staff),
            is_active=bool(row.is_active),
            cancellation_policy=(
                CancellationPolicyKind(row.cancellation_policy)
                if row.cancellation_policy
                else None
            ),
        )

    def _staff_to_domain(self, row: StaffModel) -> Staff:
        try:
            exceptions = [_exception_to_schema(exc) for exc in row.availability_exceptions]
        except ValidationError as exc:
            raise RepositoryException(f"Invalid availability exception for staff {row.id}") from exc
        return Staff(
            id=row.id,
            business_id=row.business_id,
            name=row.name,
            calendar=StaffCalendar(
                weekly=_weekly(row.working_hours, f"staff {row.id}"),
                exceptions=exceptions,
            ),
            is_active=bool(row.is_active),
        )

    def get_staff(self, staff_id: str) -> Optional[Staff]:
        try:
            row = (
                self.db.query(StaffModel)
                .execution_options(populate_existing=True)
                .options(selectinload(StaffModel.availability_exceptions))
                .filter(StaffModel.id == staff_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting staff {staff_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve staff: {str(e)}") from e
        return self._staff_to_domain(row) if row is not None else None

    def list_staff_for_service(self, service_id: str) -> List[Staff]:
        try:
            rows = (
                self.db.query(StaffModel)
                .execution_options(populate_existing=True)
                .options(selectinload(StaffModel.availability_exceptions))
                .join(service_staff, service_staff.c.staff_id == StaffModel.id)
                .filter(service_staff.c.service_id == service_id, StaffModel.is_active.is_(True))
                .order_by(StaffModel.name, StaffModel.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing staff for service {service_id}: {str(e)}")
            raise RepositoryException(f"Failed to list staff: {str(e)}") from e
        return [self._staff_to_domain(row) for row in rows]

    def is_staff_assigned(self, service_id: str, staff_id: str) -> bool:
        try:
            return (
                self.db.query(service_staff)
                .filter(
                    service_staff.c.service_id == service_id,
                    service_staff.c.staff_id == staff_id,
                )
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to check staff assignment: {str(e)}") from e

    def add_staff_exception(
        self, staff_id: str, exception: AvailabilityException
    ) -> AvailabilityException:
        row = StaffAvailabilityExceptionModel(
            staff_id=staff_id,
            date=exception.date,
            kind=exception.kind.value,
            start_time=exception.start_time,
            end_time=exception.end_time,
            reason=exception.reason,
        )
        try:
            self.db.add(row)
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error adding exception for staff {staff_id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to add availability exception: {str(e)}") from e
        return _exception_to_schema(row)
