# backend/goreserve/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances, so services and
tests build them the same way.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .booking_repository import SqlBookingRepository
    from .catalog_repository import SqlCatalogRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "SqlBookingRepository":
        """Create repository for booking operations."""
        from .booking_repository import SqlBookingRepository

        return SqlBookingRepository(db)

    @staticmethod
    def create_catalog_repository(db: Session) -> "SqlCatalogRepository":
        """Create repository for business, service and staff lookups."""
        from .catalog_repository import SqlCatalogRepository

        return SqlCatalogRepository(db)
