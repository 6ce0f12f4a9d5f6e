# backend/goreserve/repositories/__init__.py
"""
Repository layer for the scheduling core.

Key Components:
- BookingRepository / CatalogRepository: storage interfaces used by services
- BaseRepository: generic SQLAlchemy CRUD with RepositoryException translation
- SqlBookingRepository / SqlCatalogRepository: SQLAlchemy implementations
- RepositoryFactory: construction helpers

Usage:
    from goreserve.repositories import RepositoryFactory

    bookings = RepositoryFactory.create_booking_repository(db)
"""

from .base_repository import BaseRepository, IRepository
from .booking_repository import SqlBookingRepository
from .catalog_repository import SqlCatalogRepository
from .factory import RepositoryFactory
from .interfaces import BookingRepository, CatalogRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "CatalogRepository",
    "IRepository",
    "RepositoryFactory",
    "SqlBookingRepository",
    "SqlCatalogRepository",
]
