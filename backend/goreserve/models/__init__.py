from .booking import BookingModel
from .business import BusinessModel, ServiceModel, service_staff
from .staff import StaffAvailabilityExceptionModel, StaffModel

__all__ = [
    "BookingModel",
    "BusinessModel",
    "ServiceModel",
    "StaffAvailabilityExceptionModel",
    "StaffModel",
    "service_staff",
]
