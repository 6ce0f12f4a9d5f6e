"""Cancellation eligibility and refund evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from ..core.config import settings
from ..core.enums import (
    CANCELLABLE_STATUSES,
    CancellationPolicyKind,
    PaymentStatus,
)
from ..core.exceptions import InsufficientNoticeException, InvalidTransitionException
from ..domain.booking import Booking
from ..domain.catalog import Business, Service

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class RefundDecision:
    eligible: bool
    fraction: float = 0.0
    amount: Decimal = Decimal("0.00")
    refund_due: bool = False
    forced: bool = False
    policy_basis: str = ""
    notice_hours: Optional[float] = None

    def to_payload(self) -> dict[str, object]:
        return {
            "eligible": self.eligible,
            "fraction": self.fraction,
            "amount": str(self.amount),
            "refund_due": self.refund_due,
            "forced": self.forced,
            "policy_basis": self.policy_basis,
            "notice_hours": round(self.notice_hours, 2) if self.notice_hours is not None else None,
        }


class CancellationPolicyEngine:
    """
    Decides whether a booking may be cancelled and how much is refunded.

    The tiered policy is authoritative for the refund; ``can_cancel`` is only
    the gate in front of it. Forced cancellations skip the gate and always
    refund in full.
    """

    def __init__(
        self,
        full_refund_notice_hours: Optional[int] = None,
        partial_refund_fraction: Optional[float] = None,
    ):
        self.full_refund_notice_hours = (
            full_refund_notice_hours
            if full_refund_notice_hours is not None
            else settings.full_refund_notice_hours
        )
        self.partial_refund_fraction = (
            partial_refund_fraction
            if partial_refund_fraction is not None
            else settings.partial_refund_fraction
        )

    @staticmethod
    def resolve_policy(service: Service, business: Optional[Business] = None) -> CancellationPolicyKind:
        """Service override, then business policy, then the tiered default."""
        if service.cancellation_policy is not None:
            return service.cancellation_policy
        if business is not None:
            return business.cancellation_policy
        return CancellationPolicyKind.TIERED

    @staticmethod
    def notice_hours(booking: Booking, now: datetime) -> float:
        return booking.notice_hours(now)

    def can_cancel(self, booking: Booking, service: Service, now: datetime) -> bool:
        if booking.status not in CANCELLABLE_STATUSES:
            return False
        return self.notice_hours(booking, now) > service.cancellation_hours

    def ensure_can_cancel(self, booking: Booking, service: Service, now: datetime) -> None:
        """Raise the specific reason ``can_cancel`` would return False."""
        if booking.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionException(booking.id, booking.status.value, "cancel")
        notice = self.notice_hours(booking, now)
        if notice <= service.cancellation_hours:
            raise InsufficientNoticeException(service.cancellation_hours, notice)

    def refund_fraction(
        self,
        booking: Booking,
        service: Service,
        now: datetime,
        policy: CancellationPolicyKind = CancellationPolicyKind.TIERED,
    ) -> float:
        if policy == CancellationPolicyKind.NO_REFUND:
            return 0.0
        notice = self.notice_hours(booking, now)
        if notice >= self.full_refund_notice_hours:
            return 1.0
        if notice >= service.cancellation_hours:
            return self.partial_refund_fraction
        return 0.0

    def evaluate(
        self,
        booking: Booking,
        service: Service,
        now: datetime,
        policy: CancellationPolicyKind = CancellationPolicyKind.TIERED,
    ) -> RefundDecision:
        notice = self.notice_hours(booking, now)
        if not self.can_cancel(booking, service, now):
            return RefundDecision(
                eligible=False,
                policy_basis=(
                    f"Cancellation requires more than {service.cancellation_hours}h notice "
                    "and a pending or confirmed booking"
                ),
                notice_hours=notice,
            )

        fraction = self.refund_fraction(booking, service, now, policy)
        if policy == CancellationPolicyKind.NO_REFUND:
            basis = "No-refund policy"
        elif fraction == 1.0:
            basis = f">={self.full_refund_notice_hours} hours notice: full refund"
        else:
            basis = (
                f"{service.cancellation_hours}-{self.full_refund_notice_hours} hours notice: "
                f"{int(fraction * 100)}% refund"
            )
        return self._decision(booking, fraction, basis, notice, forced=False)

    def forced(self, booking: Booking, now: datetime, basis: str = "Forced cancellation") -> RefundDecision:
        return self._decision(booking, 1.0, basis, self.notice_hours(booking, now), forced=True)

    @staticmethod
    def _decision(
        booking: Booking, fraction: float, basis: str, notice: float, forced: bool
    ) -> RefundDecision:
        amount = (booking.amount * Decimal(str(fraction))).quantize(_CENTS, rounding=ROUND_HALF_UP)
        return RefundDecision(
            eligible=True,
            fraction=fraction,
            amount=amount,
            refund_due=booking.payment_status == PaymentStatus.PAID and amount > 0,
            forced=forced,
            policy_basis=basis,
            notice_hours=notice,
        )
