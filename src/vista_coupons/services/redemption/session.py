"""Redemption session with a compare-and-set terminal status."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from vista_coupons.domain.coupons import CouponDefinition


class RedemptionStatus(str, Enum):
    PENDING = "Pending"
    USED = "Used"
    EXPIRED = "Expired"

    @property
    def is_terminal(self) -> bool:
        return self is not RedemptionStatus.PENDING


@dataclass(slots=True, eq=False)
class RedemptionSession:
    coupon: CouponDefinition
    code: str
    branch_name: str | None
    started_at: datetime
    id: UUID = field(default_factory=uuid4)
    status: RedemptionStatus = RedemptionStatus.PENDING
    finalized_at: datetime | None = None

    @property
    def is_finalized(self) -> bool:
        return self.status.is_terminal

    def finalize(self, status: RedemptionStatus, *, at: datetime) -> bool:
        """Move ``PENDING`` to ``status``; a session that is already terminal is left untouched."""

        if not status.is_terminal:
            raise ValueError("Finalize requires a terminal status")
        if self.status.is_terminal:
            return False
        self.status = status
        self.finalized_at = at
        return True


__all__ = ["RedemptionSession", "RedemptionStatus"]
