from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from vista_coupons.domain.coupons import CouponDefinition, DecoratedCoupon
from vista_coupons.domain.identity import Entitlement
from vista_coupons.domain.lifecycle import View
from vista_coupons.services.journey import JourneyOverview
from vista_coupons.services.ledger.store import HistoryEntry
from vista_coupons.services.redemption.session import RedemptionSession, RedemptionStatus


class DecoratedCouponResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coupon: CouponDefinition
    is_locked: bool = Field(..., alias="isLocked")
    is_near_expiry: bool = Field(..., alias="isNearExpiry")
    promotion_start: datetime = Field(..., alias="promotionStart")
    unlocks_on: date | None = Field(None, alias="unlocksOn")

    @classmethod
    def from_domain(cls, coupon: DecoratedCoupon) -> "DecoratedCouponResponse":
        return cls(
            coupon=coupon.definition,
            is_locked=coupon.is_locked,
            is_near_expiry=coupon.is_near_expiry,
            promotion_start=coupon.promotion_start,
            unlocks_on=coupon.unlocks_on,
        )


class RedemptionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    code: str
    branch_name: str | None = Field(None, alias="branchName")
    started_at: datetime = Field(..., alias="startedAt")
    status: RedemptionStatus
    finalized_at: datetime | None = Field(None, alias="finalizedAt")

    @classmethod
    def from_domain(cls, session: RedemptionSession) -> "RedemptionResponse":
        return cls(
            id=session.id,
            code=session.code,
            branch_name=session.branch_name,
            started_at=session.started_at,
            status=session.status,
            finalized_at=session.finalized_at,
        )


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coupon: CouponDefinition
    status: RedemptionStatus
    date: str
    coupon_code: str = Field(..., alias="couponCode")

    @classmethod
    def from_domain(cls, entry: HistoryEntry) -> "HistoryEntryResponse":
        return cls(coupon=entry.coupon, status=entry.status, date=entry.date, coupon_code=entry.code)


class JourneyResponse(BaseModel):
    """What the kiosk front-end renders."""

    model_config = ConfigDict(populate_by_name=True)

    view: View
    identifier: str | None = None
    member_name: str | None = Field(None, alias="memberName")
    entitlement: Entitlement | None = None
    error_message: str | None = Field(None, alias="errorMessage")
    auto_login_id: str | None = Field(None, alias="autoLoginId")
    selected_coupon: CouponDefinition | None = Field(None, alias="selectedCoupon")
    redemption: RedemptionResponse | None = None
    coupons: list[DecoratedCouponResponse] = Field(default_factory=list)
    member_login_available: bool = Field(False, alias="memberLoginAvailable")
    history: list[HistoryEntryResponse] = Field(default_factory=list)

    @classmethod
    def from_overview(cls, overview: JourneyOverview) -> "JourneyResponse":
        return cls(
            view=overview.view,
            identifier=overview.identifier,
            member_name=overview.member_name,
            entitlement=overview.entitlement,
            error_message=overview.error_message,
            auto_login_id=overview.auto_login_id,
            selected_coupon=overview.selected_coupon,
            redemption=RedemptionResponse.from_domain(overview.redemption) if overview.redemption else None,
            coupons=[DecoratedCouponResponse.from_domain(coupon) for coupon in overview.coupons],
            member_login_available=overview.member_login_available,
            history=[HistoryEntryResponse.from_domain(entry) for entry in overview.history],
        )


class IdentifierSubmission(BaseModel):
    identifier: str = Field(..., max_length=64, description="Member phone number")


class RegistrationSignal(BaseModel):
    identifier: str = Field(..., max_length=64, description="Phone number of the newly registered member")


class RedemptionCallback(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: UUID | None = Field(None, alias="sessionId")


__all__ = [
    "DecoratedCouponResponse",
    "HistoryEntryResponse",
    "IdentifierSubmission",
    "JourneyResponse",
    "RedemptionCallback",
    "RedemptionResponse",
    "RegistrationSignal",
]
