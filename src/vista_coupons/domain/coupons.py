"""Promotion calendar and coupon definitions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CouponDefinition(BaseModel):
    """Immutable coupon configuration; serialized camelCase for the kiosk UI and history snapshots."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    card_title: str = Field(..., alias="cardTitle")
    description: str
    is_member_only: bool = Field(False, alias="isMemberOnly")
    usage_limit: str = Field("", alias="usageLimit")
    image_url: str | None = Field(None, alias="imageUrl")
    validity_period: str = Field("", alias="validityPeriod")
    details: str = ""
    terms: str = ""
    active_day: int | None = Field(None, alias="activeDay", ge=1, le=31)

    def snapshot(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Promotion(BaseModel):
    """A dated grouping of coupons sharing one active window."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    week: int
    period: str
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")
    coupons: tuple[CouponDefinition, ...] = ()

    @model_validator(mode="after")
    def _window_is_ordered(self) -> "Promotion":
        if self.start_date > self.end_date:
            raise ValueError(
                f"Promotion week {self.week} starts after it ends "
                f"({self.start_date.isoformat()} > {self.end_date.isoformat()})"
            )
        return self


@dataclass(slots=True, frozen=True)
class DecoratedCoupon:
    """Coupon definition plus the lock/expiry flags derived for one point in time."""

    definition: CouponDefinition
    is_locked: bool
    is_near_expiry: bool
    promotion_start: datetime
    unlocks_on: date | None = None

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def is_member_only(self) -> bool:
        return self.definition.is_member_only


@dataclass(slots=True, frozen=True)
class DecoratedPromotion:
    promotion: Promotion
    coupons: tuple[DecoratedCoupon, ...]

    @property
    def has_unlocked_coupon(self) -> bool:
        return any(not coupon.is_locked for coupon in self.coupons)


__all__ = ["CouponDefinition", "DecoratedCoupon", "DecoratedPromotion", "Promotion"]
