"""Decide which promotions are in scope today and which of their coupons are locked."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Callable, Collection, Iterable, Sequence

from vista_coupons.domain.coupons import CouponDefinition, DecoratedCoupon, DecoratedPromotion, Promotion
from vista_coupons.domain.identity import Entitlement

NEAR_EXPIRY_WINDOW = timedelta(hours=48)

Clock = Callable[[], datetime]


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the calendar month containing ``now``."""

    last_day = calendar.monthrange(now.year, now.month)[1]
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = now.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999999)
    return start, end


def overlaps_month(promotion: Promotion, now: datetime) -> bool:
    start_of_month, end_of_month = month_bounds(now)
    return promotion.start_date <= end_of_month and promotion.end_date >= start_of_month


def decorate_coupon(coupon: CouponDefinition, promotion: Promotion, now: datetime) -> DecoratedCoupon:
    started = now >= promotion.start_date
    is_locked = False
    unlocks_on: date | None = None

    if not started:
        is_locked = True
        unlocks_on = promotion.start_date.astimezone(now.tzinfo).date() if now.tzinfo else promotion.start_date.date()
    elif coupon.active_day is not None and now.day < coupon.active_day:
        # Day gate is evaluated against the current month, whichever month the promotion began in.
        is_locked = True
        last_day = calendar.monthrange(now.year, now.month)[1]
        if coupon.active_day <= last_day:
            unlocks_on = date(now.year, now.month, coupon.active_day)

    is_near_expiry = started and (promotion.end_date - now) < NEAR_EXPIRY_WINDOW
    return DecoratedCoupon(
        definition=coupon,
        is_locked=is_locked,
        is_near_expiry=is_near_expiry,
        promotion_start=promotion.start_date,
        unlocks_on=unlocks_on,
    )


def resolve_promotions(promotions: Iterable[Promotion], now: datetime) -> list[DecoratedPromotion]:
    """Return in-scope promotions for ``now``, those with a redeemable coupon first."""

    decorated = [
        DecoratedPromotion(
            promotion=promotion,
            coupons=tuple(decorate_coupon(coupon, promotion, now) for coupon in promotion.coupons),
        )
        for promotion in promotions
        if overlaps_month(promotion, now)
    ]
    return sorted(decorated, key=lambda item: (not item.has_unlocked_coupon, item.promotion.start_date))


def eligible_coupons(
    promotions: Sequence[DecoratedPromotion],
    entitlement: Entitlement,
    used_coupon_ids: Collection[str],
) -> list[DecoratedCoupon]:
    """Flatten decorated promotions into the selection list for one user."""

    used = set(used_coupon_ids)
    coupons: list[DecoratedCoupon] = []
    for promotion in promotions:
        for coupon in promotion.coupons:
            if entitlement is not Entitlement.MEMBER and coupon.is_member_only:
                continue
            if coupon.id in used:
                continue
            coupons.append(coupon)
    return coupons


def member_coupons_available(promotions: Sequence[DecoratedPromotion]) -> bool:
    return any(coupon.is_member_only for promotion in promotions for coupon in promotion.coupons)


class PromotionResolver:
    """Evaluate the static promotion calendar against the injected clock."""

    def __init__(self, promotions: Sequence[Promotion], *, clock: Clock) -> None:
        self._promotions = tuple(promotions)
        self._clock = clock

    @property
    def promotions(self) -> tuple[Promotion, ...]:
        return self._promotions

    def now(self) -> datetime:
        return self._clock()

    def resolve(self, now: datetime | None = None) -> list[DecoratedPromotion]:
        return resolve_promotions(self._promotions, now or self._clock())

    def available_coupons(
        self,
        entitlement: Entitlement,
        used_coupon_ids: Collection[str],
        *,
        now: datetime | None = None,
    ) -> list[DecoratedCoupon]:
        return eligible_coupons(self.resolve(now), entitlement, used_coupon_ids)

    def member_login_available(self, *, now: datetime | None = None) -> bool:
        return member_coupons_available(self.resolve(now))


__all__ = [
    "NEAR_EXPIRY_WINDOW",
    "PromotionResolver",
    "decorate_coupon",
    "eligible_coupons",
    "member_coupons_available",
    "month_bounds",
    "overlaps_month",
    "resolve_promotions",
]
