"""Request dependencies resolving the process-wide journey engine."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from vista_coupons.services.journey import CouponJourney


def get_journey(request: Request) -> CouponJourney:
    journey = getattr(request.app.state, "coupon_journey", None)
    if journey is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Coupon journey is not initialised",
        )
    return journey
