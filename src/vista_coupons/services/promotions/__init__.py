from .catalog import PromotionCalendar, PromotionCalendarError, load_promotion_calendar, parse_promotion_calendar
from .resolver import (
    NEAR_EXPIRY_WINDOW,
    PromotionResolver,
    eligible_coupons,
    member_coupons_available,
    resolve_promotions,
)

__all__ = [
    "NEAR_EXPIRY_WINDOW",
    "PromotionCalendar",
    "PromotionCalendarError",
    "PromotionResolver",
    "eligible_coupons",
    "load_promotion_calendar",
    "member_coupons_available",
    "parse_promotion_calendar",
    "resolve_promotions",
]
