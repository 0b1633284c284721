from __future__ import annotations

import random
from datetime import datetime

from vista_coupons.domain.coupons import CouponDefinition

DEFAULT_MEMBER_PREFIX = "VM"
DEFAULT_GUEST_PREFIX = "LF"


def generate_redemption_code(
    coupon: CouponDefinition,
    now: datetime,
    *,
    member_prefix: str = DEFAULT_MEMBER_PREFIX,
    guest_prefix: str = DEFAULT_GUEST_PREFIX,
    rng: random.Random | None = None,
) -> str:
    """Build ``{prefix}{DD}{MM}-{NNNN}`` for the staff member at the counter.

    Codes are not checked against earlier ones; a repeat within the same day is
    possible and accepted.
    """

    prefix = member_prefix if coupon.is_member_only else guest_prefix
    suffix = (rng or random).randint(1000, 9999)
    return f"{prefix}{now.day:02d}{now.month:02d}-{suffix}"


__all__ = ["DEFAULT_GUEST_PREFIX", "DEFAULT_MEMBER_PREFIX", "generate_redemption_code"]
