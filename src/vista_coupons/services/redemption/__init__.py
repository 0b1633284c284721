from .codes import DEFAULT_GUEST_PREFIX, DEFAULT_MEMBER_PREFIX, generate_redemption_code
from .countdown import RedemptionCountdown
from .session import RedemptionSession, RedemptionStatus

__all__ = [
    "DEFAULT_GUEST_PREFIX",
    "DEFAULT_MEMBER_PREFIX",
    "RedemptionCountdown",
    "RedemptionSession",
    "RedemptionStatus",
    "generate_redemption_code",
]
