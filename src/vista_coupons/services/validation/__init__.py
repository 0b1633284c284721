from .client import (
    USER_MESSAGES,
    AttemptTimeoutError,
    FailureReason,
    IdentityValidationClient,
    TransportFailureError,
    ValidationAttemptError,
    ValidationNetworkError,
    classify_response,
    parse_callback_body,
)
from .registry import CallbackRegistry, new_callback_token

__all__ = [
    "AttemptTimeoutError",
    "CallbackRegistry",
    "FailureReason",
    "IdentityValidationClient",
    "TransportFailureError",
    "USER_MESSAGES",
    "ValidationAttemptError",
    "ValidationNetworkError",
    "classify_response",
    "new_callback_token",
    "parse_callback_body",
]
