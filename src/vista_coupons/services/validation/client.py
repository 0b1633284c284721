"""Retrying, timeout-bounded client for the remote member identity service."""

from __future__ import annotations

import asyncio
import json
import re
import secrets
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

import httpx
from loguru import logger

from vista_coupons.core.logging import mask_identifier
from vista_coupons.domain.identity import Invalid, Member, NonMember, ValidationResult
from vista_coupons.observability.journey import JourneyObservabilityStore, get_journey_store
from vista_coupons.observability.tracing import journey_span

from .registry import CallbackRegistry, new_callback_token

Sleep = Callable[[float], Awaitable[None]]

_JSONP_PATTERN = re.compile(r"^\s*(?:/\*\*/\s*)?([A-Za-z_$][\w$]*)\s*\((.*)\)\s*;?\s*$", re.DOTALL)


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


USER_MESSAGES: dict[FailureReason, str] = {
    FailureReason.TIMEOUT: (
        "The connection is taking too long. Please check your internet connection and try again."
    ),
    FailureReason.TRANSPORT: "Temporary server error. Please wait a moment and try again.",
    FailureReason.UNKNOWN: "Unable to verify your information right now. Please try again.",
}


class ValidationAttemptError(RuntimeError):
    """A single validation attempt did not yield a usable response."""

    reason: FailureReason = FailureReason.UNKNOWN


class AttemptTimeoutError(ValidationAttemptError):
    reason = FailureReason.TIMEOUT


class TransportFailureError(ValidationAttemptError):
    """The endpoint answered with something other than the expected callback payload."""

    reason = FailureReason.TRANSPORT


class ValidationNetworkError(RuntimeError):
    """Raised once every attempt has failed; ``message`` is safe to show the user."""

    def __init__(self, reason: FailureReason, *, attempts: int, detail: str | None = None) -> None:
        self.reason = reason
        self.attempts = attempts
        self.detail = detail
        self.message = USER_MESSAGES[reason]
        super().__init__(self.message)

    @classmethod
    def from_attempt_error(cls, error: ValidationAttemptError | None, *, attempts: int) -> "ValidationNetworkError":
        if error is None:
            return cls(FailureReason.UNKNOWN, attempts=attempts)
        return cls(error.reason, attempts=attempts, detail=str(error))


def classify_response(payload: Any) -> ValidationResult:
    """Map a well-formed service response onto the member / non-member / invalid variants."""

    if isinstance(payload, Mapping):
        status = payload.get("status")
        data = payload.get("data")
        if status == "success" and isinstance(data, Mapping):
            return Member(name=data.get("name"), member_id=data.get("memberId"))
        if status == "not_found":
            return NonMember()
    logger.warning("Identity service returned an unexpected response shape", payload=payload)
    return Invalid()


def parse_callback_body(body: str) -> tuple[str | None, Any]:
    """Return ``(callback_token, payload)`` for a JSONP body, or ``(None, payload)`` for bare JSON."""

    match = _JSONP_PATTERN.match(body or "")
    if match:
        callback, raw = match.group(1), match.group(2)
        try:
            return callback, json.loads(raw)
        except ValueError as exc:
            raise TransportFailureError(f"Callback payload is not valid JSON: {exc}") from exc
    try:
        return None, json.loads(body)
    except ValueError as exc:
        raise TransportFailureError("Identity service did not return a callback script") from exc


class IdentityValidationClient:
    """Classify an identifier as member / non-member / invalid against the identity service."""

    def __init__(
        self,
        endpoint_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        registry: CallbackRegistry | None = None,
        max_attempts: int = 2,
        initial_timeout_seconds: float = 35.0,
        timeout_increment_seconds: float = 10.0,
        retry_delay_seconds: float = 2.0,
        sleep: Sleep = asyncio.sleep,
        token_factory: Callable[[], str] = new_callback_token,
        observability: JourneyObservabilityStore | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._client = http_client or httpx.AsyncClient()
        self._owns_client = http_client is None
        self._registry = registry or CallbackRegistry()
        self._max_attempts = max(max_attempts, 1)
        self._initial_timeout = initial_timeout_seconds
        self._timeout_increment = timeout_increment_seconds
        self._retry_delay = max(retry_delay_seconds, 0.0)
        self._sleep = sleep
        self._token_factory = token_factory
        self._observability = observability or get_journey_store()

    @classmethod
    def from_settings(cls, settings: Any, *, http_client: httpx.AsyncClient | None = None) -> "IdentityValidationClient":
        return cls(
            settings.validation_endpoint_url,
            http_client=http_client,
            max_attempts=settings.validation_max_attempts,
            initial_timeout_seconds=settings.validation_initial_timeout_seconds,
            timeout_increment_seconds=settings.validation_timeout_increment_seconds,
            retry_delay_seconds=settings.validation_retry_delay_seconds,
        )

    @property
    def registry(self) -> CallbackRegistry:
        return self._registry

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def timeout_for_attempt(self, attempt: int) -> float:
        return self._initial_timeout + (attempt - 1) * self._timeout_increment

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def validate(self, identifier: str | None) -> ValidationResult:
        """Classify ``identifier``; raises ``ValidationNetworkError`` once retries are exhausted."""

        if not identifier or not identifier.strip():
            logger.info("Empty identifier short-circuited to invalid")
            self._observability.record_validation_outcome("invalid")
            return Invalid()

        last_error: ValidationAttemptError | None = None
        for attempt in range(1, self._max_attempts + 1):
            timeout = self.timeout_for_attempt(attempt)
            self._observability.record_validation_attempt(attempt)
            try:
                result = await self._attempt(identifier, attempt=attempt, timeout=timeout)
            except ValidationAttemptError as exc:
                last_error = exc
                self._observability.record_validation_failure(exc.reason.value)
                logger.warning(
                    "Identity validation attempt failed",
                    identifier=mask_identifier(identifier),
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    timeout_seconds=timeout,
                    reason=exc.reason.value,
                    error=str(exc),
                )
                if attempt >= self._max_attempts:
                    break
                if self._retry_delay:
                    await self._sleep(self._retry_delay)
                continue

            self._observability.record_validation_outcome(result.status.value.lower())
            logger.info(
                "Identity validation completed",
                identifier=mask_identifier(identifier),
                attempt=attempt,
                status=result.status.value,
            )
            return result

        error = ValidationNetworkError.from_attempt_error(last_error, attempts=self._max_attempts)
        logger.error(
            "Identity validation failed after retries",
            identifier=mask_identifier(identifier),
            attempts=self._max_attempts,
            reason=error.reason.value,
        )
        raise error

    async def _attempt(self, identifier: str, *, attempt: int, timeout: float) -> ValidationResult:
        if not self._endpoint_url:
            raise TransportFailureError("Identity validation endpoint is not configured")

        token = self._token_factory()
        future = self._registry.register(token)
        delivery = asyncio.create_task(self._deliver(token, identifier, timeout))
        try:
            with journey_span("identity.validate.attempt", attempt=attempt, timeout_seconds=timeout):
                payload = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise AttemptTimeoutError(f"No response within {timeout:g}s") from exc
        finally:
            self._registry.unregister(token)
            if not delivery.done():
                delivery.cancel()
        return classify_response(payload)

    async def _deliver(self, token: str, identifier: str, timeout: float) -> None:
        params = {
            "memberId": identifier,
            "callback": token,
            "_cache": f"{int(time.time() * 1000)}{secrets.token_hex(3)}",
        }
        try:
            response = await self._client.get(self._endpoint_url, params=params, timeout=timeout)
        except httpx.TimeoutException as exc:
            self._registry.fail(token, AttemptTimeoutError(f"Transport timed out: {exc}"))
            return
        except httpx.HTTPError as exc:
            self._registry.fail(token, TransportFailureError(f"Identity service unreachable: {exc}"))
            return

        if response.status_code >= 400:
            self._registry.fail(
                token,
                TransportFailureError(f"Identity service responded with status {response.status_code}"),
            )
            return

        try:
            callback, payload = parse_callback_body(response.text)
        except TransportFailureError as exc:
            self._registry.fail(token, exc)
            return

        # A body addressed to another token is dropped by the registry; this attempt then times out.
        self._registry.dispatch(callback or token, payload)


__all__ = [
    "AttemptTimeoutError",
    "FailureReason",
    "IdentityValidationClient",
    "TransportFailureError",
    "USER_MESSAGES",
    "ValidationAttemptError",
    "ValidationNetworkError",
    "classify_response",
    "parse_callback_body",
]
