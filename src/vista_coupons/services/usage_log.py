"""Fire-and-forget usage reporting to the outlet's spreadsheet sink."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx
from loguru import logger

from vista_coupons.core.logging import journey_context
from vista_coupons.observability.journey import JourneyObservabilityStore, get_journey_store
from vista_coupons.observability.tracing import journey_span
from vista_coupons.services.redemption.session import RedemptionSession, RedemptionStatus

TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"
EXPIRED_DESCRIPTION_PREFIX = "Expired: "


@dataclass(slots=True, frozen=True)
class UsageRecord:
    identifier: str
    coupon_name: str
    coupon_description: str
    coupon_code: str
    status: RedemptionStatus
    occurred_at: datetime
    member_name: str | None = None
    branch_name: str | None = None
    session_id: str | None = None

    @classmethod
    def for_session(
        cls,
        session: RedemptionSession,
        *,
        identifier: str,
        member_name: str | None,
    ) -> "UsageRecord":
        description = session.coupon.description
        if session.status is RedemptionStatus.EXPIRED:
            description = f"{EXPIRED_DESCRIPTION_PREFIX}{description}"
        return cls(
            identifier=identifier,
            coupon_name=session.coupon.name,
            coupon_description=description,
            coupon_code=session.code,
            status=session.status,
            occurred_at=session.finalized_at or session.started_at,
            member_name=member_name,
            branch_name=session.branch_name,
            session_id=str(session.id),
        )

    def to_payload(self, tz: ZoneInfo) -> dict[str, Any]:
        occurred = self.occurred_at.astimezone(tz) if self.occurred_at.tzinfo else self.occurred_at
        return {
            "action": "log",
            "timestamp": occurred.strftime(TIMESTAMP_FORMAT),
            "identifier": self.identifier,
            "couponName": self.coupon_name,
            "couponDescription": self.coupon_description,
            "couponCode": self.coupon_code,
            "memberName": self.member_name or "",
            "branchName": self.branch_name or "",
            "status": self.status.value,
        }


class UsageLogger:
    """Post usage records to the logging endpoint without ever blocking the journey."""

    def __init__(
        self,
        endpoint_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        enabled: bool = True,
        timeout_seconds: float = 10.0,
        timezone: str = "UTC",
        observability: JourneyObservabilityStore | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._http_client = http_client
        self._enabled = enabled
        self._timeout = timeout_seconds
        self._tz = ZoneInfo(timezone)
        self._observability = observability or get_journey_store()
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: Any, *, http_client: httpx.AsyncClient | None = None) -> "UsageLogger":
        return cls(
            settings.usage_log_endpoint_url,
            http_client=http_client,
            enabled=settings.usage_log_enabled,
            timeout_seconds=settings.usage_log_timeout_seconds,
            timezone=settings.timezone,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled and bool(self._endpoint_url)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, record: UsageRecord) -> None:
        """Schedule ``log`` in the background; the caller never awaits the outcome."""

        if not self.enabled:
            logger.debug("Usage logging disabled; record dropped", coupon_code=record.coupon_code)
            return
        task = asyncio.create_task(self.log(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def log(self, record: UsageRecord) -> bool:
        if not self.enabled:
            return False

        body = json.dumps(record.to_payload(self._tz), ensure_ascii=False)
        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_client = True

        with journey_context(session_id=record.session_id, code=record.coupon_code):
            try:
                with journey_span(
                    "usage_log.post",
                    session_id=record.session_id,
                    code=record.coupon_code,
                    status=record.status,
                    branch=record.branch_name,
                ):
                    response = await client.post(
                        self._endpoint_url,
                        content=body.encode("utf-8"),
                        headers={"Content-Type": "text/plain"},
                    )
                    response.raise_for_status()
            except Exception as exc:
                self._observability.record_usage_log(failed=True)
                logger.warning("Background usage log failed", status=record.status.value, error=str(exc))
                return False
            finally:
                if close_client:
                    await client.aclose()

            self._observability.record_usage_log(failed=False)
            logger.info("Usage logged", status=record.status.value)
        return True

    async def drain(self) -> None:
        """Wait for in-flight background posts."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = ["EXPIRED_DESCRIPTION_PREFIX", "TIMESTAMP_FORMAT", "UsageLogger", "UsageRecord"]
