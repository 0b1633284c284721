from __future__ import annotations

import asyncio
import random
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from vista_coupons.domain.coupons import CouponDefinition, Promotion
from vista_coupons.domain.identity import NonMember
from vista_coupons.observability.journey import JourneyObservabilityStore
from vista_coupons.services.journey import CouponJourney
from vista_coupons.services.ledger import InMemoryKeyValueBackend, LedgerStore
from vista_coupons.services.promotions import PromotionResolver

TZ = ZoneInfo("Asia/Bangkok")
DEFAULT_NOW = datetime(2026, 10, 10, 12, 0, tzinfo=TZ)
OCTOBER_START = datetime(2026, 10, 1, 0, 0, tzinfo=TZ)
OCTOBER_END = datetime(2026, 10, 31, 23, 59, 59, tzinfo=TZ)


def make_coupon(
    coupon_id: str = "C1",
    *,
    member_only: bool = False,
    active_day: int | None = None,
    **overrides: Any,
) -> CouponDefinition:
    data: dict[str, Any] = {
        "id": coupon_id,
        "name": f"Coupon {coupon_id}",
        "card_title": f"Card {coupon_id}",
        "description": f"Description {coupon_id}",
        "is_member_only": member_only,
        "usage_limit": "1 per device",
        "validity_period": "October",
        "active_day": active_day,
    }
    data.update(overrides)
    return CouponDefinition(**data)


def make_promotion(
    *coupons: CouponDefinition,
    week: int = 1,
    start: datetime = OCTOBER_START,
    end: datetime = OCTOBER_END,
) -> Promotion:
    return Promotion(week=week, period=f"Week {week}", start_date=start, end_date=end, coupons=coupons)


def default_promotions() -> list[Promotion]:
    return [
        make_promotion(
            make_coupon("C1"),
            make_coupon("M1", member_only=True),
            make_coupon("D15", active_day=15),
        )
    ]


class FrozenClock:
    def __init__(self, now: datetime = DEFAULT_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingSleep:
    """Returns immediately, remembering the requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class GatedSleep:
    """Blocks until ``release`` is called."""

    def __init__(self) -> None:
        self.calls: list[float] = []
        self._event = asyncio.Event()

    def release(self) -> None:
        self._event.set()

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await self._event.wait()


class StubValidator:
    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[str | None] = []
        self.gate: asyncio.Event | None = None

    async def validate(self, identifier: str | None):
        self.calls.append(identifier)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else NonMember()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def build_journey(
    *,
    validator: Any = None,
    backend: InMemoryKeyValueBackend | None = None,
    ledger_store: Any = None,
    clock: FrozenClock | None = None,
    promotions: list[Promotion] | None = None,
    observability: JourneyObservabilityStore | None = None,
    **kwargs: Any,
) -> CouponJourney:
    kwargs.setdefault("countdown_seconds", 0)
    kwargs.setdefault("sleep", RecordingSleep())
    kwargs.setdefault("rng", random.Random(7))
    resolver = PromotionResolver(
        promotions if promotions is not None else default_promotions(),
        clock=clock or FrozenClock(),
    )
    return CouponJourney(
        validator=validator or StubValidator(),
        resolver=resolver,
        ledger_store=ledger_store or LedgerStore(backend if backend is not None else InMemoryKeyValueBackend()),
        observability=observability or JourneyObservabilityStore(),
        **kwargs,
    )


async def settle(rounds: int = 5) -> None:
    """Let background tasks scheduled on the loop run."""

    for _ in range(rounds):
        await asyncio.sleep(0)
