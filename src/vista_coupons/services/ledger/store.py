"""Durable record of consumed coupons and the redemption history."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from vista_coupons.domain.coupons import CouponDefinition
from vista_coupons.models.ledger_state import LedgerState
from vista_coupons.services.redemption.session import RedemptionStatus

USED_COUPON_IDS_KEY = "usedCouponIds"
COUPON_HISTORY_KEY = "couponHistory"


@dataclass(slots=True)
class HistoryEntry:
    coupon: CouponDefinition
    status: RedemptionStatus
    date: str
    code: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "coupon": self.coupon.snapshot(),
            "status": self.status.value,
            "date": self.date,
            "couponCode": self.code,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "HistoryEntry":
        if not isinstance(payload, Mapping):
            raise ValueError("History entry must be an object")
        status = RedemptionStatus(payload.get("status"))
        if not status.is_terminal:
            raise ValueError(f"History entry has non-terminal status {status.value}")
        date = payload.get("date")
        if not isinstance(date, str) or not date:
            raise ValueError("History entry is missing its date")
        code = payload.get("couponCode", "")
        return cls(
            coupon=CouponDefinition.model_validate(payload.get("coupon")),
            status=status,
            date=date,
            code=str(code),
        )


@dataclass(slots=True)
class Ledger:
    used_coupon_ids: list[str] = field(default_factory=list)
    history: list[HistoryEntry] = field(default_factory=list)

    def has_used(self, coupon_id: str) -> bool:
        return coupon_id in self.used_coupon_ids

    def record(self, entry: HistoryEntry) -> None:
        """Mark the coupon consumed and put the entry at the head of the history."""

        if entry.coupon.id not in self.used_coupon_ids:
            self.used_coupon_ids.append(entry.coupon.id)
        self.history.insert(0, entry)

    def copy(self) -> "Ledger":
        return Ledger(used_coupon_ids=list(self.used_coupon_ids), history=list(self.history))


class LedgerRepository(Protocol):
    async def load(self) -> Ledger:
        ...

    async def save(self, ledger: Ledger) -> None:
        ...


class KeyValueBackend(Protocol):
    """Storage for independently persisted string values."""

    async def read(self, key: str) -> str | None:
        ...

    async def write(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueBackend:
    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    async def read(self, key: str) -> str | None:
        return self.values.get(key)

    async def write(self, key: str, value: str) -> None:
        self.values[key] = value


class SqlKeyValueBackend:
    """Ledger keys stored as rows of ``ledger_state``."""

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory

    async def read(self, key: str) -> str | None:
        async with self._session_factory() as session:
            row = await session.get(LedgerState, key)
            return row.value if row is not None else None

    async def write(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            row = await session.get(LedgerState, key)
            if row is None:
                session.add(LedgerState(key=key, value=value))
            else:
                row.value = value
            await session.commit()


class LedgerStore:
    """Load/save the ledger as two JSON arrays under separate keys."""

    def __init__(self, backend: KeyValueBackend) -> None:
        self._backend = backend

    async def load(self) -> Ledger:
        used_raw = await self._read_array(USED_COUPON_IDS_KEY)
        history_raw = await self._read_array(COUPON_HISTORY_KEY)

        used_ids: list[str] = []
        for item in used_raw:
            if isinstance(item, str) and item not in used_ids:
                used_ids.append(item)

        history: list[HistoryEntry] = []
        for index, item in enumerate(history_raw):
            try:
                history.append(HistoryEntry.from_payload(item))
            except (ValueError, ValidationError) as exc:
                logger.warning("Skipping unreadable history entry", index=index, error=str(exc))

        logger.info("Ledger loaded", used_coupons=len(used_ids), history_entries=len(history))
        return Ledger(used_coupon_ids=used_ids, history=history)

    async def save(self, ledger: Ledger) -> None:
        await self._backend.write(USED_COUPON_IDS_KEY, json.dumps(list(ledger.used_coupon_ids), ensure_ascii=False))
        await self._backend.write(
            COUPON_HISTORY_KEY,
            json.dumps([entry.to_payload() for entry in ledger.history], ensure_ascii=False),
        )

    async def _read_array(self, key: str) -> list[Any]:
        raw = await self._backend.read(key)
        if raw is None:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            logger.warning("Ledger key is not valid JSON; starting empty", key=key, error=str(exc))
            return []
        if not isinstance(parsed, list):
            logger.warning("Ledger key is not an array; starting empty", key=key, type=type(parsed).__name__)
            return []
        return parsed


__all__ = [
    "COUPON_HISTORY_KEY",
    "HistoryEntry",
    "InMemoryKeyValueBackend",
    "KeyValueBackend",
    "Ledger",
    "LedgerRepository",
    "LedgerStore",
    "SqlKeyValueBackend",
    "USED_COUPON_IDS_KEY",
]
