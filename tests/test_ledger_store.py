from __future__ import annotations

import json

import pytest

from vista_coupons.services.ledger import (
    COUPON_HISTORY_KEY,
    USED_COUPON_IDS_KEY,
    HistoryEntry,
    InMemoryKeyValueBackend,
    Ledger,
    LedgerStore,
    SqlKeyValueBackend,
)
from vista_coupons.services.redemption import RedemptionStatus

from factories import make_coupon


def _entry(coupon_id: str, status: RedemptionStatus = RedemptionStatus.USED, date: str = "2026-10-10T05:00:00+00:00"):
    return HistoryEntry(coupon=make_coupon(coupon_id), status=status, date=date, code=f"LF1010-{1000 + len(coupon_id)}")


def test_record_deduplicates_ids_and_prepends_history() -> None:
    ledger = Ledger()

    ledger.record(_entry("C1"))
    ledger.record(_entry("C2", RedemptionStatus.EXPIRED))
    ledger.record(_entry("C1"))

    assert ledger.used_coupon_ids == ["C1", "C2"]
    assert [entry.coupon.id for entry in ledger.history] == ["C1", "C2", "C1"]
    assert ledger.has_used("C2")


def test_copy_is_independent() -> None:
    ledger = Ledger()
    ledger.record(_entry("C1"))

    snapshot = ledger.copy()
    ledger.record(_entry("C2"))

    assert snapshot.used_coupon_ids == ["C1"]
    assert len(snapshot.history) == 1


@pytest.mark.asyncio
async def test_saved_ledger_reloads_identically() -> None:
    backend = InMemoryKeyValueBackend()
    store = LedgerStore(backend)
    ledger = Ledger()
    ledger.record(_entry("C1"))
    ledger.record(_entry("C2", RedemptionStatus.EXPIRED, date="2026-10-11T05:00:00+00:00"))

    await store.save(ledger)
    reloaded = await store.load()
    await store.save(reloaded)

    assert reloaded == ledger
    assert json.loads(backend.values[USED_COUPON_IDS_KEY]) == ["C1", "C2"]


@pytest.mark.asyncio
async def test_persisted_layout_uses_two_keys() -> None:
    backend = InMemoryKeyValueBackend()
    ledger = Ledger()
    ledger.record(_entry("C1"))

    await LedgerStore(backend).save(ledger)

    [history] = json.loads(backend.values[COUPON_HISTORY_KEY])
    assert set(history) == {"coupon", "status", "date", "couponCode"}
    assert history["status"] == "Used"
    assert history["coupon"]["cardTitle"] == "Card C1"


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["not json", "{\"C1\": true}", "42"])
async def test_unreadable_keys_fall_back_to_empty(raw: str) -> None:
    backend = InMemoryKeyValueBackend({USED_COUPON_IDS_KEY: raw, COUPON_HISTORY_KEY: raw})

    ledger = await LedgerStore(backend).load()

    assert ledger.used_coupon_ids == []
    assert ledger.history == []


@pytest.mark.asyncio
async def test_bad_history_items_are_skipped_individually() -> None:
    good = _entry("C1").to_payload()
    backend = InMemoryKeyValueBackend(
        {
            USED_COUPON_IDS_KEY: json.dumps(["C1", "C1", 7, "C2"]),
            COUPON_HISTORY_KEY: json.dumps(
                [
                    good,
                    {"coupon": {"id": "X"}, "status": "Used", "date": "2026-10-10"},
                    {"coupon": good["coupon"], "status": "Pending", "date": "2026-10-10"},
                    "garbage",
                ]
            ),
        }
    )

    ledger = await LedgerStore(backend).load()

    assert ledger.used_coupon_ids == ["C1", "C2"]
    assert [entry.coupon.id for entry in ledger.history] == ["C1"]


@pytest.mark.asyncio
async def test_sql_backend_round_trip(session_factory) -> None:
    store = LedgerStore(SqlKeyValueBackend(session_factory))
    ledger = Ledger()
    ledger.record(_entry("C1"))

    await store.save(ledger)
    ledger.record(_entry("C2", RedemptionStatus.EXPIRED))
    await store.save(ledger)

    reloaded = await LedgerStore(SqlKeyValueBackend(session_factory)).load()

    assert reloaded.used_coupon_ids == ["C1", "C2"]
    assert [entry.status for entry in reloaded.history] == [RedemptionStatus.EXPIRED, RedemptionStatus.USED]


@pytest.mark.asyncio
async def test_sql_backend_missing_keys_load_empty(session_factory) -> None:
    ledger = await LedgerStore(SqlKeyValueBackend(session_factory)).load()

    assert ledger == Ledger()
