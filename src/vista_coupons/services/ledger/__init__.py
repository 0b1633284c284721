from .store import (
    COUPON_HISTORY_KEY,
    USED_COUPON_IDS_KEY,
    HistoryEntry,
    InMemoryKeyValueBackend,
    KeyValueBackend,
    Ledger,
    LedgerRepository,
    LedgerStore,
    SqlKeyValueBackend,
)

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
