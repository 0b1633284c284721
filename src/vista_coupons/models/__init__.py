from .ledger_state import LedgerState

__all__ = ["LedgerState"]
