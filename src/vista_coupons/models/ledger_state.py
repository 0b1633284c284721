"""Key/value rows backing the durable usage ledger."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text, func

from vista_coupons.db.base import Base


class LedgerState(Base):
    """One JSON-encoded ledger collection per key (``usedCouponIds``, ``couponHistory``)."""

    __tablename__ = "ledger_state"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
