"""Observability endpoints for the coupon journey."""

from __future__ import annotations

from fastapi import APIRouter

from vista_coupons.observability.journey import get_journey_store

router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get("/journey", summary="Coupon journey telemetry snapshot")
async def get_journey_snapshot() -> dict[str, object]:
    """Validation, branch lookup, finalization and usage-log counters since start."""
    return get_journey_store().snapshot().as_dict()
