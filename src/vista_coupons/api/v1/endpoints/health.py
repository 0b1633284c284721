from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz", summary="Service health check")
async def service_health(request: Request) -> dict[str, str]:
    journey = getattr(request.app.state, "coupon_journey", None)
    return {
        "status": "ok",
        "journey": journey.state.view.value if journey is not None else "starting",
    }
