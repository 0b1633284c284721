"""Coupon journey endpoints driven by the kiosk front-end."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import APIRouter, Depends, HTTPException, status

from vista_coupons.api.dependencies.journey import get_journey
from vista_coupons.domain.lifecycle import CouponUnavailableError, InvalidTransitionError, JourneyError
from vista_coupons.schemas.journey import (
    HistoryEntryResponse,
    IdentifierSubmission,
    JourneyResponse,
    RedemptionCallback,
    RegistrationSignal,
)
from vista_coupons.services.journey import CouponJourney, JourneyOverview

router = APIRouter(prefix="/journey", tags=["Journey"])


@contextmanager
def _journey_errors() -> Iterator[None]:
    try:
        yield
    except InvalidTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "view": exc.current_view.value, "event": exc.event},
        ) from exc
    except CouponUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "couponId": exc.coupon_id},
        ) from exc
    except JourneyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


def _respond(overview: JourneyOverview) -> JourneyResponse:
    return JourneyResponse.from_overview(overview)


@router.get("", response_model=JourneyResponse, summary="Current journey snapshot")
async def read_journey(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    return _respond(journey.snapshot())


@router.get("/history", response_model=list[HistoryEntryResponse], summary="Redemption history")
async def read_history(journey: CouponJourney = Depends(get_journey)) -> list[HistoryEntryResponse]:
    return [HistoryEntryResponse.from_domain(entry) for entry in journey.ledger.history]


@router.post("/identifier", response_model=JourneyResponse, summary="Submit a member identifier")
async def submit_identifier(
    payload: IdentifierSubmission,
    journey: CouponJourney = Depends(get_journey),
) -> JourneyResponse:
    """Validate the identifier against the member service; resolves once validation settles."""

    with _journey_errors():
        return _respond(await journey.submit_identifier(payload.identifier))


@router.post("/guest", response_model=JourneyResponse)
async def proceed_as_guest(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    with _journey_errors():
        return _respond(journey.proceed_as_guest())


@router.post("/member/confirm", response_model=JourneyResponse)
async def confirm_member(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    with _journey_errors():
        return _respond(journey.confirm_member())


@router.post("/member/reject", response_model=JourneyResponse)
async def reject_member(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    with _journey_errors():
        return _respond(journey.reject_member())


@router.post("/coupons/{coupon_id}/select", response_model=JourneyResponse)
async def select_coupon(coupon_id: str, journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    with _journey_errors():
        return _respond(journey.select_coupon(coupon_id))


@router.post("/coupon/use", response_model=JourneyResponse, summary="Confirm use and issue a code")
async def use_coupon(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    with _journey_errors():
        return _respond(await journey.use_coupon())


@router.post("/redemption/complete", response_model=JourneyResponse)
async def complete_redemption(
    payload: RedemptionCallback | None = None,
    journey: CouponJourney = Depends(get_journey),
) -> JourneyResponse:
    with _journey_errors():
        return _respond(await journey.complete_redemption(payload.session_id if payload else None))


@router.post("/redemption/expire", response_model=JourneyResponse)
async def expire_redemption(
    payload: RedemptionCallback | None = None,
    journey: CouponJourney = Depends(get_journey),
) -> JourneyResponse:
    with _journey_errors():
        return _respond(await journey.expire_redemption(payload.session_id if payload else None))


@router.post("/back", response_model=JourneyResponse)
async def back_to_selection(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    with _journey_errors():
        return _respond(journey.back_to_selection())


@router.post("/history", response_model=JourneyResponse)
async def view_history(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    with _journey_errors():
        return _respond(journey.view_history())


@router.post("/register", response_model=JourneyResponse)
async def open_registration(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    with _journey_errors():
        return _respond(journey.open_registration())


@router.post("/registration-success", response_model=JourneyResponse)
async def registration_success(
    payload: RegistrationSignal,
    journey: CouponJourney = Depends(get_journey),
) -> JourneyResponse:
    """Signal from the registration form; the new identifier is auto-submitted after a settle delay."""

    with _journey_errors():
        return _respond(journey.receive_registration_success(payload.identifier))


@router.post("/reset", response_model=JourneyResponse)
async def reset_journey(journey: CouponJourney = Depends(get_journey)) -> JourneyResponse:
    return _respond(journey.reset())
