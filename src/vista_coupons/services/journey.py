"""Coupon journey engine: applies lifecycle transitions and performs their side effects."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Protocol
from uuid import UUID

from loguru import logger

from vista_coupons.core.logging import journey_context
from vista_coupons.domain.coupons import CouponDefinition, DecoratedCoupon
from vista_coupons.domain.identity import Entitlement, ValidationResult, is_well_formed_identifier
from vista_coupons.domain.lifecycle import (
    GUEST_PROFILE,
    BackToSelection,
    CouponIssued,
    CouponPrepared,
    CouponSelected,
    CouponSelection,
    CouponUnavailableError,
    Error,
    GuestProceeded,
    HistoryRequested,
    IdentifierSubmitted,
    InvalidTransitionError,
    JourneyEvent,
    JourneyState,
    LocatingBranch,
    Login,
    MemberConfirmation,
    MemberConfirmed,
    MemberRejected,
    Profile,
    RedemptionCompleted,
    RedemptionExpired,
    RegisterRequested,
    RegistrationSucceeded,
    ResetRequested,
    Used,
    UseConfirmed,
    ValidatingIdentity,
    ValidationCompleted,
    ValidationFailed,
    View,
    profile_of,
    transition,
)
from vista_coupons.observability.journey import JourneyObservabilityStore, get_journey_store
from vista_coupons.observability.tracing import journey_span
from vista_coupons.services.branches import BranchLocator, NullBranchLocator
from vista_coupons.services.ledger.store import HistoryEntry, Ledger, LedgerRepository
from vista_coupons.services.promotions.resolver import PromotionResolver
from vista_coupons.services.redemption.codes import (
    DEFAULT_GUEST_PREFIX,
    DEFAULT_MEMBER_PREFIX,
    generate_redemption_code,
)
from vista_coupons.services.redemption.countdown import RedemptionCountdown
from vista_coupons.services.redemption.session import RedemptionSession, RedemptionStatus
from vista_coupons.services.usage_log import UsageLogger, UsageRecord
from vista_coupons.services.validation.client import USER_MESSAGES, FailureReason, ValidationNetworkError

Sleep = Callable[[float], Awaitable[None]]


class IdentityValidator(Protocol):
    async def validate(self, identifier: str | None) -> ValidationResult:
        ...


@dataclass(slots=True)
class JourneyOverview:
    """Read model of the journey handed to the rendering layer."""

    view: View
    state: JourneyState
    identifier: str | None = None
    member_name: str | None = None
    entitlement: Entitlement | None = None
    error_message: str | None = None
    auto_login_id: str | None = None
    selected_coupon: CouponDefinition | None = None
    redemption: RedemptionSession | None = None
    coupons: list[DecoratedCoupon] = field(default_factory=list)
    member_login_available: bool = False
    history: list[HistoryEntry] = field(default_factory=list)


class CouponJourney:
    """Single-device coupon journey.

    All work runs on one event loop. Results of asynchronous steps are tagged
    with the epoch current when the step started; a reset, a new submission or
    navigation away bumps the epoch and the late result is dropped.
    """

    def __init__(
        self,
        *,
        validator: IdentityValidator,
        resolver: PromotionResolver,
        ledger_store: LedgerRepository,
        usage_logger: UsageLogger | None = None,
        branch_locator: BranchLocator | None = None,
        branch_lookup_timeout_seconds: float = 10.0,
        member_code_prefix: str = DEFAULT_MEMBER_PREFIX,
        guest_code_prefix: str = DEFAULT_GUEST_PREFIX,
        countdown_seconds: float = 300,
        settle_delay_seconds: float = 3.0,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
        observability: JourneyObservabilityStore | None = None,
    ) -> None:
        self._validator = validator
        self._resolver = resolver
        self._ledger_store = ledger_store
        self._usage_logger = usage_logger
        self._branch_locator = branch_locator or NullBranchLocator()
        self._branch_timeout = branch_lookup_timeout_seconds
        self._member_prefix = member_code_prefix
        self._guest_prefix = guest_code_prefix
        self._countdown_seconds = countdown_seconds
        self._settle_delay = settle_delay_seconds
        self._sleep = sleep
        self._rng = rng
        self._observability = observability or get_journey_store()

        self._state: JourneyState = Login()
        self._ledger = Ledger()
        self._epoch = 0
        self._countdown: RedemptionCountdown | None = None
        self._auto_submit_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        *,
        validator: IdentityValidator,
        resolver: PromotionResolver,
        ledger_store: LedgerRepository,
        usage_logger: UsageLogger | None = None,
        branch_locator: BranchLocator | None = None,
    ) -> "CouponJourney":
        return cls(
            validator=validator,
            resolver=resolver,
            ledger_store=ledger_store,
            usage_logger=usage_logger,
            branch_locator=branch_locator,
            branch_lookup_timeout_seconds=settings.branch_lookup_timeout_seconds,
            member_code_prefix=settings.member_code_prefix,
            guest_code_prefix=settings.guest_code_prefix,
            countdown_seconds=settings.redemption_countdown_seconds,
            settle_delay_seconds=settings.registration_settle_delay_seconds,
        )

    @property
    def state(self) -> JourneyState:
        return self._state

    @property
    def ledger(self) -> Ledger:
        return self._ledger.copy()

    # Lifecycle

    async def start(self) -> None:
        self._ledger = await self._ledger_store.load()
        self._state = Login()
        logger.info(
            "Coupon journey started",
            used_coupons=len(self._ledger.used_coupon_ids),
            history_entries=len(self._ledger.history),
        )

    async def aclose(self) -> None:
        self._cancel_countdown()
        self._cancel_auto_submit()
        if self._usage_logger is not None:
            await self._usage_logger.drain()

    # Identity

    async def submit_identifier(self, identifier: str | None) -> JourneyOverview:
        identifier = (identifier or "").strip()
        next_state = transition(self._state, IdentifierSubmitted(identifier))
        if next_state is self._state:
            logger.info("Ignored malformed identifier", length=len(identifier))
            return self.snapshot()

        epoch = self._advance_epoch()
        self._cancel_auto_submit()
        self._set_state(next_state, "IdentifierSubmitted")

        event: JourneyEvent
        try:
            result = await self._validator.validate(identifier)
        except ValidationNetworkError as exc:
            event = ValidationFailed(exc.message)
        except Exception:
            logger.exception("Identity validation raised unexpectedly")
            event = ValidationFailed(USER_MESSAGES[FailureReason.UNKNOWN])
        else:
            event = ValidationCompleted(result)

        if epoch != self._epoch or not isinstance(self._state, ValidatingIdentity):
            logger.info("Discarded stale validation result", event=type(event).__name__)
            return self.snapshot()

        self._apply(event)
        return self.snapshot()

    def proceed_as_guest(self) -> JourneyOverview:
        self._advance_epoch()
        self._apply(GuestProceeded())
        return self.snapshot()

    def confirm_member(self) -> JourneyOverview:
        self._apply(MemberConfirmed())
        return self.snapshot()

    def reject_member(self) -> JourneyOverview:
        self._apply(MemberRejected())
        return self.snapshot()

    # Coupons

    def available_coupons(self) -> list[DecoratedCoupon]:
        profile = profile_of(self._state)
        if profile is None:
            return []
        return self._resolver.available_coupons(profile.entitlement, self._ledger.used_coupon_ids)

    def select_coupon(self, coupon_id: str) -> JourneyOverview:
        if not isinstance(self._state, CouponSelection):
            raise InvalidTransitionError(self._state.view, CouponSelected.__name__)

        match = next((coupon for coupon in self.available_coupons() if coupon.id == coupon_id), None)
        if match is None or match.is_locked:
            raise CouponUnavailableError(coupon_id)

        self._apply(CouponSelected(match.definition))
        return self.snapshot()

    async def use_coupon(self) -> JourneyOverview:
        next_state = transition(self._state, UseConfirmed())
        epoch = self._advance_epoch()
        self._set_state(next_state, "UseConfirmed")

        branch_name = await self._locate_branch()
        state = self._state
        if epoch != self._epoch or not isinstance(state, LocatingBranch):
            logger.info("Discarded stale branch lookup")
            return self.snapshot()

        now = self._resolver.now()
        code = generate_redemption_code(
            state.coupon,
            now,
            member_prefix=self._member_prefix,
            guest_prefix=self._guest_prefix,
            rng=self._rng,
        )
        session = RedemptionSession(coupon=state.coupon, code=code, branch_name=branch_name, started_at=now)
        self._apply(CouponPrepared(session))
        logger.info(
            "Coupon issued",
            coupon_id=state.coupon.id,
            session_id=str(session.id),
            code=code,
            branch=branch_name,
        )
        self._start_countdown(session)
        return self.snapshot()

    async def complete_redemption(self, session_id: UUID | None = None) -> JourneyOverview:
        return await self._close_redemption(session_id, RedemptionStatus.USED, RedemptionCompleted())

    async def expire_redemption(self, session_id: UUID | None = None) -> JourneyOverview:
        return await self._close_redemption(session_id, RedemptionStatus.EXPIRED, RedemptionExpired())

    def back_to_selection(self) -> JourneyOverview:
        state = self._state
        next_state = transition(state, BackToSelection())
        self._advance_epoch()
        self._cancel_countdown()
        if isinstance(state, CouponIssued) and not state.session.is_finalized:
            logger.info(
                "Discarded unfinalized redemption",
                coupon_id=state.session.coupon.id,
                session_id=str(state.session.id),
            )
        self._set_state(next_state, "BackToSelection")
        return self.snapshot()

    def view_history(self) -> JourneyOverview:
        self._apply(HistoryRequested())
        return self.snapshot()

    # Registration

    def open_registration(self) -> JourneyOverview:
        self._advance_epoch()
        self._cancel_countdown()
        self._apply(RegisterRequested())
        return self.snapshot()

    def receive_registration_success(self, identifier: str | None) -> JourneyOverview:
        identifier = (identifier or "").strip()
        if not is_well_formed_identifier(identifier):
            logger.warning("Ignored registration signal with malformed identifier", length=len(identifier))
            return self.snapshot()

        epoch = self._advance_epoch()
        self._cancel_countdown()
        self._cancel_auto_submit()
        self._apply(RegistrationSucceeded(identifier))
        self._auto_submit_task = asyncio.create_task(self._auto_submit(identifier, epoch))
        return self.snapshot()

    def reset(self) -> JourneyOverview:
        self._advance_epoch()
        self._cancel_countdown()
        self._cancel_auto_submit()
        self._apply(ResetRequested())
        return self.snapshot()

    # Read model

    def snapshot(self) -> JourneyOverview:
        state = self._state
        profile = profile_of(state)
        overview = JourneyOverview(view=state.view, state=state)

        if profile is not None:
            overview.identifier = profile.identity.identifier
            overview.member_name = profile.member_name
            overview.entitlement = profile.entitlement
        elif isinstance(state, (ValidatingIdentity, MemberConfirmation)):
            overview.identifier = state.identifier
            if isinstance(state, MemberConfirmation):
                overview.member_name = state.member_name

        if isinstance(state, Error):
            overview.error_message = state.message
        elif isinstance(state, Login):
            overview.auto_login_id = state.auto_login_id
        elif isinstance(state, CouponSelection):
            overview.coupons = self.available_coupons()
            overview.member_login_available = profile.is_guest and self._resolver.member_login_available()

        coupon = getattr(state, "coupon", None)
        session = getattr(state, "session", None)
        if session is not None:
            overview.redemption = session
            coupon = session.coupon
        overview.selected_coupon = coupon

        if state.view is View.HISTORY:
            overview.history = list(self._ledger.history)
        return overview

    # Internals

    def _advance_epoch(self) -> int:
        self._epoch += 1
        return self._epoch

    def _apply(self, event: JourneyEvent) -> None:
        self._set_state(transition(self._state, event), type(event).__name__)

    def _set_state(self, next_state: JourneyState, event_name: str) -> None:
        previous = self._state
        self._state = next_state
        if next_state is not previous:
            logger.info(
                "Journey transition",
                event=event_name,
                from_view=previous.view.value,
                to_view=next_state.view.value,
            )

    def _current_session(self, session_id: UUID | None, event_name: str) -> RedemptionSession | None:
        state = self._state
        session = state.session if isinstance(state, (CouponIssued, Used)) else None
        if session_id is not None and (session is None or session.id != session_id):
            logger.info("Ignored callback for inactive redemption", event=event_name, session_id=str(session_id))
            return None
        if session is None:
            raise InvalidTransitionError(state.view, event_name)
        return session

    async def _close_redemption(
        self,
        session_id: UUID | None,
        status: RedemptionStatus,
        event: JourneyEvent,
    ) -> JourneyOverview:
        event_name = type(event).__name__
        session = self._current_session(session_id, event_name)
        if session is None:
            return self.snapshot()
        # Read before any await; the state may move on while the ledger is saved.
        profile = profile_of(self._state) or GUEST_PROFILE
        self._cancel_countdown()

        with journey_context(session_id=session.id, coupon_id=session.coupon.id, code=session.code):
            if not await self._finalize(session, status, profile):
                return self.snapshot()

            state = self._state
            if isinstance(state, CouponIssued) and state.session.id == session.id:
                self._apply(event)
            else:
                logger.info("Redemption transition superseded", event=event_name, view=state.view.value)
        return self.snapshot()

    async def _finalize(self, session: RedemptionSession, status: RedemptionStatus, profile: Profile) -> bool:
        """Record the terminal disposition of ``session`` exactly once."""

        now = self._resolver.now()
        if not session.finalize(status, at=now):
            self._observability.record_duplicate_finalization()
            logger.info(
                "Suppressed duplicate finalization",
                requested=status.value,
                current=session.status.value,
            )
            return False

        self._ledger.record(
            HistoryEntry(coupon=session.coupon, status=status, date=now.isoformat(), code=session.code)
        )
        self._observability.record_finalization(status.value)
        logger.info("Redemption finalized", status=status.value)

        if self._usage_logger is not None:
            self._usage_logger.dispatch(
                UsageRecord.for_session(
                    session,
                    identifier=profile.identity.identifier,
                    member_name=profile.member_name,
                )
            )

        with journey_span("ledger.save", session_id=session.id, status=status):
            try:
                await self._ledger_store.save(self._ledger)
            except Exception:
                logger.exception("Failed to persist ledger")
        return True

    async def _locate_branch(self) -> str | None:
        try:
            with journey_span("branch.locate", timeout_seconds=self._branch_timeout):
                lookup = await asyncio.wait_for(self._branch_locator.locate(), timeout=self._branch_timeout)
        except asyncio.TimeoutError:
            self._observability.record_branch_lookup("timeout")
            logger.warning("Branch lookup timed out", timeout_seconds=self._branch_timeout)
            return None
        except Exception as exc:
            self._observability.record_branch_lookup("failed")
            logger.warning("Branch lookup failed", error=str(exc))
            return None

        if lookup.branch is None:
            self._observability.record_branch_lookup("not_found")
            return None
        self._observability.record_branch_lookup("found")
        return lookup.branch.name

    def _start_countdown(self, session: RedemptionSession) -> None:
        self._cancel_countdown()
        if self._countdown_seconds <= 0:
            return
        self._countdown = RedemptionCountdown(
            session.id,
            self._countdown_seconds,
            self._on_countdown_elapsed,
            sleep=self._sleep,
        )
        self._countdown.start()

    async def _on_countdown_elapsed(self, session_id: UUID) -> None:
        # Detach first so the expiry path does not cancel the task running it.
        self._countdown = None
        await self.expire_redemption(session_id)

    def _cancel_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    def _cancel_auto_submit(self) -> None:
        task = self._auto_submit_task
        self._auto_submit_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _auto_submit(self, identifier: str, epoch: int) -> None:
        await self._sleep(self._settle_delay)
        if epoch != self._epoch or not isinstance(self._state, Login):
            logger.info("Auto-submit superseded")
            return
        self._auto_submit_task = None
        logger.info("Auto-submitting registered identifier")
        await self.submit_identifier(identifier)


__all__ = ["CouponJourney", "IdentityValidator", "JourneyOverview"]
