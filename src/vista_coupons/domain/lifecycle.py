"""Coupon journey states, events and the pure transition function.

``transition`` never performs I/O. The journey engine feeds it events produced
by user actions and by completed asynchronous work (identity validation,
branch lookup, redemption callbacks) and applies whatever state it returns.
An event a state does not accept raises ``InvalidTransitionError``; a few
events are deliberately ignored instead (malformed identifiers, completion of
an already-expired session, the expiry notice itself) and come back as the
unchanged state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from vista_coupons.domain.coupons import CouponDefinition
from vista_coupons.domain.identity import (
    GUEST_IDENTIFIER,
    Entitlement,
    Invalid,
    Member,
    NonMember,
    UserIdentity,
    ValidationResult,
    is_well_formed_identifier,
)
from vista_coupons.services.redemption.session import RedemptionSession, RedemptionStatus

INVALID_IDENTITY_MESSAGE = "The information is incorrect or the entitlement has been fully used."


class View(str, Enum):
    LOGIN = "LOGIN"
    VALIDATING = "VALIDATING"
    MEMBER_CONFIRMATION = "MEMBER_CONFIRMATION"
    PROMPT_REGISTER = "PROMPT_REGISTER"
    REGISTER = "REGISTER"
    COUPON_SELECTION = "COUPON_SELECTION"
    COUPON_DETAIL = "COUPON_DETAIL"
    COUPON_ISSUED = "COUPON_ISSUED"
    USED = "USED"
    HISTORY = "HISTORY"
    ERROR = "ERROR"


class JourneyError(RuntimeError):
    """Base exception for coupon journey failures."""


class InvalidTransitionError(JourneyError):
    def __init__(self, current_view: View, event: str) -> None:
        super().__init__(f"Cannot apply {event} while in {current_view.value}")
        self.current_view = current_view
        self.event = event


class CouponUnavailableError(JourneyError):
    """Raised when selecting a coupon that is locked, used, hidden or unknown."""

    def __init__(self, coupon_id: str) -> None:
        super().__init__(f"Coupon {coupon_id} is not available for selection")
        self.coupon_id = coupon_id


@dataclass(slots=True, frozen=True)
class Profile:
    identity: UserIdentity
    entitlement: Entitlement
    member_name: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.identity.is_guest


GUEST_PROFILE = Profile(identity=UserIdentity(GUEST_IDENTIFIER), entitlement=Entitlement.NON_MEMBER)


# States


@dataclass(slots=True, frozen=True)
class Login:
    auto_login_id: str | None = None
    view = View.LOGIN


@dataclass(slots=True, frozen=True)
class ValidatingIdentity:
    identifier: str
    view = View.VALIDATING


@dataclass(slots=True, frozen=True)
class MemberConfirmation:
    identifier: str
    member_name: str | None
    member_id: str | None = None
    view = View.MEMBER_CONFIRMATION


@dataclass(slots=True, frozen=True)
class PromptRegister:
    identifier: str
    view = View.PROMPT_REGISTER


@dataclass(slots=True, frozen=True)
class Register:
    view = View.REGISTER


@dataclass(slots=True, frozen=True)
class CouponSelection:
    profile: Profile
    view = View.COUPON_SELECTION


@dataclass(slots=True, frozen=True)
class CouponDetail:
    profile: Profile
    coupon: CouponDefinition
    view = View.COUPON_DETAIL


@dataclass(slots=True, frozen=True)
class LocatingBranch:
    profile: Profile
    coupon: CouponDefinition
    view = View.VALIDATING


@dataclass(slots=True, frozen=True)
class CouponIssued:
    profile: Profile
    session: RedemptionSession
    view = View.COUPON_ISSUED


@dataclass(slots=True, frozen=True)
class Used:
    profile: Profile
    session: RedemptionSession
    view = View.USED


@dataclass(slots=True, frozen=True)
class History:
    profile: Profile
    view = View.HISTORY


@dataclass(slots=True, frozen=True)
class Error:
    message: str
    view = View.ERROR


JourneyState = Union[
    Login,
    ValidatingIdentity,
    MemberConfirmation,
    PromptRegister,
    Register,
    CouponSelection,
    CouponDetail,
    LocatingBranch,
    CouponIssued,
    Used,
    History,
    Error,
]


# Events


@dataclass(slots=True, frozen=True)
class IdentifierSubmitted:
    identifier: str


@dataclass(slots=True, frozen=True)
class GuestProceeded:
    pass


@dataclass(slots=True, frozen=True)
class ValidationCompleted:
    result: ValidationResult


@dataclass(slots=True, frozen=True)
class ValidationFailed:
    message: str


@dataclass(slots=True, frozen=True)
class MemberConfirmed:
    pass


@dataclass(slots=True, frozen=True)
class MemberRejected:
    pass


@dataclass(slots=True, frozen=True)
class CouponSelected:
    coupon: CouponDefinition


@dataclass(slots=True, frozen=True)
class UseConfirmed:
    pass


@dataclass(slots=True, frozen=True)
class CouponPrepared:
    session: RedemptionSession


@dataclass(slots=True, frozen=True)
class RedemptionCompleted:
    pass


@dataclass(slots=True, frozen=True)
class RedemptionExpired:
    pass


@dataclass(slots=True, frozen=True)
class BackToSelection:
    pass


@dataclass(slots=True, frozen=True)
class HistoryRequested:
    pass


@dataclass(slots=True, frozen=True)
class RegisterRequested:
    pass


@dataclass(slots=True, frozen=True)
class RegistrationSucceeded:
    identifier: str


@dataclass(slots=True, frozen=True)
class ResetRequested:
    pass


JourneyEvent = Union[
    IdentifierSubmitted,
    GuestProceeded,
    ValidationCompleted,
    ValidationFailed,
    MemberConfirmed,
    MemberRejected,
    CouponSelected,
    UseConfirmed,
    CouponPrepared,
    RedemptionCompleted,
    RedemptionExpired,
    BackToSelection,
    HistoryRequested,
    RegisterRequested,
    RegistrationSucceeded,
    ResetRequested,
]


def profile_of(state: JourneyState) -> Profile | None:
    return getattr(state, "profile", None)


def _reject(state: JourneyState, event: JourneyEvent) -> InvalidTransitionError:
    return InvalidTransitionError(state.view, type(event).__name__)


def _on_validation(state: ValidatingIdentity, result: ValidationResult) -> JourneyState:
    if isinstance(result, Member):
        return MemberConfirmation(
            identifier=state.identifier,
            member_name=result.name,
            member_id=result.member_id,
        )
    if isinstance(result, NonMember):
        return PromptRegister(identifier=state.identifier)
    if isinstance(result, Invalid):
        return Error(message=INVALID_IDENTITY_MESSAGE)
    raise TypeError(f"Unsupported validation result: {result!r}")


def transition(state: JourneyState, event: JourneyEvent) -> JourneyState:
    """Return the state that follows ``state`` once ``event`` is applied."""

    # Accepted from every state.
    if isinstance(event, ResetRequested):
        return Login()
    if isinstance(event, RegisterRequested):
        return Register()
    if isinstance(event, RegistrationSucceeded):
        if not is_well_formed_identifier(event.identifier):
            return state
        return Login(auto_login_id=event.identifier)

    if isinstance(event, IdentifierSubmitted):
        # A guest browsing coupons may log in as a member to see the member-only ones.
        guest_upgrade = isinstance(state, CouponSelection) and state.profile.is_guest
        if not (isinstance(state, Login) or guest_upgrade):
            raise _reject(state, event)
        if not is_well_formed_identifier(event.identifier):
            return state
        return ValidatingIdentity(identifier=event.identifier)

    if isinstance(event, GuestProceeded):
        if isinstance(state, (Login, PromptRegister)):
            return CouponSelection(profile=GUEST_PROFILE)
        raise _reject(state, event)

    if isinstance(event, ValidationCompleted):
        if isinstance(state, ValidatingIdentity):
            return _on_validation(state, event.result)
        raise _reject(state, event)

    if isinstance(event, ValidationFailed):
        if isinstance(state, ValidatingIdentity):
            return Error(message=event.message)
        raise _reject(state, event)

    if isinstance(event, MemberConfirmed):
        if isinstance(state, MemberConfirmation):
            profile = Profile(
                identity=UserIdentity(state.identifier),
                entitlement=Entitlement.MEMBER,
                member_name=state.member_name,
            )
            return CouponSelection(profile=profile)
        raise _reject(state, event)

    if isinstance(event, MemberRejected):
        if isinstance(state, MemberConfirmation):
            return Login()
        raise _reject(state, event)

    if isinstance(event, CouponSelected):
        if isinstance(state, CouponSelection):
            return CouponDetail(profile=state.profile, coupon=event.coupon)
        raise _reject(state, event)

    if isinstance(event, UseConfirmed):
        if isinstance(state, CouponDetail):
            return LocatingBranch(profile=state.profile, coupon=state.coupon)
        raise _reject(state, event)

    if isinstance(event, CouponPrepared):
        if isinstance(state, LocatingBranch):
            return CouponIssued(profile=state.profile, session=event.session)
        raise _reject(state, event)

    if isinstance(event, RedemptionCompleted):
        if isinstance(state, CouponIssued):
            if state.session.status is RedemptionStatus.EXPIRED:
                return state
            return Used(profile=state.profile, session=state.session)
        raise _reject(state, event)

    if isinstance(event, RedemptionExpired):
        # The issued screen stays up showing the expired code until the user navigates back.
        if isinstance(state, CouponIssued):
            return state
        raise _reject(state, event)

    if isinstance(event, BackToSelection):
        if isinstance(state, (CouponDetail, LocatingBranch, CouponIssued, Used, History)):
            return CouponSelection(profile=state.profile)
        raise _reject(state, event)

    if isinstance(event, HistoryRequested):
        if isinstance(state, CouponSelection):
            return History(profile=state.profile)
        raise _reject(state, event)

    raise TypeError(f"Unsupported journey event: {event!r}")


__all__ = [
    "BackToSelection",
    "CouponDetail",
    "CouponIssued",
    "CouponPrepared",
    "CouponSelected",
    "CouponSelection",
    "CouponUnavailableError",
    "Error",
    "GUEST_PROFILE",
    "GuestProceeded",
    "History",
    "HistoryRequested",
    "INVALID_IDENTITY_MESSAGE",
    "IdentifierSubmitted",
    "InvalidTransitionError",
    "JourneyError",
    "JourneyEvent",
    "JourneyState",
    "LocatingBranch",
    "Login",
    "MemberConfirmation",
    "MemberConfirmed",
    "MemberRejected",
    "Profile",
    "PromptRegister",
    "RedemptionCompleted",
    "RedemptionExpired",
    "Register",
    "RegisterRequested",
    "RegistrationSucceeded",
    "ResetRequested",
    "Used",
    "UseConfirmed",
    "ValidatingIdentity",
    "ValidationCompleted",
    "ValidationFailed",
    "View",
    "profile_of",
    "transition",
]
