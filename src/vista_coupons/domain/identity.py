"""User identity, entitlement and validation outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

GUEST_IDENTIFIER = "Guest"
IDENTIFIER_LENGTH = 10


class Entitlement(str, Enum):
    """Coupon visibility tier granted to the current user."""

    MEMBER = "MEMBER"
    NON_MEMBER = "NON_MEMBER"


class ValidationStatus(str, Enum):
    MEMBER = "MEMBER"
    NON_MEMBER = "NON_MEMBER"
    INVALID = "INVALID"


@dataclass(slots=True, frozen=True)
class UserIdentity:
    identifier: str

    @property
    def is_guest(self) -> bool:
        return self.identifier == GUEST_IDENTIFIER


@dataclass(slots=True, frozen=True)
class Member:
    status: ClassVar[ValidationStatus] = ValidationStatus.MEMBER

    name: str | None
    member_id: str | None = None


@dataclass(slots=True, frozen=True)
class NonMember:
    status: ClassVar[ValidationStatus] = ValidationStatus.NON_MEMBER


@dataclass(slots=True, frozen=True)
class Invalid:
    status: ClassVar[ValidationStatus] = ValidationStatus.INVALID


ValidationResult = Member | NonMember | Invalid


def is_well_formed_identifier(identifier: str | None) -> bool:
    """Member identifiers are phone numbers: exactly ten digits."""

    return bool(identifier) and len(identifier) == IDENTIFIER_LENGTH and identifier.isdigit()


__all__ = [
    "Entitlement",
    "GUEST_IDENTIFIER",
    "IDENTIFIER_LENGTH",
    "Invalid",
    "Member",
    "NonMember",
    "UserIdentity",
    "ValidationResult",
    "ValidationStatus",
    "is_well_formed_identifier",
]
