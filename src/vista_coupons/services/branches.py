from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True, frozen=True)
class Branch:
    id: str
    name: str
    lat: float | None = None
    lng: float | None = None


@dataclass(slots=True, frozen=True)
class BranchLookup:
    branch: Branch | None = None


class BranchLocator(Protocol):
    """Resolve the outlet the kiosk is standing in; may raise or hang."""

    async def locate(self) -> BranchLookup:
        ...


class NullBranchLocator:
    async def locate(self) -> BranchLookup:
        return BranchLookup()


class StaticBranchLocator:
    """Kiosk pinned to a single configured branch."""

    def __init__(self, branch: Branch) -> None:
        self._branch = branch

    async def locate(self) -> BranchLookup:
        return BranchLookup(branch=self._branch)


def locator_from_settings(settings: object) -> BranchLocator:
    branch_name = getattr(settings, "branch_name", None)
    if branch_name:
        return StaticBranchLocator(Branch(id=branch_name, name=branch_name))
    return NullBranchLocator()


__all__ = [
    "Branch",
    "BranchLocator",
    "BranchLookup",
    "NullBranchLocator",
    "StaticBranchLocator",
    "locator_from_settings",
]
