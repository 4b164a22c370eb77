"""
platform.py - Platform Controller

A Platform is the context every loan and staking operation runs against: the
singleton PlatformState plus the StakingPool created with it. There is at most
one Platform per admin account; the PlatformRegistry enforces that when a
platform is initialized.

Pausing blocks only loan origination. Repayment, staking and unstaking stay
open so existing positions can be wound down.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List

from .core import AlreadyInitialized, NotInitialized, Unauthorized, require_account
from .loans import LoanRecord
from .staking import StakingPool


@dataclass
class PlatformState:
    """
    Platform-wide counters and loan book.

    total_loans doubles as the last issued loan id. total_volume is a lifetime
    counter of originated principal; repayment never lowers it.
    """
    admin: str
    total_loans: int = 0
    total_volume: int = 0
    treasury_balance: int = 0
    is_paused: bool = False
    active_loans: Dict[int, LoanRecord] = field(default_factory=dict)
    user_loans: Dict[str, List[int]] = field(default_factory=dict)

    def loans_of(self, user: str) -> List[int]:
        """Loan ids of a borrower in issuance order (empty if none)."""
        return list(self.user_loans.get(user, []))


@dataclass
class Platform:
    """State and staking pool of one admin account, created together."""
    state: PlatformState
    pool: StakingPool
    created_at: datetime

    @property
    def admin(self) -> str:
        return self.state.admin

    @classmethod
    def create(cls, admin: str, now: datetime) -> Platform:
        require_account(admin, "admin")
        return cls(
            state=PlatformState(admin=admin),
            pool=StakingPool(last_reward_time=now),
            created_at=now,
        )


class PlatformRegistry:
    """Maps admin accounts to their single Platform."""

    def __init__(self):
        self._platforms: Dict[str, Platform] = {}

    def __contains__(self, admin: str) -> bool:
        return admin in self._platforms

    def __iter__(self) -> Iterator[Platform]:
        return iter(list(self._platforms.values()))

    def __len__(self) -> int:
        return len(self._platforms)

    def get(self, admin: str) -> Platform:
        """
        Raises:
            NotInitialized: If the admin has no platform
        """
        platform = self._platforms.get(admin)
        if platform is None:
            raise NotInitialized(f"No platform initialized for {admin}")
        return platform

    def initialize(self, admin: str, now: datetime) -> Platform:
        """
        Create the platform for an admin account.

        Raises:
            AlreadyInitialized: If the admin already has one
        """
        if admin in self._platforms:
            raise AlreadyInitialized(f"Platform for {admin} already initialized")
        platform = Platform.create(admin, now)
        self._platforms[admin] = platform
        return platform


def require_admin(platform: Platform, caller: str) -> None:
    """
    Raises:
        Unauthorized: If caller is not the platform admin
    """
    if caller != platform.state.admin:
        raise Unauthorized(f"{caller} is not the admin of platform {platform.admin}")


def pause(platform: Platform, caller: str) -> None:
    require_admin(platform, caller)
    platform.state.is_paused = True


def unpause(platform: Platform, caller: str) -> None:
    require_admin(platform, caller)
    platform.state.is_paused = False
