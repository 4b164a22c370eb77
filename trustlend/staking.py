"""
staking.py - Staking Pool

A platform's pool tracks what each user has staked with it. Staking moves
funds into the platform account and raises the user's score and borrowing
power. Unstaking only queues a withdrawal: the funds are returned out of band
by an operator, so pending_withdrawals grows and is never paid down here.

Invariant: sum(user_stakes.values()) == total_staked

user_rewards and last_reward_time are stored but no rule computes them.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

from .core import (
    TransferResult, ValueTransfer,
    NotFound, InvalidAmount, InsufficientFunds, TransferRejected,
    is_amount,
)
from .events import Event, Stake
from .trust_score import TrustScoreLedger

if TYPE_CHECKING:
    from .platform import Platform


@dataclass
class StakingPool:
    """
    Per-platform staking balances.

    Attributes:
        total_staked: Sum of all user stakes
        user_stakes: Staked balance per user
        user_rewards: Reward balance per user (never computed)
        pending_withdrawals: Unstaked funds awaiting an operator payout
        last_reward_time: Reserved for reward accrual
    """
    total_staked: int = 0
    user_stakes: Dict[str, int] = field(default_factory=dict)
    user_rewards: Dict[str, int] = field(default_factory=dict)
    pending_withdrawals: Dict[str, int] = field(default_factory=dict)
    last_reward_time: Optional[datetime] = None

    def stake_of(self, user: str) -> int:
        return self.user_stakes.get(user, 0)

    def pending_withdrawal(self, user: str) -> int:
        return self.pending_withdrawals.get(user, 0)

    def has_entry(self, user: str) -> bool:
        return user in self.user_stakes

    def ensure_entry(self, user: str) -> None:
        self.user_stakes.setdefault(user, 0)
        self.user_rewards.setdefault(user, 0)
        self.pending_withdrawals.setdefault(user, 0)


def stake(
    trust: TrustScoreLedger,
    platform: Platform,
    transfer: ValueTransfer,
    user: str,
    amount: int,
    outbox: List[Event],
) -> int:
    """
    Stake funds with a platform.

    Returns:
        The user's new staked balance on this platform

    Raises:
        NotFound: User has no trust record
        InvalidAmount: Amount is not a positive integer
        TransferRejected: The collaborator refused the transfer
    """
    trust.get(user)
    if not is_amount(amount) or amount <= 0:
        raise InvalidAmount(f"Stake amount must be positive, got {amount!r}")

    result = transfer.transfer(user, platform.admin, amount)
    if result is not TransferResult.APPLIED:
        raise TransferRejected(f"Stake of {amount} from {user} to {platform.admin} was rejected")

    pool = platform.pool
    pool.ensure_entry(user)
    pool.user_stakes[user] += amount
    pool.total_staked += amount
    trust.apply_stake(user, amount)

    outbox.append(Stake(user=user, amount=amount, total_staked=pool.user_stakes[user]))
    return pool.user_stakes[user]


def unstake(
    trust: TrustScoreLedger,
    platform: Platform,
    user: str,
    amount: int,
) -> int:
    """
    Move staked funds into the user's pending withdrawal queue.

    Emits no event and leaves the score untouched.

    Returns:
        The user's new pending withdrawal balance on this platform

    Raises:
        NotFound: User never staked with this platform
        InvalidAmount: Amount is not a positive integer
        InsufficientFunds: Amount exceeds the staked balance
    """
    pool = platform.pool
    if not pool.has_entry(user):
        raise NotFound(f"{user} has no stake on platform {platform.admin}")
    if not is_amount(amount) or amount <= 0:
        raise InvalidAmount(f"Unstake amount must be positive, got {amount!r}")
    if pool.user_stakes[user] < amount:
        raise InsufficientFunds(
            f"{user} has {pool.user_stakes[user]} staked, cannot unstake {amount}"
        )

    pool.user_stakes[user] -= amount
    pool.total_staked -= amount
    pool.pending_withdrawals[user] += amount
    trust.apply_unstake(user, amount)
    return pool.pending_withdrawals[user]
