"""
trust_score.py - Trust Score Ledger

=== SCORE MODEL ===

Every registered user owns exactly one TrustRecord. The score starts at

    initial_score + floor(wallet_age_days / 30)

and moves only in response to loan and staking activity:

    on-time repayment   +10 (capped at max_score)
    late repayment      +0
    stake of N units    +floor(N / 1_000_000) (capped at max_score)
    unstake             no change

The tier is recomputed from the score on every change.

=== BORROWING POWER ===

    max_loan_amount = floor(score * 1_000_000 / 100) + staked_amount * 2

=== PURE FUNCTIONS ===

    compute_initial_score(wallet_age, policy) -> int
    compute_max_loan_amount(record, policy) -> int
    compute_stake_bonus(amount, policy) -> int

TrustRecord is immutable; the ledger swaps in a new record on every change.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterator, Optional, Tuple

from .core import (
    Tier, WalletAgeOracle,
    AlreadyExists, NotFound, InsufficientFunds,
    SECONDS_PER_DAY, clamp_score, require_account,
)
from .logging_config import get_logger
from .policy import DEFAULT_POLICY, LendingPolicy


logger = get_logger(__name__)


# =============================================================================
# RECORD
# =============================================================================

@dataclass(frozen=True, slots=True)
class TrustRecord:
    """
    Reputation record for one user.

    Attributes:
        user: Account identifier
        score: Trust score, 0..max_score
        tier: Tier derived from score
        loan_count: Loans originated
        total_borrowed: Sum of originated principal
        total_repaid: Sum of repaid principal
        defaults: Defaulted loans (no operation increments it)
        last_updated: Time of registration or last repayment
        staked_amount: Staked balance across all platforms
        wallet_age: Wallet age in seconds observed at registration
    """
    user: str
    score: int
    tier: Tier
    loan_count: int = 0
    total_borrowed: int = 0
    total_repaid: int = 0
    defaults: int = 0
    last_updated: Optional[datetime] = None
    staked_amount: int = 0
    wallet_age: int = 0


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def compute_initial_score(wallet_age: int, policy: LendingPolicy = DEFAULT_POLICY) -> int:
    """
    Score granted at registration.

    Args:
        wallet_age: Wallet age in seconds (negative ages count as zero)
        policy: Policy parameters

    Returns:
        initial_score + floor(days / wallet_age_bonus_days), clamped to max_score

    Example:
        90 days old -> 100 + 3 = 103
    """
    days = max(0, wallet_age) // SECONDS_PER_DAY
    bonus = days // policy.wallet_age_bonus_days
    return clamp_score(policy.initial_score + bonus, policy.max_score)


def compute_max_loan_amount(record: TrustRecord, policy: LendingPolicy = DEFAULT_POLICY) -> int:
    """
    Borrowing ceiling for a record.

    Example:
        score 100, nothing staked -> 100 * 1_000_000 // 100 = 1_000_000
        score 105, 5_000_000 staked -> 1_050_000 + 10_000_000 = 11_050_000
    """
    score_part = record.score * policy.score_loan_multiplier // policy.score_loan_divisor
    return score_part + record.staked_amount * policy.stake_loan_multiplier


def compute_stake_bonus(amount: int, policy: LendingPolicy = DEFAULT_POLICY) -> int:
    """Score points granted for staking `amount` units."""
    return amount // policy.stake_bonus_unit


# =============================================================================
# WALLET AGE ORACLES
# =============================================================================

class FixedWalletAge:
    """Reports the same age for every wallet."""

    def __init__(self, seconds: int = 0):
        if seconds < 0:
            raise ValueError(f"wallet age cannot be negative, got {seconds}")
        self.seconds = seconds

    def wallet_age(self, user: str, now: datetime) -> int:
        return self.seconds


class FirstSeenWalletAge:
    """
    Age in seconds since a wallet's first observed activity.

    Wallets never observed report zero.
    """

    def __init__(self):
        self._first_seen: Dict[str, datetime] = {}

    def observe(self, user: str, when: datetime) -> None:
        """Record activity; only the earliest observation is kept."""
        seen = self._first_seen.get(user)
        if seen is None or when < seen:
            self._first_seen[user] = when

    def wallet_age(self, user: str, now: datetime) -> int:
        seen = self._first_seen.get(user)
        if seen is None or seen > now:
            return 0
        return int((now - seen).total_seconds())


# =============================================================================
# LEDGER
# =============================================================================

class TrustScoreLedger:
    """
    Owns one TrustRecord per user.

    Mutating methods assume their preconditions were checked by the caller in
    the same operation; they still raise rather than corrupt a record.

    Example:
        ledger = TrustScoreLedger()
        ledger.register("alice", datetime(2025, 1, 1))
        ledger.score_of("alice")   # (100, Tier.BRONZE)
    """

    def __init__(
        self,
        policy: LendingPolicy = DEFAULT_POLICY,
        oracle: Optional[WalletAgeOracle] = None,
    ):
        self.policy = policy
        self.oracle: WalletAgeOracle = oracle or FixedWalletAge()
        self._records: Dict[str, TrustRecord] = {}

    # ------------------------------------------------------------------ reads

    def __contains__(self, user: str) -> bool:
        return user in self._records

    def __iter__(self) -> Iterator[TrustRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def get(self, user: str) -> TrustRecord:
        """
        Raises:
            NotFound: If the user has no record
        """
        record = self._records.get(user)
        if record is None:
            raise NotFound(f"No trust record for {user}")
        return record

    def score_of(self, user: str) -> Tuple[int, Tier]:
        record = self.get(user)
        return record.score, record.tier

    def max_loan_amount(self, user: str) -> int:
        return compute_max_loan_amount(self.get(user), self.policy)

    # -------------------------------------------------------------- mutations

    def register(self, user: str, now: datetime) -> TrustRecord:
        """
        Create a user's record.

        Raises:
            AlreadyExists: If the user already has a record
        """
        require_account(user, "user")
        if user in self._records:
            raise AlreadyExists(f"Trust record for {user} already exists")
        wallet_age = max(0, int(self.oracle.wallet_age(user, now)))
        score = compute_initial_score(wallet_age, self.policy)
        record = TrustRecord(
            user=user,
            score=score,
            tier=self.policy.tier_for(score),
            last_updated=now,
            wallet_age=wallet_age,
        )
        self._records[user] = record
        logger.debug("Registered %s: score=%d tier=%s wallet_age=%d",
                     user, score, record.tier.value, wallet_age)
        return record

    def apply_loan_issued(self, user: str, amount: int) -> TrustRecord:
        old = self.get(user)
        new = replace(
            old,
            loan_count=old.loan_count + 1,
            total_borrowed=old.total_borrowed + amount,
        )
        self._records[user] = new
        return new

    def apply_repayment(
        self,
        user: str,
        amount_repaid: int,
        on_time: bool,
        now: datetime,
    ) -> Tuple[TrustRecord, TrustRecord]:
        """
        Credit a repayment.

        Returns:
            (old_record, new_record)
        """
        old = self.get(user)
        bonus = self.policy.on_time_repayment_bonus if on_time else 0
        score = clamp_score(old.score + bonus, self.policy.max_score)
        new = replace(
            old,
            total_repaid=old.total_repaid + amount_repaid,
            score=score,
            tier=self.policy.tier_for(score),
            last_updated=now,
        )
        self._records[user] = new
        logger.debug("Repayment by %s (on_time=%s): score %d -> %d",
                     user, on_time, old.score, new.score)
        return old, new

    def apply_stake(self, user: str, amount: int) -> TrustRecord:
        old = self.get(user)
        score = clamp_score(old.score + compute_stake_bonus(amount, self.policy), self.policy.max_score)
        new = replace(
            old,
            staked_amount=old.staked_amount + amount,
            score=score,
            tier=self.policy.tier_for(score),
        )
        self._records[user] = new
        if new.score != old.score:
            logger.debug("Stake by %s: score %d -> %d", user, old.score, new.score)
        return new

    def apply_unstake(self, user: str, amount: int) -> TrustRecord:
        """Reduce the staked amount. The score is left as it is."""
        old = self.get(user)
        if old.staked_amount < amount:
            raise InsufficientFunds(
                f"{user} has {old.staked_amount} staked, cannot unstake {amount}"
            )
        new = replace(old, staked_amount=old.staked_amount - amount)
        self._records[user] = new
        return new
