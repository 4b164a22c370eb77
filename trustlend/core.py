"""
Core types and pure functions for the trust-score lending engine.

This module provides the foundational pieces every other module builds on:
1. Constants: the fixed policy parameters (scores, loan bounds, rates)
2. Enums: Tier, LoanStatus, TransferResult
3. Exceptions: LendingError and the per-reason error kinds
4. Protocols: the external collaborators (value transfer, event sink, wallet age)
5. Pure functions: tier classification, score clamping, basis-point math

All functions in this module are pure. Nothing here mutates engine state.
"""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, Tuple, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Amounts are integers in the smallest currency unit (1 coin = 100_000_000).

INITIAL_SCORE = 100
MAX_SCORE = 1000
MIN_SCORE = 0

MIN_LOAN_AMOUNT = 1_000_000
MAX_LOAN_AMOUNT = 100_000_000_000

# 30 days, fixed for every loan.
LOAN_DURATION_SECONDS = 2_592_000

# Flat interest, charged once at origination (no accrual).
INTEREST_RATE_BPS = 500

# Reserved for reward computation; nothing reads it yet.
STAKING_APY_BPS = 1000

BPS_DENOMINATOR = 10_000

ON_TIME_REPAYMENT_BONUS = 10

# One score point per this many staked units.
STAKE_BONUS_UNIT = 1_000_000

# max_loan = score * SCORE_LOAN_MULTIPLIER // SCORE_LOAN_DIVISOR + staked * STAKE_LOAN_MULTIPLIER
SCORE_LOAN_MULTIPLIER = 1_000_000
SCORE_LOAN_DIVISOR = 100
STAKE_LOAN_MULTIPLIER = 2

# One score point per this many days of wallet age at registration.
WALLET_AGE_BONUS_DAYS = 30
SECONDS_PER_DAY = 86_400

PLATINUM_THRESHOLD = 800
GOLD_THRESHOLD = 600
SILVER_THRESHOLD = 400


# ============================================================================
# ENUMS
# ============================================================================

class Tier(str, Enum):
    """Four-level classification derived purely from the current score."""
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


class LoanStatus(str, Enum):
    """
    Status of a loan record.

    ACTIVE -> REPAID is the only transition. DEFAULTED is reserved: no
    operation produces it.
    """
    ACTIVE = "active"
    REPAID = "repaid"
    DEFAULTED = "defaulted"


class TransferResult(Enum):
    """
    Outcome of a value transfer attempt.

    APPLIED: Both balances were updated.
    REJECTED: Nothing moved (insufficient balance, unknown account, ...).
    """
    APPLIED = "applied"
    REJECTED = "rejected"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all engine errors. `code` is a stable reason code."""
    code = "LENDING_ERROR"


class NotInitialized(LendingError):
    """Raised when a platform expected for an admin account does not exist."""
    code = "NOT_INITIALIZED"


class AlreadyInitialized(LendingError):
    """Raised on duplicate platform initialization or duplicate registration."""
    code = "ALREADY_INITIALIZED"


class InsufficientTrustScore(LendingError):
    """Raised when a requested loan exceeds the borrower's computed ceiling."""
    code = "INSUFFICIENT_TRUST_SCORE"


class NotFound(LendingError):
    """Raised when a trust record, stake entry or loan id is unknown."""
    code = "NOT_FOUND"


class InsufficientFunds(LendingError):
    """Raised when an unstake exceeds the staked balance."""
    code = "INSUFFICIENT_FUNDS"


class AlreadyRepaid(LendingError):
    """Raised when repaying a loan that is not active."""
    code = "ALREADY_REPAID"


class Unauthorized(LendingError):
    """Raised on caller mismatch (wrong borrower or admin) or a paused platform."""
    code = "UNAUTHORIZED"


class InvalidAmount(LendingError):
    """Raised when an amount is outside policy bounds or not a positive integer."""
    code = "INVALID_AMOUNT"


class Overdue(LendingError):
    """Reserved policy code. No operation raises it."""
    code = "OVERDUE"


class TransferRejected(LendingError):
    """Raised when the value transfer collaborator rejects a transfer."""
    code = "TRANSFER_REJECTED"


AlreadyExists = AlreadyInitialized
InvalidState = AlreadyRepaid


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class ValueTransfer(Protocol):
    """
    Atomic, all-or-nothing balance transfer between two accounts.

    Implementations either move the full amount and return APPLIED, or move
    nothing and return REJECTED (or raise). The engine treats anything other
    than APPLIED as an abort of the enclosing operation.
    """

    def transfer(self, source: str, dest: str, amount: int) -> TransferResult:
        ...


@runtime_checkable
class EventSink(Protocol):
    """Append-only consumer of engine events. Delivery is fire-and-forget."""

    def emit(self, event: Any) -> None:
        ...


@runtime_checkable
class WalletAgeOracle(Protocol):
    """Reports a wallet's age in seconds, possibly approximated."""

    def wallet_age(self, user: str, now: datetime) -> int:
        ...


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def tier_for_score(
    score: int,
    thresholds: Tuple[int, int, int] = (PLATINUM_THRESHOLD, GOLD_THRESHOLD, SILVER_THRESHOLD),
) -> Tier:
    """
    Classify a score into a tier.

    Args:
        score: Current trust score
        thresholds: (platinum, gold, silver) lower bounds, descending

    Returns:
        PLATINUM at or above the first bound, GOLD at or above the second,
        SILVER at or above the third, BRONZE otherwise.
    """
    platinum, gold, silver = thresholds
    if score >= platinum:
        return Tier.PLATINUM
    if score >= gold:
        return Tier.GOLD
    if score >= silver:
        return Tier.SILVER
    return Tier.BRONZE


def clamp_score(score: int, max_score: int = MAX_SCORE) -> int:
    """Clamp a score into [MIN_SCORE, max_score]."""
    return max(MIN_SCORE, min(score, max_score))


def bps_of(amount: int, rate_bps: int) -> int:
    """Return floor(amount * rate_bps / 10000)."""
    return amount * rate_bps // BPS_DENOMINATOR


def is_amount(value: Any) -> bool:
    """True for plain integers (bool excluded)."""
    return isinstance(value, int) and not isinstance(value, bool)


def require_account(account: Any, role: str = "account") -> str:
    """
    Validate an account identifier.

    Raises:
        ValueError: If the identifier is not a non-empty string
    """
    if not isinstance(account, str) or not account.strip():
        raise ValueError(f"{role} cannot be empty")
    return account
