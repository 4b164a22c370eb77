"""
trustlend - Trust-Score Lending Engine

An accounting engine for micro-lending against a per-user reputation score and
staked collateral.

Usage:
    from datetime import datetime
    from trustlend import LendingEngine, CoinStore, EventLog

    store = CoinStore()
    log = EventLog()
    engine = LendingEngine(store, sinks=[log], initial_time=datetime(2025, 1, 1))

    engine.initialize("admin")
    engine.register("alice")

    # Staking raises the score and adds 2x the stake to borrowing power
    store.mint("alice", 50_000_000)
    engine.stake("alice", 5_000_000, "admin")

    loan_id = engine.originate("alice", 10_000_000, "admin")
    engine.repay("alice", loan_id, "admin")
"""

# Core types
from .core import (
    Tier,
    LoanStatus,
    TransferResult,
    ValueTransfer,
    EventSink,
    WalletAgeOracle,
    LendingError,
    NotInitialized,
    AlreadyInitialized,
    AlreadyExists,
    InsufficientTrustScore,
    NotFound,
    InsufficientFunds,
    AlreadyRepaid,
    InvalidState,
    Unauthorized,
    InvalidAmount,
    Overdue,
    TransferRejected,
    tier_for_score,
    clamp_score,
    INITIAL_SCORE,
    MAX_SCORE,
    MIN_LOAN_AMOUNT,
    MAX_LOAN_AMOUNT,
    LOAN_DURATION_SECONDS,
    INTEREST_RATE_BPS,
    STAKING_APY_BPS,
)

# Policy
from .policy import LendingPolicy, DEFAULT_POLICY, load_policy, policy_from_mapping

# Events
from .events import (
    LoanCreated,
    LoanRepaid,
    TrustScoreUpdated,
    Stake,
    EventLog,
    LoggingEventSink,
)

# Trust score ledger
from .trust_score import (
    TrustRecord,
    TrustScoreLedger,
    FixedWalletAge,
    FirstSeenWalletAge,
    compute_initial_score,
    compute_max_loan_amount,
    compute_stake_bonus,
)

# Loans
from .loans import LoanRecord, compute_interest, compute_due_date

# Staking and platforms
from .staking import StakingPool
from .platform import Platform, PlatformState, PlatformRegistry

# Value transfer
from .bank import CoinStore, TransferRecord, ISSUER_ACCOUNT

# Engine
from .engine import LendingEngine, JournalEntry

# Logging
from .logging_config import setup_logging, get_logger
