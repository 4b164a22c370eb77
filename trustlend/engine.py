"""
engine.py - Transactional Lending Engine

The LendingEngine is the only public entry point that mutates state. Every
mutating method is one transaction:

    1. Locate the platform context for the admin account
    2. Validate every precondition (first failure aborts, nothing changed)
    3. Call the value transfer collaborator, if the operation moves funds
       (a rejection or exception aborts, nothing changed)
    4. Apply in-memory mutations, which cannot fail
    5. Journal the operation and deliver buffered events to the sinks

Operations are serialized by the caller; the engine holds no locks.

Key responsibilities:
    - Owns the trust score ledger and the per-admin platform registry
    - Tracks logical time (advance_time never moves backwards)
    - Keeps an audit journal of committed operations
    - Verifies the cross-ledger invariants on demand
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .core import (
    EventSink, LoanStatus, Tier, ValueTransfer, WalletAgeOracle,
    LendingError, NotFound, MIN_SCORE,
)
from .events import Event, deliver
from .loans import LoanRecord, originate_loan, repay_loan
from .logging_config import get_logger
from .platform import Platform, PlatformRegistry, pause, unpause
from .policy import DEFAULT_POLICY, LendingPolicy
from .staking import stake, unstake
from .trust_score import TrustRecord, TrustScoreLedger


logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class JournalEntry:
    """
    Immutable record of one committed operation.

    Attributes:
        sequence: Monotonic position in the journal, from 0
        exec_id: Unique execution id (engine name + sequence + time)
        operation: Operation name ("originate", "stake", ...)
        caller: Account that invoked the operation
        admin: Platform admin account, if the operation targets a platform
        timestamp: Engine time at commit
        params: Operation arguments as sorted (key, value) pairs
    """
    sequence: int
    exec_id: str
    operation: str
    caller: str
    admin: Optional[str]
    timestamp: datetime
    params: Tuple[Tuple[str, Any], ...] = ()

    @property
    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)


class LendingEngine:
    """
    Trust-score lending and staking engine.

    Example:
        store = CoinStore()
        log = EventLog()
        engine = LendingEngine(store, sinks=[log], initial_time=datetime(2025, 1, 1))

        engine.initialize("admin")
        engine.register("alice")
        loan_id = engine.originate("alice", 1_000_000, "admin")

        store.mint("alice", 1_050_000)
        engine.repay("alice", loan_id, "admin")
    """

    def __init__(
        self,
        transfer: ValueTransfer,
        sinks: Optional[Sequence[EventSink]] = None,
        policy: LendingPolicy = DEFAULT_POLICY,
        oracle: Optional[WalletAgeOracle] = None,
        name: str = "main",
        initial_time: Optional[datetime] = None,
    ):
        """
        Create an engine.

        Args:
            transfer: Value transfer collaborator used by repay and stake
            sinks: Event sinks; events are delivered after commit
            policy: Policy parameters (default: platform constants)
            oracle: Wallet age oracle used at registration (default: age 0)
            name: Engine identifier, used in exec ids
            initial_time: Starting logical time (default: 1970-01-01)
        """
        self.name = name
        self.policy = policy
        self.transfer = transfer
        self.sinks: List[EventSink] = list(sinks or [])
        self.trust = TrustScoreLedger(policy, oracle)
        self.platforms = PlatformRegistry()
        self.journal: List[JournalEntry] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._next_sequence: int = 0

    # ========================================================================
    # TIME
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def add_sink(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    # ========================================================================
    # TRANSACTION PLUMBING
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    @contextmanager
    def _operation(
        self,
        operation: str,
        caller: str,
        admin: Optional[str] = None,
        **params: Any,
    ) -> Iterator[List[Event]]:
        """
        Run one operation as a transaction.

        Yields an outbox for events. The body must raise before mutating
        anything if it is going to fail.
        """
        outbox: List[Event] = []
        try:
            yield outbox
        except LendingError as exc:
            logger.warning("REJECTED %s by %s: %s %s", operation, caller, exc.code, exc)
            raise

        sequence = self._next_sequence
        self._next_sequence += 1
        entry = JournalEntry(
            sequence=sequence,
            exec_id=self._generate_exec_id(sequence),
            operation=operation,
            caller=caller,
            admin=admin,
            timestamp=self._current_time,
            params=tuple(sorted(params.items())),
        )
        self.journal.append(entry)
        logger.info("APPLIED %s by %s %s", operation, caller, entry.params_dict)
        deliver(self.sinks, outbox)

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    def initialize(self, admin: str) -> Platform:
        """
        Create the platform state and staking pool for an admin account.

        Raises:
            AlreadyInitialized: If the admin already has a platform
        """
        with self._operation("initialize", admin, admin):
            return self.platforms.initialize(admin, self._current_time)

    def register(self, user: str) -> TrustRecord:
        """
        Create a user's trust record.

        Raises:
            AlreadyExists: If the user is already registered
        """
        with self._operation("register", user):
            return self.trust.register(user, self._current_time)

    def originate(self, borrower: str, amount: int, admin: str) -> int:
        """
        Issue a loan on the admin's platform.

        Returns:
            The new loan id

        Raises:
            NotInitialized: No platform for admin
            NotFound: Borrower not registered
            InvalidAmount: Amount outside policy bounds
            Unauthorized: Platform paused
            InsufficientTrustScore: Amount above the borrower's ceiling
        """
        with self._operation("originate", borrower, admin, amount=amount) as outbox:
            platform = self.platforms.get(admin)
            loan = originate_loan(
                self.trust, platform, borrower, amount, self._current_time, outbox
            )
            return loan.id

    def repay(self, borrower: str, loan_id: int, admin: str) -> LoanRecord:
        """
        Repay a loan in full (principal + interest) into the admin account.

        Raises:
            NotInitialized: No platform for admin
            NotFound: Unknown loan id
            Unauthorized: Caller is not the borrower
            AlreadyRepaid: Loan not active
            TransferRejected: Funds could not be moved
        """
        with self._operation("repay", borrower, admin, loan_id=loan_id) as outbox:
            platform = self.platforms.get(admin)
            return repay_loan(
                self.trust, platform, self.transfer, borrower, loan_id,
                self._current_time, outbox,
            )

    def stake(self, user: str, amount: int, admin: str) -> int:
        """
        Stake funds with the admin's platform.

        Returns:
            The user's staked balance on the platform

        Raises:
            NotInitialized: No platform for admin
            NotFound: User not registered
            InvalidAmount: Amount not positive
            TransferRejected: Funds could not be moved
        """
        with self._operation("stake", user, admin, amount=amount) as outbox:
            platform = self.platforms.get(admin)
            return stake(self.trust, platform, self.transfer, user, amount, outbox)

    def unstake(self, user: str, amount: int, admin: str) -> int:
        """
        Queue staked funds for withdrawal.

        Returns:
            The user's pending withdrawal balance on the platform

        Raises:
            NotInitialized: No platform for admin
            NotFound: User has no stake entry
            InvalidAmount: Amount not positive
            InsufficientFunds: Amount above the staked balance
        """
        with self._operation("unstake", user, admin, amount=amount):
            platform = self.platforms.get(admin)
            return unstake(self.trust, platform, user, amount)

    def pause(self, caller: str, admin: str) -> None:
        """
        Block new loans on the admin's platform.

        Raises:
            NotInitialized: No platform for admin
            Unauthorized: Caller is not the admin
        """
        with self._operation("pause", caller, admin):
            pause(self.platforms.get(admin), caller)

    def unpause(self, caller: str, admin: str) -> None:
        with self._operation("unpause", caller, admin):
            unpause(self.platforms.get(admin), caller)

    # ========================================================================
    # QUERIES (read-only)
    # ========================================================================

    def platform(self, admin: str) -> Platform:
        return self.platforms.get(admin)

    def score_of(self, user: str) -> Tuple[int, Tier]:
        return self.trust.score_of(user)

    def max_loan_amount(self, user: str) -> int:
        return self.trust.max_loan_amount(user)

    def trust_record(self, user: str) -> TrustRecord:
        return self.trust.get(user)

    def loans_of(self, user: str, admin: str) -> List[int]:
        """Loan ids of a borrower in issuance order; empty if none."""
        return self.platforms.get(admin).state.loans_of(user)

    def loan(self, loan_id: int, admin: str) -> LoanRecord:
        """
        Raises:
            NotFound: Unknown loan id
        """
        loan = self.platforms.get(admin).state.active_loans.get(loan_id)
        if loan is None:
            raise NotFound(f"Loan {loan_id} not found on platform {admin}")
        return loan

    def loan_details(
        self, loan_id: int, admin: str
    ) -> Tuple[int, str, int, int, datetime, LoanStatus]:
        """(id, borrower, amount, interest, due_date, status)"""
        return self.loan(loan_id, admin).details()

    def pending_withdrawal(self, user: str, admin: str) -> int:
        return self.platforms.get(admin).pool.pending_withdrawal(user)

    def stake_of(self, user: str, admin: str) -> int:
        return self.platforms.get(admin).pool.stake_of(user)

    def platform_stats(self, admin: str) -> Dict[str, Any]:
        platform = self.platforms.get(admin)
        state = platform.state
        return {
            'admin': state.admin,
            'total_loans': state.total_loans,
            'total_volume': state.total_volume,
            'treasury_balance': state.treasury_balance,
            'is_paused': state.is_paused,
            'total_staked': platform.pool.total_staked,
            'active_loan_count': sum(1 for l in state.active_loans.values() if l.is_active),
        }

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check every cross-ledger invariant.

        Checks:
            - 0 <= score <= max_score and tier == tier_for(score) for each record
            - loan ids are exactly 1..total_loans on each platform
            - each borrower's id list is strictly increasing and points at
              their own loans
            - no loan is DEFAULTED
            - sum(user_stakes) == total_staked on each platform
            - each record's staked_amount equals its stakes across platforms

        Returns:
            Dict with keys:
            - 'valid': bool - True if nothing is violated
            - 'violations': List[str] - one message per violation

        Example:
            report = engine.verify_invariants()
            assert report['valid'], report['violations']
        """
        violations: List[str] = []
        policy = self.policy

        for record in self.trust:
            if not MIN_SCORE <= record.score <= policy.max_score:
                violations.append(f"{record.user}: score {record.score} out of bounds")
            if record.tier != policy.tier_for(record.score):
                violations.append(
                    f"{record.user}: tier {record.tier.value} does not match score {record.score}"
                )

        staked_by_user: Dict[str, int] = {}
        for platform in self.platforms:
            state, pool, admin = platform.state, platform.pool, platform.admin

            expected_ids = set(range(1, state.total_loans + 1))
            if set(state.active_loans) != expected_ids:
                violations.append(f"{admin}: loan ids are not 1..{state.total_loans}")

            for user, ids in state.user_loans.items():
                if any(a >= b for a, b in zip(ids, ids[1:])):
                    violations.append(f"{admin}: loan ids of {user} not strictly increasing")
                for loan_id in ids:
                    loan = state.active_loans.get(loan_id)
                    if loan is None or loan.borrower != user:
                        violations.append(f"{admin}: loan {loan_id} listed for {user} is not theirs")

            for loan in state.active_loans.values():
                if loan.status == LoanStatus.DEFAULTED:
                    violations.append(f"{admin}: loan {loan.id} is defaulted")

            stake_sum = sum(pool.user_stakes.values())
            if stake_sum != pool.total_staked:
                violations.append(
                    f"{admin}: sum of stakes {stake_sum} != total_staked {pool.total_staked}"
                )
            for user, amount in pool.user_stakes.items():
                staked_by_user[user] = staked_by_user.get(user, 0) + amount

        for record in self.trust:
            expected = staked_by_user.get(record.user, 0)
            if record.staked_amount != expected:
                violations.append(
                    f"{record.user}: staked_amount {record.staked_amount} != pool stakes {expected}"
                )

        return {
            'valid': len(violations) == 0,
            'violations': violations,
        }
