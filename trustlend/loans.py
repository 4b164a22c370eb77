"""
loans.py - Loan Ledger & Lifecycle

=== LOAN MODEL ===

A loan is a flat-interest, fixed-term obligation:

    interest  = floor(amount * 500 / 10000)      (5%, charged once)
    due_date  = created_at + 2_592_000 seconds   (30 days)

States:

    ACTIVE --repay--> REPAID      (terminal)
    DEFAULTED                     (reserved, never produced)

Overdue loans stay ACTIVE until repaid. Nothing expires or liquidates them.

Origination moves no funds (disbursement happens off-ledger). Repayment pulls
amount + interest from the borrower into the platform account through the
value transfer collaborator.

=== IDS ===

Loan ids are platform-scoped, start at 1 and increase by one per origination:
the platform's total_loans is always the last issued id.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Tuple

from .core import (
    LoanStatus, TransferResult, ValueTransfer,
    NotFound, InvalidAmount, Unauthorized, InsufficientTrustScore,
    AlreadyRepaid, TransferRejected,
    bps_of, is_amount,
)
from .events import Event, LoanCreated, LoanRepaid, TrustScoreUpdated
from .policy import DEFAULT_POLICY, LendingPolicy
from .trust_score import TrustScoreLedger

if TYPE_CHECKING:
    from .platform import Platform


# =============================================================================
# RECORD
# =============================================================================

@dataclass(frozen=True, slots=True)
class LoanRecord:
    """
    Terms and status of one loan. Records are kept forever as history.

    Attributes:
        id: Platform-scoped sequential id (first loan is 1)
        borrower: Borrowing account
        amount: Principal
        interest_amount: Flat interest owed on top of principal
        due_date: Repayments at or before this time are on time
        status: ACTIVE or REPAID
        created_at: Origination time
    """
    id: int
    borrower: str
    amount: int
    interest_amount: int
    due_date: datetime
    status: LoanStatus
    created_at: datetime

    @property
    def total_repayment(self) -> int:
        return self.amount + self.interest_amount

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    def is_on_time(self, when: datetime) -> bool:
        return when <= self.due_date

    def details(self) -> Tuple[int, str, int, int, datetime, LoanStatus]:
        """(id, borrower, amount, interest, due_date, status)"""
        return (self.id, self.borrower, self.amount, self.interest_amount,
                self.due_date, self.status)


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def compute_interest(amount: int, policy: LendingPolicy = DEFAULT_POLICY) -> int:
    """
    Flat interest for a principal, truncated.

    Example:
        1_000_000 at 500 bps -> 50_000
        1_000_019 at 500 bps -> 50_000 (floor)
    """
    return bps_of(amount, policy.interest_rate_bps)


def compute_due_date(created_at: datetime, policy: LendingPolicy = DEFAULT_POLICY) -> datetime:
    return created_at + timedelta(seconds=policy.loan_duration_seconds)


def validate_origination(
    trust: TrustScoreLedger,
    platform: Platform,
    borrower: str,
    amount: int,
) -> None:
    """
    Check every origination precondition, in order.

    Raises:
        NotFound: Borrower has no trust record
        InvalidAmount: Amount outside [min_loan_amount, max_loan_amount]
        Unauthorized: Platform is paused
        InsufficientTrustScore: Amount exceeds the borrower's ceiling
    """
    policy = trust.policy
    trust.get(borrower)
    if not is_amount(amount) or not policy.min_loan_amount <= amount <= policy.max_loan_amount:
        raise InvalidAmount(
            f"Loan amount {amount!r} outside [{policy.min_loan_amount}, {policy.max_loan_amount}]"
        )
    if platform.state.is_paused:
        raise Unauthorized(f"Platform {platform.admin} is paused")
    ceiling = trust.max_loan_amount(borrower)
    if amount > ceiling:
        raise InsufficientTrustScore(
            f"{borrower} requested {amount}, max loan amount is {ceiling}"
        )


def validate_repayment(
    trust: TrustScoreLedger,
    platform: Platform,
    caller: str,
    loan_id: int,
) -> LoanRecord:
    """
    Check every repayment precondition, in order.

    Returns:
        The loan being repaid

    Raises:
        NotFound: Unknown loan id
        Unauthorized: Caller is not the recorded borrower
        AlreadyRepaid: Loan is not ACTIVE
    """
    loan = platform.state.active_loans.get(loan_id)
    if loan is None:
        raise NotFound(f"Loan {loan_id} not found on platform {platform.admin}")
    if caller != loan.borrower:
        raise Unauthorized(f"{caller} is not the borrower of loan {loan_id}")
    if not loan.is_active:
        raise AlreadyRepaid(f"Loan {loan_id} is {loan.status.value}")
    trust.get(loan.borrower)
    return loan


# =============================================================================
# LIFECYCLE
# =============================================================================

def originate_loan(
    trust: TrustScoreLedger,
    platform: Platform,
    borrower: str,
    amount: int,
    now: datetime,
    outbox: List[Event],
) -> LoanRecord:
    """
    Create a loan after validating every precondition.

    Args:
        trust: Trust score ledger holding the borrower's record
        platform: Platform context the loan is issued on
        borrower: Borrowing account
        amount: Principal
        now: Origination time
        outbox: Receives the LoanCreated event

    Returns:
        The new ACTIVE loan
    """
    validate_origination(trust, platform, borrower, amount)

    state = platform.state
    loan = LoanRecord(
        id=state.total_loans + 1,
        borrower=borrower,
        amount=amount,
        interest_amount=compute_interest(amount, trust.policy),
        due_date=compute_due_date(now, trust.policy),
        status=LoanStatus.ACTIVE,
        created_at=now,
    )

    state.active_loans[loan.id] = loan
    state.user_loans.setdefault(borrower, []).append(loan.id)
    state.total_loans = loan.id
    state.total_volume += amount
    trust.apply_loan_issued(borrower, amount)

    outbox.append(LoanCreated(
        loan_id=loan.id,
        borrower=borrower,
        amount=amount,
        due_date=loan.due_date,
    ))
    return loan


def repay_loan(
    trust: TrustScoreLedger,
    platform: Platform,
    transfer: ValueTransfer,
    caller: str,
    loan_id: int,
    now: datetime,
    outbox: List[Event],
) -> LoanRecord:
    """
    Repay a loan in full.

    The transfer is the only step that can fail after validation, so it runs
    before any state is touched.

    Returns:
        The loan in its REPAID state

    Raises:
        TransferRejected: The collaborator refused the transfer
    """
    loan = validate_repayment(trust, platform, caller, loan_id)
    total = loan.total_repayment

    result = transfer.transfer(caller, platform.admin, total)
    if result is not TransferResult.APPLIED:
        raise TransferRejected(
            f"Repayment of {total} from {caller} to {platform.admin} was rejected"
        )

    state = platform.state
    repaid = replace(loan, status=LoanStatus.REPAID)
    state.active_loans[loan_id] = repaid
    state.treasury_balance += total

    on_time = loan.is_on_time(now)
    old, new = trust.apply_repayment(caller, loan.amount, on_time, now)

    outbox.append(LoanRepaid(
        loan_id=loan_id,
        borrower=caller,
        amount=loan.amount,
        interest=loan.interest_amount,
    ))
    outbox.append(TrustScoreUpdated(
        user=caller,
        old_score=old.score,
        new_score=new.score,
        tier=new.tier,
    ))
    return repaid
