"""
Example: A borrower's first month on a lending platform.

Walks one user from registration through staking, borrowing and an on-time
repayment, printing the score, borrowing ceiling and platform counters after
each step. A YAML policy file can be passed as the first argument.
"""

import sys
from datetime import datetime, timedelta

from trustlend import (
    LendingEngine, CoinStore, EventLog, LoggingEventSink, DEFAULT_POLICY,
    InsufficientTrustScore, load_policy, setup_logging,
)


def show(engine, user, admin):
    score, tier = engine.score_of(user)
    print(f"  score={score} tier={tier.value} max_loan={engine.max_loan_amount(user):,}")
    stats = engine.platform_stats(admin)
    print(f"  loans={stats['total_loans']} volume={stats['total_volume']:,} "
          f"treasury={stats['treasury_balance']:,} staked={stats['total_staked']:,}")


def main():
    setup_logging()
    policy = load_policy(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_POLICY

    print("=" * 80)
    print("TRUST-SCORE LENDING - Walkthrough")
    print("=" * 80)
    print()

    start = datetime(2025, 1, 1)
    store = CoinStore()
    log = EventLog()
    engine = LendingEngine(
        store, sinks=[log, LoggingEventSink()], policy=policy, initial_time=start
    )

    engine.initialize("admin")
    engine.register("alice")
    store.mint("alice", 50_000_000)

    print("Step 1: New borrower")
    print("-" * 80)
    show(engine, "alice", "admin")
    try:
        engine.originate("alice", 10_000_000, "admin")
    except InsufficientTrustScore as exc:
        print(f"  10,000,000 refused: {exc}")
    print()

    print("Step 2: Stake 5,000,000")
    print("-" * 80)
    engine.stake("alice", 5_000_000, "admin")
    show(engine, "alice", "admin")
    print()

    print("Step 3: Borrow 10,000,000")
    print("-" * 80)
    loan_id = engine.originate("alice", 10_000_000, "admin")
    print(f"  loan details: {engine.loan_details(loan_id, 'admin')}")
    show(engine, "alice", "admin")
    print()

    print("Step 4: Repay after 20 days")
    print("-" * 80)
    engine.advance_time(start + timedelta(days=20))
    engine.repay("alice", loan_id, "admin")
    show(engine, "alice", "admin")
    print(f"  alice balance: {store.balance_of('alice'):,}")
    print()

    print("Step 5: Unstake 2,000,000")
    print("-" * 80)
    engine.unstake("alice", 2_000_000, "admin")
    print(f"  pending withdrawal: {engine.pending_withdrawal('alice', 'admin'):,}")
    show(engine, "alice", "admin")
    print()

    report = engine.verify_invariants()
    print(f"Invariants valid: {report['valid']}")
    print(f"Events: {[type(e).__name__ for e in log]}")
    print(f"Journal entries: {len(engine.journal)}")


if __name__ == "__main__":
    main()
