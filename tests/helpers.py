"""
helpers.py - Shared constants and helpers for lending engine tests
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Dict

from trustlend import LendingEngine, CoinStore, FixedWalletAge


T0 = datetime(2025, 1, 1, 12, 0, 0)
ADMIN = "admin"
ALICE = "alice"
BOB = "bob"

# 30 days, the loan duration
LOAN_TERM = timedelta(seconds=2_592_000)


def make_engine(store=None, log=None, wallet_age: int = 0, **kwargs) -> LendingEngine:
    """Build an engine at T0 with a fixed wallet age oracle."""
    return LendingEngine(
        store if store is not None else CoinStore(),
        sinks=[log] if log is not None else [],
        oracle=FixedWalletAge(wallet_age),
        initial_time=T0,
        **kwargs,
    )


def snapshot(engine: LendingEngine, store: CoinStore = None) -> Dict[str, Any]:
    """Capture every piece of observable engine state."""
    snap: Dict[str, Any] = {
        'records': {r.user: r for r in engine.trust},
        'platforms': {},
        'journal': len(engine.journal),
    }
    for platform in engine.platforms:
        state, pool = platform.state, platform.pool
        snap['platforms'][platform.admin] = {
            'total_loans': state.total_loans,
            'total_volume': state.total_volume,
            'treasury_balance': state.treasury_balance,
            'is_paused': state.is_paused,
            'active_loans': dict(state.active_loans),
            'user_loans': {u: list(ids) for u, ids in state.user_loans.items()},
            'total_staked': pool.total_staked,
            'user_stakes': dict(pool.user_stakes),
            'user_rewards': dict(pool.user_rewards),
            'pending_withdrawals': dict(pool.pending_withdrawals),
        }
    if store is not None:
        snap['balances'] = {a: store.balance_of(a) for a in store.accounts()}
    return snap
