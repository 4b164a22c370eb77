"""
test_engine.py - Unit tests for LendingEngine

Tests:
- Transaction plumbing: journal entries, exec ids, rejection logging
- Logical clock
- Event delivery after commit, failing sinks
- Queries and platform_stats
- verify_invariants on healthy and corrupted state
"""

import logging

import pytest
from dataclasses import replace
from datetime import datetime, timedelta

from trustlend import (
    LendingEngine, CoinStore, EventLog, LoggingEventSink, LendingPolicy,
    LoanCreated, LoanRepaid, TrustScoreUpdated, Stake,
    LoanStatus, Tier,
    NotInitialized, AlreadyInitialized, AlreadyExists, NotFound, Unauthorized,
    InsufficientTrustScore, TransferRejected,
)

from tests.fake_transfer import RecordingTransfer, RejectingTransfer, ExplodingSink
from tests.helpers import T0, ADMIN, ALICE, BOB, LOAN_TERM, make_engine


class TestConstruction:

    def test_defaults(self):
        engine = LendingEngine(CoinStore())
        assert engine.name == "main"
        assert engine.current_time == datetime(1970, 1, 1)
        assert engine.sinks == []
        assert engine.journal == []
        assert len(engine.trust) == 0
        assert len(engine.platforms) == 0

    def test_custom_policy_used_by_ledger(self):
        policy = LendingPolicy(interest_rate_bps=100)
        engine = make_engine(policy=policy)
        assert engine.trust.policy is policy

    def test_add_sink(self, engine, alice):
        log = EventLog()
        engine.add_sink(log)
        engine.originate(ALICE, 1_000_000, ADMIN)
        assert len(log.of_type(LoanCreated)) == 1


class TestClock:

    def test_advance(self):
        engine = make_engine()
        engine.advance_time(T0 + timedelta(days=1))
        assert engine.current_time == T0 + timedelta(days=1)

    def test_same_time_allowed(self):
        engine = make_engine()
        engine.advance_time(T0)
        assert engine.current_time == T0

    def test_backwards_rejected(self):
        engine = make_engine()
        with pytest.raises(ValueError):
            engine.advance_time(T0 - timedelta(seconds=1))
        assert engine.current_time == T0

    def test_registration_stamped_with_engine_time(self, engine):
        later = T0 + timedelta(hours=5)
        engine.advance_time(later)
        assert engine.register(BOB).last_updated == later


class TestJournal:

    def test_committed_operations_are_journaled(self, engine, alice):
        loan_id = engine.originate(ALICE, 1_000_000, ADMIN)
        assert [e.operation for e in engine.journal] == ["initialize", "register", "originate"]

        entry = engine.journal[-1]
        assert entry.sequence == 2
        assert entry.caller == ALICE
        assert entry.admin == ADMIN
        assert entry.timestamp == T0
        assert entry.params_dict == {'amount': 1_000_000}
        assert loan_id == 1

    def test_register_has_no_admin(self, engine):
        engine.register(BOB)
        assert engine.journal[-1].admin is None

    def test_exec_id_format(self, engine):
        micros = int(T0.timestamp() * 1_000_000)
        assert engine.journal[0].exec_id == f"exec:main:{0:012d}:{micros}"

    def test_exec_ids_unique(self, engine, alice):
        for _ in range(3):
            engine.originate(ALICE, 1_000_000, ADMIN)
        ids = [e.exec_id for e in engine.journal]
        assert len(ids) == len(set(ids))

    def test_rejected_operations_not_journaled(self, engine, alice):
        length = len(engine.journal)
        with pytest.raises(InsufficientTrustScore):
            engine.originate(ALICE, 10_000_000, ADMIN)
        assert len(engine.journal) == length

    def test_rejection_logged(self, engine, alice, caplog):
        with pytest.raises(InsufficientTrustScore):
            engine.originate(ALICE, 10_000_000, ADMIN)
        assert "REJECTED originate by alice: INSUFFICIENT_TRUST_SCORE" in caplog.text

    def test_applied_logged(self, engine, alice, caplog):
        with caplog.at_level(logging.INFO, logger="trustlend.engine"):
            engine.originate(ALICE, 1_000_000, ADMIN)
        assert "APPLIED originate by alice" in caplog.text

    def test_engine_name_in_exec_id(self):
        engine = make_engine(name="east")
        engine.initialize(ADMIN)
        assert engine.journal[0].exec_id.startswith("exec:east:")


class TestEventDelivery:

    def test_repay_events(self, engine, alice, event_log):
        loan_id = engine.originate(ALICE, 1_000_000, ADMIN)
        engine.repay(ALICE, loan_id, ADMIN)
        assert event_log.events == [
            LoanCreated(1, ALICE, 1_000_000, T0 + LOAN_TERM),
            LoanRepaid(1, ALICE, 1_000_000, 50_000),
            TrustScoreUpdated(ALICE, 100, 110, Tier.BRONZE),
        ]

    def test_no_events_on_rejection(self, engine, alice, event_log):
        with pytest.raises(InsufficientTrustScore):
            engine.originate(ALICE, 10_000_000, ADMIN)
        assert len(event_log) == 0

    def test_register_initialize_pause_emit_nothing(self, engine, event_log):
        engine.register(BOB)
        engine.pause(ADMIN, ADMIN)
        engine.unpause(ADMIN, ADMIN)
        assert len(event_log) == 0

    def test_unstake_emits_nothing(self, engine, alice, event_log):
        engine.stake(ALICE, 2_000_000, ADMIN)
        engine.unstake(ALICE, 1_000_000, ADMIN)
        assert event_log.events == [Stake(ALICE, 2_000_000, 2_000_000)]

    def test_failing_sink_does_not_fail_operation(self, store):
        log = EventLog()
        broken = ExplodingSink()
        engine = make_engine(store, log)
        engine.add_sink(broken)
        engine.initialize(ADMIN)
        engine.register(ALICE)

        loan_id = engine.originate(ALICE, 1_000_000, ADMIN)

        assert loan_id == 1
        assert broken.attempts == 1
        assert log.of_type(LoanCreated) == [LoanCreated(1, ALICE, 1_000_000, T0 + LOAN_TERM)]
        assert engine.journal[-1].operation == "originate"

    def test_logging_sink(self, store, caplog):
        engine = make_engine(store)
        engine.add_sink(LoggingEventSink())
        engine.initialize(ADMIN)
        engine.register(ALICE)
        with caplog.at_level(logging.INFO):
            engine.originate(ALICE, 1_000_000, ADMIN)
        assert "LoanCreated" in caplog.text


class TestOperations:

    def test_requires_platform(self):
        engine = make_engine()
        engine.register(ALICE)
        with pytest.raises(NotInitialized):
            engine.originate(ALICE, 1_000_000, ADMIN)
        with pytest.raises(NotInitialized):
            engine.repay(ALICE, 1, ADMIN)
        with pytest.raises(NotInitialized):
            engine.stake(ALICE, 1, ADMIN)
        with pytest.raises(NotInitialized):
            engine.unstake(ALICE, 1, ADMIN)
        with pytest.raises(NotInitialized):
            engine.pause(ADMIN, ADMIN)
        with pytest.raises(NotInitialized):
            engine.platform_stats(ADMIN)

    def test_initialize_twice(self, engine):
        with pytest.raises(AlreadyInitialized):
            engine.initialize(ADMIN)

    def test_register_twice(self, engine, alice):
        with pytest.raises(AlreadyExists):
            engine.register(ALICE)

    def test_repay_moves_funds(self, engine, alice, store):
        loan_id = engine.originate(ALICE, 1_000_000, ADMIN)
        loan = engine.repay(ALICE, loan_id, ADMIN)
        assert loan.status == LoanStatus.REPAID
        assert store.balance_of(ALICE) == 100_000_000 - 1_050_000
        assert store.balance_of(ADMIN) == 1_050_000

    def test_repay_without_funds(self, engine, store):
        engine.register(BOB)
        loan_id = engine.originate(BOB, 1_000_000, ADMIN)
        with pytest.raises(TransferRejected):
            engine.repay(BOB, loan_id, ADMIN)
        assert engine.loan(loan_id, ADMIN).status == LoanStatus.ACTIVE

    def test_stake_with_fake_transfer(self):
        transfer = RecordingTransfer()
        engine = LendingEngine(transfer, initial_time=T0)
        engine.initialize(ADMIN)
        engine.register(ALICE)
        assert engine.stake(ALICE, 3_000_000, ADMIN) == 3_000_000
        assert transfer.calls == [(ALICE, ADMIN, 3_000_000)]

    def test_stake_rejected_transfer(self):
        engine = LendingEngine(RejectingTransfer(), initial_time=T0)
        engine.initialize(ADMIN)
        engine.register(ALICE)
        with pytest.raises(TransferRejected):
            engine.stake(ALICE, 3_000_000, ADMIN)
        assert engine.stake_of(ALICE, ADMIN) == 0

    def test_pause_by_non_admin(self, engine):
        with pytest.raises(Unauthorized):
            engine.pause(ALICE, ADMIN)
        assert engine.platform_stats(ADMIN)['is_paused'] is False


class TestQueries:

    def test_score_and_ceiling(self, engine, alice):
        assert engine.score_of(ALICE) == (100, Tier.BRONZE)
        assert engine.max_loan_amount(ALICE) == 1_000_000
        assert engine.trust_record(ALICE).user == ALICE

    def test_unknown_user(self, engine):
        with pytest.raises(NotFound):
            engine.score_of("ghost")

    def test_loans_of(self, engine, alice):
        assert engine.loans_of(ALICE, ADMIN) == []
        engine.originate(ALICE, 1_000_000, ADMIN)
        engine.originate(ALICE, 1_000_000, ADMIN)
        assert engine.loans_of(ALICE, ADMIN) == [1, 2]

    def test_loan_details(self, engine, alice):
        loan_id = engine.originate(ALICE, 1_000_000, ADMIN)
        assert engine.loan_details(loan_id, ADMIN) == (
            1, ALICE, 1_000_000, 50_000, T0 + LOAN_TERM, LoanStatus.ACTIVE
        )

    def test_unknown_loan(self, engine):
        with pytest.raises(NotFound):
            engine.loan(1, ADMIN)
        with pytest.raises(NotFound):
            engine.loan_details(1, ADMIN)

    def test_stake_queries(self, engine, alice):
        engine.stake(ALICE, 4_000_000, ADMIN)
        engine.unstake(ALICE, 1_000_000, ADMIN)
        assert engine.stake_of(ALICE, ADMIN) == 3_000_000
        assert engine.pending_withdrawal(ALICE, ADMIN) == 1_000_000
        assert engine.pending_withdrawal(BOB, ADMIN) == 0

    def test_platform_stats(self, engine, alice):
        loan_id = engine.originate(ALICE, 1_000_000, ADMIN)
        engine.stake(ALICE, 2_000_000, ADMIN)
        engine.repay(ALICE, loan_id, ADMIN)
        assert engine.platform_stats(ADMIN) == {
            'admin': ADMIN,
            'total_loans': 1,
            'total_volume': 1_000_000,
            'treasury_balance': 1_050_000,
            'is_paused': False,
            'total_staked': 2_000_000,
            'active_loan_count': 0,
        }

    def test_platform(self, engine):
        assert engine.platform(ADMIN).admin == ADMIN


class TestVerifyInvariants:

    def test_fresh_engine_valid(self):
        report = make_engine().verify_invariants()
        assert report == {'valid': True, 'violations': []}

    def test_valid_after_activity(self, engine, alice):
        engine.stake(ALICE, 5_000_000, ADMIN)
        loan_id = engine.originate(ALICE, 5_000_000, ADMIN)
        engine.unstake(ALICE, 1_000_000, ADMIN)
        engine.repay(ALICE, loan_id, ADMIN)
        report = engine.verify_invariants()
        assert report['valid'], report['violations']

    def test_detects_stake_mismatch(self, engine, alice):
        engine.stake(ALICE, 5_000_000, ADMIN)
        engine.platform(ADMIN).pool.total_staked += 1
        report = engine.verify_invariants()
        assert not report['valid']
        assert any("total_staked" in v for v in report['violations'])

    def test_detects_record_stake_mismatch(self, engine, alice):
        engine.stake(ALICE, 5_000_000, ADMIN)
        engine.platform(ADMIN).pool.user_stakes[ALICE] -= 1
        engine.platform(ADMIN).pool.total_staked -= 1
        report = engine.verify_invariants()
        assert any("staked_amount" in v for v in report['violations'])

    def test_detects_defaulted_loan(self, engine, alice):
        loan_id = engine.originate(ALICE, 1_000_000, ADMIN)
        state = engine.platform(ADMIN).state
        state.active_loans[loan_id] = replace(state.active_loans[loan_id], status=LoanStatus.DEFAULTED)
        report = engine.verify_invariants()
        assert any("defaulted" in v for v in report['violations'])

    def test_detects_id_gap(self, engine, alice):
        engine.originate(ALICE, 1_000_000, ADMIN)
        engine.platform(ADMIN).state.total_loans = 2
        report = engine.verify_invariants()
        assert any("loan ids" in v for v in report['violations'])
