"""
Tests for the challenge job state machine and the active-job guard.
"""
import threading

import pytest

from challenge_engine.services.pipeline import (
    ChallengeJob, JobPhase, PHASE_CONFIG, can_transition, InvalidTransition, ActiveJobGuard
)


# =============================================================================
# TEST: TRANSITIONS
# =============================================================================

class TestTransitions:

    HAPPY_PATH = [
        JobPhase.FACTS_EXTRACTED,
        JobPhase.STRATEGY_SELECTED,
        JobPhase.DRAFTING,
        JobPhase.DRAFT_ACCEPTED,
        JobPhase.RENDERING,
        JobPhase.COMPLETED,
    ]

    def test_happy_path(self):
        job = ChallengeJob(ticket_id="t1")
        for phase in self.HAPPY_PATH:
            job.advance(phase)
        assert job.phase == JobPhase.COMPLETED
        assert job.is_terminal
        assert job.history[0] == "PENDING"
        assert job.history[-1] == "COMPLETED"

    def test_drafting_may_repeat(self):
        allowed, _ = can_transition(JobPhase.DRAFTING, JobPhase.DRAFTING)
        assert allowed

    def test_cannot_skip_phases(self):
        allowed, reason = can_transition(JobPhase.PENDING, JobPhase.DRAFTING)
        assert not allowed
        assert "PENDING" in reason

    def test_cannot_go_backwards(self):
        job = ChallengeJob(ticket_id="t1")
        job.advance(JobPhase.FACTS_EXTRACTED)
        with pytest.raises(InvalidTransition):
            job.advance(JobPhase.PENDING)

    @pytest.mark.parametrize("phase", [p for p in JobPhase if not PHASE_CONFIG[p]["terminal"]])
    def test_failed_reachable_from_every_non_terminal_phase(self, phase):
        allowed, _ = can_transition(phase, JobPhase.FAILED)
        assert allowed

    @pytest.mark.parametrize("phase", [JobPhase.COMPLETED, JobPhase.FAILED])
    def test_terminal_phases_have_no_exits(self, phase):
        for target in JobPhase:
            allowed, _ = can_transition(phase, target)
            assert not allowed

    def test_reuse_short_circuit(self):
        allowed, _ = can_transition(JobPhase.STRATEGY_SELECTED, JobPhase.COMPLETED)
        assert allowed


# =============================================================================
# TEST: JOB RECORD
# =============================================================================

class TestChallengeJob:

    def test_attempt_counting(self):
        job = ChallengeJob(ticket_id="t1")
        job.record_attempt(JobPhase.DRAFTING)
        job.record_attempt(JobPhase.DRAFTING)
        assert job.attempts_for(JobPhase.DRAFTING) == 2
        assert job.attempts_for(JobPhase.RENDERING) == 0

    def test_fail_records_error(self):
        job = ChallengeJob(ticket_id="t1")
        job.fail(ValueError("boom"))
        assert job.phase == JobPhase.FAILED
        assert job.last_error == "ValueError: boom"

    def test_fail_on_terminal_job_keeps_phase(self):
        job = ChallengeJob(ticket_id="t1")
        job.fail(ValueError("first"))
        job.fail(ValueError("second"))
        assert job.phase == JobPhase.FAILED
        assert job.history.count("FAILED") == 1

    def test_snapshot_is_detached(self):
        job = ChallengeJob(ticket_id="t1")
        snapshot = job.snapshot()
        job.advance(JobPhase.FACTS_EXTRACTED)
        assert snapshot["phase"] == "PENDING"
        assert snapshot["history"] == ["PENDING"]


# =============================================================================
# TEST: ACTIVE JOB GUARD
# =============================================================================

class TestActiveJobGuard:

    def test_second_acquire_rejected(self):
        guard = ActiveJobGuard()
        assert guard.try_acquire("t1")
        assert not guard.try_acquire("t1")
        assert guard.try_acquire("t2")

    def test_release_allows_reacquire(self):
        guard = ActiveJobGuard()
        guard.try_acquire("t1")
        guard.release("t1")
        assert not guard.is_active("t1")
        assert guard.try_acquire("t1")

    def test_exactly_one_winner_across_threads(self):
        guard = ActiveJobGuard()
        results = []
        barrier = threading.Barrier(8)

        def contend():
            barrier.wait()
            results.append(guard.try_acquire("t1"))

        threads = [threading.Thread(target=contend) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
