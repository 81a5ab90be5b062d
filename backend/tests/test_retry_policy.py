"""
Tests for the RetryPolicy (tenacity-driven bounded backoff).
"""
import asyncio

import pytest

from challenge_engine.errors import GenerationUnavailable, MalformedDraft, RenderFailed
from challenge_engine.services.pipeline import RetryPolicy

from conftest import RecordingSleep


# =============================================================================
# TEST: PURE SCHEDULE
# =============================================================================

class TestSchedule:

    def test_default_schedule(self):
        policy = RetryPolicy()
        assert policy.schedule() == [1.0, 2.0]

    def test_delay_capped(self):
        policy = RetryPolicy(max_attempts=8, base_delay=1.0, multiplier=3.0, max_delay=30.0)
        assert policy.schedule() == [1.0, 3.0, 9.0, 27.0, 30.0, 30.0, 30.0]

    def test_single_attempt_has_no_backoff(self):
        assert RetryPolicy(max_attempts=1).schedule() == []

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_is_retryable(self):
        policy = RetryPolicy()
        assert policy.is_retryable(GenerationUnavailable())
        assert policy.is_retryable(MalformedDraft())
        assert not policy.is_retryable(RenderFailed())
        assert not policy.is_retryable(ValueError())


# =============================================================================
# TEST: RUN
# =============================================================================

class TestRun:

    def test_succeeds_after_retries(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, base_delay=0.5, sleep=sleep)
        calls = []

        async def flaky(attempt):
            calls.append(attempt)
            if attempt < 3:
                raise GenerationUnavailable("busy")
            return "ok"

        assert asyncio.run(policy.run(flaky)) == "ok"
        assert calls == [1, 2, 3]
        assert sleep.delays == [0.5, 1.0]

    def test_exhaustion_reraises_last_error(self):
        policy = RetryPolicy(max_attempts=3, sleep=RecordingSleep())
        calls = []

        async def always_bad(attempt):
            calls.append(attempt)
            raise MalformedDraft(f"bad draft {attempt}")

        with pytest.raises(MalformedDraft) as exc_info:
            asyncio.run(policy.run(always_bad))
        assert str(exc_info.value) == "bad draft 3"
        assert calls == [1, 2, 3]

    def test_non_retryable_propagates_immediately(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, sleep=sleep)
        calls = []

        async def broken(attempt):
            calls.append(attempt)
            raise RenderFailed("no")

        with pytest.raises(RenderFailed):
            asyncio.run(policy.run(broken))
        assert calls == [1]
        assert sleep.delays == []

    def test_on_retry_callback(self):
        policy = RetryPolicy(max_attempts=2, base_delay=0.25, sleep=RecordingSleep())
        seen = []

        async def once_bad(attempt):
            if attempt == 1:
                raise GenerationUnavailable("first")
            return attempt

        result = asyncio.run(policy.run(once_bad, on_retry=lambda n, exc, delay: seen.append((n, str(exc), delay))))
        assert result == 2
        assert seen == [(1, "first", 0.25)]
