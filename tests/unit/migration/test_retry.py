"""
Tests for RetryPolicy and with_timeout.
"""

import asyncio

import pytest
from conftest import RecordingSleep

from assetmigrator.core.config import MigrationSettings
from assetmigrator.migration.retry import RetryPolicy, with_timeout
from assetmigrator.storage.core.errors import (
    IntegrityError,
    NotFoundError,
    ProviderTransportError,
    RateLimitError,
)


class Failing:
    """Callable failing with the given errors, then returning 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestDelays:
    def test_exponential_backoff(self):
        policy = RetryPolicy(delay_seconds=1.0, backoff=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_capped(self):
        policy = RetryPolicy(delay_seconds=100.0, backoff=10.0, max_delay_seconds=300.0)
        assert policy.delay_for(3) == 300.0

    def test_rate_limit_waits_longer(self):
        policy = RetryPolicy(delay_seconds=1.0, rate_limit_backoff=4.0)
        assert policy.delay_for(1, RateLimitError()) == 4.0

    def test_retry_after_honoured(self):
        policy = RetryPolicy(delay_seconds=1.0, rate_limit_backoff=4.0)
        assert policy.delay_for(1, RateLimitError(retry_after=30)) == 30

    def test_from_settings(self):
        settings = MigrationSettings(max_retries=5, retry_delay_seconds=0.25, retry_backoff=3.0)
        policy = RetryPolicy.from_settings(settings)
        assert policy.max_attempts == 6
        assert policy.delay_for(2) == 0.75

    @pytest.mark.parametrize(
        ("error", "retryable"),
        [
            (ProviderTransportError(), True),
            (RateLimitError(), True),
            (NotFoundError(), False),
            (IntegrityError(), False),
            (ValueError("bad"), False),
        ],
    )
    def test_should_retry(self, error, retryable):
        assert RetryPolicy().should_retry(error) is retryable


@pytest.mark.asyncio
class TestRun:
    """Tests for RetryPolicy.run."""

    async def test_success_first_try(self):
        outcome = await RetryPolicy().run(Failing(), sleep=RecordingSleep())
        assert outcome.ok
        assert outcome.value == "ok"
        assert outcome.attempts == 1

    async def test_transient_then_success(self):
        sleep = RecordingSleep()
        operation = Failing(ProviderTransportError(), ProviderTransportError())

        outcome = await RetryPolicy(max_retries=3, delay_seconds=1.0).run(operation, sleep=sleep)

        assert outcome.ok
        assert outcome.attempts == 3
        assert sleep.delays == [1.0, 2.0]

    async def test_retries_exhausted(self):
        sleep = RecordingSleep()
        operation = Failing(*[ProviderTransportError("reset")] * 5)

        outcome = await RetryPolicy(max_retries=2).run(operation, sleep=sleep)

        assert not outcome.ok
        assert outcome.attempts == 3
        assert str(outcome.error).startswith("reset")
        assert len(sleep.delays) == 2

    async def test_permanent_error_not_retried(self):
        sleep = RecordingSleep()
        outcome = await RetryPolicy().run(Failing(NotFoundError("gone")), sleep=sleep)
        assert outcome.attempts == 1
        assert isinstance(outcome.error, NotFoundError)
        assert sleep.delays == []

    async def test_zero_retries(self):
        outcome = await RetryPolicy(max_retries=0).run(
            Failing(ProviderTransportError()), sleep=RecordingSleep()
        )
        assert outcome.attempts == 1
        assert not outcome.ok


@pytest.mark.asyncio
class TestWithTimeout:
    async def test_returns_value(self):
        async def quick():
            return 42

        assert await with_timeout(quick(), 1.0, "head_object") == 42

    async def test_timeout_becomes_transport_error(self):
        with pytest.raises(ProviderTransportError) as exc_info:
            await with_timeout(asyncio.sleep(5), 0.01, "head_object", "images")
        assert exc_info.value.retryable
        assert exc_info.value.provider == "images"
        assert "timed out" in str(exc_info.value)

    async def test_no_timeout(self):
        async def quick():
            return "done"

        assert await with_timeout(quick(), None, "read") == "done"
