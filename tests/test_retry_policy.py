import asyncio
import datetime

import pytest
from pydantic import ValidationError

from ghadispatch.errors import OperationCancelled
from ghadispatch.jobs.retry_policy import RetryPolicy
from ghadispatch.jobs.retry_policy import raise_if_cancelled
from ghadispatch.jobs.retry_policy import wait_or_cancel

_START = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


def test_interval_without_backoff_is_constant() -> None:
    policy = RetryPolicy(interval_seconds=5.0)

    assert [policy.interval_for(i) for i in range(3)] == [5.0, 5.0, 5.0]


def test_interval_with_backoff_is_capped() -> None:
    policy = RetryPolicy(
        interval_seconds=10.0, backoff_factor=2.0, max_interval_seconds=30.0
    )

    assert [policy.interval_for(i) for i in range(4)] == [10.0, 20.0, 30.0, 30.0]


def test_exhausted_by_attempts() -> None:
    policy = RetryPolicy(interval_seconds=1.0, max_attempts=3)

    assert not policy.exhausted(2, _START, _START)
    assert policy.exhausted(3, _START, _START)


def test_exhausted_by_elapsed_time() -> None:
    policy = RetryPolicy(interval_seconds=1.0, max_elapsed_seconds=60.0)

    assert not policy.exhausted(100, _START, _START + datetime.timedelta(seconds=59))
    assert policy.exhausted(1, _START, _START + datetime.timedelta(seconds=60))


def test_unbounded_policy_is_never_exhausted() -> None:
    policy = RetryPolicy(interval_seconds=1.0)

    assert not policy.exhausted(10_000, _START, _START + datetime.timedelta(days=7))


def test_invalid_policy_is_rejected() -> None:
    with pytest.raises(ValidationError):
        RetryPolicy(interval_seconds=1.0, max_attempts=0)
    with pytest.raises(ValidationError):
        RetryPolicy(interval_seconds=1.0, backoff_factor=0.5)


async def test_wait_returns_after_timeout_when_not_cancelled() -> None:
    await wait_or_cancel(0.01, asyncio.Event())


async def test_wait_raises_when_cancelled() -> None:
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        await wait_or_cancel(60.0, cancel)


def test_raise_if_cancelled() -> None:
    cancel = asyncio.Event()
    raise_if_cancelled(None)
    raise_if_cancelled(cancel)

    cancel.set()

    with pytest.raises(OperationCancelled):
        raise_if_cancelled(cancel)
