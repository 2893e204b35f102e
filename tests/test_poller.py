import asyncio

import pytest
from mock_github import MockGitHubHttpWrapper
from mock_github import RecordingWaiter
from mock_github import run_json
from mock_github import run_url

from ghadispatch.config import UserConfig
from ghadispatch.errors import MalformedResponse
from ghadispatch.errors import OperationCancelled
from ghadispatch.errors import PollingStall
from ghadispatch.errors import RemoteRequestError
from ghadispatch.errors import TransientFetchError
from ghadispatch.github.client import GitHubActionsClient
from ghadispatch.github.json_models import JsonWorkflowRun
from ghadispatch.jobs.correlator import run_handle_from_run
from ghadispatch.jobs.job_record import RunConclusion
from ghadispatch.jobs.job_record import RunHandle
from ghadispatch.jobs.poller import Poller
from ghadispatch.jobs.retry_policy import RetryPolicy

_RUN_ID = 99
_POLICY = RetryPolicy(interval_seconds=10.0, backoff_factor=2.0, max_attempts=10)
_QUEUED_INTERVAL = 30.0


def _handle() -> RunHandle:
    return run_handle_from_run(JsonWorkflowRun.model_validate(run_json(_RUN_ID)))


def _poller(client: GitHubActionsClient, waiter: RecordingWaiter) -> Poller:
    return Poller(client, _POLICY, _QUEUED_INTERVAL, waiter=waiter)


async def test_poll_until_completed(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    http_wrapper.get_responses[run_url(_RUN_ID)] = [
        run_json(_RUN_ID, status="queued"),
        run_json(_RUN_ID, status="in_progress"),
        run_json(_RUN_ID, status="in_progress"),
        run_json(_RUN_ID, status="completed", conclusion="failure"),
    ]
    waiter = RecordingWaiter()

    conclusion = await _poller(client, waiter).poll(_handle())

    assert conclusion == RunConclusion.FAILURE
    assert len(http_wrapper.get_requests) == 4
    # queued runs are polled at the queued interval, running ones with backoff
    assert waiter.waits == [_QUEUED_INTERVAL, 10.0, 20.0]


async def test_conclusion_of_unfinished_run_is_ignored(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    http_wrapper.get_responses[run_url(_RUN_ID)] = [
        run_json(_RUN_ID, status="in_progress", conclusion="success"),
        run_json(_RUN_ID, status="completed", conclusion="cancelled"),
    ]

    conclusion = await _poller(client, RecordingWaiter()).poll(_handle())

    assert conclusion == RunConclusion.CANCELLED
    assert len(http_wrapper.get_requests) == 2


async def test_transient_errors_are_retried(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    http_wrapper.get_responses[run_url(_RUN_ID)] = [
        TransientFetchError("connection reset"),
        run_json(_RUN_ID, status="completed", conclusion="success"),
    ]

    conclusion = await _poller(client, RecordingWaiter()).poll(_handle())

    assert conclusion == RunConclusion.SUCCESS


async def test_other_errors_surface(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    http_wrapper.get_responses[run_url(_RUN_ID)] = [
        RemoteRequestError(run_url(_RUN_ID), 404, "Not Found")
    ]

    with pytest.raises(RemoteRequestError):
        await _poller(client, RecordingWaiter()).poll(_handle())

    assert len(http_wrapper.get_requests) == 1


async def test_unknown_conclusion_is_malformed(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    http_wrapper.get_responses[run_url(_RUN_ID)] = [
        run_json(_RUN_ID, status="completed", conclusion="exploded")
    ]

    with pytest.raises(MalformedResponse) as e:
        await _poller(client, RecordingWaiter()).poll(_handle())

    assert e.value.field == "conclusion"


async def test_missing_status_is_malformed(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    broken = run_json(_RUN_ID)
    del broken["status"]
    http_wrapper.get_responses[run_url(_RUN_ID)] = [broken]

    with pytest.raises(MalformedResponse) as e:
        await _poller(client, RecordingWaiter()).poll(_handle())

    assert e.value.field == "status"


async def test_polling_stalls(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    http_wrapper.get_responses[run_url(_RUN_ID)] = [
        run_json(_RUN_ID, status="in_progress")
    ]

    with pytest.raises(PollingStall):
        await _poller(client, RecordingWaiter()).poll(_handle())

    assert len(http_wrapper.get_requests) == 10


async def test_cancelled_polling(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        await _poller(client, RecordingWaiter()).poll(_handle(), cancel)

    assert not http_wrapper.get_requests


async def test_backoff_starts_when_run_leaves_the_queue(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    config = UserConfig()
    http_wrapper.get_responses[run_url(_RUN_ID)] = [
        run_json(_RUN_ID, status="queued"),
        run_json(_RUN_ID, status="queued"),
        run_json(_RUN_ID, status="queued"),
        run_json(_RUN_ID, status="in_progress"),
        run_json(_RUN_ID, status="completed", conclusion="success"),
    ]
    waiter = RecordingWaiter()

    await Poller(
        client, config.polling, config.queued_interval_seconds, waiter=waiter
    ).poll(_handle())

    assert waiter.waits == [
        config.queued_interval_seconds,
        config.queued_interval_seconds,
        config.queued_interval_seconds,
        config.polling.interval_seconds,
    ]


async def test_running_interval_never_exceeds_queued_interval(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
) -> None:
    http_wrapper.get_responses[run_url(_RUN_ID)] = [
        *(run_json(_RUN_ID, status="in_progress") for _ in range(5)),
        run_json(_RUN_ID, status="completed", conclusion="success"),
    ]
    waiter = RecordingWaiter()

    await _poller(client, waiter).poll(_handle())

    assert waiter.waits == [10.0, 20.0] + [_QUEUED_INTERVAL] * 3
