import asyncio
from typing import Final

import structlog

from ghadispatch.clock import Clock
from ghadispatch.clock import RealClock
from ghadispatch.errors import MalformedResponse
from ghadispatch.errors import PollingStall
from ghadispatch.errors import TransientFetchError
from ghadispatch.github.client import GitHubActionsClient
from ghadispatch.github.json_models import JsonWorkflowRun
from ghadispatch.jobs.job_record import RunConclusion
from ghadispatch.jobs.job_record import RunHandle
from ghadispatch.jobs.job_record import parse_run_conclusion
from ghadispatch.jobs.retry_policy import RetryPolicy
from ghadispatch.jobs.retry_policy import Waiter
from ghadispatch.jobs.retry_policy import raise_if_cancelled
from ghadispatch.jobs.retry_policy import wait_or_cancel

STATUS_COMPLETED: Final = "completed"
# Runs in these states haven't been picked up by a runner yet
QUEUED_STATUSES: Final = frozenset({"queued", "waiting", "requested", "pending"})

logger = structlog.stdlib.get_logger(__name__)


def terminal_conclusion(run: JsonWorkflowRun) -> RunConclusion:
    if run.conclusion is None:
        raise MalformedResponse("conclusion", f"completed run {run.id}")
    conclusion = parse_run_conclusion(run.conclusion)
    if conclusion is None:
        raise MalformedResponse(
            "conclusion", f"completed run {run.id} (unknown value {run.conclusion})"
        )
    return conclusion


class Poller:
    def __init__(
        self,
        client: GitHubActionsClient,
        policy: RetryPolicy,
        queued_interval_seconds: float,
        clock: Clock = RealClock(),
        waiter: Waiter = wait_or_cancel,
    ) -> None:
        self._client = client
        self._policy = policy
        self._queued_interval_seconds = queued_interval_seconds
        self._clock = clock
        self._waiter = waiter

    async def poll(
        self,
        handle: RunHandle,
        cancel: None | asyncio.Event = None,
    ) -> RunConclusion:
        log = logger.bind(run_id=handle.run_id)
        started = self._clock.now()
        attempts = 0
        # Backoff only advances while the run is past the queue
        running_attempts = 0
        last_status: None | str = None
        while True:
            raise_if_cancelled(cancel)
            try:
                run = await self._client.get_run(handle.status_url)
                status: None | str = run.status
            except TransientFetchError as e:
                log.warning(f"couldn't fetch run status, retrying: {e.message}")
                run = None
                status = None
            attempts += 1

            if run is not None and run.status == STATUS_COMPLETED:
                conclusion = terminal_conclusion(run)
                log.info(f"run completed, conclusion {conclusion.value}")
                return conclusion

            if status is not None and status != last_status:
                log.info(f"run is {status} ({handle.display_url})")
                last_status = status

            if self._policy.exhausted(attempts, started, self._clock.now()):
                raise PollingStall(
                    f"run {handle.run_id} didn't complete after {attempts} status check(s), last status {last_status}"
                )
            if status in QUEUED_STATUSES:
                interval = self._queued_interval_seconds
            else:
                interval = min(
                    self._policy.interval_for(running_attempts),
                    self._queued_interval_seconds,
                )
                running_attempts += 1
            await self._waiter(interval, cancel)
