import asyncio
import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import structlog

from ghadispatch.clock import Clock
from ghadispatch.clock import RealClock
from ghadispatch.errors import AmbiguousCorrelationError
from ghadispatch.errors import CorrelationStall
from ghadispatch.errors import TransientFetchError
from ghadispatch.github.client import GitHubActionsClient
from ghadispatch.github.json_models import JsonWorkflowRun
from ghadispatch.jobs.job_record import JobRecord
from ghadispatch.jobs.job_record import RunHandle
from ghadispatch.jobs.retry_policy import RetryPolicy
from ghadispatch.jobs.retry_policy import Waiter
from ghadispatch.jobs.retry_policy import raise_if_cancelled
from ghadispatch.jobs.retry_policy import wait_or_cancel

logger = structlog.stdlib.get_logger(__name__)


class AmbiguityPolicy(Enum):
    ACCEPT_EARLIEST = "accept-earliest"
    ABORT = "abort"


@dataclass(frozen=True)
class CorrelationMatch:
    run: JsonWorkflowRun


@dataclass(frozen=True)
class AmbiguousCorrelation:
    # Sorted by start time, then ID; the first one is what ACCEPT_EARLIEST binds
    candidates: list[JsonWorkflowRun]

    @property
    def earliest(self) -> JsonWorkflowRun:
        return self.candidates[0]


def select_candidate(
    runs: Iterable[JsonWorkflowRun],
    anchor: datetime.datetime,
) -> None | CorrelationMatch | AmbiguousCorrelation:
    # The API filter is on whole seconds; filter again so the anchor invariant holds for sure
    eligible = sorted(
        (r for r in runs if r.created_at >= anchor),
        key=lambda r: (r.created_at, r.id),
    )
    if not eligible:
        return None
    if len(eligible) == 1:
        return CorrelationMatch(eligible[0])
    return AmbiguousCorrelation(eligible)


def run_handle_from_run(run: JsonWorkflowRun) -> RunHandle:
    return RunHandle(
        run_id=run.id,
        status_url=run.url,
        cancel_url=run.cancel_url,
        display_url=run.html_url,
        logs_url=run.logs_url,
        artifacts_url=run.artifacts_url,
        jobs_url=run.jobs_url,
        started=run.created_at,
    )


class Correlator:
    def __init__(
        self,
        client: GitHubActionsClient,
        policy: RetryPolicy,
        ambiguity_policy: AmbiguityPolicy = AmbiguityPolicy.ACCEPT_EARLIEST,
        clock: Clock = RealClock(),
        waiter: Waiter = wait_or_cancel,
    ) -> None:
        self._client = client
        self._policy = policy
        self._ambiguity_policy = ambiguity_policy
        self._clock = clock
        self._waiter = waiter

    def _resolve(
        self,
        record: JobRecord,
        selection: CorrelationMatch | AmbiguousCorrelation,
    ) -> JsonWorkflowRun:
        match selection:
            case CorrelationMatch(run=run):
                return run
            case AmbiguousCorrelation(candidates=candidates):
                candidate_ids = ", ".join(str(c.id) for c in candidates)
                if self._ambiguity_policy == AmbiguityPolicy.ABORT:
                    raise AmbiguousCorrelationError(
                        f"{len(candidates)} runs of {record.workflow_id} on {record.ref} started after the dispatch of job {record.id}: {candidate_ids}"
                    )
                logger.warning(
                    f"{len(candidates)} candidate runs ({candidate_ids}), accepting the earliest one",
                    job_id=record.id,
                )
                return selection.earliest

    async def correlate(
        self,
        record: JobRecord,
        cancel: None | asyncio.Event = None,
    ) -> RunHandle:
        log = logger.bind(job_id=record.id, workflow_id=record.workflow_id)
        started = self._clock.now()
        attempts = 0
        while True:
            raise_if_cancelled(cancel)
            try:
                runs = await self._client.list_runs(
                    record.workflow_id, record.ref, record.dispatched_at
                )
            except TransientFetchError as e:
                log.warning(f"couldn't list runs, retrying: {e.message}")
                runs = []
            attempts += 1

            selection = select_candidate(runs, record.dispatched_at)
            if selection is not None:
                run = self._resolve(record, selection)
                log.info(f"correlated with run {run.id} ({run.html_url})")
                return run_handle_from_run(run)

            if self._policy.exhausted(attempts, started, self._clock.now()):
                raise CorrelationStall(
                    f"no run of {record.workflow_id} on {record.ref} appeared after {attempts} attempt(s)"
                )
            interval = self._policy.interval_for(attempts - 1)
            log.info(f"waiting for the run to appear, next check in {interval:.1f}s")
            await self._waiter(interval, cancel)
