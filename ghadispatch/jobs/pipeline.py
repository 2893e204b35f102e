import asyncio
from dataclasses import dataclass
from enum import Enum

import structlog

from ghadispatch.errors import CleanupError
from ghadispatch.errors import GhaDispatchError
from ghadispatch.errors import OperationCancelled
from ghadispatch.errors import StaleJobRecord
from ghadispatch.jobs.collector import Collector
from ghadispatch.jobs.correlator import Correlator
from ghadispatch.jobs.evaluator import Evaluation
from ghadispatch.jobs.evaluator import evaluate
from ghadispatch.jobs.extractor import DEFAULT_EXPORT_MARKER
from ghadispatch.jobs.extractor import extract_exports
from ghadispatch.jobs.job_record import JobRecord
from ghadispatch.jobs.job_record import JobState
from ghadispatch.jobs.job_record import RetrievalFailure
from ghadispatch.jobs.job_store import JobStore
from ghadispatch.jobs.poller import Poller

logger = structlog.stdlib.get_logger(__name__)


class PipelineStage(Enum):
    CORRELATION = "correlation"
    POLLING = "polling"
    COLLECTION = "collection"


@dataclass(frozen=True)
class PipelineFinished:
    record: JobRecord
    evaluation: Evaluation


@dataclass(frozen=True)
class PipelineAborted:
    job_id: str
    stage: PipelineStage
    reason: str


PipelineOutcome = PipelineFinished | PipelineAborted


def outcome_successful(outcome: PipelineOutcome) -> bool:
    return isinstance(outcome, PipelineFinished) and outcome.evaluation.success


class Pipeline:
    def __init__(
        self,
        job_store: JobStore,
        correlator: Correlator,
        poller: Poller,
        collector: Collector,
        export_marker: str = DEFAULT_EXPORT_MARKER,
    ) -> None:
        self._job_store = job_store
        self._correlator = correlator
        self._poller = poller
        self._collector = collector
        self._export_marker = export_marker

    async def _collect_and_evaluate(self, record: JobRecord) -> PipelineFinished:
        assert record.run is not None
        collection = await self._collector.collect(
            record.run, self._job_store.job_directory(record.id)
        )
        failures: list[RetrievalFailure] = collection.failures()

        record.logs_directory = (
            collection.logs if not isinstance(collection.logs, RetrievalFailure) else None
        )
        record.artifacts = (
            collection.artifacts
            if not isinstance(collection.artifacts, RetrievalFailure)
            else []
        )
        record.jobs = (
            collection.jobs if not isinstance(collection.jobs, RetrievalFailure) else None
        )
        if record.logs_directory is not None:
            extraction = extract_exports(record.logs_directory, self._export_marker)
            for error in extraction.errors:
                logger.warning(
                    f"malformed export in {error.file}:{error.line_number}: {error.reason}",
                    job_id=record.id,
                )
            record.exports = extraction.exports
        record.retrieval_failures = failures
        self._job_store.save_record(record)

        return PipelineFinished(
            record=record,
            evaluation=evaluate(record.conclusion, record.jobs, failures),
        )

    async def run(
        self,
        record: JobRecord,
        cancel: None | asyncio.Event = None,
    ) -> PipelineOutcome:
        """Drive a record from wherever it stopped to an evaluation.

        The record is saved after every state change, so cancelling (or
        crashing) leaves something ``resume`` can pick up again.
        ``OperationCancelled`` propagates to the caller.
        """
        log = logger.bind(job_id=record.id)

        if record.run is None:
            record.state = JobState.AWAITING_RUN
            self._job_store.save_record(record)
            try:
                handle = await self._correlator.correlate(record, cancel)
            except OperationCancelled:
                raise
            except GhaDispatchError as e:
                log.error(f"correlation failed: {e.message}")
                return PipelineAborted(record.id, PipelineStage.CORRELATION, e.message)
            record.bind_run(handle)

        assert record.run is not None
        if record.state != JobState.COMPLETED:
            record.state = JobState.POLLING
            self._job_store.save_record(record)
            try:
                record.conclusion = await self._poller.poll(record.run, cancel)
            except OperationCancelled:
                raise
            except GhaDispatchError as e:
                log.error(f"polling failed: {e.message}")
                return PipelineAborted(record.id, PipelineStage.POLLING, e.message)
            record.state = JobState.COMPLETED
            self._job_store.save_record(record)

        try:
            return await self._collect_and_evaluate(record)
        except GhaDispatchError as e:
            log.error(f"collection failed: {e.message}")
            return PipelineAborted(record.id, PipelineStage.COLLECTION, e.message)

    async def resume_all(
        self,
        cancel: None | asyncio.Event = None,
    ) -> list[PipelineOutcome]:
        outcomes: list[PipelineOutcome] = []
        for record in await self._job_store.list_records():
            if isinstance(record, StaleJobRecord):
                logger.warning(f"skipping ledger entry: {record.message}")
                continue
            logger.info(
                f"resuming job {record.id} ({record.workflow_id} on {record.ref}), state {record.state.value}"
            )
            outcomes.append(await self.run(record, cancel))
        return outcomes


async def clean_jobs(
    job_store: JobStore,
    job_ids: None | list[str] = None,
) -> list[CleanupError]:
    errors: list[CleanupError] = []
    for job_id in job_ids if job_ids is not None else await job_store.list_job_ids():
        try:
            await job_store.clean(job_id)
        except CleanupError as e:
            logger.error(e.message)
            errors.append(e)
    return errors
