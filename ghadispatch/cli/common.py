import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator
from typing import Final
from typing import Iterable
from typing import Optional

import structlog
from tap import Tap

from ghadispatch.config import UserConfig
from ghadispatch.git_utils import default_repository_from_git
from ghadispatch.jobs.evaluator import format_failure_report
from ghadispatch.jobs.pipeline import PipelineAborted
from ghadispatch.jobs.pipeline import PipelineFinished
from ghadispatch.jobs.pipeline import PipelineOutcome
from ghadispatch.jobs.pipeline import outcome_successful
from ghadispatch.jobs.pipeline_factory import PipelineComponents
from ghadispatch.jobs.pipeline_factory import create_pipeline_components
from ghadispatch.logging_util import setup_structlog

EXIT_SUCCESS: Final = 0
EXIT_FAILURE: Final = 1
EXIT_USAGE: Final = 2
EXIT_CANCELLED: Final = 130

logger = structlog.stdlib.get_logger(__name__)


class CommonArguments(Tap):
    # pylint: disable=consider-alternative-union-syntax
    repository: Optional[str] = None  # owner/repo; defaults to the GitHub "origin" remote of the current directory
    # pylint: disable=consider-alternative-union-syntax
    config_file: Optional[Path] = None  # YAML configuration (default: $XDG_CONFIG_HOME/ghadispatch/config.yml)
    # pylint: disable=consider-alternative-union-syntax
    data_dir: Optional[Path] = None  # Where the ledger and downloaded results live
    verbose: bool = False  # Log debug output


def setup_logging(args: CommonArguments) -> None:
    setup_structlog(logging.DEBUG if args.verbose else logging.INFO)


def resolve_repository(args: CommonArguments) -> None | str:
    if args.repository is not None:
        return args.repository
    repository = default_repository_from_git()
    if repository is None:
        logger.error(
            "couldn't determine the repository from git, please pass --repository owner/repo"
        )
    return repository


@asynccontextmanager
async def open_components(
    config: UserConfig,
    repository: str,
    data_dir: None | Path,
) -> AsyncGenerator[PipelineComponents, None]:
    components = create_pipeline_components(config, repository, data_dir=data_dir)
    await components.job_store.initialize()
    try:
        yield components
    finally:
        await components.job_store.close()


def install_cancel_handlers(cancel: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, cancel.set)


def report_outcome(outcome: PipelineOutcome) -> None:
    match outcome:
        case PipelineAborted(job_id=job_id, stage=stage, reason=reason):
            print(f"job {job_id}: aborted during {stage.value}: {reason}")
        case PipelineFinished(record=record, evaluation=evaluation):
            conclusion = (
                evaluation.conclusion.value
                if evaluation.conclusion is not None
                else "unknown"
            )
            run_url = record.run.display_url if record.run is not None else ""
            print(
                f"job {record.id}: {record.workflow_id} on {record.ref} finished with {conclusion} {run_url}"
            )
            for key, value in record.exports.items():
                print(f"  {key}={value}")
            for failure in evaluation.retrieval_failures:
                print(f"  couldn't retrieve {failure.resource}: {failure.message}")
            if evaluation.failure_report:
                print(format_failure_report(evaluation.failure_report))


def exit_code_for(outcomes: Iterable[PipelineOutcome]) -> int:
    return (
        EXIT_SUCCESS
        if all(outcome_successful(o) for o in outcomes)
        else EXIT_FAILURE
    )
