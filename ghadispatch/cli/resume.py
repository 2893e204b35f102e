import asyncio
import sys

import structlog

from ghadispatch.cli.common import EXIT_CANCELLED
from ghadispatch.cli.common import EXIT_USAGE
from ghadispatch.cli.common import CommonArguments
from ghadispatch.cli.common import exit_code_for
from ghadispatch.cli.common import install_cancel_handlers
from ghadispatch.cli.common import open_components
from ghadispatch.cli.common import report_outcome
from ghadispatch.cli.common import resolve_repository
from ghadispatch.cli.common import setup_logging
from ghadispatch.config import load_user_config
from ghadispatch.errors import OperationCancelled
from ghadispatch.jobs.pipeline import PipelineFinished
from ghadispatch.jobs.pipeline import clean_jobs

logger = structlog.stdlib.get_logger(__name__)


class Arguments(CommonArguments):
    clean_successful: bool = False  # Remove jobs that finished successfully from the ledger afterwards


async def _main_loop(args: Arguments) -> int:
    config = load_user_config(args.config_file)
    repository = resolve_repository(args)
    if repository is None:
        return EXIT_USAGE

    async with open_components(config, repository, args.data_dir) as components:
        cancel = asyncio.Event()
        install_cancel_handlers(cancel)
        try:
            outcomes = await components.pipeline.resume_all(cancel)
        except OperationCancelled:
            logger.warning("cancelled, unfinished jobs stay in the ledger")
            return EXIT_CANCELLED

        if not outcomes:
            logger.info("no jobs in the ledger")
        for outcome in outcomes:
            report_outcome(outcome)

        if args.clean_successful:
            await clean_jobs(
                components.job_store,
                [
                    o.record.id
                    for o in outcomes
                    if isinstance(o, PipelineFinished) and o.evaluation.success
                ],
            )
        return exit_code_for(outcomes)


def main() -> None:
    args = Arguments(underscores_to_dashes=True).parse_args()
    setup_logging(args)
    sys.exit(asyncio.run(_main_loop(args)))


if __name__ == "__main__":
    main()
