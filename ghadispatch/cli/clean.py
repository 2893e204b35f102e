import asyncio
import sys
from typing import Optional

import structlog

from ghadispatch.cli.common import EXIT_FAILURE
from ghadispatch.cli.common import EXIT_SUCCESS
from ghadispatch.cli.common import EXIT_USAGE
from ghadispatch.cli.common import CommonArguments
from ghadispatch.cli.common import open_components
from ghadispatch.cli.common import resolve_repository
from ghadispatch.cli.common import setup_logging
from ghadispatch.config import load_user_config
from ghadispatch.jobs.pipeline import clean_jobs

logger = structlog.stdlib.get_logger(__name__)


class Arguments(CommonArguments):
    # pylint: disable=consider-alternative-union-syntax
    job_id: Optional[str] = None  # Only remove this job (default: all jobs of the repository)


async def _main_loop(args: Arguments) -> int:
    config = load_user_config(args.config_file)
    repository = resolve_repository(args)
    if repository is None:
        return EXIT_USAGE

    async with open_components(config, repository, args.data_dir) as components:
        errors = await clean_jobs(
            components.job_store,
            [args.job_id] if args.job_id is not None else None,
        )
    for error in errors:
        print(error.message)
    return EXIT_FAILURE if errors else EXIT_SUCCESS


def main() -> None:
    args = Arguments(underscores_to_dashes=True).parse_args()
    setup_logging(args)
    sys.exit(asyncio.run(_main_loop(args)))


if __name__ == "__main__":
    main()
