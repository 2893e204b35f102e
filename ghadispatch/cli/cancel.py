import asyncio
import sys

import structlog

from ghadispatch.cli.common import EXIT_FAILURE
from ghadispatch.cli.common import EXIT_SUCCESS
from ghadispatch.cli.common import EXIT_USAGE
from ghadispatch.cli.common import CommonArguments
from ghadispatch.cli.common import open_components
from ghadispatch.cli.common import resolve_repository
from ghadispatch.cli.common import setup_logging
from ghadispatch.config import load_user_config
from ghadispatch.errors import GhaDispatchError

logger = structlog.stdlib.get_logger(__name__)


class Arguments(CommonArguments):
    job_id: str  # Job whose remote run should be cancelled

    def configure(self) -> None:
        self.add_argument("job_id")


async def _main_loop(args: Arguments) -> int:
    config = load_user_config(args.config_file)
    repository = resolve_repository(args)
    if repository is None:
        return EXIT_USAGE

    async with open_components(config, repository, args.data_dir) as components:
        try:
            record = components.job_store.load_record(args.job_id)
            if record.run is None:
                logger.error(
                    f"job {record.id} has no run yet, resume it first to correlate one"
                )
                return EXIT_FAILURE
            await components.client.cancel_run(record.run.cancel_url)
        except GhaDispatchError as e:
            logger.error(e.message)
            return EXIT_FAILURE
        print(f"requested cancellation of run {record.run.run_id}")
    return EXIT_SUCCESS


def main() -> None:
    args = Arguments(underscores_to_dashes=True).parse_args()
    setup_logging(args)
    sys.exit(asyncio.run(_main_loop(args)))


if __name__ == "__main__":
    main()
