import asyncio
import sys

from ghadispatch.cli.common import EXIT_SUCCESS
from ghadispatch.cli.common import EXIT_USAGE
from ghadispatch.cli.common import CommonArguments
from ghadispatch.cli.common import open_components
from ghadispatch.cli.common import resolve_repository
from ghadispatch.cli.common import setup_logging
from ghadispatch.config import load_user_config
from ghadispatch.errors import StaleJobRecord
from ghadispatch.jobs.job_record import JobRecord


class Arguments(CommonArguments):
    pass


def format_record(record: JobRecord | StaleJobRecord) -> str:
    if isinstance(record, StaleJobRecord):
        return f"{record.job_id}  (stale: local record missing)"
    run = f"run {record.run.run_id}" if record.run is not None else "no run yet"
    conclusion = record.conclusion.value if record.conclusion is not None else "-"
    return (
        f"{record.id}  {record.workflow_id}@{record.ref}  dispatched {record.dispatched_at.isoformat()}"
        f"  {record.state.value}  {run}  {conclusion}"
    )


async def _main_loop(args: Arguments) -> int:
    config = load_user_config(args.config_file)
    repository = resolve_repository(args)
    if repository is None:
        return EXIT_USAGE

    async with open_components(config, repository, args.data_dir) as components:
        for record in await components.job_store.list_records():
            print(format_record(record))
    return EXIT_SUCCESS


def main() -> None:
    args = Arguments(underscores_to_dashes=True).parse_args()
    setup_logging(args)
    sys.exit(asyncio.run(_main_loop(args)))


if __name__ == "__main__":
    main()
