import asyncio
import os
import sys
from pathlib import Path

import structlog

from ghadispatch.cli.common import EXIT_CANCELLED
from ghadispatch.cli.common import EXIT_FAILURE
from ghadispatch.cli.common import EXIT_SUCCESS
from ghadispatch.cli.common import EXIT_USAGE
from ghadispatch.cli.common import CommonArguments
from ghadispatch.cli.common import exit_code_for
from ghadispatch.cli.common import install_cancel_handlers
from ghadispatch.cli.common import open_components
from ghadispatch.cli.common import report_outcome
from ghadispatch.cli.common import resolve_repository
from ghadispatch.cli.common import setup_logging
from ghadispatch.config import load_user_config
from ghadispatch.errors import DispatchRejected
from ghadispatch.errors import GhaDispatchError
from ghadispatch.errors import MissingVariable
from ghadispatch.errors import OperationCancelled
from ghadispatch.git_utils import default_ref_from_git
from ghadispatch.workflows.workflow_descriptor import DEFAULT_WORKFLOWS_DIRECTORY
from ghadispatch.workflows.workflow_descriptor import WorkflowDescriptor
from ghadispatch.workflows.workflow_descriptor import discover_workflows
from ghadispatch.workflows.workflow_descriptor import find_workflow

logger = structlog.stdlib.get_logger(__name__)


class Arguments(CommonArguments):
    workflow: str  # Workflow file name, with or without .yml
    ref: str = ""  # Branch, tag or SHA to run on (default: current branch)
    input: list[str] = []  # Workflow inputs as name=value (one or more); otherwise taken from upper-cased environment variables
    workflows_directory: Path = DEFAULT_WORKFLOWS_DIRECTORY
    no_wait: bool = False  # Only dispatch; pick the job up later with ghadispatch-resume

    def configure(self) -> None:
        self.add_argument("workflow")


def parse_input_assignments(assignments: list[str]) -> str | dict[str, str]:
    result: dict[str, str] = {}
    for assignment in assignments:
        match assignment.split("=", maxsplit=1):
            case [name, value] if name.strip():
                result[name.strip()] = value
            case _:
                return f'invalid input "{assignment}", expected name=value'
    return result


def collect_variables(
    descriptor: WorkflowDescriptor,
    assignments: dict[str, str],
    environ: dict[str, str],
) -> dict[str, str]:
    variables = dict(environ)
    by_name = {i.name: i for i in descriptor.inputs}
    for name, value in assignments.items():
        workflow_input = by_name.get(name)
        if workflow_input is None:
            logger.warning(f"{descriptor.id} has no input {name}, ignoring it")
            continue
        variables[workflow_input.variable_name] = value
    return variables


async def _main_loop(args: Arguments) -> int:
    config = load_user_config(args.config_file)
    repository = resolve_repository(args)
    if repository is None:
        return EXIT_USAGE

    try:
        descriptors = discover_workflows(args.workflows_directory)
    except Exception as e:
        logger.error(str(e))
        return EXIT_USAGE
    descriptor = find_workflow(descriptors, args.workflow)
    if descriptor is None:
        logger.error(
            f"no dispatchable workflow {args.workflow}, known: "
            + ", ".join(d.id for d in descriptors)
        )
        return EXIT_USAGE

    assignments = parse_input_assignments(args.input)
    if isinstance(assignments, str):
        logger.error(assignments)
        return EXIT_USAGE
    variables = collect_variables(descriptor, assignments, dict(os.environ))
    ref = args.ref if args.ref else default_ref_from_git()
    if ref is None:
        logger.error("couldn't determine the git ref, please pass --ref")
        return EXIT_USAGE

    async with open_components(config, repository, args.data_dir) as components:
        try:
            record = await components.dispatcher.dispatch(
                descriptor.id,
                ref,
                descriptor.resolve_inputs(variables),
                descriptor.required_variables,
                variables,
            )
        except MissingVariable as e:
            logger.error(e.message)
            return EXIT_USAGE
        except DispatchRejected as e:
            logger.error(e.message)
            return EXIT_FAILURE
        except GhaDispatchError as e:
            logger.error(f"dispatch failed: {e.message}")
            return EXIT_FAILURE
        print(f"dispatched job {record.id}")

        if args.no_wait:
            return EXIT_SUCCESS

        cancel = asyncio.Event()
        install_cancel_handlers(cancel)
        try:
            outcome = await components.pipeline.run(record, cancel)
        except OperationCancelled:
            logger.warning(
                f"cancelled, job {record.id} stays in the ledger, continue with ghadispatch-resume"
            )
            return EXIT_CANCELLED
        report_outcome(outcome)
        return exit_code_for([outcome])


def main() -> None:
    args = Arguments(underscores_to_dashes=True).parse_args()
    setup_logging(args)
    sys.exit(asyncio.run(_main_loop(args)))


if __name__ == "__main__":
    main()
