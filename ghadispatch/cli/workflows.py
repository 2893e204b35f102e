import sys
from pathlib import Path

from tap import Tap

from ghadispatch.logging_util import setup_structlog
from ghadispatch.workflows.workflow_descriptor import DEFAULT_WORKFLOWS_DIRECTORY
from ghadispatch.workflows.workflow_descriptor import WorkflowDescriptor
from ghadispatch.workflows.workflow_descriptor import discover_workflows


class Arguments(Tap):
    workflows_directory: Path = DEFAULT_WORKFLOWS_DIRECTORY


def describe_workflow(descriptor: WorkflowDescriptor) -> list[str]:
    lines = [f"{descriptor.short_name}: {descriptor.name} ({descriptor.id})"]
    for i in descriptor.inputs:
        line = f"  - {i.variable_name}:{i.type_ if i.type_ is not None else 'string'}"
        if i.description:
            line += f"\t{i.description}"
        if i.required:
            line += " (required)"
        if i.default is not None:
            # Some workflows carry whole scripts as defaults
            line += (
                f" [default: {i.default}]"
                if len(i.default) < 256
                else f" [long default: {len(i.default)} bytes]"
            )
        if i.options:
            line += f" [options: {', '.join(i.options)}]"
        lines.append(line)
    return lines


def main() -> None:
    args = Arguments(underscores_to_dashes=True).parse_args()
    setup_structlog()
    try:
        descriptors = discover_workflows(args.workflows_directory)
    except Exception as e:
        print(str(e), file=sys.stderr)
        sys.exit(2)
    for descriptor in descriptors:
        print("\n".join(describe_workflow(descriptor)))


if __name__ == "__main__":
    main()
