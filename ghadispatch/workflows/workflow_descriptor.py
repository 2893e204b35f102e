from dataclasses import dataclass
from pathlib import Path
from typing import Any
from typing import Mapping

import structlog
import yaml

logger = structlog.stdlib.get_logger(__name__)

DEFAULT_WORKFLOWS_DIRECTORY = Path(".github") / "workflows"


@dataclass(frozen=True)
class WorkflowInput:
    name: str
    description: None | str
    required: bool
    default: None | str
    type_: None | str
    options: list[str]

    @property
    def variable_name(self) -> str:
        return self.name.upper().replace("-", "_")


@dataclass(frozen=True)
class WorkflowDescriptor:
    id: str
    name: str
    inputs: list[WorkflowInput]

    @property
    def short_name(self) -> str:
        return self.id.removesuffix(".yml").removesuffix(".yaml")

    @property
    def required_inputs(self) -> list[WorkflowInput]:
        return [i for i in self.inputs if i.required]

    @property
    def required_variables(self) -> list[str]:
        return [i.variable_name for i in self.required_inputs]

    def resolve_inputs(self, variables: Mapping[str, str]) -> dict[str, str]:
        # Unset optional inputs are left out so the workflow's own default applies
        return {
            i.name: variables[i.variable_name]
            for i in self.inputs
            if variables.get(i.variable_name, "")
        }


def _yaml_scalar_to_str(v: Any) -> None | str:
    if v is None:
        return None
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def _dispatch_trigger(workflow: dict[str, Any]) -> None | dict[str, Any]:
    # YAML 1.1 reads a bare "on" key as the boolean True
    on = workflow.get("on", workflow.get(True))
    match on:
        case str() if on == "workflow_dispatch":
            return {}
        case list() if "workflow_dispatch" in on:
            return {}
        case dict() if "workflow_dispatch" in on:
            trigger = on["workflow_dispatch"]
            return trigger if isinstance(trigger, dict) else {}
        case _:
            return None


def _parse_input(name: str, raw: Any) -> WorkflowInput:
    raw_dict: dict[str, Any] = raw if isinstance(raw, dict) else {}
    default = _yaml_scalar_to_str(raw_dict.get("default"))
    options = raw_dict.get("options")
    return WorkflowInput(
        name=name,
        description=raw_dict.get("description"),
        # An input with a default can always be omitted
        required=bool(raw_dict.get("required", False)) and default is None,
        default=default,
        type_=raw_dict.get("type"),
        options=[str(o) for o in options] if isinstance(options, list) else [],
    )


def parse_workflow(file_name: str, content: str) -> str | None | WorkflowDescriptor:
    try:
        workflow = yaml.load(content, Loader=yaml.SafeLoader)
    except yaml.YAMLError as e:
        return f"couldn't parse {file_name}: {e}"
    if not isinstance(workflow, dict):
        return f"{file_name} doesn't contain a YAML mapping"
    trigger = _dispatch_trigger(workflow)
    if trigger is None:
        return None
    raw_inputs = trigger.get("inputs") or {}
    if not isinstance(raw_inputs, dict):
        return f"{file_name}: workflow_dispatch inputs are not a mapping"
    name = workflow.get("name")
    return WorkflowDescriptor(
        id=file_name,
        name=str(name) if name is not None else file_name,
        inputs=[_parse_input(str(k), v) for k, v in raw_inputs.items()],
    )


def discover_workflows(workflows_directory: Path) -> list[WorkflowDescriptor]:
    if not workflows_directory.is_dir():
        raise Exception(
            f"{workflows_directory} is not a directory or does not exist"
        )
    result: list[WorkflowDescriptor] = []
    for path in sorted(workflows_directory.iterdir()):
        if path.suffix not in (".yml", ".yaml") or not path.is_file():
            continue
        parsed = parse_workflow(path.name, path.read_text(encoding="utf-8"))
        if isinstance(parsed, str):
            logger.warning(parsed)
        elif parsed is None:
            logger.debug(f"{path.name} has no workflow_dispatch trigger, ignoring")
        else:
            result.append(parsed)
    logger.info(
        f"found {len(result)} dispatchable workflow(s) in {workflows_directory}"
    )
    return result


def find_workflow(
    descriptors: list[WorkflowDescriptor],
    name: str,
) -> None | WorkflowDescriptor:
    return next(
        (d for d in descriptors if name in (d.id, d.short_name)),
        None,
    )
