from pathlib import Path

import pytest

from ghadispatch.workflows.workflow_descriptor import WorkflowDescriptor
from ghadispatch.workflows.workflow_descriptor import discover_workflows
from ghadispatch.workflows.workflow_descriptor import find_workflow
from ghadispatch.workflows.workflow_descriptor import parse_workflow

_RELEASE_WORKFLOW = """
name: Release
on:
  workflow_dispatch:
    inputs:
      version:
        description: Version to release
        required: true
      dry-run:
        type: boolean
        required: true
        default: false
      channel:
        type: choice
        options: [stable, beta]
  push:
    branches: [main]
jobs:
  release:
    runs-on: ubuntu-latest
    steps:
      - run: 'echo "EXPORT: version=${{ inputs.version }}"'
"""


def _release() -> WorkflowDescriptor:
    descriptor = parse_workflow("release.yml", _RELEASE_WORKFLOW)
    assert isinstance(descriptor, WorkflowDescriptor)
    return descriptor


def test_parse_dispatch_inputs() -> None:
    descriptor = _release()

    assert descriptor.name == "Release"
    assert descriptor.short_name == "release"
    assert [i.name for i in descriptor.inputs] == ["version", "dry-run", "channel"]
    # A default makes an input optional
    assert descriptor.required_variables == ["VERSION"]
    dry_run = descriptor.inputs[1]
    assert dry_run.variable_name == "DRY_RUN"
    assert dry_run.default == "false"
    assert descriptor.inputs[2].options == ["stable", "beta"]


def test_resolve_inputs_omits_unset_optional_inputs() -> None:
    assert _release().resolve_inputs({"VERSION": "2.0", "CHANNEL": "", "HOME": "/"}) == {
        "version": "2.0"
    }


@pytest.mark.parametrize(
    "trigger", ["on: workflow_dispatch", "on: [push, workflow_dispatch]"]
)
def test_short_trigger_forms(trigger: str) -> None:
    descriptor = parse_workflow("ci.yaml", f"{trigger}\njobs: {{}}\n")

    assert isinstance(descriptor, WorkflowDescriptor)
    assert descriptor.name == "ci.yaml"
    assert descriptor.short_name == "ci"
    assert descriptor.inputs == []


def test_workflow_without_dispatch_trigger() -> None:
    assert parse_workflow("push.yml", "on: push\njobs: {}\n") is None


def test_invalid_yaml() -> None:
    assert isinstance(parse_workflow("bad.yml", "on: [unclosed"), str)


def test_discover_and_find(tmp_path: Path) -> None:
    (tmp_path / "release.yml").write_text(_RELEASE_WORKFLOW)
    (tmp_path / "ci.yaml").write_text("on: workflow_dispatch\n")
    (tmp_path / "push.yml").write_text("on: push\n")
    (tmp_path / "README.md").write_text("on: workflow_dispatch\n")

    descriptors = discover_workflows(tmp_path)

    assert [d.id for d in descriptors] == ["ci.yaml", "release.yml"]
    found = find_workflow(descriptors, "release")
    assert found is not None and found.id == "release.yml"
    assert find_workflow(descriptors, "ci.yaml") is not None
    assert find_workflow(descriptors, "push") is None


def test_discover_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(Exception):
        discover_workflows(tmp_path / "nope")
