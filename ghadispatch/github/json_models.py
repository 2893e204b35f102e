import datetime
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError

from ghadispatch.errors import MalformedResponse
from ghadispatch.json_types import JSONDict

# Subset of the GitHub Actions REST API we need, see
#
# https://docs.github.com/en/rest/actions/workflow-runs


class JsonWorkflowRun(BaseModel):
    id: int
    url: str
    html_url: str
    cancel_url: str
    created_at: datetime.datetime
    status: str
    conclusion: None | str = None
    logs_url: str
    artifacts_url: str
    jobs_url: str


class JsonWorkflowRuns(BaseModel):
    workflow_runs: list[JsonWorkflowRun]


class JsonArtifact(BaseModel):
    name: str
    archive_download_url: str


class JsonArtifacts(BaseModel):
    artifacts: list[JsonArtifact]


class JsonStep(BaseModel):
    name: str
    conclusion: None | str = None


class JsonJob(BaseModel):
    id: int
    name: str
    html_url: None | str = None
    conclusion: None | str = None
    steps: list[JsonStep] = []


class JsonJobs(BaseModel):
    jobs: list[JsonJob]


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_response(model: type[ModelT], data: JSONDict, context: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(part) for part in first_error["loc"])
        raise MalformedResponse(field if field else "<root>", context) from e
