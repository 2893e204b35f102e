import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict

from ghadispatch.errors import GhaDispatchError


class JobState(Enum):
    CREATED = "created"
    AWAITING_RUN = "awaiting_run"
    POLLING = "polling"
    COMPLETED = "completed"


class RunConclusion(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    NEUTRAL = "neutral"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"
    STALE = "stale"


def parse_run_conclusion(s: str) -> None | RunConclusion:
    try:
        return RunConclusion(s)
    except ValueError:
        return None


class RunHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: int
    status_url: str
    cancel_url: str
    display_url: str
    logs_url: str
    artifacts_url: str
    jobs_url: str
    started: datetime.datetime


class DispatchRequest(BaseModel):
    ref: str
    inputs: dict[str, str]


class ArtifactEntry(BaseModel):
    name: str
    download_url: str
    directory: None | Path = None


class StepEntry(BaseModel):
    name: str
    conclusion: None | str


class JobEntry(BaseModel):
    id: int
    name: str
    display_url: None | str
    conclusion: None | str
    steps: list[StepEntry]


class RetrievalFailure(BaseModel):
    resource: str
    message: str


class JobRecord(BaseModel):
    id: str
    workflow_id: str
    repository: str
    ref: str
    # Taken from the server's Date header, never from the local clock
    dispatched_at: datetime.datetime
    request: DispatchRequest
    state: JobState = JobState.CREATED
    run: None | RunHandle = None
    conclusion: None | RunConclusion = None
    logs_directory: None | Path = None
    artifacts: list[ArtifactEntry] = []
    jobs: None | list[JobEntry] = None
    exports: dict[str, str] = {}
    retrieval_failures: list[RetrievalFailure] = []

    def bind_run(self, handle: RunHandle) -> None:
        if self.run is not None:
            if self.run.run_id == handle.run_id:
                return
            raise GhaDispatchError(
                f"job {self.id} is already bound to run {self.run.run_id}, refusing to rebind to {handle.run_id}"
            )
        self.run = handle
