from dataclasses import dataclass
from typing import Final
from typing import Iterable

from ghadispatch.jobs.job_record import JobEntry
from ghadispatch.jobs.job_record import RetrievalFailure
from ghadispatch.jobs.job_record import RunConclusion

CONCLUSION_FAILURE: Final = "failure"


@dataclass(frozen=True)
class FailedStep:
    step_name: str
    conclusion: str


@dataclass(frozen=True)
class FailedJob:
    job_id: int
    job_name: str
    display_url: None | str
    failed_steps: list[FailedStep]


@dataclass(frozen=True)
class Evaluation:
    success: bool
    conclusion: None | RunConclusion
    failure_report: list[FailedJob]
    retrieval_failures: list[RetrievalFailure]


def failure_report(jobs: Iterable[JobEntry]) -> list[FailedJob]:
    return [
        FailedJob(
            job_id=j.id,
            job_name=j.name,
            display_url=j.display_url,
            failed_steps=[
                FailedStep(step_name=s.name, conclusion=CONCLUSION_FAILURE)
                for s in j.steps
                if s.conclusion == CONCLUSION_FAILURE
            ],
        )
        for j in jobs
        if j.conclusion == CONCLUSION_FAILURE
    ]


def evaluate(
    conclusion: None | RunConclusion,
    jobs: None | Iterable[JobEntry],
    retrieval_failures: Iterable[RetrievalFailure] = (),
) -> Evaluation:
    failures = list(retrieval_failures)
    return Evaluation(
        # Incomplete results are never reported as success
        success=conclusion == RunConclusion.SUCCESS and not failures,
        conclusion=conclusion,
        failure_report=failure_report(jobs) if jobs is not None else [],
        retrieval_failures=failures,
    )


def format_failure_report(report: list[FailedJob]) -> str:
    lines: list[str] = []
    for job in report:
        lines.append(
            f"job {job.job_name} (ID {job.job_id}) failed"
            + (f": {job.display_url}" if job.display_url else "")
        )
        for step in job.failed_steps:
            lines.append(f"  step {step.step_name}: {step.conclusion}")
    return "\n".join(lines)
