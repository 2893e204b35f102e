import asyncio
import shutil
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from typing import Final

import structlog

from ghadispatch.errors import ArchiveError
from ghadispatch.errors import GhaDispatchError
from ghadispatch.github.client import GitHubActionsClient
from ghadispatch.jobs.job_record import ArtifactEntry
from ghadispatch.jobs.job_record import JobEntry
from ghadispatch.jobs.job_record import RetrievalFailure
from ghadispatch.jobs.job_record import RunHandle
from ghadispatch.jobs.job_record import StepEntry

RESOURCE_LOGS: Final = "logs"
RESOURCE_ARTIFACTS: Final = "artifacts"
RESOURCE_JOBS: Final = "jobs"

logger = structlog.stdlib.get_logger(__name__)


@dataclass(frozen=True)
class CollectionResult:
    logs: Path | RetrievalFailure
    artifacts: list[ArtifactEntry] | RetrievalFailure
    jobs: list[JobEntry] | RetrievalFailure

    def failures(self) -> list[RetrievalFailure]:
        return [
            r
            for r in (self.logs, self.artifacts, self.jobs)
            if isinstance(r, RetrievalFailure)
        ]


def unpack_archive(archive: Path, target: Path) -> None:
    if target.exists():
        shutil.rmtree(target)
    # zipfile sanitizes absolute paths and ".." components on extraction
    try:
        with zipfile.ZipFile(archive) as z:
            z.extractall(target)
    except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as e:
        # NotImplementedError: unsupported compression, RuntimeError: encrypted entry
        raise ArchiveError(f"couldn't unpack {archive.name}: {e}") from e


def _to_result(resource: str, outcome: Any) -> Any:
    if isinstance(outcome, asyncio.CancelledError):
        raise outcome
    if isinstance(outcome, (GhaDispatchError, OSError)):
        message = (
            outcome.message if isinstance(outcome, GhaDispatchError) else str(outcome)
        )
        logger.error(f"couldn't retrieve {resource}: {message}")
        return RetrievalFailure(resource=resource, message=message)
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


class Collector:
    def __init__(self, client: GitHubActionsClient) -> None:
        self._client = client

    async def _download_and_unpack(self, url: str, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        archive = target.parent / f".{target.name}.zip"
        try:
            await self._client.download(url, archive)
            await asyncio.to_thread(unpack_archive, archive, target)
        finally:
            archive.unlink(missing_ok=True)

    async def retrieve_logs(self, handle: RunHandle, job_directory: Path) -> Path:
        target = job_directory / "logs"
        await self._download_and_unpack(handle.logs_url, target)
        return target

    async def retrieve_artifacts(
        self,
        handle: RunHandle,
        job_directory: Path,
    ) -> list[ArtifactEntry]:
        result: list[ArtifactEntry] = []
        for artifact in await self._client.list_artifacts(handle.artifacts_url):
            target = job_directory / "artifacts" / artifact.name
            # Same name twice: the later download replaces the earlier directory
            await self._download_and_unpack(artifact.archive_download_url, target)
            result.append(
                ArtifactEntry(
                    name=artifact.name,
                    download_url=artifact.archive_download_url,
                    directory=target,
                )
            )
        return result

    async def retrieve_jobs(self, handle: RunHandle) -> list[JobEntry]:
        return [
            JobEntry(
                id=j.id,
                name=j.name,
                display_url=j.html_url,
                conclusion=j.conclusion,
                steps=[StepEntry(name=s.name, conclusion=s.conclusion) for s in j.steps],
            )
            for j in await self._client.list_jobs(handle.jobs_url)
        ]

    async def collect(self, handle: RunHandle, job_directory: Path) -> CollectionResult:
        logger.info(
            f"collecting logs, artifacts and jobs of run {handle.run_id}",
            run_id=handle.run_id,
        )
        logs, artifacts, jobs = await asyncio.gather(
            self.retrieve_logs(handle, job_directory),
            self.retrieve_artifacts(handle, job_directory),
            self.retrieve_jobs(handle),
            return_exceptions=True,
        )
        return CollectionResult(
            logs=_to_result(RESOURCE_LOGS, logs),
            artifacts=_to_result(RESOURCE_ARTIFACTS, artifacts),
            jobs=_to_result(RESOURCE_JOBS, jobs),
        )
