import datetime
from pathlib import Path
from typing import Final
from urllib.parse import quote
from urllib.parse import urlencode

import structlog

from ghadispatch.errors import RemoteRequestError
from ghadispatch.github.http_wrapper import GitHubHttpWrapper
from ghadispatch.github.http_wrapper import HttpResponse
from ghadispatch.github.json_models import JsonArtifact
from ghadispatch.github.json_models import JsonArtifacts
from ghadispatch.github.json_models import JsonJob
from ghadispatch.github.json_models import JsonJobs
from ghadispatch.github.json_models import JsonWorkflowRun
from ghadispatch.github.json_models import JsonWorkflowRuns
from ghadispatch.github.json_models import parse_response

DEFAULT_API_URL: Final = "https://api.github.com"
GITHUB_API_VERSION: Final = "2022-11-28"
# Maximum the API allows; we don't paginate further
_PER_PAGE: Final = 100

logger = structlog.stdlib.get_logger(__name__)


def format_created_filter(created_after: datetime.datetime) -> str:
    utc = created_after.astimezone(datetime.timezone.utc)
    return ">=" + utc.strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubActionsClient:
    def __init__(
        self,
        repository: str,
        token: None | str,
        request_wrapper: GitHubHttpWrapper,
        api_url: str = DEFAULT_API_URL,
    ) -> None:
        self.repository = repository
        self._token = token
        self._request_wrapper = request_wrapper
        self.api_url = api_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if self._token is not None:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def workflow_url(self, workflow_id: str) -> str:
        return f"{self.api_url}/repos/{self.repository}/actions/workflows/{quote(workflow_id, safe='')}"

    async def dispatch_workflow(
        self,
        workflow_id: str,
        ref: str,
        inputs: dict[str, str],
    ) -> HttpResponse:
        url = f"{self.workflow_url(workflow_id)}/dispatches"
        logger.info(f"dispatching {workflow_id} on {ref} via {url}, inputs {inputs}")
        return await self._request_wrapper.post(
            url,
            headers=self._headers(),
            data={"ref": ref, "inputs": inputs},
        )

    async def list_runs(
        self,
        workflow_id: str,
        branch: str,
        created_after: datetime.datetime,
    ) -> list[JsonWorkflowRun]:
        query = urlencode(
            {
                "branch": branch,
                "event": "workflow_dispatch",
                "created": format_created_filter(created_after),
                "per_page": _PER_PAGE,
            }
        )
        url = f"{self.workflow_url(workflow_id)}/runs?{query}"
        response = await self._request_wrapper.get_json(url, headers=self._headers())
        return parse_response(
            JsonWorkflowRuns, response, f"run list of {workflow_id}"
        ).workflow_runs

    async def get_run(self, status_url: str) -> JsonWorkflowRun:
        response = await self._request_wrapper.get_json(
            status_url, headers=self._headers()
        )
        return parse_response(JsonWorkflowRun, response, f"run status {status_url}")

    async def list_artifacts(self, artifacts_url: str) -> list[JsonArtifact]:
        response = await self._request_wrapper.get_json(
            f"{artifacts_url}?per_page={_PER_PAGE}", headers=self._headers()
        )
        return parse_response(
            JsonArtifacts, response, f"artifact list {artifacts_url}"
        ).artifacts

    async def list_jobs(self, jobs_url: str) -> list[JsonJob]:
        response = await self._request_wrapper.get_json(
            f"{jobs_url}?per_page={_PER_PAGE}", headers=self._headers()
        )
        return parse_response(JsonJobs, response, f"job list {jobs_url}").jobs

    async def download(self, url: str, target: Path) -> None:
        await self._request_wrapper.download(url, headers=self._headers(), target=target)

    async def cancel_run(self, cancel_url: str) -> None:
        response = await self._request_wrapper.post(
            cancel_url, headers=self._headers(), data=None
        )
        if not response.ok:
            raise RemoteRequestError(cancel_url, response.status, response.body)
