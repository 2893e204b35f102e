from pathlib import Path

from mock_github import MockGitHubHttpWrapper
from mock_github import make_zip
from mock_github import run_json
from mock_github import run_url

from ghadispatch.errors import RemoteRequestError
from ghadispatch.github.client import GitHubActionsClient
from ghadispatch.github.json_models import JsonWorkflowRun
from ghadispatch.jobs.collector import RESOURCE_ARTIFACTS
from ghadispatch.jobs.collector import RESOURCE_JOBS
from ghadispatch.jobs.collector import RESOURCE_LOGS
from ghadispatch.jobs.collector import Collector
from ghadispatch.jobs.correlator import run_handle_from_run
from ghadispatch.jobs.job_record import RetrievalFailure

_RUN_ID = 5
_ARTIFACT_URL = "https://api.github.com/repos/octo/repo/actions/artifacts"

_JOBS = {
    "total_count": 1,
    "jobs": [
        {
            "id": 11,
            "name": "build",
            "html_url": "https://github.com/octo/repo/actions/runs/5/job/11",
            "conclusion": "failure",
            "steps": [
                {"name": "checkout", "conclusion": "success"},
                {"name": "compile", "conclusion": "failure"},
            ],
        }
    ],
}


def _artifacts(*names_and_ids: tuple[str, int]) -> dict:
    return {
        "total_count": len(names_and_ids),
        "artifacts": [
            {"name": name, "archive_download_url": f"{_ARTIFACT_URL}/{i}/zip"}
            for name, i in names_and_ids
        ],
    }


def _setup(http_wrapper: MockGitHubHttpWrapper) -> None:
    url = run_url(_RUN_ID)
    http_wrapper.downloads[f"{url}/logs"] = make_zip(
        {"0_build.txt": "EXPORT: a=1\n", "build/1_checkout.txt": "checkout\n"}
    )
    http_wrapper.get_responses[f"{url}/artifacts"] = [_artifacts(("dist", 1))]
    http_wrapper.downloads[f"{_ARTIFACT_URL}/1/zip"] = make_zip({"app.whl": "wheel"})
    http_wrapper.get_responses[f"{url}/jobs"] = [_JOBS]


async def test_collect_everything(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
    tmp_path: Path,
) -> None:
    _setup(http_wrapper)
    handle = run_handle_from_run(JsonWorkflowRun.model_validate(run_json(_RUN_ID)))

    result = await Collector(client).collect(handle, tmp_path)

    assert result.failures() == []
    assert result.logs == tmp_path / "logs"
    assert (tmp_path / "logs" / "0_build.txt").read_text() == "EXPORT: a=1\n"
    assert (tmp_path / "logs" / "build" / "1_checkout.txt").is_file()
    assert isinstance(result.artifacts, list)
    assert [a.name for a in result.artifacts] == ["dist"]
    assert (tmp_path / "artifacts" / "dist" / "app.whl").read_text() == "wheel"
    assert isinstance(result.jobs, list)
    assert result.jobs[0].steps[1].conclusion == "failure"
    # No archives are left behind
    assert not list(tmp_path.rglob("*.zip"))


async def test_failing_resource_does_not_stop_the_others(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
    tmp_path: Path,
) -> None:
    _setup(http_wrapper)
    http_wrapper.get_responses[f"{run_url(_RUN_ID)}/artifacts"] = [
        RemoteRequestError(f"{run_url(_RUN_ID)}/artifacts", 403, "Forbidden")
    ]
    http_wrapper.downloads[f"{run_url(_RUN_ID)}/logs"] = b"this is not a zip"
    handle = run_handle_from_run(JsonWorkflowRun.model_validate(run_json(_RUN_ID)))

    result = await Collector(client).collect(handle, tmp_path)

    assert isinstance(result.logs, RetrievalFailure)
    assert isinstance(result.artifacts, RetrievalFailure)
    assert isinstance(result.jobs, list)
    assert {f.resource for f in result.failures()} == {
        RESOURCE_LOGS,
        RESOURCE_ARTIFACTS,
    }
    assert RESOURCE_JOBS not in {f.resource for f in result.failures()}


async def test_duplicate_artifact_names_keep_the_later_one(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
    tmp_path: Path,
) -> None:
    _setup(http_wrapper)
    http_wrapper.get_responses[f"{run_url(_RUN_ID)}/artifacts"] = [
        _artifacts(("dist", 1), ("dist", 2))
    ]
    http_wrapper.downloads[f"{_ARTIFACT_URL}/2/zip"] = make_zip({"other.txt": "2"})
    handle = run_handle_from_run(JsonWorkflowRun.model_validate(run_json(_RUN_ID)))

    result = await Collector(client).collect(handle, tmp_path)

    assert isinstance(result.artifacts, list)
    assert len(result.artifacts) == 2
    assert [p.name for p in (tmp_path / "artifacts" / "dist").iterdir()] == [
        "other.txt"
    ]


def _encrypted_zip(files: dict[str, str]) -> bytes:
    # Flag the single entry as encrypted in its local and central directory headers
    data = bytearray(make_zip(files))
    for signature, flag_offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        data[data.find(signature) + flag_offset] |= 0x01
    return bytes(data)


async def test_unreadable_archive_becomes_retrieval_failure(
    http_wrapper: MockGitHubHttpWrapper,
    client: GitHubActionsClient,
    tmp_path: Path,
) -> None:
    _setup(http_wrapper)
    http_wrapper.downloads[f"{_ARTIFACT_URL}/1/zip"] = _encrypted_zip(
        {"secret.txt": "x"}
    )
    handle = run_handle_from_run(JsonWorkflowRun.model_validate(run_json(_RUN_ID)))

    result = await Collector(client).collect(handle, tmp_path)

    assert isinstance(result.artifacts, RetrievalFailure)
    assert "encrypted" in result.artifacts.message
    assert isinstance(result.logs, Path)
    assert isinstance(result.jobs, list)
    assert not list(tmp_path.rglob("*.zip"))
