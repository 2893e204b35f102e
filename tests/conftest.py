from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from mock_github import REPOSITORY
from mock_github import MockGitHubHttpWrapper

from ghadispatch.github.client import GitHubActionsClient
from ghadispatch.jobs.job_store import JobStore


@pytest_asyncio.fixture
async def job_store(tmp_path: Path) -> AsyncGenerator[JobStore, None]:
    store = JobStore(tmp_path / "data", REPOSITORY, "tester")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def http_wrapper() -> MockGitHubHttpWrapper:
    return MockGitHubHttpWrapper()


@pytest.fixture
def client(http_wrapper: MockGitHubHttpWrapper) -> GitHubActionsClient:
    return GitHubActionsClient(REPOSITORY, "token", http_wrapper)
