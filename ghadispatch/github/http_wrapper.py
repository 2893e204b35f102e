import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from typing import Mapping

import aiohttp
import structlog

from ghadispatch.errors import MalformedResponse
from ghadispatch.errors import RemoteRequestError
from ghadispatch.errors import TransientFetchError
from ghadispatch.json_types import JSONDict

logger = structlog.stdlib.get_logger(__name__)

_DOWNLOAD_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class HttpResponse:
    status: int
    headers: Mapping[str, str]
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def is_transient_status(status: int) -> bool:
    return status == 429 or status >= 500


def _raise_for_status(url: str, status: int, body: str) -> None:
    if 200 <= status < 300:
        return
    if is_transient_status(status):
        raise TransientFetchError(f"request to {url} gave HTTP {status}: {body}")
    raise RemoteRequestError(url, status, body)


class GitHubHttpWrapper:
    async def post(
        self,
        url: str,
        headers: dict[str, Any],
        data: None | JSONDict,
    ) -> HttpResponse: ...

    async def get_json(self, url: str, headers: dict[str, Any]) -> JSONDict: ...

    async def download(
        self,
        url: str,
        headers: dict[str, Any],
        target: Path,
    ) -> None: ...


class AiohttpGitHubHttpWrapper(GitHubHttpWrapper):
    def __init__(self, timeout_seconds: float = 120.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def post(
        self,
        url: str,
        headers: dict[str, Any],
        data: None | JSONDict,
    ) -> HttpResponse:
        try:
            async with (
                aiohttp.ClientSession(timeout=self._timeout) as session,
                session.post(url, headers=headers, json=data) as response,
            ):
                return HttpResponse(
                    status=response.status,
                    headers=dict(response.headers),
                    body=await response.text(),
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientFetchError(f"couldn't POST to {url}: {e}") from e

    async def get_json(self, url: str, headers: dict[str, Any]) -> JSONDict:
        try:
            async with (
                aiohttp.ClientSession(timeout=self._timeout) as session,
                session.get(url, headers=headers) as response,
            ):
                body = await response.text()
                _raise_for_status(url, response.status, body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientFetchError(f"couldn't GET {url}: {e}") from e
        try:
            result = json.loads(body)
        except json.JSONDecodeError as e:
            raise MalformedResponse("<body>", f"response of {url}") from e
        if not isinstance(result, dict):
            raise MalformedResponse("<body>", f"response of {url} (not an object)")
        return result

    async def download(
        self,
        url: str,
        headers: dict[str, Any],
        target: Path,
    ) -> None:
        logger.info(f"downloading {url} to {target}")
        try:
            async with (
                aiohttp.ClientSession(timeout=self._timeout) as session,
                session.get(url, headers=headers) as response,
            ):
                if not 200 <= response.status < 300:
                    _raise_for_status(url, response.status, await response.text())
                with target.open("wb") as f:
                    async for chunk in response.content.iter_chunked(
                        _DOWNLOAD_CHUNK_SIZE
                    ):
                        f.write(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientFetchError(f"couldn't download {url}: {e}") from e
