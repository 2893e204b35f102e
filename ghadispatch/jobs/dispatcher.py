import datetime
import uuid
from email.utils import parsedate_to_datetime
from typing import Iterable
from typing import Mapping

import structlog

from ghadispatch.errors import DispatchRejected
from ghadispatch.errors import MalformedResponse
from ghadispatch.errors import MissingVariable
from ghadispatch.github.client import GitHubActionsClient
from ghadispatch.jobs.job_record import DispatchRequest
from ghadispatch.jobs.job_record import JobRecord
from ghadispatch.jobs.job_store import JobStore

logger = structlog.stdlib.get_logger(__name__)


def check_required_variables(
    variables: Mapping[str, str],
    required_variables: Iterable[str],
) -> None:
    missing = [v for v in required_variables if not variables.get(v, "").strip()]
    if missing:
        raise MissingVariable(missing)


def parse_server_timestamp(headers: Mapping[str, str]) -> datetime.datetime:
    # Header names are case-insensitive; aiohttp gives us a CIMultiDict, mocks a plain dict
    date_header = next(
        (value for key, value in headers.items() if key.lower() == "date"), None
    )
    if date_header is None:
        raise MalformedResponse("Date", "workflow dispatch response headers")
    try:
        result = parsedate_to_datetime(date_header)
    except (TypeError, ValueError) as e:
        raise MalformedResponse("Date", "workflow dispatch response headers") from e
    if result.tzinfo is None:
        # RFC 7231 dates are always GMT
        result = result.replace(tzinfo=datetime.timezone.utc)
    return result


class Dispatcher:
    def __init__(self, client: GitHubActionsClient, job_store: JobStore) -> None:
        self._client = client
        self._job_store = job_store

    async def dispatch(
        self,
        workflow_id: str,
        ref: str,
        inputs: dict[str, str],
        required_variables: Iterable[str] = (),
        variables: None | Mapping[str, str] = None,
    ) -> JobRecord:
        check_required_variables(
            variables if variables is not None else {}, required_variables
        )

        response = await self._client.dispatch_workflow(workflow_id, ref, inputs)
        if not response.ok:
            # Retrying a fire-and-forget trigger could start the workflow twice
            raise DispatchRejected(response.status, response.body)

        record = JobRecord(
            id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            repository=self._client.repository,
            ref=ref,
            dispatched_at=parse_server_timestamp(response.headers),
            request=DispatchRequest(ref=ref, inputs=inputs),
        )
        await self._job_store.append(record)
        logger.info(
            f"dispatched {workflow_id} on {ref}, anchor {record.dispatched_at.isoformat()}",
            job_id=record.id,
        )
        return record
