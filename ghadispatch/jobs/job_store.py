import datetime
import hashlib
import os
import shutil
import tempfile
from pathlib import Path

import structlog
from sqlalchemy import delete
from sqlalchemy import select

from ghadispatch.db.async_dbcontext import AsyncDBContext
from ghadispatch.db.async_dbcontext import CreationMode
from ghadispatch.db.async_dbcontext import sqlite_url
from ghadispatch.db.orm import LedgerEntry
from ghadispatch.errors import CleanupError
from ghadispatch.errors import StaleJobRecord
from ghadispatch.jobs.job_record import JobRecord

LEDGER_FILE_NAME = "ledger.sqlite"
RECORD_FILE_NAME = "record.json"

logger = structlog.stdlib.get_logger(__name__)


def write_file_atomically(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


class JobStore:
    """Ledger of dispatched jobs, scoped per repository and caller identity.

    The ledger itself (job IDs in append order) lives in an SQLite database, so
    appending and removing are transactions. Each job additionally owns a
    directory below the scope's directory in ``data_dir``, containing its record
    file and everything the collector downloaded. Jobs outside the scope are
    never cleaned.

    Cleanup deletes the directory before the ledger row. A crash in between
    leaves a row without a record; ``list_records`` reports those as
    ``StaleJobRecord`` so batch callers can skip them.
    """

    def __init__(
        self,
        data_dir: Path,
        repository: str,
        identity: str,
        db_context: None | AsyncDBContext = None,
    ) -> None:
        self.data_dir = data_dir
        self.repository = repository
        self.identity = identity
        if db_context is None:
            data_dir.mkdir(parents=True, exist_ok=True)
            db_context = AsyncDBContext(sqlite_url(data_dir / LEDGER_FILE_NAME))
        self._db = db_context

    async def initialize(self) -> None:
        await self._db.create_all(CreationMode.CHECK_FIRST)

    async def close(self) -> None:
        await self._db.dispose()

    def scope_directory(self) -> Path:
        # Several repositories and identities share one data directory
        scope = hashlib.sha256(
            f"{self.repository}\n{self.identity}".encode("utf-8")
        ).hexdigest()[:16]
        return self.data_dir / "jobs" / scope

    def job_directory(self, job_id: str) -> Path:
        return self.scope_directory() / job_id

    def _record_path(self, job_id: str) -> Path:
        return self.job_directory(job_id) / RECORD_FILE_NAME

    def save_record(self, record: JobRecord) -> None:
        write_file_atomically(
            self._record_path(record.id), record.model_dump_json(indent=2)
        )

    def load_record(self, job_id: str) -> JobRecord:
        path = self._record_path(job_id)
        if not path.is_file():
            raise StaleJobRecord(job_id)
        return JobRecord.model_validate_json(path.read_text(encoding="utf-8"))

    async def append(self, record: JobRecord) -> None:
        self.save_record(record)
        async with self._db.session() as session, session.begin():
            session.add(
                LedgerEntry(
                    job_id=record.id,
                    repository=self.repository,
                    identity=self.identity,
                    workflow_id=record.workflow_id,
                    created=datetime.datetime.now(datetime.timezone.utc),
                )
            )
        logger.info("appended job to ledger", job_id=record.id)

    async def list_job_ids(self) -> list[str]:
        async with self._db.session() as session:
            result = await session.scalars(
                select(LedgerEntry.job_id)
                .where(
                    LedgerEntry.repository == self.repository,
                    LedgerEntry.identity == self.identity,
                )
                .order_by(LedgerEntry.sequence)
            )
            return list(result)

    async def list_records(self) -> list[JobRecord | StaleJobRecord]:
        result: list[JobRecord | StaleJobRecord] = []
        for job_id in await self.list_job_ids():
            try:
                result.append(self.load_record(job_id))
            except StaleJobRecord as e:
                result.append(e)
        return result

    async def remove(self, job_id: str) -> None:
        async with self._db.session() as session, session.begin():
            await session.execute(
                delete(LedgerEntry).where(
                    LedgerEntry.job_id == job_id,
                    LedgerEntry.repository == self.repository,
                    LedgerEntry.identity == self.identity,
                )
            )

    async def clean(self, job_id: str) -> None:
        if job_id not in await self.list_job_ids():
            raise CleanupError(
                job_id,
                f"not in the ledger of {self.repository} for {self.identity}",
            )
        try:
            shutil.rmtree(self.job_directory(job_id), ignore_errors=False)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CleanupError(job_id, f"couldn't remove local state: {e}") from e
        try:
            await self.remove(job_id)
        except Exception as e:
            raise CleanupError(job_id, f"couldn't remove ledger entry: {e}") from e
        logger.info("cleaned up job", job_id=job_id)
