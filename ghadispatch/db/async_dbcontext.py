from enum import Enum
from enum import auto
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from sqlalchemy.pool import StaticPool

from ghadispatch.db.orm import Base

IN_MEMORY_URL = "sqlite+aiosqlite://"


class CreationMode(Enum):
    CHECK_FIRST = auto()
    DONT_CHECK = auto()


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


class AsyncDBContext:
    def __init__(self, connection_url: str, echo: bool = False) -> None:
        # For the sqlite in-memory stuff, see here:
        #
        # https://docs.sqlalchemy.org/en/20/dialects/sqlite.html#threading-pooling-behavior
        #
        # In short, with in-memory databases, we normally get one DB per connection, which
        # is bad if the ledger is accessed from more than one session (in tests, of course).
        in_memory_db = connection_url == IN_MEMORY_URL
        self.engine = create_async_engine(
            connection_url,
            echo=echo,
            connect_args={"check_same_thread": False} if in_memory_db else {},
            poolclass=StaticPool if in_memory_db else NullPool,
        )

        # Several processes may share one ledger file; wait for their locks instead of failing
        def _busy_timeout_on_connect(dbapi_con: Any, _con_record: Any) -> None:
            dbapi_con.execute("pragma busy_timeout=10000")

        event.listen(self.engine.sync_engine, "connect", _busy_timeout_on_connect)

        self.session_maker = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self, creation_mode: CreationMode) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(
                lambda sync_conn: Base.metadata.create_all(  # pyright: ignore[reportUnknownLambdaType]
                    sync_conn,  # pyright: ignore[reportUnknownArgumentType]
                    checkfirst=creation_mode == CreationMode.CHECK_FIRST,
                )
            )

    def session(self) -> AsyncSession:
        return self.session_maker()

    async def dispose(self) -> None:
        await self.engine.dispose()
