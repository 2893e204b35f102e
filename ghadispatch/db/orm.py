from datetime import datetime
from typing import Any
from typing import Generator

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import MappedAsDataclass
from sqlalchemy.orm import mapped_column


# see
#
# https://stackoverflow.com/questions/54026174/proper-autogenerate-of-str-implementation-also-for-sqlalchemy-classes
def keyvalgen(obj: Any) -> Generator[tuple[str, Any], None, None]:
    """Generate attr name/val pairs, filtering out SQLA attrs."""
    excl = ("_sa_adapter", "_sa_instance_state")
    for k, v in vars(obj).items():
        if not k.startswith("_") and not any(hasattr(v, a) for a in excl):  # type: ignore
            yield k, v


class Base(AsyncAttrs, DeclarativeBase, MappedAsDataclass):
    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v}" for k, v in keyvalgen(self))
        return f"{self.__class__.__name__}({params})"


class LedgerEntry(Base):
    __tablename__ = "LedgerEntry"
    __table_args__ = (
        sa.Index("ix_ledger_scope", "repository", "identity"),
        sa.UniqueConstraint("repository", "identity", "job_id"),
    )

    # Autoincrement gives us the append order
    sequence: Mapped[int] = mapped_column(init=False, primary_key=True)
    job_id: Mapped[str] = mapped_column(sa.String(length=64))
    repository: Mapped[str] = mapped_column(sa.String(length=255))
    identity: Mapped[str] = mapped_column(sa.String(length=255))
    workflow_id: Mapped[str] = mapped_column(sa.String(length=255))
    created: Mapped[datetime] = mapped_column()
