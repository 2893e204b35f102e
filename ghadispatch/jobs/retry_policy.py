import asyncio
import datetime
from typing import Awaitable
from typing import Callable

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from ghadispatch.errors import OperationCancelled


class RetryPolicy(BaseModel):
    """How often and how long to repeat a remote query.

    ``max_attempts`` and ``max_elapsed_seconds`` may both be ``None``, in which case
    the loop only ends when the awaited condition holds or the cancellation
    signal is set. The interval before attempt ``n`` (0-based) is
    ``interval_seconds * backoff_factor**n``, capped at ``max_interval_seconds``.
    """

    model_config = ConfigDict(frozen=True)

    interval_seconds: float = Field(ge=0.0)
    max_attempts: None | int = Field(default=None, ge=1)
    max_elapsed_seconds: None | float = Field(default=None, ge=0.0)
    backoff_factor: float = Field(default=1.0, ge=1.0)
    max_interval_seconds: None | float = Field(default=None, ge=0.0)

    def interval_for(self, attempt: int) -> float:
        interval = self.interval_seconds * self.backoff_factor**attempt
        if self.max_interval_seconds is not None:
            return min(interval, self.max_interval_seconds)
        return interval

    def exhausted(
        self,
        attempts: int,
        started: datetime.datetime,
        now: datetime.datetime,
    ) -> bool:
        if self.max_attempts is not None and attempts >= self.max_attempts:
            return True
        return (
            self.max_elapsed_seconds is not None
            and (now - started).total_seconds() >= self.max_elapsed_seconds
        )


Waiter = Callable[[float, None | asyncio.Event], Awaitable[None]]


def raise_if_cancelled(cancel: None | asyncio.Event) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("operation was cancelled")


async def wait_or_cancel(seconds: float, cancel: None | asyncio.Event) -> None:
    if cancel is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise OperationCancelled("operation was cancelled while waiting")
