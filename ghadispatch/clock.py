import datetime


class Clock:
    def now(self) -> datetime.datetime: ...


class RealClock(Clock):
    def now(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.timezone.utc)


class MockClock(Clock):
    def __init__(self, now: datetime.datetime) -> None:
        super().__init__()
        self._now = now

    def now(self) -> datetime.datetime:
        return self._now

    def advance_seconds(self, seconds: float) -> None:
        self._now += datetime.timedelta(seconds=seconds)
