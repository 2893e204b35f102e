class GhaDispatchError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingVariable(GhaDispatchError):
    def __init__(self, variables: list[str]) -> None:
        super().__init__(
            "required variable(s) not set or empty: " + ", ".join(variables)
        )
        self.variables = variables


class DispatchRejected(GhaDispatchError):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"workflow dispatch was rejected with HTTP {status}: {body}")
        self.status = status
        self.body = body


class TransientFetchError(GhaDispatchError):
    pass


class RemoteRequestError(GhaDispatchError):
    def __init__(self, url: str, status: int, body: str) -> None:
        super().__init__(f"request to {url} failed with HTTP {status}: {body}")
        self.url = url
        self.status = status


class MalformedResponse(GhaDispatchError):
    def __init__(self, field: str, context: str) -> None:
        super().__init__(f'field "{field}" missing or invalid in {context}')
        self.field = field


class RetryExhausted(GhaDispatchError):
    pass


class CorrelationStall(RetryExhausted):
    pass


class PollingStall(RetryExhausted):
    pass


class AmbiguousCorrelationError(GhaDispatchError):
    pass


class OperationCancelled(GhaDispatchError):
    pass


class ArchiveError(GhaDispatchError):
    pass


class CleanupError(GhaDispatchError):
    def __init__(self, job_id: str, reason: str) -> None:
        super().__init__(f"couldn't clean up job {job_id}: {reason}")
        self.job_id = job_id


class StaleJobRecord(GhaDispatchError):
    def __init__(self, job_id: str) -> None:
        super().__init__(
            f"job {job_id} is in the ledger, but its local record is gone"
        )
        self.job_id = job_id
