from __future__ import annotations


class BlizbaseError(Exception):
    pass


class TransientRemoteFault(BlizbaseError):
    """The remote call produced no usable response (timeout, reset, DNS...).

    Safe to retry; callers skip the unit of work once retries are exhausted.
    """


class HardRemoteFailure(BlizbaseError):
    """The remote answered with an explicit error."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StoreWriteFailure(BlizbaseError):
    pass


class DeadlineExceeded(BlizbaseError):
    pass


class RuntimeEngineError(BlizbaseError):
    """The local container engine rejected or failed a request."""
