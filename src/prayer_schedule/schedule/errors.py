from __future__ import annotations


class ScheduleError(Exception):
    """Base class for every prayer schedule resolution error."""


class RemoteFetchError(ScheduleError):
    pass


class NetworkError(RemoteFetchError):
    pass


class FetchTimeoutError(RemoteFetchError, TimeoutError):
    pass


class HTTPStatusError(RemoteFetchError):
    def __init__(self, code: int, endpoint: str = "") -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(f"HTTP {code} from {endpoint}" if endpoint else f"HTTP {code}")


class PayloadError(ScheduleError):
    pass


class MalformedPayloadError(PayloadError):
    """The payload is not a parseable JSON object."""


class SchemaViolationError(PayloadError):
    """The payload parsed but breaks a structural invariant."""


class CacheError(ScheduleError):
    pass


class CacheAbsentError(CacheError):
    pass


class CacheCorruptError(CacheError):
    pass


class BundledPayloadCorruptError(ScheduleError):
    """
    The payload shipped inside the package failed to load or decode.

    This is a packaging defect. No tier exists below the bundled one, so it is the
    only error that reaches callers of the resolver.
    """


__all__ = [
    "BundledPayloadCorruptError",
    "CacheAbsentError",
    "CacheCorruptError",
    "CacheError",
    "FetchTimeoutError",
    "HTTPStatusError",
    "MalformedPayloadError",
    "NetworkError",
    "PayloadError",
    "RemoteFetchError",
    "ScheduleError",
    "SchemaViolationError",
]
