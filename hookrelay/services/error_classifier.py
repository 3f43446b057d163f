"""Failure classifier — decides whether a delivery outcome is worth retrying."""

from enum import Enum

import httpx

from hookrelay.services.dispatcher import DeliveryResult

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
RATE_LIMITED = 429


class ErrorType(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    RATE_LIMITED = "rate_limited"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


class ErrorClassifier:
    """Pure verdicts over a ``DeliveryResult``.

    429 is carved out of the 4xx permanent range: rate limiting is transient,
    while other client errors will fail the same way on every retry.
    """

    def __init__(self, result: DeliveryResult):
        self.result = result

    @property
    def _transport_failed(self) -> bool:
        return self.result.kind == "transport_error"

    def is_retryable(self) -> bool:
        if self.result.success:
            return False
        if self._transport_failed:
            return True
        return self.result.status in RETRYABLE_STATUS_CODES

    def is_permanent_failure(self) -> bool:
        if self.result.success:
            return False
        if self._transport_failed:
            return False
        if self.result.status == RATE_LIMITED:
            return False
        return 400 <= self.result.status < 500

    def error_type(self) -> ErrorType:
        if self.result.success:
            return ErrorType.SUCCESS
        if self._transport_failed:
            if isinstance(self.result.error, httpx.TimeoutException):
                return ErrorType.TIMEOUT
            return ErrorType.CONNECTION_ERROR

        status = self.result.status
        if status == RATE_LIMITED:
            return ErrorType.RATE_LIMITED
        if 400 <= status < 500:
            return ErrorType.CLIENT_ERROR
        if 500 <= status < 600:
            return ErrorType.SERVER_ERROR
        return ErrorType.UNKNOWN
