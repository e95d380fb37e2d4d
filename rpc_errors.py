"""Status codes and error taxonomy for daemon RPC calls.

Every transport call reports an integer status next to the decoded response:

- ``STATUS_OK`` when the daemon answered with ``result == "success"``.
- ``FAIL_JSON_DECODE`` when the body was not valid JSON.
- ``FAIL_RESPONSE_UNSUCCESSFUL`` when the JSON was fine but ``result`` was not
  ``"success"``.
- ``-(code + 100)`` for a non-success HTTP status.
- a positive transport code (see ``TRANSPORT_ERRORS``) for failures below HTTP.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

STATUS_OK = 0
FAIL_JSON_DECODE = -1
FAIL_RESPONSE_UNSUCCESSFUL = -2
HTTP_FAILURE_BASE = -100

TRANSPORT_FAILED = 2
TRANSPORT_UNSUPPORTED_PROTOCOL = 1
TRANSPORT_URL_MALFORMED = 3
TRANSPORT_COULDNT_RESOLVE_HOST = 6
TRANSPORT_COULDNT_CONNECT = 7
TRANSPORT_TIMED_OUT = 28
TRANSPORT_SSL_CONNECT_ERROR = 35
TRANSPORT_TOO_MANY_REDIRECTS = 47
TRANSPORT_RECV_ERROR = 56

TRANSPORT_ERRORS: Dict[int, str] = {
    TRANSPORT_UNSUPPORTED_PROTOCOL: "Unsupported protocol",
    TRANSPORT_FAILED: "Transport failure",
    TRANSPORT_URL_MALFORMED: "URL using bad/illegal format or missing URL",
    TRANSPORT_COULDNT_RESOLVE_HOST: "Couldn't resolve host name",
    TRANSPORT_COULDNT_CONNECT: "Couldn't connect to server",
    TRANSPORT_TIMED_OUT: "Timeout was reached",
    TRANSPORT_SSL_CONNECT_ERROR: "SSL connect error",
    TRANSPORT_TOO_MANY_REDIRECTS: "Number of redirects hit maximum amount",
    TRANSPORT_RECV_ERROR: "Failure when receiving data from the peer",
}


def transport_strerror(code: int) -> str:
    return TRANSPORT_ERRORS.get(code, f"Unknown transport error ({code})")


def http_failure_status(http_code: int) -> int:
    return -(int(http_code) + 100)


def http_code_from_status(status: int) -> int:
    return -(int(status) + 100)


def is_http_failure(status: int) -> bool:
    return status <= HTTP_FAILURE_BASE


class RpcError(Exception):
    """Base class for every failure reported by a daemon request."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return self.message


class DecodeError(RpcError):
    def __init__(self) -> None:
        super().__init__(FAIL_JSON_DECODE, "JSON decoding error.")


class ProtocolError(RpcError):
    def __init__(self, result: Optional[str]) -> None:
        message = result if result else "Server responded, but with no result."
        super().__init__(FAIL_RESPONSE_UNSUCCESSFUL, message)
        self.result = result


class HttpError(RpcError):
    def __init__(self, code: int) -> None:
        super().__init__(http_failure_status(code), f"Request failed with HTTP code {code}")
        self.code = code


class TransportError(RpcError):
    def __init__(self, raw_code: int) -> None:
        super().__init__(raw_code, transport_strerror(raw_code))
        self.raw_code = raw_code


class MalformedResponseError(RpcError):
    """A successful response whose payload is missing fields we depend on."""

    def __init__(self, detail: str) -> None:
        super().__init__(FAIL_RESPONSE_UNSUCCESSFUL, f"Malformed response: {detail}")
        self.detail = detail


def _result_string(response: Any) -> Optional[str]:
    if not isinstance(response, dict):
        return None
    result = response.get("result")
    if result is None:
        return None
    return str(result)


def error_from_status(response: Any, status: int) -> Optional[RpcError]:
    """Classify a ``(response, status)`` pair; ``None`` means success."""
    if status == STATUS_OK:
        return None
    if status == FAIL_JSON_DECODE:
        return DecodeError()
    if status == FAIL_RESPONSE_UNSUCCESSFUL:
        return ProtocolError(_result_string(response))
    if is_http_failure(status):
        return HttpError(http_code_from_status(status))
    return TransportError(status)


def make_error_message(response: Any, status: int) -> str:
    error = error_from_status(response, status)
    return str(error) if error else ""
