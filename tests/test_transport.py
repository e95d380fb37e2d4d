import os
import sys
import threading
from unittest.mock import MagicMock

import pytest
import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import rpc_requests
from rpc_errors import (
    FAIL_JSON_DECODE,
    FAIL_RESPONSE_UNSUCCESSFUL,
    STATUS_OK,
    TRANSPORT_COULDNT_CONNECT,
    TRANSPORT_COULDNT_RESOLVE_HOST,
    TRANSPORT_FAILED,
    TRANSPORT_SSL_CONNECT_ERROR,
    TRANSPORT_TIMED_OUT,
    TRANSPORT_TOO_MANY_REDIRECTS,
    TRANSPORT_URL_MALFORMED,
    http_failure_status,
)
from transport import SESSION_ID_HEADER, TransmissionTransport, transport_code


def _response(status_code=200, body=None, headers=None, bad_json=False):
    res = MagicMock()
    res.status_code = status_code
    res.headers = headers or {}
    if bad_json:
        res.json.side_effect = ValueError("no json")
    else:
        res.json.return_value = body
    return res


@pytest.fixture
def transport():
    t = TransmissionTransport("http://nas:9091/transmission/rpc", username="admin", password="pw", timeout=5)
    t.http = MagicMock()
    yield t
    t.close()


def test_auth_and_verify_are_configured():
    t = TransmissionTransport("https://nas/rpc", username="admin", password="pw", verify_ssl=False)
    try:
        assert t.http.auth == ("admin", "pw")
        assert t.http.verify is False
    finally:
        t.close()


def test_success(transport):
    transport.http.post.return_value = _response(body={"result": "success", "arguments": {"version": "4.0"}})

    response, status = transport.dispatch(rpc_requests.session_get())

    assert status == STATUS_OK
    assert response["arguments"] == {"version": "4.0"}
    _, kwargs = transport.http.post.call_args
    assert kwargs["json"]["method"] == "session-get"
    assert kwargs["timeout"] == 5


def test_session_id_handshake_retries_once(transport):
    transport.http.post.side_effect = [
        _response(409, headers={SESSION_ID_HEADER: "abc123"}),
        _response(body={"result": "success", "arguments": {}}),
    ]

    response, status = transport.dispatch(rpc_requests.session_get())

    assert status == STATUS_OK
    assert transport.session_id == "abc123"
    assert transport.http.post.call_count == 2
    retry_headers = transport.http.post.call_args_list[1][1]["headers"]
    assert retry_headers[SESSION_ID_HEADER] == "abc123"


def test_repeated_conflict_is_an_http_failure(transport):
    transport.http.post.side_effect = [
        _response(409, headers={SESSION_ID_HEADER: "a"}),
        _response(409, headers={SESSION_ID_HEADER: "b"}),
    ]
    response, status = transport.dispatch(rpc_requests.session_get())
    assert response is None
    assert status == http_failure_status(409)
    assert transport.http.post.call_count == 2


@pytest.mark.parametrize("code", [401, 404, 500])
def test_http_error_status(transport, code):
    transport.http.post.return_value = _response(code)
    response, status = transport.dispatch(rpc_requests.session_get())
    assert response is None
    assert status == -(code + 100)


def test_body_that_is_not_json(transport):
    transport.http.post.return_value = _response(bad_json=True)
    assert transport.dispatch(rpc_requests.session_get()) == (None, FAIL_JSON_DECODE)


def test_json_that_is_not_an_object(transport):
    transport.http.post.return_value = _response(body=[1, 2])
    assert transport.dispatch(rpc_requests.session_get()) == (None, FAIL_JSON_DECODE)


def test_unsuccessful_result_keeps_response(transport):
    body = {"result": "invalid or corrupt torrent file"}
    transport.http.post.return_value = _response(body=body)
    assert transport.dispatch(rpc_requests.session_get()) == (body, FAIL_RESPONSE_UNSUCCESSFUL)


@pytest.mark.parametrize("exc, code", [
    (requests.exceptions.ConnectTimeout("timed out"), TRANSPORT_TIMED_OUT),
    (requests.exceptions.ReadTimeout("timed out"), TRANSPORT_TIMED_OUT),
    (requests.exceptions.SSLError("bad cert"), TRANSPORT_SSL_CONNECT_ERROR),
    (requests.exceptions.ConnectionError("Connection refused"), TRANSPORT_COULDNT_CONNECT),
    (requests.exceptions.ConnectionError("[Errno -2] Name or service not known"), TRANSPORT_COULDNT_RESOLVE_HOST),
    (requests.exceptions.TooManyRedirects("loop"), TRANSPORT_TOO_MANY_REDIRECTS),
    (requests.exceptions.MissingSchema("no scheme"), TRANSPORT_URL_MALFORMED),
    (requests.exceptions.RequestException("?"), TRANSPORT_FAILED),
])
def test_transport_code(exc, code):
    assert transport_code(exc) == code


def test_connection_error_is_reported_as_status(transport):
    transport.http.post.side_effect = requests.exceptions.ConnectionError("Connection refused")
    assert transport.dispatch(rpc_requests.session_get()) == (None, TRANSPORT_COULDNT_CONNECT)


def test_dispatch_async_hands_context_to_callback(transport):
    transport.http.post.return_value = _response(body={"result": "success", "arguments": {}})
    done = threading.Event()
    seen = []

    def callback(response, status, context):
        seen.append((status, context))
        done.set()

    future = transport.dispatch_async(rpc_requests.torrent_get(), callback, ("epoch", 3))
    future.result(5)
    assert done.wait(5)
    assert seen == [(STATUS_OK, ("epoch", 3))]


def _latin1_error():
    return UnicodeEncodeError("latin-1", "пароль", 0, 6, "ordinal not in range(256)")


def test_non_requests_error_is_a_transport_failure(transport):
    transport.http.post.side_effect = _latin1_error()
    assert transport.dispatch(rpc_requests.session_get()) == (None, TRANSPORT_FAILED)


def test_dispatch_async_callback_runs_when_dispatch_raises(transport, monkeypatch):
    def boom(request):
        raise RuntimeError("boom")

    monkeypatch.setattr(transport, "dispatch", boom)
    seen = []
    transport.dispatch_async(rpc_requests.torrent_get(), lambda r, s, c: seen.append((r, s, c)), 7).result(5)
    assert seen == [(None, TRANSPORT_FAILED, 7)]
