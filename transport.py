"""HTTP transport for the daemon's JSON-RPC endpoint.

Blocking calls go through ``dispatch``; ``dispatch_async`` runs the same call on
a small thread pool and hands ``(response, status, context)`` to a callback on
the worker thread. Callers that touch shared state must marshal the callback
onto their own loop.
"""

import concurrent.futures
import logging
import threading

import requests

from rpc_errors import (
    FAIL_JSON_DECODE,
    FAIL_RESPONSE_UNSUCCESSFUL,
    STATUS_OK,
    TRANSPORT_COULDNT_CONNECT,
    TRANSPORT_COULDNT_RESOLVE_HOST,
    TRANSPORT_FAILED,
    TRANSPORT_RECV_ERROR,
    TRANSPORT_SSL_CONNECT_ERROR,
    TRANSPORT_TIMED_OUT,
    TRANSPORT_TOO_MANY_REDIRECTS,
    TRANSPORT_UNSUPPORTED_PROTOCOL,
    TRANSPORT_URL_MALFORMED,
    http_failure_status,
)

logger = logging.getLogger(__name__)

SESSION_ID_HEADER = "X-Transmission-Session-Id"

_RESOLVE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "nameresolutionerror",
    "failed to resolve",
)


def transport_code(exc):
    """Map a requests exception onto a transport status code."""
    if isinstance(exc, requests.exceptions.Timeout):
        return TRANSPORT_TIMED_OUT
    if isinstance(exc, requests.exceptions.SSLError):
        return TRANSPORT_SSL_CONNECT_ERROR
    if isinstance(exc, requests.exceptions.ConnectionError):
        text = str(exc).lower()
        if any(marker in text for marker in _RESOLVE_MARKERS):
            return TRANSPORT_COULDNT_RESOLVE_HOST
        return TRANSPORT_COULDNT_CONNECT
    if isinstance(exc, requests.exceptions.TooManyRedirects):
        return TRANSPORT_TOO_MANY_REDIRECTS
    if isinstance(exc, requests.exceptions.InvalidSchema):
        return TRANSPORT_UNSUPPORTED_PROTOCOL
    if isinstance(exc, (requests.exceptions.MissingSchema, requests.exceptions.InvalidURL)):
        return TRANSPORT_URL_MALFORMED
    if isinstance(exc, (requests.exceptions.ChunkedEncodingError, requests.exceptions.ContentDecodingError)):
        return TRANSPORT_RECV_ERROR
    return TRANSPORT_FAILED


class TransmissionTransport:
    def __init__(self, url, username=None, password=None, timeout=30, verify_ssl=True, max_workers=4):
        self.url = url
        self.timeout = timeout
        self.http = requests.Session()
        self.http.verify = verify_ssl
        if username:
            self.http.auth = (username, password or "")
        self._session_id = ""
        self._id_lock = threading.Lock()
        self._pool = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rpc")

    @property
    def session_id(self):
        with self._id_lock:
            return self._session_id

    def _post(self, request):
        headers = {SESSION_ID_HEADER: self.session_id}
        return self.http.post(self.url, json=request, headers=headers, timeout=self.timeout)

    def dispatch(self, request):
        """Send ``request`` and block. Returns ``(response_or_None, status)``."""
        method = request.get("method")
        try:
            res = self._post(request)
            if res.status_code == 409 and SESSION_ID_HEADER in res.headers:
                # Daemon rotated its CSRF token; adopt it and resend once.
                with self._id_lock:
                    self._session_id = res.headers[SESSION_ID_HEADER]
                res = self._post(request)
        except requests.exceptions.RequestException as e:
            code = transport_code(e)
            logger.warning("%s request failed: %s", method, e)
            return None, code
        except Exception:
            # e.g. requests cannot latin-1 encode a basic-auth password
            logger.exception("%s request failed before reaching the daemon", method)
            return None, TRANSPORT_FAILED

        if res.status_code != 200:
            logger.warning("%s returned HTTP %s", method, res.status_code)
            return None, http_failure_status(res.status_code)

        try:
            response = res.json()
        except ValueError:
            logger.warning("%s returned a body that is not JSON", method)
            return None, FAIL_JSON_DECODE
        if not isinstance(response, dict):
            return None, FAIL_JSON_DECODE

        if response.get("result") != "success":
            logger.warning("%s failed on the daemon: %s", method, response.get("result"))
            return response, FAIL_RESPONSE_UNSUCCESSFUL
        return response, STATUS_OK

    def dispatch_async(self, request, callback, context=None):
        def run():
            try:
                response, status = self.dispatch(request)
            except Exception:
                logger.exception("%s dispatch failed", request.get("method"))
                response, status = None, TRANSPORT_FAILED
            callback(response, status, context)

        return self._pool.submit(run)

    def close(self):
        self._pool.shutdown(wait=False)
        self.http.close()
