"""Transport-level tests for the retrying requests wrapper."""

from __future__ import annotations

import gzip
import json
from typing import Any, Dict, List

import pytest

pytest.importorskip("requests")

from requests import exceptions as req_exc

from stackops.adapters.api_errors import ApiTimeoutError
from stackops.adapters.http_client import (
    HttpConfig,
    RetryingSession,
    account_authorization,
    lease_authorization,
)
from stackops.tests.fakes import FakeResponse


class _ScriptedRequestsSession:
    """requests.Session double replaying scripted outcomes in order."""

    def __init__(self, outcomes: List[Any]) -> None:
        self._outcomes = list(outcomes)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any):
        self.calls.append({"method": method, "url": url, **kwargs})
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _session(outcomes: List[Any], *, retries: int = 2) -> tuple[RetryingSession, _ScriptedRequestsSession, List[float]]:
    sleeps: List[float] = []
    session = RetryingSession(HttpConfig(retries=retries, backoff_s=0.1, backoff_max_s=1.0), sleep=sleeps.append)
    scripted = _ScriptedRequestsSession(outcomes)
    session.session = scripted
    return session, scripted, sleeps


def test_retry_safe_call_retries_transport_failures_and_5xx() -> None:
    """Retry-safe calls should replay after connection errors and 503s with backoff."""
    session, scripted, sleeps = _session(
        [req_exc.ConnectionError("reset"), FakeResponse(503, {"message": "busy"}), FakeResponse(200, {"ok": True})]
    )
    resp = session.request("POST", "http://svc/renew", json_body={"token": "t"}, retry_safe=True)
    assert resp.status_code == 200
    assert len(scripted.calls) == 3
    assert sleeps == [0.1, 0.2]


def test_non_retry_safe_call_is_sent_exactly_once() -> None:
    """Calls not marked retry-safe must not be replayed after a timeout."""
    session, scripted, sleeps = _session([req_exc.Timeout("slow")])
    with pytest.raises(ApiTimeoutError) as exc:
        session.request("POST", "http://svc/create", json_body={}, retry_safe=False)
    assert exc.value.kind == "transport"
    assert len(scripted.calls) == 1
    assert sleeps == []


def test_non_retry_safe_call_returns_server_error_without_retry() -> None:
    session, scripted, _ = _session([FakeResponse(503, {"message": "busy"})])
    resp = session.request("POST", "http://svc/start", retry_safe=False)
    assert resp.status_code == 503
    assert len(scripted.calls) == 1


def test_retry_safe_call_returns_last_response_when_retries_exhausted() -> None:
    session, scripted, sleeps = _session([FakeResponse(502), FakeResponse(502), FakeResponse(502)])
    resp = session.request("GET", "http://svc/stack", retry_safe=True)
    assert resp.status_code == 502
    assert len(scripted.calls) == 3
    assert len(sleeps) == 2


def test_client_errors_are_not_retried() -> None:
    session, scripted, _ = _session([FakeResponse(401, {"message": "nope"})])
    resp = session.request("PATCH", "http://svc/checkpoint", json_body={}, retry_safe=True)
    assert resp.status_code == 401
    assert len(scripted.calls) == 1


def test_gzip_body_is_compressed_and_labelled() -> None:
    """Checkpoint-style calls should send gzip JSON with Content-Encoding set."""
    session, scripted, _ = _session([FakeResponse(204)])
    body = {"version": 3, "deployment": {"resources": [{"urn": "a"}]}}
    session.request(
        "PATCH",
        "http://svc/checkpoint",
        json_body=body,
        authorization=lease_authorization("lease-1"),
        retry_safe=True,
        gzip_body=True,
    )
    call = scripted.calls[0]
    assert json.loads(gzip.decompress(call["data"])) == body
    assert call["headers"]["Content-Encoding"] == "gzip"
    assert call["headers"]["Content-Type"] == "application/json"
    assert call["headers"]["Authorization"] == "update-token lease-1"


def test_plain_body_is_json_and_uses_account_authorization() -> None:
    session, scripted, _ = _session([FakeResponse(200, {})])
    session.request("POST", "http://svc/x", json_body={"a": 1}, authorization=account_authorization("acct"))
    call = scripted.calls[0]
    assert json.loads(call["data"]) == {"a": 1}
    assert "Content-Encoding" not in call["headers"]
    assert call["headers"]["Authorization"] == "token acct"


def test_retry_safe_call_retries_other_transport_failures() -> None:
    """Broken chunked or gzip responses are transport failures like timeouts."""
    session, scripted, sleeps = _session(
        [req_exc.ChunkedEncodingError("truncated"), req_exc.ContentDecodingError("bad gzip"), FakeResponse(200, {})]
    )
    resp = session.request("POST", "http://svc/renew", json_body={}, retry_safe=True)
    assert resp.status_code == 200
    assert len(scripted.calls) == 3
    assert sleeps == [0.1, 0.2]


def test_exhausted_transport_failures_raise_typed_error() -> None:
    session, scripted, _ = _session([req_exc.ChunkedEncodingError("truncated")] * 3)
    with pytest.raises(ApiTimeoutError) as exc:
        session.request("GET", "http://svc/events", retry_safe=True)
    assert exc.value.kind == "transport"
    assert len(scripted.calls) == 3
