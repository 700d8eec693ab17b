"""Shared HTTP transport utilities for the service REST client.

This module provides a thin wrapper around ``requests.Session`` so the REST
client can share timeout policy, retry behavior, gzip request compression,
and authorization header construction.

Dependencies:
    - ``requests`` for network I/O.
    - ``stackops.adapters.api_errors.ApiTimeoutError`` for typed transport failures.

Call context:
    - Constructed by ``stackops.adapters.service_rest.ServiceRestClient``.
    - Used only inside adapter layer methods; use cases interact through ports.
"""

from __future__ import annotations

import gzip
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests
from requests import exceptions as req_exc

from stackops.adapters.api_errors import ApiTimeoutError


def account_authorization(token: str) -> str:
    """Authorization header value for account-scoped calls."""
    return f"token {token}"


def lease_authorization(token: str) -> str:
    """Authorization header value for calls scoped to one update lease."""
    return f"update-token {token}"


@dataclass
class HttpConfig:
    """Timeout and retry configuration for adapter HTTP calls.

    Attributes:
        request_timeout_s: Default timeout in seconds for JSON API calls.
        retries: Number of retry attempts after the initial request; applies
            only to calls marked retry-safe.
        backoff_s: Delay before the first retry; doubled per attempt.
        backoff_max_s: Upper bound for the retry delay.
    """
    request_timeout_s: int = 30
    retries: int = 3
    backoff_s: float = 0.5
    backoff_max_s: float = 8.0


class RetryingSession:
    """Shared requests wrapper with authorization headers and retry loops.

    This class is transport-only. Callers provide endpoint URLs,
    decide per call whether a retry is safe, and map non-2xx responses into
    typed errors.
    """

    def __init__(
        self,
        cfg: HttpConfig,
        *,
        user_agent: str = "stackops",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Create a retry-enabled session.

        Args:
            cfg: Shared timeout and retry settings.
            user_agent: ``User-Agent`` header value.
            sleep: Delay function used between retries (injected by tests).

        Side Effects:
            Creates a persistent ``requests.Session`` object.
        """
        self.session = requests.Session()
        self.cfg = cfg
        self.user_agent = user_agent
        self._sleep = sleep
        self._log = logging.getLogger(__name__)

    def _headers(
        self,
        *,
        authorization: Optional[str],
        json_body: bool,
        gzip_body: bool,
    ) -> Dict[str, str]:
        """Build request headers for adapter calls."""
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
            "User-Agent": self.user_agent,
        }
        if authorization:
            headers["Authorization"] = authorization
        if json_body:
            headers["Content-Type"] = "application/json"
            if gzip_body:
                headers["Content-Encoding"] = "gzip"
        return headers

    @staticmethod
    def encode_body(json_body: Any, *, gzip_body: bool) -> Optional[bytes]:
        """Serialize ``json_body`` to UTF-8 JSON, gzip-compressed when requested."""
        if json_body is None:
            return None
        data = json.dumps(json_body).encode("utf-8")
        if gzip_body:
            data = gzip.compress(data)
        return data

    def _backoff(self, attempt: int) -> float:
        return min(self.cfg.backoff_max_s, self.cfg.backoff_s * (2 ** (attempt - 1)))

    @staticmethod
    def _is_retryable_status(status: int) -> bool:
        return status == 429 or 500 <= status < 600

    def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        authorization: Optional[str] = None,
        retry_safe: bool = False,
        gzip_body: bool = False,
        timeout: Optional[int] = None,
    ) -> requests.Response:
        """Send one request, retrying transient failures only when ``retry_safe``.

        Args:
            method: HTTP method.
            url: Absolute endpoint URL.
            params: Optional query parameter mapping.
            json_body: Optional payload object serialized to JSON.
            authorization: ``Authorization`` header value, or ``None``.
            retry_safe: Whether the call may be replayed after a transport
                failure (any ``requests`` exception), 429, or 5xx response.
            gzip_body: Whether to gzip-compress the serialized payload.
            timeout: Optional timeout override in seconds.

        Returns:
            ``requests.Response`` from the first non-retryable attempt, or the
            last response once retries are exhausted.

        Raises:
            ApiTimeoutError: If the final attempt fails in the transport
                (timeout, connection reset, broken chunked or gzip response).
        """
        context = f"{method} {url}"
        data = self.encode_body(json_body, gzip_body=gzip_body)
        headers = self._headers(
            authorization=authorization,
            json_body=json_body is not None,
            gzip_body=gzip_body,
        )
        attempts = self.cfg.retries + 1 if retry_safe else 1
        last_err: ApiTimeoutError | None = None
        for attempt in range(1, attempts + 1):
            try:
                resp = self.session.request(
                    method,
                    url,
                    params=params,
                    data=data,
                    headers=headers,
                    timeout=timeout or self.cfg.request_timeout_s,
                )
            except req_exc.RequestException as exc:
                last_err = ApiTimeoutError(f"Transport failure contacting {url}: {exc}", context=context)
                self._log.warning("%s failed (attempt %d/%d): %s", context, attempt, attempts, exc)
            else:
                if attempt == attempts or not self._is_retryable_status(resp.status_code):
                    self._log.debug("%s -> HTTP %s", context, resp.status_code)
                    return resp
                self._log.warning(
                    "%s returned HTTP %s (attempt %d/%d); retrying.",
                    context,
                    resp.status_code,
                    attempt,
                    attempts,
                )
            if attempt < attempts:
                self._sleep(self._backoff(attempt))
        raise last_err


__all__ = ["HttpConfig", "RetryingSession", "account_authorization", "lease_authorization"]
