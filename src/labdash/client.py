"""HTTP client for the LabDash metrics server."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin

import requests

from labdash.errors import MalformedBodyError, ProtocolError, TransportError

logger = logging.getLogger(__name__)

USER_AGENT = "labdash-monitor"


def _wrap_with_timeout(request_func, default_timeout: float):
    def wrapped(method, url, **kwargs):
        if "timeout" not in kwargs:
            kwargs["timeout"] = default_timeout
        return request_func(method, url, **kwargs)

    return wrapped


def build_session(user_agent: str = USER_AGENT, *, timeout: float = 5.0) -> requests.Session:
    """Session whose requests time out after ``timeout`` seconds unless told otherwise."""
    s = requests.Session()
    s.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    s.request = _wrap_with_timeout(s.request, timeout)
    return s


class MetricsClient:
    """
    Fetches raw stats documents from a metrics endpoint.

    Every way a fetch can go wrong surfaces as a FetchError subclass; callers
    never see a requests exception.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = session or build_session(timeout=timeout)

    def fetch(self) -> dict[str, Any]:
        """GET the stats endpoint and return the decoded JSON object."""
        return self._get_json(self.endpoint)

    def fetch_config(self, path: str = "/api/config") -> dict[str, Any]:
        """GET the server's own config document from the same host."""
        return self._get_json(urljoin(self.endpoint, path))

    def close(self) -> None:
        self._session.close()

    def _get_json(self, url: str) -> dict[str, Any]:
        try:
            resp = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise ProtocolError(resp.status_code, f"GET {url} returned HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise MalformedBodyError(f"GET {url} returned a non-JSON body") from exc

        if not isinstance(payload, dict):
            raise MalformedBodyError(
                f"GET {url} returned {type(payload).__name__}, expected an object"
            )
        logger.debug("GET %s -> %d", url, resp.status_code)
        return payload
