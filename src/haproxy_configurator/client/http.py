"""Low-level HTTP client wrapper for the HAProxy Data Plane API."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Any

import requests

from haproxy_configurator.client.errors import DataPlaneRequestError, error_for_status

logger = logging.getLogger(__name__)

try:
    _VERSION: str = importlib.metadata.version("haproxy-configurator")
except importlib.metadata.PackageNotFoundError:
    _VERSION = "0.0.0"

_USER_AGENT: str = f"haproxy-configurator/{_VERSION}"


def _normalise_base_url(url: str) -> str:
    """Ensure the URL has a scheme and no trailing slash."""
    url = url.rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = "http://" + url
    return url


class DataPlaneHTTP:
    """Low-level HTTP wrapper around :class:`requests.Session`.

    Handles HTTP basic authentication, a default ``User-Agent`` header,
    timeout, TLS verification, JSON request bodies, and maps transport/HTTP
    errors to :mod:`.errors` types.

    Args:
        base_url: Data Plane API base URL, e.g. ``http://localhost:5555``.
        username: Basic-auth username.
        password: Basic-auth password.
        timeout_s: Request timeout in seconds (default 30).
        verify_tls: Whether to verify TLS certificates (default True).
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout_s: float = 30.0,
        verify_tls: bool = True,
    ) -> None:
        self.base_url: str = _normalise_base_url(base_url)
        self.timeout_s: float = timeout_s
        self.verify_tls: bool = verify_tls
        self._session: requests.Session = requests.Session()
        self._session.auth = (username, password)
        self._session.headers.update({"User-Agent": _USER_AGENT})

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> requests.Response:
        """Send an HTTP request to *path* and return the response.

        Args:
            method: HTTP method (``GET``, ``POST``, ``PUT``, ``DELETE``).
            path: URL path relative to :attr:`base_url`.
            params: Optional query-string parameters.
            json_body: Optional JSON-serialisable request body.

        Returns:
            The :class:`requests.Response`.

        Raises:
            DataPlaneRequestError: On any transport-level failure.
            DataPlaneResponseError: On a non-2xx HTTP status code (or one of
                its subclasses for 400/401/403/404/409/422).
        """
        url = self.base_url + path
        logger.debug("%s %s params=%s", method, url, params)
        try:
            resp = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                timeout=self.timeout_s,
                verify=self.verify_tls,
            )
        except requests.exceptions.RequestException as exc:
            raise DataPlaneRequestError(url, exc) from exc
        self._raise_for_status(resp)
        return resp

    def get(self, path: str, params: dict[str, str] | None = None) -> requests.Response:
        return self.request("GET", path, params=params)

    def post(
        self, path: str, json_body: Any = None, params: dict[str, str] | None = None
    ) -> requests.Response:
        return self.request("POST", path, params=params, json_body=json_body)

    def put(
        self, path: str, json_body: Any = None, params: dict[str, str] | None = None
    ) -> requests.Response:
        return self.request("PUT", path, params=params, json_body=json_body)

    def delete(self, path: str, params: dict[str, str] | None = None) -> requests.Response:
        return self.request("DELETE", path, params=params)

    def close(self) -> None:
        """Close the underlying :class:`requests.Session`."""
        self._session.close()

    def __enter__(self) -> DataPlaneHTTP:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        if resp.ok:
            return
        message = resp.text.strip()
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            message = str(body["message"])
        raise error_for_status(resp.status_code, resp.url, message)
