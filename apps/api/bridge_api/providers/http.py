"""Shared httpx client that maps failures onto the typed error hierarchy."""

import logging
from typing import Any, Optional

import httpx

from bridge_api.exceptions import TransportError, UpstreamResponseError

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin wrapper around ``httpx.Client``.

    Connection errors and timeouts raise ``TransportError``; any 4xx/5xx
    response raises ``UpstreamResponseError`` carrying the decoded body.
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[dict] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers or {},
            timeout=timeout,
            transport=transport,
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        endpoint = f"{method} {path}"
        try:
            response = self._client.request(method, path, json=json, params=params)
        except httpx.TransportError as exc:
            logger.warning(f"Transport failure calling {self.base_url}{path}: {exc}")
            raise TransportError(f"Transport failure: {exc}", endpoint=endpoint) from exc

        if response.status_code >= 400:
            body = _decode_body(response)
            raise UpstreamResponseError(
                f"{endpoint} returned {response.status_code}",
                status_code=response.status_code,
                body=body,
                endpoint=endpoint,
            )

        if not response.content:
            return None
        return _decode_body(response)

    def get(self, path: str, **kwargs) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> Any:
        return self.request("POST", path, **kwargs)

    def close(self):
        self._client.close()


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
