"""Bridge attestation service (Iris) client."""

from typing import Any, Mapping, Optional

from bridge_api.exceptions import UpstreamResponseError
from bridge_api.providers.http import HttpClient
from bridge_api.settings import Settings, get_settings


class IrisClient(HttpClient):
    """Message lookups keyed by (source domain, burn tx hash)."""

    def __init__(self, settings: Optional[Settings] = None, *, transport=None):
        settings = settings or get_settings()
        super().__init__(
            settings.iris_base_url,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    def get_messages(self, domain: int, tx_hash: str) -> list[Mapping[str, Any]]:
        """Messages for a burn; empty when the service has not indexed it yet."""
        try:
            body = self.get(f"/v2/messages/{domain}", params={"transactionHash": tx_hash})
        except UpstreamResponseError as exc:
            if exc.status_code == 404:
                return []
            raise
        return extract_messages(body)


def extract_messages(body: Any) -> list[Mapping[str, Any]]:
    if isinstance(body, Mapping):
        direct = body.get("messages")
        if isinstance(direct, list):
            return [entry for entry in direct if isinstance(entry, Mapping)]
        data = body.get("data")
        if isinstance(data, Mapping):
            nested = data.get("messages")
            if isinstance(nested, list):
                return [entry for entry in nested if isinstance(entry, Mapping)]
    return []
