"""Gateway API client (burn-intent submission, transfer lookups, balances)."""

from typing import Any, Optional

from bridge_api.providers.http import HttpClient
from bridge_api.settings import Settings, get_settings


class GatewayClient(HttpClient):
    def __init__(self, settings: Optional[Settings] = None, *, transport=None):
        settings = settings or get_settings()
        super().__init__(
            settings.gateway_base_url,
            headers={"Content-Type": "application/json"},
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    def submit_burn_intent(self, burn_intent: dict, signature: str) -> dict:
        """Submit one signed burn intent; returns the first result entry."""
        data = self.post("/v1/transfer", json=[{"burnIntent": burn_intent, "signature": signature}])
        return data[0] if isinstance(data, list) else data

    def get_transfer(self, transfer_id: str) -> dict:
        return self.get(f"/v1/transfers/{transfer_id}")

    def get_balances(self, depositor: str, domains: list[int], token: str = "USDC") -> Any:
        return self.post(
            "/v1/balances",
            json={
                "token": token,
                "sources": [{"domain": domain, "depositor": depositor} for domain in domains],
            },
        )
