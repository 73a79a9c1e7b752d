"""Tests for outbound HTTP error mapping."""

import httpx
import pytest

from bridge_api.exceptions import ChainExecutionError, TransportError, UpstreamResponseError
from bridge_api.providers.gateway import GatewayClient
from bridge_api.providers.http import HttpClient
from bridge_api.providers.iris import IrisClient
from bridge_api.providers.wallets import WalletProviderClient, is_gas_error
from bridge_api.settings import Settings


@pytest.fixture
def settings():
    return Settings(
        provider_api_key="TEST_API_KEY",
        provider_entity_secret="00" * 32,
        request_timeout_seconds=1,
        provider_poll_interval_seconds=0,
    )


def transport(handler):
    return httpx.MockTransport(handler)


class TestHttpClient:
    def test_error_status_carries_decoded_body(self):
        client = HttpClient(
            "https://upstream.test",
            transport=transport(lambda request: httpx.Response(400, json={"code": 155258, "message": "no gas"})),
        )

        with pytest.raises(UpstreamResponseError) as exc_info:
            client.get("/v1/thing")

        error = exc_info.value
        assert error.status_code == 400
        assert error.code == 155258
        assert error.endpoint == "GET /v1/thing"
        assert error.is_retryable is False
        assert is_gas_error(error) is True

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_retryable_statuses(self, status_code):
        client = HttpClient(
            "https://upstream.test",
            transport=transport(lambda request: httpx.Response(status_code, text="busy")),
        )

        with pytest.raises(UpstreamResponseError) as exc_info:
            client.post("/v1/thing", json={})

        assert exc_info.value.is_retryable is True
        assert exc_info.value.body == "busy"

    def test_connection_failure_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = HttpClient("https://upstream.test", transport=transport(handler))

        with pytest.raises(TransportError):
            client.get("/v1/thing")


def test_invalid_value_error_is_gas_error():
    error = UpstreamResponseError(
        "bad request",
        status_code=400,
        body={"code": 2, "errors": [{"error": "invalid_value", "location": "amount"}]},
    )

    assert is_gas_error(error) is True
    assert is_gas_error(UpstreamResponseError("bad request", status_code=400, body={"code": 2})) is False
    assert is_gas_error(TransportError("timeout")) is False


class TestIrisClient:
    def test_not_found_means_not_indexed(self, settings):
        client = IrisClient(settings, transport=transport(lambda request: httpx.Response(404, json={})))

        assert client.get_messages(6, "0xabc") == []

    def test_returns_messages(self, settings):
        seen = []

        def handler(request):
            seen.append(request.url)
            return httpx.Response(200, json={"messages": [{"status": "complete", "attestation": "0xatt"}]})

        client = IrisClient(settings, transport=transport(handler))

        messages = client.get_messages(6, "0xabc")

        assert messages[0]["attestation"] == "0xatt"
        assert seen[0].path == "/v2/messages/6"
        assert seen[0].params["transactionHash"] == "0xabc"


class TestWalletProviderClient:
    def test_wait_for_transaction_returns_confirmed(self, settings):
        states = iter(["QUEUED", "SENT", "CONFIRMED"])

        def handler(request):
            state = next(states)
            transaction = {"id": "tx-1", "state": state}
            if state == "CONFIRMED":
                transaction["txHash"] = "0xhash"
            return httpx.Response(200, json={"data": {"transaction": transaction}})

        client = WalletProviderClient(settings, transport=transport(handler), sleep=lambda seconds: None)

        assert client.wait_for_transaction("tx-1")["txHash"] == "0xhash"

    def test_wait_for_transaction_raises_on_failure(self, settings):
        def handler(request):
            return httpx.Response(
                200,
                json={"data": {"transaction": {"id": "tx-1", "state": "FAILED", "errorReason": "reverted"}}},
            )

        client = WalletProviderClient(settings, transport=transport(handler), sleep=lambda seconds: None)

        with pytest.raises(ChainExecutionError) as exc_info:
            client.wait_for_transaction("tx-1")

        assert "reverted" in exc_info.value.message

    def test_wait_for_transaction_is_bounded(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"data": {"transaction": {"id": "tx-1", "state": "SENT"}}})

        client = WalletProviderClient(settings, transport=transport(handler), sleep=lambda seconds: None)

        with pytest.raises(ChainExecutionError):
            client.wait_for_transaction("tx-1", max_polls=3)

        assert len(calls) == 3

    def test_notification_public_key(self, settings):
        def handler(request):
            assert request.headers["authorization"] == "Bearer TEST_API_KEY"
            return httpx.Response(200, json={"data": {"id": "key-1", "publicKey": "MFkw"}})

        client = WalletProviderClient(settings, transport=transport(handler))

        assert client.get_notification_public_key("key-1")["publicKey"] == "MFkw"

    def test_wallet_balances(self, settings):
        seen = []

        def handler(request):
            seen.append(request)
            balances = [{"token": {"symbol": "USDC", "decimals": 6}, "amount": "12.5"}]
            return httpx.Response(200, json={"data": {"tokenBalances": balances}})

        client = WalletProviderClient(settings, transport=transport(handler))

        balances = client.get_wallet_balances("wallet-1")

        assert balances[0]["amount"] == "12.5"
        assert seen[0].url.path == "/v1/w3s/wallets/wallet-1/balances"
        assert seen[0].url.params["includeAll"] == "true"


def test_gateway_submit_returns_first_entry(settings):
    def handler(request):
        return httpx.Response(200, json=[{"transferId": "gw-1", "attestation": "0xatt", "signature": "0xsig"}])

    client = GatewayClient(settings, transport=transport(handler))

    assert client.submit_burn_intent({"spec": {}}, "0xsig")["transferId"] == "gw-1"
