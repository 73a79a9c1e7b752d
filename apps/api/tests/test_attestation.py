"""Tests for the attestation pollers."""

import pytest

from bridge_api.exceptions import (
    AttestationFailedError,
    AttestationTimeoutError,
    TransportError,
    UpstreamResponseError,
)
from bridge_api.orchestrator.attestation import AttestationPoller, GatewayAttestationPoller

from conftest import FakeIris, complete_message


class Sleeps:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class TestAttestationPoller:
    """Message lookups until the attestation is complete."""

    def test_completes_on_third_poll(self):
        iris = FakeIris(
            [
                [],
                [{"status": "pending_confirmations", "attestation": "PENDING"}],
                complete_message("0xmsg", "0xatt"),
            ]
        )
        sleeps = Sleeps()
        poller = AttestationPoller(iris, interval=5, sleep=sleeps)

        bundle = poller.await_attestation(6, "0xburn")

        assert bundle.message == "0xmsg"
        assert bundle.attestation == "0xatt"
        assert len(iris.calls) == 3
        assert iris.calls[0] == (6, "0xburn")
        # Sleeps only between attempts.
        assert sleeps.calls == [5, 5]

    def test_complete_status_with_pending_attestation_keeps_waiting(self):
        iris = FakeIris(
            [
                [{"status": "complete", "message": "0xmsg", "attestation": "PENDING"}],
                complete_message(),
            ]
        )
        poller = AttestationPoller(iris, interval=0, sleep=Sleeps())

        poller.await_attestation(6, "0xburn")

        assert len(iris.calls) == 2

    def test_transient_errors_are_retried(self):
        iris = FakeIris(
            [
                TransportError("connection reset"),
                UpstreamResponseError("busy", status_code=503),
                complete_message(),
            ]
        )
        poller = AttestationPoller(iris, interval=0, sleep=Sleeps())

        assert poller.await_attestation(0, "0xburn").attestation == "0xattestation"
        assert len(iris.calls) == 3

    def test_client_errors_propagate(self):
        iris = FakeIris([UpstreamResponseError("bad request", status_code=400)])
        poller = AttestationPoller(iris, interval=0, sleep=Sleeps())

        with pytest.raises(UpstreamResponseError):
            poller.await_attestation(0, "0xburn")

    def test_failed_message_raises(self):
        iris = FakeIris([[{"status": "failed"}]])
        poller = AttestationPoller(iris, interval=0, sleep=Sleeps())

        with pytest.raises(AttestationFailedError):
            poller.await_attestation(0, "0xburn")

    def test_bounded_wait_times_out(self):
        iris = FakeIris([[]])
        sleeps = Sleeps()
        poller = AttestationPoller(iris, interval=1, sleep=sleeps)

        with pytest.raises(AttestationTimeoutError) as exc_info:
            poller.await_attestation(0, "0xburn", max_polls=4)

        assert exc_info.value.attempts == 4
        assert len(iris.calls) == 4
        assert len(sleeps.calls) == 3


class FakeGateway:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get_transfer(self, transfer_id):
        self.calls.append(transfer_id)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class TestGatewayAttestationPoller:
    """Bounded client-path wait on the Gateway transfer lookup."""

    def test_returns_attestation_and_signature(self):
        gateway = FakeGateway(
            [
                {"status": "PENDING"},
                UpstreamResponseError("not indexed", status_code=404),
                {"status": "ATTESTED", "attestation": "0xatt", "signature": "0xsig"},
            ]
        )
        poller = GatewayAttestationPoller(gateway, interval=3, max_polls=60, sleep=Sleeps())

        assert poller.await_attestation("gw-1") == ("0xatt", "0xsig")
        assert gateway.calls == ["gw-1", "gw-1", "gw-1"]

    def test_failed_transfer_raises(self):
        poller = GatewayAttestationPoller(FakeGateway([{"status": "FAILED"}]), interval=0, sleep=Sleeps())

        with pytest.raises(AttestationFailedError):
            poller.await_attestation("gw-1")

    def test_times_out_after_max_polls(self):
        gateway = FakeGateway([{"status": "PENDING"}])
        sleeps = Sleeps()
        poller = GatewayAttestationPoller(gateway, interval=3, max_polls=5, sleep=sleeps)

        with pytest.raises(AttestationTimeoutError) as exc_info:
            poller.await_attestation("gw-1")

        assert "gw-1" in exc_info.value.message
        assert len(gateway.calls) == 5
        assert sleeps.calls == [3] * 5
