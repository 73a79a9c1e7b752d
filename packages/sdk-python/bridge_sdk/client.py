"""Transfer orchestrator API client."""

from typing import Optional

import requests


class InsufficientGasError(Exception):
    """The wallet that would execute the transfer has no native gas."""

    def __init__(self, body: dict):
        self.wallet_id = body.get("walletId")
        self.wallet_address = body.get("walletAddress")
        self.blockchain = body.get("blockchain")
        self.chain = body.get("chain")
        self.body = body
        super().__init__(body.get("message") or "Insufficient gas")


class BridgeClient:
    """Client for the transfer orchestrator API."""

    def __init__(self, user_id: str, base_url: str = "http://localhost:8000", session: Optional[requests.Session] = None):
        """Initialize client."""
        self.user_id = user_id
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"x-user-id": user_id})

    def _handle(self, response: requests.Response) -> dict:
        if response.status_code == 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("error") == "INSUFFICIENT_GAS":
                raise InsufficientGasError(body)
        response.raise_for_status()
        return response.json()

    def record_topup(
        self,
        credits: str,
        usdc_amount: str,
        tx_hash: str,
        chain_id: int,
        wallet_address: str,
        destination_address: Optional[str] = None,
    ) -> dict:
        """Record a top-up already broadcast from the user's wallet."""
        payload = {
            "credits": credits,
            "usdcAmount": usdc_amount,
            "txHash": tx_hash,
            "chainId": chain_id,
            "walletAddress": wallet_address,
        }
        if destination_address:
            payload["destinationAddress"] = destination_address
        response = self.session.post(f"{self.base_url}/v1/transactions", json=payload)
        return self._handle(response)

    def get_transaction(self, transaction_id: str) -> dict:
        """Get one transfer and its status history."""
        response = self.session.get(f"{self.base_url}/v1/transactions/{transaction_id}")
        return self._handle(response)

    def list_transactions(self, limit: int = 50) -> list:
        """List the caller's transfers, newest first."""
        response = self.session.get(f"{self.base_url}/v1/transactions", params={"limit": limit})
        return self._handle(response)

    def gateway_transfer(
        self,
        source_chain: str,
        destination_chain: str,
        amount: str,
        recipient_address: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict:
        """Move USDC out of the Gateway balance onto another chain."""
        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        payload = {
            "sourceChain": source_chain,
            "destinationChain": destination_chain,
            "amount": amount,
        }
        if recipient_address:
            payload["recipientAddress"] = recipient_address
        response = self.session.post(f"{self.base_url}/v1/gateway/transfer", json=payload, headers=headers)
        return self._handle(response)

    def gateway_deposit(self, chain: str, amount: str, delegate: Optional[str] = None) -> dict:
        """Deposit USDC into the Gateway wallet."""
        payload = {"chain": chain, "amount": amount}
        if delegate:
            payload["delegate"] = delegate
        response = self.session.post(f"{self.base_url}/v1/gateway/deposit", json=payload)
        return self._handle(response)

    def gateway_withdraw(self, chain: str, amount: str) -> dict:
        """Withdraw USDC from the Gateway wallet on the same chain."""
        response = self.session.post(
            f"{self.base_url}/v1/gateway/withdraw", json={"chain": chain, "amount": amount}
        )
        return self._handle(response)

    def gateway_balances(self) -> dict:
        """Gateway balances across supported chains."""
        response = self.session.get(f"{self.base_url}/v1/gateway/balances")
        return self._handle(response)
