"""Developer-controlled wallet provider client.

Wraps the provider's REST API for wallet creation, contract execution,
typed-data signing and transaction lookups. Every state-changing request
carries a freshly encrypted entity secret (RSA-OAEP over the provider's
entity public key), as the provider rejects reused ciphertexts.
"""

import base64
import logging
import time
import uuid
from typing import Any, Callable, Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from bridge_api.exceptions import ChainExecutionError, UpstreamResponseError, ValidationError
from bridge_api.providers.http import HttpClient
from bridge_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

GAS_ERROR_CODE = 155258

SUCCESS_STATES = ("CONFIRMED", "COMPLETE")
FAILURE_STATES = ("FAILED", "CANCELLED", "DENIED")


def is_gas_error(exc: Exception) -> bool:
    """True when the provider rejected a call because the signer lacks gas."""
    if not isinstance(exc, UpstreamResponseError):
        return False
    if exc.code == GAS_ERROR_CODE:
        return True
    body = exc.body if isinstance(exc.body, dict) else {}
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        return errors[0].get("error") == "invalid_value"
    return False


def _abi_value(value: Any) -> Any:
    # The provider expects integers as decimal strings.
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class WalletProviderClient(HttpClient):
    """Client for the custodial wallet provider."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        super().__init__(
            self.settings.provider_base_url,
            headers={
                "Authorization": f"Bearer {self.settings.provider_api_key or ''}",
                "Content-Type": "application/json",
            },
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
        )
        self._sleep = sleep
        self._entity_public_key = None

    # Entity secret

    def _load_entity_public_key(self):
        if self._entity_public_key is None:
            data = self.get("/v1/w3s/config/entity/publicKey")["data"]
            self._entity_public_key = serialization.load_pem_public_key(data["publicKey"].encode())
        return self._entity_public_key

    def entity_secret_ciphertext(self) -> str:
        """Encrypt the configured entity secret for a single request."""
        if not self.settings.provider_entity_secret:
            raise ValidationError("Entity secret is not configured", field="provider_entity_secret")
        ciphertext = self._load_entity_public_key().encrypt(
            bytes.fromhex(self.settings.provider_entity_secret),
            padding.OAEP(
                mgf=padding.MGF1(algorithm=hashes.SHA256()),
                algorithm=hashes.SHA256(),
                label=None,
            ),
        )
        return base64.b64encode(ciphertext).decode()

    # Wallets

    def create_wallet_set(self, name: str) -> dict:
        response = self.post(
            "/v1/w3s/developer/walletSets",
            json={
                "idempotencyKey": str(uuid.uuid4()),
                "entitySecretCiphertext": self.entity_secret_ciphertext(),
                "name": name,
            },
        )
        return response["data"]["walletSet"]

    def create_wallets(
        self,
        wallet_set_id: str,
        blockchains: list[str],
        account_type: str = "SCA",
        count: int = 1,
    ) -> list[dict]:
        response = self.post(
            "/v1/w3s/developer/wallets",
            json={
                "idempotencyKey": str(uuid.uuid4()),
                "entitySecretCiphertext": self.entity_secret_ciphertext(),
                "walletSetId": wallet_set_id,
                "blockchains": blockchains,
                "accountType": account_type,
                "count": count,
            },
        )
        return response["data"]["wallets"]

    def get_wallet(self, wallet_id: str) -> dict:
        return self.get(f"/v1/w3s/wallets/{wallet_id}")["data"]["wallet"]

    def get_wallet_balances(self, wallet_id: str) -> list[dict]:
        """Token balances held by a wallet, including zero balances."""
        response = self.get(f"/v1/w3s/wallets/{wallet_id}/balances", params={"includeAll": "true"})
        return (response.get("data") or {}).get("tokenBalances") or []

    # Transactions

    def create_contract_execution(
        self,
        wallet_id: str,
        contract_address: str,
        abi_function_signature: str,
        abi_parameters: list,
        *,
        fee_level: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict:
        """Submit a contract call; returns ``{"id": ..., "state": ...}``."""
        response = self.post(
            "/v1/w3s/developer/transactions/contractExecution",
            json={
                "idempotencyKey": idempotency_key or str(uuid.uuid4()),
                "entitySecretCiphertext": self.entity_secret_ciphertext(),
                "walletId": wallet_id,
                "contractAddress": contract_address,
                "abiFunctionSignature": abi_function_signature,
                "abiParameters": [_abi_value(value) for value in abi_parameters],
                "feeLevel": fee_level or self.settings.provider_fee_level,
            },
        )
        data = response.get("data") or {}
        if not data.get("id"):
            raise UpstreamResponseError(
                "Provider did not return a transaction id",
                status_code=502,
                body=response,
                endpoint="POST /v1/w3s/developer/transactions/contractExecution",
            )
        return data

    def get_transaction(self, transaction_id: str) -> dict:
        return self.get(f"/v1/w3s/transactions/{transaction_id}")["data"]["transaction"]

    def sign_typed_data(self, wallet_id: str, data: str, memo: Optional[str] = None) -> str:
        payload = {
            "entitySecretCiphertext": self.entity_secret_ciphertext(),
            "walletId": wallet_id,
            "data": data,
        }
        if memo:
            payload["memo"] = memo
        response = self.post("/v1/w3s/developer/sign/typedData", json=payload)
        signature = (response.get("data") or {}).get("signature")
        if not signature:
            raise UpstreamResponseError(
                "Provider did not return a signature",
                status_code=502,
                body=response,
                endpoint="POST /v1/w3s/developer/sign/typedData",
            )
        return signature

    def wait_for_transaction(
        self,
        transaction_id: str,
        *,
        max_polls: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> dict:
        """Poll until the provider reports the transaction confirmed.

        Raises ``ChainExecutionError`` on a failure state or when
        ``max_polls`` lookups pass without a terminal state.
        """
        max_polls = max_polls or self.settings.provider_max_polls
        interval = self.settings.provider_poll_interval_seconds if interval is None else interval

        for attempt in range(max_polls):
            transaction = self.get_transaction(transaction_id)
            state = transaction.get("state")
            if state in SUCCESS_STATES:
                if not transaction.get("txHash"):
                    raise ChainExecutionError(
                        f"Transaction {transaction_id} is {state} but txHash is missing"
                    )
                return transaction
            if state in FAILURE_STATES:
                raise ChainExecutionError(
                    f"Transaction {transaction_id} failed with reason: {transaction.get('errorReason')}",
                    details={"state": state, "errorReason": transaction.get("errorReason")},
                )
            logger.debug(
                f"Transaction {transaction_id} state: {state} (attempt {attempt + 1}/{max_polls})"
            )
            self._sleep(interval)

        raise ChainExecutionError(f"Transaction {transaction_id} not confirmed after {max_polls} polls")

    # Notifications

    def get_notification_public_key(self, key_id: str) -> dict:
        """Fetch the public key used to sign webhook notifications."""
        return self.get(f"/v2/notifications/publicKey/{key_id}")["data"]
