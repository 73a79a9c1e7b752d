"""Webhook signature verification."""

import base64
import binascii
import logging
import textwrap
import threading
import time
from typing import Callable, Optional

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

logger = logging.getLogger(__name__)


def to_pem(public_key_b64: str) -> bytes:
    """Frame a base64 DER public key as PEM with 64-character lines."""
    body = "".join(public_key_b64.split())
    if body.startswith("-----BEGIN"):
        return public_key_b64.encode()
    lines = "\n".join(textwrap.wrap(body, 64))
    return f"-----BEGIN PUBLIC KEY-----\n{lines}\n-----END PUBLIC KEY-----\n".encode()


class SignatureVerifier:
    """Verify provider signatures over the exact raw request body.

    ``key_fetcher(key_id)`` returns the provider's key payload
    (``{"publicKey": "<base64 DER>", ...}``); transport failures it raises
    propagate to the caller so the delivery can be retried.
    """

    def __init__(
        self,
        key_fetcher: Callable[[str], dict],
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._key_fetcher = key_fetcher
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[object, float]] = {}
        self._lock = threading.Lock()

    def _public_key(self, key_id: str):
        now = self._clock()
        with self._lock:
            cached = self._cache.get(key_id)
            if cached and now - cached[1] < self._ttl:
                return cached[0]

        payload = self._key_fetcher(key_id)
        public_key = serialization.load_pem_public_key(to_pem(payload["publicKey"]))
        with self._lock:
            self._cache[key_id] = (public_key, now)
        return public_key

    def verify(self, raw_body: bytes, signature_b64: str, key_id: str) -> bool:
        """Return whether ``signature_b64`` signs ``raw_body`` under ``key_id``."""
        try:
            signature = base64.b64decode(signature_b64, validate=True)
        except (binascii.Error, ValueError):
            logger.warning(f"Undecodable webhook signature for key {key_id}")
            return False

        try:
            public_key = self._public_key(key_id)
        except (KeyError, TypeError, ValueError, UnsupportedAlgorithm) as e:
            logger.warning(f"Unusable public key {key_id}: {e}")
            return False

        try:
            if isinstance(public_key, ec.EllipticCurvePublicKey):
                public_key.verify(signature, raw_body, ec.ECDSA(hashes.SHA256()))
            elif isinstance(public_key, rsa.RSAPublicKey):
                public_key.verify(signature, raw_body, padding.PKCS1v15(), hashes.SHA256())
            else:
                logger.warning(f"Unsupported key type for {key_id}: {type(public_key).__name__}")
                return False
        except InvalidSignature:
            return False
        return True

    def invalidate(self, key_id: Optional[str] = None):
        with self._lock:
            if key_id is None:
                self._cache.clear()
            else:
                self._cache.pop(key_id, None)
