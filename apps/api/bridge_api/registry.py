"""Wallet registry lookups and idempotent wallet provisioning."""

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bridge_api.chains import from_provider_name
from bridge_api.exceptions import WalletNotFoundError
from bridge_api.models import Wallet, WalletRole
from bridge_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class WalletRegistry:
    """Queries over the ``wallets`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, provider_wallet_id: str) -> Wallet:
        wallet = self.db.query(Wallet).filter(Wallet.provider_wallet_id == provider_wallet_id).first()
        if wallet is None:
            raise WalletNotFoundError(f"Wallet {provider_wallet_id} is not registered")
        return wallet

    def by_label(self, label: str) -> Optional[Wallet]:
        return self.db.query(Wallet).filter(Wallet.label == label).first()

    def list_wallets(self, role: Optional[str] = None) -> list[Wallet]:
        query = self.db.query(Wallet)
        if role:
            query = query.filter(Wallet.role == role)
        return query.order_by(Wallet.id.asc()).all()

    def internal_wallet_for(self, address: str, chain_id: int) -> Optional[Wallet]:
        """Admin wallet that owns ``address`` on ``chain_id``, if any."""
        candidates = (
            self.db.query(Wallet)
            .filter(
                Wallet.role == WalletRole.ADMIN,
                func.lower(Wallet.address) == address.lower(),
            )
            .all()
        )
        for wallet in candidates:
            if wallet.usable_on(chain_id):
                return wallet
        return None

    def owned_wallet(self, owner_id: str, role: str) -> Optional[Wallet]:
        return (
            self.db.query(Wallet)
            .filter(Wallet.owner_id == owner_id, Wallet.role == role)
            .order_by(Wallet.id.asc())
            .first()
        )

    def custodial_wallet(self, owner_id: str) -> Wallet:
        wallet = self.owned_wallet(owner_id, WalletRole.CUSTODIAL)
        if wallet is None:
            raise WalletNotFoundError(
                "No custodial wallet found for user", details={"owner_id": owner_id}
            )
        return wallet

    def gateway_signer(self, owner_id: str, chain_id: int) -> Wallet:
        wallets = (
            self.db.query(Wallet)
            .filter(Wallet.owner_id == owner_id, Wallet.role == WalletRole.GATEWAY_SIGNER)
            .all()
        )
        for wallet in wallets:
            if wallet.usable_on(chain_id):
                return wallet
        raise WalletNotFoundError(
            "No gateway signer wallet found for user",
            details={"owner_id": owner_id, "chain_id": int(chain_id)},
        )

    def register(self, **fields) -> tuple[Wallet, bool]:
        """Insert a wallet; a uniqueness conflict returns the existing row."""
        wallet = Wallet(**fields)
        self.db.add(wallet)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = None
            if fields.get("label"):
                existing = self.by_label(fields["label"])
            if existing is None:
                existing = (
                    self.db.query(Wallet)
                    .filter(Wallet.provider_wallet_id == fields.get("provider_wallet_id"))
                    .first()
                )
            if existing is None:
                raise
            return existing, False
        self.db.refresh(wallet)
        return wallet, True


def bootstrap_admin_wallet(db: Session, provider, settings: Optional[Settings] = None) -> Wallet:
    """Ensure the primary admin wallet exists.

    Safe to call from every process at start: the unique label decides the
    winner and losers adopt the stored row.
    """
    settings = settings or get_settings()
    registry = WalletRegistry(db)
    existing = registry.by_label(settings.admin_wallet_label)
    if existing:
        logger.info(f"Admin wallet '{settings.admin_wallet_label}' already present: {existing.address}")
        return existing

    chain_id = from_provider_name(settings.admin_wallet_blockchain)
    wallet_set = provider.create_wallet_set(f"{settings.admin_wallet_label} set")
    created = provider.create_wallets(
        wallet_set["id"], [settings.admin_wallet_blockchain], account_type="SCA"
    )[0]

    wallet, inserted = registry.register(
        provider_wallet_id=created["id"],
        wallet_set_id=wallet_set["id"],
        label=settings.admin_wallet_label,
        address=created["address"],
        chain_id=int(chain_id),
        account_type=created.get("accountType", "SCA"),
        role=WalletRole.ADMIN,
        status=created.get("state", "LIVE"),
    )
    if inserted:
        logger.info(f"Created admin wallet '{wallet.label}' at {wallet.address}")
    else:
        logger.info(f"Admin wallet '{wallet.label}' was created concurrently; using {wallet.address}")
    return wallet


def ensure_custodial_wallet(
    db: Session, provider, owner_id: str, blockchain: Optional[str] = None, settings: Optional[Settings] = None
) -> tuple[Wallet, bool]:
    """Return the user's custodial SCA wallet, creating it on first use.

    Each user gets their own wallet set. The per-user label is unique, so
    concurrent calls converge on one stored row.
    """
    settings = settings or get_settings()
    registry = WalletRegistry(db)
    label = f"custodial:{owner_id}"
    existing = registry.owned_wallet(owner_id, WalletRole.CUSTODIAL)
    if existing:
        return existing, False

    blockchain = blockchain or settings.user_wallet_blockchain
    from_provider_name(blockchain)
    wallet_set = provider.create_wallet_set(f"user {owner_id}")
    created = provider.create_wallets(wallet_set["id"], [blockchain], account_type="SCA")[0]

    wallet, inserted = registry.register(
        provider_wallet_id=created["id"],
        wallet_set_id=wallet_set["id"],
        label=label,
        address=created["address"],
        chain_id=None,
        account_type="SCA",
        role=WalletRole.CUSTODIAL,
        owner_id=owner_id,
        status=created.get("state", "LIVE"),
    )
    if inserted:
        logger.info(f"Created custodial wallet {wallet.address} for user {owner_id}")
    return wallet, inserted


def ensure_gateway_signer(
    db: Session, provider, owner_id: str, settings: Optional[Settings] = None
) -> tuple[Wallet, bool]:
    """Return the user's multichain EOA signer, creating it in the user's wallet set.

    Raises ``WalletNotFoundError`` when the user has no custodial wallet yet.
    """
    settings = settings or get_settings()
    registry = WalletRegistry(db)
    label = f"gateway-signer:{owner_id}"
    existing = registry.owned_wallet(owner_id, WalletRole.GATEWAY_SIGNER)
    if existing:
        return existing, False

    custodial = registry.custodial_wallet(owner_id)
    wallet_set_id = custodial.wallet_set_id
    if not wallet_set_id:
        wallet_set_id = provider.create_wallet_set(f"user {owner_id}")["id"]
    created = provider.create_wallets(wallet_set_id, [settings.user_wallet_blockchain], account_type="EOA")[0]

    wallet, inserted = registry.register(
        provider_wallet_id=created["id"],
        wallet_set_id=wallet_set_id,
        label=label,
        address=created["address"],
        chain_id=None,
        account_type="EOA",
        role=WalletRole.GATEWAY_SIGNER,
        owner_id=owner_id,
        status=created.get("state", "LIVE"),
    )
    if inserted:
        logger.info(f"Created Gateway signer {wallet.address} for user {owner_id}")
    return wallet, inserted
