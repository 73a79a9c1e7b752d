"""CLI commands for the transfer orchestrator."""

import click

from bridge_api.chains import display_name, from_atomic
from bridge_api.db.session import SessionLocal
from bridge_api.exceptions import BridgeError
from bridge_api.settings import get_settings


@click.group()
def cli():
    """Transfer orchestrator CLI."""
    pass


@cli.command()
def bootstrap():
    """Create and register the admin wallet if it does not exist yet."""
    from bridge_api.providers.wallets import WalletProviderClient
    from bridge_api.registry import bootstrap_admin_wallet

    click.echo("Bootstrapping admin wallet...")
    db = SessionLocal()
    try:
        wallet = bootstrap_admin_wallet(db, WalletProviderClient())
        click.echo(f"✓ Admin wallet {wallet.provider_wallet_id} ({wallet.address})")
    except BridgeError as e:
        click.echo(f"✗ Error bootstrapping admin wallet: {e}", err=True)
        db.rollback()
    finally:
        db.close()


@cli.command("provision-wallets")
@click.argument("owner_id")
@click.option("--blockchain", default=None, help="Provider blockchain for the custodial wallet")
def provision_wallets(owner_id, blockchain):
    """Create a user's custodial wallet and Gateway signer if missing."""
    from bridge_api.providers.wallets import WalletProviderClient
    from bridge_api.registry import ensure_custodial_wallet, ensure_gateway_signer

    db = SessionLocal()
    try:
        provider = WalletProviderClient()
        custodial, created = ensure_custodial_wallet(db, provider, owner_id, blockchain)
        click.echo(f"✓ Custodial wallet {custodial.address} ({'created' if created else 'existing'})")
        signer, created = ensure_gateway_signer(db, provider, owner_id)
        click.echo(f"✓ Gateway signer {signer.address} ({'created' if created else 'existing'})")
    except BridgeError as e:
        click.echo(f"✗ Error provisioning wallets for {owner_id}: {e}", err=True)
        db.rollback()
    finally:
        db.close()


@cli.command("resume-burns")
def resume_burns():
    """Re-issue burns for confirmed approvals and mints for confirmed burns."""
    from bridge_api.orchestrator.attestation import AttestationPoller
    from bridge_api.orchestrator.dispatch import CeleryBurnDispatcher
    from bridge_api.orchestrator.service import TransferOrchestrator
    from bridge_api.providers.iris import IrisClient
    from bridge_api.providers.wallets import WalletProviderClient

    settings = get_settings()
    dispatcher = CeleryBurnDispatcher() if settings.burn_completion_mode == "worker" else None
    db = SessionLocal()
    try:
        orchestrator = TransferOrchestrator(
            db,
            WalletProviderClient(settings),
            AttestationPoller(IrisClient(settings), interval=settings.attestation_poll_interval_seconds),
            dispatcher=dispatcher,
            settings=settings,
        )
        approvals = orchestrator.resume_stalled_approvals()
        click.echo(f"✓ Resumed {len(approvals)} approval(s)")
        burns = orchestrator.resume_stalled_burns()
        click.echo(f"✓ Dispatched {len(burns)} burn(s)")
    except BridgeError as e:
        click.echo(f"✗ Error resuming transfers: {e}", err=True)
        db.rollback()
    finally:
        db.close()


@cli.command("show-transfer")
@click.argument("transfer_id")
def show_transfer(transfer_id):
    """Print a transfer and its status history."""
    from bridge_api.ledger.service import LedgerStore

    db = SessionLocal()
    try:
        ledger = LedgerStore(db)
        record = ledger.get(transfer_id)
        if record is None:
            click.echo(f"✗ Transfer {transfer_id} not found", err=True)
            return
        click.echo(f"{record.kind} {record.id}")
        click.echo(f"  status:  {record.status}")
        click.echo(f"  chain:   {display_name(record.chain)}")
        click.echo(f"  amount:  {from_atomic(record.amount_atomic)} {record.asset}")
        if record.tx_hash:
            click.echo(f"  tx hash: {record.tx_hash}")
        if record.linked_step_id:
            click.echo(f"  follows: {record.linked_step_id}")
        if record.error_reason:
            click.echo(f"  error:   {record.error_reason}")
        for event in ledger.history(record.id):
            click.echo(f"  {event.created_at.isoformat()} {event.old_status or '-'} -> {event.new_status} ({event.changed_by})")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
