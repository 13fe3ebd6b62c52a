"""
tokensale sale tooling commands.

- keygen: secp256k1 keypair for bid sealing or eligibility signing
- encrypt-bid / decrypt-bid: client-side sealing and post-reveal unsealing
- sign-eligibility: signer approval of (investor, amount, sale)
- merkle build / merkle verify: allocation trees and inclusion proofs
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
import yaml

from tokensale.blockchain.merkle import MerkleTree, allocation_leaf, verify_merkle_proof
from tokensale.cli.common import cli_fail, emit
from tokensale.core.crypto_utils import generate_secp256k1_keypair_hex, sign_eligibility
from tokensale.core.sale_exceptions import SaleError
from tokensale.sales.sealed_bid import (
    SealedBid,
    decrypt_bid,
    encrypt_bid,
    investor_salt,
    validate_public_key,
)

logger = logging.getLogger(__name__)


def _parse_int(value: str) -> int:
    """Accept decimal or 0x-prefixed hex integers."""
    try:
        return int(value, 0)
    except ValueError as exc:
        raise click.BadParameter(f"not an integer: {value}") from exc


@click.command('keygen')
@click.option('--purpose', type=click.Choice(['bid', 'signer']), default='bid', show_default=True,
              help='What the keypair is for')
@click.pass_context
def keygen(ctx: click.Context, purpose: str):
    """Generate a secp256k1 keypair"""
    private_hex, public_hex = generate_secp256k1_keypair_hex()
    logger.info("Keypair generated", extra={"event": "cli.keygen", "purpose": purpose})
    emit(ctx, {"purpose": purpose, "private_key": private_hex, "public_key": public_hex}, "New Keypair")


@click.command('encrypt-bid')
@click.option('--public-key', required=True, help='Auction bid public key (64-byte hex)')
@click.option('--amount', required=True, help='Bid amount in smallest units')
@click.option('--investor', required=True, help='Investor address')
@click.option('--ephemeral-key', default=None, help='Ephemeral private key (random when omitted)')
@click.pass_context
def encrypt_bid_command(ctx: click.Context, public_key: str, amount: str, investor: str, ephemeral_key: str | None):
    """Seal a bid amount for an auction"""
    try:
        validate_public_key(public_key)
        bid = encrypt_bid(public_key, _parse_int(amount), investor_salt(investor), ephemeral_key)
    except (SaleError, ValueError) as exc:
        cli_fail(exc)
    emit(ctx, {"investor": investor.lower(), **bid.to_dict()}, "Sealed Bid")


@click.command('decrypt-bid')
@click.option('--private-key', required=True, help='Published auction private key')
@click.option('--encrypted', required=True, help='Encrypted amount (decimal or 0x hex)')
@click.option('--ephemeral-key', required=True, help="Investor's ephemeral public key")
@click.option('--investor', required=True, help='Investor address')
@click.pass_context
def decrypt_bid_command(ctx: click.Context, private_key: str, encrypted: str, ephemeral_key: str, investor: str):
    """Recover a sealed bid amount"""
    try:
        bid = SealedBid(_parse_int(encrypted), investor_salt(investor), ephemeral_key)
        amount = decrypt_bid(private_key, bid)
    except (SaleError, ValueError) as exc:
        cli_fail(exc)
    emit(ctx, {"investor": investor.lower(), "amount": amount}, "Decrypted Bid")


@click.command('sign-eligibility')
@click.option('--private-key', required=True, help='Eligibility signer private key')
@click.option('--investor', required=True, help='Investor address')
@click.option('--amount', required=True, help='Investment amount in smallest units')
@click.option('--sale', 'sale_address', required=True, help='Sale address')
@click.pass_context
def sign_eligibility_command(ctx: click.Context, private_key: str, investor: str, amount: str, sale_address: str):
    """Sign an investment approval"""
    try:
        signature = sign_eligibility(private_key, investor, _parse_int(amount), sale_address)
    except ValueError as exc:
        cli_fail(exc)
    emit(
        ctx,
        {"investor": investor.lower(), "amount": _parse_int(amount), "sale": sale_address.lower(), "signature": signature},
        "Eligibility Signature",
    )


@click.group('merkle')
def merkle():
    """Allocation merkle trees"""


@merkle.command('build')
@click.argument('allocations_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def merkle_build(ctx: click.Context, allocations_file: Path):
    """Build a tree from a YAML/JSON list of {address, amount} entries"""
    try:
        with open(allocations_file, "r") as f:
            entries = yaml.safe_load(f) or []
        allocations = [(str(entry["address"]), int(entry["amount"])) for entry in entries]
        tree = MerkleTree.from_allocations(allocations)
    except (yaml.YAMLError, KeyError, TypeError, ValueError) as exc:
        cli_fail(exc)

    proofs = {
        address.lower(): {"amount": amount, "proof": tree.proof_for(allocation_leaf(address, amount))}
        for address, amount in allocations
    }
    emit(ctx, {"root": tree.root, "leaves": len(tree.leaves), "proofs": proofs}, "Merkle Tree")


@merkle.command('verify')
@click.option('--root', required=True, help='Merkle root (hex)')
@click.option('--address', required=True, help='Allocation address')
@click.option('--amount', required=True, help='Allocation amount')
@click.option('--proof', multiple=True, help='Sibling hash; repeat for each level')
@click.pass_context
def merkle_verify(ctx: click.Context, root: str, address: str, amount: str, proof: tuple[str, ...]):
    """Verify an allocation inclusion proof"""
    valid = verify_merkle_proof(allocation_leaf(address, _parse_int(amount)), root, list(proof))
    emit(ctx, {"address": address.lower(), "amount": _parse_int(amount), "valid": valid}, "Merkle Proof")
    if not valid:
        ctx.exit(1)


def register_sale_commands(cli: click.Group) -> None:
    cli.add_command(keygen)
    cli.add_command(encrypt_bid_command)
    cli.add_command(decrypt_bid_command)
    cli.add_command(sign_eligibility_command)
    cli.add_command(merkle)
