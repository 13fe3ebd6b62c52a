"""
Sealed-bid encryption scheme for auction sales.

Bids are sealed with an ECIES-style construction on secp256k1:

1. The auction publishes a public key ``P = d*G``; the administrator keeps ``d``.
2. The investor draws an ephemeral key ``e`` and computes the ECDH shared
   secret ``x(e*P)``.
3. A 256-bit mask ``SHA3-256(shared_x || salt)`` is XORed with the bid amount.
4. The investor submits ``(encrypted_amount, salt, e*G)``.

Nobody can unmask a bid until the administrator publishes ``d``; anyone can
then recompute ``x(d*(e*G))`` and recover every bid. The published key is
checked against ``P`` so it cannot be swapped for a different keypair, and
``P`` is invalidated for any future auction once ``d`` is public.

The salt of an investor's bid is fixed to ``investor_salt(investor)`` so a
ciphertext cannot be replayed under another investor's name.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field

from cryptography.hazmat.primitives.asymmetric import ec

from ..core.crypto_utils import (
    derive_public_key_hex,
    generate_secp256k1_keypair_hex,
    load_private_key_from_hex,
    load_public_key_from_hex,
    public_key_to_hex,
)
from ..core.sale_exceptions import (
    InvalidBidPrivateKey,
    InvalidBidPublicKey,
    InvalidSalt,
    InvalidSealedBid,
    PrivateKeyAlreadyPublished,
    PrivateKeyNotPublished,
)

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1


def investor_salt(investor: str) -> int:
    """The only salt accepted for ``investor``'s sealed bid."""
    return int.from_bytes(hashlib.sha3_256(investor.lower().encode()).digest(), "big")


def derive_mask(shared_x: bytes, salt: int) -> int:
    digest = hashlib.sha3_256(shared_x + salt.to_bytes(32, "big")).digest()
    return int.from_bytes(digest, "big")


def _shared_secret(private_hex: str, public_hex: str) -> bytes:
    private_key = load_private_key_from_hex(private_hex)
    public_key = load_public_key_from_hex(public_hex)
    return private_key.exchange(ec.ECDH(), public_key)


@dataclass(frozen=True)
class SealedBid:
    encrypted_amount_out: int
    salt: int
    ephemeral_public_key: str

    def to_dict(self) -> dict:
        return {
            "encrypted_amount_out": hex(self.encrypted_amount_out),
            "salt": hex(self.salt),
            "ephemeral_public_key": self.ephemeral_public_key,
        }


def encrypt_bid(
    public_key_hex: str,
    amount: int,
    salt: int,
    ephemeral_private_hex: str | None = None,
) -> SealedBid:
    """
    Seal ``amount`` for the auction key ``public_key_hex``.

    This runs client-side; sales only ever see the resulting ``SealedBid``.
    """
    if not 0 <= amount <= UINT256_MAX:
        raise InvalidSealedBid(f"Bid amount out of range: {amount}")
    if ephemeral_private_hex is None:
        ephemeral_private_hex, ephemeral_public_hex = generate_secp256k1_keypair_hex()
    else:
        ephemeral_public_hex = derive_public_key_hex(ephemeral_private_hex)

    try:
        shared_x = _shared_secret(ephemeral_private_hex, public_key_hex)
    except ValueError as exc:
        raise InvalidBidPublicKey(str(exc)) from exc
    return SealedBid(amount ^ derive_mask(shared_x, salt), salt, ephemeral_public_hex)


def decrypt_bid(private_key_hex: str, bid: SealedBid) -> int:
    """Recover the bid amount with the auction private key."""
    try:
        shared_x = _shared_secret(private_key_hex, bid.ephemeral_public_key)
    except ValueError as exc:
        raise InvalidSealedBid(str(exc)) from exc
    return bid.encrypted_amount_out ^ derive_mask(shared_x, bid.salt)


@dataclass
class BidKeyLedger:
    """Public keys whose private key has been published, shared across auctions."""

    invalidated: set[str] = field(default_factory=set)

    def invalidate(self, public_key_hex: str) -> None:
        self.invalidated.add(public_key_hex.lower())

    def is_invalidated(self, public_key_hex: str) -> bool:
        return public_key_hex.lower() in self.invalidated


def validate_public_key(public_key_hex: str, key_ledger: BidKeyLedger | None = None) -> str:
    """
    Normalize and check an auction public key.

    Raises:
        InvalidBidPublicKey: If the point is malformed, not on the curve, or
            its private key was already published
    """
    try:
        normalized = public_key_to_hex(load_public_key_from_hex(public_key_hex))
    except (TypeError, ValueError) as exc:
        raise InvalidBidPublicKey(f"Bid public key is not a valid curve point: {exc}") from exc
    if key_ledger is not None and key_ledger.is_invalidated(normalized):
        raise InvalidBidPublicKey("Bid public key has been invalidated", {"public_key": normalized})
    return normalized


class SealedBidScheme:
    """Per-auction state of the commit/reveal scheme."""

    def __init__(self, public_key_hex: str, key_ledger: BidKeyLedger | None = None):
        self.key_ledger = key_ledger if key_ledger is not None else BidKeyLedger()
        self.public_key = validate_public_key(public_key_hex, self.key_ledger)
        self.private_key: str | None = None

    @property
    def private_key_published(self) -> bool:
        return self.private_key is not None

    def validate_sealed_bid(self, investor: str, bid: SealedBid | None) -> None:
        """
        Check a bid submitted with an investment.

        Raises:
            PrivateKeyAlreadyPublished: If bids are already revealed
            InvalidBidPublicKey: If the auction key was invalidated meanwhile
            InvalidSealedBid: If the bid is missing or malformed
            InvalidSalt: If the salt does not belong to ``investor``
        """
        if self.private_key_published:
            raise PrivateKeyAlreadyPublished()
        validate_public_key(self.public_key, self.key_ledger)
        if bid is None:
            raise InvalidSealedBid("Sealed bid is required", {"investor": investor})
        if not 0 <= bid.encrypted_amount_out <= UINT256_MAX:
            raise InvalidSealedBid("Encrypted amount out of range", {"investor": investor})
        try:
            load_public_key_from_hex(bid.ephemeral_public_key)
        except (TypeError, ValueError) as exc:
            raise InvalidSealedBid(f"Ephemeral key is not a valid curve point: {exc}") from exc
        if bid.salt != investor_salt(investor):
            raise InvalidSalt(details={"investor": investor})

    def check_private_key(self, private_key_hex: str) -> str:
        """
        Verify that ``private_key_hex`` generates the auction public key.

        Raises:
            InvalidBidPrivateKey: If it does not
        """
        try:
            derived = derive_public_key_hex(private_key_hex)
        except (TypeError, ValueError) as exc:
            raise InvalidBidPrivateKey(f"Malformed private key: {exc}") from exc
        if derived != self.public_key:
            raise InvalidBidPrivateKey()
        return private_key_hex.lower().removeprefix("0x")

    def publish_private_key(self, private_key_hex: str) -> None:
        """One-shot reveal; invalidates the public key for future auctions."""
        if self.private_key_published:
            raise PrivateKeyAlreadyPublished()
        self.private_key = self.check_private_key(private_key_hex)
        self.key_ledger.invalidate(self.public_key)
        logger.info(
            "Bid private key published",
            extra={"event": "sealed_bid.private_key_published", "public_key": self.public_key[:16]},
        )

    def decrypt(self, bid: SealedBid) -> int:
        if self.private_key is None:
            raise PrivateKeyNotPublished()
        return decrypt_bid(self.private_key, bid)
