"""Utility helpers for secp256k1 key management and eligibility signatures."""

from __future__ import annotations

import hashlib

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

CURVE = ec.SECP256K1()
CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)


def private_key_to_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_numbers().private_value.to_bytes(32, "big").hex()


def public_key_to_hex(public_key: ec.EllipticCurvePublicKey) -> str:
    numbers = public_key.public_numbers()
    return (numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")).hex()


def load_private_key_from_hex(private_hex: str) -> ec.EllipticCurvePrivateKey:
    """Load a private scalar; raises ValueError outside [1, n-1]."""
    value = int(private_hex, 16)
    if not 1 <= value < CURVE_ORDER:
        raise ValueError("Private scalar out of range.")
    return ec.derive_private_key(value, CURVE)


def load_public_key_from_hex(public_hex: str) -> ec.EllipticCurvePublicKey:
    """Load an uncompressed point; raises ValueError if it is not on the curve."""
    raw = bytes.fromhex(public_hex)
    if len(raw) != 64:
        raise ValueError("Public key hex must be 64 bytes (uncompressed without prefix).")
    return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, b"\x04" + raw)


def generate_secp256k1_keypair_hex() -> tuple[str, str]:
    private_key = ec.generate_private_key(CURVE)
    return private_key_to_hex(private_key), public_key_to_hex(private_key.public_key())


def derive_public_key_hex(private_hex: str) -> str:
    private_key = load_private_key_from_hex(private_hex)
    return public_key_to_hex(private_key.public_key())


def _validate_signature_range(r: int, s: int) -> None:
    if not (1 <= r < CURVE_ORDER):
        raise ValueError("Signature r component out of range.")
    if not (1 <= s < CURVE_ORDER):
        raise ValueError("Signature s component out of range.")


def canonicalize_signature_components(r: int, s: int) -> tuple[int, int]:
    """Normalize signature components to canonical low-S form."""
    _validate_signature_range(r, s)
    if s > CURVE_ORDER // 2:
        s = CURVE_ORDER - s
    return r, s


def is_canonical_signature(r: int, s: int) -> bool:
    try:
        _validate_signature_range(r, s)
    except ValueError:
        return False
    return s <= CURVE_ORDER // 2


def sign_message_hex(private_hex: str, message: bytes) -> str:
    private_key = load_private_key_from_hex(private_hex)
    der_signature = private_key.sign(message, ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der_signature)
    r, s = canonicalize_signature_components(r, s)
    return (r.to_bytes(32, "big") + s.to_bytes(32, "big")).hex()


def verify_signature_hex(public_hex: str, message: bytes, signature_hex: str) -> bool:
    """
    Verify a raw 64-byte (r || s) signature.

    Malformed keys or signatures verify as False rather than raising.
    """
    try:
        public_key = load_public_key_from_hex(public_hex)
        raw_signature = bytes.fromhex(signature_hex)
    except ValueError:
        return False
    if len(raw_signature) != 64:
        return False
    r = int.from_bytes(raw_signature[:32], "big")
    s = int.from_bytes(raw_signature[32:], "big")
    if not is_canonical_signature(r, s):
        return False
    try:
        public_key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False


# ==================== Eligibility Signatures ====================


def eligibility_message(investor: str, amount: int, sale_address: str) -> bytes:
    """
    Canonical digest an eligibility signer signs for (investor, amount, sale).

    Addresses are lower-cased so that checksum casing does not change the digest.
    """
    payload = f"tokensale-eligibility:{investor.lower()}:{int(amount)}:{sale_address.lower()}"
    return hashlib.sha3_256(payload.encode()).digest()


def sign_eligibility(private_hex: str, investor: str, amount: int, sale_address: str) -> str:
    return sign_message_hex(private_hex, eligibility_message(investor, amount, sale_address))


def verify_eligibility(
    public_hex: str,
    investor: str,
    amount: int,
    sale_address: str,
    signature_hex: str,
) -> bool:
    if not public_hex or not signature_hex:
        return False
    return verify_signature_hex(
        public_hex, eligibility_message(investor, amount, sale_address), signature_hex
    )
