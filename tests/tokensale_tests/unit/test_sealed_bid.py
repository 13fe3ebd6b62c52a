import pytest

from tokensale.core.crypto_utils import generate_secp256k1_keypair_hex
from tokensale.core.sale_exceptions import (
    InvalidBidPrivateKey,
    InvalidBidPublicKey,
    InvalidSalt,
    InvalidSealedBid,
    PrivateKeyAlreadyPublished,
    PrivateKeyNotPublished,
)
from tokensale.sales.sealed_bid import (
    BidKeyLedger,
    SealedBid,
    SealedBidScheme,
    decrypt_bid,
    encrypt_bid,
    investor_salt,
    validate_public_key,
)

INVESTOR = "0x" + "11" * 20
OTHER_INVESTOR = "0x" + "22" * 20


@pytest.fixture
def auction_keys():
    return generate_secp256k1_keypair_hex()


@pytest.mark.parametrize("amount", [0, 1, 123_456_789, 2**256 - 1])
def test_decrypt_recovers_amount(auction_keys, amount):
    private_hex, public_hex = auction_keys
    bid = encrypt_bid(public_hex, amount, investor_salt(INVESTOR))
    assert decrypt_bid(private_hex, bid) == amount


def test_ciphertext_hides_amount(auction_keys):
    _, public_hex = auction_keys
    first = encrypt_bid(public_hex, 1_000, investor_salt(INVESTOR))
    second = encrypt_bid(public_hex, 1_000, investor_salt(INVESTOR))
    # Fresh ephemeral keys give unrelated ciphertexts for the same amount
    assert first.encrypted_amount_out != second.encrypted_amount_out
    assert first.encrypted_amount_out != 1_000


def test_wrong_key_does_not_recover_amount(auction_keys):
    _, public_hex = auction_keys
    other_private, _ = generate_secp256k1_keypair_hex()
    bid = encrypt_bid(public_hex, 5_000, investor_salt(INVESTOR))
    assert decrypt_bid(other_private, bid) != 5_000


def test_deterministic_with_fixed_ephemeral_key(auction_keys):
    private_hex, public_hex = auction_keys
    ephemeral_private, _ = generate_secp256k1_keypair_hex()
    first = encrypt_bid(public_hex, 42, investor_salt(INVESTOR), ephemeral_private)
    second = encrypt_bid(public_hex, 42, investor_salt(INVESTOR), ephemeral_private)
    assert first == second
    assert decrypt_bid(private_hex, first) == 42


def test_salt_is_per_investor():
    assert investor_salt(INVESTOR) == investor_salt(INVESTOR.upper().replace("0X", "0x"))
    assert investor_salt(INVESTOR) != investor_salt(OTHER_INVESTOR)


@pytest.mark.parametrize("bad_key", ["00" * 64, "ab" * 10, "not-hex", ""])
def test_invalid_public_keys_rejected(bad_key):
    with pytest.raises(InvalidBidPublicKey):
        validate_public_key(bad_key)


def test_invalidated_key_rejected(auction_keys):
    _, public_hex = auction_keys
    ledger = BidKeyLedger()
    assert validate_public_key(public_hex.upper(), ledger) == public_hex
    ledger.invalidate(public_hex)
    with pytest.raises(InvalidBidPublicKey):
        validate_public_key(public_hex, ledger)


def test_scheme_validates_bids(auction_keys):
    _, public_hex = auction_keys
    scheme = SealedBidScheme(public_hex)
    bid = encrypt_bid(public_hex, 10, investor_salt(INVESTOR))

    scheme.validate_sealed_bid(INVESTOR, bid)
    with pytest.raises(InvalidSalt):
        scheme.validate_sealed_bid(OTHER_INVESTOR, bid)
    with pytest.raises(InvalidSealedBid):
        scheme.validate_sealed_bid(INVESTOR, None)
    with pytest.raises(InvalidSealedBid):
        scheme.validate_sealed_bid(INVESTOR, SealedBid(bid.encrypted_amount_out, bid.salt, "00" * 64))
    with pytest.raises(InvalidSealedBid):
        scheme.validate_sealed_bid(INVESTOR, SealedBid(-1, bid.salt, bid.ephemeral_public_key))


def test_private_key_publication(auction_keys):
    private_hex, public_hex = auction_keys
    ledger = BidKeyLedger()
    scheme = SealedBidScheme(public_hex, ledger)
    bid = encrypt_bid(public_hex, 77, investor_salt(INVESTOR))

    with pytest.raises(PrivateKeyNotPublished):
        scheme.decrypt(bid)
    with pytest.raises(InvalidBidPrivateKey):
        scheme.publish_private_key(generate_secp256k1_keypair_hex()[0])
    with pytest.raises(InvalidBidPrivateKey):
        scheme.publish_private_key("zz")
    assert not scheme.private_key_published

    scheme.publish_private_key(private_hex)
    assert scheme.decrypt(bid) == 77
    assert ledger.is_invalidated(public_hex)
    with pytest.raises(PrivateKeyAlreadyPublished):
        scheme.publish_private_key(private_hex)
    with pytest.raises(PrivateKeyAlreadyPublished):
        scheme.validate_sealed_bid(INVESTOR, bid)


def test_scheme_refuses_invalidated_key(auction_keys):
    _, public_hex = auction_keys
    ledger = BidKeyLedger()
    ledger.invalidate(public_hex)
    with pytest.raises(InvalidBidPublicKey):
        SealedBidScheme(public_hex, ledger)
