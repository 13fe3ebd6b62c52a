import pytest

from tokensale.core.contracts.address_registry import (
    ELIGIBILITY_SIGNER,
    SALE_ADMIN,
    AddressRegistry,
)
from tokensale.core.sale_exceptions import NotCalledByOwner

OWNER = "0x" + "0a" * 20
ADMIN = "0x" + "AD" * 20


def test_owner_sets_and_reads_addresses():
    registry = AddressRegistry(owner=OWNER)
    assert registry.get_address(SALE_ADMIN) == ""

    registry.set_address(OWNER, SALE_ADMIN, ADMIN)
    assert registry.get_address(SALE_ADMIN) == ADMIN.lower()
    assert registry.events[-1].old_value == ""


def test_signer_key_is_stored_verbatim():
    registry = AddressRegistry(owner=OWNER)
    registry.set_address(OWNER, ELIGIBILITY_SIGNER, "ABCDEF")
    assert registry.get_address(ELIGIBILITY_SIGNER) == "ABCDEF"


def test_non_owner_cannot_update():
    registry = AddressRegistry(owner=OWNER)
    with pytest.raises(NotCalledByOwner):
        registry.set_address(ADMIN, SALE_ADMIN, ADMIN)
    assert registry.entries == {}


def test_ownership_transfer():
    registry = AddressRegistry(owner=OWNER)
    registry.transfer_ownership(OWNER, ADMIN)
    with pytest.raises(NotCalledByOwner):
        registry.set_address(OWNER, SALE_ADMIN, ADMIN)
    registry.set_address(ADMIN, SALE_ADMIN, ADMIN)
