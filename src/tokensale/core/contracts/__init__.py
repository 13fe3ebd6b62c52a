"""
tokensale ledger contracts.

- FungibleToken: raise/ask token ledger (transfer, approve, transferFrom, mint)
- AddressRegistry: owner-gated directory of protocol addresses
"""

from .address_registry import (
    ELIGIBILITY_SIGNER,
    FEE_RECEIVER,
    SALE_ADMIN,
    VESTING_FACTORY,
    AddressRegistry,
)
from .token import FungibleToken, TokenEvent, TokenLedger, derive_address, normalize_address

__all__ = [
    "AddressRegistry",
    "ELIGIBILITY_SIGNER",
    "FEE_RECEIVER",
    "FungibleToken",
    "SALE_ADMIN",
    "TokenEvent",
    "TokenLedger",
    "VESTING_FACTORY",
    "derive_address",
    "normalize_address",
]
