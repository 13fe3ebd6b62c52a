"""
tokensale - Token Sale Protocol

Capital raises in which a project sells a future token allocation to many
investors, with an administrator publishing audited results.

Main Components:
- Sales: one lifecycle engine for fixed-price, sealed-bid auction and pre-liquid sales
- Sealed bids: ECDH-based commit/reveal of auction bids
- Vesting: per-investor linear and epoch vesting schedules
- Tooling: merkle allocation trees, eligibility signatures and a CLI
"""

__version__ = "0.1.0"

from tokensale.blockchain.vesting_manager import VestingManager
from tokensale.blockchain.vesting_schedule import VestingStrategy, VestingTerms
from tokensale.core.contracts import AddressRegistry, FungibleToken
from tokensale.sales.sale_factory import SaleFactory
from tokensale.sales.token_sale import SaleConfiguration, SalePhase, TokenSale

__all__ = [
    "AddressRegistry",
    "FungibleToken",
    "SaleConfiguration",
    "SaleFactory",
    "SalePhase",
    "TokenSale",
    "VestingManager",
    "VestingStrategy",
    "VestingTerms",
]
