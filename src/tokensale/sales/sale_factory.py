"""
Sale factory: deploys sale instances wired to the shared protocol services.

Every sale created here shares the factory's address registry, vesting
manager, clock and bid-key ledger, and takes its period limits and default
fees from the configuration manager.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from ..blockchain.vesting_manager import VestingManager
from ..config_manager import ConfigManager, get_config_manager
from ..core.contracts.address_registry import AddressRegistry
from ..core.contracts.token import derive_address, normalize_address
from .policies import FixedPricePolicy, PreLiquidPolicy, SalePolicy, SealedBidAuctionPolicy
from .sealed_bid import BidKeyLedger
from .token_sale import EligibilityOracle, SaleConfiguration, TokenSale

logger = logging.getLogger(__name__)


class SaleFactory:
    def __init__(
        self,
        registry: AddressRegistry,
        vesting_manager: VestingManager,
        config: Optional[ConfigManager] = None,
        time_provider: Callable[[], int] | None = None,
        key_ledger: Optional[BidKeyLedger] = None,
        verifier: Optional[EligibilityOracle] = None,
    ):
        self.registry = registry
        self.vesting_manager = vesting_manager
        self.config = config or get_config_manager()
        self.time_provider = time_provider or (lambda: int(time.time()))
        self.key_ledger = key_ledger if key_ledger is not None else BidKeyLedger()
        self.verifier = verifier
        self.sales: dict[str, TokenSale] = {}
        self._sale_counter = 0

        if self.vesting_manager.max_vesting_duration is None:
            self.vesting_manager.max_vesting_duration = self.config.sale_limits.max_vesting_duration

    def _with_default_fees(self, sale_config: SaleConfiguration, use_defaults: bool) -> SaleConfiguration:
        if not use_defaults:
            return sale_config
        return replace(
            sale_config,
            capital_fee_bps=self.config.fees.capital_fee_bps,
            token_fee_bps=self.config.fees.token_fee_bps,
        )

    def _deploy(self, sale_config: SaleConfiguration, policy: SalePolicy, use_default_fees: bool) -> TokenSale:
        self._sale_counter += 1
        address = derive_address("sale", policy.kind, self._sale_counter, sale_config.project_admin)
        sale = TokenSale(
            address=address,
            config=self._with_default_fees(sale_config, use_default_fees),
            policy=policy,
            registry=self.registry,
            vesting_manager=self.vesting_manager,
            time_provider=self.time_provider,
            limits=self.config.sale_limits,
            verifier=self.verifier,
            fees=self.config.fees,
        )
        self.sales[sale.address] = sale
        logger.info(
            "Sale deployed",
            extra={"event": "factory.sale_deployed", "sale": sale.address, "kind": policy.kind},
        )
        return sale

    def create_fixed_price_sale(
        self,
        sale_config: SaleConfiguration,
        token_price: int,
        prefund_period: int,
        prefund_allocation_period: int,
        use_default_fees: bool = True,
    ) -> TokenSale:
        policy = FixedPricePolicy(token_price, prefund_period, prefund_allocation_period)
        return self._deploy(sale_config, policy, use_default_fees)

    def create_sealed_bid_auction(
        self,
        sale_config: SaleConfiguration,
        public_key_hex: str,
        use_default_fees: bool = True,
    ) -> TokenSale:
        policy = SealedBidAuctionPolicy(public_key_hex, self.key_ledger)
        return self._deploy(sale_config, policy, use_default_fees)

    def create_pre_liquid_sale(self, sale_config: SaleConfiguration, use_default_fees: bool = True) -> TokenSale:
        return self._deploy(sale_config, PreLiquidPolicy(), use_default_fees)

    def get_sale(self, address: str) -> Optional[TokenSale]:
        return self.sales.get(normalize_address(address))

    def list_sales(self) -> list[TokenSale]:
        return list(self.sales.values())
