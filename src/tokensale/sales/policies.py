"""
Variant policies for the sale engine.

A ``TokenSale`` owns every invariant of the lifecycle; a policy only answers
the questions on which the variants differ:

- when investing is open and what an investment must carry
- how capital raised reaches the sale (own call or together with results)
- how an amount of capital prices into ask tokens

Policies never mutate the sale from a ``check_*``/``validate_*`` hook; state
changes happen only in ``record_invest`` and ``apply_results``, which the
engine calls after every guard has passed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..config_manager import SaleLimitsConfig
from ..core.sale_exceptions import (
    CapitalNotRaised,
    InvalidSaleConfig,
    PrefundAllocationPeriodNotEnded,
    PrivateKeyNotPublished,
    UnsupportedSaleOperation,
)
from .sealed_bid import BidKeyLedger, SealedBid, SealedBidScheme

if TYPE_CHECKING:
    from .token_sale import InvestorPosition, SaleConfiguration, TokenSale


def _check_period(name: str, value: int, low: int, high: int) -> None:
    if not isinstance(value, int) or not low <= value <= high:
        raise InvalidSaleConfig(
            f"{name} must be between {low} and {high} seconds", {name: value}
        )


class SalePolicy:
    """Defaults shared by all variants."""

    kind = "base"
    supports_capital_raised_publication = True
    sealed_bids: Optional[SealedBidScheme] = None

    def validate_config(self, config: "SaleConfiguration", limits: SaleLimitsConfig) -> None:
        if config.sale_period:
            _check_period("sale_period", config.sale_period, limits.min_sale_period, limits.max_sale_period)

    def scheduled_end(self, config: "SaleConfiguration") -> Optional[int]:
        """End time fixed at creation, or None when the sale is ended by hand."""
        if not config.sale_period:
            return None
        return config.start_time + config.sale_period

    def check_invest(
        self,
        sale: "TokenSale",
        investor: str,
        amount: int,
        now: int,
        sealed_bid: Optional[SealedBid],
    ) -> None:
        if sealed_bid is not None:
            raise UnsupportedSaleOperation(f"{self.kind} sales do not accept sealed bids")

    def record_invest(self, position: "InvestorPosition", sealed_bid: Optional[SealedBid]) -> None:
        pass

    def validate_results(
        self,
        sale: "TokenSale",
        capital_raised: Optional[int],
        private_key_hex: Optional[str],
    ) -> None:
        if not sale.state.capital_raised_published:
            raise CapitalNotRaised()
        if capital_raised is not None or private_key_hex is not None:
            raise UnsupportedSaleOperation(
                f"{self.kind} sales publish capital raised separately and use no bid key"
            )

    def apply_results(
        self,
        sale: "TokenSale",
        capital_raised: Optional[int],
        private_key_hex: Optional[str],
        accepted_merkle_root: Optional[str],
    ) -> None:
        pass

    def expected_allocation(self, capital: int, bid_decimals: int) -> int:
        raise UnsupportedSaleOperation(f"{self.kind} sales have no fixed token price")

    def describe(self) -> dict:
        return {"kind": self.kind}


class FixedPricePolicy(SalePolicy):
    """
    Fixed token price with a prefund round.

    Timeline from ``start_time``: prefund window, then a prefund allocation
    window during which investing is closed, then the public sale period.
    """

    kind = "fixed_price"

    def __init__(self, token_price: int, prefund_period: int, prefund_allocation_period: int):
        self.token_price = token_price
        self.prefund_period = prefund_period
        self.prefund_allocation_period = prefund_allocation_period

    def validate_config(self, config: "SaleConfiguration", limits: SaleLimitsConfig) -> None:
        if not isinstance(self.token_price, int) or self.token_price <= 0:
            raise InvalidSaleConfig("token_price must be a positive integer", {"token_price": self.token_price})
        _check_period(
            "prefund_period", self.prefund_period, limits.min_prefund_period, limits.max_prefund_period
        )
        _check_period(
            "prefund_allocation_period",
            self.prefund_allocation_period,
            limits.min_prefund_allocation_period,
            limits.max_prefund_allocation_period,
        )
        super().validate_config(config, limits)

    def prefund_end(self, config: "SaleConfiguration") -> int:
        return config.start_time + self.prefund_period

    def prefund_allocation_end(self, config: "SaleConfiguration") -> int:
        return self.prefund_end(config) + self.prefund_allocation_period

    def scheduled_end(self, config: "SaleConfiguration") -> Optional[int]:
        if not config.sale_period:
            return None
        return self.prefund_allocation_end(config) + config.sale_period

    def check_invest(self, sale, investor, amount, now, sealed_bid) -> None:
        super().check_invest(sale, investor, amount, now, sealed_bid)
        if self.prefund_end(sale.config) <= now < self.prefund_allocation_end(sale.config):
            raise PrefundAllocationPeriodNotEnded(
                details={"prefund_allocation_end": self.prefund_allocation_end(sale.config)}
            )

    def expected_allocation(self, capital: int, bid_decimals: int) -> int:
        return capital * self.token_price // 10**bid_decimals

    def describe(self) -> dict:
        return {
            "kind": self.kind,
            "token_price": self.token_price,
            "prefund_period": self.prefund_period,
            "prefund_allocation_period": self.prefund_allocation_period,
        }


class SealedBidAuctionPolicy(SalePolicy):
    """
    Sealed-bid auction.

    Every investment carries an encrypted bid. Capital raised is published
    together with the results, after ``initialize_publish_sale_results`` has
    locked cancellation and the bid key has been revealed.
    """

    kind = "sealed_bid_auction"
    supports_capital_raised_publication = False

    def __init__(self, public_key_hex: str, key_ledger: Optional[BidKeyLedger] = None):
        self.sealed_bids = SealedBidScheme(public_key_hex, key_ledger)

    def check_invest(self, sale, investor, amount, now, sealed_bid) -> None:
        self.sealed_bids.validate_sealed_bid(investor, sealed_bid)

    def record_invest(self, position, sealed_bid) -> None:
        position.sealed_bid = sealed_bid

    def validate_results(self, sale, capital_raised, private_key_hex) -> None:
        if not sale.state.cancel_locked:
            raise PrivateKeyNotPublished("Result publication has not been initialized")
        if not isinstance(capital_raised, int) or capital_raised < 0:
            raise InvalidSaleConfig("Auction results must carry the capital raised")
        if capital_raised > sale.state.total_invested:
            raise InvalidSaleConfig(
                "Capital raised exceeds total invested",
                {"capital_raised": capital_raised, "total_invested": sale.state.total_invested},
            )
        if private_key_hex is not None:
            self.sealed_bids.check_private_key(private_key_hex)
        elif not self.sealed_bids.private_key_published:
            raise PrivateKeyNotPublished()

    def apply_results(self, sale, capital_raised, private_key_hex, accepted_merkle_root) -> None:
        if not self.sealed_bids.private_key_published:
            self.sealed_bids.publish_private_key(private_key_hex)
        sale.state.capital_raised = capital_raised
        sale.state.capital_raised_published = True
        sale.state.accepted_merkle_root = accepted_merkle_root or ""

    def describe(self) -> dict:
        return {
            "kind": self.kind,
            "public_key": self.sealed_bids.public_key,
            "private_key_published": self.sealed_bids.private_key_published,
        }


class PreLiquidPolicy(SalePolicy):
    """
    Pre-liquid sale: no price discovery and no fixed schedule.

    The sale runs until ended by the administrator or the project, and the
    ask token is named only when results are published.
    """

    kind = "pre_liquid"

    def validate_config(self, config: "SaleConfiguration", limits: SaleLimitsConfig) -> None:
        if config.sale_period:
            raise InvalidSaleConfig("Pre-liquid sales are ended explicitly; sale_period must be 0")
