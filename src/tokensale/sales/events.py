"""Append-only sale event records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CAPITAL_INVESTED = "CapitalInvested"
SALE_ENDED = "SaleEnded"
CAPITAL_RAISED_PUBLISHED = "CapitalRaisedPublished"
SALE_RESULTS_PUBLISHED = "SaleResultsPublished"
PUBLISH_RESULTS_INITIALIZED = "PublishSaleResultsInitialized"
PRIVATE_KEY_PUBLISHED = "PrivateKeyPublished"
TOKENS_SUPPLIED = "TokensSuppliedForDistribution"
CAPITAL_WITHDRAWN = "CapitalWithdrawn"
EXCESS_CAPITAL_WITHDRAWN = "ExcessCapitalWithdrawn"
CAPITAL_REFUNDED = "CapitalRefunded"
CAPITAL_REFUNDED_AFTER_CANCEL = "CapitalRefundedAfterCancel"
SALE_CANCELED = "SaleCanceled"
TOKEN_ALLOCATION_CLAIMED = "TokenAllocationClaimed"
SALE_PAUSED = "SalePaused"
SALE_UNPAUSED = "SaleUnpaused"
PROTOCOL_ADDRESSES_SYNCED = "ProtocolAddressesSynced"
EMERGENCY_WITHDRAW = "EmergencyWithdraw"


@dataclass
class SaleEvent:
    """A state transition observed on a sale instance."""

    name: str
    timestamp: int
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "timestamp": self.timestamp, **self.data}
