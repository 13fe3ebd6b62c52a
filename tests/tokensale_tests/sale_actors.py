"""Well-known addresses and the test clock shared by the sale tests."""

REGISTRY_OWNER = "0x" + "0a" * 20
ADMIN = "0x" + "ad" * 20
PROJECT = "0x" + "b0" * 20
FEE_RECEIVER_ADDRESS = "0x" + "fe" * 20
TOKEN_MINTER = "0x" + "99" * 20
INVESTOR_A = "0x" + "11" * 20
INVESTOR_B = "0x" + "22" * 20
INVESTOR_C = "0x" + "33" * 20
OUTSIDER = "0x" + "ee" * 20

INVESTOR_FUNDS = 10**12
PROJECT_TOKENS = 10**30

# Short protocol limits so scenarios can use minute-scale periods
TEST_LIMIT_OVERRIDES = {
    "sale_limits.min_refund_period": 60,
    "sale_limits.min_sale_period": 60,
    "sale_limits.min_prefund_period": 60,
    "sale_limits.min_prefund_allocation_period": 60,
}


class Clock:
    """Mutable ledger clock injected as ``time_provider``."""

    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now

    def set(self, timestamp: int) -> int:
        self.now = timestamp
        return self.now
