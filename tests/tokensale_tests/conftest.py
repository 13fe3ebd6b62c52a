import os
import sys
from pathlib import Path

import pytest

# Ensure src and the shared test helpers are importable before collection runs.
project_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(project_root / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from tokensale.blockchain.merkle import MerkleTree, allocation_leaf
from tokensale.blockchain.vesting_manager import VestingManager
from tokensale.config_manager import ConfigManager
from tokensale.core.contracts.address_registry import (
    ELIGIBILITY_SIGNER,
    FEE_RECEIVER,
    SALE_ADMIN,
    AddressRegistry,
)
from tokensale.core.contracts.token import FungibleToken
from tokensale.core.crypto_utils import generate_secp256k1_keypair_hex, sign_eligibility
from tokensale.sales.sale_factory import SaleFactory
from tokensale.sales.token_sale import SaleConfiguration

from sale_actors import (
    ADMIN,
    FEE_RECEIVER_ADDRESS,
    INVESTOR_A,
    INVESTOR_B,
    INVESTOR_C,
    INVESTOR_FUNDS,
    PROJECT,
    PROJECT_TOKENS,
    REGISTRY_OWNER,
    TEST_LIMIT_OVERRIDES,
    TOKEN_MINTER,
    Clock,
)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def signer_keys():
    """(private_hex, public_hex) of the eligibility signer."""
    return generate_secp256k1_keypair_hex()


@pytest.fixture
def registry(signer_keys):
    registry = AddressRegistry(owner=REGISTRY_OWNER)
    registry.set_address(REGISTRY_OWNER, SALE_ADMIN, ADMIN)
    registry.set_address(REGISTRY_OWNER, FEE_RECEIVER, FEE_RECEIVER_ADDRESS)
    registry.set_address(REGISTRY_OWNER, ELIGIBILITY_SIGNER, signer_keys[1])
    return registry


@pytest.fixture
def sale_config_manager(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("TOKENSALE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return ConfigManager(environment="development", cli_overrides=dict(TEST_LIMIT_OVERRIDES))


@pytest.fixture
def bid_token():
    token = FungibleToken("USD Coin", "USDC", decimals=6, owner=TOKEN_MINTER)
    for investor in (INVESTOR_A, INVESTOR_B, INVESTOR_C):
        token.mint(TOKEN_MINTER, investor, INVESTOR_FUNDS)
    return token


@pytest.fixture
def ask_token():
    token = FungibleToken("Project Token", "PRJ", decimals=18, owner=PROJECT)
    token.mint(PROJECT, PROJECT, PROJECT_TOKENS)
    return token


@pytest.fixture
def vesting_manager(clock):
    return VestingManager(time_provider=clock)


@pytest.fixture
def factory(registry, vesting_manager, sale_config_manager, clock):
    return SaleFactory(
        registry=registry,
        vesting_manager=vesting_manager,
        config=sale_config_manager,
        time_provider=clock,
    )


@pytest.fixture
def sale_configuration(bid_token, ask_token, clock):
    def build(**overrides):
        params = dict(
            bid_token=bid_token,
            ask_token=ask_token,
            project_admin=PROJECT,
            start_time=clock.now,
            refund_period=600,
        )
        params.update(overrides)
        return SaleConfiguration(**params)

    return build


@pytest.fixture
def invest(signer_keys, bid_token):
    """Approve, sign and invest in one step."""

    def do_invest(sale, investor, amount, sealed_bid=None):
        bid_token.approve(investor, sale.address, amount)
        signature = sign_eligibility(signer_keys[0], investor, amount, sale.address)
        return sale.invest(investor, amount, signature, sealed_bid=sealed_bid)

    return do_invest


@pytest.fixture
def allocation_tree():
    """Build a merkle tree and proof lookup from {address: amount}."""

    def build(allocations):
        tree = MerkleTree.from_allocations(allocations.items())

        def proof(address):
            return tree.proof_for(allocation_leaf(address, allocations[address]))

        return tree, proof

    return build
