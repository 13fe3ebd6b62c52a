import pytest

from sale_actors import ADMIN, INVESTOR_A, INVESTOR_B, INVESTOR_C, PROJECT
from tokensale.core.sale_exceptions import (
    AlreadyWithdrawn,
    CapitalNotRaised,
    InvalidAcceptedCapitalProof,
    InvalidSaleConfig,
    InvalidWithdrawAmount,
    UnsupportedSaleOperation,
)
from tokensale.sales.token_sale import SalePhase


@pytest.fixture
def pre_liquid(factory, sale_configuration):
    return factory.create_pre_liquid_sale(sale_configuration(ask_token=None))


def test_sale_period_must_be_zero(factory, sale_configuration):
    with pytest.raises(InvalidSaleConfig):
        factory.create_pre_liquid_sale(sale_configuration(sale_period=3600))


def test_runs_until_ended_by_hand(pre_liquid, invest, clock):
    clock.advance(365 * 24 * 3600)
    invest(pre_liquid, INVESTOR_A, 1000)
    assert pre_liquid.phase() is SalePhase.ACTIVE
    assert pre_liquid.end_time() is None
    assert pre_liquid.refund_end_time() is None

    refund_end = pre_liquid.end_sale(PROJECT)
    assert refund_end == clock.now + 600
    assert pre_liquid.phase() is SalePhase.ENDED


def test_no_fixed_price(pre_liquid):
    with pytest.raises(UnsupportedSaleOperation):
        pre_liquid.expected_allocation(1000)


def test_ask_token_is_named_with_results(pre_liquid, invest, clock, ask_token, allocation_tree):
    invest(pre_liquid, INVESTOR_A, 1000)
    refund_end = pre_liquid.end_sale(ADMIN)
    pre_liquid.publish_capital_raised(ADMIN, 1000, "aa" * 32)

    tree, proof = allocation_tree({INVESTOR_A: 10**18})
    with pytest.raises(InvalidSaleConfig):
        pre_liquid.publish_sale_results(ADMIN, tree.root, 10**18)
    pre_liquid.publish_sale_results(ADMIN, tree.root, 10**18, ask_token)
    assert pre_liquid.get_sale_status()["ask_token"] == ask_token.address

    ask_token.approve(PROJECT, pre_liquid.address, 10**18 + 10**16)
    pre_liquid.supply_tokens(PROJECT, 10**18)
    clock.set(refund_end)
    pre_liquid.claim_token_allocation(INVESTOR_A, 10**18, proof(INVESTOR_A))
    assert ask_token.balance_of(INVESTOR_A) == 10**18


def test_ask_token_must_match_configuration(factory, sale_configuration, invest, bid_token, ask_token):
    sale = factory.create_pre_liquid_sale(sale_configuration())
    invest(sale, INVESTOR_A, 1000)
    sale.end_sale(ADMIN)
    sale.publish_capital_raised(ADMIN, 1000, "aa" * 32)
    with pytest.raises(InvalidSaleConfig):
        sale.publish_sale_results(ADMIN, "cd" * 32, 1, bid_token)
    sale.publish_sale_results(ADMIN, "cd" * 32, 1)
    assert sale.state.ask_token is ask_token


def test_excess_capital_withdrawal(pre_liquid, invest, bid_token, allocation_tree):
    invest(pre_liquid, INVESTOR_A, 3000)
    invest(pre_liquid, INVESTOR_B, 1000)
    invest(pre_liquid, INVESTOR_C, 500)
    pre_liquid.end_sale(ADMIN)

    with pytest.raises(CapitalNotRaised):
        pre_liquid.withdraw_excess_invested_capital(INVESTOR_A, 2000, [])

    accepted = {INVESTOR_A: 2000, INVESTOR_B: 1000, INVESTOR_C: 500}
    tree, proof = allocation_tree(accepted)
    pre_liquid.publish_capital_raised(ADMIN, 3500, tree.root)

    balance_before = bid_token.balance_of(INVESTOR_A)
    assert pre_liquid.withdraw_excess_invested_capital(INVESTOR_A, 2000, proof(INVESTOR_A)) == 1000
    assert bid_token.balance_of(INVESTOR_A) == balance_before + 1000
    assert pre_liquid.state.total_invested == 3500

    with pytest.raises(AlreadyWithdrawn):
        pre_liquid.withdraw_excess_invested_capital(INVESTOR_A, 2000, proof(INVESTOR_A))
    with pytest.raises(InvalidAcceptedCapitalProof):
        pre_liquid.withdraw_excess_invested_capital(INVESTOR_B, 500, proof(INVESTOR_B))
    # Fully accepted positions have nothing to withdraw
    with pytest.raises(InvalidWithdrawAmount):
        pre_liquid.withdraw_excess_invested_capital(INVESTOR_C, 500, proof(INVESTOR_C))
