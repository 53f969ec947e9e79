"""Top up participant accounts from the deployer."""

import pytest

from conftest import FakeChain, make_session

from croncat_deploy.errors import InsufficientDeployerFunds
from croncat_deploy.funding import equalize_balances

TARGET = 5_000_000


def test_fund_empty_accounts(session, chain):
    """Six accounts besides the deployer get the full target amount."""
    chain.balances[session.deployer] = 100_000_000

    transfers = equalize_balances(session, TARGET)

    assert len(transfers) == 6
    assert {t.role for t in transfers} == {"treasury", "agent1", "agent2", "agent3", "agent4", "agent5"}
    assert all(t.amount == TARGET and t.denom == "ujunox" for t in transfers)
    assert all(t.txhash for t in transfers)
    for role in ("treasury", "agent1", "agent5"):
        assert chain.balances[session.get_address(role)] == TARGET
    assert chain.balances[session.deployer] == 100_000_000 - 6 * TARGET


def test_fund_only_deficit(session, chain):
    chain.balances[session.deployer] = 50_000_000
    for role in ("treasury", "agent1", "agent2", "agent3", "agent4", "agent5"):
        chain.balances[session.get_address(role)] = TARGET
    chain.balances[session.get_address("agent3")] = 3_000_000

    transfers = equalize_balances(session, TARGET)

    assert [(t.role, t.amount) for t in transfers] == [("agent3", 2_000_000)]


def test_funded_accounts_are_left_alone(session, chain):
    chain.balances[session.deployer] = 30_000_000
    for role in ("treasury", "agent1", "agent2", "agent3", "agent4", "agent5"):
        chain.balances[session.get_address(role)] = TARGET + 1

    assert equalize_balances(session, TARGET) == []
    assert chain.transfers == []


def test_insufficient_deployer_funds(session, chain):
    chain.balances[session.deployer] = 29_999_999

    with pytest.raises(InsufficientDeployerFunds) as exc_info:
        equalize_balances(session, TARGET)

    assert exc_info.value.required == 30_000_000
    assert exc_info.value.balance == 29_999_999
    assert exc_info.value.denom == "ujunox"
    assert chain.transfers == []


def test_separate_pause_admin_is_funded(network):
    """A configured pause admin is an extra account to top up."""
    chain = FakeChain()
    session = make_session(network, chain, pause_admin="juno1multisig")
    chain.balances[session.deployer] = 35_000_000

    transfers = equalize_balances(session, TARGET)

    assert len(transfers) == 7
    assert chain.balances["juno1multisig"] == TARGET
