"""Multi-network deployment and validation."""

import threading

import pytest

from conftest import FakeChain, make_session, write_wasm_files

from croncat_deploy.artifacts import load_deployed_contract_map, load_deployed_factories
from croncat_deploy.config import DeployConfig
from croncat_deploy.errors import DeploymentError, InsufficientDeployerFunds, ValidatorAssertionFailure
from croncat_deploy.network import SUPPORTED_NETWORKS
from croncat_deploy.orchestrator import deploy_networks, get_factory_address, run_per_network, validate_networks, whitelist_agent


@pytest.fixture()
def config(tmp_path) -> DeployConfig:
    root = tmp_path / "artifacts"
    write_wasm_files(root)
    return DeployConfig(seed_phrase="seed", artifacts_root=root, fund_amount=1_000)


@pytest.fixture()
def sessions() -> dict:
    juno = make_session(SUPPORTED_NETWORKS["junotestnet"], FakeChain("juno", "ujunox"))
    stars = make_session(SUPPORTED_NETWORKS["stargazetestnet"], FakeChain("stars", "ustars"))
    juno.client.balances[juno.deployer] = 1_000_000
    stars.client.balances[stars.deployer] = 1_000_000
    return {"junotestnet": juno, "stargazetestnet": stars}


def test_deploy_networks(config, sessions, build):
    outcome = deploy_networks(config, sessions, build=build)

    assert outcome.errors == {}
    assert set(outcome.results) == {"junotestnet", "stargazetestnet"}
    assert all(d.is_complete() for d in outcome.results.values())

    factories = load_deployed_factories(config.artifacts_root)
    assert [f.chain_name for f in factories] == ["junotestnet", "stargazetestnet"]
    assert factories[1].address == outcome.results["stargazetestnet"].get_artifact("factory").address

    # Accounts are topped up before deployment
    juno = sessions["junotestnet"]
    assert juno.get_balance(juno.get_address("agent1")) == 1_000


def test_one_network_failing_does_not_stop_others(config, sessions, build):
    sessions["stargazetestnet"].client.balances[sessions["stargazetestnet"].deployer] = 0

    outcome = deploy_networks(config, sessions, build=build)

    assert isinstance(outcome.errors["stargazetestnet"], InsufficientDeployerFunds)
    assert outcome.results["junotestnet"].is_complete()
    assert [f.chain_name for f in load_deployed_factories(config.artifacts_root)] == ["junotestnet"]


def test_stage_failure_reported(config, sessions, build):
    sessions["junotestnet"].client.rejected_deploys["mod_dao"] = "code id not found"

    outcome = deploy_networks(config, sessions, build=build)

    assert outcome.errors["junotestnet"].stage == "mod_dao"
    assert not outcome.results["junotestnet"].is_complete()
    # Factory got deployed, so it is still listed
    assert len(load_deployed_factories(config.artifacts_root)) == 2


def test_validate_networks(config, sessions, build):
    deploy_networks(config, sessions, build=build)

    outcome = validate_networks(config, sessions)

    assert outcome.errors == {}
    assert all(r.is_passed() for r in outcome.results.values())


def test_validate_without_deployment(config, sessions):
    outcome = validate_networks(config, sessions)
    assert isinstance(outcome.errors["junotestnet"], ValidatorAssertionFailure)
    assert outcome.results == {}


def test_get_factory_address(config, sessions, build):
    with pytest.raises(ValidatorAssertionFailure):
        get_factory_address(config, "junotestnet")

    outcome = deploy_networks(config, sessions, build=build)
    assert get_factory_address(config, "junotestnet") == outcome.results["junotestnet"].get_artifact("factory").address


def test_whitelist_agent(config, sessions, build):
    deploy_networks(config, sessions, build=build)
    stars = sessions["stargazetestnet"]

    whitelist_agent(config, stars, "stars1b4kls73st8k5flxkwjyr4dfa3rwqtfary7ku86")

    assert "stars1b4kls73st8k5flxkwjyr4dfa3rwqtfary7ku86" in stars.client.get_contract("agents").whitelist


def test_worker_threads_named_after_chain(sessions):
    outcome = run_per_network(sessions, lambda s: threading.current_thread().name, "probe")
    assert outcome.results == {"junotestnet": "probe-junotestnet", "stargazetestnet": "probe-stargazetestnet"}


def test_unexpected_chain_output_stays_on_its_network(config, sessions, build, monkeypatch):
    """A malformed upload response on one chain keeps the other chain's deployment."""
    stars_chain = sessions["stargazetestnet"].client
    upload = stars_chain.upload

    def _broken_upload(sender, wasm_path, gas=None):
        if "manager" in wasm_path.name:
            raise KeyError("logs")
        return upload(sender, wasm_path, gas=gas)

    monkeypatch.setattr(stars_chain, "upload", _broken_upload)

    outcome = deploy_networks(config, sessions, build=build)

    assert outcome.results["junotestnet"].is_complete()
    error = outcome.errors["stargazetestnet"]
    assert isinstance(error, DeploymentError)
    assert error.stage == "manager"
    assert isinstance(error.__cause__, KeyError)

    # Factory of the failed network is persisted with the healthy one
    assert [f.chain_name for f in load_deployed_factories(config.artifacts_root)] == ["junotestnet", "stargazetestnet"]
    assert list(load_deployed_contract_map(config.artifacts_root, "stargazetestnet")) == ["factory"]


def test_unexpected_error_recorded_per_chain(sessions):
    def _work(session):
        if session.chain_name == "stargazetestnet":
            raise ValueError("invalid literal for int() with base 10: 'abc'")
        return session.chain_name

    outcome = run_per_network(sessions, _work, "work")

    assert outcome.results == {"junotestnet": "junotestnet"}
    assert isinstance(outcome.errors["stargazetestnet"], ValueError)
