"""Deployment output files."""

import json

import pytest

from croncat_deploy.artifacts import (
    ContractArtifact,
    FactoryDeployment,
    load_deployed_contract_map,
    load_deployed_contracts,
    load_deployed_factories,
    save_deployed_contracts,
    save_deployed_factories,
)


def test_contracts_file(tmp_path):
    artifacts = [
        ContractArtifact("factory", 1, "juno1factory", (0, 1), "ff", "abc"),
        ContractArtifact("manager", 2, "juno1manager"),
    ]
    path = save_deployed_contracts(tmp_path / "out", "junotestnet", artifacts)

    assert path.name == "junotestnet-deployed_contracts.json"
    assert json.loads(path.read_text()) == [
        {"name": "factory", "code_id": 1, "address": "juno1factory"},
        {"name": "manager", "code_id": 2, "address": "juno1manager"},
    ]
    assert load_deployed_contract_map(tmp_path / "out", "junotestnet")["manager"].address == "juno1manager"


def test_missing_contracts_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_deployed_contracts(tmp_path, "junotestnet")


def test_factories_file(tmp_path):
    save_deployed_factories(tmp_path, [FactoryDeployment("junotestnet", 4021, "juno1factory")])
    assert load_deployed_factories(tmp_path) == [FactoryDeployment("junotestnet", 4021, "juno1factory")]
