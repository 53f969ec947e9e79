"""Deployment output files.

- ``<artifacts>/<chain_name>-deployed_contracts.json``: every contract deployed on one chain
- ``<artifacts>/deployed_factories.json``: factory of each chain, written after a multi-network run

Agents and the website read these to find the factory, everything else
is discovered through the factory registry.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

#: Combined factory list file name
DEPLOYED_FACTORIES_FILE = "deployed_factories.json"


@dataclass(slots=True, frozen=True)
class ContractArtifact:
    """One deployed contract."""

    #: ``factory``, ``manager``, ``tasks``, ``agents`` or a module name
    name: str

    code_id: int

    address: str

    #: Registered version, ``None`` when loaded from disk
    version: tuple[int, int] | None = None

    checksum: str | None = None

    commit_id: str | None = None

    def to_json(self) -> dict:
        return {"name": self.name, "code_id": self.code_id, "address": self.address}

    @classmethod
    def from_json(cls, data: dict) -> "ContractArtifact":
        return cls(name=data["name"], code_id=int(data["code_id"]), address=data["address"])


@dataclass(slots=True, frozen=True)
class FactoryDeployment:
    """Factory of one chain."""

    chain_name: str
    code_id: int
    address: str

    def to_json(self) -> dict:
        return {"chain_name": self.chain_name, "code_id": self.code_id, "address": self.address}

    @classmethod
    def from_json(cls, data: dict) -> "FactoryDeployment":
        return cls(chain_name=data["chain_name"], code_id=int(data["code_id"]), address=data["address"])


def get_deployed_contracts_path(artifacts_root: Path, chain_name: str) -> Path:
    return artifacts_root / f"{chain_name}-deployed_contracts.json"


def save_deployed_contracts(artifacts_root: Path, chain_name: str, artifacts: list[ContractArtifact]) -> Path:
    """Write the per-chain contract list, replacing the previous run's file."""
    path = get_deployed_contracts_path(artifacts_root, chain_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([a.to_json() for a in artifacts]), encoding="utf-8")
    logger.info("Wrote %d deployed contracts to %s", len(artifacts), path)
    return path


def load_deployed_contracts(artifacts_root: Path, chain_name: str) -> list[ContractArtifact]:
    """Read the per-chain contract list.

    :raise FileNotFoundError:
        Nothing deployed on this chain yet
    """
    path = get_deployed_contracts_path(artifacts_root, chain_name)
    data = json.loads(path.read_text(encoding="utf-8"))
    return [ContractArtifact.from_json(d) for d in data]


def load_deployed_contract_map(artifacts_root: Path, chain_name: str) -> dict[str, ContractArtifact]:
    return {a.name: a for a in load_deployed_contracts(artifacts_root, chain_name)}


def save_deployed_factories(artifacts_root: Path, factories: list[FactoryDeployment]) -> Path:
    path = artifacts_root / DEPLOYED_FACTORIES_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([f.to_json() for f in factories]), encoding="utf-8")
    logger.info("Wrote %d factories to %s", len(factories), path)
    return path


def load_deployed_factories(artifacts_root: Path) -> list[FactoryDeployment]:
    path = artifacts_root / DEPLOYED_FACTORIES_FILE
    return [FactoryDeployment.from_json(d) for d in json.loads(path.read_text(encoding="utf-8"))]
