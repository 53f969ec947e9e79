"""Deploy the CronCat contract chain on one network.

Stages run in a fixed order, each depending on the registry state left by the previous ones::

    factory -> manager -> tasks -> agents -> mod_balances -> mod_dao -> mod_generic -> mod_nft

- The factory is uploaded and instantiated directly, with the deployer as admin
- Every other contract is uploaded and then deployed through the factory, which
  registers it under ``(contract_name, version)``
- Contracts refer to each other by registry key, so manager can be
  instantiated before the tasks and agents it points to exist

A failing stage stops the pipeline. Whatever was deployed before the failure is
still returned and persisted, so operators can see how far the run got.

Re-running uploads and registers everything again with fresh code ids.
There is no resume.
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable

from tqdm.auto import tqdm

from croncat_deploy.artifacts import ContractArtifact, FactoryDeployment, save_deployed_contracts
from croncat_deploy.build import BuildMetadata
from croncat_deploy.client import coins
from croncat_deploy.contracts import (
    build_agents_instantiate_msg,
    build_manager_instantiate_msg,
    build_tasks_instantiate_msg,
)
from croncat_deploy.errors import CroncatDeployError, DeploymentError
from croncat_deploy.registry import EXECUTE_GAS, FactoryClient
from croncat_deploy.session import NetworkSession

logger = logging.getLogger(__name__)

#: Gas for storing a wasm binary
UPLOAD_GAS = 4_400_000

#: Gas for instantiating the factory directly
FACTORY_INSTANTIATE_GAS = 700_000

#: Query modules, all registered with ``library`` kind
MODULE_NAMES = ("mod_balances", "mod_dao", "mod_generic", "mod_nft")

#: Contracts in deployment order
CONTRACT_NAMES = ("factory", "manager", "tasks", "agents") + MODULE_NAMES

#: Agents allowed to register while public registration is off
ALLOWED_AGENT_ROLES = ("agent1", "agent2")


def get_wasm_path(artifacts_root: Path, contract_name: str) -> Path:
    return artifacts_root / f"croncat_{contract_name}.wasm"


@dataclass(slots=True)
class NetworkDeployment:
    """What a pipeline run left behind on one network."""

    chain_name: str

    #: Deployed contracts in deployment order, partial on failure
    artifacts: list[ContractArtifact] = field(default_factory=list)

    #: Set when a stage failed
    error: DeploymentError | None = None

    def is_complete(self) -> bool:
        return self.error is None and len(self.artifacts) == len(CONTRACT_NAMES)

    def get_artifact(self, name: str) -> ContractArtifact | None:
        for a in self.artifacts:
            if a.name == name:
                return a
        return None

    def get_factory_deployment(self) -> FactoryDeployment | None:
        factory = self.get_artifact("factory")
        if factory is None:
            return None
        return FactoryDeployment(chain_name=self.chain_name, code_id=factory.code_id, address=factory.address)


class DeploymentPipeline:
    """Run deployment stages on one session.

    :param build:
        Versions, checksums and commit for every contract
    """

    def __init__(self, session: NetworkSession, artifacts_root: Path, build: BuildMetadata):
        self.session = session
        self.artifacts_root = artifacts_root
        self.build = build
        self.factory: FactoryClient | None = None

    def __repr__(self):
        return f"<DeploymentPipeline {self.session.chain_name}>"

    def upload(self, contract_name: str) -> int:
        wasm_path = get_wasm_path(self.artifacts_root, contract_name)
        if not wasm_path.exists():
            raise FileNotFoundError(f"Wasm binary missing: {wasm_path}")
        code_id, result = self.session.client.upload(self.session.deployer, wasm_path, gas=UPLOAD_GAS)
        logger.info("Uploaded %s as code %d, tx %s", contract_name, code_id, result.txhash)
        return code_id

    def deploy_factory(self) -> ContractArtifact:
        info = self.build.get("factory")
        code_id = self.upload("factory")
        address, _ = self.session.client.instantiate(
            self.session.deployer,
            code_id,
            {},
            label=f"CronCat:factory:{info.get_version_string()}",
            admin=self.session.deployer,
            gas=FACTORY_INSTANTIATE_GAS,
        )
        self.factory = FactoryClient(self.session, address)
        return ContractArtifact("factory", code_id, address, info.version, info.checksum, info.commit_id)

    def _deploy_through_factory(
        self,
        contract_name: str,
        kind: str,
        init_msg: dict,
        funds=None,
    ) -> ContractArtifact:
        assert self.factory is not None, "Factory must be deployed first"
        info = self.build.get(contract_name)
        code_id = self.upload(contract_name)
        code_id, address = self.factory.deploy_by_factory(
            kind=kind,
            code_id=code_id,
            version=info.version,
            checksum=info.checksum,
            commit_id=info.commit_id,
            init_msg=init_msg,
            contract_name=contract_name,
            funds=funds,
            gas=EXECUTE_GAS,
        )
        return ContractArtifact(contract_name, code_id, address, info.version, info.checksum, info.commit_id)

    def deploy_manager(self) -> ContractArtifact:
        msg = build_manager_instantiate_msg(
            version=self.build.get("manager").version,
            pause_admin=self.session.pause_admin,
            treasury_addr=self.session.get_address("treasury"),
            tasks_version=self.build.get("tasks").version,
            agents_version=self.build.get("agents").version,
        )
        # Manager needs a non-empty balance at instantiation
        return self._deploy_through_factory("manager", "manager", msg, funds=coins(1, self.session.fee_denom))

    def deploy_tasks(self) -> ContractArtifact:
        msg = build_tasks_instantiate_msg(
            chain_name=self.session.network.bech32_prefix,
            version=self.build.get("tasks").version,
            pause_admin=self.session.pause_admin,
            manager_version=self.build.get("manager").version,
            agents_version=self.build.get("agents").version,
        )
        return self._deploy_through_factory("tasks", "tasks", msg)

    def deploy_agents(self) -> ContractArtifact:
        msg = build_agents_instantiate_msg(
            version=self.build.get("agents").version,
            pause_admin=self.session.pause_admin,
            allowed_agents=[self.session.get_address(r) for r in ALLOWED_AGENT_ROLES],
            manager_version=self.build.get("manager").version,
            tasks_version=self.build.get("tasks").version,
        )
        return self._deploy_through_factory("agents", "agents", msg)

    def deploy_module(self, module_name: str) -> ContractArtifact:
        return self._deploy_through_factory(module_name, "library", {})

    def get_stages(self) -> list[tuple[str, Callable[[], ContractArtifact]]]:
        stages = [
            ("factory", self.deploy_factory),
            ("manager", self.deploy_manager),
            ("tasks", self.deploy_tasks),
            ("agents", self.deploy_agents),
        ]
        stages += [(m, partial(self.deploy_module, m)) for m in MODULE_NAMES]
        return stages

    def run(self, progress=False) -> NetworkDeployment:
        """Run all stages until done or the first failure.

        :param progress:
            Show a tqdm progress bar over stages
        """
        deployment = NetworkDeployment(chain_name=self.session.chain_name)
        stages = self.get_stages()

        progress_bar = None
        if progress:
            progress_bar = tqdm(total=len(stages), desc=f"Deploying on {self.session.network.pretty_name}", unit="contract")

        try:
            for name, stage in stages:
                try:
                    artifact = stage()
                except CroncatDeployError as e:
                    logger.error("Deployment stage %s on %s ERROR: %s", name, self.session.chain_name, e)
                    if isinstance(e, DeploymentError):
                        e.stage = name
                        deployment.error = e
                    else:
                        error = DeploymentError(f"Stage {name} failed: {e}", stage=name)
                        error.__cause__ = e
                        deployment.error = error
                    break
                except Exception as e:
                    # Missing wasm files, or chain output in a shape we do not understand
                    logger.exception("Deployment stage %s on %s ERROR: %s", name, self.session.chain_name, e)
                    error = DeploymentError(f"Stage {name} failed: {e.__class__.__name__}: {e}", stage=name)
                    error.__cause__ = e
                    deployment.error = error
                    break

                logger.info("Deployment stage %s on %s SUCCESS: code %d at %s", name, self.session.chain_name, artifact.code_id, artifact.address)
                deployment.artifacts.append(artifact)
                if progress_bar:
                    progress_bar.update(1)
        finally:
            if progress_bar:
                progress_bar.close()

        return deployment


def deploy_network(
    session: NetworkSession,
    artifacts_root: Path,
    build: BuildMetadata,
    progress=False,
) -> NetworkDeployment:
    """Deploy all contracts on one network and persist the results.

    Partial results are written too. A run that failed before the factory was
    deployed leaves the previous output file alone.
    """
    logger.info("Starting %s deployment", session.network.pretty_name)
    deployment = DeploymentPipeline(session, artifacts_root, build).run(progress=progress)
    if deployment.artifacts:
        save_deployed_contracts(artifacts_root, session.chain_name, deployment.artifacts)
    return deployment
