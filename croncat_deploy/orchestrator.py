"""Run deployment and validation across several networks in parallel.

Each network gets its own worker thread, named after the chain so log lines
can be told apart. Within a network everything is sequential because all
transactions share the deployer's account sequence.

A failure on one network never affects another: errors are collected per
chain and reported at the end.

Running two orchestrators against the same network at the same time is not
supported. Both would race on the deployer account sequence and overwrite
each other's output files.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

from croncat_deploy.artifacts import load_deployed_contract_map, save_deployed_factories
from croncat_deploy.build import BuildMetadata, load_build_metadata
from croncat_deploy.config import DeployConfig
from croncat_deploy.errors import CroncatDeployError, ValidatorAssertionFailure
from croncat_deploy.funding import equalize_balances
from croncat_deploy.network import Network
from croncat_deploy.pipeline import CONTRACT_NAMES, NetworkDeployment, deploy_network
from croncat_deploy.registry import FactoryClient
from croncat_deploy.session import NetworkSession, open_sessions
from croncat_deploy.tx import TxResult
from croncat_deploy.validator import ValidationReport, run_lifecycle_validation, run_task_variants

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class MultiNetworkResult(Generic[T]):
    """Per-chain results and errors of a parallel run."""

    results: dict[str, T] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)


def run_per_network(sessions: dict[str, NetworkSession], func: Callable[[NetworkSession], T], name: str) -> MultiNetworkResult[T]:
    """Run ``func`` for every session in parallel.

    Any exception is caught and recorded per chain, so one failing network
    never loses the results of the others.
    """
    outcome = MultiNetworkResult()
    if not sessions:
        return outcome

    def _run(session: NetworkSession) -> T:
        threading.current_thread().name = f"{name}-{session.chain_name}"
        return func(session)

    with ThreadPoolExecutor(max_workers=len(sessions), thread_name_prefix=name) as executor:
        futures = {executor.submit(_run, s): chain_name for chain_name, s in sessions.items()}
        for future in as_completed(futures):
            chain_name = futures[future]
            try:
                outcome.results[chain_name] = future.result()
            except CroncatDeployError as e:
                logger.error("%s on %s ERROR: %s", name, chain_name, e)
                outcome.errors[chain_name] = e
            except Exception as e:
                logger.exception("%s on %s ERROR: %s", name, chain_name, e)
                outcome.errors[chain_name] = e

    return outcome


def open_network_sessions(config: DeployConfig, networks: list[Network]) -> MultiNetworkResult[NetworkSession]:
    """Bootstrap sessions on all networks, leaving out the ones that fail."""
    sessions, failures = open_sessions(
        networks,
        config.seed_phrase,
        pause_admins=config.pause_admins,
        home_root=config.chain_home,
    )
    return MultiNetworkResult(results=sessions, errors=dict(failures))


def close_sessions(sessions: dict[str, NetworkSession]):
    for session in sessions.values():
        session.close()


def deploy_networks(
    config: DeployConfig,
    sessions: dict[str, NetworkSession],
    build: BuildMetadata | None = None,
    progress=False,
) -> MultiNetworkResult[NetworkDeployment]:
    """Fund accounts and deploy all contracts on every network.

    Funding must finish before the pipeline starts on the same network.
    After all networks are done, factories are written to ``deployed_factories.json``.
    """
    if build is None:
        build = load_build_metadata(config.artifacts_root, list(CONTRACT_NAMES), config.get_cargo_root())

    def _deploy(session: NetworkSession) -> NetworkDeployment:
        transfers = equalize_balances(session, config.fund_amount)
        if transfers:
            logger.info("Funded %d accounts on %s", len(transfers), session.chain_name)
        return deploy_network(session, config.artifacts_root, build, progress=progress)

    outcome = run_per_network(sessions, _deploy, "deploy")

    for chain_name, deployment in outcome.results.items():
        if deployment.error is not None:
            outcome.errors[chain_name] = deployment.error

    factories = [d.get_factory_deployment() for d in outcome.results.values()]
    factories = [f for f in factories if f is not None]
    if factories:
        save_deployed_factories(config.artifacts_root, sorted(factories, key=lambda f: f.chain_name))

    return outcome


def get_factory_address(config: DeployConfig, chain_name: str) -> str:
    """Factory address from the per-chain deployment output.

    :raise ValidatorAssertionFailure:
        No deployment output or no factory in it
    """
    try:
        contracts = load_deployed_contract_map(config.artifacts_root, chain_name)
    except FileNotFoundError as e:
        raise ValidatorAssertionFailure(f"No deployed contracts found for {chain_name}: {e}") from e

    factory = contracts.get("factory")
    if factory is None:
        raise ValidatorAssertionFailure(f"No deployed factory found for {chain_name}")
    return factory.address


def validate_networks(
    config: DeployConfig,
    sessions: dict[str, NetworkSession],
    task_variants=False,
) -> MultiNetworkResult[ValidationReport]:
    """Run the lifecycle scenario, or the task variant sweep, on every network."""

    def _validate(session: NetworkSession) -> ValidationReport:
        factory_address = get_factory_address(config, session.chain_name)
        if task_variants:
            return run_task_variants(session, factory_address)
        return run_lifecycle_validation(session, factory_address)

    return run_per_network(sessions, _validate, "e2e")


def whitelist_agent(config: DeployConfig, session: NetworkSession, agent_address: str) -> TxResult:
    """Add an agent to the agents contract whitelist through the factory.

    :raise ValidatorAssertionFailure:
        Agents contract not in the registry
    """
    factory = FactoryClient(session, get_factory_address(config, session.chain_name))
    agents = factory.latest_contract("agents")
    if agents is None:
        raise ValidatorAssertionFailure(f"No agents contract registered on {session.chain_name}")
    result = factory.whitelist_agent(agents.contract_addr, agent_address)
    logger.info("Agents Add to Whitelist on %s SUCCESS, tx %s", session.network.pretty_name, result.txhash)
    return result
