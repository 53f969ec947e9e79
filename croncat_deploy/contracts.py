"""Typed clients for the CronCat manager, tasks and agents contracts.

Each client wraps a deployed contract address and a :py:class:`~croncat_deploy.session.NetworkSession`.
Execute methods take the sender address explicitly, because the lifecycle
scenario acts as several participants (deployer, agent1, agent2) on the same session.

Instantiate payload builders used by the deployment pipeline live here too.
"""

import logging

from croncat_deploy.client import Coin
from croncat_deploy.session import NetworkSession
from croncat_deploy.tx import TxResult, get_event_attributes

logger = logging.getLogger(__name__)

#: Gas for lifecycle scenario executes
E2E_EXECUTE_GAS = 999_000


def get_registry_key(contract_name: str, version: tuple[int, int]) -> list:
    """Registry lookup key, e.g. ``["tasks", [0, 1]]``."""
    return [contract_name, [version[0], version[1]]]


def _version_string(version: tuple[int, int]) -> str:
    return f"{version[0]}.{version[1]}"


def build_manager_instantiate_msg(
    version: tuple[int, int],
    pause_admin: str,
    treasury_addr: str,
    tasks_version: tuple[int, int],
    agents_version: tuple[int, int],
) -> dict:
    return {
        "version": _version_string(version),
        "pause_admin": pause_admin,
        "treasury_addr": treasury_addr,
        "croncat_tasks_key": get_registry_key("tasks", tasks_version),
        "croncat_agents_key": get_registry_key("agents", agents_version),
    }


def build_tasks_instantiate_msg(
    chain_name: str,
    version: tuple[int, int],
    pause_admin: str,
    manager_version: tuple[int, int],
    agents_version: tuple[int, int],
) -> dict:
    """Tasks contract payload.

    :param chain_name:
        Bech32 prefix of the chain, e.g. ``juno``. The contract uses it in task hashes.
    """
    return {
        "chain_name": chain_name,
        "version": _version_string(version),
        "pause_admin": pause_admin,
        "croncat_manager_key": get_registry_key("manager", manager_version),
        "croncat_agents_key": get_registry_key("agents", agents_version),
    }


def build_agents_instantiate_msg(
    version: tuple[int, int],
    pause_admin: str,
    allowed_agents: list[str],
    manager_version: tuple[int, int],
    tasks_version: tuple[int, int],
) -> dict:
    """Agents contract payload.

    Public registration is off, only ``allowed_agents`` may register
    until more are whitelisted through the factory.
    """
    return {
        "pause_admin": pause_admin,
        "version": _version_string(version),
        "public_registration": False,
        "allowed_agents": allowed_agents,
        "croncat_manager_key": get_registry_key("manager", manager_version),
        "croncat_tasks_key": get_registry_key("tasks", tasks_version),
    }


class _ContractClient:
    def __init__(self, session: NetworkSession, address: str, gas=E2E_EXECUTE_GAS):
        self.session = session
        self.address = address
        self.gas = gas

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.address} on {self.session.chain_name}>"

    def _execute(self, sender: str, msg: dict, funds: list[Coin] | None = None) -> TxResult:
        return self.session.client.execute(sender, self.address, msg, funds=funds, gas=self.gas)

    def _query(self, msg: dict):
        return self.session.querier.query_contract_smart(self.address, msg)


class ManagerClient(_ContractClient):
    """Manager holds task balances and pays agents."""

    def proxy_call(self, sender: str, task_hash: str | None = None) -> TxResult:
        """Execute the next due task, or a specific one."""
        msg = {"proxy_call": {"task_hash": task_hash} if task_hash else {}}
        return self._execute(sender, msg)

    def agent_withdraw(self, sender: str) -> TxResult:
        """Withdraw accrued agent rewards to the payable account."""
        return self._execute(sender, {"agent_withdraw": None})

    def user_withdraw(self, sender: str) -> TxResult:
        return self._execute(sender, {"user_withdraw": {}})

    def refill_task_balance(self, sender: str, task_hash: str, funds: list[Coin]) -> TxResult:
        return self._execute(sender, {"refill_task_balance": {"task_hash": task_hash}}, funds=funds)


class TasksClient(_ContractClient):
    """Tasks contract keeps scheduled work."""

    def get_tasks(self) -> list[dict]:
        return self._query({"tasks": {}}) or []

    def create_task(self, sender: str, task: dict, funds: list[Coin]) -> TxResult:
        return self._execute(sender, {"create_task": {"task": task}}, funds=funds)

    def remove_task(self, sender: str, task_hash: str) -> TxResult:
        return self._execute(sender, {"remove_task": {"task_hash": task_hash}})

    @staticmethod
    def get_created_task_hash(result: TxResult) -> str | None:
        """Task hash from a ``create_task`` transaction's ``wasm`` event, if reported."""
        hashes = get_event_attributes(result.events, "wasm", "task_hash")
        return hashes[0] if hashes else None


class AgentsClient(_ContractClient):
    """Agents contract tracks agent registration and nomination."""

    def get_agent(self, account_id: str) -> dict | None:
        """Agent record, ``None`` when not registered."""
        response = self._query({"get_agent": {"account_id": account_id}}) or {}
        return response.get("agent")

    def get_agent_status(self, account_id: str) -> str:
        """One of ``active``, ``pending``, ``nominated``, or ``unregistered``."""
        agent = self.get_agent(account_id)
        if agent is None:
            return "unregistered"
        return agent["status"].lower()

    def get_agent_ids(self) -> dict[str, list[str]]:
        """Active and pending agent addresses."""
        response = self._query({"get_agent_ids": {}}) or {}
        return {
            "active": list(response.get("active", [])),
            "pending": list(response.get("pending", [])),
        }

    def register_agent(self, sender: str, payable_account_id: str | None = None) -> TxResult:
        return self._execute(sender, {"register_agent": {"payable_account_id": payable_account_id or sender}})

    def update_agent(self, sender: str, payable_account_id: str) -> TxResult:
        return self._execute(sender, {"update_agent": {"payable_account_id": payable_account_id}})

    def unregister_agent(self, sender: str) -> TxResult:
        return self._execute(sender, {"unregister_agent": {}})

    def check_in_agent(self, sender: str) -> TxResult:
        return self._execute(sender, {"check_in_agent": {}})
