"""In-memory CosmWasm chain with simplified CronCat contracts.

:py:class:`FakeChain` stands in for both the signing and the query client
of a :py:class:`~croncat_deploy.session.NetworkSession`, so deployment and
lifecycle code can be run without a chain binary or a live node.

The fake contracts only model what the scripts observe:

- factory registry, ``deploy`` and owner-only ``proxy``
- agents: first agent becomes active, later ones wait as pending and are
  nominated once enough tasks exist
- tasks: create, list and owner-only remove
- manager: proxy calls pay the calling agent, withdraw resets the reward
"""

import itertools
from pathlib import Path

import pytest

from croncat_deploy.build import BuildMetadata
from croncat_deploy.errors import ChainCommandFailed, TransactionRejected
from croncat_deploy.network import SUPPORTED_NETWORKS, Network
from croncat_deploy.pipeline import CONTRACT_NAMES, get_wasm_path
from croncat_deploy.session import NetworkSession
from croncat_deploy.tx import TxResult, decode_json_base64

#: Pending agent gets nominated when at least this many tasks exist
NOMINATION_TASK_COUNT = 3

#: Reward an agent earns per proxy call
PROXY_CALL_REWARD = 10


def make_event(event_type: str, **attributes) -> dict:
    return {"type": event_type, "attributes": [{"key": k, "value": str(v)} for k, v in attributes.items()]}


class FakeContract:
    """Contract that accepts anything, used for query modules."""

    def __init__(self, chain: "FakeChain", address: str, init_msg: dict):
        self.chain = chain
        self.address = address
        self.init_msg = init_msg

    def execute(self, sender: str, msg: dict, funds: list | None) -> list[dict]:
        return []

    def query(self, msg: dict):
        return None

    def reject(self, raw_log: str):
        raise TransactionRejected(self.chain.next_txhash(), 5, raw_log, "wasm")


class FakeFactory(FakeContract):
    def __init__(self, chain, address, init_msg, owner: str):
        super().__init__(chain, address, init_msg)
        self.owner = owner
        #: contract_name -> list of metadata dicts, latest last
        self.registry: dict[str, list[dict]] = {}

    def execute(self, sender, msg, funds):
        if sender != self.owner:
            self.reject("Unauthorized")

        if "deploy" in msg:
            info = msg["deploy"]["module_instantiate_info"]
            name = info["contract_name"]
            if name in self.chain.rejected_deploys:
                self.reject(self.chain.rejected_deploys[name])
            init_msg = decode_json_base64(info["msg"])
            contract = self.chain.create_contract(name, init_msg)
            self.registry.setdefault(name, []).append(
                {
                    "contract_addr": contract.address,
                    "code_id": info["code_id"],
                    "version": info["version"],
                    "commit_id": info["commit_id"],
                    "checksum": info["checksum"],
                    "changelog_url": info["changelog_url"],
                    "schema": info["schema"],
                    "kind": msg["deploy"]["kind"],
                }
            )
            return [make_event("instantiate", _contract_address=contract.address, code_id=info["code_id"])]

        if "proxy" in msg:
            execute = msg["proxy"]["msg"]["execute"]
            target = self.chain.contracts[execute["contract_addr"]]
            return target.execute(self.address, decode_json_base64(execute["msg"]), execute["funds"])

        self.reject(f"Unknown factory message {list(msg)}")

    def query(self, msg):
        if "latest_contracts" in msg:
            return [{"contract_name": n, "metadata": versions[-1]} for n, versions in self.registry.items()]
        if "latest_contract" in msg:
            versions = self.registry.get(msg["latest_contract"]["contract_name"])
            return {"metadata": versions[-1] if versions else None}
        if "versions_by_contract_name" in msg:
            return self.registry.get(msg["versions_by_contract_name"]["contract_name"], [])
        if "contract_names" in msg:
            return list(self.registry)
        if "all_entries" in msg:
            return [{"contract_name": n, "metadata": versions} for n, versions in self.registry.items()]
        raise ChainCommandFailed(f"Unknown factory query {list(msg)}")


class FakeTasks(FakeContract):
    def __init__(self, chain, address, init_msg):
        super().__init__(chain, address, init_msg)
        #: task_hash -> task record
        self.tasks: dict[str, dict] = {}
        self.seq = itertools.count(1)

    def execute(self, sender, msg, funds):
        if "create_task" in msg:
            if not funds:
                self.reject("Must attach funds")
            task_hash = f"{self.init_msg['chain_name']}:{next(self.seq):064x}"
            self.tasks[task_hash] = {
                "task_hash": task_hash,
                "owner_addr": sender,
                "interval": msg["create_task"]["task"]["interval"],
            }
            return [make_event("wasm", action="create_task", task_hash=task_hash)]

        if "remove_task" in msg:
            task_hash = msg["remove_task"]["task_hash"]
            task = self.tasks.get(task_hash)
            if task is None:
                self.reject("Task not found")
            if task["owner_addr"] != sender:
                self.reject("Unauthorized")
            del self.tasks[task_hash]
            return [make_event("wasm", action="remove_task", task_hash=task_hash)]

        self.reject(f"Unknown tasks message {list(msg)}")

    def query(self, msg):
        if "tasks" in msg:
            return list(self.tasks.values())
        raise ChainCommandFailed(f"Unknown tasks query {list(msg)}")


class FakeAgents(FakeContract):
    def __init__(self, chain, address, init_msg):
        super().__init__(chain, address, init_msg)
        self.whitelist = set(init_msg["allowed_agents"])
        self.active: list[str] = []
        self.pending: list[str] = []
        self.rewards: dict[str, int] = {}

    def get_status(self, address: str) -> str | None:
        if address in self.active:
            return "Active"
        if address in self.pending:
            tasks = self.chain.get_contract("tasks")
            if self.pending[0] == address and len(tasks.tasks) >= self.chain.nomination_task_count:
                return "Nominated"
            return "Pending"
        return None

    def execute(self, sender, msg, funds):
        if "register_agent" in msg:
            if sender not in self.whitelist:
                self.reject("Agent not whitelisted")
            if self.get_status(sender) is not None:
                self.reject("Agent already registered")
            if self.active:
                self.pending.append(sender)
            else:
                self.active.append(sender)
            self.rewards[sender] = 0
            return [make_event("wasm", action="register_agent")]

        if "check_in_agent" in msg:
            if self.get_status(sender) != "Nominated":
                self.reject("Agent not nominated")
            self.pending.remove(sender)
            self.active.append(sender)
            return [make_event("wasm", action="check_in_agent")]

        if "unregister_agent" in msg:
            if self.get_status(sender) is None:
                self.reject("Agent not registered")
            for queue in (self.active, self.pending):
                if sender in queue:
                    queue.remove(sender)
            self.rewards.pop(sender, None)
            return [make_event("wasm", action="unregister_agent")]

        if "add_agent_to_whitelist" in msg:
            if sender != self.chain.get_contract("factory").address:
                self.reject("Unauthorized")
            self.whitelist.add(msg["add_agent_to_whitelist"]["agent_address"])
            return [make_event("wasm", action="add_agent_to_whitelist")]

        if "tick" in msg:
            return [make_event("wasm", action="tick")]

        self.reject(f"Unknown agents message {list(msg)}")

    def query(self, msg):
        if "get_agent" in msg:
            address = msg["get_agent"]["account_id"]
            status = self.get_status(address)
            if status is None:
                return {"agent": None}
            return {"agent": {"status": status, "payable_account_id": address, "balance": str(self.rewards[address])}}
        if "get_agent_ids" in msg:
            return {"active": list(self.active), "pending": list(self.pending)}
        raise ChainCommandFailed(f"Unknown agents query {list(msg)}")


class FakeManager(FakeContract):
    def execute(self, sender, msg, funds):
        agents = self.chain.get_contract("agents")

        if "proxy_call" in msg:
            if agents.get_status(sender) != "Active":
                self.reject("Agent not active")
            agents.rewards[sender] += PROXY_CALL_REWARD
            return [make_event("wasm", action="proxy_call")]

        if "agent_withdraw" in msg:
            if sender not in agents.rewards:
                self.reject("Agent not registered")
            agents.rewards[sender] = 0
            return [make_event("wasm", action="withdraw_rewards")]

        self.reject(f"Unknown manager message {list(msg)}")


CONTRACT_CLASSES = {
    "tasks": FakeTasks,
    "agents": FakeAgents,
    "manager": FakeManager,
}


class FakeChain:
    """Signing and query client over in-memory state."""

    def __init__(self, prefix="juno", denom="ujunox"):
        self.prefix = prefix
        self.denom = denom
        self.height = 1000
        self.balances: dict[str, int] = {}
        self.contracts: dict[str, FakeContract] = {}
        #: contract_name -> latest instance
        self.by_name: dict[str, FakeContract] = {}
        self.code_ids = itertools.count(1)
        self.addresses = itertools.count(1)
        self.tx_counter = itertools.count(1)
        self.uploads: list[Path] = []
        #: (sender, contract, msg, funds) for every execute
        self.executed: list[tuple] = []
        self.transfers: list[tuple[str, str, int]] = []
        #: contract_name -> rejection text for factory deploys
        self.rejected_deploys: dict[str, str] = {}
        #: Number of upcoming smart queries that fail
        self.failing_queries = 0
        self.query_count = 0
        self.nomination_task_count = NOMINATION_TASK_COUNT

    def next_txhash(self) -> str:
        return f"{next(self.tx_counter):064X}"

    def make_result(self, events: list[dict]) -> TxResult:
        self.height += 1
        return TxResult(txhash=self.next_txhash(), height=self.height, code=0, events=events)

    def create_contract(self, name: str, init_msg: dict, **kwargs) -> FakeContract:
        address = f"{self.prefix}1contract{next(self.addresses):04d}"
        contract_class = CONTRACT_CLASSES.get(name, FakeContract)
        contract = contract_class(self, address, init_msg, **kwargs)
        self.contracts[address] = contract
        self.by_name[name] = contract
        return contract

    def get_contract(self, name: str):
        return self.by_name[name]

    # Signing client interface

    def upload(self, sender: str, wasm_path: Path, gas: int | None = None) -> tuple[int, TxResult]:
        assert wasm_path.exists(), f"Wasm file missing: {wasm_path}"
        self.uploads.append(wasm_path)
        code_id = next(self.code_ids)
        return code_id, self.make_result([make_event("store_code", code_id=code_id)])

    def instantiate(self, sender, code_id, msg, label, admin=None, funds=None, gas=None) -> tuple[str, TxResult]:
        assert label.startswith("CronCat:factory:"), f"Only the factory is instantiated directly, got {label}"
        address = f"{self.prefix}1contract{next(self.addresses):04d}"
        factory = FakeFactory(self, address, msg, owner=sender)
        self.contracts[address] = factory
        self.by_name["factory"] = factory
        return address, self.make_result([make_event("instantiate", _contract_address=address, code_id=code_id)])

    def execute(self, sender, contract_addr, msg, funds=None, gas=None) -> TxResult:
        self.executed.append((sender, contract_addr, msg, funds))
        events = self.contracts[contract_addr].execute(sender, msg, funds)
        return self.make_result(events)

    def send_tokens(self, sender: str, recipient: str, amount: int, denom: str) -> TxResult:
        assert denom == self.denom
        if self.balances.get(sender, 0) < amount:
            raise TransactionRejected(self.next_txhash(), 5, "insufficient funds", "sdk")
        self.balances[sender] -= amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        self.transfers.append((sender, recipient, amount))
        return self.make_result([make_event("transfer", recipient=recipient, amount=f"{amount}{denom}")])

    # Query client interface

    def get_balance(self, address: str, denom: str) -> int:
        if denom != self.denom:
            return 0
        return self.balances.get(address, 0)

    def query_contract_smart(self, contract_addr: str, msg: dict):
        self.query_count += 1
        if self.failing_queries > 0:
            self.failing_queries -= 1
            raise ChainCommandFailed("rpc error: code = Unavailable desc = connection refused")
        return self.contracts[contract_addr].query(msg)

    def get_latest_block_height(self) -> int:
        return self.height


def make_accounts(prefix: str, pause_admin: str | None = None) -> dict[str, str]:
    roles = ["deployer", "treasury", "agent1", "agent2", "agent3", "agent4", "agent5"]
    accounts = {role: f"{prefix}1{role}" for role in roles}
    accounts["pause_admin"] = pause_admin or accounts["deployer"]
    return accounts


def make_session(network: Network, chain: FakeChain, pause_admin: str | None = None) -> NetworkSession:
    return NetworkSession(
        network=network,
        endpoint="http://localhost:26657",
        client=chain,
        querier=chain,
        accounts=make_accounts(network.bech32_prefix, pause_admin),
    )


def write_wasm_files(artifacts_root: Path, names=CONTRACT_NAMES):
    artifacts_root.mkdir(parents=True, exist_ok=True)
    for name in names:
        get_wasm_path(artifacts_root, name).write_bytes(b"\0asm")


@pytest.fixture()
def network() -> Network:
    return SUPPORTED_NETWORKS["junotestnet"]


@pytest.fixture()
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture()
def session(network, chain) -> NetworkSession:
    return make_session(network, chain)


@pytest.fixture()
def artifacts_root(tmp_path) -> Path:
    root = tmp_path / "artifacts"
    write_wasm_files(root)
    return root


@pytest.fixture()
def build() -> BuildMetadata:
    return BuildMetadata(
        checksums={name: f"{idx:064x}" for idx, name in enumerate(CONTRACT_NAMES)},
        versions={name: (0, 1) for name in CONTRACT_NAMES},
        commit_id="d0c1c5e",
    )
