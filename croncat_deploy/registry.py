"""CronCat factory client.

The factory is both the deployer of all other CronCat contracts and a versioned
service registry: ``(contract_name, version) -> metadata``, plus a latest pointer
per name. Contracts find each other through the registry by
``[contract_name, [major, minor]]`` keys instead of hardcoded addresses.

- Deploys go through a factory ``deploy`` execute message. The instantiated address
  is picked from the transaction events, see :py:func:`~croncat_deploy.tx.extract_instantiated_address`.
- Queries are read-only and retried with backoff.
- ``proxy`` executes a message from the factory as sender, which owner-only
  admin actions like whitelisting agents need.
"""

import logging
from dataclasses import dataclass

from croncat_deploy.client import Coin
from croncat_deploy.errors import ChainCommandFailed, RegistryQueryError
from croncat_deploy.retry import DEFAULT_RETRY_CONFIG, RetryConfig, call_with_retries
from croncat_deploy.session import NetworkSession
from croncat_deploy.tx import TxResult, encode_json_base64, extract_instantiated_address

logger = logging.getLogger(__name__)

#: Registered with every deploy
CHANGELOG_URL = "https://github.com/croncats"

#: Default gas for factory executes
EXECUTE_GAS = 555_000


@dataclass(slots=True, frozen=True)
class ContractMetadata:
    """One registry entry as the factory reports it."""

    contract_name: str
    contract_addr: str
    code_id: int
    version: tuple[int, int]
    commit_id: str = ""
    checksum: str = ""
    changelog_url: str | None = None
    schema: str | None = None
    kind: str | None = None

    @classmethod
    def from_json(cls, data: dict, contract_name: str | None = None) -> "ContractMetadata":
        version = data.get("version") or [0, 0]
        return cls(
            contract_name=contract_name or data.get("contract_name", ""),
            contract_addr=data["contract_addr"],
            code_id=int(data["code_id"]),
            version=(int(version[0]), int(version[1])),
            commit_id=data.get("commit_id", ""),
            checksum=data.get("checksum", ""),
            changelog_url=data.get("changelog_url"),
            schema=data.get("schema"),
            kind=data.get("kind"),
        )


def build_deploy_msg(
    kind: str,
    code_id: int,
    version: tuple[int, int],
    commit_id: str,
    checksum: str,
    init_msg: dict,
    contract_name: str,
) -> dict:
    """Factory ``deploy`` message.

    The instantiate message is embedded as base64 JSON.
    """
    return {
        "deploy": {
            "kind": kind,
            "module_instantiate_info": {
                "code_id": code_id,
                "version": [version[0], version[1]],
                "commit_id": commit_id,
                "checksum": checksum,
                "changelog_url": CHANGELOG_URL,
                "schema": "",
                "msg": encode_json_base64(init_msg),
                "contract_name": contract_name,
            },
        }
    }


def build_proxy_msg(contract_addr: str, sub_msg: dict, funds: list[Coin] | None = None) -> dict:
    """Factory ``proxy`` message wrapping a wasm execute."""
    return {
        "proxy": {
            "msg": {
                "execute": {
                    "contract_addr": contract_addr,
                    "msg": encode_json_base64(sub_msg),
                    "funds": funds or [],
                }
            }
        }
    }


class FactoryClient:
    """Talk to a deployed factory.

    :param session:
        Network session, deploys are signed by its deployer

    :param retry_config:
        Backoff for registry queries
    """

    def __init__(self, session: NetworkSession, address: str, retry_config: RetryConfig = DEFAULT_RETRY_CONFIG):
        self.session = session
        self.address = address
        self.retry_config = retry_config

    def __repr__(self):
        return f"<FactoryClient {self.address} on {self.session.chain_name}>"

    def deploy_by_factory(
        self,
        kind: str,
        code_id: int,
        version: tuple[int, int],
        checksum: str,
        commit_id: str,
        init_msg: dict,
        contract_name: str,
        funds: list[Coin] | None = None,
        gas=EXECUTE_GAS,
    ) -> tuple[int, str]:
        """Instantiate and register a contract through the factory.

        :return:
            Tuple (code id, instantiated contract address)

        :raise AddressResolutionFailed:
            Transaction events do not name exactly one new contract
        """
        msg = build_deploy_msg(kind, code_id, version, commit_id, checksum, init_msg, contract_name)
        result = self.session.client.execute(self.session.deployer, self.address, msg, funds=funds, gas=gas)
        address = extract_instantiated_address(result.events)
        logger.info("Factory deployed %s code %d at %s, tx %s", contract_name, code_id, address, result.txhash)
        return code_id, address

    def proxy_call(self, contract_addr: str, sub_msg: dict, funds: list[Coin] | None = None, gas=EXECUTE_GAS) -> TxResult:
        """Execute ``sub_msg`` on ``contract_addr`` with the factory as sender."""
        msg = build_proxy_msg(contract_addr, sub_msg, funds)
        return self.session.client.execute(self.session.deployer, self.address, msg, funds=funds, gas=gas)

    def whitelist_agent(self, agents_addr: str, agent_addr: str, gas=EXECUTE_GAS) -> TxResult:
        """Allow an agent to register while public registration is off."""
        return self.proxy_call(agents_addr, {"add_agent_to_whitelist": {"agent_address": agent_addr}}, gas=gas)

    def _query(self, msg: dict, name: str):
        def _do():
            return self.session.querier.query_contract_smart(self.address, msg)

        try:
            return call_with_retries(_do, self.retry_config, (ChainCommandFailed,), f"Factory query {name}")
        except ChainCommandFailed as e:
            raise RegistryQueryError(f"Factory {self.address} query {name} failed: {e}") from e

    def latest_contracts(self) -> list[ContractMetadata]:
        """Latest version of every registered contract."""
        data = self._query({"latest_contracts": {}}, "latest_contracts")
        return [ContractMetadata.from_json(e["metadata"], e["contract_name"]) for e in data or [] if e.get("metadata")]

    def latest_versions(self) -> dict[str, ContractMetadata]:
        """Latest metadata keyed by contract name."""
        return {m.contract_name: m for m in self.latest_contracts()}

    def latest_contract(self, contract_name: str) -> ContractMetadata | None:
        """Latest version of one contract, ``None`` if not registered."""
        data = self._query({"latest_contract": {"contract_name": contract_name}}, "latest_contract")
        metadata = (data or {}).get("metadata")
        if metadata is None:
            return None
        return ContractMetadata.from_json(metadata, contract_name)

    def versions_by_name(self, contract_name: str) -> list[ContractMetadata]:
        """All registered versions of one contract."""
        data = self._query({"versions_by_contract_name": {"contract_name": contract_name}}, "versions_by_contract_name")
        return [ContractMetadata.from_json(m, contract_name) for m in data or []]

    def contract_names(self) -> list[str]:
        return list(self._query({"contract_names": {}}, "contract_names") or [])

    def all_entries(self) -> dict[str, list[ContractMetadata]]:
        """Every registry entry grouped by contract name.

        Entries whose ``metadata`` is a single object instead of a list are
        accepted as one-version entries.
        """
        data = self._query({"all_entries": {}}, "all_entries")
        entries = {}
        for entry in data or []:
            name = entry["contract_name"]
            metadatas = entry.get("metadata") or []
            if isinstance(metadatas, dict):
                metadatas = [metadatas]
            entries.setdefault(name, []).extend(ContractMetadata.from_json(m, name) for m in metadatas)
        return entries
