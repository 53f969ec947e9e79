"""Cosmos network descriptors.

A :py:class:`Network` holds everything needed to talk to one CosmWasm chain:
bech32 prefix, fee token, candidate RPC endpoints and the name of the chain's
command line binary.

Networks come from a bundled table of supported testnets, or are parsed from a
`cosmos chain registry <https://github.com/cosmos/chain-registry>`__
``chain.json`` document.

Example::

    from croncat_deploy.network import get_network

    network = get_network("junotestnet")
    print(network.chain_id, network.rpc_endpoints)
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal

import requests

logger = logging.getLogger(__name__)

#: Raw chain registry files for mainnets
CHAIN_REGISTRY_URL = "https://raw.githubusercontent.com/cosmos/chain-registry/master"

#: Seconds to wait for chain registry download
CHAIN_REGISTRY_TIMEOUT = 15.0


@dataclass(slots=True, frozen=True)
class Network:
    """One CosmWasm chain we deploy to."""

    #: Chain registry name, e.g. ``junotestnet``
    chain_name: str

    #: Consensus chain id, e.g. ``uni-6``
    chain_id: str

    #: Human readable name for logs and tables
    pretty_name: str

    #: Bech32 address prefix, e.g. ``juno``
    bech32_prefix: str

    #: Gas fee denomination, e.g. ``ujunox``
    fee_denom: str

    #: Average suggested gas price in ``fee_denom``
    gas_price: Decimal

    #: Chain command line binary, e.g. ``junod``
    daemon_name: str

    #: Candidate Tendermint RPC endpoints, raced at session start
    rpc_endpoints: tuple[str, ...] = field(default_factory=tuple)

    #: ``mainnet`` or ``testnet``
    network_type: str = "testnet"

    def __repr__(self):
        return f"<Network {self.chain_name} ({self.chain_id})>"

    def get_gas_price_string(self) -> str:
        """Gas price in the format chain binaries accept, e.g. ``0.025ujunox``."""
        return f"{self.gas_price}{self.fee_denom}"

    def with_overrides(
        self,
        bech32_prefix: str | None = None,
        fee_denom: str | None = None,
        rpc_endpoint: str | None = None,
    ) -> "Network":
        """Return a copy with operator overrides applied.

        Empty values keep the original field.
        """
        changes = {}
        if bech32_prefix:
            changes["bech32_prefix"] = bech32_prefix
        if fee_denom:
            changes["fee_denom"] = fee_denom
        if rpc_endpoint:
            changes["rpc_endpoints"] = (rpc_endpoint,)
        return replace(self, **changes)


#: Testnets the deployment scripts know about out of the box
SUPPORTED_NETWORKS: dict[str, Network] = {
    "junotestnet": Network(
        chain_name="junotestnet",
        chain_id="uni-6",
        pretty_name="Juno Testnet",
        bech32_prefix="juno",
        fee_denom="ujunox",
        gas_price=Decimal("0.075"),
        daemon_name="junod",
        rpc_endpoints=(
            "https://juno-testnet-rpc.polkachu.com",
            "https://uni-rpc.reece.sh",
        ),
    ),
    "stargazetestnet": Network(
        chain_name="stargazetestnet",
        chain_id="elgafar-1",
        pretty_name="Stargaze Testnet",
        bech32_prefix="stars",
        fee_denom="ustars",
        gas_price=Decimal("0.04"),
        daemon_name="starsd",
        rpc_endpoints=(
            "https://rpc.elgafar-1.stargaze-apis.com",
            "https://stargaze-testnet-rpc.polkachu.com",
        ),
    ),
    "osmosistestnet": Network(
        chain_name="osmosistestnet",
        chain_id="osmo-test-5",
        pretty_name="Osmosis Testnet",
        bech32_prefix="osmo",
        fee_denom="uosmo",
        gas_price=Decimal("0.025"),
        daemon_name="osmosisd",
        rpc_endpoints=(
            "https://rpc.osmotest5.osmosis.zone",
            "https://osmosis-testnet-rpc.polkachu.com",
        ),
    ),
    "neutrontestnet": Network(
        chain_name="neutrontestnet",
        chain_id="pion-1",
        pretty_name="Neutron Testnet",
        bech32_prefix="neutron",
        fee_denom="untrn",
        gas_price=Decimal("0.025"),
        daemon_name="neutrond",
        rpc_endpoints=(
            "https://rpc-palvus.pion-1.ntrn.tech",
            "https://neutron-testnet-rpc.polkachu.com",
        ),
    ),
}


def parse_chain_registry(data: dict) -> Network:
    """Build a network descriptor from a chain registry ``chain.json``.

    Uses the first fee token and its average gas price.

    :param data:
        Decoded ``chain.json`` content.

    :raise ValueError:
        If the document has no fee tokens or RPC endpoints.
    """
    fee_tokens = data.get("fees", {}).get("fee_tokens", [])
    if not fee_tokens:
        raise ValueError(f"Chain registry entry {data.get('chain_name')} has no fee tokens")

    fee_token = fee_tokens[0]
    gas_price = fee_token.get("average_gas_price", fee_token.get("fixed_min_gas_price", 0))

    rpcs = tuple(r["address"].rstrip("/") for r in data.get("apis", {}).get("rpc", []))
    if not rpcs:
        raise ValueError(f"Chain registry entry {data.get('chain_name')} has no RPC endpoints")

    return Network(
        chain_name=data["chain_name"],
        chain_id=data["chain_id"],
        pretty_name=data.get("pretty_name", data["chain_name"]),
        bech32_prefix=data["bech32_prefix"],
        fee_denom=fee_token["denom"],
        # Through str so floats like 0.025 do not turn into long binary fractions
        gas_price=Decimal(str(gas_price)),
        daemon_name=data.get("daemon_name", data["chain_name"] + "d"),
        rpc_endpoints=rpcs,
        network_type=data.get("network_type", "mainnet"),
    )


def fetch_chain_registry_network(chain_name: str, timeout=CHAIN_REGISTRY_TIMEOUT, base_url=CHAIN_REGISTRY_URL) -> Network:
    """Download and parse a chain registry entry.

    Testnets live under ``testnets/<name>/chain.json`` in the registry,
    mainnets under ``<name>/chain.json``.

    :raise requests.HTTPError:
        Chain is not in the registry.
    """
    if chain_name.endswith("testnet"):
        url = f"{base_url}/testnets/{chain_name}/chain.json"
    else:
        url = f"{base_url}/{chain_name}/chain.json"

    logger.info("Fetching chain registry entry %s", url)
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return parse_chain_registry(response.json())


def get_network(chain_name: str, allow_registry_lookup=False) -> Network | None:
    """Resolve a network by its chain registry name.

    :param allow_registry_lookup:
        Try the public chain registry when the name is not in the bundled table.

    :return:
        ``None`` if the network is unknown.
    """
    network = SUPPORTED_NETWORKS.get(chain_name)
    if network is not None:
        return network

    if allow_registry_lookup:
        try:
            return fetch_chain_registry_network(chain_name)
        except requests.RequestException as e:
            logger.warning("Chain %s not found in chain registry: %s", chain_name, e)

    return None


def get_network_for_address(address: str, networks: list[Network]) -> Network | None:
    """Pick the network whose bech32 prefix the address uses.

    Longest prefix wins, so ``osmo1...`` does not match a hypothetical ``os`` prefix.
    """
    candidates = [n for n in networks if address.startswith(n.bech32_prefix + "1")]
    if not candidates:
        return None
    return max(candidates, key=lambda n: len(n.bech32_prefix))
