"""Deployment configuration read from environment variables.

Environment variables:

- ``SEED_PHRASE``: BIP-39 mnemonic all participant accounts are derived from

- ``SUPPORTED_NETWORKS``: comma separated chain names used when no network is given on the command line,
  defaults to ``junotestnet,stargazetestnet,osmosistestnet``

- ``PAUSE_ADMIN_<CHAIN_NAME>``: pause admin (usually a multisig) for a chain, e.g. ``PAUSE_ADMIN_JUNOTESTNET``.
  Falls back to the deployer address.

- ``PREFIX``, ``DENOM``, ``RPC_ENDPOINT``: override bech32 prefix, fee denom or candidate endpoints
  of every selected network

- ``WASM_BUILD_FOLDER``: folder holding ``croncat_*.wasm`` and ``checksums.txt``, defaults to ``artifacts``

- ``CARGO_ROOT``: contract workspace root for reading crate versions, defaults to the parent of the build folder

- ``FUND_AMOUNT``: target balance for each participant account, defaults to 5_000_000 micro units

- ``CHAIN_HOME``: keyring home directory; a temporary one is created per session when unset
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from croncat_deploy.network import Network, get_network

logger = logging.getLogger(__name__)

#: Networks to deploy to when none is given
DEFAULT_SUPPORTED_NETWORKS = ("junotestnet", "stargazetestnet", "osmosistestnet")

#: Target balance for each non-deployer account, e.g. 5 JUNO
DEFAULT_FUND_AMOUNT = 5_000_000


@dataclass(slots=True)
class DeployConfig:
    """Operator configuration shared by all command line scripts."""

    #: Mnemonic for participant accounts
    seed_phrase: str | None = None

    #: Chain names to use when no network is given explicitly
    supported_networks: tuple[str, ...] = DEFAULT_SUPPORTED_NETWORKS

    #: chain_name -> pause admin address
    pause_admins: dict[str, str] = field(default_factory=dict)

    #: Overrides applied to every network
    prefix: str | None = None
    denom: str | None = None
    rpc_endpoint: str | None = None

    #: Where wasm binaries and checksums are, and where deployment output is written
    artifacts_root: Path = Path("artifacts")

    #: Cargo workspace with the contract crates
    cargo_root: Path | None = None

    #: Target balance per participant account
    fund_amount: int = DEFAULT_FUND_AMOUNT

    #: Keyring home override
    chain_home: Path | None = None

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "DeployConfig":
        """Read configuration from environment variables.

        :param environ:
            Environment to read, defaults to ``os.environ``.
        """
        if environ is None:
            environ = os.environ

        supported = environ.get("SUPPORTED_NETWORKS")
        if supported:
            supported_networks = tuple(n.strip() for n in supported.split(",") if n.strip())
        else:
            supported_networks = DEFAULT_SUPPORTED_NETWORKS

        pause_admins = {}
        for key, value in environ.items():
            if key.startswith("PAUSE_ADMIN_") and value:
                pause_admins[key.removeprefix("PAUSE_ADMIN_").lower()] = value

        artifacts_root = Path(environ.get("WASM_BUILD_FOLDER", "artifacts"))
        cargo_root = environ.get("CARGO_ROOT")
        chain_home = environ.get("CHAIN_HOME")

        return cls(
            seed_phrase=environ.get("SEED_PHRASE"),
            supported_networks=supported_networks,
            pause_admins=pause_admins,
            prefix=environ.get("PREFIX") or None,
            denom=environ.get("DENOM") or None,
            rpc_endpoint=environ.get("RPC_ENDPOINT") or None,
            artifacts_root=artifacts_root,
            cargo_root=Path(cargo_root) if cargo_root else None,
            fund_amount=int(environ.get("FUND_AMOUNT", DEFAULT_FUND_AMOUNT)),
            chain_home=Path(chain_home) if chain_home else None,
        )

    def get_cargo_root(self) -> Path:
        return self.cargo_root or self.artifacts_root.resolve().parent

    def get_pause_admin(self, chain_name: str) -> str | None:
        return self.pause_admins.get(chain_name.lower())

    def apply_overrides(self, network: Network) -> Network:
        return network.with_overrides(
            bech32_prefix=self.prefix,
            fee_denom=self.denom,
            rpc_endpoint=self.rpc_endpoint,
        )

    def resolve_networks(self, chain_name: str | None = None) -> list[Network]:
        """Networks for a command line run.

        :param chain_name:
            Single network given on the command line, or ``None`` for all supported networks.

        :raise ValueError:
            Unknown chain name.
        """
        names = [chain_name] if chain_name else list(self.supported_networks)
        networks = []
        for name in names:
            network = get_network(name, allow_registry_lookup=True)
            if network is None:
                raise ValueError(f"Couldn't find {name}, please try different chain_name and try again.")
            networks.append(self.apply_overrides(network))
        return networks
