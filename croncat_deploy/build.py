"""Build metadata for compiled contracts.

The contract workspace build (``cosmwasm/workspace-optimizer``) leaves
``croncat_<name>.wasm`` files and a ``checksums.txt`` in the artifacts folder::

    2957dfec6c6f13685809615e45f6c13f11910aece8190b6284c33459cf05d2cc  croncat_mod_balances.wasm
    be1b58df54ed7ac79bad071e74775a60027764d72ea6707563e3eb65f8fea746  croncat_mod_dao.wasm

Contract versions come from each crate's ``Cargo.toml``, the commit from ``git rev-parse HEAD``.
Everything is read once, before deployment, and passed down as :py:class:`BuildMetadata`.
"""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from subprocess import DEVNULL, PIPE

import psutil

logger = logging.getLogger(__name__)

#: Placeholder for unknown checksum or commit, as registered on-chain
UNKNOWN = "-"

#: Used when no Cargo.toml gives a version
DEFAULT_VERSION = (0, 1)


@dataclass(slots=True, frozen=True)
class ContractBuildInfo:
    """Build facts for one contract."""

    #: Truncated semver ``(major, minor)`` as the factory registry stores it
    version: tuple[int, int]

    #: sha256 of the wasm file
    checksum: str

    #: Git commit the wasm was built from
    commit_id: str

    def get_version_string(self) -> str:
        return f"{self.version[0]}.{self.version[1]}"


@dataclass(slots=True)
class BuildMetadata:
    """Build facts for all contracts of one build."""

    #: Contract name without ``croncat_`` prefix -> sha256
    checksums: dict[str, str] = field(default_factory=dict)

    #: Contract name -> (major, minor)
    versions: dict[str, tuple[int, int]] = field(default_factory=dict)

    commit_id: str = UNKNOWN

    def get(self, name: str) -> ContractBuildInfo:
        """Build info for a contract, with placeholders for missing facts."""
        return ContractBuildInfo(
            version=self.versions.get(name, DEFAULT_VERSION),
            checksum=self.checksums.get(name, UNKNOWN),
            commit_id=self.commit_id,
        )


def parse_checksums(text: str) -> dict[str, str]:
    """Parse ``sha256sum`` style output.

    :return:
        Contract name without ``croncat_`` prefix and ``.wasm`` suffix -> checksum
    """
    checksums = {}
    for line in text.splitlines():
        parts = line.split("  ")
        if len(parts) < 2:
            continue
        name = parts[1].strip().removeprefix("croncat_").split(".")[0]
        checksums[name] = parts[0].strip()
    return checksums


def parse_version(version: str) -> tuple[int, int]:
    """``1.2.3`` -> ``(1, 2)``"""
    parts = version.split(".")
    return int(parts[0]), int(parts[1]) if len(parts) > 1 else 0


def get_crate_name(contract_name: str) -> str:
    """``mod_balances`` -> ``croncat-mod-balances``"""
    return "croncat-" + contract_name.replace("_", "-")


def read_contract_version(cargo_root: Path, contract_name: str) -> tuple[int, int] | None:
    """Read a contract crate version.

    Looks at ``contracts/<crate>/Cargo.toml``, falls back to the workspace
    ``[workspace.package]`` version for crates using ``version.workspace = true``.

    :return:
        ``None`` if no version could be found
    """
    crate_toml = cargo_root / "contracts" / get_crate_name(contract_name) / "Cargo.toml"
    workspace_toml = cargo_root / "Cargo.toml"

    if crate_toml.exists():
        with crate_toml.open("rb") as inp:
            package = tomllib.load(inp).get("package", {})
        version = package.get("version")
        if isinstance(version, str):
            return parse_version(version)

    if workspace_toml.exists():
        with workspace_toml.open("rb") as inp:
            data = tomllib.load(inp)
        version = data.get("workspace", {}).get("package", {}).get("version") or data.get("package", {}).get("version")
        if isinstance(version, str):
            return parse_version(version)

    return None


def get_git_commit(cwd: Path | None = None) -> str:
    """Current git commit, or ``-`` outside a git checkout."""
    try:
        proc = psutil.Popen(["git", "rev-parse", "HEAD"], stdin=DEVNULL, stdout=PIPE, stderr=PIPE, cwd=cwd)
        stdout, _ = proc.communicate(timeout=30)
    except OSError as e:
        logger.warning("Could not run git: %s", e)
        return UNKNOWN

    if proc.returncode != 0:
        return UNKNOWN

    return stdout.decode("utf-8").strip() or UNKNOWN


def load_build_metadata(artifacts_root: Path, contract_names: list[str], cargo_root: Path | None = None) -> BuildMetadata:
    """Collect build metadata for a deployment.

    :param artifacts_root:
        Folder with ``checksums.txt``

    :param contract_names:
        Contracts to look up versions for, e.g. ``["factory", "manager"]``

    :param cargo_root:
        Contract workspace root, defaults to the parent of ``artifacts_root``
    """
    if cargo_root is None:
        cargo_root = artifacts_root.resolve().parent

    checksum_file = artifacts_root / "checksums.txt"
    if checksum_file.exists():
        checksums = parse_checksums(checksum_file.read_text(encoding="utf-8"))
    else:
        logger.warning("No checksums.txt in %s, registering contracts without checksums", artifacts_root)
        checksums = {}

    versions = {}
    for name in contract_names:
        version = read_contract_version(cargo_root, name)
        if version is None:
            logger.warning("No Cargo.toml version for %s, using %s", name, DEFAULT_VERSION)
            version = DEFAULT_VERSION
        versions[name] = version

    return BuildMetadata(
        checksums=checksums,
        versions=versions,
        commit_id=get_git_commit(cargo_root),
    )
