#!/usr/bin/env python3
"""
config.py - Network presets, .env loading and signing credentials

Environment Variables:
    RPC_URL:            Override the preset JSON-RPC endpoint
    REGISTRY_ADDRESS:   Override the preset validator registry address
    CHAIN_ID:           Pin the chain id instead of asking the node
    BEACON_API_URL:     Beacon node REST API base URL
    EXPLORER_API_URL:   beaconcha.in style explorer API base URL
    ANALYTICS_API_URL:  Opened-commitments analytics endpoint
    ANALYTICS_API_KEY:  API key sent to the analytics endpoint
    PRIVATE_KEY:        Hex private key of the sending account
    KEYSTORE_FILE:      Encrypted JSON keystore (alternative to PRIVATE_KEY)
    PASSPHRASE:         Keystore passphrase
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv
from eth_account import Account
from eth_account.signers.local import LocalAccount


class ConfigError(ValueError):
    """Raised when required configuration is missing or invalid."""


# =============================================================================
# Network Presets
# =============================================================================

@dataclass(frozen=True)
class NetworkConfig:
    name: str
    rpc_url: str
    registry_address: str
    chain_id: Optional[int] = None
    beacon_api_url: str = "https://ethereum-beacon-api.publicnode.com"
    explorer_api_url: str = "https://beaconcha.in/api/v1"
    new_registry_address: Optional[str] = None
    analytics_api_url: str = "https://endpoint.sentio.xyz/primev/mevcommit/opened_commits_apr_22"
    analytics_api_key: Optional[str] = field(default=None, repr=False)
    private_key: Optional[str] = field(default=None, repr=False)
    keystore_file: Optional[str] = None
    keystore_password: Optional[str] = field(default=None, repr=False)

    def load_account(self) -> LocalAccount:
        """Load the signing account from a private key or an encrypted keystore."""
        if self.private_key:
            key = self.private_key.strip()
            if not key.startswith("0x"):
                key = "0x" + key
            try:
                return Account.from_key(key)
            except Exception as exc:
                raise ConfigError(f"Failed to parse private key: {exc}") from exc

        if self.keystore_file:
            if self.keystore_password is None:
                raise ConfigError("PASSPHRASE not set for KEYSTORE_FILE")
            path = Path(self.keystore_file)
            if not path.exists():
                raise ConfigError(f"keystore file not found: {path}")
            try:
                key = Account.decrypt(path.read_text(), self.keystore_password)
            except ValueError as exc:
                raise ConfigError(f"Failed to decrypt keystore {path}: {exc}") from exc
            return Account.from_key(key)

        raise ConfigError("PRIVATE_KEY or KEYSTORE_FILE env var not supplied")


NETWORKS: Dict[str, NetworkConfig] = {
    "mev-commit-testnet": NetworkConfig(
        name="mev-commit-testnet",
        rpc_url="https://chainrpc.testnet.mev-commit.xyz",
        registry_address="0xF263483500e849Bd8d452c9A0F075B606ee64087",
    ),
    "holesky": NetworkConfig(
        name="holesky",
        rpc_url="https://ethereum-holesky-rpc.publicnode.com",
        registry_address="0x5d4fC7B5Aeea4CF4F0Ca6Be09A2F5AaDAd2F2803",
        chain_id=17000,
        beacon_api_url="https://ethereum-holesky-beacon-api.publicnode.com",
        explorer_api_url="https://holesky.beaconcha.in/api/v1",
        new_registry_address="0x87D5F694fAD0b6C8aaBCa96277DE09451E277Bcf",
    ),
    "mainnet": NetworkConfig(
        name="mainnet",
        rpc_url="https://ethereum-rpc.publicnode.com",
        registry_address="0x47afdcB2B089C16CEe354811EA1Bbe0DB7c335E9",
        chain_id=1,
    ),
}

DEFAULT_NETWORK = "mev-commit-testnet"


# =============================================================================
# Environment Loading
# =============================================================================

def load_env_file(start_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Load a .env file without overriding variables that are already set.

    Looks in the current directory first, then up to five parent directories
    of ``start_dir`` (defaults to this file's directory).
    """
    env_path = Path('.env')
    if not env_path.exists():
        search_dir = (start_dir or Path(__file__).resolve().parent)
        env_path = None
        for _ in range(5):
            search_dir = search_dir.parent
            candidate = search_dir / '.env'
            if candidate.exists():
                env_path = candidate
                break
    if env_path is None:
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def load_network_config(
    name: str = DEFAULT_NETWORK,
    env: Optional[Mapping[str, str]] = None,
) -> NetworkConfig:
    """Resolve a network preset and apply environment overrides."""
    if env is None:
        env = os.environ
    if name not in NETWORKS:
        raise ConfigError(
            f"unknown network: {name} (expected one of {', '.join(sorted(NETWORKS))})"
        )
    config = NETWORKS[name]

    overrides = {}
    if env.get("RPC_URL"):
        overrides["rpc_url"] = env["RPC_URL"].strip()
    if env.get("REGISTRY_ADDRESS"):
        overrides["registry_address"] = env["REGISTRY_ADDRESS"].strip()
    if env.get("CHAIN_ID"):
        try:
            overrides["chain_id"] = int(env["CHAIN_ID"].strip())
        except ValueError as exc:
            raise ConfigError(f"CHAIN_ID must be an integer: {env['CHAIN_ID']}") from exc
    if env.get("BEACON_API_URL"):
        overrides["beacon_api_url"] = env["BEACON_API_URL"].strip()
    if env.get("EXPLORER_API_URL"):
        overrides["explorer_api_url"] = env["EXPLORER_API_URL"].strip()
    if env.get("ANALYTICS_API_URL"):
        overrides["analytics_api_url"] = env["ANALYTICS_API_URL"].strip()
    overrides["analytics_api_key"] = env.get("ANALYTICS_API_KEY") or None

    overrides["private_key"] = env.get("PRIVATE_KEY") or None
    overrides["keystore_file"] = env.get("KEYSTORE_FILE") or None
    overrides["keystore_password"] = env.get("PASSPHRASE")

    return replace(config, **overrides)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
