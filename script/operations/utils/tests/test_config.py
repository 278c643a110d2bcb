"""Tests for network presets, environment overrides and credential loading."""

import json
import tempfile
import unittest
from pathlib import Path

from eth_account import Account

from operations.utils.config import (
    NETWORKS,
    ConfigError,
    load_network_config,
)

# Well-known first anvil/hardhat dev key
DEV_KEY = "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class NetworkConfigTests(unittest.TestCase):
    def test_presets(self) -> None:
        self.assertEqual(
            NETWORKS["mev-commit-testnet"].registry_address,
            "0xF263483500e849Bd8d452c9A0F075B606ee64087",
        )
        self.assertEqual(NETWORKS["holesky"].chain_id, 17000)
        self.assertEqual(
            NETWORKS["holesky"].new_registry_address,
            "0x87D5F694fAD0b6C8aaBCa96277DE09451E277Bcf",
        )

    def test_unknown_network(self) -> None:
        with self.assertRaises(ConfigError):
            load_network_config("sepolia", env={})

    def test_env_overrides(self) -> None:
        config = load_network_config(
            "holesky",
            env={
                "RPC_URL": " http://localhost:8545 ",
                "REGISTRY_ADDRESS": "0x0000000000000000000000000000000000000002",
                "CHAIN_ID": "31337",
                "BEACON_API_URL": "http://beacon:5052",
            },
        )

        self.assertEqual(config.rpc_url, "http://localhost:8545")
        self.assertEqual(config.registry_address, "0x0000000000000000000000000000000000000002")
        self.assertEqual(config.chain_id, 31337)
        self.assertEqual(config.beacon_api_url, "http://beacon:5052")
        self.assertEqual(config.explorer_api_url, NETWORKS["holesky"].explorer_api_url)

    def test_presets_not_mutated_by_overrides(self) -> None:
        load_network_config("holesky", env={"RPC_URL": "http://localhost:8545"})

        self.assertNotEqual(NETWORKS["holesky"].rpc_url, "http://localhost:8545")

    def test_bad_chain_id(self) -> None:
        with self.assertRaises(ConfigError):
            load_network_config("holesky", env={"CHAIN_ID": "holesky"})

    def test_analytics_endpoint_and_key(self) -> None:
        config = load_network_config(
            "mainnet",
            env={"ANALYTICS_API_URL": " http://analytics/query ", "ANALYTICS_API_KEY": "secret-key"},
        )

        self.assertEqual(config.analytics_api_url, "http://analytics/query")
        self.assertEqual(config.analytics_api_key, "secret-key")
        self.assertNotIn("secret-key", repr(config))
        self.assertIsNone(load_network_config("mainnet", env={}).analytics_api_key)

    def test_private_key_hidden_from_repr(self) -> None:
        config = load_network_config("holesky", env={"PRIVATE_KEY": DEV_KEY})

        self.assertNotIn(DEV_KEY, repr(config))


class CredentialTests(unittest.TestCase):
    def test_private_key_with_and_without_prefix(self) -> None:
        for raw in (DEV_KEY, "0x" + DEV_KEY):
            account = load_network_config("holesky", env={"PRIVATE_KEY": raw}).load_account()
            self.assertEqual(account.address, DEV_ADDRESS)

    def test_invalid_private_key(self) -> None:
        config = load_network_config("holesky", env={"PRIVATE_KEY": "not-a-key"})

        with self.assertRaises(ConfigError):
            config.load_account()

    def test_missing_credentials(self) -> None:
        config = load_network_config("holesky", env={})

        with self.assertRaises(ConfigError) as ctx:
            config.load_account()
        self.assertIn("PRIVATE_KEY or KEYSTORE_FILE", str(ctx.exception))

    def test_keystore(self) -> None:
        keystore = Account.encrypt(DEV_KEY, "secret", iterations=2)
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "keystore.json"
            path.write_text(json.dumps(keystore))

            env = {"KEYSTORE_FILE": str(path), "PASSPHRASE": "secret"}
            account = load_network_config("holesky", env=env).load_account()
            self.assertEqual(account.address, DEV_ADDRESS)

            env["PASSPHRASE"] = "wrong"
            with self.assertRaises(ConfigError):
                load_network_config("holesky", env=env).load_account()

    def test_keystore_without_passphrase(self) -> None:
        config = load_network_config("holesky", env={"KEYSTORE_FILE": "/nonexistent.json"})

        with self.assertRaises(ConfigError):
            config.load_account()

    def test_missing_keystore_file(self) -> None:
        env = {"KEYSTORE_FILE": "/nonexistent/keystore.json", "PASSPHRASE": "x"}

        with self.assertRaises(ConfigError):
            load_network_config("holesky", env=env).load_account()


if __name__ == "__main__":
    unittest.main()
