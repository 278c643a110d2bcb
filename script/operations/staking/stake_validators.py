#!/usr/bin/env python3
"""
stake_validators.py - Stake validator BLS keys with the validator registry

Reads BLS public keys (one hex key per line), splits them into batches and
sends one stake() transaction per batch. Each transaction is submitted with
fee escalation: if it is not mined within 60 seconds it is replaced at the
same nonce with a 10% higher tip and base fee, up to 10 attempts.

The run stops at the first batch that fails or reverts.

Usage:
    python3 stake_validators.py --keys-file keys.txt
    python3 stake_validators.py --keys-file keys.txt --network holesky --batch-size 10

Environment Variables:
    PRIVATE_KEY (or KEYSTORE_FILE + PASSPHRASE): staking account
    RPC_URL / REGISTRY_ADDRESS: optional overrides of the network preset
"""

import argparse
import sys
from pathlib import Path
from typing import Any, List

# Add script/ to sys.path for absolute imports when run directly
script_dir = Path(__file__).resolve().parent.parent.parent
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

from operations.utils.chain_utils import (
    NonceAllocator,
    Web3ChainClient,
    connect,
    contract_call_submitter,
    ensure_balance,
    submit_intents,
)
from operations.utils.config import (
    DEFAULT_NETWORK,
    NETWORKS,
    load_env_file,
    load_network_config,
    setup_logging,
)
from operations.utils.registry_utils import get_registry, read_bls_pubkeys, split_batches
from operations.utils.tx_utils import (
    DEFAULT_GAS_LIMIT,
    Receipt,
    TransactionIntent,
    TxSubmitter,
)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_BATCH_SIZE = 20
DEFAULT_STAKE_PER_VALIDATOR_WEI = 3_100_000_000_000_000_000  # 3.1 ETH


# =============================================================================
# Staking
# =============================================================================

def stake_batches(
    submitter: TxSubmitter,
    client: Any,
    allocator: NonceAllocator,
    submit_factory: Any,
    sender: str,
    batches: List[List[bytes]],
    stake_per_validator_wei: int,
    gas_limit: int = DEFAULT_GAS_LIMIT,
) -> List[Receipt]:
    """
    Stake each batch in order, one logical transaction per batch.

    ``submit_factory(batch)`` returns the submit callback for that batch.
    Raises on the first failed or reverted batch.
    """
    intents = [
        TransactionIntent(
            submit=submit_factory(batch),
            sender=sender,
            value=stake_per_validator_wei * len(batch),
            gas_limit=gas_limit,
            description=f"Stake batch {idx}",
        )
        for idx, batch in enumerate(batches, start=1)
    ]

    def report(idx: int, receipt: Receipt) -> None:
        print("-------------------")
        print(f"Batch {idx} completed")
        print("-------------------")

    return submit_intents(submitter, client, allocator, intents, on_included=report)


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stake validator BLS keys with the validator registry")
    parser.add_argument("--keys-file", required=True, help="File with one hex BLS pubkey per line")
    parser.add_argument(
        "--network",
        default=DEFAULT_NETWORK,
        choices=sorted(NETWORKS),
        help=f"Network preset (default: {DEFAULT_NETWORK})",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Validators per stake tx (default: {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--stake-per-validator-wei",
        type=int,
        default=DEFAULT_STAKE_PER_VALIDATOR_WEI,
        help="Stake amount per validator in wei (default: 3.1 ETH)",
    )
    parser.add_argument("--gas-limit", type=int, default=DEFAULT_GAS_LIMIT)
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: Any = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_env_file(Path(__file__).resolve().parent)

    config = load_network_config(args.network)
    account = config.load_account()

    keys_file = Path(args.keys_file).resolve()
    if not keys_file.exists():
        raise RuntimeError(f"keys file not found: {keys_file}")
    pubkeys = read_bls_pubkeys(keys_file)
    if not pubkeys:
        raise RuntimeError(f"no BLS pubkeys found in {keys_file}")
    batches = split_batches(pubkeys, args.batch_size)

    w3 = connect(config.rpc_url)
    chain_id = config.chain_id or w3.eth.chain_id
    ensure_balance(w3, account.address, args.stake_per_validator_wei * len(pubkeys))

    registry = get_registry(w3, config.registry_address)
    client = Web3ChainClient(w3)
    submitter = TxSubmitter(client)
    allocator = NonceAllocator(client, account.address)

    print("")
    print("=== STAKE VALIDATORS ===")
    print(f"Network:          {config.name} (chain id {chain_id})")
    print(f"Registry:         {config.registry_address}")
    print(f"Staker:           {account.address}")
    print(f"Validators:       {len(pubkeys)}")
    print(f"Batches:          {len(batches)} x up to {args.batch_size}")
    print("")

    def submit_factory(batch: List[bytes]) -> Any:
        return contract_call_submitter(w3, account, registry.functions.stake(batch), chain_id)

    stake_batches(
        submitter,
        client,
        allocator,
        submit_factory,
        account.address,
        batches,
        args.stake_per_validator_wei,
        gas_limit=args.gas_limit,
    )
    print("All staking batches completed!")


def cli() -> None:
    try:
        main()
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
