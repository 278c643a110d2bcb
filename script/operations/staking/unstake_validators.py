#!/usr/bin/env python3
"""
unstake_validators.py - Unstake (or withdraw) validators staked by an originator

Flow:
  1. Read the latest staked / unstaked / withdraw event artifacts
     (produced by events/store_events.py)
  2. Unstake: query the registry for the currently staked validator set and
     keep keys whose active stake event came from --originator
  3. Withdraw: keep keys of --originator that were unstaked but not yet
     withdrawn
  4. Send unstake() (or withdraw() with --withdraw) in batches with
     fee escalation

Usage:
    python3 unstake_validators.py --network holesky --originator 0xf39F...2266
    python3 unstake_validators.py --network holesky --originator 0xf39F...2266 --withdraw
    python3 unstake_validators.py --network holesky --originator 0xf39F...2266 --dry-run

Environment Variables:
    PRIVATE_KEY (or KEYSTORE_FILE + PASSPHRASE): registry owner / staker account
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
from operations.utils.config import NETWORKS, load_env_file, load_network_config, setup_logging
from operations.utils.event_utils import (
    DEFAULT_ARTIFACTS_DIR,
    Event,
    active_stake_events,
    pending_withdrawals,
    pubkeys_staked_by,
    read_events,
)
from operations.utils.registry_utils import get_registry, get_staked_validators, split_batches
from operations.utils.tx_utils import (
    DEFAULT_GAS_LIMIT,
    Receipt,
    TransactionIntent,
    TxSubmitter,
)

DEFAULT_BATCH_SIZE = 100
MIN_BALANCE_WEI = 200_000_000_000_000_000  # 0.2 ETH for gas


def select_pubkeys(
    originator: str,
    staked_pubkeys: List[str],
    staked: List[Event],
    unstaked: List[Event],
    withdrawn: List[Event],
    withdraw: bool = False,
) -> List[str]:
    """
    Pubkeys of ``originator`` to act on.

    Unstake targets keys still in the registry set with an active stake.
    Withdraw targets keys that were unstaked but not yet withdrawn.
    """
    if withdraw:
        pending = pending_withdrawals(staked, unstaked, withdrawn)
        return pubkeys_staked_by(originator, sorted(pending), pending)
    active = active_stake_events(staked, unstaked, withdrawn)
    return pubkeys_staked_by(originator, staked_pubkeys, active)


def send_batches(
    submitter: TxSubmitter,
    client: Any,
    allocator: NonceAllocator,
    submit_factory: Any,
    sender: str,
    batches: List[List[bytes]],
    action: str,
    gas_limit: int = DEFAULT_GAS_LIMIT,
) -> List[Receipt]:
    intents = [
        TransactionIntent(
            submit=submit_factory(batch),
            sender=sender,
            gas_limit=gas_limit,
            description=f"{action.capitalize()} batch {idx}",
        )
        for idx, batch in enumerate(batches, start=1)
    ]

    def report(idx: int, receipt: Receipt) -> None:
        print(f"  ✓ batch {idx}/{len(batches)} ({len(batches[idx - 1])} validators)")

    return submit_intents(submitter, client, allocator, intents, on_included=report)


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Unstake validators staked by an originator")
    parser.add_argument("--originator", required=True, help="Address that originally staked the keys")
    parser.add_argument("--network", default="holesky", choices=sorted(NETWORKS))
    parser.add_argument(
        "--artifacts-dir",
        default=str(DEFAULT_ARTIFACTS_DIR),
        help=f"Directory with event artifacts (default: {DEFAULT_ARTIFACTS_DIR})",
    )
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE)
    parser.add_argument("--withdraw", action="store_true", help="Call withdraw() instead of unstake()")
    parser.add_argument("--gas-limit", type=int, default=DEFAULT_GAS_LIMIT)
    parser.add_argument("--dry-run", action="store_true", help="Only list the validators")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: Any = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_env_file(Path(__file__).resolve().parent)

    config = load_network_config(args.network)
    action = "withdraw" if args.withdraw else "unstake"

    artifacts_dir = Path(args.artifacts_dir)
    staked_events = read_events(artifacts_dir, "staked")
    unstaked_events = read_events(artifacts_dir, "unstaked")
    withdrawn_events = read_events(artifacts_dir, "withdraw")

    w3 = connect(config.rpc_url)
    registry = get_registry(w3, config.registry_address)
    staked_pubkeys: List[str] = []
    if not args.withdraw:
        print("Querying full set of validators BLS pubkeys staked with the registry contract...")
        staked_pubkeys = get_staked_validators(registry)
    to_remove = select_pubkeys(
        args.originator, staked_pubkeys, staked_events, unstaked_events, withdrawn_events,
        withdraw=args.withdraw,
    )
    print(f"Number of validators to {action}: {len(to_remove)}")

    if args.dry_run or not to_remove:
        for pubkey in to_remove:
            print(f"  0x{pubkey}")
        return

    account = config.load_account()
    chain_id = config.chain_id or w3.eth.chain_id
    ensure_balance(w3, account.address, MIN_BALANCE_WEI)

    client = Web3ChainClient(w3)
    submitter = TxSubmitter(client)
    allocator = NonceAllocator(client, account.address)
    batches = split_batches([bytes.fromhex(pk) for pk in to_remove], args.batch_size)

    def submit_factory(batch: List[bytes]) -> Any:
        call = registry.functions.withdraw(batch) if args.withdraw else registry.functions.unstake(batch)
        return contract_call_submitter(w3, account, call, chain_id)

    send_batches(
        submitter, client, allocator, submit_factory, account.address, batches, action,
        gas_limit=args.gas_limit,
    )
    print(f"All {action} batches completed!")


def cli() -> None:
    try:
        main()
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
