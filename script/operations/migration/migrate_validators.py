#!/usr/bin/env python3
"""
migrate_validators.py - Migrate registry stakes into a new validator registry

Re-registers every actively staked validator of the source registry with the
destination registry using delegateStake(), on behalf of the original stake
originator.

Flow:
  1. Read the newest staked / unstaked / withdraw artifacts
     (produced by events/store_events.py) and keep active stakes
  2. Drop validators from --exclude-originator accounts
  3. Skip validators the block explorer does not know on the beacon chain
  4. Group the rest by originator and send delegateStake() in sub-batches,
     each with fee escalation

Usage:
    python3 migrate_validators.py --network holesky --dry-run
    python3 migrate_validators.py --network holesky \\
        --exclude-originator 0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266
    python3 migrate_validators.py --network holesky --target 0x87D5...7Bcf --batch-size 10

Environment Variables:
    PRIVATE_KEY (or KEYSTORE_FILE + PASSPHRASE): migration account
    EXPLORER_API_URL: optional override of the beaconcha.in style explorer
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List

import requests

# Add script/ to sys.path for absolute imports when run directly
script_dir = Path(__file__).resolve().parent.parent.parent
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

from operations.utils.beacon_utils import is_registered_with_beacon_chain
from operations.utils.chain_utils import (
    NonceAllocator,
    TxRevertedError,
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
    group_by_originator,
    read_events,
)
from operations.utils.registry_utils import get_registry, split_batches
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
DEFAULT_VALUE_PER_VALIDATOR_WEI = 100_000_000_000_000  # 0.0001 ETH
MIN_BALANCE_WEI = 1_000_000_000_000_000_000  # 1 ETH


# =============================================================================
# Selection
# =============================================================================

def select_events(
    active: Dict[str, Event],
    exclude_originators: Iterable[str],
    is_registered: Callable[[str], bool],
) -> List[Event]:
    """
    Active stake events to migrate, in pubkey order.

    Events from excluded originators are dropped; so are validators that
    ``is_registered`` does not confirm on the beacon chain.
    """
    excluded = {address.lower() for address in exclude_originators}
    selected = []
    for pubkey in sorted(active):
        event = active[pubkey]
        if event.tx_originator.lower() in excluded:
            continue
        if not is_registered(pubkey):
            print(f"Skipping validator who is not registered with beacon chain: {pubkey}")
            continue
        selected.append(event)
    return selected


def plan_batches(events: Iterable[Event], batch_size: int) -> List[Dict[str, Any]]:
    """Split validators per originator into delegateStake sub-batches."""
    plan = []
    for originator, pubkeys in group_by_originator(events).items():
        for batch in split_batches(pubkeys, batch_size):
            plan.append({"originator": originator, "pubkeys": [bytes.fromhex(pk) for pk in batch]})
    return plan


# =============================================================================
# Migration
# =============================================================================

def migrate_batches(
    submitter: TxSubmitter,
    client: Any,
    allocator: NonceAllocator,
    submit_factory: Callable[[List[bytes], str], Any],
    sender: str,
    plan: List[Dict[str, Any]],
    value_per_validator_wei: int,
    gas_limit: int = DEFAULT_GAS_LIMIT,
) -> List[Receipt]:
    intents = [
        TransactionIntent(
            submit=submit_factory(batch["pubkeys"], batch["originator"]),
            sender=sender,
            value=value_per_validator_wei * len(batch["pubkeys"]),
            gas_limit=gas_limit,
            description=f"DelegateStake batch {idx} for {batch['originator']}",
        )
        for idx, batch in enumerate(plan, start=1)
    ]

    def report(idx: int, receipt: Receipt) -> None:
        print("-------------------")
        print(f"Batch {idx}/{len(plan)} completed")
        print("-------------------")

    try:
        return submit_intents(submitter, client, allocator, intents, on_included=report)
    except TxRevertedError as exc:
        failed = plan[exc.index - 1]
        print(f"Stake originator: {failed['originator']}")
        print(f"Number of validators in this batch: {len(failed['pubkeys'])}")
        for pubkey in failed["pubkeys"]:
            print(f"Validator pubkey: {pubkey.hex()}")
        raise


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Migrate active stakes into a new validator registry")
    parser.add_argument("--network", default="holesky", choices=sorted(NETWORKS))
    parser.add_argument(
        "--target",
        help="Destination registry (default: the network's new registry, else its registry)",
    )
    parser.add_argument(
        "--artifacts-dir",
        default=str(DEFAULT_ARTIFACTS_DIR),
        help=f"Directory with event artifacts (default: {DEFAULT_ARTIFACTS_DIR})",
    )
    parser.add_argument(
        "--exclude-originator",
        action="append",
        default=[],
        help="Originator address to leave out (repeatable)",
    )
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE)
    parser.add_argument(
        "--value-per-validator-wei",
        type=int,
        default=DEFAULT_VALUE_PER_VALIDATOR_WEI,
        help="Stake sent per validator in wei (default: 0.0001 ETH)",
    )
    parser.add_argument("--gas-limit", type=int, default=DEFAULT_GAS_LIMIT)
    parser.add_argument("--dry-run", action="store_true", help="Print the plan without sending")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: Any = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_env_file(Path(__file__).resolve().parent)

    config = load_network_config(args.network)
    target = args.target or config.new_registry_address or config.registry_address

    artifacts_dir = Path(args.artifacts_dir)
    active = active_stake_events(
        read_events(artifacts_dir, "staked"),
        read_events(artifacts_dir, "unstaked"),
        read_events(artifacts_dir, "withdraw"),
    )
    print(f"Active stakes in artifacts: {len(active)}")

    session = requests.Session()
    events = select_events(
        active,
        args.exclude_originator,
        lambda pubkey: is_registered_with_beacon_chain(config.explorer_api_url, pubkey, session),
    )
    plan = plan_batches(events, args.batch_size)

    print("")
    print("=== MIGRATE VALIDATORS ===")
    print(f"Network:          {config.name}")
    print(f"Target registry:  {target}")
    print(f"Validators:       {len(events)}")
    print(f"Batches:          {len(plan)}")
    for batch in plan:
        print(f"  {batch['originator']}: {len(batch['pubkeys'])} validators")
    print("")

    if args.dry_run or not plan:
        return

    account = config.load_account()
    w3 = connect(config.rpc_url)
    chain_id = config.chain_id or w3.eth.chain_id
    ensure_balance(w3, account.address, MIN_BALANCE_WEI)

    registry = get_registry(w3, target)
    client = Web3ChainClient(w3)
    submitter = TxSubmitter(client)
    allocator = NonceAllocator(client, account.address)

    def submit_factory(pubkeys: List[bytes], originator: str) -> Any:
        call = registry.functions.delegateStake(pubkeys, w3.to_checksum_address(originator))
        return contract_call_submitter(w3, account, call, chain_id)

    migrate_batches(
        submitter,
        client,
        allocator,
        submit_factory,
        account.address,
        plan,
        args.value_per_validator_wei,
        gas_limit=args.gas_limit,
    )
    print("All batches completed!")


def cli() -> None:
    try:
        main()
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
