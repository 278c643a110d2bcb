#!/usr/bin/env python3
"""
opted_in_validators.py - Export validators opted in through the registry

Scans the registry's Staked / Unstaked / StakeWithdrawn logs in block
chunks, keeps every key with an active stake and writes the CSV consumed
by opted_in_slots.py, sorted by opt-in block. The opt-in block is the
block of the key's latest Staked event; its withdrawal address is the
stake originator.

Output CSV columns:
    pubKey, optInBlock, optInType, podOwner, vault, operator, withdrawalAddr

Usage:
    python3 opted_in_validators.py
    python3 opted_in_validators.py --network mainnet --from-block 21950000 \\
        --output opted_in_validators.csv

Environment Variables:
    RPC_URL / REGISTRY_ADDRESS: optional overrides of the network preset
"""

import argparse
import csv
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add script/ to sys.path for absolute imports when run directly
script_dir = Path(__file__).resolve().parent.parent.parent
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

from operations.opted_in.opted_in_slots import VALIDATOR_HEADER, OptedInValidator
from operations.utils.chain_utils import connect
from operations.utils.config import NETWORKS, load_env_file, load_network_config, setup_logging
from operations.utils.event_utils import Event, active_stake_events
from operations.utils.registry_utils import LOG_CHUNK_SIZE, fetch_events, get_registry

DEFAULT_OUTPUT = "opted_in_validators.csv"
OPT_IN_TYPE = "Vanilla"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def to_opted_in(active: Dict[str, Event]) -> List[OptedInValidator]:
    """Opted-in rows for active stakes, ordered by opt-in block then pubkey."""
    validators = [
        OptedInValidator(
            pub_key=pubkey,
            opt_in_block=event.block,
            opt_in_type=OPT_IN_TYPE,
            pod_owner=ZERO_ADDRESS,
            vault=ZERO_ADDRESS,
            operator=ZERO_ADDRESS,
            withdrawal_addr=event.tx_originator,
        )
        for pubkey, event in active.items()
    ]
    return sorted(validators, key=lambda v: (v.opt_in_block, v.pub_key))


def collect_opted_in_validators(
    registry: Any,
    from_block: int = 0,
    to_block: Optional[int] = None,
    chunk_size: int = LOG_CHUNK_SIZE,
) -> List[OptedInValidator]:
    if to_block is None:
        to_block = registry.w3.eth.block_number
    print(f"Processing blocks {from_block} to {to_block} in chunks of {chunk_size}")

    logs = {
        event_type: fetch_events(
            registry, event_type, from_block=from_block, to_block=to_block, chunk_size=chunk_size
        )
        for event_type in ("staked", "unstaked", "withdraw")
    }
    print(
        f"Found {len(logs['staked'])} staked, {len(logs['unstaked'])} unstaked "
        f"and {len(logs['withdraw'])} withdrawn events"
    )
    return to_opted_in(active_stake_events(logs["staked"], logs["unstaked"], logs["withdraw"]))


def export_validators(path: Path, validators: List[OptedInValidator]) -> None:
    print(f"Exporting {len(validators)} opted in validators to csv")
    with path.open("w", newline="") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(VALIDATOR_HEADER)
        for validator in validators:
            writer.writerow(validator.to_row())
    print(f"Exported {len(validators)} opted in validators to {path}")


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export validators opted in through the registry")
    parser.add_argument("--network", default="mainnet", choices=sorted(NETWORKS))
    parser.add_argument("--from-block", type=int, default=0, help="First block to scan (default: 0)")
    parser.add_argument("--to-block", type=int, help="Last block to scan (default: latest)")
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=LOG_CHUNK_SIZE,
        help=f"Blocks per log query (default: {LOG_CHUNK_SIZE})",
    )
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help=f"Output CSV (default: {DEFAULT_OUTPUT})")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: Any = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_env_file(Path(__file__).resolve().parent)

    config = load_network_config(args.network)
    w3 = connect(config.rpc_url)
    registry = get_registry(w3, config.registry_address)

    validators = collect_opted_in_validators(
        registry, args.from_block, args.to_block, args.chunk_size
    )
    export_validators(Path(args.output), validators)


def cli() -> None:
    try:
        main()
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
