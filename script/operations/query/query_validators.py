#!/usr/bin/env python3
"""
query_validators.py - Query the full staked validator set of the registry

Pages through getStakedValidators() and prints the set size, up to the last
10 BLS pubkeys, and how long each query took.

Usage:
    python3 query_validators.py
    python3 query_validators.py --network holesky --page-size 500
    python3 query_validators.py --network holesky --output staked.txt
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Any, List

# Add script/ to sys.path for absolute imports when run directly
script_dir = Path(__file__).resolve().parent.parent.parent
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

from operations.utils.chain_utils import connect
from operations.utils.config import (
    DEFAULT_NETWORK,
    NETWORKS,
    load_env_file,
    load_network_config,
    setup_logging,
)
from operations.utils.registry_utils import (
    QUERY_PAGE_SIZE,
    get_number_of_staked_validators,
    get_registry,
    get_staked_validators,
)

TAIL_SIZE = 10


def print_tail(validators: List[str], count: int = TAIL_SIZE) -> None:
    print(f"Up to last {count} of staked validator BLS pubkeys: ")
    print("[")
    for pubkey in validators[-count:]:
        print(f"{pubkey},")
    print("]")


def query_all(registry: Any, page_size: int = QUERY_PAGE_SIZE) -> List[str]:
    print("-------------------")
    print("Querying full set of validators BLS pubkeys staked with the registry contract...")
    print("-------------------")

    started = time.perf_counter()
    count, version = get_number_of_staked_validators(registry)
    elapsed_count = time.perf_counter() - started
    print(f"Number of staked validators: {count} (valset version {version})")

    started = time.perf_counter()
    validators = get_staked_validators(registry, page_size)
    elapsed_set = time.perf_counter() - started
    print(f"Aggregated validator set length: {len(validators)}")

    print_tail(validators)
    print(f"Time to query number of staked validators: {elapsed_count:.3f}s")
    print(f"Time to query all staked validator BLS pubkeys: {elapsed_set:.3f}s")
    return validators


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query all validators staked with the registry")
    parser.add_argument(
        "--network",
        default=DEFAULT_NETWORK,
        choices=sorted(NETWORKS),
        help=f"Network preset (default: {DEFAULT_NETWORK})",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=QUERY_PAGE_SIZE,
        help=f"Validators per getStakedValidators call (default: {QUERY_PAGE_SIZE})",
    )
    parser.add_argument("--output", help="Optional file to write all pubkeys to, one per line")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: Any = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_env_file(Path(__file__).resolve().parent)

    config = load_network_config(args.network)
    w3 = connect(config.rpc_url)
    print(f"Chain ID: {w3.eth.chain_id}")

    registry = get_registry(w3, config.registry_address)
    validators = query_all(registry, args.page_size)

    if args.output:
        output = Path(args.output)
        output.write_text("".join(f"0x{pubkey}\n" for pubkey in validators))
        print(f"Wrote {len(validators)} pubkeys to {output}")


def cli() -> None:
    try:
        main()
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
