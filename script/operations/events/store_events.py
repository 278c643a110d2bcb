#!/usr/bin/env python3
"""
store_events.py - Store and validate validator registry events

Subcommands:
  store     Query all staked / unstaked / withdraw events from genesis and
            write them to the artifacts directory, one JSON file per type,
            stamped with the current time and block number.
  validate  Reconstruct per-validator stake from the newest artifacts and
            compare it against the same reconstruction from live chain logs.

Usage:
    python3 store_events.py store
    python3 store_events.py store --network holesky --artifacts-dir ./artifacts
    python3 store_events.py validate

Environment Variables:
    RPC_URL / REGISTRY_ADDRESS: optional overrides of the network preset
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List

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
from operations.utils.event_utils import (
    DEFAULT_ARTIFACTS_DIR,
    EVENT_TYPES,
    read_events,
    reconstruct_validators,
    write_events,
)
from operations.utils.registry_utils import LOG_CHUNK_SIZE, fetch_events, get_registry


# =============================================================================
# Store
# =============================================================================

def store_all_events(
    registry: Any,
    artifacts_dir: Path,
    block_number: int,
    chunk_size: int = LOG_CHUNK_SIZE,
) -> List[Path]:
    """Fetch every event type up to ``block_number`` and write one artifact each."""
    paths = []
    for event_type in EVENT_TYPES:
        print(f"Querying all {event_type} events from chain genesis...")
        events = fetch_events(registry, event_type, to_block=block_number, chunk_size=chunk_size)
        path = write_events(artifacts_dir, event_type, events, block_number)
        print(f"  {len(events)} events -> {path}")
        paths.append(path)
    return paths


# =============================================================================
# Validate
# =============================================================================

def query_actual_validators(registry: Any, chunk_size: int = LOG_CHUNK_SIZE) -> Dict[str, int]:
    staked = fetch_events(registry, "staked", chunk_size=chunk_size)
    withdrawn = fetch_events(registry, "withdraw", chunk_size=chunk_size)
    return reconstruct_validators(staked, withdrawn)


def validate_events(registry: Any, artifacts_dir: Path, chunk_size: int = LOG_CHUNK_SIZE) -> bool:
    staked = read_events(artifacts_dir, "staked")
    withdrawn = read_events(artifacts_dir, "withdraw")
    reconstructed = reconstruct_validators(staked, withdrawn)

    actual = query_actual_validators(registry, chunk_size)
    if reconstructed == actual:
        print("Validator lists match.")
        return True

    print("Validator lists do not match.")
    print(f"Reconstructed list length: {len(reconstructed)}")
    print(f"Actual list length: {len(actual)}")
    return False


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Store and validate validator registry events")
    parser.add_argument(
        "--network",
        default=DEFAULT_NETWORK,
        choices=sorted(NETWORKS),
        help=f"Network preset (default: {DEFAULT_NETWORK})",
    )
    parser.add_argument(
        "--artifacts-dir",
        default=str(DEFAULT_ARTIFACTS_DIR),
        help=f"Artifacts directory (default: {DEFAULT_ARTIFACTS_DIR})",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=LOG_CHUNK_SIZE,
        help=f"Blocks per log query (default: {LOG_CHUNK_SIZE})",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("store", help="Store all registry events in the artifacts directory")
    subparsers.add_parser("validate", help="Validate artifacts against chain logs")
    return parser.parse_args(argv)


def main(argv: Any = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_env_file(Path(__file__).resolve().parent)

    config = load_network_config(args.network)
    w3 = connect(config.rpc_url)
    registry = get_registry(w3, config.registry_address)
    artifacts_dir = Path(args.artifacts_dir)

    if args.command == "store":
        block_number = w3.eth.block_number
        store_all_events(registry, artifacts_dir, block_number, args.chunk_size)
        print("Events have been serialized to JSON files.")
    elif not validate_events(registry, artifacts_dir, args.chunk_size):
        raise RuntimeError(f"event artifacts in {artifacts_dir} do not match chain logs")


def cli() -> None:
    try:
        main()
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
