#!/usr/bin/env python3
"""
missed_slots.py - Mark opted-in slots without an opened commitment as missed

Reads the slots exported by opted_in_slots.py, asks the analytics API for
every opened commitment and flags each slot whose block has none. The
result is the same CSV with a trailing ``missed`` column, ordered by slot.

Usage:
    python3 missed_slots.py --slots-csv opted_in_slots.csv
    python3 missed_slots.py --slots-csv opted_in_slots.csv --output missed_slots.csv \\
        --api-url https://endpoint.sentio.xyz/primev/mevcommit/opened_commits_apr_22

Environment Variables:
    ANALYTICS_API_KEY: API key for the analytics endpoint (or --api-key)
    ANALYTICS_API_URL: optional override of the analytics endpoint
"""

import argparse
import csv
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

# Add script/ to sys.path for absolute imports when run directly
script_dir = Path(__file__).resolve().parent.parent.parent
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

from operations.opted_in.opted_in_slots import OUTPUT_HEADER, OptedInSlot, OptedInValidator
from operations.utils.analytics_utils import OpenedCommit, fetch_opened_commits
from operations.utils.config import (
    NETWORKS,
    ConfigError,
    load_env_file,
    load_network_config,
    setup_logging,
)

DEFAULT_OUTPUT = "missed_slots.csv"
MISSED_HEADER = OUTPUT_HEADER + ["missed"]


@dataclass(frozen=True)
class CheckedSlot:
    slot: OptedInSlot
    missed: bool

    def to_row(self) -> List[str]:
        return self.slot.to_row() + [str(self.missed).lower()]


def load_slots(path: Path) -> Dict[int, OptedInSlot]:
    """Opted-in slots keyed by block number. Malformed rows raise ValueError."""
    slots: Dict[int, OptedInSlot] = {}
    with path.open(newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        print(f"CSV Headers: {header}")
        for line, row in enumerate(reader, start=2):
            if len(row) < len(OUTPUT_HEADER):
                raise ValueError(f"{path}:{line}: expected {len(OUTPUT_HEADER)} columns, got {len(row)}")
            try:
                slot = OptedInSlot(
                    slot=int(row[0]),
                    block_number=int(row[1]),
                    validator=OptedInValidator(
                        pub_key=row[2],
                        opt_in_block=int(row[3]),
                        opt_in_type=row[4],
                        pod_owner=row[5],
                        vault=row[6],
                        operator=row[7],
                        withdrawal_addr=row[8],
                    ),
                )
            except ValueError as exc:
                raise ValueError(f"{path}:{line}: {exc}") from exc
            slots[slot.block_number] = slot
    print(f"Loaded {len(slots)} opted-in slots from CSV")
    return slots


def mark_missed(slots: Dict[int, OptedInSlot], commits: Dict[int, OpenedCommit]) -> List[CheckedSlot]:
    checked = []
    for block_number, slot in sorted(slots.items(), key=lambda item: item[1].slot):
        missed = block_number not in commits
        print(f"{'Missed' if missed else 'Not missed'}: {slot.slot} {block_number}")
        checked.append(CheckedSlot(slot=slot, missed=missed))
    return checked


def export_checked(path: Path, checked: List[CheckedSlot]) -> None:
    with path.open("w", newline="") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(MISSED_HEADER)
        for entry in checked:
            writer.writerow(entry.to_row())
    missed = sum(1 for entry in checked if entry.missed)
    print(f"Wrote {len(checked)} slots ({missed} missed) to {path}")


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mark opted-in slots without an opened commitment")
    parser.add_argument("--slots-csv", required=True, help="CSV written by opted_in_slots.py")
    parser.add_argument("--network", default="mainnet", choices=sorted(NETWORKS))
    parser.add_argument("--api-url", help="Analytics endpoint (default: ANALYTICS_API_URL or preset)")
    parser.add_argument("--api-key", help="Analytics API key (default: ANALYTICS_API_KEY)")
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help=f"Output CSV (default: {DEFAULT_OUTPUT})")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: Any = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_env_file(Path(__file__).resolve().parent)

    config = load_network_config(args.network)
    api_url = args.api_url or config.analytics_api_url
    api_key = args.api_key or config.analytics_api_key
    if not api_key:
        raise ConfigError("ANALYTICS_API_KEY not set (or pass --api-key)")

    slots = load_slots(Path(args.slots_csv))
    commits = fetch_opened_commits(api_url, api_key)
    print(f"Loaded {len(commits)} opened commits from the analytics API")

    export_checked(Path(args.output), mark_missed(slots, commits))


def cli() -> None:
    try:
        main()
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
