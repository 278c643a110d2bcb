#!/usr/bin/env python3
"""
opted_in_slots.py - Find proposer slots of opted-in validators

Walks proposer duties for an epoch range on a beacon node and keeps every
slot proposed by an opted-in validator at or after its opt-in block. The
epoch range is split across worker threads; results are exported to CSV
sorted by opt-in block.

Input CSV columns:
    pubKey, optInBlock, optInType, podOwner, vault, operator, withdrawalAddr

Output CSV columns:
    slot, blockNumber, pubKey, optInBlock, optInType, podOwner, vault,
    operator, withdrawalAddr

Usage:
    python3 opted_in_slots.py --validators-csv opted_in_validators.csv \\
        --start-epoch 348700 --end-epoch 349200
    python3 opted_in_slots.py --validators-csv regs.csv --start-epoch 348700 \\
        --end-epoch 348710 --workers 2 --output slots.csv

Environment Variables:
    BEACON_API_URL: optional override of the network's beacon node
"""

import argparse
import csv
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests

# Add script/ to sys.path for absolute imports when run directly
script_dir = Path(__file__).resolve().parent.parent.parent
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

from operations.utils.beacon_utils import fetch_proposer_duties, get_block_number_for_slot
from operations.utils.config import NETWORKS, load_env_file, load_network_config, setup_logging

DEFAULT_WORKERS = 4
DEFAULT_OUTPUT = "opted_in_slots.csv"

VALIDATOR_HEADER = [
    "pubKey",
    "optInBlock",
    "optInType",
    "podOwner",
    "vault",
    "operator",
    "withdrawalAddr",
]
OUTPUT_HEADER = ["slot", "blockNumber"] + VALIDATOR_HEADER


@dataclass(frozen=True)
class OptedInValidator:
    pub_key: str
    opt_in_block: int
    opt_in_type: str
    pod_owner: str
    vault: str
    operator: str
    withdrawal_addr: str

    def to_row(self) -> List[str]:
        return [
            self.pub_key,
            str(self.opt_in_block),
            self.opt_in_type,
            self.pod_owner,
            self.vault,
            self.operator,
            self.withdrawal_addr,
        ]


@dataclass(frozen=True)
class OptedInSlot:
    slot: int
    block_number: int
    validator: OptedInValidator

    def to_row(self) -> List[str]:
        return [str(self.slot), str(self.block_number)] + self.validator.to_row()


# =============================================================================
# CSV I/O
# =============================================================================

def load_validators(path: Path) -> Dict[str, OptedInValidator]:
    """Opted-in validators keyed by pubkey (no 0x). Unparseable rows are skipped."""
    validators: Dict[str, OptedInValidator] = {}
    with path.open(newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        print(f"CSV Headers: {header}")
        for row in reader:
            if len(row) < 7:
                print(f"Error reading CSV record: {row}")
                continue
            try:
                opt_in_block = int(row[1])
            except ValueError:
                print(f"Error parsing optInBlock: {row[1]!r}")
                continue
            pubkey = row[0].strip().lower().removeprefix("0x")
            validators[pubkey] = OptedInValidator(
                pub_key=pubkey,
                opt_in_block=opt_in_block,
                opt_in_type=row[2],
                pod_owner=row[3],
                vault=row[4],
                operator=row[5],
                withdrawal_addr=row[6],
            )
    print(f"Loaded {len(validators)} validators from CSV")
    return validators


def export_slots(path: Path, slots: List[OptedInSlot]) -> None:
    print(f"Exporting {len(slots)} opted-in slots to csv")
    ordered = sorted(slots, key=lambda s: (s.validator.opt_in_block, s.slot))
    with path.open("w", newline="") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(OUTPUT_HEADER)
        for slot in ordered:
            writer.writerow(slot.to_row())
    print(f"Exported {len(slots)} opted-in slots to {path}")


# =============================================================================
# Epoch Scanning
# =============================================================================

def split_epoch_range(start_epoch: int, end_epoch: int, parts: int) -> List[Tuple[int, int]]:
    """Split [start_epoch, end_epoch] into up to ``parts`` contiguous inclusive ranges."""
    if end_epoch < start_epoch:
        raise ValueError(f"end epoch {end_epoch} is before start epoch {start_epoch}")
    if parts <= 0:
        raise ValueError("parts must be positive")

    total = end_epoch - start_epoch + 1
    parts = min(parts, total)
    size, extra = divmod(total, parts)
    ranges = []
    lo = start_epoch
    for i in range(parts):
        hi = lo + size - 1 + (1 if i < extra else 0)
        ranges.append((lo, hi))
        lo = hi + 1
    return ranges


def scan_epochs(
    api_url: str,
    start_epoch: int,
    end_epoch: int,
    validators: Dict[str, OptedInValidator],
    session: Optional[requests.Session] = None,
) -> List[OptedInSlot]:
    found: List[OptedInSlot] = []
    for epoch in range(start_epoch, end_epoch + 1):
        started = time.perf_counter()
        print(f"Fetching proposer duties for epoch {epoch}")
        for duty in fetch_proposer_duties(api_url, epoch, session):
            pubkey = duty["pubkey"].lower().removeprefix("0x")
            validator = validators.get(pubkey)
            if validator is None:
                continue
            slot = int(duty["slot"])
            block_number = get_block_number_for_slot(api_url, slot, session)
            if block_number is None:
                print(f"Missed slot {slot} for pubkey {pubkey}")
                continue
            if block_number >= validator.opt_in_block:
                found.append(OptedInSlot(slot=slot, block_number=block_number, validator=validator))
                print(
                    f"Found opted-in slot. Slot number: {slot}, "
                    f"block number: {block_number}, pubkey: {pubkey}"
                )
        print(f"Time taken for epoch {epoch}: {time.perf_counter() - started:.2f}s")
    return found


def find_opted_in_slots(
    api_url: str,
    start_epoch: int,
    end_epoch: int,
    validators: Dict[str, OptedInValidator],
    workers: int = DEFAULT_WORKERS,
) -> List[OptedInSlot]:
    """Scan the epoch range in parallel; the first worker error is raised."""
    local = threading.local()

    def session() -> requests.Session:
        if not hasattr(local, "session"):
            local.session = requests.Session()
        return local.session

    slots: List[OptedInSlot] = []
    ranges = split_epoch_range(start_epoch, end_epoch, workers)
    with ThreadPoolExecutor(max_workers=len(ranges)) as ex:
        futs = [
            ex.submit(lambda lo, hi: scan_epochs(api_url, lo, hi, validators, session()), lo, hi)
            for lo, hi in ranges
        ]
        for f in as_completed(futs):
            slots.extend(f.result())
    return slots


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Find proposer slots of opted-in validators")
    parser.add_argument("--validators-csv", required=True, help="CSV of opted-in validators")
    parser.add_argument("--start-epoch", type=int, required=True)
    parser.add_argument("--end-epoch", type=int, required=True)
    parser.add_argument("--network", default="mainnet", choices=sorted(NETWORKS))
    parser.add_argument("--beacon-api-url", help="Beacon node URL (default: network preset)")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS)
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help=f"Output CSV (default: {DEFAULT_OUTPUT})")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: Any = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    load_env_file(Path(__file__).resolve().parent)

    config = load_network_config(args.network)
    api_url = args.beacon_api_url or config.beacon_api_url

    validators = load_validators(Path(args.validators_csv))
    slots = find_opted_in_slots(api_url, args.start_epoch, args.end_epoch, validators, args.workers)
    export_slots(Path(args.output), slots)


def cli() -> None:
    try:
        main()
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
