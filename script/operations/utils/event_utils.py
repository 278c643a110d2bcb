#!/usr/bin/env python3
"""
event_utils.py - Validator registry event artifacts

Registry events (staked / unstaked / withdraw) are snapshotted to JSON files
in an artifacts directory so later scripts can work from a fixed view:

    <event_type>_events_<YYYY-mm-dd_HH-MM-SS>_block_<n>.json

Readers always pick the most recently modified file for an event type.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

EVENT_TYPES = ("staked", "unstaked", "withdraw")
DEFAULT_ARTIFACTS_DIR = Path("artifacts")


@dataclass(frozen=True)
class Event:
    tx_originator: str
    val_bls_pub_key: str
    amount: int
    block: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "tx_originator": self.tx_originator,
            "val_bls_pub_key": self.val_bls_pub_key,
            "amount": self.amount,
            "block": self.block,
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Event":
        return Event(
            tx_originator=str(data["tx_originator"]),
            val_bls_pub_key=str(data["val_bls_pub_key"]).lower().removeprefix("0x"),
            amount=int(data["amount"]),
            block=int(data["block"]),
        )


# =============================================================================
# Artifact Files
# =============================================================================

def artifact_filename(event_type: str, block_number: int, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")
    return f"{event_type}_events_{stamp}_block_{block_number}.json"


def write_events(
    artifacts_dir: Path,
    event_type: str,
    events: Iterable[Event],
    block_number: int,
    now: Optional[datetime] = None,
) -> Path:
    if event_type not in EVENT_TYPES:
        raise ValueError(f"unknown event type: {event_type}")
    artifacts_dir.mkdir(parents=True, exist_ok=True)
    path = artifacts_dir / artifact_filename(event_type, block_number, now)
    payload = [event.to_dict() for event in events]
    path.write_text(json.dumps(payload, indent=2))
    return path


def find_latest_artifact(artifacts_dir: Path, event_type: str) -> Path:
    files = list(artifacts_dir.glob(f"{event_type}_events_*.json"))
    if not files:
        raise FileNotFoundError(f"no {event_type} event files found in {artifacts_dir}")
    return max(files, key=lambda p: p.stat().st_mtime)


def read_events(artifacts_dir: Path, event_type: str) -> List[Event]:
    path = find_latest_artifact(artifacts_dir, event_type)
    print(f"Using artifact file: {path}")
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"failed to decode events from file {path}: {exc}") from exc
    return [Event.from_dict(item) for item in data or []]


# =============================================================================
# Validator Set Reconstruction
# =============================================================================

def reconstruct_validators(
    staked_events: Iterable[Event],
    withdrawn_events: Iterable[Event],
) -> Dict[str, int]:
    """Stake per validator pubkey: staked amounts minus withdrawn amounts."""
    validators: Dict[str, int] = {}
    for event in staked_events:
        validators[event.val_bls_pub_key] = validators.get(event.val_bls_pub_key, 0) + event.amount
    for event in withdrawn_events:
        if event.val_bls_pub_key in validators:
            validators[event.val_bls_pub_key] -= event.amount
    return validators


def active_stake_events(
    staked_events: Iterable[Event],
    unstaked_events: Iterable[Event],
    withdrawn_events: Iterable[Event],
) -> Dict[str, Event]:
    """Latest staked event per pubkey, excluding unstaked or withdrawn keys."""
    active: Dict[str, Event] = {}
    for event in staked_events:
        active[event.val_bls_pub_key] = event
    for event in unstaked_events:
        active.pop(event.val_bls_pub_key, None)
    for event in withdrawn_events:
        active.pop(event.val_bls_pub_key, None)
    return active


def pending_withdrawals(
    staked_events: Iterable[Event],
    unstaked_events: Iterable[Event],
    withdrawn_events: Iterable[Event],
) -> Dict[str, Event]:
    """Latest staked event per pubkey that was unstaked but not yet withdrawn."""
    latest: Dict[str, Event] = {}
    for event in staked_events:
        latest[event.val_bls_pub_key] = event
    unstaked = {event.val_bls_pub_key for event in unstaked_events}
    withdrawn = {event.val_bls_pub_key for event in withdrawn_events}
    return {
        pubkey: event
        for pubkey, event in latest.items()
        if pubkey in unstaked and pubkey not in withdrawn
    }


def pubkeys_staked_by(
    originator: str,
    staked_pubkeys: Iterable[str],
    active: Dict[str, Event],
) -> List[str]:
    """Filter on-chain staked pubkeys down to those staked by ``originator``."""
    wanted = originator.lower()
    matches = []
    for pubkey in staked_pubkeys:
        event = active.get(pubkey)
        if event is not None and event.tx_originator.lower() == wanted:
            matches.append(pubkey)
    return matches


def group_by_originator(events: Iterable[Event]) -> Dict[str, List[str]]:
    groups: Dict[str, List[str]] = {}
    for event in events:
        groups.setdefault(event.tx_originator, []).append(event.val_bls_pub_key)
    return groups
