#!/usr/bin/env python3
"""
registry_utils.py - Validator registry contract helpers

This module provides:
- The validator registry ABI (staking calls, paging views, events)
- Paged queries of the staked validator set
- Event log fetching into event_utils.Event records
- BLS public key file parsing and batching
"""

import json
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, TypeVar

from web3 import Web3

from .event_utils import EVENT_TYPES, Event

T = TypeVar("T")


# =============================================================================
# Constants
# =============================================================================

BLS_PUBKEY_LENGTH = 48
QUERY_PAGE_SIZE = 1000
LOG_CHUNK_SIZE = 50_000

EVENT_NAMES = {
    "staked": "Staked",
    "unstaked": "Unstaked",
    "withdraw": "StakeWithdrawn",
}

_STAKE_EVENT_INPUTS = """[
    {"indexed": true, "name": "txOriginator", "type": "address"},
    {"indexed": false, "name": "valBLSPubKey", "type": "bytes"},
    {"indexed": false, "name": "amount", "type": "uint256"}
]"""

VALIDATOR_REGISTRY_ABI = json.loads("""[
    {
        "inputs": [{"name": "valBLSPubKeys", "type": "bytes[]"}],
        "name": "stake",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "valBLSPubKeys", "type": "bytes[]"},
            {"name": "stakeOriginator", "type": "address"}
        ],
        "name": "delegateStake",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "inputs": [{"name": "valBLSPubKeys", "type": "bytes[]"}],
        "name": "unstake",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "valBLSPubKeys", "type": "bytes[]"}],
        "name": "withdraw",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "getNumberOfStakedValidators",
        "outputs": [
            {"name": "", "type": "uint256"},
            {"name": "", "type": "uint256"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "start", "type": "uint256"},
            {"name": "end", "type": "uint256"}
        ],
        "name": "getStakedValidators",
        "outputs": [
            {"name": "", "type": "bytes[]"},
            {"name": "", "type": "uint256"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {"anonymous": false, "inputs": %(inputs)s, "name": "Staked", "type": "event"},
    {"anonymous": false, "inputs": %(inputs)s, "name": "Unstaked", "type": "event"},
    {"anonymous": false, "inputs": %(inputs)s, "name": "StakeWithdrawn", "type": "event"}
]""" % {"inputs": _STAKE_EVENT_INPUTS})


class ValsetVersionMismatch(RuntimeError):
    """Raised when the staked set changed while it was being paged through."""


# =============================================================================
# Contract Access
# =============================================================================

def get_registry(w3: Web3, address: str) -> Any:
    return w3.eth.contract(address=Web3.to_checksum_address(address), abi=VALIDATOR_REGISTRY_ABI)


def get_number_of_staked_validators(registry: Any) -> Tuple[int, int]:
    count, version = registry.functions.getNumberOfStakedValidators().call()
    return int(count), int(version)


def get_staked_validators(registry: Any, page_size: int = QUERY_PAGE_SIZE) -> List[str]:
    """
    Query the full staked validator set as lowercase hex pubkeys (no 0x).

    Every page must report the same valset version as the count query,
    otherwise the set changed underneath us and the result would be torn.
    """
    count, version = get_number_of_staked_validators(registry)
    validators: List[str] = []
    for start in range(0, count, page_size):
        end = min(start + page_size, count)
        page, page_version = registry.functions.getStakedValidators(start, end).call()
        if int(page_version) != version:
            raise ValsetVersionMismatch(
                f"Valset version mismatch from len query: {page_version} != {version}"
            )
        validators.extend(bytes(key).hex() for key in page)

    if len(validators) != count:
        raise RuntimeError(
            f"number of staked validators ({count}) does not match "
            f"aggregated validator set length ({len(validators)})"
        )
    return validators


# =============================================================================
# Events
# =============================================================================

def fetch_events(
    registry: Any,
    event_type: str,
    from_block: int = 0,
    to_block: Optional[int] = None,
    chunk_size: int = LOG_CHUNK_SIZE,
    delay_seconds: float = 0.0,
) -> List[Event]:
    """Fetch registry events of one type, ``chunk_size`` blocks per request."""
    if event_type not in EVENT_TYPES:
        raise ValueError(f"unknown event type: {event_type}")
    if to_block is None:
        to_block = registry.w3.eth.block_number

    event_cls = getattr(registry.events, EVENT_NAMES[event_type])
    events: List[Event] = []
    start = from_block
    while start <= to_block:
        end = min(start + chunk_size - 1, to_block)
        for log in event_cls.get_logs(from_block=start, to_block=end):
            args = log["args"]
            events.append(
                Event(
                    tx_originator=Web3.to_checksum_address(args["txOriginator"]),
                    val_bls_pub_key=bytes(args["valBLSPubKey"]).hex(),
                    amount=int(args["amount"]),
                    block=int(log["blockNumber"]),
                )
            )
        start = end + 1
        if delay_seconds:
            time.sleep(delay_seconds)
    return events


# =============================================================================
# Key Files and Batching
# =============================================================================

def normalize_pubkey(pubkey: str) -> str:
    value = pubkey.strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    return value


def pubkey_to_bytes(pubkey: str) -> bytes:
    value = normalize_pubkey(pubkey)
    try:
        key = bytes.fromhex(value)
    except ValueError as exc:
        raise ValueError(f"invalid hex pubkey: {pubkey}") from exc
    if len(key) != BLS_PUBKEY_LENGTH:
        raise ValueError(
            f"BLS pubkey must be {BLS_PUBKEY_LENGTH} bytes, got {len(key)}: {pubkey}"
        )
    return key


def read_bls_pubkeys(path: Path) -> List[bytes]:
    """Read one hex BLS pubkey per line; blank lines are ignored."""
    keys = []
    for line in path.read_text().splitlines():
        if not line.strip():
            continue
        keys.append(pubkey_to_bytes(line))
    return keys


def split_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    if batch_size <= 0:
        raise ValueError("batch size must be positive")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]
