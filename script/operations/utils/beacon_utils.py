#!/usr/bin/env python3
"""
beacon_utils.py - Beacon node and block explorer lookups

Used by the opted-in slot report and the registry migration to cross-check
registry data against the consensus layer.
"""

from typing import Dict, List, Optional

import requests

REQUEST_TIMEOUT_SECONDS = 30
FUTURE_EPOCH_MESSAGE = "Proposer duties were requested for a future epoch"


class BeaconAPIError(RuntimeError):
    """Raised on an unexpected beacon API response."""


class FutureEpochError(BeaconAPIError):
    """Raised when proposer duties are requested for an epoch not yet known."""


def trim_api_url(api_url: str) -> str:
    return api_url.rstrip("/")


def fetch_proposer_duties(
    api_url: str,
    epoch: int,
    session: Optional[requests.Session] = None,
) -> List[Dict[str, str]]:
    """
    Fetch proposer duties for an epoch.

    Returns:
        List of {"pubkey": ..., "slot": ...} entries as returned by the node
    """
    http = session or requests
    url = f"{trim_api_url(api_url)}/eth/v1/validator/duties/proposer/{epoch}"
    response = http.get(url, headers={"Accept": "application/json"}, timeout=REQUEST_TIMEOUT_SECONDS)
    if response.status_code != 200:
        body = response.text
        if FUTURE_EPOCH_MESSAGE in body:
            raise FutureEpochError(f"{FUTURE_EPOCH_MESSAGE}: {epoch}")
        raise BeaconAPIError(
            f"unexpected status code: {response.status_code}, response: {body}"
        )
    return response.json().get("data", [])


def get_block_number_for_slot(
    api_url: str,
    slot: int,
    session: Optional[requests.Session] = None,
) -> Optional[int]:
    """Execution block number proposed in ``slot``; None for a missed slot."""
    http = session or requests
    url = f"{trim_api_url(api_url)}/eth/v2/beacon/blocks/{slot}"
    response = http.get(url, headers={"Accept": "application/json"}, timeout=REQUEST_TIMEOUT_SECONDS)
    if response.status_code == 404:
        return None
    if response.status_code != 200:
        raise BeaconAPIError(f"unexpected status code: {response.status_code}")

    block_number = (
        response.json()
        .get("data", {})
        .get("message", {})
        .get("body", {})
        .get("execution_payload", {})
        .get("block_number")
    )
    if block_number is None:
        raise BeaconAPIError(f"no execution payload in block for slot {slot}")
    return int(block_number)


def is_registered_with_beacon_chain(
    explorer_api_url: str,
    pubkey: str,
    session: Optional[requests.Session] = None,
) -> bool:
    """Ask a beaconcha.in style explorer whether the validator exists."""
    http = session or requests
    key = pubkey if pubkey.startswith("0x") else "0x" + pubkey
    url = f"{trim_api_url(explorer_api_url)}/validator/{key}"
    response = http.get(url, timeout=REQUEST_TIMEOUT_SECONDS)
    if response.status_code != 200:
        raise BeaconAPIError(f"failed to get validator status: {response.status_code}")
    payload = response.json()
    return payload.get("status") == "OK" and bool(payload.get("data"))
