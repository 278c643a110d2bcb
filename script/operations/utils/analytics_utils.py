#!/usr/bin/env python3
"""
analytics_utils.py - Opened-commitment lookups against the analytics API

The analytics endpoint runs a stored SQL query and answers with
``{"syncSqlResponse": {"result": {"rows": [...]}}}``, one row per opened
commitment with ``blockNumber``, ``bidAmt`` and ``transaction_hash``.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import requests

from .beacon_utils import REQUEST_TIMEOUT_SECONDS


class AnalyticsAPIError(RuntimeError):
    """Raised on a failed or malformed analytics API response."""


@dataclass(frozen=True)
class OpenedCommit:
    block_number: int
    bid_amt: str
    tx_hash: str


def fetch_opened_commits(
    api_url: str,
    api_key: str,
    session: Optional[requests.Session] = None,
) -> Dict[int, OpenedCommit]:
    """
    Fetch opened commitments keyed by L1 block number.

    Raises:
        AnalyticsAPIError: non-200 status, undecodable body or a row
            without a numeric block number
    """
    http = session or requests
    resp = http.post(
        api_url,
        json={},
        headers={"api-key": api_key},
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    if resp.status_code != 200:
        raise AnalyticsAPIError(f"analytics API returned {resp.status_code}: {resp.text}")

    try:
        rows = resp.json()["syncSqlResponse"]["result"]["rows"]
    except (ValueError, KeyError, TypeError) as exc:
        raise AnalyticsAPIError(f"unexpected analytics API response: {exc}") from exc

    commits: Dict[int, OpenedCommit] = {}
    for row in rows or []:
        try:
            block_number = int(row["blockNumber"])
        except (KeyError, TypeError, ValueError) as exc:
            raise AnalyticsAPIError(f"bad blockNumber in analytics row {row!r}") from exc
        commits[block_number] = OpenedCommit(
            block_number=block_number,
            bid_amt=row.get("bidAmt", ""),
            tx_hash=row.get("transaction_hash", ""),
        )
    return commits
