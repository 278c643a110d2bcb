#!/usr/bin/env python3
"""
chain_utils.py - web3 plumbing for the submission engine

This module provides:
- Web3ChainClient: the chain capabilities consumed by tx_utils.TxSubmitter
- contract_call_submitter: sign-and-send callbacks for contract calls
- NonceAllocator: one owner for a sender's nonces
- submit_intents: the per-batch send loop shared by the scripts
- Connection and balance helpers shared by the scripts
"""

import logging
import threading
from typing import Any, Callable, Iterable, List, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from .tx_utils import (
    InclusionTimeout,
    Receipt,
    SubmitTxFunc,
    TransactionIntent,
    TxSubmitter,
    prepare_fee_params,
)

logger = logging.getLogger(__name__)

RECEIPT_POLL_SECONDS = 2.0
HTTP_TIMEOUT_SECONDS = 30


# =============================================================================
# Connection Helpers
# =============================================================================

def connect(rpc_url: str) -> Web3:
    """Connect to an HTTP JSON-RPC endpoint, failing if it is unreachable."""
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": HTTP_TIMEOUT_SECONDS}))
    if not w3.is_connected():
        raise RuntimeError(f"Cannot connect to RPC: {rpc_url}")
    return w3


def ensure_balance(w3: Web3, address: str, minimum_wei: int) -> int:
    balance = w3.eth.get_balance(Web3.to_checksum_address(address))
    if balance < minimum_wei:
        raise RuntimeError(
            f"Insufficient balance. Please fund {address} with at least "
            f"{Web3.from_wei(minimum_wei, 'ether')} ETH "
            f"(current: {Web3.from_wei(balance, 'ether')} ETH)"
        )
    return balance


# =============================================================================
# Chain Client
# =============================================================================

class Web3ChainClient:
    """Chain capabilities backed by a web3 instance."""

    def __init__(self, w3: Web3, poll_latency: float = RECEIPT_POLL_SECONDS) -> None:
        self._w3 = w3
        self._poll_latency = poll_latency

    @property
    def w3(self) -> Web3:
        return self._w3

    def get_pending_nonce(self, address: str) -> int:
        return self._w3.eth.get_transaction_count(Web3.to_checksum_address(address), "pending")

    def suggest_priority_fee(self) -> int:
        return int(self._w3.eth.max_priority_fee)

    def suggest_fee_cap(self) -> int:
        # eth_gasPrice on EIP-1559 nodes is the suggested tip plus the base fee
        return int(self._w3.eth.gas_price)

    def wait_for_inclusion(self, tx_hash: str, timeout: float) -> Receipt:
        try:
            raw = self._w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=timeout,
                poll_latency=self._poll_latency,
            )
        except TimeExhausted as exc:
            raise InclusionTimeout(f"{tx_hash} not included within {timeout}s") from exc
        return Receipt.from_web3(raw)

    def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        try:
            raw = self._w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        if raw is None:
            return None
        return Receipt.from_web3(raw)


# =============================================================================
# Submit Callbacks
# =============================================================================

def contract_call_submitter(
    w3: Web3,
    account: LocalAccount,
    call: Any,
    chain_id: int,
) -> SubmitTxFunc:
    """
    Wrap a bound contract call (e.g. ``registry.functions.stake(keys)``) as a
    submit callback for TransactionIntent.

    Each invocation builds the transaction with the provided fee params,
    signs it locally and broadcasts it, so every attempt is a fresh signature
    at the same nonce.
    """

    def submit(params: dict) -> str:
        tx = call.build_transaction({**params, "chainId": chain_id})
        signed = account.sign_transaction(tx)
        return Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))

    return submit


# =============================================================================
# Nonce Allocation
# =============================================================================

class NonceAllocator:
    """
    Hands out nonces for one sender atomically.

    The first allocation reads the pending nonce from the node; later ones
    increment locally. Call reset() after a failure so the next allocation
    re-syncs with the node.
    """

    def __init__(self, client: Any, address: str) -> None:
        self._client = client
        self._address = address
        self._lock = threading.Lock()
        self._next: Optional[int] = None

    def allocate(self) -> int:
        with self._lock:
            if self._next is None:
                self._next = self._client.get_pending_nonce(self._address)
                logger.debug("pending nonce for %s: %d", self._address, self._next)
            nonce = self._next
            self._next += 1
            return nonce

    def reset(self) -> None:
        with self._lock:
            self._next = None


# =============================================================================
# Batch Submission
# =============================================================================

class TxRevertedError(RuntimeError):
    """Raised when an intent was included but its execution failed."""

    def __init__(self, index: int, intent: TransactionIntent, receipt: Receipt) -> None:
        super().__init__(f"{intent.description} tx {receipt.tx_hash} included, but failed")
        self.index = index
        self.intent = intent
        self.receipt = receipt


def submit_intents(
    submitter: TxSubmitter,
    client: Any,
    allocator: NonceAllocator,
    intents: Iterable[TransactionIntent],
    on_included: Optional[Callable[[int, Receipt], None]] = None,
) -> List[Receipt]:
    """
    Send intents one after another, each at its own nonce, and stop at the
    first one that fails or reverts.

    ``on_included(index, receipt)`` runs after each successful intent
    (index starts at 1). Any failure before inclusion resets ``allocator``
    so the next run starts from the node's pending nonce.

    Raises:
        TxRevertedError: an intent was mined with a failed status
        TxError: fee preparation or submission failed (see tx_utils)
    """
    receipts = []
    for idx, intent in enumerate(intents, start=1):
        try:
            fees = prepare_fee_params(client, intent.sender, intent.gas_limit, nonce=allocator.allocate())
            receipt = submitter.submit_with_retry(intent, fees)
        except Exception:
            allocator.reset()
            raise

        print(f"{intent.description} included in block: {receipt.block_number}")
        if not receipt.succeeded:
            raise TxRevertedError(idx, intent, receipt)

        receipts.append(receipt)
        if on_included is not None:
            on_included(idx, receipt)
    return receipts
