#!/usr/bin/env python3
"""
tx_utils.py - Reliable transaction submission with fee escalation

This module provides the submission engine used by every script that sends
transactions:
- Fee parameter handling (EIP-1559 tip / fee cap)
- Fee boosting between attempts (+10% +1 wei on tip and base fee)
- Bounded retry loop that replaces a stuck transaction at the same nonce

The engine never talks to web3 directly. It consumes a chain client (see
chain_utils.Web3ChainClient) and a submit callback supplied by the caller.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_ATTEMPTS = 10
INCLUSION_TIMEOUT_SECONDS = 60
DEFAULT_GAS_LIMIT = 3_000_000
BOOST_DIVISOR = 10  # 10% per boost

SOFT_SUBMISSION_ERRORS = (
    "replacement transaction underpriced",
    "already known",
)
NONCE_TOO_LOW_ERROR = "nonce too low"


# =============================================================================
# Errors
# =============================================================================

class TxError(RuntimeError):
    """Base class for transaction submission failures."""


class InvalidFeeError(TxError, ValueError):
    """Raised when fee parameters would violate fee_cap >= tip >= 0."""


class FeeSuggestionError(TxError):
    """Raised when the node cannot provide fee suggestions."""


class InclusionTimeout(TxError):
    """Raised by a chain client when a transaction is not mined in time."""


class SubmissionError(TxError):
    """Raised when the submit callback fails with a non-retryable error."""

    def __init__(self, message: str, attempt: int) -> None:
        super().__init__(message)
        self.attempt = attempt


class ConfirmationError(TxError):
    """Raised when the client fails while waiting for inclusion."""

    def __init__(self, message: str, attempt: int, tx_hash: str) -> None:
        super().__init__(message)
        self.attempt = attempt
        self.tx_hash = tx_hash


class RetriesExhaustedError(TxError):
    """Raised when no attempt was included within the attempt budget.

    The last broadcast transaction may still be mined later; callers that care
    can inspect ``attempts`` for the hashes that reached the network.
    """

    def __init__(self, message: str, attempts: List["AttemptRecord"]) -> None:
        super().__init__(message)
        self.attempts = attempts

    @property
    def tx_hashes(self) -> List[str]:
        return [a.tx_hash for a in self.attempts if a.tx_hash]


# =============================================================================
# Models
# =============================================================================

@dataclass(frozen=True)
class FeeParams:
    """EIP-1559 fee parameters for one attempt."""

    tip: int
    fee_cap: int
    gas_limit: int
    nonce: int

    def __post_init__(self) -> None:
        if self.tip < 0:
            raise InvalidFeeError(f"tip cannot be negative: {self.tip}")
        if self.fee_cap < self.tip:
            raise InvalidFeeError(
                f"fee cap {self.fee_cap} is below tip {self.tip}"
            )
        if self.gas_limit <= 0:
            raise InvalidFeeError(f"gas limit must be positive: {self.gas_limit}")
        if self.nonce < 0:
            raise InvalidFeeError(f"nonce cannot be negative: {self.nonce}")

    @property
    def base_fee(self) -> int:
        return self.fee_cap - self.tip


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    block_number: int
    status: int
    gas_used: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, raw: Any) -> "Receipt":
        tx_hash = raw["transactionHash"]
        if isinstance(tx_hash, (bytes, bytearray)):
            tx_hash = "0x" + bytes(tx_hash).hex()
        return cls(
            tx_hash=str(tx_hash),
            block_number=int(raw["blockNumber"]),
            status=int(raw["status"]),
            gas_used=int(raw.get("gasUsed", 0)),
        )


SubmitTxFunc = Callable[[Dict[str, Any]], str]


@dataclass(frozen=True)
class TransactionIntent:
    """One logical transaction, e.g. "stake this batch".

    ``submit`` receives web3 transaction params (from, value, gas, nonce and
    fee fields) and must broadcast exactly one transaction, returning its hash.
    """

    submit: SubmitTxFunc
    sender: str
    value: int = 0
    gas_limit: int = DEFAULT_GAS_LIMIT
    description: str = "tx"

    def tx_params(self, fees: FeeParams) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "value": self.value,
            "gas": fees.gas_limit,
            "nonce": fees.nonce,
            "maxFeePerGas": fees.fee_cap,
            "maxPriorityFeePerGas": fees.tip,
        }


class AttemptOutcome(Enum):
    INCLUDED = "included"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class AttemptRecord:
    index: int
    fees: FeeParams
    tx_hash: Optional[str] = None
    outcome: Optional[AttemptOutcome] = None


class ChainClient(Protocol):
    def get_pending_nonce(self, address: str) -> int:
        ...

    def suggest_priority_fee(self) -> int:
        ...

    def suggest_fee_cap(self) -> int:
        ...

    def wait_for_inclusion(self, tx_hash: str, timeout: float) -> Receipt:
        ...

    def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        ...


# =============================================================================
# Fee Handling
# =============================================================================

def is_soft_submission_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in SOFT_SUBMISSION_ERRORS)


def is_nonce_too_low_error(exc: BaseException) -> bool:
    return NONCE_TOO_LOW_ERROR in str(exc).lower()


def suggest_fees(client: ChainClient) -> Tuple[int, int]:
    """
    Fetch the node's suggested (tip, fee_cap).

    The fee cap suggestion includes the current base fee, so a cap below the
    tip means the node returned inconsistent data and is rejected.
    """
    try:
        tip = int(client.suggest_priority_fee())
        fee_cap = int(client.suggest_fee_cap())
    except Exception as exc:
        raise FeeSuggestionError(f"failed to get fee suggestions: {exc}") from exc

    if tip < 0:
        raise InvalidFeeError(f"suggested tip cannot be negative: {tip}")
    if fee_cap < tip:
        raise InvalidFeeError(
            f"new base fee cannot be negative: fee cap {fee_cap} < tip {tip}"
        )
    return tip, fee_cap


def boost_value(value: int) -> int:
    """Increase by 10% plus one unit so small values never stall at zero."""
    return value + value // BOOST_DIVISOR + 1


def boost_fee_params(prev: FeeParams, suggested_tip: int, suggested_fee_cap: int) -> FeeParams:
    """
    Compute replacement fees that outbid ``prev`` on both tip and base fee.

    Args:
        prev: Fees of the attempt being replaced
        suggested_tip: Current network priority fee suggestion
        suggested_fee_cap: Current network fee cap suggestion (tip + base fee)

    Returns:
        New FeeParams with the same nonce and gas limit
    """
    if suggested_tip < 0 or suggested_fee_cap < suggested_tip:
        raise InvalidFeeError(
            f"new base fee cannot be negative: fee cap {suggested_fee_cap} < tip {suggested_tip}"
        )

    base_fee = max(suggested_fee_cap - suggested_tip, prev.base_fee)
    tip = max(suggested_tip, prev.tip)

    boosted_tip = boost_value(tip)
    boosted_base_fee = boost_value(base_fee)
    return replace(prev, tip=boosted_tip, fee_cap=boosted_base_fee + boosted_tip)


def prepare_fee_params(
    client: ChainClient,
    sender: str,
    gas_limit: int = DEFAULT_GAS_LIMIT,
    nonce: Optional[int] = None,
) -> FeeParams:
    """Build first-attempt fees from the pending nonce and node suggestions."""
    if nonce is None:
        nonce = client.get_pending_nonce(sender)
    tip, fee_cap = suggest_fees(client)
    return FeeParams(tip=tip, fee_cap=fee_cap, gas_limit=gas_limit, nonce=nonce)


# =============================================================================
# Submission Engine
# =============================================================================

class TxSubmitter:
    """Gets one intent included, replacing stuck attempts with higher fees."""

    def __init__(
        self,
        client: ChainClient,
        max_attempts: int = MAX_ATTEMPTS,
        inclusion_timeout: float = INCLUSION_TIMEOUT_SECONDS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._max_attempts = max_attempts
        self._inclusion_timeout = inclusion_timeout

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def boost(self, fees: FeeParams) -> FeeParams:
        logger.debug(
            "gas params for tx that was not included: tip=%d fee_cap=%d base_fee=%d",
            fees.tip, fees.fee_cap, fees.base_fee,
        )
        tip, fee_cap = suggest_fees(self._client)
        boosted = boost_fee_params(fees, tip, fee_cap)
        logger.debug(
            "boosted gas: tip=%d fee_cap=%d base_fee=%d",
            boosted.tip, boosted.fee_cap, boosted.base_fee,
        )
        return boosted

    def submit_with_retry(self, intent: TransactionIntent, fees: FeeParams) -> Receipt:
        """
        Submit ``intent`` and return its receipt once included.

        Attempts are strictly sequential and share ``fees.nonce``. The
        returned receipt may still report a reverted execution; interpreting
        that is left to the caller.

        Raises:
            SubmissionError: the submit callback failed with a fatal error
            ConfirmationError: the client failed while waiting for inclusion
            RetriesExhaustedError: no attempt was included
            FeeSuggestionError / InvalidFeeError: fees could not be boosted
        """
        attempts: List[AttemptRecord] = []

        for index in range(self._max_attempts):
            if index > 0:
                logger.info(
                    "%s not included, boosting fees by 10%% (attempt %d/%d)",
                    intent.description, index + 1, self._max_attempts,
                )
                fees = self.boost(fees)

            record = AttemptRecord(index=index, fees=fees)
            attempts.append(record)

            try:
                tx_hash = intent.submit(intent.tx_params(fees))
            except Exception as exc:
                if is_soft_submission_error(exc):
                    record.outcome = AttemptOutcome.REJECTED
                    logger.error(
                        "%s submission rejected on attempt %d: %s",
                        intent.description, index, exc,
                    )
                    continue
                if is_nonce_too_low_error(exc):
                    receipt = self._find_included_attempt(attempts)
                    if receipt is not None:
                        record.outcome = AttemptOutcome.REJECTED
                        logger.info(
                            "%s: nonce %d already used by earlier attempt %s",
                            intent.description, fees.nonce, receipt.tx_hash,
                        )
                        return receipt
                record.outcome = AttemptOutcome.FAILED
                raise SubmissionError(
                    f"{intent.description} submission failed on attempt {index}: {exc}",
                    attempt=index,
                ) from exc

            record.tx_hash = tx_hash
            logger.info(
                "%s sent (attempt %d, nonce %d, tip %d, fee cap %d): %s",
                intent.description, index, fees.nonce, fees.tip, fees.fee_cap, tx_hash,
            )

            try:
                receipt = self._client.wait_for_inclusion(tx_hash, self._inclusion_timeout)
            except InclusionTimeout:
                record.outcome = AttemptOutcome.TIMED_OUT
                logger.info(
                    "%s %s not included within %s seconds",
                    intent.description, tx_hash, self._inclusion_timeout,
                )
                continue
            except Exception as exc:
                record.outcome = AttemptOutcome.FAILED
                raise ConfirmationError(
                    f"failed waiting for {intent.description} {tx_hash}: {exc}",
                    attempt=index,
                    tx_hash=tx_hash,
                ) from exc

            record.outcome = AttemptOutcome.INCLUDED
            return receipt

        # A replaced attempt can be mined after its own wait ran out.
        receipt = self._find_included_attempt(attempts)
        if receipt is not None:
            logger.info(
                "%s included through earlier attempt %s",
                intent.description, receipt.tx_hash,
            )
            return receipt

        raise RetriesExhaustedError(
            f"{intent.description} not included after {self._max_attempts} attempts",
            attempts=attempts,
        )

    def _find_included_attempt(self, attempts: List[AttemptRecord]) -> Optional[Receipt]:
        # Newest first: a later replacement is the likelier one to be mined.
        for record in reversed(attempts):
            if not record.tx_hash:
                continue
            try:
                receipt = self._client.get_receipt(record.tx_hash)
            except Exception as exc:
                raise ConfirmationError(
                    f"failed to look up receipt for {record.tx_hash}: {exc}",
                    attempt=record.index,
                    tx_hash=record.tx_hash,
                ) from exc
            if receipt is not None:
                return receipt
        return None
