from .tx_utils import (
    AttemptOutcome,
    AttemptRecord,
    ConfirmationError,
    FeeParams,
    FeeSuggestionError,
    InclusionTimeout,
    InvalidFeeError,
    Receipt,
    RetriesExhaustedError,
    SubmissionError,
    TransactionIntent,
    TxError,
    TxSubmitter,
    boost_fee_params,
    prepare_fee_params,
)

__all__ = [
    "AttemptOutcome",
    "AttemptRecord",
    "ConfirmationError",
    "FeeParams",
    "FeeSuggestionError",
    "InclusionTimeout",
    "InvalidFeeError",
    "Receipt",
    "RetriesExhaustedError",
    "SubmissionError",
    "TransactionIntent",
    "TxError",
    "TxSubmitter",
    "boost_fee_params",
    "prepare_fee_params",
]
