# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Public error and outcome API.

Callers (an HTTP layer, a CLI, tests) only need this module to interpret what
`RecordService` returns.
"""

from .errors import (
    ConnectionFailure,
    DeserializationFailure,
    DuplicateKey,
    ErrorKind,
    NotFound,
    OperationTimeout,
    ProcessingFailure,
    ReadTimeout,
    RelikitError,
    TooManyClients,
    WriteTimeout,
    classify_error,
)
from .outcomes import OperationResult, OutcomeStatus, outcome_from_error

__all__ = [
    "ConnectionFailure",
    "DeserializationFailure",
    "DuplicateKey",
    "ErrorKind",
    "NotFound",
    "OperationTimeout",
    "ProcessingFailure",
    "ReadTimeout",
    "RelikitError",
    "TooManyClients",
    "WriteTimeout",
    "classify_error",
    "OperationResult",
    "OutcomeStatus",
    "outcome_from_error",
]
