# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Error taxonomy for the reliability harness.

Every failure the core can produce belongs to a closed set of `ErrorKind`s.
The queue worker decides on retries by matching the kind (transient or not),
and both dispatch strategies map kinds onto the same caller-visible outcomes.
"""

from enum import Enum


class ErrorKind(str, Enum):
    CONNECTION = "connection"
    READ_TIMEOUT = "read_timeout"
    WRITE_TIMEOUT = "write_timeout"
    TOO_MANY_CLIENTS = "too_many_clients"
    NOT_FOUND = "not_found"
    DUPLICATE_KEY = "duplicate_key"
    DESERIALIZATION = "deserialization"
    PROCESSING = "processing"

    @property
    def transient(self) -> bool:
        """Whether repeating the same operation may succeed."""
        return self not in _PERMANENT_KINDS


_PERMANENT_KINDS = frozenset({ErrorKind.NOT_FOUND, ErrorKind.DUPLICATE_KEY, ErrorKind.DESERIALIZATION})


class RelikitError(Exception):
    """Base class for all harness errors."""

    kind: ErrorKind = ErrorKind.PROCESSING


class ConnectionFailure(RelikitError):
    """Simulated (or real) unavailability of the backing service."""

    kind = ErrorKind.CONNECTION


class OperationTimeout(RelikitError):
    """Base for read/write timeouts."""


class ReadTimeout(OperationTimeout):
    kind = ErrorKind.READ_TIMEOUT


class WriteTimeout(OperationTimeout):
    kind = ErrorKind.WRITE_TIMEOUT


class TooManyClients(RelikitError):
    """Admission rejected: the concurrent-operation ceiling is reached."""

    kind = ErrorKind.TOO_MANY_CLIENTS

    def __init__(self, maximum: int, current: int) -> None:
        super().__init__(f"Too many concurrent clients. Maximum allowed: {maximum}, current: {current}")
        self.maximum = maximum
        self.current = current


class NotFound(RelikitError):
    kind = ErrorKind.NOT_FOUND


class DuplicateKey(RelikitError):
    """Unique business key (email) is already taken."""

    kind = ErrorKind.DUPLICATE_KEY

    def __init__(self, email: str) -> None:
        super().__init__(f"Record with email {email!r} already exists")
        self.email = email


class DeserializationFailure(RelikitError):
    kind = ErrorKind.DESERIALIZATION


class ProcessingFailure(RelikitError):
    """Generic transient failure while applying a mutation."""

    kind = ErrorKind.PROCESSING


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception to an ErrorKind; foreign exceptions count as PROCESSING."""
    if isinstance(exc, RelikitError):
        return exc.kind
    return ErrorKind.PROCESSING
