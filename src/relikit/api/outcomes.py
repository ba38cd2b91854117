# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Caller-visible outcomes.

Both dispatch strategies and the read path return an `OperationResult` instead
of raising, so an outer layer (HTTP, CLI) can map `OutcomeStatus` to its own
status codes: `timeout` ~ 408, `unavailable` ~ 503, `not_found` ~ 404,
`conflict` ~ 409, `accepted` ~ 202, `created` ~ 201, `no_content` ~ 204.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .errors import ErrorKind, classify_error

if TYPE_CHECKING:
    from ..protocol.messages import Record


class OutcomeStatus(str, Enum):
    ok = "ok"
    created = "created"
    accepted = "accepted"
    no_content = "no_content"
    not_found = "not_found"
    conflict = "conflict"
    timeout = "timeout"
    unavailable = "unavailable"
    error = "error"

    @property
    def success(self) -> bool:
        return self in (OutcomeStatus.ok, OutcomeStatus.created, OutcomeStatus.accepted, OutcomeStatus.no_content)


_STATUS_BY_KIND: dict[ErrorKind, OutcomeStatus] = {
    ErrorKind.CONNECTION: OutcomeStatus.unavailable,
    ErrorKind.TOO_MANY_CLIENTS: OutcomeStatus.unavailable,
    ErrorKind.READ_TIMEOUT: OutcomeStatus.timeout,
    ErrorKind.WRITE_TIMEOUT: OutcomeStatus.timeout,
    ErrorKind.NOT_FOUND: OutcomeStatus.not_found,
    ErrorKind.DUPLICATE_KEY: OutcomeStatus.conflict,
}


@dataclass
class OperationResult:
    status: OutcomeStatus
    record: Record | None = None
    records: list[Record] = field(default_factory=list)
    count: int | None = None
    message_id: str | None = None
    record_id: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status.success


def outcome_from_error(exc: BaseException) -> OperationResult:
    """Translate any failure into the shared caller-visible outcome."""
    kind = classify_error(exc)
    return OperationResult(status=_STATUS_BY_KIND.get(kind, OutcomeStatus.error), error=str(exc) or kind.value)
