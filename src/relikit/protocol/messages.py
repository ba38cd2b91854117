from __future__ import annotations

"""
relikit protocol messages
=========================

The managed `Record` and the mutation messages pushed onto the operation
queues (one queue per `MutationKind`).

Design principles:
- Pydantic v2 models; messages use `extra="forbid"` to fail fast on unknown fields.
- Messages are self-describing JSON: message id, timestamp, correlation id and
  an operation-specific payload (full record for create/update, id for delete).
- Parsing failures surface as `DeserializationFailure` so the worker can drop
  malformed input without retrying.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..api.errors import DeserializationFailure


def _utcnow() -> datetime:
    return datetime.now(UTC)


# --------------------------------------------------------------------------- #
# Record
# --------------------------------------------------------------------------- #


class Record(BaseModel):
    """
    The managed entity.

    `id` is assigned by the store on creation (0 means "not yet assigned").
    `email` is the unique business key across all records.
    """

    model_config = ConfigDict(extra="ignore")

    id: int = 0
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = Field(default=None, max_length=500)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes) -> Record:
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise DeserializationFailure(f"invalid record payload: {e}") from e


class RecordDraft(BaseModel):
    """Caller-supplied attributes for create/update."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = Field(default=None, max_length=500)

    def to_record(self, *, record_id: int = 0) -> Record:
        return Record(id=record_id, **self.model_dump())


RecordListAdapter = TypeAdapter(list[Record])


# --------------------------------------------------------------------------- #
# Mutation messages
# --------------------------------------------------------------------------- #


class MutationKind(str, Enum):
    create = "create"
    update = "update"
    delete = "delete"


class _MessageBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=_utcnow)
    correlation_id: str | None = None


class CreateRecordMessage(_MessageBase):
    kind: Literal["create"] = "create"
    record: Record


class UpdateRecordMessage(_MessageBase):
    kind: Literal["update"] = "update"
    record: Record


class DeleteRecordMessage(_MessageBase):
    kind: Literal["delete"] = "delete"
    record_id: int


MutationMessage = Annotated[
    Union[CreateRecordMessage, UpdateRecordMessage, DeleteRecordMessage],
    Field(discriminator="kind"),
]

_MESSAGE_ADAPTER: TypeAdapter[MutationMessage] = TypeAdapter(MutationMessage)


def encode_message(msg: CreateRecordMessage | UpdateRecordMessage | DeleteRecordMessage) -> str:
    return msg.model_dump_json()


def decode_message(
    raw: str | bytes, *, expect: MutationKind | None = None
) -> CreateRecordMessage | UpdateRecordMessage | DeleteRecordMessage:
    """
    Parse a queued message. Raises DeserializationFailure on malformed JSON,
    schema violations, or a kind different from `expect`.
    """
    try:
        msg = _MESSAGE_ADAPTER.validate_json(raw)
    except ValidationError as e:
        raise DeserializationFailure(f"invalid mutation message: {e.error_count()} error(s)") from e
    if expect is not None and msg.kind != expect:
        raise DeserializationFailure(f"expected {expect.value} message, got {msg.kind}")
    return msg
