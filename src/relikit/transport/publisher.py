# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from ..core.config import MessagingConfig
from ..core.log import get_logger
from ..faults.injector import FaultInjector, OperationKind
from ..protocol.messages import (
    CreateRecordMessage,
    DeleteRecordMessage,
    MutationKind,
    UpdateRecordMessage,
    encode_message,
)
from .queue import QueueTransport

AnyMessage = CreateRecordMessage | UpdateRecordMessage | DeleteRecordMessage


class MessagePublisher:
    """
    Serializes mutation messages and pushes them onto the per-kind queue.

    The push is subject to fault injection as a write, so a simulated outage or
    timeout fails the enqueue and reaches the caller.
    """

    def __init__(
        self,
        transport: QueueTransport,
        cfg: MessagingConfig | None = None,
        *,
        injector: FaultInjector | None = None,
    ) -> None:
        self.transport = transport
        self.cfg = cfg or MessagingConfig()
        self.injector = injector
        self.log = get_logger("transport.publisher")

    def queue_for(self, kind: MutationKind) -> str:
        return {
            MutationKind.create: self.cfg.create_queue,
            MutationKind.update: self.cfg.update_queue,
            MutationKind.delete: self.cfg.delete_queue,
        }[MutationKind(kind)]

    async def publish(self, msg: AnyMessage) -> str:
        """Enqueue `msg`; returns the queue name. Errors propagate to the caller."""
        queue = self.queue_for(MutationKind(msg.kind))
        try:
            if self.injector is not None:
                await self.injector.simulate(OperationKind.write, operation=f"enqueue.{msg.kind}")
            await self.transport.push(queue, encode_message(msg))
        except Exception:
            self.log.error(
                "publisher.failed", event="publisher.failed", queue=queue, message_id=msg.message_id, exc_info=True
            )
            raise
        self.log.debug("publisher.queued", event="publisher.queued", queue=queue, message_id=msg.message_id)
        return queue
