# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Queue transport abstractions and implementations.
"""

from .publisher import MessagePublisher
from .queue import ListQueueTransport, QueueTransport

__all__ = [
    "ListQueueTransport",
    "MessagePublisher",
    "QueueTransport",
]
