"""
Message brokers for the task queue.

The queue carries one thing: a task id as plain text. Brokers expose just
enough to publish ids and consume them one at a time::

    broker.publish(task.id)
    message = broker.receive()      # None when nothing arrived in time
    broker.ack(message)

``ServiceBusBroker`` talks to Azure Service Bus and creates the queue on
first use. ``InMemoryBroker`` is a FIFO for tests and single-process runs.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol

from azure.core.exceptions import ResourceNotFoundError
from azure.servicebus import ServiceBusClient, ServiceBusMessage
from azure.servicebus.management import ServiceBusAdministrationClient

logger = logging.getLogger(__name__)


@dataclass
class Message:
    """A received task message. ``raw`` is the broker's own handle."""

    body: str
    raw: Any = field(default=None, repr=False)


class MessageBroker(Protocol):
    def publish(self, body: str) -> None: ...

    def receive(self) -> Message | None: ...

    def ack(self, message: Message) -> None: ...

    def close(self) -> None: ...


# =============================================================================
# In-memory
# =============================================================================


class InMemoryBroker:
    """FIFO queue with the broker interface. Acked messages are recorded."""

    def __init__(self) -> None:
        self._queue: deque[str] = deque()
        self.acked: list[str] = []
        self.closed = False

    def publish(self, body: str) -> None:
        self._queue.append(body)

    def receive(self) -> Message | None:
        if not self._queue:
            return None
        return Message(body=self._queue.popleft())

    def ack(self, message: Message) -> None:
        self.acked.append(message.body)

    def close(self) -> None:
        self.closed = True

    def __len__(self) -> int:
        return len(self._queue)


# =============================================================================
# Azure Service Bus
# =============================================================================


class ServiceBusBroker:
    """Azure Service Bus queue, one message in flight at a time."""

    def __init__(self, connection_string: str, queue_name: str, max_wait_time: float = 30) -> None:
        if not connection_string:
            msg = "A Service Bus connection string is required"
            raise ValueError(msg)
        self.queue_name = queue_name
        self.max_wait_time = max_wait_time
        self._ensure_queue(connection_string, queue_name)

        self._client = ServiceBusClient.from_connection_string(connection_string)
        self._receiver = self._client.get_queue_receiver(
            queue_name=queue_name,
            max_wait_time=max_wait_time,
            prefetch_count=1,
        )
        self._sender = self._client.get_queue_sender(queue_name=queue_name)

    @staticmethod
    def _ensure_queue(connection_string: str, queue_name: str) -> None:
        with ServiceBusAdministrationClient.from_connection_string(connection_string) as admin:
            try:
                admin.get_queue(queue_name)
            except ResourceNotFoundError:
                logger.info("Creating Service Bus queue %s", queue_name)
                admin.create_queue(queue_name)

    def publish(self, body: str) -> None:
        self._sender.send_messages(ServiceBusMessage(body))
        logger.debug("Published %s to %s", body, self.queue_name)

    def receive(self) -> Message | None:
        messages = self._receiver.receive_messages(max_message_count=1, max_wait_time=self.max_wait_time)
        if not messages:
            return None
        raw = messages[0]
        return Message(body=str(raw), raw=raw)

    def ack(self, message: Message) -> None:
        self._receiver.complete_message(message.raw)

    def close(self) -> None:
        self._sender.close()
        self._receiver.close()
        self._client.close()
