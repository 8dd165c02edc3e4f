"""Task queue transport."""

from bee_atlas.messaging.broker import InMemoryBroker, Message, MessageBroker, ServiceBusBroker

__all__ = ["InMemoryBroker", "Message", "MessageBroker", "ServiceBusBroker"]
