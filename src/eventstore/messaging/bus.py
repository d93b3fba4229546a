"""Message bus seam used by the dispatcher, with an in-process implementation."""

import itertools
import json
import queue
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from eventstore.messaging.models import Message
from eventstore.utils.logging import get_logger

logger = get_logger(__name__)


class MessageBus(Protocol):
    """Transport contract: deliver messages from a queue and accept a handled/not-handled verdict."""

    def receive(self, queue_name: str, timeout: Optional[float] = None) -> Optional[Message]:
        ...

    def complete(self, queue_name: str, message: Message, handled: bool) -> None:
        ...


@dataclass
class _Delivery:
    message: Message
    attempts: int = 0


@dataclass
class _Topic:
    pending: "queue.Queue[_Delivery]" = field(default_factory=queue.Queue)
    in_flight: Dict[int, _Delivery] = field(default_factory=dict)
    acknowledged: List[Message] = field(default_factory=list)
    dead_letters: List[Message] = field(default_factory=list)
    unfinished: int = 0


class InMemoryBus:
    """
    Thread-safe in-process bus.

    Messages completed as not handled are redelivered until they have been
    delivered ``max_deliveries`` times, after which they are dead-lettered.
    Each delivery hands out a copy carrying a fresh ``delivery_tag``, so the
    same Message instance may be published more than once.
    """

    def __init__(self, max_deliveries: int = 3):
        if max_deliveries < 1:
            raise ValueError("max_deliveries must be at least 1")
        self.max_deliveries = max_deliveries
        self._topics: Dict[str, _Topic] = {}
        self._lock = threading.Lock()
        self._tags = itertools.count(1)

    def _topic(self, queue_name: str) -> _Topic:
        with self._lock:
            return self._topics.setdefault(queue_name, _Topic())

    def publish(self, queue_name: str, message: Message) -> None:
        topic = self._topic(queue_name)
        with self._lock:
            topic.unfinished += 1
        topic.pending.put(_Delivery(message=message))

    def receive(self, queue_name: str, timeout: Optional[float] = None) -> Optional[Message]:
        topic = self._topic(queue_name)
        try:
            delivery = topic.pending.get(timeout=timeout) if timeout else topic.pending.get_nowait()
        except queue.Empty:
            return None
        delivery.attempts += 1
        with self._lock:
            tag = next(self._tags)
            topic.in_flight[tag] = delivery
        return delivery.message.model_copy(update={"delivery_tag": tag})

    def complete(self, queue_name: str, message: Message, handled: bool) -> None:
        topic = self._topic(queue_name)
        with self._lock:
            delivery = topic.in_flight.pop(message.delivery_tag, None)
            if delivery is None:
                raise KeyError(f"Message is not in flight on queue '{queue_name}'")
            if handled:
                topic.acknowledged.append(delivery.message)
                topic.unfinished -= 1
                return
            if delivery.attempts >= self.max_deliveries:
                logger.error(
                    f"Dead-lettering message after {delivery.attempts} deliveries: "
                    f"source={message.source} type={message.type}"
                )
                topic.dead_letters.append(delivery.message)
                topic.unfinished -= 1
                return
        topic.pending.put(delivery)

    def pending_count(self, queue_name: str) -> int:
        return self._topic(queue_name).pending.qsize()

    def is_idle(self, queue_name: str) -> bool:
        """True when every published message has been acknowledged or dead-lettered."""
        topic = self._topic(queue_name)
        with self._lock:
            return topic.unfinished == 0

    def acknowledged(self, queue_name: str) -> List[Message]:
        with self._lock:
            return list(self._topic_unlocked(queue_name).acknowledged)

    def dead_letters(self, queue_name: str) -> List[Message]:
        with self._lock:
            return list(self._topic_unlocked(queue_name).dead_letters)

    def _topic_unlocked(self, queue_name: str) -> _Topic:
        return self._topics.setdefault(queue_name, _Topic())


def decode_envelope(line: str) -> Message:
    """
    Parse one JSON envelope line: {"source": ..., "type": ..., "entity": ...}.

    ``entity`` may be a JSON object (re-encoded to bytes) or a string holding
    the already-encoded entity.

    Raises:
        ValueError: If the line is not a JSON object with source and type
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("Envelope must be a JSON object")
    entity = data.get("entity", b"")
    if isinstance(entity, str):
        entity = entity.encode("utf-8")
    elif not isinstance(entity, bytes):
        entity = json.dumps(entity).encode("utf-8")
    return Message(source=data.get("source", ""), type=data.get("type", ""), entity=entity)
