"""Background consumer that turns bus messages into stored events."""

import threading
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventstore.config.loader import DEFAULT_QUEUE
from eventstore.database.event_repo import add_event
from eventstore.database.sqlite_client import run_in_transaction
from eventstore.errors import MarshalError
from eventstore.messaging.bus import MessageBus
from eventstore.messaging.models import (
    SOURCE_EVENT,
    TYPE_CREATE,
    IncomingEvent,
    Message,
    describe_entity,
    parse_incoming_event,
)
from eventstore.messaging.normalizer import EventNormalizer
from eventstore.utils.logging import get_logger

logger = get_logger(__name__)


class MessageDispatcher:
    """
    Consume one queue and persist every event-creation message.

    Messages are handled strictly one at a time. ``handle_message`` returns
    True when the message is done with (stored or deliberately dropped) and
    False when the bus may redeliver it.
    """

    def __init__(
        self,
        bus: MessageBus,
        normalizer: EventNormalizer,
        session_factory: Callable[[], Session],
        queue_name: str = DEFAULT_QUEUE,
        poll_interval: float = 0.5,
    ):
        self.bus = bus
        self.normalizer = normalizer
        self.session_factory = session_factory
        self.queue_name = queue_name
        self.poll_interval = poll_interval

        self.handled_count = 0
        self.failed_count = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._progress = threading.Condition()

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    def handle_message(self, message: Message) -> bool:
        logger.info(f"New event message received: source={message.source} type={message.type}")

        try:
            event = parse_incoming_event(message.entity)
        except ValueError:
            logger.error(
                f"Dropping badly formatted message for event: {describe_entity(message.entity)}"
            )
            return True

        if message.source != SOURCE_EVENT or message.type != TYPE_CREATE:
            logger.error(
                f"Dropping message with unknown source/type: source={message.source} type={message.type}"
            )
            return True

        return self.handle_new_event(event)

    def handle_new_event(self, event: IncomingEvent) -> bool:
        try:
            normalized = self.normalizer.normalize(event)
        except MarshalError as e:
            logger.error(f"Error marshalling parameters: {e}")
            return False

        try:
            run_in_transaction(self.session_factory, lambda session: add_event(session, normalized))
        except SQLAlchemyError as e:
            logger.error(f"Error adding event to the database: {e}")
            return False

        return True

    def _process(self, message: Message) -> None:
        try:
            handled = self.handle_message(message)
        except Exception as e:
            logger.error(f"Unexpected error handling message: {e}", exc_info=True)
            handled = False

        self.bus.complete(self.queue_name, message, handled)

        with self._progress:
            if handled:
                self.handled_count += 1
            else:
                self.failed_count += 1
            self._progress.notify_all()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def processed_count(self) -> int:
        return self.handled_count + self.failed_count

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background worker thread."""
        if self.is_running:
            raise RuntimeError("Dispatcher is already running")
        logger.info(f"Starting message listener on queue '{self.queue_name}'")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"dispatcher-{self.queue_name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal shutdown and wait for the in-progress message to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Dispatcher on queue '{self.queue_name}' did not stop in time")
                return
            self._thread = None
        logger.info(f"Stopped message listener on queue '{self.queue_name}'")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            message = self.bus.receive(self.queue_name, timeout=self.poll_interval)
            if message is None:
                continue
            self._process(message)

    def run_until_idle(self) -> int:
        """Handle messages on the calling thread until the queue is empty; return how many."""
        count = 0
        while not self._stop_event.is_set():
            message = self.bus.receive(self.queue_name)
            if message is None:
                break
            self._process(message)
            count += 1
        return count

    def wait_for_messages(self, count: int, timeout: Optional[float] = None) -> bool:
        """Block until at least ``count`` messages have been processed; False on timeout."""
        with self._progress:
            return self._progress.wait_for(lambda: self.processed_count >= count, timeout)
