import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from eventstore.config.loader import load_config_or_defaults
from eventstore.database.sqlite_client import get_session_factory
from eventstore.errors import ConfigError
from eventstore.messaging.bus import InMemoryBus, MessageBus, decode_envelope
from eventstore.messaging.dispatcher import MessageDispatcher
from eventstore.messaging.normalizer import EventNormalizer
from eventstore.templates.renderer import TemplateRenderer
from eventstore.templates.store import TemplateStore
from eventstore.utils.logging import get_logger

logger = get_logger(__name__)


def load_templates_or_exit(path: Optional[str]) -> TemplateStore:
    """Templates are essential: a catalog that cannot be loaded halts startup."""
    try:
        return TemplateStore.load(path)
    except ConfigError as e:
        logger.error(f"Cannot load event templates: {e}")
        sys.exit(1)


def build_dispatcher(
    config: Dict[str, Any],
    bus: MessageBus,
    store: Optional[TemplateStore] = None,
) -> MessageDispatcher:
    """
    Wire the pipeline from runtime config.

    The template store is fully loaded before the dispatcher exists, so the
    worker thread only ever reads it.
    """
    if store is None:
        store = load_templates_or_exit(config["templates"]["path"])
    messaging = config["messaging"]
    return MessageDispatcher(
        bus=bus,
        normalizer=EventNormalizer(store, TemplateRenderer()),
        session_factory=get_session_factory(config["storage"]["sqlite_path"]),
        queue_name=messaging["queue"],
        poll_interval=float(messaging["poll_interval_seconds"]),
    )


def publish_lines(bus: InMemoryBus, queue_name: str, lines: Iterable[str]) -> int:
    """Publish JSON envelope lines; undecodable lines are logged and skipped."""
    published = 0
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            message = decode_envelope(line)
        except ValueError as e:
            logger.error(f"Skipping line {lineno}: not a message envelope: {e}")
            continue
        bus.publish(queue_name, message)
        published += 1
    return published


def consume_file(input_path: Path, config_path: Optional[Path] = None) -> Dict[str, int]:
    """
    Replay a JSON-lines file of envelopes through the pipeline.

    Returns:
        Summary counts: published, handled, failed, dead_lettered
    """
    config = load_config_or_defaults(config_path)
    bus = InMemoryBus(max_deliveries=int(config["messaging"]["max_deliveries"]))
    dispatcher = build_dispatcher(config, bus)

    with input_path.open("r", encoding="utf-8") as f:
        published = publish_lines(bus, dispatcher.queue_name, f)

    dispatcher.run_until_idle()
    return {
        "published": published,
        "handled": dispatcher.handled_count,
        "failed": dispatcher.failed_count,
        "dead_lettered": len(bus.dead_letters(dispatcher.queue_name)),
    }


def main(config_path: Optional[Path] = None, stream: Optional[Iterable[str]] = None) -> None:
    """
    Run the dispatcher as a background listener fed from stdin.

    Each line is a JSON envelope. Stops on end of input or Ctrl-C.
    """
    config = load_config_or_defaults(config_path)
    bus = InMemoryBus(max_deliveries=int(config["messaging"]["max_deliveries"]))
    dispatcher = build_dispatcher(config, bus)
    dispatcher.start()
    try:
        publish_lines(bus, dispatcher.queue_name, stream if stream is not None else sys.stdin)
        while not bus.is_idle(dispatcher.queue_name):
            dispatcher.wait_for_messages(dispatcher.processed_count + 1, timeout=dispatcher.poll_interval)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        dispatcher.stop()
