"""Resolve, render and clip incoming events into storable records."""

import json
from typing import Any, Mapping, Tuple

from eventstore.errors import MarshalError, RenderError
from eventstore.messaging.models import (
    MESSAGE_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    IncomingEvent,
    NormalizedEvent,
)
from eventstore.templates.models import EventLevel
from eventstore.templates.renderer import TemplateRenderer
from eventstore.templates.store import TemplateStore
from eventstore.utils.logging import get_logger

logger = get_logger(__name__)

CODE_NOT_FOUND_MESSAGE = "?Code not found?"


def serialize_parameters(parameters: Mapping[str, Any]) -> str:
    """
    Serialize event parameters to JSON for storage.

    Raises:
        MarshalError: If a value cannot be represented in JSON
    """
    try:
        return json.dumps(parameters, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError, RecursionError) as e:
        raise MarshalError(f"Cannot serialize parameters: {e}") from e


def clip(text: str, limit: int) -> str:
    return text[:limit] if len(text) > limit else text


class EventNormalizer:
    """
    Turn an IncomingEvent into a NormalizedEvent.

    A non-empty code selects a template from the store (unknown codes produce
    a visible placeholder at ERROR level); otherwise the inline title, message
    and level are used. Title and message are rendered independently: a
    render failure replaces only the failing field with the error text.
    """

    def __init__(self, store: TemplateStore, renderer: TemplateRenderer | None = None):
        self.store = store
        self.renderer = renderer or TemplateRenderer()

    def resolve(self, event: IncomingEvent) -> Tuple[str, str, EventLevel]:
        """Pick the effective (title, message, level) before rendering."""
        if not event.code:
            return event.title, event.message, event.level

        template = self.store.get(event.code)
        if template is None:
            logger.warning(f"Event template not found: {event.code}")
            return f"?{event.code}?", CODE_NOT_FOUND_MESSAGE, EventLevel.ERROR

        return template.title, template.message, template.event_level

    def render_field(self, name: str, text: str, parameters: Mapping[str, Any]) -> str:
        try:
            return self.renderer.render(text, parameters)
        except RenderError as e:
            logger.warning(f"Cannot render event {name}: {e}")
            return str(e)

    def normalize(self, event: IncomingEvent) -> NormalizedEvent:
        """
        Build the storable record for one event.

        Raises:
            MarshalError: If the parameters cannot be serialized
        """
        title, message, level = self.resolve(event)

        title = self.render_field("title", title, event.parameters)
        message = self.render_field("message", message, event.parameters)

        parameters_json = serialize_parameters(event.parameters)

        if len(title) > TITLE_MAX_LENGTH:
            logger.warning(f"Title is too long. Clipping: {title}")
            title = clip(title, TITLE_MAX_LENGTH)

        if len(message) > MESSAGE_MAX_LENGTH:
            logger.warning(f"Message is too long. Clipping: {message}")
            message = clip(message, MESSAGE_MAX_LENGTH)

        return NormalizedEvent(
            username=event.username,
            event_date=event.event_date,
            level=level,
            title=title,
            message=message,
            parameters_json=parameters_json,
        )
