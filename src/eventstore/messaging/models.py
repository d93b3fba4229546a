"""Pydantic models for bus envelopes, incoming events and normalized records."""

import json
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from eventstore.templates.models import EventLevel, convert_level
from eventstore.utils.time import ensure_utc, utc_now

SOURCE_EVENT = "event"
TYPE_CREATE = "create"

TITLE_MAX_LENGTH = 64
MESSAGE_MAX_LENGTH = 512

# Producers serialize with capitalized keys; match them ignoring case and underscores
_EVENT_KEYS = {
    "username": "username",
    "level": "level",
    "eventdate": "event_date",
    "code": "code",
    "title": "title",
    "message": "message",
    "parameters": "parameters",
}


class Message(BaseModel):
    """Envelope delivered by the message bus."""

    source: str
    type: str
    entity: bytes = b""
    # Set by the bus on each delivery; identifies it when the message is completed
    delivery_tag: Optional[int] = None


class IncomingEvent(BaseModel):
    """Event as sent by a producer: either inline text or a template code."""

    username: str = ""
    level: EventLevel = EventLevel.ERROR
    event_date: datetime = Field(default_factory=utc_now)
    code: str = ""
    title: str = ""
    message: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _match_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        matched: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(key, str):
                key = _EVENT_KEYS.get(key.replace("_", "").lower(), key)
            matched[key] = value
        return matched

    @field_validator("level", mode="before")
    @classmethod
    def _parse_level(cls, value: Any) -> EventLevel:
        if isinstance(value, EventLevel):
            return value
        if isinstance(value, bool):
            return EventLevel.ERROR
        if isinstance(value, int):
            try:
                return EventLevel(value)
            except ValueError:
                return EventLevel.ERROR
        if isinstance(value, str):
            return convert_level(value)
        return EventLevel.ERROR

    @field_validator("event_date")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("parameters", mode="before")
    @classmethod
    def _default_parameters(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("username", "code", "title", "message", mode="before")
    @classmethod
    def _default_text(cls, value: Any) -> Any:
        return "" if value is None else value


class NormalizedEvent(BaseModel):
    """Rendered, size-bounded event ready for storage."""

    model_config = ConfigDict(frozen=True)

    username: str
    event_date: datetime
    level: EventLevel
    title: str = Field(..., max_length=TITLE_MAX_LENGTH)
    message: str = Field(..., max_length=MESSAGE_MAX_LENGTH)
    parameters_json: str = Field(..., description="Parameters serialized as JSON")


def parse_incoming_event(entity: bytes | str) -> IncomingEvent:
    """
    Decode the JSON entity of a bus message.

    Raises:
        ValueError: If the entity is not JSON or does not describe an event
            (pydantic.ValidationError is a ValueError)
    """
    try:
        data = json.loads(entity)
    except RecursionError as e:
        raise ValueError("Event entity is nested too deeply") from e
    return IncomingEvent.model_validate(data)


def describe_entity(entity: Optional[bytes]) -> str:
    if not entity:
        return ""
    return entity.decode("utf-8", errors="replace")
