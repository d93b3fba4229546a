"""Pydantic models for event templates and severity levels."""

from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field


class EventLevel(IntEnum):
    """Stored severity of an event."""

    INFO = 0
    WARNING = 1
    ERROR = 2


def convert_level(level: str) -> EventLevel:
    """Map a textual level to EventLevel; anything but INFO or WARN is ERROR."""
    if level == "INFO":
        return EventLevel.INFO
    if level == "WARN":
        return EventLevel.WARNING
    return EventLevel.ERROR


class Template(BaseModel):
    """A reusable title/message pair registered under a dotted code."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Dotted path of the template in the catalog")
    level: str = Field(..., description="Textual level as written in the catalog")
    title: str = Field(..., description="Title template text")
    message: str = Field(..., description="Message template text")

    @property
    def event_level(self) -> EventLevel:
        return convert_level(self.level)
