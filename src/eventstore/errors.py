"""Exception types raised by the event pipeline."""


class EventStoreError(Exception):
    """Base class for event store errors."""


class ConfigError(EventStoreError, ValueError):
    """Template catalog or runtime config is unreadable or malformed."""


class RenderError(EventStoreError):
    """A title or message template could not be rendered."""


class MarshalError(EventStoreError):
    """Event parameters could not be serialized for storage."""
