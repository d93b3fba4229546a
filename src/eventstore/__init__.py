"""Event store: turns event notifications from the message bus into stored event records."""

__version__ = "1.0.0"
