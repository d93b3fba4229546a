"""Repository for events table operations."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from eventstore.database.schema import Event
from eventstore.messaging.models import NormalizedEvent
from eventstore.templates.models import EventLevel
from eventstore.utils.logging import get_logger
from eventstore.utils.time import to_utc_z, utc_now_z

logger = get_logger(__name__)


def add_event(session: Session, event: NormalizedEvent) -> Event:
    """
    Add a normalized event to the session.

    Args:
        session: SQLAlchemy session (caller owns the transaction)
        event: Normalized event

    Returns:
        Event row (id assigned after flush)
    """
    event_row = Event(
        username=event.username,
        event_date_utc=to_utc_z(event.event_date, timespec="microseconds"),
        level=int(event.level),
        title=event.title,
        message=event.message,
        parameters_json=event.parameters_json,
        created_at_utc=utc_now_z(),
    )
    session.add(event_row)
    session.flush()
    logger.debug(f"Created new event {event_row.id} for user {event.username}")
    return event_row


def get_event_by_id(session: Session, event_id: int) -> Optional[Event]:
    """Get event by ID."""
    return session.query(Event).filter(Event.id == event_id).first()


def list_events(
    session: Session,
    username: Optional[str] = None,
    level: Optional[EventLevel] = None,
    since: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[Event]:
    """
    List stored events, newest first.

    Args:
        session: SQLAlchemy session
        username: Only events for this user
        level: Only events at this level
        since: Only events dated at or after this timezone-aware datetime
        limit: Maximum number of rows

    Returns:
        List of Event rows
    """
    query = session.query(Event)
    if username:
        query = query.filter(Event.username == username)
    if level is not None:
        query = query.filter(Event.level == int(level))
    if since is not None:
        query = query.filter(Event.event_date_utc >= to_utc_z(since, timespec="microseconds"))
    query = query.order_by(Event.event_date_utc.desc(), Event.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def decode_parameters(event_row: Event) -> Dict[str, Any]:
    """Load the stored parameters of an event back into a dict."""
    if not event_row.parameters_json:
        return {}
    return json.loads(event_row.parameters_json)
