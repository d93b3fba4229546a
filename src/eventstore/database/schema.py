from sqlalchemy import (
    Column,
    Index,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.orm import declarative_base

from eventstore.messaging.models import MESSAGE_MAX_LENGTH, TITLE_MAX_LENGTH

Base = declarative_base()


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, nullable=False, index=True)
    event_date_utc = Column(String, nullable=False)  # ISO 8601 string
    level = Column(Integer, nullable=False)  # 0=INFO, 1=WARNING, 2=ERROR
    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    message = Column(String(MESSAGE_MAX_LENGTH), nullable=False)
    parameters_json = Column(Text, nullable=False)  # Event parameters as JSON
    created_at_utc = Column(String, nullable=False)  # ISO 8601 string, time of storage

    __table_args__ = (
        Index('idx_events_username_date', 'username', 'event_date_utc'),
    )


def create_all(engine_url: str) -> None:
    engine = create_engine(engine_url)
    Base.metadata.create_all(engine)
