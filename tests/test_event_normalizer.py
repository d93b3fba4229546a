"""Tests for event normalization: template resolution, rendering and clipping."""

import json

import pytest

from eventstore.errors import MarshalError
from eventstore.messaging.models import IncomingEvent
from eventstore.messaging.normalizer import EventNormalizer, serialize_parameters
from eventstore.templates.models import EventLevel


@pytest.fixture
def normalizer(store):
    return EventNormalizer(store)


def test_inline_event_passes_through(normalizer, event_date):
    """No code: inline title, message and level are used verbatim."""
    event = IncomingEvent(
        username="ann",
        level=EventLevel.INFO,
        event_date=event_date,
        title="Hi",
        message="There",
    )

    result = normalizer.normalize(event)

    assert result.title == "Hi"
    assert result.message == "There"
    assert result.level == EventLevel.INFO
    assert result.username == "ann"
    assert result.event_date == event_date


def test_code_resolves_template(normalizer, event_date):
    event = IncomingEvent(
        username="ann",
        level=EventLevel.INFO,
        event_date=event_date,
        code="billing.invoice.overdue",
        title="ignored",
        message="ignored",
        parameters={"invoice_id": "INV-7", "amount": 120, "due_date": "2025-02-01"},
    )

    result = normalizer.normalize(event)

    assert result.title == "Invoice INV-7 is overdue"
    assert result.message == "Pay 120 by 2025-02-01"
    assert result.level == EventLevel.WARNING


def test_unknown_code_yields_placeholder(normalizer, event_date):
    """Unknown codes are stored visibly at ERROR level regardless of the sent level."""
    event = IncomingEvent(
        username="ann",
        level=EventLevel.INFO,
        event_date=event_date,
        code="billing.nope",
    )

    result = normalizer.normalize(event)

    assert result.title == "?billing.nope?"
    assert result.message == "?Code not found?"
    assert result.level == EventLevel.ERROR


def test_template_title_render(normalizer, event_date):
    event = IncomingEvent(
        event_date=event_date,
        code="account.greeting",
        parameters={"name": "Ann", "user": {"name": "ann.smith"}},
    )

    result = normalizer.normalize(event)

    assert result.title == "Hello Ann"
    assert result.message == "Welcome back, ann.smith"
    assert result.level == EventLevel.INFO


def test_title_render_error_replaces_only_title(normalizer, event_date):
    """The message is still rendered when the title fails."""
    event = IncomingEvent(
        event_date=event_date,
        title="Hello {{ parameters.missing }}",
        message="Dear {{ parameters.name }}",
        parameters={"name": "Ann"},
    )

    result = normalizer.normalize(event)

    assert result.title.startswith("template")
    assert result.message == "Dear Ann"


def test_message_render_error_replaces_only_message(normalizer, event_date):
    event = IncomingEvent(
        event_date=event_date,
        title="Hello {{ parameters.name }}",
        message="Broken {{ parameters.name",
        parameters={"name": "Ann"},
    )

    result = normalizer.normalize(event)

    assert result.title == "Hello Ann"
    assert result.message.startswith("template:1")


def test_both_fields_can_fail(normalizer, event_date):
    event = IncomingEvent(
        event_date=event_date,
        title="{{ parameters.a }}",
        message="{{ parameters.b }}",
    )

    result = normalizer.normalize(event)

    assert "'a'" in result.title
    assert "'b'" in result.message


def test_python_error_in_title_replaces_only_title(normalizer, event_date):
    """Errors raised by calls on values inside an expression are render errors too."""
    event = IncomingEvent(
        event_date=event_date,
        title='{{ "{0}".format() }}',
        message="Dear {{ parameters.name }}",
        parameters={"name": "Ann"},
    )

    result = normalizer.normalize(event)

    assert result.title.startswith("template")
    assert result.message == "Dear Ann"


def test_parameters_cannot_be_mutated_by_message(normalizer, event_date):
    event = IncomingEvent(
        event_date=event_date,
        title="Tags",
        message="{{ parameters.tags.pop() }}",
        parameters={"tags": []},
    )

    result = normalizer.normalize(event)

    assert result.title == "Tags"
    assert result.message.startswith("template")
    assert json.loads(result.parameters_json) == {"tags": []}


def test_long_title_is_clipped_to_64(normalizer, event_date):
    event = IncomingEvent(event_date=event_date, title="T" * 100, message="m")

    result = normalizer.normalize(event)

    assert result.title == "T" * 64


def test_long_message_is_clipped_to_512(normalizer, event_date):
    event = IncomingEvent(event_date=event_date, title="t", message="abc" * 300)

    result = normalizer.normalize(event)

    assert result.message == ("abc" * 300)[:512]
    assert len(result.message) == 512


def test_limits_apply_after_rendering(normalizer, event_date):
    event = IncomingEvent(
        event_date=event_date,
        title="{{ parameters.long }}",
        message="ok",
        parameters={"long": "x" * 70},
    )

    result = normalizer.normalize(event)

    assert result.title == "x" * 64


def test_text_at_limit_is_unchanged(normalizer, event_date):
    event = IncomingEvent(event_date=event_date, title="a" * 64, message="b" * 512)

    result = normalizer.normalize(event)

    assert result.title == "a" * 64
    assert result.message == "b" * 512


def test_parameters_are_serialized(normalizer, event_date):
    params = {"name": "Ann", "user": {"id": 3, "tags": ["a", "b"]}, "ok": True}
    event = IncomingEvent(event_date=event_date, title="t", message="m", parameters=params)

    result = normalizer.normalize(event)

    assert json.loads(result.parameters_json) == params


def test_unserializable_parameters_raise_marshal_error(normalizer, event_date):
    event = IncomingEvent(
        event_date=event_date,
        title="t",
        message="m",
        parameters={"tags": {"a", "b"}},
    )

    with pytest.raises(MarshalError):
        normalizer.normalize(event)


def test_serialize_parameters_rejects_nan():
    with pytest.raises(MarshalError):
        serialize_parameters({"ratio": float("nan")})
