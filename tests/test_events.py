import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import events


def test_publish_reaches_subscribers():
    bus = events.EventBus()
    seen = []
    bus.subscribe(events.STATUS_MESSAGE, lambda sender, text: seen.append((sender, text)))

    bus.publish(events.STATUS_MESSAGE, "core", text="Connecting...")

    assert seen == [("core", "Connecting...")]


def test_lambda_subscribers_are_held_strongly():
    bus = events.EventBus()
    seen = []
    bus.subscribe(events.TORRENT_COMPLETED, lambda sender, **kw: seen.append(kw))
    bus.publish(events.TORRENT_COMPLETED, name="a", torrent_id=1)
    assert seen == [{"name": "a", "torrent_id": 1}]


def test_unsubscribe():
    bus = events.EventBus()
    seen = []

    def receiver(sender, connected):
        seen.append(connected)

    bus.subscribe(events.CONNECTION_STATE_CHANGED, receiver)
    bus.unsubscribe(events.CONNECTION_STATE_CHANGED, receiver)
    bus.publish(events.CONNECTION_STATE_CHANGED, connected=True)
    assert seen == []


def test_buses_are_independent():
    a, b = events.EventBus(), events.EventBus()
    seen = []
    a.subscribe(events.ERROR_DIALOG, lambda sender, message: seen.append(message))
    b.publish(events.ERROR_DIALOG, message="nope")
    assert seen == []


def test_unknown_event():
    bus = events.EventBus()
    with pytest.raises(ValueError):
        bus.subscribe("no-such-event", lambda sender: None)
