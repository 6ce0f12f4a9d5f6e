from datetime import datetime, timezone

from goreserve.events import BookingConfirmed, EventPublisher

NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)


def _event() -> BookingConfirmed:
    return BookingConfirmed(booking_id="b1", business_id="biz", customer_id="c1", occurred_at=NOW)


def test_publish_reaches_every_listener():
    publisher = EventPublisher()
    received = []
    publisher.register(received.append)
    publisher.register(lambda event: received.append(event.event_type))

    publisher.publish(_event())

    assert received[0] == _event()
    assert received[1] == "BookingConfirmed"


def test_failing_listener_does_not_stop_delivery():
    publisher = EventPublisher()
    received = []

    def broken(event):
        raise RuntimeError("payment provider down")

    publisher.register(broken)
    publisher.register(received.append)

    publisher.publish(_event())

    assert received == [_event()]
    failures = publisher.failures
    assert len(failures) == 1
    assert failures[0].event_type == "BookingConfirmed"
    assert failures[0].error == "payment provider down"
    assert failures[0].payload["booking_id"] == "b1"


def test_drain_failures_empties_the_queue():
    publisher = EventPublisher()
    publisher.register(lambda event: 1 / 0)
    publisher.publish_all([_event(), _event()])

    assert len(publisher.drain_failures()) == 2
    assert publisher.failures == []


def test_only_recent_failures_are_retained():
    publisher = EventPublisher(max_failures=3)
    publisher.register(lambda event: 1 / 0)
    events = [
        BookingConfirmed(booking_id=f"b{n}", business_id="biz", customer_id="c1", occurred_at=NOW)
        for n in range(5)
    ]

    publisher.publish_all(events)

    assert [failure.payload["booking_id"] for failure in publisher.failures] == ["b2", "b3", "b4"]


def test_unregister():
    publisher = EventPublisher()
    received = []
    publisher.register(received.append)
    publisher.unregister(received.append)
    publisher.publish(_event())
    assert received == []
