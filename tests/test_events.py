from prophecy_auth.events import USER_CREATED, EventBroadcaster


def test_subscribers_receive_events():
    bus = EventBroadcaster()
    received = []
    bus.subscribe(received.append)

    bus.broadcast(USER_CREATED, {"id": 1})

    assert len(received) == 1
    assert received[0]["type"] == "user:created"
    assert received[0]["data"] == {"id": 1}
    assert isinstance(received[0]["ts"], float)


def test_unsubscribe():
    bus = EventBroadcaster()
    received = []
    unsubscribe = bus.subscribe(received.append)
    unsubscribe()
    unsubscribe()
    bus.broadcast(USER_CREATED, {})
    assert received == []


def test_failing_subscriber_does_not_block_others():
    bus = EventBroadcaster()
    received = []

    def broken(event):
        raise RuntimeError("gone")

    bus.subscribe(broken)
    bus.subscribe(received.append)
    bus.broadcast(USER_CREATED, {"id": 2})
    assert [e["data"] for e in received] == [{"id": 2}]
