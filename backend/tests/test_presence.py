from relay.services.presence import MODE_DASHBOARD, PresenceTracker


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_participant_holds_one_room_at_a_time():
    tracker = PresenceTracker()
    tracker.connect("c1")

    tracker.subscribe("c1", "room-a")
    tracker.subscribe("c1", "room-b")

    assert tracker.participants("room-a") == set()
    assert tracker.participants("room-b") == {"c1"}


def test_unsubscribe_all_drops_subscriptions_and_typing():
    tracker = PresenceTracker()
    tracker.connect("c1")
    tracker.connect("c2")
    tracker.subscribe("c1", "room-a")
    tracker.subscribe("c2", "room-a")
    tracker.mark_typing("room-a", "Client", "c1")

    dropped = tracker.unsubscribe_all("c1")

    assert [m.name for m in dropped] == ["Client"]
    assert tracker.participants("room-a") == {"c2"}
    assert tracker.typing_users_for("room-a") == set()
    assert "c1" not in tracker.connections()


def test_dashboards_are_tracked_separately():
    tracker = PresenceTracker()
    tracker.connect("p1")
    tracker.connect("d1", MODE_DASHBOARD)

    assert tracker.dashboards() == {"d1"}
    assert tracker.connections() == {"p1", "d1"}


def test_unsubscribe_only_matches_current_room():
    tracker = PresenceTracker()
    tracker.connect("c1")
    tracker.subscribe("c1", "room-a")

    assert tracker.unsubscribe("c1", "room-b") is False
    assert tracker.unsubscribe("c1", "room-a") is True
    assert tracker.participants("room-a") == set()


def test_typing_start_then_stop():
    tracker = PresenceTracker()
    tracker.mark_typing("room-a", "Client", "c1")
    assert tracker.typing_users_for("room-a") == {"Client"}

    tracker.clear_typing("room-a", "Client")
    assert tracker.typing_users_for("room-a") == set()


def test_typing_expires_after_timeout():
    clock = FakeClock()
    tracker = PresenceTracker(typing_timeout=5.0, clock=clock)
    tracker.mark_typing("room-a", "Client", "c1")

    clock.now += 4.9
    assert tracker.typing_users_for("room-a") == {"Client"}

    clock.now += 0.2
    assert tracker.typing_users_for("room-a") == set()


def test_refreshing_typing_extends_deadline():
    clock = FakeClock()
    tracker = PresenceTracker(typing_timeout=5.0, clock=clock)
    first = tracker.mark_typing("room-a", "Client", "c1")

    clock.now += 4.0
    tracker.mark_typing("room-a", "Client", "c1")
    clock.now += 4.0

    assert tracker.typing_users_for("room-a") == {"Client"}
    assert tracker.superseded(first)
