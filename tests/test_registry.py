import logging

from streamdvr.models import StreamerState
from streamdvr.registry import Registry


log = logging.getLogger("test")


def test_add_twice_keeps_one_entry_and_reports_duplicate(caplog):
    registry = Registry(log)

    assert registry.add("alice") is True
    with caplog.at_level(logging.ERROR):
        assert registry.add("alice") is False

    assert len(registry) == 1
    assert "already tracked" in caplog.text


def test_new_entries_start_offline_and_unpaused():
    registry = Registry(log)
    registry.add("u123", name="alice", site="Twitch")

    streamer = registry.get("u123")
    assert streamer.name == "alice"
    assert streamer.state is StreamerState.OFFLINE
    assert streamer.paused is False
    assert streamer.capture is None
    assert streamer.stuck_count == 0


def test_list_is_a_snapshot_in_insertion_order():
    registry = Registry(log)
    for uid in ["carol", "alice", "bob"]:
        registry.add(uid)

    snapshot = registry.list()
    registry.remove("alice")

    assert [s.uid for s in snapshot] == ["carol", "alice", "bob"]
    assert registry.uids() == ["carol", "bob"]


def test_remove_calls_hook_once_before_deleting():
    seen = []
    registry = Registry(log)
    registry.on_remove = lambda uid: seen.append((uid, uid in registry))
    registry.add("alice")

    assert registry.remove("alice") is True
    assert seen == [("alice", True)]
    assert registry.get("alice") is None


def test_remove_unknown_returns_false():
    seen = []
    registry = Registry(log, on_remove=seen.append)

    assert registry.remove("nobody") is False
    assert seen == []
