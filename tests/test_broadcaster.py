import threading
import time

from dashboard import ProgressBroadcaster


class Recorder:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    def send(self, message: dict) -> None:
        self.messages.append(message)


class Broken:
    def __init__(self, fail_after: int) -> None:
        self.remaining = fail_after

    def send(self, message: dict) -> None:
        if self.remaining <= 0:
            raise BrokenPipeError("gone")
        self.remaining -= 1


def test_register_sends_ack_then_last_state() -> None:
    broadcaster = ProgressBroadcaster(state_source=lambda: {"scanned": 3, "total": 9})
    client = Recorder()

    client_id = broadcaster.register(client)

    assert client.messages[0] == {"type": "connected", "client_id": client_id}
    assert client.messages[1] == {"scanned": 3, "total": 9}
    assert broadcaster.client_count == 1


def test_register_without_state_sends_only_ack() -> None:
    broadcaster = ProgressBroadcaster()
    client = Recorder()

    broadcaster.register(client)

    assert len(client.messages) == 1


def test_broadcast_reaches_all_and_drops_failing_clients() -> None:
    broadcaster = ProgressBroadcaster()
    healthy = Recorder()
    broadcaster.register(healthy)
    broadcaster.register(Broken(fail_after=1))

    broadcaster.broadcast({"progress": 10})
    broadcaster.broadcast({"progress": 20})

    assert healthy.messages[1:] == [{"progress": 10}, {"progress": 20}]
    assert broadcaster.client_count == 1


def test_unregister_stops_delivery() -> None:
    broadcaster = ProgressBroadcaster()
    client = Recorder()
    client_id = broadcaster.register(client)

    broadcaster.unregister(client_id)
    broadcaster.broadcast({"progress": 50})

    assert client.messages == [{"type": "connected", "client_id": client_id}]
    assert broadcaster.client_count == 0


def test_broadcast_during_greeting_still_reaches_new_client() -> None:
    broadcaster = ProgressBroadcaster(state_source=lambda: {"is_scanning": True, "progress": 50})
    final = {"is_scanning": False, "progress": 100}
    publishers: list[threading.Thread] = []

    class PublishesOnGreeting(Recorder):
        def send(self, message: dict) -> None:
            super().send(message)
            if message.get("progress") == 50:
                publisher = threading.Thread(target=broadcaster.broadcast, args=(final,))
                publishers.append(publisher)
                publisher.start()
                time.sleep(0.05)

    client = PublishesOnGreeting()
    broadcaster.register(client)
    for publisher in publishers:
        publisher.join(5)

    assert client.messages[-1] == final
    assert client.messages[1:] == [{"is_scanning": True, "progress": 50}, final]
