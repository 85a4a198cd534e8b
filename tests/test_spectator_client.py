import time

import pytest

from drone_spectator.connection import ConnectionStatus
from drone_spectator.constants import HANDSHAKE_LINE
from drone_spectator.errors import ConnectionLost
from drone_spectator.reconnect import ReconnectPolicy
from drone_spectator.spectator_client import GameStateClient, SpectatorRunner


def make_client(fake_connection, script, **kwargs):
    conn = fake_connection(script)
    client = GameStateClient(connection=conn, **kwargs)
    client.connect()
    return client, conn


def test_handshake_sent_every_tick_until_first_byte(fake_connection):
    client, conn = make_client(fake_connection, [b"", b"", b"{\"obst", b"", b"", b""])
    for _ in range(6):
        client.tick()

    assert conn.sent == [HANDSHAKE_LINE] * 3
    assert client.handshake_sent_count == 3
    assert client.first_byte_received


def test_handshake_not_sent_while_connecting(fake_connection):
    conn = fake_connection([b""], open_status=ConnectionStatus.CONNECTING)
    client = GameStateClient(connection=conn)
    client.connect()
    client.tick()
    assert conn.sent == []

    conn.status = ConnectionStatus.CONNECTED
    client.tick()
    assert conn.sent == [HANDSHAKE_LINE]


def test_tick_returns_decoded_state(fake_connection, frame):
    client, _ = make_client(fake_connection, [b"", frame(player_a1={"position": [1, 2, 3]})])
    assert client.tick() is None
    state = client.tick()
    assert state is not None
    assert tuple(state.player_a1.position) == pytest.approx((1, 2, 3))
    assert tuple(client.latest_state.player_a1.position) == pytest.approx((1, 2, 3))


def test_message_split_across_ticks(fake_connection, frame):
    data = frame(player_b1={"position": [4, 5, 6]})
    client, _ = make_client(fake_connection, [data[:15], data[15:40], data[40:]])
    assert client.tick() is None
    assert client.tick() is None
    state = client.tick()
    assert tuple(state.player_b1.position) == pytest.approx((4, 5, 6))


def test_newest_of_several_frames_wins(fake_connection, frame):
    seen = []
    batch = frame(player_a1={"position": [1, 0, 0]}) + frame(player_a1={"position": [2, 0, 0]})
    client, _ = make_client(fake_connection, [batch], on_state=seen.append)
    state = client.tick()
    assert state.player_a1.position.x == pytest.approx(2)
    assert client.snapshots_received == 2
    assert len(seen) == 1 and seen[0].player_a1.position.x == pytest.approx(2)


@pytest.mark.parametrize("bad", [
    b"this is not json\n",
    b'{"obstacles": {}, "player_a1": {"position": [9, 9, 9]}}\n',
    b'{"obstacles": {}, "player_a1"\n',
])
def test_bad_frame_keeps_previous_state(fake_connection, frame, bad):
    client, _ = make_client(fake_connection, [frame(player_a1={"position": [1, 2, 3]}), bad])
    client.tick()
    assert client.tick() is None
    assert client.decode_errors == 1
    assert tuple(client.latest_state.player_a1.position) == pytest.approx((1, 2, 3))


def test_returned_state_is_a_copy(fake_connection, frame):
    client, _ = make_client(fake_connection, [frame(player_a1={"position": [1, 2, 3]})])
    state = client.tick()
    state.player_a1.position.x = 100
    assert client.latest_state.player_a1.position.x == pytest.approx(1)


def test_connection_lost_changes_status_and_keeps_last_bytes(fake_connection, frame):
    lost = ConnectionLost("Server closed the connection", orderly=True,
                          data=frame(player_a2={"position": [7, 7, 7]}))
    client, _ = make_client(fake_connection, [b"", lost])
    client.tick()
    state = client.tick()

    assert client.status is ConnectionStatus.DISCONNECTED
    assert tuple(state.player_a2.position) == pytest.approx((7, 7, 7))
    assert client.tick() is None


def test_close_is_safe_and_reports_disconnected(fake_connection, frame):
    client, conn = make_client(fake_connection, [frame()])
    client.close()
    client.close()
    assert client.tick() is None
    assert client.status is ConnectionStatus.DISCONNECTED
    assert conn.sent == []


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_reconnect_after_loss_with_backoff(fake_connection, frame):
    clock = FakeClock()
    policy = ReconnectPolicy(initial_delay=1.0, max_delay=4.0)
    client, conn = make_client(
        fake_connection, [b"x", ConnectionLost("reset", orderly=False)],
        reconnect=policy, clock=clock)

    client.tick()
    assert client.first_byte_received
    client.tick()
    assert client.status is ConnectionStatus.FAILED
    assert conn.opens == 1

    client.tick()                  # schedules the retry one second out
    assert conn.opens == 1
    clock.now = 0.5
    client.tick()
    assert conn.opens == 1
    clock.now = 1.0
    conn.script = [frame()]
    state = client.tick()

    assert conn.opens == 2
    assert client.status is ConnectionStatus.CONNECTED
    assert conn.sent.count(HANDSHAKE_LINE) == 2
    assert state is not None
    assert policy.attempts == 0


def test_reconnect_gives_up_when_attempts_exhausted(fake_connection):
    clock = FakeClock()
    policy = ReconnectPolicy(initial_delay=0.0, max_delay=0.0, max_attempts=1)
    client, conn = make_client(
        fake_connection, [ConnectionLost("bye", orderly=True)], reconnect=policy, clock=clock)
    conn.open_status = ConnectionStatus.DISCONNECTED

    client.tick()                   # loss
    client.tick()                   # schedule attempt 1
    client.tick()                   # attempt 1 dials, session never comes up
    client.tick()                   # exhausted
    assert conn.opens == 2
    assert client.status is ConnectionStatus.FAILED
    client.tick()
    assert conn.opens == 2


def test_runner_publishes_latest_state(fake_connection, frame):
    client, _ = make_client(fake_connection, [b"", frame(player_a1={"position": [3, 2, 1]}), b""])
    ticks = []
    runner = SpectatorRunner(client, tick_rate=1000, on_tick=ticks.append)
    assert runner.fetch_state() is None

    runner.run(max_ticks=3)

    assert runner.ticks == 3
    assert len(ticks) == 3
    assert not runner.running.is_set()
    assert tuple(runner.fetch_state().player_a1.position) == pytest.approx((3, 2, 1))


def test_runner_thread_publishes_copies_and_stops(fake_connection, frame):
    client, _ = make_client(fake_connection, [b"", frame(player_b2={"position": [8, 8, 8]})])
    runner = SpectatorRunner(client, tick_rate=500)
    runner.start()
    thread = runner.network_thread

    state = None
    deadline = time.monotonic() + 3.0
    while state is None and time.monotonic() < deadline:
        state = runner.fetch_state()
        time.sleep(0.01)
    runner.stop()

    assert state is not None
    assert not thread.is_alive()
    assert runner.network_thread is None
    assert client.status is ConnectionStatus.DISCONNECTED

    state.player_b2.position.x = -1
    assert tuple(runner.fetch_state().player_b2.position) == pytest.approx((8, 8, 8))


def test_runner_stops_when_session_is_over(fake_connection):
    client, _ = make_client(fake_connection, [b"", ConnectionLost("bye", orderly=True)])
    runner = SpectatorRunner(client, tick_rate=1000)
    runner.run(max_ticks=50)

    assert client.finished
    assert runner.ticks == 2
    assert not runner.running.is_set()


def test_finished_waits_for_pending_reconnect(fake_connection):
    clock = FakeClock()
    policy = ReconnectPolicy(initial_delay=1.0, max_delay=1.0, max_attempts=1)
    client, _ = make_client(
        fake_connection, [ConnectionLost("bye", orderly=True)], reconnect=policy, clock=clock)
    assert not client.finished
    client.tick()                   # loss
    assert not client.finished
    client.tick()                   # last retry scheduled
    assert policy.exhausted
    assert not client.finished
