import copy
import json
import socket

import pytest

from drone_spectator.connection import ConnectionStatus
from drone_spectator.errors import ConnectionLost

BASE_SNAPSHOT = {
    "obstacles": {},
    "player_a1": {"position": [0, 0, 0]},
    "player_a2": {"position": [0, 0, 0]},
    "player_b1": {"position": [0, 0, 0]},
    "player_b2": {"position": [0, 0, 0]},
}


class FakeConnection:
    """Scripted stand-in for Connection: one ``script`` entry is consumed per receive()."""

    def __init__(self, script=None, open_status=ConnectionStatus.CONNECTED):
        self.host = "fake"
        self.port = 0
        self.script = list(script or [])
        self.open_status = open_status
        self.status = ConnectionStatus.DISCONNECTED
        self.last_error = None
        self.sent = []
        self.opens = 0
        self.has_pending_output = False

    def open(self):
        self.opens += 1
        self.status = self.open_status
        return self.status

    def poll(self):
        return self.status

    def send(self, data):
        if self.status is not ConnectionStatus.CONNECTED:
            return False
        self.sent.append(bytes(data))
        return True

    def receive(self):
        if self.status is not ConnectionStatus.CONNECTED or not self.script:
            return b""
        item = self.script.pop(0)
        if isinstance(item, ConnectionLost):
            self.status = ConnectionStatus.DISCONNECTED if item.orderly else ConnectionStatus.FAILED
            self.last_error = item
            raise item
        return item

    def give_up(self, reason):
        self.status = ConnectionStatus.FAILED

    def close(self):
        self.status = ConnectionStatus.DISCONNECTED


@pytest.fixture
def snapshot():
    """Builds a snapshot dict, overriding top-level keys."""
    def build(**overrides):
        message = copy.deepcopy(BASE_SNAPSHOT)
        message.update(overrides)
        return message
    return build


@pytest.fixture
def frame(snapshot):
    """Builds a newline-terminated JSON frame."""
    def build(**overrides):
        return (json.dumps(snapshot(**overrides)) + "\n").encode("utf-8")
    return build


@pytest.fixture
def unused_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def fake_connection():
    return FakeConnection
