"""
spectator_client.py

Spectator-side protocol handler: handshake, non-blocking reads, framing and
snapshot decode. ``GameStateClient`` is driven one ``tick()`` at a time;
``SpectatorRunner`` drives it at a fixed rate, either inline or on a
background thread.
"""

import logging
import threading
import time
from typing import Callable, Optional

import pygame

from .connection import Connection, ConnectionStatus
from .constants import CLIENT_TICK_RATE, HANDSHAKE_LINE, SERVER_HOST, SERVER_PORT
from .data_models import GameState
from .errors import ConnectError, ConnectionLost, DecodeError
from .protocol import MessageFramer, parse_game_state
from .reconnect import ReconnectPolicy

logger = logging.getLogger(__name__)

StateCallback = Callable[[GameState], None]


# ----------------- Network Client (handshake / framing / state) -----------------

class GameStateClient:
    def __init__(
        self,
        host: str = SERVER_HOST,
        port: int = SERVER_PORT,
        on_state: Optional[StateCallback] = None,
        reconnect: Optional[ReconnectPolicy] = None,
        allow_unterminated: bool = False,
        connection: Optional[Connection] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.connection = connection if connection is not None else Connection(host, port)
        self.framer = MessageFramer(allow_unterminated=allow_unterminated)
        self.on_state = on_state
        self.reconnect = reconnect
        self._clock = clock

        # Session state
        self.first_byte_received = False
        self.handshake_sent_count = 0
        self.decode_errors = 0
        self.snapshots_received = 0

        self._latest: Optional[GameState] = None
        self._retry_at: Optional[float] = None
        self._closed = False

    @property
    def status(self) -> ConnectionStatus:
        return self.connection.status

    @property
    def last_error(self) -> Optional[Exception]:
        return self.connection.last_error

    @property
    def finished(self) -> bool:
        """True once the session is down and no reconnect attempt is left."""
        if self._closed:
            return True
        if self.connection.status not in (ConnectionStatus.DISCONNECTED, ConnectionStatus.FAILED):
            return False
        if self.reconnect is None:
            return True
        return self.reconnect.exhausted and self._retry_at is None

    @property
    def latest_state(self) -> Optional[GameState]:
        """The last successfully decoded snapshot, as a copy."""
        return self._latest.copy() if self._latest is not None else None

    def connect(self, host: Optional[str] = None, port: Optional[int] = None) -> ConnectionStatus:
        """
        Starts dialing the server without blocking.
        Raises ConnectError if the address is unreachable or refused outright.
        """
        if host is not None:
            self.connection.host = host
        if port is not None:
            self.connection.port = int(port)

        self._closed = False
        self._retry_at = None
        self._reset_session()
        return self.connection.open()

    def tick(self) -> Optional[GameState]:
        """
        One scheduling period: advance the connection, (re)send the handshake,
        drain the socket and decode whatever frames completed.
        Returns the newest snapshot decoded during this tick, if any.
        """
        if self._closed:
            return None

        data = b""
        try:
            self._drive_connection()
            self._send_handshake()
            data = self.connection.receive()
        except ConnectionLost as e:
            logger.warning("Connection lost: %s", e)
            data = e.data

        return self._ingest(data)

    def close(self):
        """Tears the session down; later ticks report DISCONNECTED and do nothing."""
        self._closed = True
        self.connection.close()

    # ----------------- tick steps -----------------

    def _drive_connection(self):
        if self.reconnect is not None and self.connection.status in (
                ConnectionStatus.DISCONNECTED, ConnectionStatus.FAILED):
            self._maybe_reconnect()
        self.connection.poll()

    def _send_handshake(self):
        # First inbound byte stands in for the server acknowledging our role
        if self.first_byte_received or self.connection.status is not ConnectionStatus.CONNECTED:
            return
        if self.connection.has_pending_output:
            return
        if self.connection.send(HANDSHAKE_LINE):
            self.handshake_sent_count += 1
            logger.debug("Sent handshake (%d so far)", self.handshake_sent_count)

    def _ingest(self, data: bytes) -> Optional[GameState]:
        if not data:
            return None

        if not self.first_byte_received:
            self.first_byte_received = True
            logger.info("First bytes received from server; handshake considered acknowledged")
            if self.reconnect is not None:
                self.reconnect.reset()

        newest = None
        for frame in self.framer.feed(data):
            try:
                newest = parse_game_state(frame)
            except DecodeError as e:
                self.decode_errors += 1
                logger.warning("Dropping snapshot: %s", e)
                continue
            self.snapshots_received += 1

        if newest is None:
            return None

        self._latest = newest
        if self.on_state is not None:
            self.on_state(newest.copy())
        return newest.copy()

    def _maybe_reconnect(self):
        now = self._clock()
        if self._retry_at is None:
            if self.reconnect.exhausted:
                if self.connection.status is not ConnectionStatus.FAILED:
                    self.connection.give_up("reconnect attempts exhausted")
                return
            delay = self.reconnect.next_delay()
            self._retry_at = now + delay
            logger.info("Reconnecting in %.2fs (attempt %d)", delay, self.reconnect.attempts)
            return
        if now < self._retry_at:
            return

        self._retry_at = None
        self._reset_session()
        try:
            self.connection.open()
        except ConnectError as e:
            logger.warning("Reconnect attempt %d failed: %s", self.reconnect.attempts, e)

    def _reset_session(self):
        self.first_byte_received = False
        self.framer.reset()


# ----------------- Runner (fixed-rate tick loop) -----------------

class SpectatorRunner:
    """
    Ticks a GameStateClient at a fixed rate.
    The latest snapshot is published under a lock so a renderer on another
    thread can read it with ``fetch_state``. The loop ends by itself once the
    client reports ``finished``.
    """

    def __init__(self, client: GameStateClient, tick_rate: int = CLIENT_TICK_RATE,
                 on_tick: Optional[Callable[[Optional[GameState]], None]] = None):
        self.client = client
        self.tick_rate = tick_rate
        self.on_tick = on_tick

        self._published: Optional[GameState] = None
        self.state_lock = threading.Lock()

        self.running = threading.Event()
        self.network_thread: Optional[threading.Thread] = None
        self.ticks = 0

    def step(self) -> Optional[GameState]:
        state = self.client.tick()
        if state is not None:
            with self.state_lock:
                self._published = state
        self.ticks += 1
        if self.on_tick is not None:
            self.on_tick(state)
        return state

    def run(self, max_ticks: Optional[int] = None):
        """Cooperative loop on the calling thread."""
        self.running.set()
        self._loop(max_ticks)

    def start(self):
        self.running.set()
        self.network_thread = threading.Thread(target=self._loop, daemon=True)
        self.network_thread.start()

    def stop(self):
        self.running.clear()
        if self.network_thread is not None:
            self.network_thread.join()
            self.network_thread = None
        self.client.close()

    def fetch_state(self) -> Optional[GameState]:
        """Safely retrieve the latest snapshot."""
        with self.state_lock:
            return self._published.copy() if self._published is not None else None

    def _loop(self, max_ticks: Optional[int] = None):
        clock = pygame.time.Clock()
        done = 0
        try:
            while self.running.is_set():
                self.step()
                done += 1
                if self.client.finished:
                    logger.info("Session over (%s); stopping tick loop", self.client.status.value)
                    break
                if max_ticks is not None and done >= max_ticks:
                    break
                clock.tick(self.tick_rate)
        finally:
            self.running.clear()
