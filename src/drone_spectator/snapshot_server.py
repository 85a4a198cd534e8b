#!/usr/bin/env python3
"""
Development snapshot server.

Speaks the same wire protocol as the simulation server from the spectator's
point of view: clients identify themselves with a role line, a single
SPECTATOR is admitted and then receives one newline-terminated JSON snapshot
per frame. Uses snapshot_engine for the world.
"""

import logging
import socket
import threading
import time
from typing import Optional, Tuple

from .constants import COMPETITOR_ROLE, FRAME_DELAY_MS, SERVER_HOST, SERVER_PORT, SPECTATOR_ROLE
from .protocol import encode_game_state
from .snapshot_engine import SnapshotEngine

logger = logging.getLogger(__name__)

ROLE_LINE_LIMIT = 512       # Role lines are tiny; anything longer is a misbehaving client


class SnapshotServer:
    def __init__(self, host: str = SERVER_HOST, port: int = SERVER_PORT,
                 frame_delay_ms: int = FRAME_DELAY_MS, training_mode: bool = False,
                 seed: Optional[int] = None):
        self.frame_delay = frame_delay_ms / 1000.0
        self.training_mode = training_mode

        # World
        self.engine = SnapshotEngine(dt=self.frame_delay, seed=seed)
        self.current_frame = encode_game_state(self.engine.snapshot())

        # Network
        self.listen_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listen_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.listen_sock.bind((host, port))
        self.listen_sock.listen()
        self.listen_sock.settimeout(0.2)
        self.address: Tuple[str, int] = self.listen_sock.getsockname()[:2]

        self.spectator: Optional[socket.socket] = None
        self.spectator_lock = threading.Lock()
        self.rejected = 0

        # Threading
        self.running = threading.Event()
        self.running.set()
        self.accept_thread = threading.Thread(target=self._accept_loop, daemon=True)
        self.game_thread = threading.Thread(target=self._game_loop, daemon=True)

    @property
    def port(self) -> int:
        return self.address[1]

    def start(self):
        """Start accept and game loops."""
        self.accept_thread.start()
        self.game_thread.start()

    def stop(self):
        """Stop all loops and close every socket."""
        logger.info("Stopping snapshot server...")
        self.running.clear()
        for thread in (self.accept_thread, self.game_thread):
            if thread.is_alive():
                thread.join()
        with self.spectator_lock:
            self._drop_spectator()
        self.listen_sock.close()
        logger.info("Snapshot server stopped.")

    def _accept_loop(self):
        logger.info("Accepting clients on %s:%d", *self.address)
        while self.running.is_set():
            try:
                conn, addr = self.listen_sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.running.is_set():
                    logger.error("Accept failed: %s", e)
                break
            logger.info("Connected to client %s:%d", *addr[:2])
            threading.Thread(target=self._handle_client, args=(conn, addr), daemon=True).start()

    def _read_role(self, conn: socket.socket) -> Optional[str]:
        buffer = b""
        while b"\n" not in buffer:
            try:
                chunk = conn.recv(ROLE_LINE_LIMIT)
            except OSError:
                return None
            if not chunk:
                return None
            buffer += chunk
            if len(buffer) > ROLE_LINE_LIMIT:
                return None
        return buffer.split(b"\n", 1)[0].decode("utf-8", "replace").strip()

    def _reject(self, conn: socket.socket, reason: str):
        logger.info("%s: disconnect", reason)
        self.rejected += 1
        conn.close()

    def _handle_client(self, conn: socket.socket, addr):
        conn.settimeout(5.0)
        role = self._read_role(conn)

        if role != SPECTATOR_ROLE:
            if role == COMPETITOR_ROLE:
                return self._reject(conn, "Development server has no competitor slots")
            return self._reject(conn, "Client failed to identify itself")
        if self.training_mode:
            return self._reject(conn, "Training mode, no spectators allowed")

        with self.spectator_lock:
            if self.spectator is not None:
                return self._reject(conn, "Already have spectator")
            self.spectator = conn
            try:
                conn.sendall(self.current_frame)
                logger.info("Broadcasted initial gamestate to %s:%d", *addr[:2])
            except OSError as e:
                logger.warning("Spectator dropped before first snapshot: %s", e)
                self._drop_spectator()
                return

        # Discard repeated role lines until the spectator goes away
        conn.settimeout(0.2)
        while self.running.is_set():
            try:
                if not conn.recv(ROLE_LINE_LIMIT):
                    break
            except socket.timeout:
                continue
            except OSError:
                break
        with self.spectator_lock:
            if self.spectator is conn:
                logger.info("Spectator %s:%d disconnected", *addr[:2])
                self._drop_spectator()

    def _drop_spectator(self):
        if self.spectator is not None:
            try:
                self.spectator.close()
            except OSError as e:
                logger.debug("Ignoring error on close: %s", e)
            self.spectator = None

    def broadcast(self, frame: bytes):
        """Sends one snapshot frame to the spectator, if any."""
        with self.spectator_lock:
            if self.spectator is None:
                return
            try:
                self.spectator.sendall(frame)
            except OSError as e:
                logger.warning("Error broadcasting to spectator: %s", e)
                self._drop_spectator()

    def _game_loop(self):
        """Steps the world and broadcasts at the fixed frame delay."""
        logger.info("Game thread started. Frame delay: %.0f ms.", self.frame_delay * 1000)
        while self.running.is_set():
            start_time = time.time()

            state = self.engine.step()
            frame = encode_game_state(state)
            with self.spectator_lock:
                self.current_frame = frame
            self.broadcast(frame)

            elapsed_time = time.time() - start_time
            sleep_time = self.frame_delay - elapsed_time
            if sleep_time > 0:
                time.sleep(sleep_time)
