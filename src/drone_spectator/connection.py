"""
connection.py: Non-blocking TCP connection to the simulation server.
"""

import errno
import logging
import os
import select
import socket
from enum import Enum
from typing import Optional

from .constants import RECV_CHUNK_SIZE
from .errors import ConnectError, ConnectionLost

logger = logging.getLogger(__name__)

_IN_PROGRESS = {errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY, errno.EAGAIN}


class ConnectionStatus(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class Connection:
    """
    Owns a single non-blocking TCP socket.

    Nothing here ever blocks: ``open`` starts the dial, ``poll`` completes it,
    ``send`` queues and writes what the kernel accepts, ``receive`` drains
    whatever is buffered.
    """

    def __init__(self, host: str, port: int, recv_chunk_size: int = RECV_CHUNK_SIZE):
        self.host = host
        self.port = int(port)
        self.recv_chunk_size = recv_chunk_size

        self.status = ConnectionStatus.DISCONNECTED
        self.last_error: Optional[Exception] = None

        self._sock: Optional[socket.socket] = None
        self._outbox = bytearray()

    @property
    def has_pending_output(self) -> bool:
        return bool(self._outbox)

    def open(self) -> ConnectionStatus:
        """Starts a non-blocking connect. Raises ConnectError on immediate failure."""
        self._teardown()
        self.last_error = None

        try:
            family, socktype, proto, _, addr = socket.getaddrinfo(
                self.host, self.port, type=socket.SOCK_STREAM)[0]
        except socket.gaierror as e:
            raise self._fail_connect(e.strerror or str(e)) from e

        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            raise self._fail_connect(str(e)) from e

        sock.setblocking(False)
        try:
            err = sock.connect_ex(addr)
        except OSError as e:
            sock.close()
            raise self._fail_connect(str(e)) from e

        if err not in _IN_PROGRESS and err != 0:
            sock.close()
            raise self._fail_connect(os.strerror(err))

        self._sock = sock
        if err == 0:
            self._set_status(ConnectionStatus.CONNECTED)
        else:
            self._set_status(ConnectionStatus.CONNECTING)
        return self.status

    def poll(self) -> ConnectionStatus:
        """
        Drives the connection forward: completes a pending connect and flushes
        queued output. Raises ConnectionLost if a write fails.
        """
        if self.status is ConnectionStatus.CONNECTING:
            _, writable, errored = select.select([], [self._sock], [self._sock], 0)
            if writable or errored:
                err = self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
                if err:
                    self.last_error = ConnectError(self.host, self.port, os.strerror(err))
                    logger.warning("%s", self.last_error)
                    self._teardown()
                    self._set_status(ConnectionStatus.FAILED)
                else:
                    self._set_status(ConnectionStatus.CONNECTED)

        if self.status is ConnectionStatus.CONNECTED:
            self._flush()
        return self.status

    def send(self, data: bytes) -> bool:
        """Queues ``data`` and writes as much as the socket accepts right now."""
        if self.status is not ConnectionStatus.CONNECTED:
            return False
        self._outbox.extend(data)
        self._flush()
        return True

    def receive(self) -> bytes:
        """
        Returns every byte currently available; ``b""`` means nothing yet.
        Raises ConnectionLost when the peer closes or the socket errors.
        """
        if self.status is not ConnectionStatus.CONNECTED:
            return b""

        chunks = []
        while True:
            try:
                chunk = self._sock.recv(self.recv_chunk_size)
            except (BlockingIOError, InterruptedError):
                break
            except OSError as e:
                self._lose(f"Socket error while reading: {e}", orderly=False, data=b"".join(chunks))
            if not chunk:
                self._lose("Server closed the connection", orderly=True, data=b"".join(chunks))
            chunks.append(chunk)
        return b"".join(chunks)

    def give_up(self, reason: str):
        """Marks the connection terminally failed."""
        self._teardown()
        self.last_error = ConnectError(self.host, self.port, reason)
        self._set_status(ConnectionStatus.FAILED)

    def close(self):
        """Safe to call at any time, any number of times."""
        self._teardown()
        self._set_status(ConnectionStatus.DISCONNECTED)

    # ----------------- internals -----------------

    def _flush(self):
        while self._outbox:
            try:
                sent = self._sock.send(self._outbox)
            except (BlockingIOError, InterruptedError):
                return
            except OSError as e:
                self._lose(f"Socket error while writing: {e}", orderly=False)
            del self._outbox[:sent]

    def _lose(self, reason: str, orderly: bool, data: bytes = b""):
        self._teardown()
        self._set_status(ConnectionStatus.DISCONNECTED if orderly else ConnectionStatus.FAILED)
        self.last_error = ConnectionLost(reason, orderly=orderly, data=data)
        raise self.last_error

    def _fail_connect(self, reason: str) -> ConnectError:
        self._set_status(ConnectionStatus.FAILED)
        self.last_error = ConnectError(self.host, self.port, reason)
        return self.last_error

    def _teardown(self):
        self._outbox.clear()
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError as e:
                logger.debug("Ignoring error on close: %s", e)
            self._sock = None

    def _set_status(self, status: ConnectionStatus):
        if status is not self.status:
            logger.info("Connection %s:%d %s -> %s", self.host, self.port,
                        self.status.value, status.value)
            self.status = status
