"""
protocol.py: Message framing and the snapshot JSON codec.

Inbound traffic is newline-delimited JSON. ``MessageFramer`` accumulates raw
bytes across ticks and releases complete frames; ``parse_game_state`` turns a
single frame into a validated ``GameState`` or raises ``DecodeError``.
Neither keeps any shared parser state.
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Union

from pygame.math import Vector3

from .constants import BULLETS_KEY, DRONE_KEYS, MAX_FRAME_BYTES, OBSTACLES_KEY
from .data_models import BulletState, DroneState, GameState, ObstacleState
from .errors import DecodeError

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()
_PARTIAL_TOKEN = re.compile(r"[\w.+-]*")


# ----------------- Framing -----------------

class MessageFramer:
    """
    Splits an inbound byte stream into discrete messages.

    Frames are terminated by ``\\n`` (a trailing ``\\r`` is stripped). With
    ``allow_unterminated`` set, a buffered tail that already holds one or more
    complete JSON objects is released without waiting for a newline, which
    covers servers that write exactly one object per flush. Bytes that cannot
    start or complete an object are dropped and the framer resyncs on the next
    ``{``.
    """

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES, allow_unterminated: bool = False):
        self.max_frame_bytes = max_frame_bytes
        self.allow_unterminated = allow_unterminated
        self._buffer = bytearray()
        self.overflows = 0
        self.discarded = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def reset(self):
        self._buffer.clear()

    def feed(self, data: bytes) -> List[bytes]:
        """Appends ``data`` and returns every complete frame, oldest first."""
        self._buffer.extend(data)
        frames: List[bytes] = []

        while True:
            newline_index = self._buffer.find(b"\n")
            if newline_index < 0:
                break
            line = bytes(self._buffer[:newline_index]).rstrip(b"\r")
            del self._buffer[:newline_index + 1]
            if line.strip():
                frames.append(line)

        if self._buffer and self.allow_unterminated:
            frames.extend(self._drain_complete_objects())

        if len(self._buffer) > self.max_frame_bytes:
            logger.warning(
                "Discarding %d buffered bytes: no frame terminator within %d bytes",
                len(self._buffer), self.max_frame_bytes)
            self._buffer.clear()
            self.overflows += 1

        return frames

    def _drain_complete_objects(self) -> List[bytes]:
        try:
            text = self._buffer.decode("utf-8")
        except UnicodeDecodeError:
            # Possibly a multi-byte character split across reads
            return []

        frames = []
        position = 0
        while position < len(text):
            start = text.find("{", position)
            if start < 0:
                self._discard(text[position:])
                position = len(text)
                break
            self._discard(text[position:start])

            try:
                _, end = _decoder.raw_decode(text, start)
            except json.JSONDecodeError as e:
                if _is_truncated(text, e):
                    position = start
                    break
                # Malformed object: resync on the next opening brace past the failure
                resync = text.find("{", max(e.pos, start + 1))
                if resync < 0:
                    resync = len(text)
                self._discard(text[start:resync])
                position = resync
                continue

            frames.append(text[start:end].encode("utf-8"))
            position = end

        rest = text[position:]
        self._buffer = bytearray(rest.encode("utf-8") if rest.strip() else b"")
        return frames

    def _discard(self, segment: str):
        if segment.strip():
            self.discarded += 1
            logger.warning("Discarding %d bytes that do not form a JSON object", len(segment))


def _is_truncated(text: str, error: json.JSONDecodeError) -> bool:
    """True when the decode failed only because the input ended mid-object."""
    if error.msg.startswith("Unterminated string"):
        return True
    # A partial number or literal (``1.``, ``tr``) at the very end of the buffer
    return _PARTIAL_TOKEN.fullmatch(text[error.pos:].strip()) is not None


# ----------------- Decoding -----------------

def _reject_constant(name: str):
    raise DecodeError(f"Non-finite number {name} is not allowed")


def _number(value: Any, where: str) -> float:
    # bool is a subclass of int; it is never a valid coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"{where}: expected a number, got {type(value).__name__}")
    number = float(value)
    if not math.isfinite(number):
        raise DecodeError(f"{where}: number is not finite")
    return number


def _vector(value: Any, where: str) -> Vector3:
    if not isinstance(value, list) or len(value) != 3:
        raise DecodeError(f"{where}: expected [x, y, z]")
    return Vector3(*(_number(v, f"{where}[{i}]") for i, v in enumerate(value)))


def _record(message: Dict, key: str, where: str) -> Dict:
    if key not in message:
        raise DecodeError(f"{where}: missing required field '{key}'")
    value = message[key]
    if not isinstance(value, dict):
        raise DecodeError(f"{where}.{key}: expected an object")
    return value


def _count(message: Dict, key: str, default):
    value = message.get(key, default)
    if value is default:
        return value
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DecodeError(f"{key}: expected a non-negative integer")
    return value


def _obstacle(raw: Any, where: str) -> ObstacleState:
    if not isinstance(raw, dict):
        raise DecodeError(f"{where}: expected an object")
    if "radius" not in raw:
        raise DecodeError(f"{where}: missing required field 'radius'")
    radius = _number(raw["radius"], f"{where}.radius")
    if radius < 0:
        raise DecodeError(f"{where}.radius: must not be negative")
    return ObstacleState(position=_vector(raw.get("position"), f"{where}.position"), radius=radius)


def _drone(raw: Dict, where: str) -> DroneState:
    drone = DroneState(position=_vector(raw.get("position"), f"{where}.position"))
    if "rot_y" in raw:
        drone.rot_y = _number(raw["rot_y"], f"{where}.rot_y")
    if "is_dead" in raw:
        if not isinstance(raw["is_dead"], bool):
            raise DecodeError(f"{where}.is_dead: expected a boolean")
        drone.is_dead = raw["is_dead"]
    return drone


def parse_game_state(payload: Union[bytes, str]) -> GameState:
    """
    Decodes one JSON document into a ``GameState``.

    All four drone records and the obstacles map must be present; any schema
    violation rejects the whole payload.
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Payload is not valid UTF-8: {e}") from e

    try:
        message = json.loads(payload, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Payload is not valid JSON: {e}") from e

    if not isinstance(message, dict):
        raise DecodeError("Snapshot must be a JSON object")

    obstacles_raw = _record(message, OBSTACLES_KEY, "snapshot")
    drones = {key: _drone(_record(message, key, "snapshot"), key) for key in DRONE_KEYS}

    obstacles = {
        str(oid): _obstacle(raw, f"obstacles.{oid}") for oid, raw in obstacles_raw.items()
    }

    bullets = {}
    if BULLETS_KEY in message:
        bullets_raw = _record(message, BULLETS_KEY, "snapshot")
        for bid, raw in bullets_raw.items():
            if not isinstance(raw, dict):
                raise DecodeError(f"bullets.{bid}: expected an object")
            bullets[str(bid)] = BulletState(
                position=_vector(raw.get("position"), f"bullets.{bid}.position"))

    return GameState(
        obstacles=obstacles,
        bullets=bullets,
        score_a=_count(message, "score_a", 0),
        score_b=_count(message, "score_b", 0),
        ticks_progressed=_count(message, "ticks_progressed", 0),
        max_game_ticks=_count(message, "max_game_ticks", None),
        **drones,
    )


# ----------------- Encoding -----------------

def encode_game_state(state: GameState) -> bytes:
    """Serializes a snapshot as one newline-terminated JSON frame."""
    return (json.dumps(state.to_wire(), separators=(",", ":")) + "\n").encode("utf-8")
