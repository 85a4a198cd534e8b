"""
drone_spectator: Spectator client for the drone-combat simulation server.
"""

import os

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

from .connection import Connection, ConnectionStatus
from .data_models import BulletState, DroneState, GameState, ObstacleState, Vector3
from .errors import ConnectError, ConnectionLost, DecodeError, SpectatorError
from .protocol import MessageFramer, encode_game_state, parse_game_state
from .reconnect import ReconnectPolicy
from .spectator_client import GameStateClient

__version__ = "0.1.0"

__all__ = [
    "BulletState",
    "Connection",
    "ConnectionLost",
    "ConnectionStatus",
    "ConnectError",
    "DecodeError",
    "DroneState",
    "GameState",
    "GameStateClient",
    "MessageFramer",
    "ObstacleState",
    "ReconnectPolicy",
    "SpectatorError",
    "Vector3",
    "encode_game_state",
    "parse_game_state",
]
