"""
data_models.py: Data structures for the decoded game state.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from pygame.math import Vector3

from .constants import DRONE_KEYS


@dataclass
class ObstacleState:
    """A spherical obstacle drifting through the arena."""
    position: Vector3
    radius: float

    def copy(self) -> "ObstacleState":
        return ObstacleState(position=Vector3(self.position), radius=self.radius)

    def to_wire(self) -> dict:
        return {"position": list(self.position), "radius": self.radius}


@dataclass
class DroneState:
    """One of the four competitor drones."""
    position: Vector3
    rot_y: float = 0.0          # radians
    is_dead: bool = False

    def copy(self) -> "DroneState":
        return DroneState(position=Vector3(self.position), rot_y=self.rot_y, is_dead=self.is_dead)

    def to_wire(self) -> dict:
        return {
            "position": list(self.position),
            "rot_y": self.rot_y,
            "is_dead": self.is_dead,
        }


@dataclass
class BulletState:
    position: Vector3

    def copy(self) -> "BulletState":
        return BulletState(position=Vector3(self.position))

    def to_wire(self) -> dict:
        return {"position": list(self.position)}


@dataclass
class GameState:
    """
    One complete snapshot from the server.
    Produced fresh on every successful decode; consumers receive copies.
    """
    obstacles: Dict[str, ObstacleState]
    player_a1: DroneState
    player_a2: DroneState
    player_b1: DroneState
    player_b2: DroneState

    # Optional fields the server may include alongside the required ones
    bullets: Dict[str, BulletState] = field(default_factory=dict)
    score_a: int = 0
    score_b: int = 0
    ticks_progressed: int = 0
    max_game_ticks: Optional[int] = None

    def drones(self) -> List[Tuple[str, DroneState]]:
        """The four drones in fixed key order."""
        return [(key, getattr(self, key)) for key in DRONE_KEYS]

    def copy(self) -> "GameState":
        return GameState(
            obstacles={oid: o.copy() for oid, o in self.obstacles.items()},
            player_a1=self.player_a1.copy(),
            player_a2=self.player_a2.copy(),
            player_b1=self.player_b1.copy(),
            player_b2=self.player_b2.copy(),
            bullets={bid: b.copy() for bid, b in self.bullets.items()},
            score_a=self.score_a,
            score_b=self.score_b,
            ticks_progressed=self.ticks_progressed,
            max_game_ticks=self.max_game_ticks,
        )

    def to_wire(self) -> dict:
        """Prepares the snapshot dictionary for network serialization."""
        message = {
            "obstacles": {oid: o.to_wire() for oid, o in self.obstacles.items()},
            "bullets": {bid: b.to_wire() for bid, b in self.bullets.items()},
            "score_a": self.score_a,
            "score_b": self.score_b,
            "ticks_progressed": self.ticks_progressed,
        }
        for key, drone in self.drones():
            message[key] = drone.to_wire()
        if self.max_game_ticks is not None:
            message["max_game_ticks"] = self.max_game_ticks
        return message
