"""
scene.py: Maps decoded snapshots onto a fixed set of scene-graph transforms.

Drawing is left to whatever engine embeds the client; this module only keeps
the per-node translation/scale/visibility the renderer would copy each frame.
"""

from dataclasses import dataclass, field
from typing import Dict

from pygame.math import Vector3

from .constants import DRONE_KEYS, PLAYER_RADIUS
from .data_models import GameState

BULLET_SCALE = 0.2


@dataclass
class Transform:
    translation: Vector3 = field(default_factory=Vector3)
    scale: Vector3 = field(default_factory=lambda: Vector3(1, 1, 1))
    visible: bool = True

    @classmethod
    def uniform(cls, translation: Vector3, scale: float) -> "Transform":
        return cls(translation=Vector3(translation), scale=Vector3(scale, scale, scale))


class SpectatorScene:
    """
    One node per drone (created up front, never removed) plus one node per
    obstacle and bullet id currently present in the snapshot.
    """

    def __init__(self, drone_scale: float = PLAYER_RADIUS):
        self.drone_scale = drone_scale
        self.drones: Dict[str, Transform] = {
            key: Transform.uniform(Vector3(), drone_scale) for key in DRONE_KEYS
        }
        self.obstacles: Dict[str, Transform] = {}
        self.bullets: Dict[str, Transform] = {}

    def apply(self, state: GameState):
        for key, drone in state.drones():
            node = self.drones[key]
            node.translation = Vector3(drone.position)
            node.visible = not drone.is_dead

        for oid in list(self.obstacles):
            if oid not in state.obstacles:
                del self.obstacles[oid]
        for oid, obstacle in state.obstacles.items():
            node = self.obstacles.get(oid)
            if node is None:
                self.obstacles[oid] = Transform.uniform(obstacle.position, obstacle.radius)
            else:
                node.translation = Vector3(obstacle.position)
                node.scale = Vector3(obstacle.radius, obstacle.radius, obstacle.radius)

        self.bullets = {
            bid: self.bullets[bid] if bid in self.bullets else Transform.uniform(b.position, BULLET_SCALE)
            for bid, b in state.bullets.items()
        }
        for bid, bullet in state.bullets.items():
            self.bullets[bid].translation = Vector3(bullet.position)

    def summary(self) -> str:
        drones = " ".join(
            f"{key}=({t.translation.x:.1f},{t.translation.y:.1f},{t.translation.z:.1f})"
            + ("" if t.visible else "[dead]")
            for key, t in self.drones.items()
        )
        return f"obstacles={len(self.obstacles)} bullets={len(self.bullets)} {drones}"
