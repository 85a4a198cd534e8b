"""
snapshot_engine.py: A small stand-in world for the development snapshot server.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Dict, Optional

from pygame.math import Vector3

from .constants import (
    ARENA_SIZE, DRONE_KEYS, MAX_OBSTACLE_SPAWN_TIMER, OBSTACLE_RADIUS, OBSTACLE_SPAWN_DISTANCE,
    OBSTACLE_SPAWN_TIMER_INIT, OBSTACLE_SPEED, PLAYER_DRIFT_SPEED, PLAYER_SPAWN_RANGE
)
from .data_models import DroneState, GameState, ObstacleState

ARENA_CENTER = Vector3(ARENA_SIZE / 2, ARENA_SIZE / 2, ARENA_SIZE / 2)


@dataclass
class _MovingObstacle:
    position: Vector3
    velocity: Vector3
    radius: float


@dataclass
class SnapshotEngine:
    """
    Drones drift inside the arena cube; obstacles spawn on a timer at
    OBSTACLE_SPAWN_DISTANCE from the centre, fly through it and are removed
    once they are farther out than where they started.
    """
    dt: float = 0.016
    seed: Optional[int] = None
    max_game_ticks: Optional[int] = None

    tick_count: int = 0
    obstacle_counter: int = 0
    obstacle_spawn_timer: int = 0
    drones: Dict[str, DroneState] = field(default_factory=dict)
    obstacles: Dict[int, _MovingObstacle] = field(default_factory=dict)

    def __post_init__(self):
        self.rng = random.Random(self.seed)
        self.obstacle_spawn_timer = self.rng.randint(*OBSTACLE_SPAWN_TIMER_INIT)
        for key in DRONE_KEYS:
            self.drones[key] = DroneState(position=Vector3(
                *(self.rng.uniform(*PLAYER_SPAWN_RANGE) for _ in range(3))))

    def _spawn_obstacle(self):
        """Places a new obstacle on the spawn sphere, aimed roughly at the centre."""
        direction = Vector3(self.rng.uniform(-1, 1), self.rng.uniform(-1, 1), self.rng.uniform(-1, 1))
        if direction.length_squared() == 0:
            direction = Vector3(1, 0, 0)
        direction.scale_to_length(OBSTACLE_SPAWN_DISTANCE)
        position = ARENA_CENTER + direction

        target = ARENA_CENTER + Vector3(*(self.rng.uniform(-2, 2) for _ in range(3)))
        velocity = target - position
        velocity.scale_to_length(OBSTACLE_SPEED)

        self.obstacles[self.obstacle_counter] = _MovingObstacle(
            position=position, velocity=velocity, radius=self.rng.uniform(*OBSTACLE_RADIUS))
        self.obstacle_counter += 1
        self.obstacle_spawn_timer = MAX_OBSTACLE_SPAWN_TIMER

    def step(self) -> GameState:
        """Advances one tick and returns the resulting snapshot."""
        self.tick_count += 1

        # 1. Spawn and move obstacles
        self.obstacle_spawn_timer -= 1
        if self.obstacle_spawn_timer <= 0:
            self._spawn_obstacle()

        for oid in list(self.obstacles):
            obstacle = self.obstacles[oid]
            obstacle.position += obstacle.velocity * self.dt
            if obstacle.position.distance_to(ARENA_CENTER) > OBSTACLE_SPAWN_DISTANCE + 1.0:
                del self.obstacles[oid]

        # 2. Drift drones, clamped to the arena
        for drone in self.drones.values():
            drone.rot_y = (drone.rot_y + self.rng.uniform(-0.2, 0.2)) % math.tau
            heading = Vector3(math.cos(drone.rot_y), self.rng.uniform(-0.3, 0.3), math.sin(drone.rot_y))
            drone.position += heading * PLAYER_DRIFT_SPEED * self.dt
            drone.position = Vector3(*(min(max(c, 0.0), ARENA_SIZE) for c in drone.position))

        return self.snapshot()

    def snapshot(self) -> GameState:
        return GameState(
            obstacles={
                str(oid): ObstacleState(position=Vector3(o.position), radius=o.radius)
                for oid, o in self.obstacles.items()
            },
            ticks_progressed=self.tick_count,
            max_game_ticks=self.max_game_ticks,
            **{key: drone.copy() for key, drone in self.drones.items()},
        )
