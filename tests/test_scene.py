import json

import pytest

from drone_spectator.constants import DRONE_KEYS
from drone_spectator.protocol import parse_game_state
from drone_spectator.scene import SpectatorScene


def test_drone_nodes_are_fixed(snapshot):
    scene = SpectatorScene()
    assert sorted(scene.drones) == sorted(DRONE_KEYS)
    scene.apply(parse_game_state(json.dumps(snapshot(player_a1={"position": [1, 2, 3]}))))
    assert tuple(scene.drones["player_a1"].translation) == pytest.approx((1, 2, 3))
    assert sorted(scene.drones) == sorted(DRONE_KEYS)


def test_obstacle_transform_uses_radius_as_uniform_scale(snapshot):
    scene = SpectatorScene()
    scene.apply(parse_game_state(json.dumps(snapshot(
        obstacles={"o1": {"position": [5, 0, 5], "radius": 2.5}}))))

    assert list(scene.obstacles) == ["o1"]
    node = scene.obstacles["o1"]
    assert tuple(node.translation) == pytest.approx((5, 0, 5))
    assert tuple(node.scale) == pytest.approx((2.5, 2.5, 2.5))


def test_obstacle_nodes_follow_snapshot(snapshot):
    scene = SpectatorScene()
    scene.apply(parse_game_state(json.dumps(snapshot(obstacles={
        "a": {"position": [0, 0, 0], "radius": 1},
        "b": {"position": [1, 1, 1], "radius": 2},
    }))))
    node_b = scene.obstacles["b"]

    scene.apply(parse_game_state(json.dumps(snapshot(obstacles={
        "b": {"position": [2, 2, 2], "radius": 2},
        "c": {"position": [3, 3, 3], "radius": 1.5},
    }))))

    assert sorted(scene.obstacles) == ["b", "c"]
    assert scene.obstacles["b"] is node_b
    assert tuple(node_b.translation) == pytest.approx((2, 2, 2))


def test_dead_drone_is_hidden_and_bullets_tracked(snapshot):
    scene = SpectatorScene()
    scene.apply(parse_game_state(json.dumps(snapshot(
        player_b1={"position": [0, 0, 0], "is_dead": True},
        bullets={"1": {"position": [4, 4, 4]}},
    ))))
    assert not scene.drones["player_b1"].visible
    assert scene.drones["player_a1"].visible
    assert tuple(scene.bullets["1"].translation) == pytest.approx((4, 4, 4))
    assert "obstacles=0 bullets=1" in scene.summary()
    assert "player_b1=(0.0,0.0,0.0)[dead]" in scene.summary()
