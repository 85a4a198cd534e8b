"""
constants.py: Centralized configuration for the spectator client and the dev snapshot server.
"""

# -------- Network & Server Config --------
SERVER_HOST = "127.0.0.1"
SERVER_PORT = 44556
RECV_CHUNK_SIZE = 4096
MAX_FRAME_BYTES = 1 << 20       # Drop the receive buffer if a frame grows past this

# Roles a client announces on its first line (server reads up to the newline)
SPECTATOR_ROLE = "SPECTATOR"
COMPETITOR_ROLE = "COMPETITOR"
HANDSHAKE_LINE = (SPECTATOR_ROLE + "\n").encode("ascii")

# Time synchronization
CLIENT_TICK_RATE = 60           # Client polls per second
FRAME_DELAY_MS = 16             # Server broadcast period in normal mode

# Reconnect backoff (seconds)
RECONNECT_INITIAL_DELAY = 0.5
RECONNECT_MAX_DELAY = 8.0
RECONNECT_MULTIPLIER = 2.0

# -------- Snapshot Schema --------
OBSTACLES_KEY = "obstacles"
BULLETS_KEY = "bullets"
DRONE_KEYS = ("player_a1", "player_a2", "player_b1", "player_b2")

# -------- Arena Config (dev server) --------
ARENA_SIZE = 20.0                               # Arena is a cube
PLAYER_SPAWN_RANGE = (ARENA_SIZE * 0.25, ARENA_SIZE * 0.75)
PLAYER_RADIUS = 1.0
PLAYER_DRIFT_SPEED = 2.0                        # units/second
OBSTACLE_RADIUS = (1.5, 2.0)
OBSTACLE_SPEED = 4.0                            # units/second
OBSTACLE_SPAWN_DISTANCE = ARENA_SIZE * 1.5
OBSTACLE_SPAWN_TIMER_INIT = (0, 20)             # ticks
MAX_OBSTACLE_SPAWN_TIMER = 80                   # ticks
