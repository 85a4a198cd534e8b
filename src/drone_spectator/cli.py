"""
cli.py: Command-line entry points for the spectator and the dev snapshot server.
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from .constants import (
    CLIENT_TICK_RATE, FRAME_DELAY_MS, RECONNECT_INITIAL_DELAY, RECONNECT_MAX_DELAY,
    SERVER_HOST, SERVER_PORT
)
from .errors import ConnectError
from .reconnect import ReconnectPolicy
from .scene import SpectatorScene
from .snapshot_server import SnapshotServer
from .spectator_client import GameStateClient, SpectatorRunner


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_spectator_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="drone-spectator",
                                     description="Watch a drone-combat simulation server.")
    parser.add_argument("--host", default=SERVER_HOST)
    parser.add_argument("--port", type=int, default=SERVER_PORT)
    parser.add_argument("--fps", type=int, default=CLIENT_TICK_RATE, help="Ticks per second")
    parser.add_argument("--reconnect", action="store_true",
                        help="Re-dial with exponential backoff when the session drops")
    parser.add_argument("--max-attempts", type=int, default=None,
                        help="Give up after this many consecutive reconnect attempts")
    parser.add_argument("--unterminated", action="store_true",
                        help="Also accept snapshots that are not newline-terminated")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_spectator_parser().parse_args(argv)
    _configure_logging(args.verbose)

    policy = None
    if args.reconnect:
        policy = ReconnectPolicy(RECONNECT_INITIAL_DELAY, RECONNECT_MAX_DELAY,
                                 max_attempts=args.max_attempts)

    scene = SpectatorScene()

    def show(state):
        scene.apply(state)
        print(f"[tick {state.ticks_progressed}] {scene.summary()}")

    client = GameStateClient(args.host, args.port, on_state=show, reconnect=policy,
                             allow_unterminated=args.unterminated)
    try:
        client.connect()
    except ConnectError as e:
        print(e)
        if policy is None:
            return 1

    runner = SpectatorRunner(client, tick_rate=args.fps)
    session_over = False
    try:
        runner.run()
        session_over = client.finished
    except KeyboardInterrupt:
        pass
    finally:
        client.close()
    print(f"Snapshots: {client.snapshots_received}, dropped: {client.decode_errors}")
    if session_over:
        print(f"Session ended ({client.last_error or 'no error reported'})")
        return 1
    return 0


def server_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="drone-snapshot-server",
                                     description="Development snapshot server for the spectator.")
    parser.add_argument("--host", default=SERVER_HOST)
    parser.add_argument("--port", type=int, default=SERVER_PORT)
    parser.add_argument("-f", "--frame-delay", type=int, default=FRAME_DELAY_MS,
                        help="Frame delay in milliseconds")
    parser.add_argument("-t", "--training-mode", action="store_true",
                        help="Refuse spectators")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    server = SnapshotServer(args.host, args.port, args.frame_delay, args.training_mode, args.seed)
    print(f"Snapshot server listening on TCP {server.address[0]}:{server.port}.")
    try:
        server.start()
        while server.running.is_set():
            time.sleep(0.1)
    except KeyboardInterrupt:
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
