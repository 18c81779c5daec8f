#!/usr/bin/env python3
"""
BGP Session Keeper - Simulation Runner

Usage:
    python3 -m bgpsession \\
        --sessions 3 \\
        --hold-down-time 30 \\
        --keepalive-fraction 3 \\
        --silent-interface 1 \\
        --duration 200
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .constants import (
    DEFAULT_SESSION_COUNT, DEFAULT_HOLD_DOWN_TIME, DEFAULT_KEEPALIVE_FRACTION,
    DEFAULT_SIMULATION_DURATION, DEFAULT_TICK_PERIOD,
)
from .errors import SessionError
from .session import BGPSessionParameters
from .simulation import Simulation, run_clock


def setup_logging(log_level: str = "INFO"):
    """
    Setup logging configuration

    Args:
        log_level: Logging level
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bgp-session-sim",
        description="BGP Session Keeper - session timer simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example:
  python3 -m bgpsession --sessions 3 --hold-down-time 30 \\
      --keepalive-fraction 3 --silent-interface 1

Note:
  - Times are simulated seconds
  - A silent interface's peer never answers, so its session expires
        """
    )

    parser.add_argument("--sessions", type=int, default=DEFAULT_SESSION_COUNT,
                        help=f"Number of peering interfaces (default: {DEFAULT_SESSION_COUNT})")
    parser.add_argument("--hold-down-time", type=float, default=DEFAULT_HOLD_DOWN_TIME,
                        help=f"HoldDown time (default: {DEFAULT_HOLD_DOWN_TIME})")
    parser.add_argument("--keepalive-fraction", type=float, default=DEFAULT_KEEPALIVE_FRACTION,
                        help=f"Keepalive fraction of the HoldDown time (default: {DEFAULT_KEEPALIVE_FRACTION})")
    parser.add_argument("--keepalive-time", type=float, default=None,
                        help="Explicit keepalive interval (default: hold-down / fraction)")
    parser.add_argument("--duration", type=float, default=DEFAULT_SIMULATION_DURATION,
                        help=f"Simulated duration (default: {DEFAULT_SIMULATION_DURATION})")
    parser.add_argument("--tick", type=float, default=DEFAULT_TICK_PERIOD,
                        help=f"Clock period (default: {DEFAULT_TICK_PERIOD})")
    parser.add_argument("--silent-interface", type=int, action="append", default=[],
                        help="Interface whose peer never answers (repeatable)")
    parser.add_argument("--no-notify", action="store_true",
                        help="Do not send NOTIFICATION when a session expires")
    parser.add_argument("--realtime", type=float, default=None, metavar="SECONDS",
                        help="Pulse the clock every SECONDS of wall time via asyncio")
    parser.add_argument("--log-level", default="INFO",
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help="Log level (default: INFO)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point
    """
    args = build_parser().parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger("bgp-session-sim")

    try:
        parameters = BGPSessionParameters(
            hold_down_time=args.hold_down_time,
            keepalive_fraction=args.keepalive_fraction,
            keepalive_time=args.keepalive_time,
        )
        sim = Simulation(
            session_count=args.sessions,
            parameters=parameters,
            tick_period=args.tick,
            silent_interfaces=args.silent_interface,
            notify_on_expiry=not args.no_notify,
        )

        if args.realtime is not None:
            stats = asyncio.run(run_clock(sim, args.realtime, args.duration))
        else:
            stats = sim.run(args.duration)

    except (SessionError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0

    logger.info("=" * 70)
    logger.info(f"  Time: {stats['time']}  Ticks: {stats['ticks']}")
    logger.info(f"  Valid sessions: {stats['valid_sessions']}/{stats['sessions']}")
    logger.info(f"  Withdrawals: {stats['withdrawals']}")
    for peer in stats["peers"]:
        logger.info(f"  Interface {peer['peering_interface']} peer {peer['peer_identifier']}: "
                    f"{peer['state']}, keepalives sent {peer['keepalives_sent']}, "
                    f"hold-down resets {peer['hold_down_resets']}")
    logger.info("=" * 70)

    sim.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
