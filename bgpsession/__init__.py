"""
BGP Session Keeper

Session-maintenance layer of a BGP speaker:
- Per-peer Keepalive and HoldDown timers (RFC 4271 Section 4.4, 6.5)
- Session validity state machine (Stopped / Running / Invalid)
- Control plane that dispatches received messages to sessions, polls
  session validity each clock tick and withdraws routes of dead sessions
- Virtual-time scheduler so the whole router runs in simulated time

Main Classes:
    SessionSupervisor: Control plane owning one session per interface
    BGPSession: Timer & validity state machine for one peer
    VirtualScheduler: Discrete-time timer service
    Simulation: Single-router simulation driver

Example:
    from bgpsession import Simulation, BGPSessionParameters

    sim = Simulation(session_count=3,
                     parameters=BGPSessionParameters(hold_down_time=30))
    sim.silence(1)
    stats = sim.run(200)
"""

__version__ = "0.1.0"

from .session import BGPSession, BGPSessionParameters, BGPSessionStats
from .supervisor import SessionSupervisor
from .scheduler import VirtualScheduler, SessionTimer, TimerHandle
from .state_machine import StateMachine
from .simulation import Simulation, run_clock
from .routing import RoutingTable, Route
from .transport import OutboundChannel, InboundQueue

from .messages import BGPMessage, BGPKeepalive, BGPNotification, BGPUpdate

from .errors import (
    SessionError, ConfigurationError, InvalidParametersError,
    UnacceptableHoldTimeError, UnknownInterfaceError
)

from .constants import (
    STATE_STOPPED, STATE_RUNNING, STATE_INVALID,
    MSG_KEEPALIVE, MSG_NOTIFICATION, MSG_UPDATE,
    DEFAULT_HOLD_DOWN_TIME, DEFAULT_KEEPALIVE_FRACTION, MIN_HOLD_TIME,
)

__all__ = [
    # Main classes
    'SessionSupervisor', 'BGPSession', 'BGPSessionParameters', 'BGPSessionStats',
    'VirtualScheduler', 'SessionTimer', 'TimerHandle', 'StateMachine',
    'Simulation', 'run_clock',

    # Collaborators
    'RoutingTable', 'Route', 'OutboundChannel', 'InboundQueue',

    # Messages
    'BGPMessage', 'BGPKeepalive', 'BGPNotification', 'BGPUpdate',

    # Errors
    'SessionError', 'ConfigurationError', 'InvalidParametersError',
    'UnacceptableHoldTimeError', 'UnknownInterfaceError',

    # Constants
    'STATE_STOPPED', 'STATE_RUNNING', 'STATE_INVALID',
    'MSG_KEEPALIVE', 'MSG_NOTIFICATION', 'MSG_UPDATE',
    'DEFAULT_HOLD_DOWN_TIME', 'DEFAULT_KEEPALIVE_FRACTION', 'MIN_HOLD_TIME',
]
