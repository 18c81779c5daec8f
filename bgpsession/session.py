"""
BGP Session Timers

Each BGPSession keeps one peer alive: it owns the Keepalive and
HoldDown timers, the validity flag and the binding to the peer's BGP
identifier.

The control plane elaborates the session, dedicates it to a peer with
set_peer_identifier() and starts it. From then on the session sends a
KEEPALIVE whenever the Keepalive timer expires. The control plane must
call reset_hold_down() whenever it receives a message from the peer and
reset_keepalive() whenever it sends one. When the HoldDown timer
expires the session stops itself and becomes invalid; the control plane
notices through is_session_valid() and updates the routing table.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Dict, Any

from .constants import *
from .errors import InvalidParametersError, UnacceptableHoldTimeError
from .messages import BGPKeepalive, PeerIdentifier
from .scheduler import VirtualScheduler, SessionTimer
from .state_machine import StateMachine
from .transport import OutboundChannel


def _is_positive_duration(value: Optional[float]) -> bool:
    """True for a finite value > 0 (None and NaN are not)"""
    return value is not None and math.isfinite(value) and value > 0


@dataclass
class BGPSessionParameters:
    """
    Timer parameters for a BGP session

    keepalive_time may be given explicitly; otherwise it is derived as
    hold_down_time / keepalive_fraction.
    """
    hold_down_time: float = DEFAULT_HOLD_DOWN_TIME
    keepalive_fraction: float = DEFAULT_KEEPALIVE_FRACTION
    keepalive_time: Optional[float] = None

    def validate(self) -> None:
        """
        Reject parameters that would arm a malformed timer

        Raises:
            InvalidParametersError: on any non-positive or non-finite value
        """
        if not _is_positive_duration(self.hold_down_time):
            raise InvalidParametersError("hold_down_time", self.hold_down_time)
        if not _is_positive_duration(self.keepalive_fraction):
            raise InvalidParametersError("keepalive_fraction", self.keepalive_fraction)
        if self.keepalive_time is not None and not _is_positive_duration(self.keepalive_time):
            raise InvalidParametersError("keepalive_time", self.keepalive_time)

    def effective_keepalive_time(self) -> float:
        if self.keepalive_time is not None:
            return self.keepalive_time
        return self.hold_down_time / self.keepalive_fraction

    def negotiate(self, peer_hold_time: float) -> 'BGPSessionParameters':
        """
        Negotiate hold time with peer (RFC 4271 Section 4.2)

        Args:
            peer_hold_time: Hold time proposed by the peer

        Returns:
            New parameters using the smaller hold time; the keepalive
            time is derived again from the fraction

        Raises:
            UnacceptableHoldTimeError: if the result is below MIN_HOLD_TIME
        """
        if not _is_positive_duration(peer_hold_time):
            raise UnacceptableHoldTimeError(peer_hold_time)

        negotiated = min(self.hold_down_time, peer_hold_time)
        if not negotiated >= MIN_HOLD_TIME:
            raise UnacceptableHoldTimeError(negotiated)

        return replace(self, hold_down_time=negotiated, keepalive_time=None)


@dataclass
class BGPSessionStats:
    """Per-session counters"""
    starts: int = 0
    stops: int = 0
    invalidations: int = 0
    keepalives_sent: int = 0
    hold_down_resets: int = 0
    keepalive_resets: int = 0
    last_keepalive_time: Optional[float] = None
    last_invalidation_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "starts": self.starts,
            "stops": self.stops,
            "invalidations": self.invalidations,
            "keepalives_sent": self.keepalives_sent,
            "hold_down_resets": self.hold_down_resets,
            "keepalive_resets": self.keepalive_resets,
            "last_keepalive_time": self.last_keepalive_time,
            "last_invalidation_time": self.last_invalidation_time,
        }


class BGPSession:
    """
    BGP session liveness state machine

    States:
    - Stopped: initial, timers disarmed
    - Running: valid, HoldDown and Keepalive timers armed
    - Invalid: HoldDown expired, timers disarmed until the next start()
    """

    def __init__(self, peering_interface: int, parameters: BGPSessionParameters,
                 scheduler: VirtualScheduler, outbound: OutboundChannel,
                 peer_identifier: Optional[PeerIdentifier] = None):
        """
        Elaborate a session

        Args:
            peering_interface: Local interface the peer connects to
            parameters: Hold-down time, keepalive fraction, etc.
            scheduler: Scheduler servicing this session's timers
            outbound: Channel KEEPALIVE messages are written to
            peer_identifier: Optional BGP identifier of the peer
        """
        self._peering_interface = peering_interface
        self.scheduler = scheduler
        self.outbound = outbound

        self.logger = logging.getLogger(f"BGPSession[{peering_interface}]")

        self.parameters = BGPSessionParameters()
        self.hold_down_time: float = 0
        self.keepalive_time: float = 0
        self.keepalive_fraction: float = 0
        self.set_parameters(parameters)

        self.valid = False
        self.peer_identifier: Optional[PeerIdentifier] = None
        self.keepalive_message = BGPKeepalive(peering_interface=peering_interface)
        if peer_identifier is not None:
            self.set_peer_identifier(peer_identifier)

        self.stats = BGPSessionStats()

        # Lifecycle
        name = f"BGPSession[{peering_interface}]"
        self.fsm = StateMachine(STATE_STOPPED, name, SESSION_STATE_NAMES)
        self.fsm.add_transition(STATE_STOPPED, EVENT_START, STATE_RUNNING)
        self.fsm.add_transition(STATE_INVALID, EVENT_START, STATE_RUNNING)
        self.fsm.add_transition(STATE_RUNNING, EVENT_START, STATE_RUNNING)
        self.fsm.add_transition(STATE_RUNNING, EVENT_STOP, STATE_STOPPED)
        self.fsm.add_transition(STATE_RUNNING, EVENT_HOLD_DOWN_EXPIRED, STATE_INVALID)
        self.fsm.add_on_enter(STATE_RUNNING, self._on_running)
        self.fsm.add_on_enter(STATE_STOPPED, self._on_stopped)
        self.fsm.add_on_enter(STATE_INVALID, self._on_invalid)

        # Timers
        self._hold_down_timer = SessionTimer(
            scheduler, f"{name}.HoldDown", self.session_invalidation, PRIORITY_HOLD_DOWN
        )
        self._keepalive_timer = SessionTimer(
            scheduler, f"{name}.Keepalive", self.send_keepalive, PRIORITY_KEEPALIVE
        )

    @property
    def peering_interface(self) -> int:
        return self._peering_interface

    @property
    def state(self) -> int:
        return self.fsm.get_state()

    def get_state_name(self) -> str:
        return self.fsm.get_state_name()

    def is_running(self) -> bool:
        return self.state == STATE_RUNNING

    @property
    def hold_down_deadline(self) -> Optional[float]:
        return self._hold_down_timer.deadline

    @property
    def keepalive_deadline(self) -> Optional[float]:
        return self._keepalive_timer.deadline

    @property
    def keepalive_generation(self) -> int:
        return self._keepalive_timer.generation

    def set_parameters(self, parameters: BGPSessionParameters) -> None:
        """
        Set the timer parameters for this session

        Armed timers keep their deadline; new values apply from the next
        (re)arm.

        Raises:
            InvalidParametersError: on non-positive values (session unchanged)
        """
        parameters.validate()

        self.parameters = parameters
        self.hold_down_time = parameters.hold_down_time
        self.keepalive_fraction = parameters.keepalive_fraction
        self.keepalive_time = parameters.effective_keepalive_time()

        self.logger.debug(f"Parameters: hold_down={self.hold_down_time} "
                          f"keepalive={self.keepalive_time} fraction={self.keepalive_fraction}")

    def start(self) -> None:
        """
        Start (or restart) the session

        Marks the session valid and arms both timers from now. On a
        running session this re-arms both timers.
        """
        self.fsm.trigger(EVENT_START)
        self.valid = True
        self._hold_down_timer.rearm(self.hold_down_time)
        self._keepalive_timer.rearm(self.keepalive_time)

    def stop(self) -> None:
        """
        Stop the session

        Disarms both timers; no keepalives are sent afterwards. Validity
        is left as it was.
        """
        if not self.is_running():
            self.logger.debug(f"stop() ignored in state {self.get_state_name()}")
            return

        self._hold_down_timer.cancel()
        self._keepalive_timer.cancel()
        self.fsm.trigger(EVENT_STOP)

    def reset_hold_down(self) -> bool:
        """
        Restart the HoldDown interval after a message from the peer

        Returns:
            True if the timer was re-armed, False if the session is not running
        """
        if not self.is_running():
            self.logger.debug(f"reset_hold_down() ignored in state {self.get_state_name()}")
            return False

        self._hold_down_timer.rearm(self.hold_down_time)
        self.stats.hold_down_resets += 1
        return True

    def reset_keepalive(self) -> bool:
        """
        Restart the Keepalive interval after a message was sent to the peer

        Returns:
            True if the timer was re-armed, False if the session is not running
        """
        if not self.is_running():
            self.logger.debug(f"reset_keepalive() ignored in state {self.get_state_name()}")
            return False

        self._rearm_keepalive()
        self.stats.keepalive_resets += 1
        return True

    def send_keepalive(self) -> None:
        """Keepalive timer expired: send KEEPALIVE and re-arm"""
        if not self.is_running():
            return

        self.outbound.write(self.keepalive_message)
        self.stats.keepalives_sent += 1
        self.stats.last_keepalive_time = self.scheduler.now
        self.logger.debug(f"Sent KEEPALIVE at t={self.scheduler.now}")

        self._rearm_keepalive()

    def session_invalidation(self) -> None:
        """HoldDown timer expired: invalidate and stop the session"""
        if not self.is_running():
            return

        self.valid = False
        self._keepalive_timer.cancel()
        self.fsm.trigger(EVENT_HOLD_DOWN_EXPIRED)

    def _rearm_keepalive(self) -> None:
        # Internal (post-send) and external resets share this path
        self._keepalive_timer.rearm(self.keepalive_time)

    def set_peer_identifier(self, peer_identifier: PeerIdentifier) -> None:
        """Dedicate this session to the peer with the given BGP identifier"""
        self.peer_identifier = peer_identifier
        self.keepalive_message.peer_identifier = peer_identifier
        self.logger.info(f"Dedicated to peer {peer_identifier}")

    def is_this_session(self, peer_identifier: Optional[PeerIdentifier]) -> bool:
        """True if the BGP identifier belongs to this session's peer"""
        return self.peer_identifier is not None and peer_identifier == self.peer_identifier

    def is_session_valid(self) -> bool:
        """
        Check whether the HoldDown timer has expired

        Must be checked before resetting any timer in the same pass.
        """
        return self.valid

    def close(self) -> None:
        """Release the session: cancel any pending timer registration"""
        self._hold_down_timer.cancel()
        self._keepalive_timer.cancel()
        if self.is_running():
            self.fsm.trigger(EVENT_STOP)

    def _on_running(self, old_state: int, new_state: int, event: str) -> None:
        self.stats.starts += 1
        self.logger.info(f"Session started at t={self.scheduler.now} "
                         f"(hold_down={self.hold_down_time}, keepalive={self.keepalive_time})")

    def _on_stopped(self, old_state: int, new_state: int, event: str) -> None:
        self.stats.stops += 1

    def _on_invalid(self, old_state: int, new_state: int, event: str) -> None:
        self.stats.invalidations += 1
        self.stats.last_invalidation_time = self.scheduler.now
        self.logger.warning(f"HoldDown expired at t={self.scheduler.now}, session invalid")

    def get_statistics(self) -> Dict[str, Any]:
        """Session state, timers and counters"""
        stats = self.stats.to_dict()
        stats.update({
            "peering_interface": self.peering_interface,
            "peer_identifier": self.peer_identifier,
            "state": self.get_state_name(),
            "valid": self.valid,
            "hold_down_time": self.hold_down_time,
            "keepalive_time": self.keepalive_time,
            "hold_down_deadline": self.hold_down_deadline,
            "keepalive_deadline": self.keepalive_deadline,
        })
        return stats

    def __repr__(self) -> str:
        return (f"BGPSession(interface={self.peering_interface}, "
                f"peer={self.peer_identifier}, state={self.get_state_name()})")
