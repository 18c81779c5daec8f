"""
Session Supervisor - Control Plane

The SessionSupervisor owns one BGPSession per peering interface and runs
the control pass once per clock pulse:

1. deliver timer callbacks due before this tick
2. drain the receiving buffer, resetting the HoldDown timer of the
   session each message came from
3. deliver timer callbacks due exactly now, so a message received on
   the tick a HoldDown would expire keeps the session alive
4. verify every session; the first time a session is seen invalid its
   routes are withdrawn and the peer is notified

The session collection is fixed at construction. Only the control pass
touches it, so no locking is needed.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple, Any

from .constants import *
from .errors import ConfigurationError, SessionError, UnknownInterfaceError
from .messages import BGPMessage, BGPNotification, PeerIdentifier
from .routing import RoutingTable
from .scheduler import VirtualScheduler
from .session import BGPSession, BGPSessionParameters
from .transport import InboundQueue, OutboundChannel


class SessionSupervisor:
    """
    Control plane - supervises the BGP sessions of one router
    """

    def __init__(self, scheduler: VirtualScheduler, outbound: OutboundChannel,
                 routing_table: RoutingTable,
                 session_count: int = DEFAULT_SESSION_COUNT,
                 parameters: Optional[BGPSessionParameters] = None,
                 inbound: Optional[InboundQueue] = None,
                 notify_on_expiry: bool = True):
        """
        Elaborate the control plane and its sessions

        Args:
            scheduler: Clock/scheduler servicing all session timers
            outbound: Channel towards the data plane
            routing_table: Routing table to withdraw routes from
            session_count: Number of peering interfaces (one session each)
            parameters: Default session parameters
            inbound: Receiving buffer (created if not given)
            notify_on_expiry: Send a Hold Timer Expired NOTIFICATION to
                a peer whose session went down
        """
        if session_count < 1:
            raise ConfigurationError(f"session_count must be >= 1, got {session_count}")

        if parameters is None:
            parameters = BGPSessionParameters()
        parameters.validate()

        self.scheduler = scheduler
        self.outbound = outbound
        self.routing_table = routing_table
        self.inbound = inbound if inbound is not None else InboundQueue()
        self.notify_on_expiry = notify_on_expiry

        self.logger = logging.getLogger("SessionSupervisor")

        # One session per peering interface, index == interface
        self.sessions: Tuple[BGPSession, ...] = tuple(
            BGPSession(interface, parameters, scheduler, outbound)
            for interface in range(session_count)
        )

        # Interfaces whose invalidation has already been handled
        self._withdrawn: List[bool] = [False] * session_count

        # Optional message interpreter: (session, message)
        self.on_message: Optional[Callable[[BGPSession, BGPMessage], None]] = None

        self.running = False
        self.closed = False
        self.tick_count = 0
        self.last_tick: Optional[float] = None

        # Statistics
        self.messages_received = 0
        self.messages_unmatched = 0
        self.messages_sent = 0
        self.withdrawals = 0

        self.logger.info(f"Elaborated {session_count} session(s) "
                         f"(hold_down={parameters.hold_down_time}, "
                         f"keepalive_fraction={parameters.keepalive_fraction})")

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    def start(self) -> None:
        """Start every session (process start)"""
        self._check_open()
        self.logger.info(f"Starting {self.session_count} session(s) at t={self.scheduler.now}")

        for session in self.sessions:
            session.start()

        self.running = True

    def stop(self) -> None:
        """Stop every session; validity flags are left as they are"""
        for session in self.sessions:
            session.stop()

        self.running = False
        self.logger.info("Sessions stopped")

    def close(self) -> None:
        """
        Tear down the control plane

        Every session is released and no timer registration is left in
        the scheduler.
        """
        if self.closed:
            return

        for session in self.sessions:
            session.close()

        self.running = False
        self.closed = True
        self.logger.info("Control plane closed")

    def __enter__(self) -> 'SessionSupervisor':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Session lookup

    def session_for(self, peering_interface: int) -> BGPSession:
        """
        Session on a peering interface

        Raises:
            UnknownInterfaceError: if no session is configured there
        """
        if not 0 <= peering_interface < self.session_count:
            raise UnknownInterfaceError(peering_interface, self.session_count)
        return self.sessions[peering_interface]

    def find_session(self, peer_identifier: Optional[PeerIdentifier]) -> Optional[BGPSession]:
        """Session dedicated to a peer, or None if no session matches"""
        for session in self.sessions:
            if session.is_this_session(peer_identifier):
                return session
        return None

    def dedicate(self, peering_interface: int, peer_identifier: PeerIdentifier) -> BGPSession:
        """Bind the session on an interface to a peer's BGP identifier"""
        session = self.session_for(peering_interface)
        session.set_peer_identifier(peer_identifier)
        return session

    def negotiate_hold_time(self, peering_interface: int,
                            peer_hold_time: float) -> BGPSessionParameters:
        """
        Apply the hold time negotiated with a peer

        The new values take effect on the session's next timer (re)arm.

        Raises:
            UnacceptableHoldTimeError: if the negotiated hold time is too small
        """
        session = self.session_for(peering_interface)
        parameters = session.parameters.negotiate(peer_hold_time)
        session.set_parameters(parameters)

        self.logger.info(f"Interface {peering_interface}: negotiated hold time "
                         f"{parameters.hold_down_time}")
        return parameters

    # Message traffic

    def receive(self, message: BGPMessage) -> None:
        """Data plane side: queue a received message for the next tick"""
        self.inbound.write(message)

    def send(self, peering_interface: int, message: BGPMessage) -> None:
        """
        Send a message to the peer on an interface

        Any message sent to the peer counts as a keepalive, so the
        session's Keepalive timer is reset.
        """
        session = self.session_for(peering_interface)

        if message.peering_interface is None:
            message.peering_interface = peering_interface
        if message.peer_identifier is None:
            message.peer_identifier = session.peer_identifier

        self.outbound.write(message)
        self.messages_sent += 1
        session.reset_keepalive()

    # Control pass

    def tick(self, now: float) -> List[int]:
        """
        Run one control pass at clock time `now`

        Args:
            now: Current clock time (monotonic)

        Returns:
            Peering interfaces whose routes were withdrawn in this pass
        """
        self._check_open()

        self.scheduler.run_until(now, inclusive=False)

        if self.inbound.num_available() > 0:
            self._handle_received_messages()

        self.scheduler.run_until(now)

        withdrawn = self._verify_sessions()

        self.tick_count += 1
        self.last_tick = now
        return withdrawn

    def _handle_received_messages(self) -> None:
        for message in self.inbound.drain():
            session = self.find_session(message.peer_identifier)

            if session is None:
                self.messages_unmatched += 1
                self.logger.debug(f"No session for {message.type_name} from "
                                  f"{message.peer_identifier}, dropped")
                continue

            self.messages_received += 1
            session.reset_hold_down()

            if self.on_message:
                self.on_message(session, message)

    def _verify_sessions(self) -> List[int]:
        withdrawn = []

        for session in self.sessions:
            interface = session.peering_interface
            valid = session.is_session_valid()

            if valid or session.state != STATE_INVALID:
                if self._withdrawn[interface]:
                    self.logger.info(f"Interface {interface}: session back up")
                    self._withdrawn[interface] = False
                continue

            if self._withdrawn[interface]:
                continue

            self._withdraw(session)
            withdrawn.append(interface)

        return withdrawn

    def _withdraw(self, session: BGPSession) -> None:
        interface = session.peering_interface
        self.logger.warning(f"Interface {interface}: session to {session.peer_identifier} "
                            f"invalid, withdrawing routes")

        self.routing_table.withdraw_interface(interface)
        self._withdrawn[interface] = True
        self.withdrawals += 1

        if self.notify_on_expiry and session.peer_identifier is not None:
            self.send(interface, BGPNotification(ERR_HOLD_TIMER_EXPIRED, 0))

    def _check_open(self) -> None:
        if self.closed:
            raise SessionError("Control plane is closed")

    def is_withdrawn(self, peering_interface: int) -> bool:
        """True if the interface's invalidation has been handled"""
        self.session_for(peering_interface)
        return self._withdrawn[peering_interface]

    def get_valid_sessions(self) -> List[int]:
        return [s.peering_interface for s in self.sessions if s.is_session_valid()]

    def get_statistics(self) -> Dict[str, Any]:
        """Control plane statistics with per-session detail"""
        return {
            "time": self.scheduler.now,
            "ticks": self.tick_count,
            "sessions": self.session_count,
            "valid_sessions": len(self.get_valid_sessions()),
            "messages_received": self.messages_received,
            "messages_unmatched": self.messages_unmatched,
            "messages_sent": self.messages_sent,
            "withdrawals": self.withdrawals,
            "routes": self.routing_table.size(),
            "peers": [s.get_statistics() for s in self.sessions],
        }
