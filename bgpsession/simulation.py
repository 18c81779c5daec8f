"""
Router Simulation

Builds one router (control plane, data-plane channels, routing table and
scheduler) and drives it with a clock. Peers are simulated at the data
plane: a responsive peer answers every message it receives with a
KEEPALIVE that arrives on the next tick; a silent peer never answers.

Example usage:
    sim = Simulation(session_count=3,
                     parameters=BGPSessionParameters(hold_down_time=30))
    sim.silence(1)
    sim.run(200)

    # or, pulsing in real time
    await run_clock(sim, period=0.1, duration=200)
"""

import asyncio
import logging
import math
from typing import Dict, Iterable, List, Optional, Set, Any

from .constants import *
from .messages import BGPKeepalive, BGPMessage, PeerIdentifier
from .routing import RoutingTable
from .scheduler import VirtualScheduler
from .session import BGPSessionParameters
from .supervisor import SessionSupervisor
from .transport import InboundQueue, OutboundChannel


def default_peer_identifier(peering_interface: int) -> str:
    """Router ID of the simulated peer behind an interface"""
    return f"10.0.{peering_interface}.2"


class Simulation:
    """
    Single-router simulation in virtual time
    """

    def __init__(self, session_count: int = DEFAULT_SESSION_COUNT,
                 parameters: Optional[BGPSessionParameters] = None,
                 tick_period: float = DEFAULT_TICK_PERIOD,
                 silent_interfaces: Iterable[int] = (),
                 notify_on_expiry: bool = True):
        """
        Initialize simulation

        Args:
            session_count: Number of peering interfaces
            parameters: Session parameters for every session
            tick_period: Clock period in simulated seconds
            silent_interfaces: Interfaces whose peer never answers
            notify_on_expiry: Passed to the control plane
        """
        if not (tick_period > 0 and math.isfinite(tick_period)):
            raise ValueError(f"tick_period must be finite and > 0, got {tick_period}")

        self.tick_period = tick_period
        self.logger = logging.getLogger("Simulation")

        self.scheduler = VirtualScheduler()
        self.outbound = OutboundChannel()
        self.inbound = InboundQueue()
        self.routing_table = RoutingTable()
        self.supervisor = SessionSupervisor(
            self.scheduler, self.outbound, self.routing_table,
            session_count=session_count,
            parameters=parameters,
            inbound=self.inbound,
            notify_on_expiry=notify_on_expiry,
        )

        # Simulated peers
        self.peers: Dict[int, PeerIdentifier] = {}
        self.silent: Set[int] = set()
        for interface in silent_interfaces:
            self.silence(interface)

        # Everything the data plane carried, in order
        self.sent_log: List[BGPMessage] = []

        self.time: float = 0
        self.started = False

    def setup(self) -> None:
        """Dedicate every session to its simulated peer and start them"""
        if self.started:
            return

        for session in self.supervisor.sessions:
            interface = session.peering_interface
            peer_id = default_peer_identifier(interface)
            self.peers[interface] = peer_id
            self.supervisor.dedicate(interface, peer_id)

        self.supervisor.start()
        self.started = True

    def silence(self, peering_interface: int) -> None:
        """Make the peer behind an interface stop answering"""
        self.supervisor.session_for(peering_interface)
        self.silent.add(peering_interface)

    def revive(self, peering_interface: int) -> None:
        """Let a silenced peer answer again"""
        self.silent.discard(peering_interface)

    def pulse(self) -> List[int]:
        """
        Advance one clock period and run the control pass

        Returns:
            Interfaces withdrawn during this pass
        """
        if not self.started:
            self.setup()

        self.time += self.tick_period
        withdrawn = self.supervisor.tick(self.time)
        self._forward()
        return withdrawn

    def _forward(self) -> None:
        for message in self.outbound.drain():
            self.sent_log.append(message)

            interface = message.peering_interface
            if interface is None or interface in self.silent:
                continue
            if message.msg_type == MSG_NOTIFICATION:
                continue

            self.inbound.write(BGPKeepalive(self.peers.get(interface), interface))

    def run(self, duration: float = DEFAULT_SIMULATION_DURATION) -> Dict[str, Any]:
        """
        Run until simulated time reaches duration

        Returns:
            Control plane statistics at the end of the run
        """
        self.logger.info(f"Simulation starts for {duration} s")

        if not self.started:
            self.setup()

        while self.time + self.tick_period <= duration:
            self.pulse()

        self.logger.info(f"Simulation finished at t={self.time}")
        return self.get_statistics()

    def keepalives_sent(self, peering_interface: Optional[int] = None) -> List[BGPMessage]:
        """KEEPALIVE messages carried so far, optionally for one interface"""
        return [m for m in self.sent_log
                if m.msg_type == MSG_KEEPALIVE
                and (peering_interface is None or m.peering_interface == peering_interface)]

    def get_statistics(self) -> Dict[str, Any]:
        stats = self.supervisor.get_statistics()
        stats["silent_interfaces"] = sorted(self.silent)
        stats["messages_carried"] = len(self.sent_log)
        return stats

    def close(self) -> None:
        self.supervisor.close()


async def run_clock(simulation: Simulation, period: float = 1.0,
                    duration: float = DEFAULT_SIMULATION_DURATION) -> Dict[str, Any]:
    """
    Drive a simulation from the asyncio event loop

    Each real-time period pulses the simulation by one tick until the
    simulated duration is reached.

    Args:
        simulation: Simulation to drive
        period: Real seconds between pulses
        duration: Simulated time to stop at

    Returns:
        Control plane statistics at the end of the run
    """
    simulation.logger.info(f"Real-time clock: one tick every {period}s until t={duration}")
    simulation.setup()

    try:
        while simulation.time + simulation.tick_period <= duration:
            simulation.pulse()
            await asyncio.sleep(period)
    except asyncio.CancelledError:
        simulation.logger.info(f"Clock cancelled at t={simulation.time}")
        raise

    return simulation.get_statistics()
