"""
Routing Table

Minimal routing-table collaborator for the control plane. Routes are
kept per prefix together with the peering interface they were learned
on, so that losing a session withdraws everything reachable through
that interface in one call.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .messages import PeerIdentifier


@dataclass
class Route:
    """Routing table entry"""
    prefix: str
    peering_interface: int
    peer_identifier: Optional[PeerIdentifier] = None
    timestamp: float = field(default_factory=time.time)


class RoutingTable:
    """
    Routing table keyed by prefix

    The control plane only needs withdraw_interface(); install_route()
    and lookup() serve whoever populates the table.
    """

    def __init__(self):
        self.logger = logging.getLogger("RoutingTable")
        self._routes: Dict[str, Route] = {}
        self.withdrawals: List[int] = []  # interfaces, in withdrawal order

    def install_route(self, prefix: str, peering_interface: int,
                      peer_identifier: Optional[PeerIdentifier] = None) -> Route:
        """
        Install or replace route for prefix

        Args:
            prefix: Route prefix (e.g., "203.0.113.0/24")
            peering_interface: Interface the route is reachable through
            peer_identifier: BGP identifier of the advertising peer

        Returns:
            Installed route
        """
        route = Route(prefix, peering_interface, peer_identifier)
        self._routes[prefix] = route
        self.logger.debug(f"Installed {prefix} via interface {peering_interface}")
        return route

    def withdraw_interface(self, peering_interface: int) -> List[Route]:
        """
        Withdraw every route reachable through an interface

        Args:
            peering_interface: Interface whose session went down

        Returns:
            Withdrawn routes (possibly empty)
        """
        withdrawn = [r for r in self._routes.values()
                     if r.peering_interface == peering_interface]

        for route in withdrawn:
            del self._routes[route.prefix]

        self.withdrawals.append(peering_interface)
        self.logger.info(f"Withdrew {len(withdrawn)} route(s) via interface {peering_interface}")
        return withdrawn

    def lookup(self, prefix: str) -> Optional[Route]:
        return self._routes.get(prefix)

    def get_routes(self, peering_interface: Optional[int] = None) -> List[Route]:
        """All routes, optionally only those via one interface"""
        if peering_interface is None:
            return list(self._routes.values())
        return [r for r in self._routes.values() if r.peering_interface == peering_interface]

    def size(self) -> int:
        return len(self._routes)
