"""
BGP Message Values

Message objects exchanged between the sessions, the control plane and
the data plane. Wire encoding belongs to the data plane, so these carry
only the fields the control plane inspects: the message type and the
BGP identifier of the peer it came from or goes to.
"""

from typing import Optional, List, Dict, Any, Union

from .constants import (
    MSG_KEEPALIVE, MSG_NOTIFICATION, MSG_UPDATE, MESSAGE_TYPE_NAMES,
    ERROR_CODE_NAMES,
)

# BGP identifier of a peer: 32-bit integer or dotted-quad router ID
PeerIdentifier = Union[int, str]


class BGPMessage:
    """
    Base class for BGP messages

    Attributes:
        msg_type: Message type code
        peer_identifier: BGP identifier of the remote peer (sender on
            receive, destination on send)
        peering_interface: Local interface the message travels through
    """

    def __init__(self, msg_type: int, peer_identifier: Optional[PeerIdentifier] = None,
                 peering_interface: Optional[int] = None):
        self.msg_type = msg_type
        self.peer_identifier = peer_identifier
        self.peering_interface = peering_interface

    @property
    def type_name(self) -> str:
        return MESSAGE_TYPE_NAMES.get(self.msg_type, f"Unknown({self.msg_type})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type_name,
            "peer_identifier": self.peer_identifier,
            "peering_interface": self.peering_interface,
        }

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(peer={self.peer_identifier}, "
                f"interface={self.peering_interface})")


class BGPKeepalive(BGPMessage):
    """KEEPALIVE message (RFC 4271 Section 4.4), header only"""

    def __init__(self, peer_identifier: Optional[PeerIdentifier] = None,
                 peering_interface: Optional[int] = None):
        super().__init__(MSG_KEEPALIVE, peer_identifier, peering_interface)


class BGPNotification(BGPMessage):
    """NOTIFICATION message (RFC 4271 Section 4.5)"""

    def __init__(self, error_code: int, error_subcode: int = 0,
                 peer_identifier: Optional[PeerIdentifier] = None,
                 peering_interface: Optional[int] = None):
        super().__init__(MSG_NOTIFICATION, peer_identifier, peering_interface)
        self.error_code = error_code
        self.error_subcode = error_subcode

    @property
    def error_name(self) -> str:
        return ERROR_CODE_NAMES.get(self.error_code, f"Unknown({self.error_code})")

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["error"] = self.error_name
        result["error_subcode"] = self.error_subcode
        return result


class BGPUpdate(BGPMessage):
    """
    UPDATE message (RFC 4271 Section 4.3)

    Prefixes are opaque strings; route selection is not done here.
    """

    def __init__(self, peer_identifier: Optional[PeerIdentifier] = None,
                 peering_interface: Optional[int] = None,
                 nlri: Optional[List[str]] = None,
                 withdrawn_routes: Optional[List[str]] = None):
        super().__init__(MSG_UPDATE, peer_identifier, peering_interface)
        self.nlri = list(nlri or [])
        self.withdrawn_routes = list(withdrawn_routes or [])

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["nlri"] = list(self.nlri)
        result["withdrawn_routes"] = list(self.withdrawn_routes)
        return result
