"""
Data Plane Channels

The control plane and its sessions talk to the data plane through two
FIFOs: an outbound channel they write messages to, and an inbound queue
the data plane fills with received messages for the control plane to
drain once per tick. Both are fire-and-forget from the writer's side.
"""

import logging
from collections import deque
from typing import Deque, List, Optional

from .messages import BGPMessage

logger = logging.getLogger(__name__)


class _MessageFifo:
    """Unbounded FIFO of BGP messages"""

    def __init__(self, name: str):
        self.name = name
        self._buffer: Deque[BGPMessage] = deque()
        self.total_written = 0

    def write(self, message: BGPMessage) -> None:
        """Append message; never blocks, never reports status"""
        self._buffer.append(message)
        self.total_written += 1
        logger.debug(f"{self.name}: wrote {message.type_name} (peer={message.peer_identifier})")

    def read(self) -> Optional[BGPMessage]:
        """Pop the oldest message, or None if empty"""
        if not self._buffer:
            return None
        return self._buffer.popleft()

    def drain(self) -> List[BGPMessage]:
        """Pop every buffered message in arrival order"""
        messages = list(self._buffer)
        self._buffer.clear()
        return messages

    def num_available(self) -> int:
        return len(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name}, available={len(self._buffer)})"


class OutboundChannel(_MessageFifo):
    """Send-only channel towards the data plane (forwarding)"""

    def __init__(self, name: str = "ToDataPlane"):
        super().__init__(name)


class InboundQueue(_MessageFifo):
    """Receiving buffer the data plane writes into for the control plane"""

    def __init__(self, name: str = "ReceivingBuffer"):
        super().__init__(name)
