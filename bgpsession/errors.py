"""
Session Keeper Error Handling

Liveness loss is not an error here, it is a state transition the control
plane observes. Exceptions are reserved for configuration faults that must
never reach a timer arm.
"""

from typing import Optional

from .constants import MIN_HOLD_TIME


class SessionError(Exception):
    """Base exception for session keeper errors"""


class ConfigurationError(SessionError):
    """Session or supervisor configuration rejected"""


class InvalidParametersError(ConfigurationError):
    """Non-positive or non-finite hold-down time, keepalive time or fraction"""

    def __init__(self, name: str, value, message: Optional[str] = None):
        """
        Initialize parameter error

        Args:
            name: Offending parameter name
            value: Rejected value
            message: Human-readable message
        """
        self.name = name
        self.value = value

        if not message:
            message = f"Invalid session parameter {name}={value!r}: must be > 0"

        super().__init__(message)


class UnacceptableHoldTimeError(ConfigurationError):
    """Negotiated hold time below the minimum (RFC 4271 Section 4.2)"""

    def __init__(self, hold_time: int):
        self.hold_time = hold_time
        super().__init__(f"Unacceptable Hold Time: {hold_time} (minimum {MIN_HOLD_TIME})")


class UnknownInterfaceError(SessionError, LookupError):
    """No session is configured on the requested peering interface"""

    def __init__(self, interface: int, session_count: int):
        self.interface = interface
        self.session_count = session_count
        super().__init__(f"No session on peering interface {interface} "
                         f"(configured interfaces: 0..{session_count - 1})")
