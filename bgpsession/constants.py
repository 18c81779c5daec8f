"""
BGP Session Keeper Constants

Message type codes, session states, timer defaults and error codes
used by the session timers and the control plane.
"""

# BGP Message Types (RFC 4271 Section 4.1)
MSG_OPEN = 1
MSG_UPDATE = 2
MSG_NOTIFICATION = 3
MSG_KEEPALIVE = 4

MESSAGE_TYPE_NAMES = {
    MSG_OPEN: "OPEN",
    MSG_UPDATE: "UPDATE",
    MSG_NOTIFICATION: "NOTIFICATION",
    MSG_KEEPALIVE: "KEEPALIVE",
}

# Session States
STATE_STOPPED = 0
STATE_RUNNING = 1
STATE_INVALID = 2

SESSION_STATE_NAMES = {
    STATE_STOPPED: "Stopped",
    STATE_RUNNING: "Running",
    STATE_INVALID: "Invalid",
}

# Session Events
EVENT_START = "Start"
EVENT_STOP = "Stop"
EVENT_HOLD_DOWN_EXPIRED = "HoldDownExpired"

# Timer defaults (seconds of simulated time)
DEFAULT_HOLD_DOWN_TIME = 90
DEFAULT_KEEPALIVE_FRACTION = 3
MIN_HOLD_TIME = 3

# Timer priorities: lower fires first when deadlines are equal
PRIORITY_HOLD_DOWN = 0
PRIORITY_KEEPALIVE = 1

# Simulation defaults
DEFAULT_SESSION_COUNT = 3
DEFAULT_SIMULATION_DURATION = 200
DEFAULT_TICK_PERIOD = 1

# NOTIFICATION Error Codes (RFC 4271 Section 4.5)
ERR_HOLD_TIMER_EXPIRED = 4

ERROR_CODE_NAMES = {
    ERR_HOLD_TIMER_EXPIRED: "Hold Timer Expired",
}
