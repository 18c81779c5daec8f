"""
Generic Finite State Machine
Used for the BGP session lifecycle (Stopped / Running / Invalid)
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class StateMachine:
    """
    Finite State Machine with a transition table and on-enter callbacks

    Events with no transition from the current state are ignored, which
    is how inapplicable operations become no-ops.
    """

    def __init__(self, initial_state: Any, name: str = "FSM",
                 state_names: Optional[Dict[Any, str]] = None):
        """
        Initialize state machine

        Args:
            initial_state: Initial state
            name: Name for logging purposes
            state_names: Optional human-readable state names
        """
        self.state = initial_state
        self.name = name
        self.transitions: Dict[Any, Dict[str, Any]] = {}
        self.on_enter_callbacks: Dict[Any, List[Callable]] = {}
        self.state_names: Dict[Any, str] = dict(state_names or {})

        logger.debug(f"{self.name}: Initial state = {self.get_state_name()}")

    def add_transition(self, from_state: Any, event: str, to_state: Any) -> None:
        """
        Add state transition

        Args:
            from_state: Source state
            event: Event name that triggers transition
            to_state: Destination state
        """
        self.transitions.setdefault(from_state, {})[event] = to_state

    def add_on_enter(self, state: Any, callback: Callable) -> None:
        """
        Add callback to execute when entering state

        Callbacks receive (old_state, new_state, event).
        """
        self.on_enter_callbacks.setdefault(state, []).append(callback)

    def get_state_name(self, state: Optional[Any] = None) -> str:
        """Human-readable name for state (None = current state)"""
        if state is None:
            state = self.state

        return self.state_names.get(state, str(state))

    def trigger(self, event: str) -> bool:
        """
        Trigger event and potentially transition to new state

        Self-transitions (e.g. Running --Start--> Running) count as
        transitions and run the on-enter callbacks.

        Args:
            event: Event name

        Returns:
            True if a transition occurred, False if the event does not
            apply in the current state
        """
        if not self.can_transition(event):
            logger.debug(f"{self.name}: Event '{event}' ignored in state {self.get_state_name()}")
            return False

        old_state = self.state
        new_state = self.transitions[old_state][event]
        self.state = new_state

        if old_state != new_state:
            logger.info(f"{self.name}: {self.get_state_name(old_state)} --[{event}]--> "
                        f"{self.get_state_name(new_state)}")

        for callback in self.on_enter_callbacks.get(new_state, []):
            callback(old_state, new_state, event)

        return True

    def can_transition(self, event: str) -> bool:
        """Check if event can trigger a transition from the current state"""
        return event in self.transitions.get(self.state, {})

    def get_valid_events(self) -> Set[str]:
        """Valid event names for the current state"""
        return set(self.transitions.get(self.state, {}).keys())

    def reset(self, new_state: Any) -> None:
        """Force the machine into new_state without callbacks"""
        old_state = self.state
        self.state = new_state
        logger.info(f"{self.name}: Reset from {self.get_state_name(old_state)} "
                    f"to {self.get_state_name(new_state)}")

    def get_state(self) -> Any:
        return self.state

    def __repr__(self) -> str:
        return f"StateMachine(name={self.name}, state={self.get_state_name()})"
