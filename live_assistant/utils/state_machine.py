"""
Session status state machine.
"""

from dataclasses import dataclass, field
from typing import Optional, Callable, Dict, Any, List
from datetime import datetime

from ..models.data_models import SessionStatus
from .error_handling import InvalidTransitionError
from .logging_config import get_logger


logger = get_logger("state")


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: SessionStatus
    to_state: SessionStatus
    reason: str
    timestamp: float = field(default_factory=lambda: datetime.now().timestamp())
    metadata: Dict[str, Any] = field(default_factory=dict)


StatusListener = Callable[[SessionStatus, SessionStatus], None]


class SessionStateMachine:
    """
    Tracks the session lifecycle with explicit, validated transitions.

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED on the normal
    path; any state may fall into ERROR, which is left by an explicit stop
    (-> DISCONNECTED) or restart (-> CONNECTING).

    Transitions are synchronous; callers run on the event loop thread.
    """

    _VALID_TRANSITIONS = {
        SessionStatus.DISCONNECTED: [
            SessionStatus.CONNECTING,
            SessionStatus.ERROR
        ],
        SessionStatus.CONNECTING: [
            SessionStatus.CONNECTED,
            SessionStatus.DISCONNECTED,
            SessionStatus.ERROR
        ],
        SessionStatus.CONNECTED: [
            SessionStatus.DISCONNECTED,
            SessionStatus.ERROR
        ],
        SessionStatus.ERROR: [
            SessionStatus.CONNECTING,
            SessionStatus.DISCONNECTED
        ]
    }

    def __init__(self, max_history: int = 50):
        self._state = SessionStatus.DISCONNECTED
        self._transition_history: List[StateTransition] = []
        self._max_history = max_history
        self._listeners: List[StatusListener] = []

    @property
    def current_state(self) -> SessionStatus:
        return self._state

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback invoked as listener(previous, current)."""
        self._listeners.append(listener)

    def can_transition(self, target_state: SessionStatus) -> bool:
        return target_state in self._VALID_TRANSITIONS.get(self._state, [])

    def transition_to(
        self,
        target_state: SessionStatus,
        reason: str = "",
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Move to a new state.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if not self.can_transition(target_state):
            raise InvalidTransitionError(
                f"Invalid transition: {self._state.name} → {target_state.name}"
            )
        self._apply(target_state, reason, metadata)

    def force(self, target_state: SessionStatus, reason: str = "") -> None:
        """
        Move to a state without validation (teardown paths).

        A no-op when already in `target_state`.
        """
        if target_state == self._state:
            return
        self._apply(target_state, reason, None)

    def _apply(self, target_state: SessionStatus, reason: str, metadata: Optional[Dict[str, Any]]) -> None:
        previous = self._state
        self._transition_history.append(StateTransition(
            from_state=previous,
            to_state=target_state,
            reason=reason or "unspecified",
            metadata=metadata or {}
        ))
        if len(self._transition_history) > self._max_history:
            self._transition_history.pop(0)

        self._state = target_state
        logger.info(f"🔄 {previous.name} → {target_state.name} ({reason or 'unspecified'})")

        for listener in list(self._listeners):
            try:
                listener(previous, target_state)
            except Exception as e:
                logger.warning(f"Status listener error: {e}")

    def get_transition_history(self, last_n: int = 10) -> List[StateTransition]:
        return self._transition_history[-last_n:]

    def get_status(self) -> Dict[str, Any]:
        return {
            'state': self._state.name,
            'history_size': len(self._transition_history),
            'last_transition': self._transition_history[-1] if self._transition_history else None
        }
