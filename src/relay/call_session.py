from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from relay.errors import InvalidStateTransition

LOGGER = logging.getLogger(__name__)


class CallState(str, Enum):
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.CONNECTING: frozenset({CallState.HANDSHAKING, CallState.CLOSING}),
    CallState.HANDSHAKING: frozenset({CallState.ACTIVE, CallState.CLOSING}),
    CallState.ACTIVE: frozenset({CallState.CLOSING}),
    CallState.CLOSING: frozenset({CallState.CLOSED}),
    CallState.CLOSED: frozenset(),
}


@dataclass(slots=True)
class CallSession:
    """State of one telephony call bridged to one realtime session."""

    call_id: str
    stream_sid: str | None = None
    state: CallState = CallState.CONNECTING
    telephony_closed: bool = False
    session_closed: bool = False
    history: list[CallState] = field(default_factory=list)

    def can_transition(self, target: CallState) -> bool:
        return target in _TRANSITIONS[self.state]

    def transition(self, target: CallState) -> None:
        if not self.can_transition(target):
            raise InvalidStateTransition(f"{self.state.value} -> {target.value}")
        LOGGER.debug("Call %s: %s -> %s", self.call_id, self.state.value, target.value)
        self.history.append(self.state)
        self.state = target

    def mark_telephony_closed(self) -> None:
        self.telephony_closed = True
        self._on_side_closed()

    def mark_session_closed(self) -> None:
        self.session_closed = True
        self._on_side_closed()

    def _on_side_closed(self) -> None:
        if self.state is not CallState.CLOSING and self.can_transition(CallState.CLOSING):
            self.transition(CallState.CLOSING)
        if self.telephony_closed and self.session_closed and self.state is CallState.CLOSING:
            self.transition(CallState.CLOSED)
            LOGGER.info("Call %s closed after %s", self.call_id, " -> ".join(state.value for state in self.history))
