"""
Tests for the session status state machine.
"""

import pytest

from live_assistant.models.data_models import SessionStatus
from live_assistant.utils.error_handling import InvalidTransitionError
from live_assistant.utils.state_machine import SessionStateMachine


@pytest.fixture
def machine():
    return SessionStateMachine()


class TestSessionStateMachine:

    def test_starts_disconnected(self, machine):
        assert machine.current_state == SessionStatus.DISCONNECTED

    def test_normal_lifecycle(self, machine):
        machine.transition_to(SessionStatus.CONNECTING, "start")
        machine.transition_to(SessionStatus.CONNECTED, "open")
        machine.transition_to(SessionStatus.DISCONNECTED, "stop")
        assert [t.to_state for t in machine.get_transition_history()] == [
            SessionStatus.CONNECTING,
            SessionStatus.CONNECTED,
            SessionStatus.DISCONNECTED,
        ]

    @pytest.mark.parametrize("source,target", [
        (SessionStatus.DISCONNECTED, SessionStatus.CONNECTED),
        (SessionStatus.CONNECTED, SessionStatus.CONNECTING),
        (SessionStatus.ERROR, SessionStatus.CONNECTED),
    ])
    def test_invalid_transitions_raise(self, machine, source, target):
        machine.force(source)
        with pytest.raises(InvalidTransitionError):
            machine.transition_to(target)
        assert machine.current_state == source

    def test_error_can_restart(self, machine):
        machine.force(SessionStatus.ERROR, "boom")
        assert machine.can_transition(SessionStatus.CONNECTING)
        assert machine.can_transition(SessionStatus.DISCONNECTED)

    def test_listeners_receive_previous_and_current(self, machine):
        seen = []
        machine.add_listener(lambda prev, cur: seen.append((prev, cur)))
        machine.transition_to(SessionStatus.CONNECTING)
        assert seen == [(SessionStatus.DISCONNECTED, SessionStatus.CONNECTING)]

    def test_listener_errors_do_not_block_transition(self, machine):
        def broken(prev, cur):
            raise RuntimeError("listener bug")

        machine.add_listener(broken)
        machine.transition_to(SessionStatus.CONNECTING)
        assert machine.current_state == SessionStatus.CONNECTING

    def test_force_to_same_state_is_noop(self, machine):
        seen = []
        machine.add_listener(lambda prev, cur: seen.append(cur))
        machine.force(SessionStatus.DISCONNECTED)
        assert seen == []
        assert machine.get_transition_history() == []

    def test_history_is_bounded(self):
        machine = SessionStateMachine(max_history=3)
        for _ in range(5):
            machine.force(SessionStatus.CONNECTING)
            machine.force(SessionStatus.DISCONNECTED)
        assert machine.get_status()['history_size'] == 3
