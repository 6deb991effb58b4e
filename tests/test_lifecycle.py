"""
Tests for pipeline state transitions
"""

import pytest

from assetflow.build.lifecycle import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    PipelineState,
    can_transition,
)


@pytest.mark.parametrize(
    "from_state, to_state",
    [
        (PipelineState.IDLE, PipelineState.COMPOSING),
        (PipelineState.COMPOSING, PipelineState.BUILDING),
        (PipelineState.COMPOSING, PipelineState.FAILED),
        (PipelineState.BUILDING, PipelineState.SERVING),
        (PipelineState.BUILDING, PipelineState.FAILED),
    ],
)
def test_allowed_transitions(from_state, to_state):
    assert can_transition(from_state, to_state)


@pytest.mark.parametrize(
    "from_state, to_state",
    [
        (PipelineState.IDLE, PipelineState.SERVING),
        (PipelineState.IDLE, PipelineState.FAILED),
        (PipelineState.SERVING, PipelineState.COMPOSING),
        (PipelineState.FAILED, PipelineState.COMPOSING),
        (PipelineState.FAILED, PipelineState.SERVING),
    ],
)
def test_rejected_transitions(from_state, to_state):
    assert not can_transition(from_state, to_state)


def test_terminal_states_have_no_exits():
    """A finished run is never resurrected."""
    assert TERMINAL_STATES == {PipelineState.SERVING, PipelineState.FAILED}
    for state in TERMINAL_STATES:
        assert VALID_TRANSITIONS[state] == set()
