"""
assetflow - Build pipeline lifecycle

Defines the pipeline states and the valid transitions between them. A
pipeline instance is single-use: ``SERVING`` and ``FAILED`` are terminal and
a new run starts from a fresh instance.
"""

from enum import Enum
from typing import Dict, Set


class PipelineState(str, Enum):
    """
    Lifecycle states of a ``BuildPipeline`` run.

    State Categories:
        - Initial: IDLE
        - Active: COMPOSING, BUILDING
        - Terminal: SERVING, FAILED
    """

    IDLE = "idle"              # Constructed, not yet started
    COMPOSING = "composing"    # Building the mode-specific configuration
    BUILDING = "building"      # Compiler created, artifacts or middlewares pending
    SERVING = "serving"        # Dev middlewares attached or prod artifacts written
    FAILED = "failed"          # Configuration or compile error


VALID_TRANSITIONS: Dict[PipelineState, Set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.COMPOSING},
    PipelineState.COMPOSING: {
        PipelineState.BUILDING,
        PipelineState.FAILED,      # Invalid configuration
    },
    PipelineState.BUILDING: {
        PipelineState.SERVING,
        PipelineState.FAILED,      # Compile error or unreadable layout
    },
    # Terminal: no resurrection of a finished run
    PipelineState.SERVING: set(),
    PipelineState.FAILED: set(),
}

TERMINAL_STATES = {PipelineState.SERVING, PipelineState.FAILED}


def can_transition(from_state: PipelineState, to_state: PipelineState) -> bool:
    """
    Check if a state transition is valid.

    Example:
        >>> can_transition(PipelineState.IDLE, PipelineState.COMPOSING)
        True
        >>> can_transition(PipelineState.FAILED, PipelineState.COMPOSING)
        False
    """
    return to_state in VALID_TRANSITIONS.get(from_state, set())
