"""Fill session state machine."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from fieldwise.core.exceptions import InvalidStateTransitionError


class FillState(StrEnum):
    IDLE = "IDLE"
    DETECTING = "DETECTING"
    ANALYZING = "ANALYZING"
    RETRIEVING = "RETRIEVING"
    INFERRING = "INFERRING"
    FILLING = "FILLING"
    AWAITING_REVIEW = "AWAITING_REVIEW"
    LEARNING = "LEARNING"
    ERROR = "ERROR"


class FillErrorCode(StrEnum):
    FORM_NOT_FOUND = "FORM_NOT_FOUND"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    LLM_ERROR = "LLM_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SECURITY_BLOCK = "SECURITY_BLOCK"
    CANCELLED = "CANCELLED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


TRANSITIONS: dict[FillState, frozenset[FillState]] = {
    FillState.IDLE: frozenset({FillState.DETECTING, FillState.ANALYZING, FillState.LEARNING}),
    FillState.DETECTING: frozenset({FillState.ANALYZING, FillState.IDLE}),
    FillState.ANALYZING: frozenset({
        FillState.RETRIEVING, FillState.AWAITING_REVIEW, FillState.FILLING, FillState.IDLE,
    }),
    FillState.RETRIEVING: frozenset({
        FillState.INFERRING, FillState.AWAITING_REVIEW, FillState.FILLING, FillState.IDLE,
    }),
    FillState.INFERRING: frozenset({FillState.AWAITING_REVIEW, FillState.FILLING, FillState.IDLE}),
    FillState.AWAITING_REVIEW: frozenset({FillState.FILLING, FillState.IDLE}),
    FillState.FILLING: frozenset({FillState.IDLE}),
    FillState.LEARNING: frozenset({FillState.IDLE}),
    FillState.ERROR: frozenset({FillState.IDLE}),
}


class FillError(BaseModel):
    code: FillErrorCode
    message: str
    previous_state: FillState


class StateChange(BaseModel):
    state: FillState
    at: float = Field(default_factory=time.time)


class FillStateMachine:
    """Tracks one browsing context's fill session.

    ERROR is reachable from every state and remembers where it came from so
    the session can ``resume()``; ``reset()`` always returns to IDLE.
    """

    def __init__(self) -> None:
        self._state = FillState.IDLE
        self._error: Optional[FillError] = None
        self.history: list[StateChange] = [StateChange(state=FillState.IDLE)]

    @property
    def state(self) -> FillState:
        return self._state

    @property
    def error(self) -> Optional[FillError]:
        return self._error

    def can_transition(self, target: FillState) -> bool:
        return target == FillState.ERROR or target in TRANSITIONS[self._state]

    def transition(self, target: FillState) -> None:
        if target == FillState.ERROR:
            raise InvalidStateTransitionError("Use fail() to enter the ERROR state")
        if target not in TRANSITIONS[self._state]:
            raise InvalidStateTransitionError(f"{self._state} -> {target} is not allowed")
        self._enter(target)

    def fail(self, code: FillErrorCode, message: str) -> FillError:
        previous = self._error.previous_state if self._state == FillState.ERROR and self._error else self._state
        self._error = FillError(code=code, message=message, previous_state=previous)
        self._enter(FillState.ERROR)
        return self._error

    def resume(self) -> FillState:
        """Return from ERROR to the state that failed."""
        if self._state != FillState.ERROR or self._error is None:
            raise InvalidStateTransitionError(f"Cannot resume from {self._state}")
        target = self._error.previous_state
        self._error = None
        self._enter(target)
        return target

    def reset(self) -> None:
        self._error = None
        if self._state != FillState.IDLE:
            self._enter(FillState.IDLE)

    def _enter(self, state: FillState) -> None:
        self._state = state
        self.history.append(StateChange(state=state))
