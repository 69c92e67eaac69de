"""Session state as a tagged union.

Only the active variant carries a countdown, so "preparing" and "recording"
can never be true at the same time.
"""
from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Idle:
    name = "idle"
    question = None


@dataclass(frozen=True)
class Preparing:
    question: int
    countdown: Any
    name = "preparing"


@dataclass(frozen=True)
class Recording:
    question: int
    countdown: Any
    name = "recording"


@dataclass(frozen=True)
class Reviewing:
    question: int
    name = "reviewing"


@dataclass(frozen=True)
class Completed:
    name = "completed"
    question = None


@dataclass(frozen=True)
class Submitted:
    name = "submitted"
    question = None


SessionState = Union[Idle, Preparing, Recording, Reviewing, Completed, Submitted]

AUTO = "auto"
USER = "user"
LOAD = "load"


@dataclass(frozen=True)
class Transition:
    """One entry of the controller's history."""

    state: str
    question: Optional[int]
    trigger: str

    def to_dict(self) -> dict:
        return {"state": self.state, "question": self.question, "trigger": self.trigger}


def describe(state: SessionState) -> dict:
    """Wire-friendly view of a state."""
    out = {"state": state.name, "question": state.question}
    countdown = getattr(state, "countdown", None)
    if countdown is not None:
        out["remaining"] = countdown.remaining
    return out
