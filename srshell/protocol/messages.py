from __future__ import annotations

from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, Field


class RunMode(str, Enum):
    INTERACTIVE = "interactive"
    QUIET = "quiet"
    BATCH = "batch"
    ONE_SHOT = "one_shot"
    ONE_SHOT_INTERACTIVE = "one_shot_interactive"

    @property
    def reads_all(self) -> bool:
        """Whether the mode consumes the whole remaining input at once."""
        return self is RunMode.BATCH

    @property
    def loops(self) -> bool:
        return self in (RunMode.INTERACTIVE, RunMode.QUIET)

    @property
    def prints_results(self) -> bool:
        return self in (RunMode.INTERACTIVE, RunMode.ONE_SHOT_INTERACTIVE)


class SyntaxState(str, Enum):
    VALID = "valid"
    INTERMEDIATE = "intermediate"
    ERROR = "error"


class _Undefined:
    """Sentinel for "no value", distinct from any script value."""

    __slots__ = ()
    _instance: Optional[_Undefined] = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Any = _Undefined()


class Sentence(NamedTuple):
    """One unit of input returned by a sentence source."""

    text: str
    start_line: int
    next_line: int


class Property(NamedTuple):
    """One enumerated property of a live value."""

    name: str
    value: Any
    read_only: bool = False
    undeletable: bool = False


class EvaluationOutcome(BaseModel):
    result_value: Any = Field(default=UNDEFINED, description="Value of the last expression")
    has_uncaught_exception: bool = Field(default=False, description="Whether evaluation raised")
    exception_value: Any = Field(default=None, description="The uncaught exception instance")
    exception_line: int = Field(default=-1, description="Line of the exception in the source buffer")
    backtrace: list[str] = Field(
        default_factory=list, description="Formatted frames, outermost first"
    )

    @property
    def has_value(self) -> bool:
        return not self.has_uncaught_exception and self.result_value is not UNDEFINED


class CompletionRequest(BaseModel):
    expression: str = Field(description="Partial expression typed so far")


class CompletionResult(BaseModel):
    path: list[str] = Field(default_factory=list, description="Dotted prefix segments")
    candidates: list[str] = Field(default_factory=list, description="Sorted completions")
    insertion_offset: int = Field(
        default=0, description="Offset in the expression where the completed name starts"
    )
    common_suffix: str = Field(
        default="", description="Text shared by all candidates beyond what was typed"
    )
