"""Abstract script engine consumed by the shell."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, MutableMapping, Optional

from ..protocol.messages import EvaluationOutcome, Property, SyntaxState
from .constants import RESERVED_LITERALS


class Engine(ABC):
    """Capability set a shell needs from a script engine.

    Any engine qualifies as long as it can evaluate source at a given start
    line, report the uncaught exception of the last evaluation, enumerate the
    properties of live values without running script code, and expose a global
    namespace that callers may extend or replace.
    """

    #: Literals offered by completion at the top level.
    reserved_literals: tuple[str, ...] = RESERVED_LITERALS

    #: Called by the engine every ``event_throttle`` steps while evaluating.
    process_events: Optional[Callable[[], None]] = None

    @abstractmethod
    def evaluate(self, source: str, name: str = "", start_line: int = 1) -> EvaluationOutcome:
        """Evaluate *source* whose first line is *start_line* of file *name*."""

    @abstractmethod
    def has_uncaught_exception(self) -> bool: ...

    @abstractmethod
    def uncaught_exception(self) -> Any: ...

    @abstractmethod
    def uncaught_exception_line(self) -> int: ...

    @abstractmethod
    def uncaught_exception_backtrace(self) -> list[str]: ...

    @abstractmethod
    def clear_exceptions(self) -> None: ...

    @abstractmethod
    def global_namespace(self) -> MutableMapping[str, Any]: ...

    @abstractmethod
    def set_global_namespace(self, namespace: MutableMapping[str, Any]) -> None: ...

    def current_context(self) -> Any:
        """Value bound to ``this`` at the current point of evaluation."""
        return self.global_namespace()

    @abstractmethod
    def enumerate_properties(self, value: Any) -> list[Property]:
        """List the enumerable properties of *value*.

        Must not run script code: a property whose value can only be read by
        invoking a script-defined getter is left out.
        """

    @property
    @abstractmethod
    def event_throttle(self) -> int: ...

    @event_throttle.setter
    @abstractmethod
    def event_throttle(self, interval: int) -> None: ...

    @abstractmethod
    def check_syntax(self, text: str) -> SyntaxState: ...

    def available_extensions(self) -> list[str]:
        return []

    def imported_extensions(self) -> list[str]:
        return []

    def import_extension(self, name: str) -> None:
        raise ImportError(f"Engine does not support extensions: {name}")

    def close(self) -> None:
        """Release resources held by the engine."""


class host_property(property):
    """A read-only property whose getter is host code without side effects.

    Engines may read these while enumerating properties; plain ``property``
    getters can run script code and are skipped.
    """
