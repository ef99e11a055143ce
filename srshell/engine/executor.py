"""Python script engine: evaluates Python source inside a flagged global namespace."""

from __future__ import annotations

import ast
import builtins
import codeop
import importlib
import inspect
import linecache
import sys
import traceback
import types
from contextlib import contextmanager
from importlib.metadata import entry_points
from typing import Any, Callable, Dict, Iterator, MutableMapping, Optional

import structlog

from ..protocol.messages import UNDEFINED, EvaluationOutcome, Property, SyntaxState
from .base import Engine, host_property
from .constants import (
    DEFAULT_SOURCE_NAME,
    EXTENSION_GROUP,
    PYTHON_RESERVED_LITERALS,
    THROTTLE_DISABLED,
)
from .namespace import GlobalNamespace, ReadOnlyPropertyError

logger = structlog.get_logger()

_MISSING = object()

# Descriptors implemented in C: binding them never runs script code.
_SAFE_DESCRIPTORS = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.MethodDescriptorType,
    types.ClassMethodDescriptorType,
    types.WrapperDescriptorType,
    types.MethodWrapperType,
    types.MemberDescriptorType,
    types.GetSetDescriptorType,
    staticmethod,
    classmethod,
    host_property,
)


class ExtensionNotFoundError(ImportError):
    """Raised when an extension is neither a registered entry point nor importable."""


def _create_event_tracer(interval: int, callback: Callable[[], None]) -> Callable[[Any, str, Any], Any]:
    """Create a trace function that yields to the host every *interval* line events."""
    event_count = 0

    def tracer(frame: Any, event: str, arg: Any) -> Any:
        nonlocal event_count

        if event == "line":
            event_count += 1
            if event_count >= interval:
                event_count = 0
                callback()

        # Returning the tracer keeps it installed in new frames
        return tracer

    return tracer


def _instance_dict(value: Any) -> Dict[str, Any]:
    try:
        return object.__getattribute__(value, "__dict__")
    except (AttributeError, TypeError):
        return {}


class PythonEngine(Engine):
    """Evaluates Python source text in a :class:`GlobalNamespace`.

    Every engine owns a private copy of the builtins, so nothing a script does
    to them outlives the engine. The value of a trailing expression statement
    is the evaluation result; statements and ``None`` yield ``UNDEFINED``.
    """

    reserved_literals = PYTHON_RESERVED_LITERALS

    def __init__(self, extension_group: str = EXTENSION_GROUP) -> None:
        self._builtins: Dict[str, Any] = dict(vars(builtins))
        self._namespace = GlobalNamespace.create(self._builtins)
        self._builtins["this"] = self._namespace
        self._extension_group = extension_group
        self._imported: list[str] = []
        self._throttle = THROTTLE_DISABLED
        self.process_events: Optional[Callable[[], None]] = None

        self._exception: Optional[BaseException] = None
        self._exception_line = -1
        self._backtrace: list[str] = []

        # Source registered per virtual filename, for tracebacks
        self._sources: Dict[str, list[str]] = {}
        self._evaluated_names: set[str] = set()

    # Evaluation

    def evaluate(self, source: str, name: str = "", start_line: int = 1) -> EvaluationOutcome:
        filename = name or DEFAULT_SOURCE_NAME
        self.clear_exceptions()
        self._evaluated_names.add(filename)
        self._register_source(filename, source, start_line)

        # Padding keeps every line number relative to the whole buffer
        padded = "\n" * max(start_line - 1, 0) + source

        try:
            module = ast.parse(padded, filename, "exec")
            tail: Optional[ast.Expression] = None
            if module.body and isinstance(module.body[-1], ast.Expr):
                tail = ast.Expression(body=module.body.pop().value)

            body_code = compile(module, filename, "exec")
            tail_code = compile(tail, filename, "eval") if tail is not None else None

            try:
                with self._throttled():
                    exec(body_code, self._namespace, self._namespace)
                    result = UNDEFINED
                    if tail_code is not None:
                        result = eval(tail_code, self._namespace, self._namespace)
            finally:
                restored = self._namespace.restore_protected()
            if restored:
                logger.debug("Protected globals restored", names=restored)
                raise ReadOnlyPropertyError(
                    f"cannot rebind or delete protected names: {', '.join(restored)}"
                )
        except (Exception, SystemExit) as exc:
            self._record_exception(exc)
            logger.debug(
                "Uncaught exception",
                source_name=filename,
                line=self._exception_line,
                exception_type=type(exc).__name__,
            )
            return EvaluationOutcome(
                has_uncaught_exception=True,
                exception_value=exc,
                exception_line=self._exception_line,
                backtrace=list(self._backtrace),
            )

        if result is None:
            result = UNDEFINED
        return EvaluationOutcome(result_value=result)

    def _record_exception(self, exc: BaseException) -> None:
        frames = traceback.extract_tb(exc.__traceback__)
        # Hide the host frames above the first line of script code
        for index, frame in enumerate(frames):
            if frame.filename in self._evaluated_names:
                frames = [f for f in frames[index:] if f.filename != __file__]
                break
        else:
            frames = []

        line = -1
        for frame in frames:
            if frame.filename in self._evaluated_names and frame.lineno is not None:
                line = frame.lineno
        if isinstance(exc, SyntaxError) and exc.lineno is not None:
            line = exc.lineno

        self._exception = exc
        self._exception_line = line
        self._backtrace = traceback.format_list(frames)

    @contextmanager
    def _throttled(self) -> Iterator[None]:
        callback = self.process_events
        if self._throttle <= 0 or callback is None:
            yield
            return

        previous = sys.gettrace()
        sys.settrace(_create_event_tracer(self._throttle, callback))
        try:
            yield
        finally:
            sys.settrace(previous)

    def _register_source(self, filename: str, source: str, start_line: int) -> None:
        """Merge *source* into the linecache entry of a virtual filename."""
        if not filename.startswith("<"):
            return
        lines = self._sources.setdefault(filename, [])
        new_lines = [line + "\n" for line in source.split("\n")]
        first = max(start_line - 1, 0)
        if len(lines) < first:
            lines.extend(["\n"] * (first - len(lines)))
        lines[first:first + len(new_lines)] = new_lines
        linecache.cache[filename] = (
            sum(len(line) for line in lines),
            None,
            lines,
            filename,
        )

    # Uncaught exception state

    def has_uncaught_exception(self) -> bool:
        return self._exception is not None

    def uncaught_exception(self) -> Any:
        return self._exception

    def uncaught_exception_line(self) -> int:
        return self._exception_line

    def uncaught_exception_backtrace(self) -> list[str]:
        return list(self._backtrace)

    def clear_exceptions(self) -> None:
        self._exception = None
        self._exception_line = -1
        self._backtrace = []

    # Global namespace

    def global_namespace(self) -> GlobalNamespace:
        return self._namespace

    def set_global_namespace(self, namespace: MutableMapping[str, Any]) -> None:
        if not isinstance(namespace, GlobalNamespace):
            replacement = GlobalNamespace()
            dict.update(replacement, namespace)
            namespace = replacement
        if "__builtins__" not in namespace:
            dict.__setitem__(namespace, "__builtins__", self._builtins)
        self._namespace = namespace
        self._builtins["this"] = namespace

    # Property enumeration

    def enumerate_properties(self, value: Any) -> list[Property]:
        if value is UNDEFINED or value is None:
            return []
        if isinstance(value, GlobalNamespace):
            return list(value.properties())

        properties = []
        for name in self._attribute_names(value):
            try:
                attr = inspect.getattr_static(value, name)
            except AttributeError:
                continue
            resolved = self._static_value(value, name, attr)
            if resolved is _MISSING:
                continue
            read_only = isinstance(attr, host_property) and attr.fset is None
            properties.append(Property(name=name, value=resolved, read_only=read_only))
        return properties

    def _attribute_names(self, value: Any) -> list[str]:
        if isinstance(value, type):
            names: Dict[str, None] = {}
            classes = value.__mro__
        else:
            names = dict.fromkeys(_instance_dict(value))
            classes = type(value).__mro__
        for klass in classes:
            names.update(dict.fromkeys(vars(klass)))
        return [name for name in names if isinstance(name, str) and not name.startswith("_")]

    def _static_value(self, owner: Any, name: str, attr: Any) -> Any:
        """Bind *attr*, found statically on *owner*, without running script code."""
        if not hasattr(type(attr), "__get__"):
            return attr
        if not isinstance(owner, type) and _instance_dict(owner).get(name, _MISSING) is attr:
            return attr
        if not isinstance(attr, _SAFE_DESCRIPTORS):
            # Script-defined getter, reading it could have side effects
            return _MISSING
        try:
            if isinstance(owner, type):
                return attr.__get__(None, owner)
            return attr.__get__(owner, type(owner))
        except Exception as e:
            # Unset slots, released buffers and failing host properties
            logger.debug("Property skipped", name=name, error=repr(e))
            return _MISSING

    # Syntax

    def check_syntax(self, text: str) -> SyntaxState:
        """Classify *text* as complete, needing more lines, or broken.

        Text that only lacks the blank line closing a compound statement is
        complete: more indented lines may still follow, but none are required.
        """
        try:
            if codeop.compile_command(text, DEFAULT_SOURCE_NAME, "exec") is not None:
                return SyntaxState.VALID
        except (SyntaxError, ValueError, OverflowError):
            return SyntaxState.ERROR

        try:
            closed = codeop.compile_command(text + "\n", DEFAULT_SOURCE_NAME, "exec")
        except (SyntaxError, ValueError, OverflowError):
            return SyntaxState.INTERMEDIATE
        return SyntaxState.VALID if closed is not None else SyntaxState.INTERMEDIATE

    # Throttle

    @property
    def event_throttle(self) -> int:
        return self._throttle

    @event_throttle.setter
    def event_throttle(self, interval: int) -> None:
        self._throttle = interval

    # Extensions

    def available_extensions(self) -> list[str]:
        return sorted({ep.name for ep in entry_points(group=self._extension_group)})

    def imported_extensions(self) -> list[str]:
        return list(self._imported)

    def import_extension(self, name: str) -> None:
        """Import extension *name* into the global namespace.

        An extension exposing ``initialize(name, namespace)`` installs itself;
        any other object is bound under the last component of *name*.
        """
        if name in self._imported:
            return

        target = self._load_extension(name)
        initialize = getattr(target, "initialize", None)
        if callable(initialize):
            initialize(name, self._namespace)
        else:
            self._namespace.define(name.rsplit(".", 1)[-1], target)
        self._imported.append(name)
        logger.info("Extension imported", extension=name)

    def _load_extension(self, name: str) -> Any:
        for ep in entry_points(group=self._extension_group):
            if ep.name == name:
                return ep.load()
        try:
            return importlib.import_module(name)
        except ModuleNotFoundError as e:
            raise ExtensionNotFoundError(f"Extension not found: {name}") from e

    def close(self) -> None:
        """Drop the virtual sources this engine registered in linecache."""
        for filename, lines in self._sources.items():
            entry = linecache.cache.get(filename)
            if entry is not None and len(entry) == 4 and entry[2] is lines:
                del linecache.cache[filename]
        self._sources.clear()
        logger.debug("Engine closed")
