"""Completion of partial dotted expressions against live values.

The resolver never evaluates the expression. It walks the property graph the
engine enumerates, so completing ``a.b.`` cannot run any of the script's code.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Iterable, Sequence, Union

import structlog

from ..engine.constants import CONTEXT_TOKEN, RESERVED_LITERALS
from ..protocol.messages import UNDEFINED, CompletionRequest, CompletionResult, Property

logger = structlog.get_logger()

PropertyEnumerator = Callable[[Any], Iterable[Property]]


def is_identifier_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def split_expression(expression: str) -> tuple[list[str], str, int]:
    """Split *expression* into the dotted path, the partial name and its offset.

    ``"a.b.ba"`` gives ``(["a", "b"], "ba", 4)``. A dot without an identifier in
    front of it contributes an empty segment.
    """
    start = len(expression)
    while start > 0 and is_identifier_char(expression[start - 1]):
        start -= 1
    name = expression[start:]
    offset = start

    path: list[str] = []
    cursor = start - 1
    while cursor >= 0 and expression[cursor] == ".":
        segment_end = cursor
        while cursor > 0 and is_identifier_char(expression[cursor - 1]):
            cursor -= 1
        path.insert(0, expression[cursor:segment_end])
        cursor -= 1

    return path, name, offset


def resolve_path(context: Any, path: Sequence[str], enumerate_properties: PropertyEnumerator) -> Any:
    """Walk *path* from *context*; a failed lookup yields ``UNDEFINED``."""
    segments = path[1:] if path and path[0] == CONTEXT_TOKEN else path
    value = context
    for segment in segments:
        for prop in enumerate_properties(value):
            if prop.name == segment:
                value = prop.value
                break
        else:
            return UNDEFINED
    return value


class CompletionResolver:
    """Computes completions for partial expressions.

    Reserved literals are offered at the top level only. They never take part
    in the common-prefix computation.
    """

    def __init__(
        self,
        enumerate_properties: PropertyEnumerator,
        reserved_literals: Sequence[str] = RESERVED_LITERALS,
    ) -> None:
        self._enumerate = enumerate_properties
        self._reserved = tuple(reserved_literals)

    def complete(self, request: Union[CompletionRequest, str], context: Any) -> CompletionResult:
        expression = request.expression if isinstance(request, CompletionRequest) else request
        path, name, offset = split_expression(expression)

        value = resolve_path(context, path, self._enumerate)
        names = [prop.name for prop in self._enumerate(value)]

        common_suffix = ""
        if not name:
            candidates = names
            if not path:
                candidates.extend(self._reserved)
        else:
            candidates = [candidate for candidate in names if candidate.startswith(name)]
            if candidates:
                common_suffix = os.path.commonprefix(candidates)[len(name):]
            if not path:
                candidates.extend(word for word in self._reserved if word.startswith(name))

        logger.debug("Completion resolved", path=path, name=name, candidates=len(candidates))
        return CompletionResult(
            path=path,
            candidates=sorted(dict.fromkeys(candidates)),
            insertion_offset=offset,
            common_suffix=common_suffix,
        )
