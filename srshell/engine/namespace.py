from __future__ import annotations

import enum
from typing import Any, Dict, Iterator, List

from ..protocol.messages import Property

_MISSING = object()


class ReadOnlyPropertyError(TypeError):
    """Raised when a script rebinds a read-only name or deletes an undeletable one."""


class PropertyFlags(enum.Flag):
    NONE = 0
    READ_ONLY = enum.auto()
    UNDELETABLE = enum.auto()


def is_system_name(name: str) -> bool:
    """Dunder names belong to the interpreter and are never enumerated."""
    return name.startswith("__") and name.endswith("__")


class GlobalNamespace(dict):
    """Global namespace of a script engine with per-name property flags.

    Evaluated code runs with this mapping as both globals and locals, so
    top-level assignment and ``del`` go through ``__setitem__`` and
    ``__delitem__`` and honour the flags. Host code installs protected names
    through :meth:`define`, which bypasses the checks. Writes that skip them
    are undone by :meth:`restore_protected` after each evaluation.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._flags: Dict[str, PropertyFlags] = {}
        # Last value seen for every flagged name
        self._protected: Dict[str, Any] = {}

    @classmethod
    def create(cls, builtins: Dict[str, Any]) -> GlobalNamespace:
        """Build a fresh module-like namespace around *builtins*."""
        namespace = cls()
        dict.update(
            namespace,
            {
                "__name__": "__main__",
                "__doc__": None,
                "__package__": None,
                "__loader__": None,
                "__spec__": None,
                "__annotations__": {},
                "__builtins__": builtins,
            },
        )
        return namespace

    def define(self, name: str, value: Any, flags: PropertyFlags = PropertyFlags.NONE) -> None:
        """Bind *name* with *flags*, replacing any existing binding and flags."""
        dict.__setitem__(self, name, value)
        if flags:
            self._flags[name] = flags
            self._protected[name] = value
        else:
            self._flags.pop(name, None)
            self._protected.pop(name, None)

    def flags(self, name: str) -> PropertyFlags:
        return self._flags.get(name, PropertyFlags.NONE)

    def __setitem__(self, name: str, value: Any) -> None:
        if PropertyFlags.READ_ONLY in self.flags(name):
            raise ReadOnlyPropertyError(f"'{name}' is read-only")
        super().__setitem__(name, value)
        if name in self._protected:
            self._protected[name] = value

    def __delitem__(self, name: str) -> None:
        if PropertyFlags.UNDELETABLE in self.flags(name):
            raise ReadOnlyPropertyError(f"'{name}' cannot be deleted")
        super().__delitem__(name)
        self._flags.pop(name, None)
        self._protected.pop(name, None)

    def pop(self, name: str, *default: Any) -> Any:
        if name in self and PropertyFlags.UNDELETABLE in self.flags(name):
            raise ReadOnlyPropertyError(f"'{name}' cannot be deleted")
        self._flags.pop(name, None)
        self._protected.pop(name, None)
        return super().pop(name, *default)

    def restore_protected(self) -> List[str]:
        """Undo writes to flagged names that bypassed the checks above.

        ``global`` declarations in functions and the bulk ``dict`` methods
        write to the mapping directly. Read-only names get their value back
        and deleted undeletable names are rebound. Returns the restored names.
        """
        restored = []
        for name, flags in list(self._flags.items()):
            current = dict.get(self, name, _MISSING)
            if current is _MISSING:
                if PropertyFlags.UNDELETABLE in flags:
                    dict.__setitem__(self, name, self._protected[name])
                    restored.append(name)
                else:
                    del self._flags[name]
                    del self._protected[name]
            elif PropertyFlags.READ_ONLY in flags and current is not self._protected[name]:
                dict.__setitem__(self, name, self._protected[name])
                restored.append(name)
            else:
                self._protected[name] = current
        return restored

    def properties(self) -> Iterator[Property]:
        """Yield every enumerable binding, in insertion order."""
        for name, value in list(self.items()):
            if is_system_name(name):
                continue
            flags = self.flags(name)
            yield Property(
                name=name,
                value=value,
                read_only=PropertyFlags.READ_ONLY in flags,
                undeletable=PropertyFlags.UNDELETABLE in flags,
            )

    def __repr__(self) -> str:
        names = [prop.name for prop in self.properties()]
        return f"<global namespace: {', '.join(names)}>"
