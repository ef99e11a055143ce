"""Host API installation into an engine's global namespace.

Two visibility policies are supported. With the merge policy every member of
``sr.engine`` also becomes a global, and the host ``print`` replaces any
pre-existing one. With the isolate policy the global namespace is left alone
apart from an undeletable ``print``. Both install the ``sr`` root object.
"""

from __future__ import annotations

import os
import platform
from typing import TYPE_CHECKING, Any, MutableMapping, Optional

import structlog

from ..engine.base import Engine, host_property
from ..engine.constants import ENGINE_OBJECT, PRINT_FUNCTION, ROOT_OBJECT
from ..engine.namespace import GlobalNamespace, PropertyFlags, is_system_name
from ..protocol.messages import Property
from .commands import run_command

if TYPE_CHECKING:
    from .shell import Shell

logger = structlog.get_logger()

_METHOD_FLAGS = PropertyFlags.UNDELETABLE
_VALUE_FLAGS = PropertyFlags.READ_ONLY | PropertyFlags.UNDELETABLE


def _flags_of(prop: Property) -> PropertyFlags:
    flags = PropertyFlags.NONE
    if prop.read_only:
        flags |= PropertyFlags.READ_ONLY
    if prop.undeletable:
        flags |= PropertyFlags.UNDELETABLE
    return flags


def _define(namespace: MutableMapping[str, Any], name: str, value: Any, flags: PropertyFlags) -> None:
    if isinstance(namespace, GlobalNamespace):
        namespace.define(name, value, flags)
    else:
        namespace[name] = value


class ShellEngineApi:
    """The object scripts reach as ``sr.engine``.

    Public members are the script-visible API, so they keep their camelCase
    names. State lives in private attributes, which enumeration skips.
    """

    def __init__(self, shell: Shell, engine: Engine, binding: EngineBinding) -> None:
        self._shell = shell
        self._engine = engine
        self._binding = binding

    def __repr__(self) -> str:
        return f"<{ROOT_OBJECT}.{ENGINE_OBJECT} {self._shell.version}>"

    # Output

    def print(self, *values: Any) -> None:
        for index, value in enumerate(values):
            self._shell.print_out(value, index == len(values) - 1)

    def error(self, *values: Any) -> None:
        for index, value in enumerate(values):
            self._shell.print_err(value, index == len(values) - 1)

    # Lifecycle

    def exit(self, code: int = 0) -> None:
        self._shell.exit(code)

    def quit(self) -> None:
        self._shell.exit(0)

    def help(self) -> str:
        return self._shell.help_message()

    # Input

    def read(self, *messages: Any) -> str:
        for index, message in enumerate(messages):
            self._shell.print_for_read_command(message, index == len(messages) - 1)
        return self._shell.read_command()

    def readFile(self, name: str) -> str:
        with open(name, encoding=self._shell.config.encoding) as f:
            return f.read()

    def load(self, *filenames: str) -> None:
        for filename in filenames:
            self._shell.load_file(filename)

    def importExtension(self, *names: str) -> None:
        for name in names:
            self._engine.import_extension(name)
        self._binding.refresh("importedExtensions")

    # Environment

    def getFromEnvironment(self, name: str) -> Optional[str]:
        return os.environ.get(name)

    def runCommand(self, command_or_options: Any, *args: Any) -> int:
        return run_command(
            command_or_options,
            *args,
            timeout=self._shell.config.command_timeout,
            encoding=self._shell.config.encoding,
        )

    # Read-only properties

    @host_property
    def arguments(self) -> tuple[str, ...]:
        return self._shell.arguments

    @host_property
    def version(self) -> str:
        return self._shell.version

    @host_property
    def srVersion(self) -> str:
        return self._shell.version

    @host_property
    def pythonVersion(self) -> str:
        return platform.python_version()

    @host_property
    def availableExtensions(self) -> list[str]:
        return self._engine.available_extensions()

    @host_property
    def importedExtensions(self) -> list[str]:
        return self._engine.imported_extensions()


class HostRoot:
    """The ``sr`` object: a namespace for host-provided children."""

    def __init__(self, api: ShellEngineApi) -> None:
        self._api = api

    def __repr__(self) -> str:
        return f"<{ROOT_OBJECT}>"

    @host_property
    def engine(self) -> ShellEngineApi:
        return self._api


class EngineBinding:
    """Installs the host API of *shell* into engines, once per engine."""

    def __init__(self, shell: Shell, use_global_engine: bool = True) -> None:
        self._shell = shell
        self.use_global_engine = use_global_engine
        self._engine: Optional[Engine] = None
        self.api: Optional[ShellEngineApi] = None

    def is_installed(self, engine: Engine) -> bool:
        return self._engine is engine

    def install(self, engine: Engine) -> ShellEngineApi:
        if self._engine is engine and self.api is not None:
            return self.api

        api = ShellEngineApi(self._shell, engine, self)
        if self.use_global_engine:
            namespace = self._merge(engine, api)
        else:
            namespace = engine.global_namespace()
            _define(namespace, PRINT_FUNCTION, api.print, _METHOD_FLAGS)

        _define(namespace, ROOT_OBJECT, HostRoot(api), _METHOD_FLAGS)
        self._engine = engine
        self.api = api
        logger.info(
            "Engine initialized",
            policy="merge" if self.use_global_engine else "isolate",
            engine=type(engine).__name__,
        )
        return api

    def _merge(self, engine: Engine, api: ShellEngineApi) -> GlobalNamespace:
        previous = engine.global_namespace()
        namespace = GlobalNamespace()
        dict.update(namespace, {name: value for name, value in previous.items() if is_system_name(name)})

        for prop in engine.enumerate_properties(api):
            namespace.define(prop.name, prop.value, _VALUE_FLAGS if prop.read_only else _METHOD_FLAGS)

        # Host print always wins over a pre-existing one
        for prop in engine.enumerate_properties(previous):
            if prop.name == PRINT_FUNCTION:
                continue
            if PropertyFlags.READ_ONLY in namespace.flags(prop.name):
                logger.debug("Global shadowed by read-only host property", name=prop.name)
                continue
            namespace.define(prop.name, prop.value, _flags_of(prop))

        engine.set_global_namespace(namespace)
        return namespace

    def refresh(self, name: str) -> None:
        """Re-read host property *name* into the merged global namespace."""
        if self._engine is None or self.api is None or not self.use_global_engine:
            return
        _define(self._engine.global_namespace(), name, getattr(self.api, name), _VALUE_FLAGS)
