"""Unit tests for host API installation."""

import pytest

from srshell.engine.executor import PythonEngine
from srshell.engine.namespace import PropertyFlags, ReadOnlyPropertyError
from srshell.session.binding import EngineBinding, HostRoot, ShellEngineApi

API_METHODS = {
    "print",
    "error",
    "exit",
    "quit",
    "help",
    "load",
    "importExtension",
    "read",
    "readFile",
    "runCommand",
    "getFromEnvironment",
}
API_PROPERTIES = {
    "arguments",
    "version",
    "srVersion",
    "pythonVersion",
    "availableExtensions",
    "importedExtensions",
}


@pytest.fixture
def prepared_engine():
    engine = PythonEngine()
    namespace = engine.global_namespace()
    namespace["x"] = 41
    namespace["print"] = "pre-existing print"
    namespace.define("locked", "kept", PropertyFlags.READ_ONLY)
    yield engine
    engine.close()


@pytest.mark.unit
class TestShellEngineApi:
    """Test the members scripts see on sr.engine."""

    def test_enumerated_members(self, shell, engine):
        api = ShellEngineApi(shell, engine, EngineBinding(shell))
        props = {p.name: p for p in engine.enumerate_properties(api)}

        assert set(props) == API_METHODS | API_PROPERTIES
        for name in API_PROPERTIES:
            assert props[name].read_only, name
        for name in API_METHODS:
            assert not props[name].read_only, name

    def test_properties_are_read_only(self, shell, engine):
        api = ShellEngineApi(shell, engine, EngineBinding(shell))
        with pytest.raises(AttributeError):
            api.version = "9"

    def test_version_aliases(self, shell, engine):
        api = ShellEngineApi(shell, engine, EngineBinding(shell))
        assert api.version == api.srVersion == shell.version

    def test_host_root(self, shell, engine):
        api = ShellEngineApi(shell, engine, EngineBinding(shell))
        root = HostRoot(api)
        props = engine.enumerate_properties(root)

        assert [p.name for p in props] == ["engine"]
        assert props[0].value is api
        assert props[0].read_only


@pytest.mark.unit
class TestMergePolicy:
    """Test installation with every API member as a global."""

    def test_prior_globals_survive(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=True).install(prepared_engine)
        namespace = prepared_engine.global_namespace()

        assert namespace["x"] == 41
        assert prepared_engine.evaluate("x + 1").result_value == 42

    def test_host_print_wins(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=True).install(prepared_engine)

        prepared_engine.evaluate("print('a', 1)")
        assert shell.out == "a 1\n"

    def test_api_members_are_globals(self, shell, prepared_engine):
        api = EngineBinding(shell, use_global_engine=True).install(prepared_engine)
        namespace = prepared_engine.global_namespace()

        for name in API_METHODS | API_PROPERTIES:
            assert name in namespace, name
        assert namespace["sr"].engine is api

    def test_flags(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=True).install(prepared_engine)
        namespace = prepared_engine.global_namespace()

        assert namespace.flags("arguments") == PropertyFlags.READ_ONLY | PropertyFlags.UNDELETABLE
        assert namespace.flags("load") == PropertyFlags.UNDELETABLE
        assert namespace.flags("sr") == PropertyFlags.UNDELETABLE
        assert namespace.flags("locked") == PropertyFlags.READ_ONLY

    def test_script_cannot_rebind_properties(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=True).install(prepared_engine)

        assert prepared_engine.evaluate("arguments = []").has_uncaught_exception
        assert prepared_engine.evaluate("del sr").has_uncaught_exception
        assert prepared_engine.evaluate("sr.engine = None").has_uncaught_exception
        assert "sr" in prepared_engine.global_namespace()

    def test_read_only_host_property_shadows_prior_global(self, shell):
        engine = PythonEngine()
        engine.global_namespace()["version"] = "mine"
        EngineBinding(shell, use_global_engine=True).install(engine)

        assert engine.global_namespace()["version"] == shell.version
        engine.close()

    def test_this_is_merged_namespace(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=True).install(prepared_engine)
        result = prepared_engine.evaluate("this").result_value
        assert result is prepared_engine.global_namespace()

    def test_install_is_idempotent(self, shell, prepared_engine):
        binding = EngineBinding(shell, use_global_engine=True)
        api = binding.install(prepared_engine)
        namespace = prepared_engine.global_namespace()

        assert binding.install(prepared_engine) is api
        assert prepared_engine.global_namespace() is namespace
        assert binding.is_installed(prepared_engine)

    def test_refresh(self, shell, prepared_engine):
        binding = EngineBinding(shell, use_global_engine=True)
        binding.install(prepared_engine)
        shell.state.arguments = ("new",)

        binding.refresh("arguments")
        assert prepared_engine.global_namespace()["arguments"] == ("new",)
        assert prepared_engine.global_namespace().flags("arguments") & PropertyFlags.READ_ONLY


@pytest.mark.unit
class TestIsolatePolicy:
    """Test installation that keeps the API under sr.engine only."""

    def test_namespace_is_kept(self, shell, prepared_engine):
        namespace = prepared_engine.global_namespace()
        EngineBinding(shell, use_global_engine=False).install(prepared_engine)

        assert prepared_engine.global_namespace() is namespace
        assert namespace["x"] == 41
        assert namespace["locked"] == "kept"
        assert "load" not in namespace
        assert "arguments" not in namespace

    def test_print_is_installed_and_undeletable(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=False).install(prepared_engine)
        namespace = prepared_engine.global_namespace()

        assert namespace.flags("print") == PropertyFlags.UNDELETABLE
        assert prepared_engine.evaluate("del print").has_uncaught_exception
        assert "print" in namespace

    def test_print_flags_last_argument(self, shell, prepared_engine):
        calls = []
        shell.print_out = lambda value, last=True: calls.append((value, last))
        EngineBinding(shell, use_global_engine=False).install(prepared_engine)

        prepared_engine.evaluate("print('a', 'b', 3)")
        assert calls == [("a", False), ("b", False), (3, True)]

    def test_root_object(self, shell, prepared_engine):
        api = EngineBinding(shell, use_global_engine=False).install(prepared_engine)
        assert prepared_engine.evaluate("sr.engine").result_value is api
        assert prepared_engine.global_namespace().flags("sr") == PropertyFlags.UNDELETABLE

    def test_refresh_does_nothing(self, shell, prepared_engine):
        binding = EngineBinding(shell, use_global_engine=False)
        binding.install(prepared_engine)
        binding.refresh("arguments")
        assert "arguments" not in prepared_engine.global_namespace()


@pytest.mark.unit
class TestGlobalDeclarations:
    """Test that ``global`` inside functions cannot strip host protections."""

    def test_isolate_print_survives_global_delete(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=False).install(prepared_engine)

        outcome = prepared_engine.evaluate("def f():\n    global print\n    del print\n\nf()")
        assert outcome.has_uncaught_exception
        assert isinstance(outcome.exception_value, ReadOnlyPropertyError)

        prepared_engine.evaluate("print('still here')")
        assert shell.out == "still here\n"

    def test_merge_read_only_survives_global_rebinding(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=True).install(prepared_engine)

        outcome = prepared_engine.evaluate("def f():\n    global arguments\n    arguments = 5\n\nf()")
        assert isinstance(outcome.exception_value, ReadOnlyPropertyError)
        assert prepared_engine.global_namespace()["arguments"] == ()

    def test_root_survives_global_delete(self, shell, prepared_engine):
        api = EngineBinding(shell, use_global_engine=True).install(prepared_engine)

        prepared_engine.evaluate("def f():\n    global sr\n    del sr\n\nf()")
        assert prepared_engine.evaluate("sr.engine").result_value is api

    def test_bulk_update_of_globals(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=True).install(prepared_engine)

        outcome = prepared_engine.evaluate("globals().update(version='mine')")
        assert isinstance(outcome.exception_value, ReadOnlyPropertyError)
        assert prepared_engine.global_namespace()["version"] == shell.version

    def test_script_exception_wins(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=True).install(prepared_engine)

        outcome = prepared_engine.evaluate(
            "def f():\n    global arguments\n    arguments = 5\n    raise KeyError('k')\n\nf()"
        )
        assert isinstance(outcome.exception_value, KeyError)
        assert prepared_engine.global_namespace()["arguments"] == ()

    def test_rebinding_isolate_print_is_allowed(self, shell, prepared_engine):
        EngineBinding(shell, use_global_engine=False).install(prepared_engine)

        outcome = prepared_engine.evaluate("def f():\n    global print\n    print = 'mine'\n\nf()")
        assert not outcome.has_uncaught_exception
        assert prepared_engine.global_namespace()["print"] == "mine"
