"""Unit tests for dotted-path completion."""

import types

import pytest

from srshell.engine.constants import RESERVED_LITERALS
from srshell.engine.executor import PythonEngine
from srshell.engine.namespace import GlobalNamespace
from srshell.protocol.messages import UNDEFINED, CompletionRequest
from srshell.session.completion import CompletionResolver, resolve_path, split_expression


class _Slotted:
    __slots__ = ("filled", "empty")


class _Getter:
    def __init__(self):
        self.reads = 0

    @property
    def expensive(self):
        self.reads += 1
        return 1


@pytest.fixture
def context():
    namespace = GlobalNamespace()
    namespace["a"] = types.SimpleNamespace(b=types.SimpleNamespace(foo=1, bar=2, baz=3))
    namespace["total"] = 10
    namespace["alpha_one"] = 1
    namespace["alpha_two"] = 2
    namespace["getter"] = _Getter()
    namespace["slotted"] = _Slotted()
    namespace["slotted"].filled = 1
    return namespace


@pytest.fixture
def resolver():
    return CompletionResolver(PythonEngine().enumerate_properties, RESERVED_LITERALS)


@pytest.mark.unit
class TestSplitExpression:
    """Test the backward scan over identifiers and dots."""

    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("", ([], "", 0)),
            ("foo", ([], "foo", 0)),
            ("a.b.ba", (["a", "b"], "ba", 4)),
            ("a.b.", (["a", "b"], "", 4)),
            ("this.", (["this"], "", 5)),
            ("f(a.b", (["a"], "b", 4)),
            ("x = obj.at", (["obj"], "at", 8)),
            ("a..b", (["a", ""], "b", 3)),
            (".x", ([""], "x", 1)),
            ("var_1.item2", (["var_1"], "item2", 6)),
        ],
    )
    def test_split(self, expression, expected):
        assert split_expression(expression) == expected

    def test_unicode_identifiers(self):
        assert split_expression("données.clé") == (["données"], "clé", 8)


@pytest.mark.unit
class TestResolvePath:
    """Test walking a path over enumerated properties."""

    def test_empty_path_is_context(self, context):
        assert resolve_path(context, [], PythonEngine().enumerate_properties) is context

    def test_this_denotes_context(self, context):
        assert resolve_path(context, ["this"], PythonEngine().enumerate_properties) is context

    def test_walks_segments(self, context):
        value = resolve_path(context, ["a", "b"], PythonEngine().enumerate_properties)
        assert value.foo == 1

    def test_failed_lookup_is_undefined(self, context):
        assert resolve_path(context, ["a", "nope"], PythonEngine().enumerate_properties) is UNDEFINED

    def test_empty_segment_resolves_to_nothing(self, context):
        assert resolve_path(context, [""], PythonEngine().enumerate_properties) is UNDEFINED


@pytest.mark.unit
class TestCompletionResolver:
    """Test candidate lists, offsets and common suffixes."""

    def test_all_members_after_dot(self, resolver, context):
        result = resolver.complete("a.b.", context)
        assert result.path == ["a", "b"]
        assert result.candidates == ["bar", "baz", "foo"]
        assert result.insertion_offset == 4
        assert result.common_suffix == ""

    def test_diverging_candidates_have_no_suffix(self, resolver, context):
        result = resolver.complete("a.b.ba", context)
        assert result.candidates == ["bar", "baz"]
        assert result.common_suffix == ""

    def test_single_candidate_suffix(self, resolver, context):
        result = resolver.complete("a.b.f", context)
        assert result.candidates == ["foo"]
        assert result.common_suffix == "oo"

    def test_common_prefix_beyond_typed_name(self, resolver, context):
        result = resolver.complete("al", context)
        assert result.candidates == ["alpha_one", "alpha_two"]
        assert result.common_suffix == "pha_"

    def test_top_level_includes_reserved_literals(self, resolver, context):
        result = resolver.complete("", context)
        for literal in RESERVED_LITERALS:
            assert literal in result.candidates
        assert "total" in result.candidates
        assert result.candidates == sorted(result.candidates)

    def test_reserved_literals_excluded_from_common_prefix(self, resolver, context):
        result = resolver.complete("t", context)
        assert result.candidates == ["this", "total", "true"]
        assert result.common_suffix == "otal"

    def test_no_reserved_literals_below_top_level(self, resolver, context):
        result = resolver.complete("a.", context)
        assert result.candidates == ["b"]

    def test_this_prefix(self, resolver, context):
        result = resolver.complete("this.tot", context)
        assert result.path == ["this"]
        assert result.candidates == ["total"]
        assert result.common_suffix == "al"

    def test_unresolved_path(self, resolver, context):
        result = resolver.complete("missing.x", context)
        assert result.candidates == []
        assert result.common_suffix == ""

    def test_leading_dot(self, resolver, context):
        assert resolver.complete(".a", context).candidates == []

    def test_case_sensitive(self, resolver, context):
        assert resolver.complete("TOT", context).candidates == []

    def test_no_match_has_no_suffix(self, resolver, context):
        result = resolver.complete("zzz", context)
        assert result.candidates == []
        assert result.common_suffix == ""

    def test_accepts_request(self, resolver, context):
        result = resolver.complete(CompletionRequest(expression="a.b.b"), context)
        assert result.candidates == ["bar", "baz"]

    def test_getters_are_not_run(self, resolver, context):
        result = resolver.complete("getter.", context)
        assert "expensive" not in result.candidates
        assert context["getter"].reads == 0

    def test_unset_slot_does_not_fail(self, resolver, context):
        assert resolver.complete("slotted.", context).candidates == ["filled"]

    def test_engine_literals(self, context):
        engine = PythonEngine()
        resolver = CompletionResolver(engine.enumerate_properties, engine.reserved_literals)
        assert resolver.complete("Tr", context).candidates == ["True"]
        engine.close()
