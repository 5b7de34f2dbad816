import pytest

from branchly.core.errors import ExpressionError, UnsupportedLanguageError
from branchly.expressions import CelExpressionEngine, LiquidExpressionEngine, create_engine
from branchly.expressions.template import extract_expressions, format_value, has_placeholders, substitute


class TestTemplateHelpers:
    """Placeholder scanning and value formatting."""

    def test_has_placeholders(self):
        assert has_placeholders("Hi ${name}")
        assert not has_placeholders("Hi there")
        assert not has_placeholders("")

    def test_extract_skips_escaped(self):
        assert extract_expressions("A ${a} \\${b} ${ c + 1 }") == ["a", "c + 1"]

    def test_extract_allows_nested_braces(self):
        assert extract_expressions("${ {'k': 1}['k'] }") == ["{'k': 1}['k']"]

    def test_substitute_keeps_escapes_literal(self):
        assert substitute("\\${x} and ${y}", lambda expr: expr.upper()) == "${x} and Y"

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, ""),
            (True, "true"),
            (False, "false"),
            (7, "7"),
            (3.0, "3"),
            (3.14159, "3.14"),
            ([1, "a", True], "1, a, true"),
            ({"a": 1}, '{"a":1}'),
            ("text", "text"),
        ],
    )
    def test_format_value(self, value, expected):
        assert format_value(value) == expected


class TestCelEngine:
    """CEL via cel-python."""

    @pytest.fixture
    def engine(self):
        return CelExpressionEngine()

    def test_arithmetic_and_comparison(self, engine):
        assert engine.evaluate("score + 5", {"score": 10}) == 15
        assert engine.evaluate_condition("score >= 10", {"score": 10}) is True
        assert engine.evaluate_condition("score >= 10", {"score": 9}) is False

    def test_nested_member_access(self, engine):
        assert engine.evaluate("player.name", {"player": {"name": "Ada"}}) == "Ada"

    def test_results_are_plain_python(self, engine):
        result = engine.evaluate("[1, 2]", {})
        assert result == [1, 2]
        assert type(result[0]) is int
        assert engine.evaluate("true", {}) is True

    def test_unknown_variable_is_none(self, engine):
        assert engine.evaluate("missing", {}) is None

    def test_non_boolean_condition_raises(self, engine):
        with pytest.raises(ExpressionError):
            engine.evaluate_condition("score", {"score": 1})

    def test_unknown_variable_condition_raises(self, engine):
        with pytest.raises(ExpressionError):
            engine.evaluate_condition("missing", {})

    def test_syntax_error_raises(self, engine):
        with pytest.raises(ExpressionError):
            engine.evaluate("1 +", {})

    def test_compile(self, engine):
        assert engine.compile("a > 1").success
        result = engine.compile("a >")
        assert not result.success
        assert result.error
        assert not engine.compile("  ").success

    def test_interpolate(self, engine):
        assert engine.interpolate("Gold: ${gold}", {"gold": 3}) == "Gold: 3"

    def test_is_deterministic(self, engine):
        state = {"x": 4}
        first = engine.evaluate("x * 2 + 1", state)
        engine.clear_cache()
        assert engine.evaluate("x * 2 + 1", state) == first == 9


class TestLiquidEngine:
    """Liquid via python-liquid."""

    @pytest.fixture
    def engine(self):
        return LiquidExpressionEngine()

    def test_filter_expression(self, engine):
        assert engine.evaluate("score | plus: 1", {"score": 1}) == 2
        assert engine.evaluate("name | upcase", {"name": "ada"}) == "ADA"

    def test_returns_objects(self, engine):
        assert engine.evaluate("items", {"items": [1, 2]}) == [1, 2]

    def test_unknown_variable_is_none(self, engine):
        assert engine.evaluate("missing", {}) is None
        assert engine.evaluate_expression("missing", {"other": 1}) is None

    def test_condition(self, engine):
        assert engine.evaluate_condition("score > 0", {"score": 1}) is True
        assert engine.evaluate_condition("score > 0", {"score": 0}) is False

    def test_native_template(self, engine):
        assert engine.interpolate("Hi {{ name }}", {"name": "Ada"}) == "Hi Ada"

    def test_syntax_error(self, engine):
        assert not engine.compile("score |").success

    def test_compile_condition(self, engine):
        assert engine.compile_condition("score > 0 and name == 'a'").success
        assert not engine.compile_condition("").success


class TestCreateEngine:
    def test_known_languages(self):
        assert isinstance(create_engine("cel"), CelExpressionEngine)
        assert isinstance(create_engine("liquid"), LiquidExpressionEngine)

    def test_unknown_language(self):
        with pytest.raises(UnsupportedLanguageError):
            create_engine("lua")
