"""Unit tests for tapbook.playbook.templates — placeholders and conditions."""

from __future__ import annotations

import pytest

from tapbook.errors import TemplateError
from tapbook.playbook.templates import evaluate, evaluate_condition, is_truthy, render, values_equal


@pytest.fixture
def scope() -> dict:
    return {
        "inputs": {"username": "alice", "count": 3, "remember": False},
        "variables": {
            "user": {"name": "Bob", "roles": ["admin", "qa"]},
            "login_tap": {"element": {"identifier": "login_button"}},
            "empty": "",
        },
    }


# ---------------------------------------------------------------------------
# 1. render
# ---------------------------------------------------------------------------

class TestRender:

    def test_whole_placeholder_keeps_native_type(self, scope):
        assert render("{{ inputs.count }}", scope) == 3
        assert render("{{variables.user}}", scope) == {"name": "Bob", "roles": ["admin", "qa"]}

    def test_embedded_placeholders_are_stringified(self, scope):
        assert render("Hi {{ inputs.username }} x{{ inputs.count }}", scope) == "Hi alice x3"
        assert render("remember={{ inputs.remember }}", scope) == "remember=false"

    def test_nested_paths_and_indexes(self, scope):
        assert render("{{ variables.user.roles[1] }}", scope) == "qa"
        assert render("{{ variables.user.roles.0 }}", scope) == "admin"
        assert render("{{ variables['login_tap'].element.identifier }}", scope) == "login_button"

    def test_missing_path_is_none_or_empty(self, scope):
        assert render("{{ variables.nope.deeper }}", scope) is None
        assert render("[{{ variables.nope }}]", scope) == "[]"

    def test_renders_inside_containers(self, scope):
        raw = {"text": "{{ inputs.username }}", "list": ["{{ inputs.count }}", 1], "n": 5}
        assert render(raw, scope) == {"text": "alice", "list": [3, 1], "n": 5}

    def test_text_without_placeholders_is_unchanged(self, scope):
        assert render("plain {text}", scope) == "plain {text}"

    def test_unknown_root_raises(self, scope):
        with pytest.raises(TemplateError, match="Unknown template root 'env'"):
            render("{{ env.HOME }}", scope)

    def test_unclosed_placeholder_raises(self, scope):
        with pytest.raises(TemplateError, match="Unclosed"):
            render("{{ inputs.username", scope)
        with pytest.raises(TemplateError, match="Unclosed"):
            render("{{ inputs.username }} and {{ more", scope)

    def test_empty_expression_raises(self, scope):
        with pytest.raises(TemplateError, match="Empty"):
            render("{{  }}", scope)

    def test_trailing_garbage_raises(self, scope):
        with pytest.raises(TemplateError):
            render("{{ inputs.username inputs.count }}", scope)


# ---------------------------------------------------------------------------
# 2. Expressions and conditions
# ---------------------------------------------------------------------------

class TestExpressions:

    def test_literals(self, scope):
        assert evaluate("true", scope) is True
        assert evaluate("null", scope) is None
        assert evaluate("'x'", scope) == "x"
        assert evaluate("2.5", scope) == 2.5

    def test_equality_and_negation(self, scope):
        assert evaluate("inputs.username == 'alice'", scope) is True
        assert evaluate("inputs.username != 'alice'", scope) is False
        assert evaluate("!inputs.remember", scope) is True

    def test_loose_equality_between_strings_and_numbers(self):
        assert values_equal("3", 3)
        assert values_equal(3.0, "3")
        assert values_equal("true", True)
        assert not values_equal(1, True)
        assert not values_equal("abc", 3)


class TestConditions:

    @pytest.mark.parametrize("condition", ["false", "'0'", "'no'", "variables.empty", "variables.missing"])
    def test_falsy(self, scope, condition):
        assert evaluate_condition(condition, scope) is False

    @pytest.mark.parametrize("condition", ["true", "inputs.count", "inputs.count == 3", "{{ inputs.username }}"])
    def test_truthy(self, scope, condition):
        assert evaluate_condition(condition, scope) is True

    def test_templated_string_false_is_falsy(self, scope):
        assert evaluate_condition("{{ inputs.remember }}", scope) is False

    @pytest.mark.parametrize("value,expected", [("OFF", False), (" none ", False), ("yes", True), ([], False), (0, False)])
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected
