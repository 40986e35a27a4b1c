"""Unit tests for tapbook.engine.targets — the action target grammar."""

from __future__ import annotations

import pytest

from tapbook.engine.query import ElementQuery
from tapbook.engine.targets import (
    CoordinatesTarget,
    IdentifierTarget,
    LabelTarget,
    describe_target,
    parse_direction,
    parse_target,
    target_to_query,
)


# ---------------------------------------------------------------------------
# 1. parse_target
# ---------------------------------------------------------------------------

class TestParseTarget:

    def test_coordinates(self):
        assert parse_target("100,200") == CoordinatesTarget(100, 200)

    def test_coordinates_with_spaces_and_decimals(self):
        assert parse_target(" 10.5 , 20 ") == CoordinatesTarget(10.5, 20)

    def test_identifier(self):
        assert parse_target("#carousel") == IdentifierTarget("carousel")

    def test_double_quoted_label(self):
        assert parse_target('"Image Gallery"') == LabelTarget("Image Gallery")

    def test_single_quoted_label(self):
        assert parse_target("'Sign In'") == LabelTarget("Sign In")

    def test_bare_text_falls_back_to_identifier(self):
        assert parse_target("login_button") == IdentifierTarget("login_button")

    @pytest.mark.parametrize("text", [None, "", "   ", "#", '""', "''"])
    def test_empty_forms_return_none(self, text):
        assert parse_target(text) is None

    def test_mismatched_quotes_are_not_a_label(self):
        assert parse_target("\"Sign In'") == IdentifierTarget("\"Sign In'")

    def test_negative_numbers_are_not_coordinates(self):
        assert parse_target("-1,5") == IdentifierTarget("-1,5")


# ---------------------------------------------------------------------------
# 2. Helpers
# ---------------------------------------------------------------------------

class TestDirections:

    @pytest.mark.parametrize("text,expected", [("up", "up"), ("DOWN", "down"), (" Left ", "left"), ("r", "right")])
    def test_accepts_names_and_shorthands(self, text, expected):
        assert parse_direction(text) == expected

    @pytest.mark.parametrize("text", [None, "", "sideways", "north"])
    def test_rejects_unknown(self, text):
        assert parse_direction(text) is None


class TestTargetHelpers:

    def test_target_to_query(self):
        assert target_to_query(IdentifierTarget("a")) == ElementQuery(identifier="a")
        assert target_to_query(LabelTarget("A")) == ElementQuery(label="A")
        assert target_to_query(CoordinatesTarget(1, 2)) is None

    def test_describe_target_renders_grammar(self):
        assert describe_target(IdentifierTarget("a")) == "#a"
        assert describe_target(LabelTarget("Log In")) == '"Log In"'
        assert describe_target(CoordinatesTarget(100, 200.5)) == "100,200.5"

    def test_describe_then_parse_is_stable(self):
        for target in (IdentifierTarget("x"), LabelTarget("Hello"), CoordinatesTarget(3, 4)):
            assert parse_target(describe_target(target)) == target
