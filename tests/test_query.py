"""Unit tests for tapbook.engine.query — element queries and the query string syntax."""

from __future__ import annotations

from conftest import el
from tapbook.engine.elements import UIElement
from tapbook.engine.query import (
    ElementQuery,
    find_by_query_string,
    find_elements,
    find_first,
    parse_element_query,
    sort_by_position,
)


# ---------------------------------------------------------------------------
# 1. find_elements
# ---------------------------------------------------------------------------

class TestFindElements:

    def test_identifier_matches_single_button(self, login_tree: UIElement):
        result = find_elements(login_tree, ElementQuery(identifier="login_button"))
        assert len(result.elements) == 1
        assert result.elements[0].type == "Button"

    def test_empty_query_matches_every_node(self, login_tree: UIElement):
        result = find_elements(login_tree, ElementQuery())
        assert len(result.elements) == login_tree.count()
        assert result.total_searched == login_tree.count()

    def test_total_searched_counts_visited_nodes_even_without_matches(self, login_tree: UIElement):
        result = find_elements(login_tree, ElementQuery(identifier="nope"))
        assert result.elements == []
        assert result.total_searched == 11

    def test_hidden_and_disabled_nodes_are_included_unless_filtered(self, login_tree: UIElement):
        buttons = find_elements(login_tree, ElementQuery(type="Button")).elements
        assert {b.identifier for b in buttons} >= {"signup_button", "hidden_button"}

        visible_enabled = find_elements(login_tree, ElementQuery(type="Button", visible=True, enabled=True))
        assert {b.identifier for b in visible_enabled.elements} == {"login_button", "forgot_password"}

    def test_type_is_case_insensitive_and_accepts_sets(self, login_tree: UIElement):
        fields = find_elements(login_tree, ElementQuery(type=frozenset({"textfield", "SECURETEXTFIELD"})))
        assert [f.identifier for f in fields.elements] == ["username_field", "password_field"]

    def test_contains_text_is_case_sensitive(self, login_tree: UIElement):
        assert find_elements(login_tree, ElementQuery(contains_text="Password")).elements
        assert not find_elements(login_tree, ElementQuery(contains_text="PASSWORD")).elements

    def test_contains_text_checks_identifier_label_and_value(self, login_tree: UIElement):
        matches = find_elements(login_tree, ElementQuery(contains_text="secret")).elements
        assert [m.identifier for m in matches] == ["password_field"]

    def test_traits_require_subset(self):
        tree = el("Window", children=[
            el("Button", identifier="a", traits=frozenset({"button", "selected"})),
            el("Button", identifier="b", traits=frozenset({"button"})),
        ])
        result = find_elements(tree, ElementQuery(traits=frozenset({"selected"})))
        assert [e.identifier for e in result.elements] == ["a"]

    def test_repeated_calls_return_same_order(self, login_tree: UIElement):
        query = ElementQuery(type="Button")
        first = find_elements(login_tree, query).elements
        second = find_elements(login_tree, query).elements
        assert first == second


# ---------------------------------------------------------------------------
# 2. Position ordering
# ---------------------------------------------------------------------------

class TestPositionOrdering:

    def test_sort_top_to_bottom_then_left_to_right(self):
        a = el("Button", (200, 10, 10, 10), identifier="a")
        b = el("Button", (10, 10, 10, 10), identifier="b")
        c = el("Button", (0, 5, 10, 10), identifier="c")
        assert [e.identifier for e in sort_by_position([a, b, c])] == ["c", "b", "a"]

    def test_find_first_uses_position_not_traversal_order(self):
        tree = el("Window", children=[
            el("Button", (0, 500, 10, 10), identifier="later", label="Go"),
            el("Button", (0, 100, 10, 10), identifier="earlier", label="Go"),
        ])
        assert find_first(tree, ElementQuery(label="Go")).identifier == "earlier"

    def test_find_first_returns_none_without_match(self, login_tree: UIElement):
        assert find_first(login_tree, ElementQuery(label="Nope")) is None


# ---------------------------------------------------------------------------
# 3. Query string syntax
# ---------------------------------------------------------------------------

class TestParseElementQuery:

    def test_identifier(self):
        assert parse_element_query("#login_button") == [ElementQuery(identifier="login_button")]

    def test_quoted_label(self):
        assert parse_element_query('"Log In"') == [ElementQuery(label="Log In")]
        assert parse_element_query("'Log In'") == [ElementQuery(label="Log In")]

    def test_type_name(self):
        assert parse_element_query("Button") == [ElementQuery(type="Button")]

    def test_type_and_identifier(self):
        assert parse_element_query("Button#login") == [ElementQuery(type="Button", identifier="login")]

    def test_wildcard_substring(self):
        assert parse_element_query("*submit*") == [ElementQuery(contains_text="submit")]

    def test_plain_text_is_contains_search(self):
        assert parse_element_query("password") == [ElementQuery(contains_text="password")]

    def test_composite_splits_on_commas(self):
        assert parse_element_query("#a, #b") == [ElementQuery(identifier="a"), ElementQuery(identifier="b")]


class TestFindByQueryString:

    def test_single_identifier(self, login_tree: UIElement):
        result = find_by_query_string(login_tree, "#login_button")
        assert [e.identifier for e in result.elements] == ["login_button"]

    def test_union_is_deduplicated_in_traversal_order(self, login_tree: UIElement):
        result = find_by_query_string(login_tree, "#forgot_password, Button#login_button, #login_button")
        assert [e.identifier for e in result.elements] == ["login_button", "forgot_password"]
        assert result.total_searched == login_tree.count()

    def test_first_uses_position(self, login_tree: UIElement):
        result = find_by_query_string(login_tree, "Button")
        assert result.first.identifier == "login_button"
