"""Unit tests for tapbook.engine.diagnostics — suggestions and tree summaries."""

from __future__ import annotations

from conftest import el
from tapbook.engine.diagnostics import suggest_alternatives, summarize_tree
from tapbook.engine.elements import UIElement
from tapbook.engine.targets import CoordinatesTarget, IdentifierTarget, LabelTarget


class TestSuggestAlternatives:

    def test_close_identifier_is_suggested_first(self, login_tree: UIElement):
        suggestions = suggest_alternatives(login_tree, IdentifierTarget("login_btn"))
        assert suggestions[0] == "#login_button"

    def test_label_targets_render_labels(self, login_tree: UIElement):
        suggestions = suggest_alternatives(login_tree, LabelTarget("Log in"))
        assert '"Log In"' in suggestions

    def test_substring_match_scores_high(self, login_tree: UIElement):
        suggestions = suggest_alternatives(login_tree, IdentifierTarget("password"))
        assert suggestions[:2] == ["#password_field", "#forgot_password"]

    def test_limit_is_respected(self, login_tree: UIElement):
        assert len(suggest_alternatives(login_tree, IdentifierTarget("button"), limit=2)) == 2

    def test_unrelated_target_yields_nothing(self, login_tree: UIElement):
        assert suggest_alternatives(login_tree, IdentifierTarget("zzzzqqq")) == []

    def test_element_type_hint_adds_candidates(self, login_tree: UIElement):
        suggestions = suggest_alternatives(login_tree, IdentifierTarget("zzzzqqq"), element_type="TextField")
        assert suggestions == ["#username_field"]

    def test_coordinates_and_missing_tree_yield_nothing(self, login_tree: UIElement):
        assert suggest_alternatives(login_tree, CoordinatesTarget(1, 2)) == []
        assert suggest_alternatives(None, IdentifierTarget("login")) == []

    def test_duplicates_are_collapsed(self):
        tree = el("Window", children=[
            el("Button", (0, 0, 10, 10), identifier="save"),
            el("Button", (0, 50, 10, 10), identifier="save"),
        ])
        assert suggest_alternatives(tree, IdentifierTarget("sav")) == ["#save"]


class TestSummarizeTree:

    def test_counts(self, login_tree: UIElement):
        summary = summarize_tree(login_tree)
        assert summary["total_elements"] == 11
        assert summary["buttons"] == 4
        assert summary["text_fields"] == 2
        # login, forgot password and two fields; disabled/hidden buttons excluded
        assert summary["interactable"] == 4

    def test_unlabeled_controls_produce_warnings(self):
        tree = el("Window", children=[el("Button", (0, 0, 20, 20))])
        assert summarize_tree(tree)["warnings"] == ["Button at 10,10 has no identifier or label"]
