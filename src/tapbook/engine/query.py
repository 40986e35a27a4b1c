"""Declarative element queries over a UI snapshot tree.

``find_elements`` walks the whole tree depth-first (pre-order) and returns
raw matches in traversal order.  Callers that act on "the first match" must
go through ``sort_by_position`` / ``find_first`` so the choice does not
depend on how the inspector happened to order siblings.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Iterable

from tapbook.engine.elements import UIElement


@dataclasses.dataclass(frozen=True)
class ElementQuery:
    """Predicate over ``UIElement`` nodes.  Absent fields are wildcards."""

    identifier: str | None = None
    label: str | None = None
    type: str | frozenset[str] | None = None
    value: str | None = None
    contains_text: str | None = None
    visible: bool | None = None
    enabled: bool | None = None
    traits: frozenset[str] | None = None

    def matches(self, element: UIElement) -> bool:
        if self.identifier is not None and element.identifier != self.identifier:
            return False
        if self.label is not None and element.label != self.label:
            return False
        if self.type is not None:
            wanted = {self.type} if isinstance(self.type, str) else self.type
            if element.type.lower() not in {t.lower() for t in wanted}:
                return False
        if self.value is not None and element.value != self.value:
            return False
        if self.contains_text is not None:
            fields = (element.identifier, element.label, element.value)
            if not any(f is not None and self.contains_text in f for f in fields):
                return False
        if self.visible is not None and element.visible != self.visible:
            return False
        if self.enabled is not None and element.enabled != self.enabled:
            return False
        if self.traits and not self.traits <= element.traits:
            return False
        return True

    def describe(self) -> str:
        parts = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if val is None:
                continue
            if isinstance(val, frozenset):
                val = ",".join(sorted(val))
            parts.append(f"{f.name}={val!r}")
        return " ".join(parts) or "<any>"


@dataclasses.dataclass
class QueryResult:
    """Outcome of a query: matches in traversal order plus the visit count."""

    query: ElementQuery | str
    elements: list[UIElement]
    total_searched: int

    @property
    def first(self) -> UIElement | None:
        ordered = sort_by_position(self.elements)
        return ordered[0] if ordered else None


def find_elements(tree: UIElement, query: ElementQuery) -> QueryResult:
    """Return every node of *tree* matching *query*, in pre-order."""
    matches: list[UIElement] = []
    searched = 0
    for node in tree.iter_tree():
        searched += 1
        if query.matches(node):
            matches.append(node)
    return QueryResult(query=query, elements=matches, total_searched=searched)


def sort_by_position(elements: Iterable[UIElement]) -> list[UIElement]:
    """Order elements top-to-bottom, then left-to-right (stable)."""
    return sorted(elements, key=lambda el: (el.frame.y, el.frame.x))


def find_first(tree: UIElement, query: ElementQuery) -> UIElement | None:
    """The match a caller should act on: first in position order."""
    return find_elements(tree, query).first


# ---------------------------------------------------------------------------
# Query string syntax
# ---------------------------------------------------------------------------

_TYPE_AND_ID_RE = re.compile(r"^([A-Z][a-zA-Z]*)#(.+)$")
_TYPE_RE = re.compile(r"^[A-Z][a-zA-Z]*$")


def parse_element_query(text: str) -> list[ElementQuery]:
    """Parse the element query string syntax into one query per comma part.

    Supported forms::

        #login_button        identifier
        "Log In" / 'Log In'  label
        Button               element type (capitalized token)
        Button#login         type and identifier
        *submit*             identifier/label/value containing "submit"
        #a, #b               union of both queries

    Any other text is treated as a contains-text search.
    """
    queries: list[ElementQuery] = []
    for part in text.split(","):
        part = part.strip()
        if part:
            queries.append(_parse_single_query(part))
    return queries


def _parse_single_query(text: str) -> ElementQuery:
    m = _TYPE_AND_ID_RE.match(text)
    if m:
        return ElementQuery(type=m.group(1), identifier=m.group(2))

    if text.startswith("#") and len(text) > 1:
        return ElementQuery(identifier=text[1:])

    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return ElementQuery(label=text[1:-1])

    if len(text) >= 3 and text.startswith("*") and text.endswith("*"):
        return ElementQuery(contains_text=text[1:-1])

    if _TYPE_RE.match(text):
        return ElementQuery(type=text)

    return ElementQuery(contains_text=text)


def find_by_query_string(tree: UIElement, text: str) -> QueryResult:
    """Evaluate a (possibly comma-separated) query string against *tree*.

    Composite queries return the union of matches, de-duplicated and kept
    in traversal order.
    """
    queries = parse_element_query(text)
    seen: set[int] = set()
    hits: set[int] = set()
    searched = 0
    for query in queries:
        for el in find_elements(tree, query).elements:
            hits.add(id(el))

    ordered: list[UIElement] = []
    for node in tree.iter_tree():
        searched += 1
        if id(node) in hits and id(node) not in seen:
            seen.add(id(node))
            ordered.append(node)
    return QueryResult(query=text, elements=ordered, total_searched=searched)
