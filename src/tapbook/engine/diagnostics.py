"""Failure diagnostics: suggestions for unresolved targets and tree summaries."""

from __future__ import annotations

import difflib
import logging
from typing import Any

from tapbook.engine.elements import UIElement
from tapbook.engine.targets import ActionTarget, CoordinatesTarget, LabelTarget
from tapbook.models import MAX_SUGGESTIONS, MIN_SUGGESTION_SIMILARITY

logger = logging.getLogger("tapbook.engine.diagnostics")


def suggest_alternatives(
    tree: UIElement | None,
    target: ActionTarget,
    limit: int = MAX_SUGGESTIONS,
    min_similarity: float = MIN_SUGGESTION_SIMILARITY,
    element_type: str | None = None,
) -> list[str]:
    """Return up to *limit* target strings for elements resembling *target*.

    Each candidate with an identifier or label is scored against the target
    text: substring containment in either direction scores high, otherwise
    ``difflib`` similarity is used.  When *element_type* is given (the
    caller knows what kind of element it wanted, e.g. a text field for
    typing), elements of that type qualify even without a textual
    resemblance.  Results are rendered in the target grammar
    (``#identifier`` preferred, else ``"label"``) and ordered by score,
    then by position.
    """
    if tree is None or isinstance(target, CoordinatesTarget) or limit <= 0:
        return []

    wanted = target.value.lower()
    prefer_label = isinstance(target, LabelTarget)

    scored: list[tuple[float, float, float, str]] = []
    seen: set[str] = set()
    for el in tree.iter_tree():
        best = 0.0
        for text in (el.identifier, el.label, el.value):
            if not text:
                continue
            best = max(best, _similarity(wanted, text.lower()))
        if element_type and el.type.lower() == element_type.lower():
            best = max(best, min_similarity)
        if best < min_similarity:
            continue

        rendered = _render(el, prefer_label)
        if rendered is None or rendered in seen:
            continue
        seen.add(rendered)
        scored.append((-best, el.frame.y, el.frame.x, rendered))

    scored.sort()
    suggestions = [s[3] for s in scored[:limit]]
    logger.debug("Suggestions for %r: %s", target, suggestions)
    return suggestions


def _similarity(wanted: str, candidate: str) -> float:
    if not wanted or not candidate:
        return 0.0
    if wanted == candidate:
        return 1.0
    if wanted in candidate or candidate in wanted:
        shorter, longer = sorted((len(wanted), len(candidate)))
        return 0.6 + 0.35 * (shorter / longer)
    return difflib.SequenceMatcher(None, wanted, candidate).ratio()


def _render(el: UIElement, prefer_label: bool) -> str | None:
    if prefer_label and el.label:
        return f'"{el.label}"'
    if el.identifier:
        return f"#{el.identifier}"
    if el.label:
        return f'"{el.label}"'
    return None


INTERACTIVE_TYPES = frozenset({
    "button", "textfield", "securetextfield", "searchfield", "switch",
    "slider", "link", "cell", "segmentedcontrol", "stepper", "picker", "textview",
})


def summarize_tree(tree: UIElement) -> dict[str, Any]:
    """Element counts plus accessibility warnings for an inspected tree."""
    total = 0
    buttons = 0
    text_fields = 0
    interactable = 0
    warnings: list[str] = []
    for el in tree.iter_tree():
        total += 1
        kind = el.type.lower()
        if kind == "button":
            buttons += 1
        if kind in ("textfield", "securetextfield", "searchfield", "textview"):
            text_fields += 1
        if kind in INTERACTIVE_TYPES:
            if el.enabled and el.visible:
                interactable += 1
            if not el.identifier and not el.label:
                x, y = el.center
                warnings.append(f"{el.type} at {x:g},{y:g} has no identifier or label")
    return {
        "total_elements": total,
        "buttons": buttons,
        "text_fields": text_fields,
        "interactable": interactable,
        "warnings": warnings,
    }
