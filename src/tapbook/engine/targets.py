"""Action target grammar shared by every gesture entry point.

``parse_target`` backs the ``target``/``to``/``in``/``from`` inputs of tap,
scroll and swipe alike, so the grammar must stay identical everywhere::

    #login_button     -> IdentifierTarget("login_button")
    "Sign In"         -> LabelTarget("Sign In")      (single quotes too)
    100,200           -> CoordinatesTarget(100, 200)
    login_button      -> IdentifierTarget("login_button")   (lenient fallback)
"""

from __future__ import annotations

import dataclasses
import re
from typing import Union

from tapbook.engine.query import ElementQuery


@dataclasses.dataclass(frozen=True)
class IdentifierTarget:
    value: str


@dataclasses.dataclass(frozen=True)
class LabelTarget:
    value: str


@dataclasses.dataclass(frozen=True)
class CoordinatesTarget:
    x: float
    y: float


ActionTarget = Union[IdentifierTarget, LabelTarget, CoordinatesTarget]

_COORDS_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*,\s*(\d+(?:\.\d+)?)$")

DIRECTIONS = ("up", "down", "left", "right")
_DIRECTION_ALIASES = {"u": "up", "d": "down", "l": "left", "r": "right"}


def parse_target(text: str | None) -> ActionTarget | None:
    """Classify a target string.  Returns None for empty input."""
    if text is None:
        return None
    target = text.strip()
    if not target:
        return None

    if target.startswith("#"):
        identifier = target[1:]
        return IdentifierTarget(identifier) if identifier else None

    if target[0] in ("'", '"') and target.endswith(target[0]):
        label = target[1:-1]
        return LabelTarget(label) if label else None

    m = _COORDS_RE.match(target)
    if m:
        return CoordinatesTarget(float(m.group(1)), float(m.group(2)))

    return IdentifierTarget(target)


def parse_direction(text: str | None) -> str | None:
    """Normalize a direction name (``up``, ``D``, ``Left``...) or return None."""
    if not text:
        return None
    word = text.strip().lower()
    if word in DIRECTIONS:
        return word
    return _DIRECTION_ALIASES.get(word)


def target_to_query(target: ActionTarget) -> ElementQuery | None:
    """Element query for a target; None for coordinates, which need no lookup."""
    if isinstance(target, IdentifierTarget):
        return ElementQuery(identifier=target.value)
    if isinstance(target, LabelTarget):
        return ElementQuery(label=target.value)
    return None


def describe_target(target: ActionTarget) -> str:
    """Render a target back into the target grammar."""
    if isinstance(target, IdentifierTarget):
        return f"#{target.value}"
    if isinstance(target, LabelTarget):
        return f'"{target.value}"'
    return f"{target.x:g},{target.y:g}"
