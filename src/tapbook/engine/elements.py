"""UI element snapshot model.

A snapshot is an immutable tree of ``UIElement`` nodes describing one UI
state, as produced by an external accessibility inspector.  Nodes are frozen
dataclasses with tuple children, so a tree cannot be mutated or made cyclic
once built.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterator


@dataclasses.dataclass(frozen=True)
class Frame:
    """Element bounds in screen points."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Frame:
        if not data:
            return cls()
        return cls(
            x=float(data.get("x", 0) or 0),
            y=float(data.get("y", 0) or 0),
            width=float(data.get("width", 0) or 0),
            height=float(data.get("height", 0) or 0),
        )


@dataclasses.dataclass(frozen=True)
class UIElement:
    """One node of a UI snapshot tree."""

    type: str
    identifier: str | None = None
    label: str | None = None
    value: str | None = None
    placeholder: str | None = None
    frame: Frame = Frame()
    enabled: bool = True
    visible: bool = True
    traits: frozenset[str] = frozenset()
    children: tuple[UIElement, ...] = ()

    @property
    def center(self) -> tuple[float, float]:
        return self.frame.center

    def iter_tree(self) -> Iterator[UIElement]:
        """Yield this node and all descendants, depth-first pre-order."""
        stack: list[UIElement] = [self]
        while stack:
            node = stack.pop()
            yield node
            # Reverse so the first child is visited first
            stack.extend(reversed(node.children))

    def count(self) -> int:
        return sum(1 for _ in self.iter_tree())

    def summary(self) -> dict[str, Any]:
        """JSON-friendly description of this node, without children."""
        data: dict[str, Any] = {"type": self.type}
        for key in ("identifier", "label", "value", "placeholder"):
            val = getattr(self, key)
            if val is not None:
                data[key] = val
        data["frame"] = dataclasses.asdict(self.frame)
        data["enabled"] = self.enabled
        data["visible"] = self.visible
        if self.traits:
            data["traits"] = sorted(self.traits)
        return data

    def to_dict(self) -> dict[str, Any]:
        """Full JSON-friendly tree; the inverse of ``from_dict``."""
        data = self.summary()
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UIElement:
        """Build a tree from inspector JSON.

        Accepts both the short keys (``enabled``, ``visible``,
        ``placeholder``) and the XCUITest inspector spellings
        (``isEnabled``, ``isVisible``, ``placeholderValue``).
        """
        children = tuple(cls.from_dict(child) for child in data.get("children") or [])
        return cls(
            type=str(data.get("type") or "Other"),
            identifier=_optional_str(data.get("identifier")),
            label=_optional_str(data.get("label")),
            value=_optional_str(data.get("value")),
            placeholder=_optional_str(data.get("placeholder", data.get("placeholderValue"))),
            frame=Frame.from_dict(data.get("frame")),
            enabled=bool(data.get("enabled", data.get("isEnabled", True))),
            visible=bool(data.get("visible", data.get("isVisible", True))),
            traits=frozenset(str(t) for t in data.get("traits") or []),
            children=children,
        )


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
