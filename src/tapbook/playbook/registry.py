"""Action registry -- the catalog mapping action names to definitions.

A registry is an ordinary object owned by whoever hosts a run.  There is no
module-level instance: tests and concurrent runs build their own with
``ActionRegistry()`` (or ``tapbook.actions.create_default_registry``).
"""

from __future__ import annotations

import dataclasses
import logging
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Mapping

from tapbook.errors import ActionRegistryError, ValidationError

logger = logging.getLogger("tapbook.playbook.registry")

INPUT_TYPES = ("string", "number", "integer", "boolean", "object", "array", "any")

_INT_RE = re.compile(r"^[-+]?\d+$")
_FLOAT_RE = re.compile(r"^[-+]?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?$")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class InputSpec:
    """Declared input of an action (or of a playbook)."""

    type: str = "string"
    required: bool = False
    default: Any = None
    description: str = ""


@dataclasses.dataclass(frozen=True)
class OutputSpec:
    type: str = "any"
    description: str = ""


@dataclasses.dataclass(frozen=True)
class ActionContext:
    """What a handler may know about the run invoking it.

    ``variables`` is a read-only view; handlers publish results through
    ``ActionOutcome.data`` and the step's ``store_as``.
    """

    cwd: Path
    session_id: str | None = None
    variables: Mapping[str, Any] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass
class ActionOutcome:
    """Result returned by every action handler."""

    success: bool
    data: Any = None
    message: str = ""
    error: str | None = None
    elapsed_ms: float = 0.0
    error_kind: str | None = None


Handler = Callable[[dict[str, Any], ActionContext], Awaitable[ActionOutcome]]


@dataclasses.dataclass(frozen=True)
class ActionDefinition:
    """A named action with its input/output contract and async handler."""

    name: str
    description: str
    handler: Handler
    inputs: Mapping[str, InputSpec] = dataclasses.field(default_factory=dict)
    outputs: Mapping[str, OutputSpec] = dataclasses.field(default_factory=dict)


def define_action(definition: ActionDefinition) -> ActionDefinition:
    """Identity helper so action modules read declaratively."""
    return definition


# ---------------------------------------------------------------------------
# ActionRegistry
# ---------------------------------------------------------------------------

class ActionRegistry:
    """Name -> ``ActionDefinition`` catalog.

    Usage::

        registry = ActionRegistry()
        registry.register(tap_action)
        if "ios.tap" in registry:
            definition = registry.get("ios.tap")
    """

    def __init__(self) -> None:
        self._actions: dict[str, ActionDefinition] = {}

    def register(self, definition: ActionDefinition) -> None:
        """Add *definition*.  A duplicate name is rejected and leaves the first in place."""
        if definition.name in self._actions:
            raise ActionRegistryError(f"Action '{definition.name}' is already registered")
        for name, spec in definition.inputs.items():
            if spec.type not in INPUT_TYPES:
                raise ActionRegistryError(
                    f"Action '{definition.name}' input '{name}' has unknown type '{spec.type}'"
                )
        self._actions[definition.name] = definition
        logger.debug("Registered action %s", definition.name)

    def get(self, name: str) -> ActionDefinition | None:
        return self._actions.get(name)

    def has(self, name: str) -> bool:
        return name in self._actions

    def names(self) -> list[str]:
        """Registered names, in registration order."""
        return list(self._actions)

    def get_all(self) -> list[ActionDefinition]:
        return list(self._actions.values())

    def clear(self) -> None:
        self._actions.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[ActionDefinition]:
        return iter(self.get_all())


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------

def coerce_inputs(definition: ActionDefinition, raw: Mapping[str, Any] | None) -> dict[str, Any]:
    """Apply defaults, enforce required inputs and coerce declared types.

    Inputs the definition does not declare pass through untouched.  A
    ``None`` value counts as absent.

    Raises:
        ValidationError: A required input is missing or a value cannot be
            converted to its declared type.
    """
    return coerce_values(definition.inputs, raw, owner=f"action '{definition.name}'")


def coerce_values(
    specs: Mapping[str, InputSpec],
    raw: Mapping[str, Any] | None,
    owner: str,
) -> dict[str, Any]:
    """Shared by action inputs and playbook inputs."""
    values = dict(raw or {})
    for name, spec in specs.items():
        value = values.get(name)
        if value is None:
            if spec.default is not None:
                values[name] = spec.default
                continue
            if spec.required:
                raise ValidationError(f"Missing required input '{name}' for {owner}")
            values.pop(name, None)
            continue
        values[name] = coerce_value(value, spec.type, name=name, owner=owner)
    return values


def coerce_value(value: Any, type_name: str, name: str = "value", owner: str = "input") -> Any:
    """Convert *value* to *type_name* or raise ``ValidationError``."""

    def mismatch() -> ValidationError:
        return ValidationError(f"Input '{name}' of {owner} must be {_article(type_name)}, got {value!r}")

    if type_name == "any":
        return value

    if type_name == "string":
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (str, int, float)):
            return str(value)
        raise mismatch()

    if type_name in ("number", "integer"):
        if isinstance(value, bool):
            raise mismatch()
        if isinstance(value, str):
            text = value.strip()
            if _INT_RE.match(text):
                value = int(text)
            elif _FLOAT_RE.match(text):
                value = float(text)
            else:
                raise mismatch()
        if not isinstance(value, (int, float)):
            raise mismatch()
        if type_name == "integer":
            if isinstance(value, float):
                if not value.is_integer():
                    raise mismatch()
                return int(value)
        return value

    if type_name == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise mismatch()

    if type_name == "object":
        if isinstance(value, Mapping):
            return dict(value)
        raise mismatch()

    if type_name == "array":
        if isinstance(value, (list, tuple)):
            return list(value)
        raise mismatch()

    raise ValidationError(f"Input '{name}' of {owner} has unknown type '{type_name}'")


def _article(type_name: str) -> str:
    return f"an {type_name}" if type_name[0] in "aeiou" else f"a {type_name}"
