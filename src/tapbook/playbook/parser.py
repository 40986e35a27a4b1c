"""Playbook parsing: YAML documents and one-line shorthand commands.

Parsing is the only place structural problems are reported.  Everything the
interpreter receives is an immutable ``Playbook`` whose steps form an
acyclic tree, so execution never has to re-validate shape.
"""

from __future__ import annotations

import dataclasses
import logging
import shlex
from pathlib import Path
from typing import Any, Mapping

import yaml

from tapbook.errors import ParseError
from tapbook.playbook.registry import INPUT_TYPES, InputSpec

logger = logging.getLogger("tapbook.playbook.parser")

_STEP_KEYS = frozenset({"name", "action", "inputs", "store_as", "condition", "continue_on_error", "on_failure"})


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class Step:
    """One action invocation plus its control-flow metadata."""

    action: str
    name: str | None = None
    inputs: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    store_as: str | None = None
    condition: str | None = None
    continue_on_error: bool = False
    on_failure: tuple[Step, ...] = ()

    @property
    def display_name(self) -> str:
        return self.name or self.action


@dataclasses.dataclass(frozen=True)
class Playbook:
    """A named, ordered sequence of steps with declared inputs and variables."""

    name: str
    steps: tuple[Step, ...]
    description: str | None = None
    inputs: Mapping[str, InputSpec] = dataclasses.field(default_factory=dict)
    variables: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    source_path: str | None = None

    def iter_steps(self):
        """Yield ``(path, step)`` for every step, ``on_failure`` sub-steps included."""
        stack = [(str(i), step) for i, step in reversed(list(enumerate(self.steps, start=1)))]
        while stack:
            path, step = stack.pop()
            yield path, step
            for j, sub in reversed(list(enumerate(step.on_failure, start=1))):
                stack.append((f"{path}.on_failure.{j}", sub))


@dataclasses.dataclass(frozen=True)
class ShorthandCommand:
    """``ios.tap --target "#login"`` split into action and inputs."""

    action: str
    inputs: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Playbook documents
# ---------------------------------------------------------------------------

def load_playbook(path: str | Path) -> Playbook:
    """Read and parse the playbook at *path*."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ParseError(f"Cannot read playbook: {exc.strerror or exc}", file_path=path) from exc
    return parse_playbook(text, file_path=path)


def parse_playbook(text: str, file_path: str | Path | None = None) -> Playbook:
    """Parse a playbook YAML document.

    Raises:
        ParseError: The document is not valid YAML or does not have the
            playbook shape.  The message names the offending step
            (``Step 2`` / ``Step 2 > on_failure step 1``) where there is one.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ParseError(f"Invalid YAML: {exc}", file_path=file_path) from exc

    if not isinstance(data, dict):
        raise ParseError("Playbook must be a YAML mapping", file_path=file_path)

    name = data.get("name")
    if name is None or (isinstance(name, str) and not name.strip()):
        raise ParseError("Playbook is missing required field 'name'", file_path=file_path)
    if not isinstance(name, str):
        raise ParseError("Playbook field 'name' must be a string", file_path=file_path)

    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise ParseError("Playbook field 'description' must be a string", file_path=file_path)

    if "steps" not in data or data["steps"] is None:
        raise ParseError("Playbook is missing required field 'steps'", file_path=file_path)
    raw_steps = data["steps"]
    if not isinstance(raw_steps, list):
        raise ParseError("Playbook field 'steps' must be a list", file_path=file_path)
    if not raw_steps:
        raise ParseError("Playbook field 'steps' must contain at least one step", file_path=file_path)

    inputs = _parse_input_defs(data.get("inputs"), file_path)

    variables = data.get("variables")
    if variables is None:
        variables = {}
    elif not isinstance(variables, dict):
        raise ParseError("Playbook field 'variables' must be a mapping", file_path=file_path)

    steps = tuple(
        _parse_step(raw, f"Step {i}", i, file_path, ancestry=())
        for i, raw in enumerate(raw_steps, start=1)
    )

    playbook = Playbook(
        name=name,
        steps=steps,
        description=description,
        inputs=inputs,
        variables=dict(variables),
        source_path=str(file_path) if file_path is not None else None,
    )
    logger.debug("Parsed playbook %r: %d steps", playbook.name, len(steps))
    return playbook


def _parse_input_defs(raw: Any, file_path: str | Path | None) -> dict[str, InputSpec]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ParseError("Playbook field 'inputs' must be a mapping", file_path=file_path)

    defs: dict[str, InputSpec] = {}
    for key, spec in raw.items():
        if spec is None:
            spec = {}
        if not isinstance(spec, dict):
            raise ParseError(f"Input '{key}' must be a mapping", file_path=file_path)
        type_name = spec.get("type", "string")
        if type_name not in INPUT_TYPES:
            raise ParseError(
                f"Input '{key}' has unknown type {type_name!r} (expected one of: {', '.join(INPUT_TYPES)})",
                file_path=file_path,
            )
        required = spec.get("required", False)
        if not isinstance(required, bool):
            raise ParseError(f"Input '{key}' field 'required' must be a boolean", file_path=file_path)
        description = spec.get("description")
        if description is not None and not isinstance(description, str):
            raise ParseError(f"Input '{key}' field 'description' must be a string", file_path=file_path)
        defs[str(key)] = InputSpec(
            type=type_name,
            required=required,
            default=spec.get("default"),
            description=description or "",
        )
    return defs


def _parse_step(
    raw: Any,
    label: str,
    index: int,
    file_path: str | Path | None,
    ancestry: tuple[int, ...],
) -> Step:
    def fail(message: str) -> ParseError:
        return ParseError(f"{label}: {message}", file_path=file_path, step_index=index)

    if not isinstance(raw, dict):
        raise fail("must be a mapping")
    if id(raw) in ancestry:
        raise fail("on_failure refers back to its own step (recursive YAML alias)")

    action = raw.get("action")
    if action is None:
        raise fail("missing required field 'action'")
    if not isinstance(action, str) or not action.strip():
        raise fail("'action' must be a non-empty string")

    for key in ("name", "store_as", "condition"):
        if raw.get(key) is not None and not isinstance(raw[key], str):
            raise fail(f"'{key}' must be a string")

    continue_on_error = raw.get("continue_on_error", False)
    if continue_on_error is None:
        continue_on_error = False
    if not isinstance(continue_on_error, bool):
        raise fail("'continue_on_error' must be a boolean")

    inputs = raw.get("inputs")
    if inputs is None:
        inputs = {}
    elif not isinstance(inputs, dict):
        raise fail("'inputs' must be a mapping")

    raw_on_failure = raw.get("on_failure")
    if raw_on_failure is None:
        raw_on_failure = []
    elif not isinstance(raw_on_failure, list):
        raise fail("'on_failure' must be a list")

    unknown = sorted(str(k) for k in raw if k not in _STEP_KEYS)
    if unknown:
        logger.debug("%s: ignoring unknown fields %s", label, ", ".join(unknown))

    on_failure = tuple(
        _parse_step(sub, f"{label} > on_failure step {j}", index, file_path, ancestry + (id(raw),))
        for j, sub in enumerate(raw_on_failure, start=1)
    )

    return Step(
        action=action.strip(),
        name=raw.get("name"),
        inputs=dict(inputs),
        store_as=raw.get("store_as"),
        condition=raw.get("condition"),
        continue_on_error=continue_on_error,
        on_failure=on_failure,
    )


# ---------------------------------------------------------------------------
# Shorthand
# ---------------------------------------------------------------------------

def parse_shorthand(text: str) -> ShorthandCommand:
    """Parse ``<action> [--flag] [--key value]...``.

    A flag with no value (or followed directly by another flag) becomes
    ``True``; values stay strings and are typed later by input coercion.
    Dashes in flag names become underscores.  ``--key=value`` is accepted
    too.

    Raises:
        ParseError: Empty input, unbalanced quotes, a stray positional
            token or an empty flag name.
    """
    try:
        tokens = shlex.split(text or "")
    except ValueError as exc:
        raise ParseError(f"Invalid shorthand {text!r}: {exc}") from exc
    if not tokens:
        raise ParseError("Shorthand command is empty")

    action = tokens[0]
    if action.startswith("--"):
        raise ParseError(f"Shorthand must start with an action name, got {action!r}")

    inputs: dict[str, Any] = {}
    i = 1
    while i < len(tokens):
        token = tokens[i]
        if not token.startswith("--"):
            raise ParseError(f"Unexpected argument {token!r} in shorthand (values must follow a --flag)")
        flag = token[2:]
        value: Any = True
        if "=" in flag:
            flag, value = flag.split("=", 1)
        elif i + 1 < len(tokens) and not tokens[i + 1].startswith("--"):
            value = tokens[i + 1]
            i += 1
        if not flag:
            raise ParseError(f"Empty flag name in shorthand {text!r}")
        inputs[flag.replace("-", "_")] = value
        i += 1

    return ShorthandCommand(action=action, inputs=inputs or None)
