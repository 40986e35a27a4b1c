"""Built-in ``ios.*`` actions.

Each handler parses its target inputs with the shared target grammar, asks
the driver factory for a ``GestureDriver`` bound to the requested app and
simulator, and turns the driver's ``ActionResult`` into an
``ActionOutcome``.  Malformed inputs raise ``ValidationError`` so the
interpreter records them as ``validation`` failures.

Example YAML usage::

    - action: ios.scroll
      inputs:
        to: "#footer_element"
        attempts: 5

    - action: ios.tap
      inputs:
        target: '"Sign In"'
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable

from tapbook.actions.core import register_core_actions
from tapbook.config import TapbookConfig
from tapbook.engine.gesture_driver import ActionResult, GestureDriver
from tapbook.engine.protocols import Clock
from tapbook.engine.simulator_device import SimulatorDevice, looks_like_udid
from tapbook.engine.targets import DIRECTIONS, ActionTarget, parse_direction, parse_target
from tapbook.errors import ValidationError
from tapbook.models import (
    DEFAULT_LONG_PRESS,
    DEFAULT_SCROLL_ATTEMPTS,
    DEFAULT_SCROLL_DISTANCE,
    SWIPE_DURATIONS,
)
from tapbook.playbook.registry import (
    ActionContext,
    ActionDefinition,
    ActionOutcome,
    ActionRegistry,
    InputSpec,
    OutputSpec,
    define_action,
)

logger = logging.getLogger("tapbook.actions.ios")

# (app bundle id, simulator name or UDID) -> driver
DriverFactory = Callable[[str | None, str | None], GestureDriver]

DEFAULT_TIMEOUT_MS = 10000

_APP = InputSpec(type="string", description="Bundle ID of the app (default: configured bundle_id)")
_SIMULATOR = InputSpec(type="string", description="Simulator name or UDID (default: configured simulator)")


def simulator_driver_factory(config: TapbookConfig, clock: Clock | None = None) -> DriverFactory:
    """Factory producing simulator-backed drivers, one per (app, simulator)."""
    drivers: dict[tuple[str | None, str | None], GestureDriver] = {}

    def factory(app: str | None, simulator: str | None) -> GestureDriver:
        key = (app or config.bundle_id or None, simulator or config.simulator)
        if key not in drivers:
            bundle_id, sim = key
            device = SimulatorDevice(
                bundle_id=bundle_id,
                device_id=sim if looks_like_udid(sim) else None,
                device_name=sim if sim and not looks_like_udid(sim) else config.device_name,
                os_version=config.os_version,
                idb_path=config.idb_path,
            )
            drivers[key] = GestureDriver(
                device,
                clock=clock,
                max_suggestions=config.max_suggestions,
                default_max_attempts=config.scroll_attempts,
                default_timeout=config.scroll_timeout,
                settle_delay=config.settle_delay,
                failure_screenshots_dir=config.evidence_dir,
            )
        return drivers[key]

    return factory


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

class IosActions:
    """Holds the driver factory shared by every ``ios.*`` handler."""

    def __init__(self, driver_factory: DriverFactory, evidence_dir: Path | None = None) -> None:
        self._driver_factory = driver_factory
        self._evidence_dir = evidence_dir

    def _driver(self, inputs: dict[str, Any]) -> GestureDriver:
        return self._driver_factory(inputs.get("app"), inputs.get("simulator"))

    async def tap(self, inputs: dict[str, Any], context: ActionContext) -> ActionOutcome:
        target_text = inputs["target"]
        target = _require_target(target_text, "target")
        driver = self._driver(inputs)
        long_press = inputs.get("long_press")
        if long_press is not None:
            result = await driver.long_press(target, duration=float(long_press) or DEFAULT_LONG_PRESS)
            verb = "Long-pressed"
        elif inputs.get("double"):
            result = await driver.double_tap(target)
            verb = "Double-tapped"
        else:
            result = await driver.tap(target)
            verb = "Tapped"
        return _outcome(result, f"{verb} {target_text}", {"target": target_text})

    async def type(self, inputs: dict[str, Any], context: ActionContext) -> ActionOutcome:
        into = inputs.get("into")
        target = _require_target(into, "into") if into else None
        result = await self._driver(inputs).type_text(
            inputs["text"], target=target, clear_first=bool(inputs.get("clear"))
        )
        where = f" into {into}" if into else ""
        return _outcome(result, f"Typed {len(inputs['text'])} characters{where}", {"into": into})

    async def scroll(self, inputs: dict[str, Any], context: ActionContext) -> ActionOutcome:
        direction_text = inputs.get("direction")
        to = inputs.get("to")
        if not direction_text and not to:
            raise ValidationError("Specify either 'direction' (up/down/left/right) or 'to' (target element)")
        direction = parse_direction(direction_text) if direction_text else "down"
        if direction is None:
            raise ValidationError(f"Direction must be one of: {', '.join(DIRECTIONS)}. Got: {direction_text}")

        distance = inputs.get("distance", DEFAULT_SCROLL_DISTANCE)
        driver = self._driver(inputs)
        if to:
            target = _require_target(to, "to")
            result = await driver.scroll_to(
                target,
                direction=direction,
                max_attempts=int(inputs.get("attempts", DEFAULT_SCROLL_ATTEMPTS)),
                timeout=inputs.get("timeout", DEFAULT_TIMEOUT_MS) / 1000,
                distance=distance,
            )
            description = f"scrolled to {to}"
        else:
            container = _require_target(inputs["in"], "in") if inputs.get("in") else None
            result = await driver.scroll(direction, distance=distance, container=container)
            description = f"scrolled {direction}" + (f" in {inputs['in']}" if inputs.get("in") else "")

        data = {
            "direction": direction,
            "scrolled_to": to,
            "scrolled_in": inputs.get("in"),
            "distance": distance,
            "attempts": result.details.scroll_attempts,
        }
        return _outcome(result, description[0].upper() + description[1:], data)

    async def swipe(self, inputs: dict[str, Any], context: ActionContext) -> ActionOutcome:
        source_text = inputs.get("from")
        source = _require_target(source_text, "from") if source_text else None
        velocity = inputs.get("velocity", "normal")
        result = await self._driver(inputs).swipe(inputs["direction"], velocity=velocity, source=source)
        data = {"direction": inputs["direction"], "velocity": velocity, "from": source_text}
        return _outcome(result, f"Swiped {inputs['direction']}", data)

    async def inspect(self, inputs: dict[str, Any], context: ActionContext) -> ActionOutcome:
        query = inputs.get("query")
        result = await self._driver(inputs).inspect(query)
        details = result.details
        summary = details.summary or {}
        message = f"Inspected {summary.get('total_elements', 0)} elements"
        if summary.get("interactable"):
            message += f" ({summary['interactable']} interactable)"
        if query:
            message += f", {len(details.matches or [])} matched {query!r}"
        if summary.get("warnings"):
            message += f" - {len(summary['warnings'])} accessibility warning(s)"
        data = {
            "query": query,
            "elements": details.matches or [],
            "total_searched": details.total_searched,
            "summary": summary,
        }
        return _outcome(result, message, data)

    async def wait_for(self, inputs: dict[str, Any], context: ActionContext) -> ActionOutcome:
        target_text = inputs["target"]
        target = _require_target(target_text, "target")
        result = await self._driver(inputs).wait_for(target, timeout=inputs.get("timeout", DEFAULT_TIMEOUT_MS) / 1000)
        return _outcome(result, f"{target_text} is visible", {"target": target_text})

    async def snapshot(self, inputs: dict[str, Any], context: ActionContext) -> ActionOutcome:
        output = inputs.get("output")
        if output:
            path = Path(output)
            if not path.is_absolute():
                path = context.cwd / path
        else:
            base = self._evidence_dir or context.cwd
            path = base / f"snapshot-{time.strftime('%Y%m%d-%H%M%S')}.png"
        path.parent.mkdir(parents=True, exist_ok=True)

        include_tree = bool(inputs.get("include_tree"))
        result = await self._driver(inputs).capture(str(path), include_tree=include_tree)
        data: dict[str, Any] = {"screenshot_path": result.details.screenshot_path}
        if include_tree:
            data["tree"] = result.details.tree
            data["summary"] = result.details.summary
        return _outcome(result, f"Saved screenshot to {path}", data)


def _require_target(text: Any, field: str) -> ActionTarget:
    target = parse_target(str(text)) if text is not None else None
    if target is None:
        raise ValidationError(f"Input '{field}' is not a valid target: {text!r} (use #identifier, \"label\" or x,y)")
    return target


def _outcome(result: ActionResult, message: str, data: dict[str, Any]) -> ActionOutcome:
    details = result.details
    data = dict(data)
    if details.element is not None:
        data["element"] = details.element
    if details.warnings:
        data["warnings"] = details.warnings
    data["duration_ms"] = result.duration_ms

    if result.success:
        return ActionOutcome(success=True, data=data, message=message, elapsed_ms=result.duration_ms)

    error = result.error or "Action failed"
    if details.suggestions:
        data["suggestions"] = details.suggestions
        error = f"{error}. Did you mean: {', '.join(details.suggestions)}?"
    if details.screenshot_path:
        data["screenshot_path"] = details.screenshot_path
    return ActionOutcome(
        success=False,
        data=data,
        message=f"Failed: {message[0].lower()}{message[1:]}",
        error=error,
        elapsed_ms=result.duration_ms,
        error_kind=result.error_kind,
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def ios_action_definitions(actions: IosActions) -> list[ActionDefinition]:
    return [
        define_action(ActionDefinition(
            name="ios.tap",
            description="Tap an element by #identifier, \"label\" or x,y coordinates",
            handler=actions.tap,
            inputs={
                "app": _APP,
                "simulator": _SIMULATOR,
                "target": InputSpec(type="string", required=True, description="Element to tap"),
                "double": InputSpec(type="boolean", default=False, description="Double-tap instead of a single tap"),
                "long_press": InputSpec(type="number", description="Hold for this many seconds"),
            },
            outputs={"element": OutputSpec(type="object", description="The tapped element")},
        )),
        define_action(ActionDefinition(
            name="ios.type",
            description="Type text, optionally into a specific field",
            handler=actions.type,
            inputs={
                "app": _APP,
                "simulator": _SIMULATOR,
                "text": InputSpec(type="string", required=True, description="Text to type"),
                "into": InputSpec(type="string", description="Field to focus first"),
                "clear": InputSpec(type="boolean", default=False, description="Clear the field before typing"),
            },
        )),
        define_action(ActionDefinition(
            name="ios.scroll",
            description="Scroll in a direction or until an element is visible",
            handler=actions.scroll,
            inputs={
                "app": _APP,
                "simulator": _SIMULATOR,
                "direction": InputSpec(type="string", description="Scroll direction: up, down, left, right"),
                "to": InputSpec(type="string", description="Element to scroll to"),
                "in": InputSpec(type="string", description="Container to scroll within"),
                "distance": InputSpec(type="number", default=DEFAULT_SCROLL_DISTANCE, description="Scroll distance (0.0-1.0)"),
                "attempts": InputSpec(type="integer", default=DEFAULT_SCROLL_ATTEMPTS, description="Max scroll attempts when targeting an element"),
                "timeout": InputSpec(type="number", default=DEFAULT_TIMEOUT_MS, description="Timeout for finding the element in ms"),
            },
            outputs={
                "attempts": OutputSpec(type="number", description="Scroll gestures performed"),
                "element": OutputSpec(type="object", description="Element scrolled to"),
            },
        )),
        define_action(ActionDefinition(
            name="ios.swipe",
            description="Swipe in a direction, optionally starting on an element",
            handler=actions.swipe,
            inputs={
                "app": _APP,
                "simulator": _SIMULATOR,
                "direction": InputSpec(type="string", required=True, description="Swipe direction: up, down, left, right"),
                "velocity": InputSpec(type="string", default="normal", description=f"One of: {', '.join(SWIPE_DURATIONS)}"),
                "from": InputSpec(type="string", description="Element to start the swipe on"),
            },
        )),
        define_action(ActionDefinition(
            name="ios.inspect",
            description="Inspect the UI tree, optionally filtered by an element query",
            handler=actions.inspect,
            inputs={
                "app": _APP,
                "simulator": _SIMULATOR,
                "query": InputSpec(type="string", description="Element query, e.g. #login, Button, *submit*"),
            },
            outputs={
                "elements": OutputSpec(type="array", description="Matching elements"),
                "summary": OutputSpec(type="object", description="Element counts and accessibility warnings"),
            },
        )),
        define_action(ActionDefinition(
            name="ios.wait_for",
            description="Wait until an element is present and visible",
            handler=actions.wait_for,
            inputs={
                "app": _APP,
                "simulator": _SIMULATOR,
                "target": InputSpec(type="string", required=True, description="Element to wait for"),
                "timeout": InputSpec(type="number", default=DEFAULT_TIMEOUT_MS, description="Timeout in ms"),
            },
        )),
        define_action(ActionDefinition(
            name="ios.snapshot",
            description="Capture a screenshot and optionally the element tree",
            handler=actions.snapshot,
            inputs={
                "app": _APP,
                "simulator": _SIMULATOR,
                "output": InputSpec(type="string", description="Screenshot path (default: evidence directory)"),
                "include_tree": InputSpec(type="boolean", default=False, description="Include the full element tree"),
            },
            outputs={"screenshot_path": OutputSpec(type="string", description="Where the screenshot was saved")},
        )),
    ]


def register_ios_actions(
    registry: ActionRegistry,
    driver_factory: DriverFactory,
    evidence_dir: Path | None = None,
) -> None:
    """Register every ``ios.*`` action on *registry*."""
    for definition in ios_action_definitions(IosActions(driver_factory, evidence_dir)):
        registry.register(definition)


def create_default_registry(
    driver_factory: DriverFactory,
    evidence_dir: Path | None = None,
) -> ActionRegistry:
    """A fresh registry holding the built-in catalog."""
    registry = ActionRegistry()
    register_ios_actions(registry, driver_factory, evidence_dir)
    register_core_actions(registry)
    return registry
