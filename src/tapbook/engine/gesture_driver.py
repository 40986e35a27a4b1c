"""tapbook Gesture Driver -- executes one interactive action against a target.

Each invocation walks a small state machine::

    Resolving -> Locating -> Found -> Acting -> Verifying -> Done
                          \\-> NotFound -> Failed

Direct actions (tap, type, swipe from a named element) take one snapshot and
fail immediately when the target is missing, attaching suggestions drawn
from that snapshot.  ``scroll_to`` and ``wait_for`` run bounded loops that
consult both an attempt counter and an injectable clock, so they always
terminate.

The driver never raises on action failure -- errors are captured in the
returned ``ActionResult``.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import math
from pathlib import Path
from typing import Any, Awaitable, Callable

from tapbook.engine.diagnostics import suggest_alternatives, summarize_tree
from tapbook.engine.elements import Frame, UIElement
from tapbook.engine.protocols import Clock, DeviceDriver, DeviceResponse, SystemClock
from tapbook.engine.query import ElementQuery, find_by_query_string, find_elements, find_first, sort_by_position
from tapbook.engine.targets import (
    ActionTarget,
    CoordinatesTarget,
    describe_target,
    parse_direction,
    target_to_query,
)
from tapbook.errors import (
    ActionExecutionError,
    ElementNotFoundError,
    StepTimeoutError,
    TapbookError,
    ValidationError,
)
from tapbook.models import (
    DEFAULT_LONG_PRESS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SCREEN_SIZE,
    DEFAULT_SCROLL_ATTEMPTS,
    DEFAULT_SCROLL_DISTANCE,
    DEFAULT_SCROLL_TIMEOUT,
    DEFAULT_SETTLE_DELAY,
    DEFAULT_WAIT_TIMEOUT,
    MAX_SUGGESTIONS,
    SWIPE_DURATIONS,
)

logger = logging.getLogger("tapbook.engine.gesture_driver")


class DriverState(str, enum.Enum):
    RESOLVING = "resolving"
    LOCATING = "locating"
    FOUND = "found"
    NOT_FOUND = "not_found"
    ACTING = "acting"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class ActionDetails:
    """Diagnostics attached to an ``ActionResult``."""

    element: dict[str, Any] | None = None
    suggestions: list[str] = dataclasses.field(default_factory=list)
    screenshot_path: str | None = None
    warnings: list[str] = dataclasses.field(default_factory=list)
    scroll_attempts: int | None = None
    matches: list[dict[str, Any]] | None = None
    total_searched: int | None = None
    summary: dict[str, Any] | None = None
    tree: dict[str, Any] | None = None
    states: list[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class ActionResult:
    """Outcome of a single gesture-driver invocation."""

    success: bool
    action_type: str
    duration_ms: float
    error: str | None = None
    error_kind: str | None = None
    details: ActionDetails = dataclasses.field(default_factory=ActionDetails)

    @property
    def status(self) -> str:
        return "success" if self.success else "failed"

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["status"] = self.status
        return data


class _Invocation:
    """Tracks state transitions and timing for one driver call."""

    def __init__(self, action_type: str, clock: Clock) -> None:
        self.action_type = action_type
        self.details = ActionDetails()
        self.last_tree: UIElement | None = None
        self._clock = clock
        self._start = clock.monotonic()

    def enter(self, state: DriverState) -> None:
        self.details.states.append(state.value)
        logger.debug("%s -> %s", self.action_type, state.value)

    def result(self, error: Exception | None = None) -> ActionResult:
        duration_ms = round((self._clock.monotonic() - self._start) * 1000, 1)
        if error is None:
            return ActionResult(
                success=True,
                action_type=self.action_type,
                duration_ms=duration_ms,
                details=self.details,
            )
        return ActionResult(
            success=False,
            action_type=self.action_type,
            duration_ms=duration_ms,
            error=str(error),
            error_kind=getattr(error, "kind", "action_failed"),
            details=self.details,
        )


# The callable an action passes to ``_perform``: receives the snapshot, the
# located element (None for coordinates / untargeted gestures) and the point
# to act on, and returns the device response.
_Act = Callable[[UIElement, "UIElement | None", "tuple[float, float]"], Awaitable[DeviceResponse]]


# ---------------------------------------------------------------------------
# GestureDriver
# ---------------------------------------------------------------------------

class GestureDriver:
    """Performs taps, typing, scrolls and swipes through a ``DeviceDriver``.

    Usage::

        driver = GestureDriver(SimulatorDevice(bundle_id="com.example.app"))
        result = await driver.tap(parse_target("#login_button"))
        if not result.success:
            print(result.error, result.details.suggestions)
    """

    def __init__(
        self,
        device: DeviceDriver,
        clock: Clock | None = None,
        max_suggestions: int = MAX_SUGGESTIONS,
        default_max_attempts: int = DEFAULT_SCROLL_ATTEMPTS,
        default_timeout: float = DEFAULT_SCROLL_TIMEOUT,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        failure_screenshots_dir: Path | None = None,
    ) -> None:
        """
        Args:
            device: Backend that executes the raw gestures.
            clock: Time source for retry loops.  Defaults to wall clock.
            max_suggestions: Upper bound on ``details.suggestions``.
            default_max_attempts: Scroll gestures allowed per ``scroll_to``.
            default_timeout: Wall-clock budget (seconds) per ``scroll_to``.
            settle_delay: Pause after each gesture inside retry loops.
            failure_screenshots_dir: When set, a screenshot is captured into
                this directory whenever an action fails.
        """
        self._device = device
        self._clock = clock or SystemClock()
        self._max_suggestions = max_suggestions
        self._default_max_attempts = default_max_attempts
        self._default_timeout = default_timeout
        self._settle_delay = settle_delay
        self._failure_dir = failure_screenshots_dir
        self._failure_count = 0

    # -- Direct actions ------------------------------------------------------

    async def tap(self, target: ActionTarget) -> ActionResult:
        async def act(tree: UIElement, element: UIElement | None, point: tuple[float, float]) -> DeviceResponse:
            return await self._device.tap(*point)

        return await self._perform("tap", target, act)

    async def double_tap(self, target: ActionTarget) -> ActionResult:
        async def act(tree: UIElement, element: UIElement | None, point: tuple[float, float]) -> DeviceResponse:
            return await self._device.double_tap(*point)

        return await self._perform("double_tap", target, act)

    async def long_press(self, target: ActionTarget, duration: float = DEFAULT_LONG_PRESS) -> ActionResult:
        async def act(tree: UIElement, element: UIElement | None, point: tuple[float, float]) -> DeviceResponse:
            if duration <= 0:
                raise ValidationError(f"Long-press duration must be positive, got: {duration}")
            return await self._device.long_press(point[0], point[1], duration)

        return await self._perform("long_press", target, act)

    async def type_text(
        self,
        text: str,
        target: ActionTarget | None = None,
        clear_first: bool = False,
    ) -> ActionResult:
        """Type *text*, optionally focusing *target* first and clearing it."""

        async def act(tree: UIElement, element: UIElement | None, point: tuple[float, float]) -> DeviceResponse:
            existing = 0
            if clear_first:
                if target is None:
                    raise ValidationError("Clearing text requires a target element")
                field = element if element is not None else _element_at(tree, point)
                if field is None:
                    raise ValidationError(
                        f"Clearing text requires an element target; nothing at {point[0]:g},{point[1]:g}"
                    )
                existing = len(field.value) if field.value else 0
            if target is not None:
                focus = await self._device.tap(*point)
                if not focus.success:
                    return focus
            if existing:
                cleared = await self._device.clear_text(existing)
                if not cleared.success:
                    return cleared
            return await self._device.type_text(text)

        return await self._perform("type", target, act, element_type="TextField", require_target=False)

    async def scroll(
        self,
        direction: str,
        distance: float = DEFAULT_SCROLL_DISTANCE,
        container: ActionTarget | None = None,
    ) -> ActionResult:
        """Scroll once.  ``down`` reveals content below (the finger moves up)."""
        normalized = parse_direction(direction)

        async def act(tree: UIElement, element: UIElement | None, point: tuple[float, float]) -> DeviceResponse:
            if normalized is None:
                raise ValidationError(f"Invalid scroll direction: {direction!r}")
            if not 0 < distance <= 1:
                raise ValidationError(f"Scroll distance must be within (0, 1], got: {distance}")
            frame = element.frame if element is not None and not element.frame.is_empty else _screen_frame(tree)
            center = point if isinstance(container, CoordinatesTarget) else None
            vector = _scroll_vector(frame, normalized, distance, center)
            return await self._device.swipe(*vector, SWIPE_DURATIONS["normal"])

        return await self._perform("scroll", container, act, require_target=False)

    async def swipe(
        self,
        direction: str,
        velocity: str = "normal",
        source: ActionTarget | None = None,
    ) -> ActionResult:
        """Swipe the finger in *direction*, from *source* or the screen centre."""
        normalized = parse_direction(direction)

        async def act(tree: UIElement, element: UIElement | None, point: tuple[float, float]) -> DeviceResponse:
            if normalized is None:
                raise ValidationError(f"Invalid swipe direction: {direction!r}")
            if velocity not in SWIPE_DURATIONS:
                raise ValidationError(
                    f"Velocity must be one of: {', '.join(SWIPE_DURATIONS)}. Got: {velocity}"
                )
            screen = _screen_frame(tree)
            frame = element.frame if element is not None and not element.frame.is_empty else screen
            x1, y1, x2, y2 = _swipe_vector(frame, normalized, point)
            return await self._device.swipe(x1, y1, x2, y2, SWIPE_DURATIONS[velocity])

        return await self._perform("swipe", source, act, require_target=False)

    # -- Bounded loops -------------------------------------------------------

    async def scroll_to(
        self,
        target: ActionTarget,
        direction: str = "down",
        max_attempts: int | None = None,
        timeout: float | None = None,
        distance: float = DEFAULT_SCROLL_DISTANCE,
    ) -> ActionResult:
        """Scroll until *target* is visible, within the attempt and time budget.

        Performs at most *max_attempts* scroll gestures.  Exhausting the
        attempts reports ``element_not_found``; running past *timeout*
        seconds reports ``timeout``.
        """
        inv = _Invocation("scroll_to", self._clock)
        max_attempts = self._default_max_attempts if max_attempts is None else max_attempts
        timeout = self._default_timeout if timeout is None else timeout

        try:
            inv.enter(DriverState.RESOLVING)
            query = target_to_query(target) if target is not None else None
            if query is None:
                raise ValidationError("Scrolling to a target requires an identifier or label")
            normalized = parse_direction(direction)
            if normalized is None:
                raise ValidationError(f"Invalid scroll direction: {direction!r}")
            if max_attempts < 0:
                raise ValidationError(f"max_attempts must not be negative, got: {max_attempts}")

            inv.enter(DriverState.LOCATING)
            deadline = self._clock.monotonic() + timeout
            attempts = 0
            while True:
                tree = await self._device.snapshot()
                inv.last_tree = tree
                element = _first_visible(tree, query)
                if element is not None:
                    break

                if attempts >= max_attempts:
                    raise ElementNotFoundError(
                        f"Element {describe_target(target)} not found after {attempts} scroll attempts",
                        self._suggest(tree, target),
                    )
                if self._clock.monotonic() >= deadline:
                    raise StepTimeoutError(
                        f"Timed out after {timeout:g}s scrolling to {describe_target(target)} "
                        f"({attempts} scroll attempts)"
                    )

                response = await self._device.swipe(
                    *_scroll_vector(_screen_frame(tree), normalized, distance),
                    SWIPE_DURATIONS["normal"],
                )
                attempts += 1
                inv.details.scroll_attempts = attempts
                logger.debug("scroll_to %s: attempt %d/%d", describe_target(target), attempts, max_attempts)
                if not response.success:
                    raise ActionExecutionError(response.error or "Device rejected scroll gesture")
                await self._clock.sleep(self._settle_delay)

            inv.details.scroll_attempts = attempts
            inv.details.element = element.summary()
            inv.enter(DriverState.FOUND)
            inv.enter(DriverState.VERIFYING)
            self._collect_warnings(inv, element, target)
            inv.enter(DriverState.DONE)
            return inv.result()
        except Exception as exc:
            return await self._fail(inv, exc, target)

    async def wait_for(
        self,
        target: ActionTarget,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> ActionResult:
        """Poll snapshots until *target* is present and visible."""
        inv = _Invocation("wait_for", self._clock)
        try:
            inv.enter(DriverState.RESOLVING)
            query = target_to_query(target) if target is not None else None
            if query is None:
                raise ValidationError("Waiting requires an identifier or label target")

            inv.enter(DriverState.LOCATING)
            deadline = self._clock.monotonic() + timeout
            # Independent of the clock, so a stalled clock still terminates
            max_polls = max(1, math.ceil(timeout / poll_interval) + 1) if poll_interval > 0 else 1
            for _ in range(max_polls):
                tree = await self._device.snapshot()
                inv.last_tree = tree
                element = _first_visible(tree, query)
                if element is not None:
                    inv.details.element = element.summary()
                    inv.enter(DriverState.FOUND)
                    inv.enter(DriverState.VERIFYING)
                    self._collect_warnings(inv, element, target)
                    inv.enter(DriverState.DONE)
                    return inv.result()
                if self._clock.monotonic() >= deadline:
                    break
                await self._clock.sleep(poll_interval)

            raise StepTimeoutError(f"Timed out after {timeout:g}s waiting for {describe_target(target)}")
        except Exception as exc:
            return await self._fail(inv, exc, target)

    # -- Read-only -----------------------------------------------------------

    async def inspect(self, query_text: str | None = None) -> ActionResult:
        """Snapshot the UI and report elements matching *query_text*."""
        inv = _Invocation("inspect", self._clock)
        try:
            inv.enter(DriverState.RESOLVING)
            inv.enter(DriverState.LOCATING)
            tree = await self._device.snapshot()
            inv.last_tree = tree
            if query_text and query_text.strip():
                result = find_by_query_string(tree, query_text)
            else:
                result = find_elements(tree, ElementQuery())
            inv.details.matches = [el.summary() for el in sort_by_position(result.elements)]
            inv.details.total_searched = result.total_searched
            inv.details.summary = summarize_tree(tree)
            inv.enter(DriverState.DONE)
            return inv.result()
        except Exception as exc:
            return await self._fail(inv, exc, None)

    async def capture(self, path: str | None = None, include_tree: bool = False) -> ActionResult:
        """Save a screenshot to *path* and/or record the full element tree."""
        inv = _Invocation("snapshot", self._clock)
        try:
            if include_tree:
                inv.enter(DriverState.LOCATING)
                tree = await self._device.snapshot()
                inv.last_tree = tree
                inv.details.tree = tree.to_dict()
                inv.details.summary = summarize_tree(tree)
            if path is None:
                inv.enter(DriverState.DONE)
                return inv.result()
            inv.enter(DriverState.ACTING)
            response = await self._device.screenshot(path)
            if not response.success:
                raise ActionExecutionError(response.error or "Screenshot failed")
            inv.details.screenshot_path = path
            inv.enter(DriverState.DONE)
            return inv.result()
        except Exception as exc:
            return await self._fail(inv, exc, None)

    # -- Internals -----------------------------------------------------------

    async def _perform(
        self,
        action_type: str,
        target: ActionTarget | None,
        act: _Act,
        element_type: str | None = None,
        require_target: bool = True,
    ) -> ActionResult:
        inv = _Invocation(action_type, self._clock)
        try:
            inv.enter(DriverState.RESOLVING)
            if target is None and require_target:
                raise ValidationError(f"{action_type} requires a target")
            query = target_to_query(target) if target is not None else None

            inv.enter(DriverState.LOCATING)
            tree = await self._device.snapshot()
            inv.last_tree = tree

            element: UIElement | None = None
            if isinstance(target, CoordinatesTarget):
                point = (target.x, target.y)
            elif query is not None:
                element = find_first(tree, query)
                if element is None:
                    raise ElementNotFoundError(
                        f"Element {describe_target(target)} not found",
                        self._suggest(tree, target, element_type),
                    )
                point = element.center
                inv.details.element = element.summary()
            else:
                point = _screen_frame(tree).center
            inv.enter(DriverState.FOUND)

            inv.enter(DriverState.ACTING)
            response = await act(tree, element, point)

            inv.enter(DriverState.VERIFYING)
            if not response.success:
                raise ActionExecutionError(response.error or f"Device rejected {action_type}")
            if element is not None:
                self._collect_warnings(inv, element, target)
            inv.enter(DriverState.DONE)
            return inv.result()
        except Exception as exc:
            return await self._fail(inv, exc, target)

    async def _fail(self, inv: _Invocation, exc: Exception, target: ActionTarget | None) -> ActionResult:
        if isinstance(exc, ElementNotFoundError):
            inv.enter(DriverState.NOT_FOUND)
            inv.details.suggestions = exc.suggestions
        elif isinstance(exc, StepTimeoutError) and target is not None and not inv.details.suggestions:
            inv.details.suggestions = self._suggest(inv.last_tree, target)
        elif not isinstance(exc, TapbookError):
            logger.error("%s on %s failed: %s", inv.action_type, target, exc, exc_info=True)
            exc = ActionExecutionError(f"{type(exc).__name__}: {exc}")
        inv.enter(DriverState.FAILED)
        inv.details.screenshot_path = await self._failure_screenshot(inv.action_type)
        return inv.result(exc)

    def _suggest(
        self,
        tree: UIElement | None,
        target: ActionTarget,
        element_type: str | None = None,
    ) -> list[str]:
        return suggest_alternatives(tree, target, limit=self._max_suggestions, element_type=element_type)

    @staticmethod
    def _collect_warnings(inv: _Invocation, element: UIElement, target: ActionTarget | None) -> None:
        name = describe_target(target) if target is not None else element.type
        if not element.enabled:
            inv.details.warnings.append(f"Element {name} is disabled")
        if not element.visible:
            inv.details.warnings.append(f"Element {name} is not visible")

    async def _failure_screenshot(self, action_type: str) -> str | None:
        if self._failure_dir is None:
            return None
        self._failure_count += 1
        path = self._failure_dir / f"failure-{self._failure_count:03d}-{action_type}.png"
        try:
            self._failure_dir.mkdir(parents=True, exist_ok=True)
            response = await self._device.screenshot(str(path))
        except Exception as exc:
            logger.warning("Failure screenshot could not be captured: %s", exc)
            return None
        return str(path) if response.success else None


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def _first_visible(tree: UIElement, query: ElementQuery) -> UIElement | None:
    matches = [el for el in find_elements(tree, query).elements if el.visible]
    ordered = sort_by_position(matches)
    return ordered[0] if ordered else None


def _screen_frame(tree: UIElement) -> Frame:
    if not tree.frame.is_empty:
        return tree.frame
    width, height = DEFAULT_SCREEN_SIZE
    return Frame(0, 0, width, height)


def _element_at(tree: UIElement, point: tuple[float, float]) -> UIElement | None:
    """Deepest visible element below the root whose frame contains *point*."""
    x, y = point
    hit = None
    for node in tree.iter_tree():
        if node is tree or node.frame.is_empty or not node.visible:
            continue
        f = node.frame
        if f.x <= x <= f.x + f.width and f.y <= y <= f.y + f.height:
            hit = node
    return hit


def _scroll_vector(
    frame: Frame,
    direction: str,
    distance: float,
    center: tuple[float, float] | None = None,
) -> tuple[float, float, float, float]:
    """Finger path that scrolls *frame*'s content in *direction*, around *center*."""
    cx, cy = center if center is not None else frame.center
    dx = frame.width * distance / 2
    dy = frame.height * distance / 2
    if direction == "down":
        return cx, cy + dy, cx, cy - dy
    if direction == "up":
        return cx, cy - dy, cx, cy + dy
    if direction == "right":
        return cx + dx, cy, cx - dx, cy
    return cx - dx, cy, cx + dx, cy


def _swipe_vector(
    frame: Frame,
    direction: str,
    origin: tuple[float, float],
) -> tuple[float, float, float, float]:
    """Finger path moving in *direction* from *origin* by half of *frame*."""
    x, y = origin
    dx = frame.width * DEFAULT_SCROLL_DISTANCE
    dy = frame.height * DEFAULT_SCROLL_DISTANCE
    if direction == "up":
        return x, y, x, y - dy
    if direction == "down":
        return x, y, x, y + dy
    if direction == "left":
        return x, y, x - dx, y
    return x, y, x + dx, y
