"""Shared fixtures for tapbook unit tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from tapbook.engine.elements import Frame, UIElement
from tapbook.engine.gesture_driver import GestureDriver
from tapbook.engine.protocols import DeviceResponse
from tapbook.errors import ActionExecutionError
from tapbook.playbook.registry import ActionContext, ActionDefinition, ActionOutcome, ActionRegistry, InputSpec


def el(type: str, frame: tuple[float, float, float, float] = (0, 0, 0, 0), **kwargs: Any) -> UIElement:
    """Terse UIElement builder for test trees."""
    children = tuple(kwargs.pop("children", ()))
    return UIElement(type=type, frame=Frame(*frame), children=children, **kwargs)


# ---------------------------------------------------------------------------
# Fakes: device and clock
# ---------------------------------------------------------------------------

class FakeClock:
    """Deterministic clock: time only moves when ``sleep`` (or ``advance``) is called."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDevice:
    """In-memory ``DeviceDriver``.

    ``trees`` is a sequence of snapshots; each swipe advances to the next one
    (the last is repeated), which models content revealed by scrolling.
    Methods named in ``failing`` report ``success=False``.
    """

    def __init__(self, trees: UIElement | list[UIElement], failing: set[str] | None = None) -> None:
        self.trees = trees if isinstance(trees, list) else [trees]
        self.failing = failing or set()
        self.calls: list[tuple[Any, ...]] = []
        self.swipes = 0

    def _respond(self, name: str, *args: Any) -> DeviceResponse:
        self.calls.append((name, *args))
        if name in self.failing:
            return DeviceResponse(success=False, error=f"{name} rejected by device")
        return DeviceResponse(success=True)

    def calls_named(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    async def snapshot(self) -> UIElement:
        self.calls.append(("snapshot",))
        if "snapshot" in self.failing:
            raise ActionExecutionError("snapshot failed")
        return self.trees[min(self.swipes, len(self.trees) - 1)]

    async def tap(self, x: float, y: float) -> DeviceResponse:
        return self._respond("tap", x, y)

    async def double_tap(self, x: float, y: float) -> DeviceResponse:
        return self._respond("double_tap", x, y)

    async def long_press(self, x: float, y: float, duration: float) -> DeviceResponse:
        return self._respond("long_press", x, y, duration)

    async def type_text(self, text: str) -> DeviceResponse:
        return self._respond("type_text", text)

    async def clear_text(self, length: int) -> DeviceResponse:
        return self._respond("clear_text", length)

    async def swipe(self, x1: float, y1: float, x2: float, y2: float, duration: float) -> DeviceResponse:
        response = self._respond("swipe", x1, y1, x2, y2, duration)
        if response.success:
            self.swipes += 1
        return response

    async def screenshot(self, path: str) -> DeviceResponse:
        response = self._respond("screenshot", path)
        if response.success:
            Path(path).write_bytes(b"\x89PNG")
        return response


# ---------------------------------------------------------------------------
# Fixture: UI trees
# ---------------------------------------------------------------------------

@pytest.fixture
def login_tree() -> UIElement:
    """A login screen: fields, buttons, one disabled and one hidden element."""
    return el(
        "Application",
        (0, 0, 393, 852),
        label="Demo",
        children=[
            el("StaticText", (20, 60, 200, 30), label="Welcome"),
            el("TextField", (20, 200, 353, 44), identifier="username_field", placeholder="Username"),
            el("SecureTextField", (20, 260, 353, 44), identifier="password_field", value="secret"),
            el("Button", (20, 330, 353, 50), identifier="login_button", label="Log In"),
            el("Button", (20, 400, 353, 30), identifier="forgot_password", label="Forgot Password?"),
            el("Button", (20, 450, 353, 30), identifier="signup_button", label="Sign Up", enabled=False),
            el("Button", (20, 900, 353, 30), identifier="hidden_button", label="Secret", visible=False),
            el(
                "Other",
                (0, 500, 393, 200),
                identifier="carousel",
                children=[
                    el("Image", (0, 500, 196, 200), identifier="image_1", label="Image Gallery"),
                    el("Image", (196, 500, 196, 200), identifier="image_2"),
                ],
            ),
        ],
    )


def scroll_page(footer_visible: bool) -> UIElement:
    """A scrollable list whose footer only becomes visible after scrolling."""
    return el(
        "Application",
        (0, 0, 393, 852),
        children=[
            el(
                "Table",
                (0, 100, 393, 700),
                identifier="results_list",
                children=[
                    el("Cell", (0, 100, 393, 60), identifier="row_1", label="Row 1"),
                    el("Cell", (0, 160, 393, 60), identifier="row_2", label="Row 2"),
                    el("Button", (20, 760, 353, 40), identifier="footer", label="Load More", visible=footer_visible),
                ],
            ),
        ],
    )


@pytest.fixture
def scroll_trees() -> list[UIElement]:
    """Footer hidden for two snapshots, visible from the third on."""
    return [scroll_page(False), scroll_page(False), scroll_page(True)]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def login_device(login_tree: UIElement) -> FakeDevice:
    return FakeDevice(login_tree)


@pytest.fixture
def login_driver(login_device: FakeDevice, fake_clock: FakeClock) -> GestureDriver:
    return GestureDriver(login_device, clock=fake_clock)


# ---------------------------------------------------------------------------
# Fixture: registries
# ---------------------------------------------------------------------------

def make_action(
    name: str,
    succeed: bool = True,
    data: Any = None,
    calls: list[tuple[str, dict[str, Any]]] | None = None,
    inputs: dict[str, InputSpec] | None = None,
    error: str = "boom",
    raises: Exception | None = None,
) -> ActionDefinition:
    """An action whose handler records its call and returns a fixed outcome."""

    async def handler(values: dict[str, Any], context: ActionContext) -> ActionOutcome:
        if calls is not None:
            calls.append((name, dict(values)))
        if raises is not None:
            raise raises
        if succeed:
            return ActionOutcome(success=True, data=data if data is not None else values, message=f"{name} ok")
        return ActionOutcome(success=False, error=error, message=f"{name} failed")

    return ActionDefinition(name=name, description=f"test action {name}", handler=handler, inputs=inputs or {})


@pytest.fixture
def calls() -> list[tuple[str, dict[str, Any]]]:
    return []


@pytest.fixture
def registry(calls: list[tuple[str, dict[str, Any]]]) -> ActionRegistry:
    """``ok``, ``fail``, ``echo`` and ``explode`` test actions."""
    reg = ActionRegistry()
    reg.register(make_action("test.ok", calls=calls))
    reg.register(make_action("test.fail", succeed=False, calls=calls))
    reg.register(
        make_action(
            "test.echo",
            calls=calls,
            inputs={
                "message": InputSpec(type="string", required=True),
                "count": InputSpec(type="integer", default=1),
            },
        )
    )
    reg.register(make_action("test.explode", calls=calls, raises=RuntimeError("handler exploded")))
    return reg


# ---------------------------------------------------------------------------
# Fixture: project directory and playbook YAML
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary .tapbook/ project directory with a config and playbooks dir."""
    tapbook_dir = tmp_path / ".tapbook"
    for sub in ("playbooks", "evidence"):
        (tapbook_dir / sub).mkdir(parents=True)

    config_data = {
        "bundle_id": "com.example.demo",
        "simulator": "iPhone 15",
        "scroll_attempts": 4,
        "settle_delay": 0.0,
    }
    (tapbook_dir / "config.yaml").write_text(
        yaml.dump(config_data, default_flow_style=False), encoding="utf-8"
    )
    return tapbook_dir


@pytest.fixture
def sample_playbook_yaml() -> str:
    """Return a valid login playbook as a string."""
    return """\
name: login
description: Sign in with the demo account
inputs:
  username:
    type: string
    required: true
  remember:
    type: boolean
    default: false
variables:
  password: hunter2
steps:
  - name: Enter username
    action: ios.type
    inputs:
      text: "{{ inputs.username }}"
      into: "#username_field"
  - name: Enter password
    action: ios.type
    inputs:
      text: "{{ variables.password }}"
      into: "#password_field"
  - name: Submit
    action: ios.tap
    inputs:
      target: "#login_button"
    store_as: login_tap
    on_failure:
      - action: ios.snapshot
        inputs:
          include_tree: true
"""
