"""tapbook Simulator Device -- ``DeviceDriver`` backed by Xcode tooling.

Device discovery and screenshots go through ``xcrun simctl``; the UI tree and
all touch/keyboard input go through ``idb`` (``idb ui describe-all``,
``idb ui tap``...).  Both are external CLI tools: nothing here links against
a device API directly.

Every method reports failures as ``DeviceResponse(success=False, ...)``
except ``snapshot``, which raises ``ActionExecutionError`` because the
gesture driver cannot continue without a tree.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

from tapbook.engine.elements import UIElement
from tapbook.engine.protocols import DeviceResponse
from tapbook.errors import ActionExecutionError
from tapbook.models import DEFAULT_SIMULATOR_NAME

logger = logging.getLogger("tapbook.engine.simulator_device")

_UDID_RE = re.compile(r"^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}$")

# HID usage code for the Delete (backspace) key
_KEY_DELETE = "42"

_COMMAND_TIMEOUT = 60.0  # seconds


def looks_like_udid(text: str | None) -> bool:
    return bool(text) and bool(_UDID_RE.match(text.strip()))


class SimulatorDevice:
    """Drives one iOS Simulator.

    Usage::

        device = SimulatorDevice(bundle_id="com.example.myapp", device_name="iPhone 15")
        tree = await device.snapshot()
        await device.tap(*tree.center)
    """

    def __init__(
        self,
        bundle_id: str | None = None,
        device_id: str | None = None,
        device_name: str | None = None,
        os_version: str | None = None,
        idb_path: str = "idb",
    ) -> None:
        """
        Args:
            bundle_id: App under test.  Informational: the app is expected to
                be installed and in the foreground.
            device_id: Explicit simulator UDID.  If ``None`` the best device
                matching *device_name* / *os_version* is selected on first use.
            device_name: Preferred device name (e.g. ``"iPhone 15 Pro"``).
            os_version: Preferred iOS version (e.g. ``"17.2"``).
            idb_path: ``idb`` executable.
        """
        self._bundle_id = bundle_id
        self._device_id = device_id
        self._device_name = device_name or DEFAULT_SIMULATOR_NAME
        self._os_version = os_version
        self._idb = idb_path

    @property
    def device_id(self) -> str | None:
        return self._device_id

    # -- DeviceDriver --------------------------------------------------------

    async def snapshot(self) -> UIElement:
        udid = await self._ensure_device()
        code, stdout, stderr = await self._exec(
            self._idb, "ui", "describe-all", "--json", "--nested", "--udid", udid
        )
        if code != 0:
            raise ActionExecutionError(f"idb describe-all failed: {stderr.strip() or f'exit code {code}'}")
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise ActionExecutionError(f"idb describe-all returned invalid JSON: {exc}") from exc
        return build_tree(data)

    async def tap(self, x: float, y: float) -> DeviceResponse:
        return await self._idb_ui("tap", _coord(x), _coord(y))

    async def double_tap(self, x: float, y: float) -> DeviceResponse:
        first = await self.tap(x, y)
        if not first.success:
            return first
        return await self.tap(x, y)

    async def long_press(self, x: float, y: float, duration: float) -> DeviceResponse:
        return await self._idb_ui("tap", _coord(x), _coord(y), "--duration", f"{duration:g}")

    async def type_text(self, text: str) -> DeviceResponse:
        return await self._idb_ui("text", text)

    async def clear_text(self, length: int) -> DeviceResponse:
        if length <= 0:
            return DeviceResponse(success=True)
        return await self._idb_ui("key-sequence", *([_KEY_DELETE] * length))

    async def swipe(
        self,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        duration: float,
    ) -> DeviceResponse:
        return await self._idb_ui(
            "swipe", _coord(x1), _coord(y1), _coord(x2), _coord(y2), "--duration", f"{duration:g}"
        )

    async def screenshot(self, path: str) -> DeviceResponse:
        try:
            udid = await self._ensure_device()
        except ActionExecutionError as exc:
            return DeviceResponse(success=False, error=str(exc))
        code, _, stderr = await self._exec("xcrun", "simctl", "io", udid, "screenshot", path)
        if code != 0:
            logger.warning("simctl screenshot failed: %s", stderr.strip())
            return DeviceResponse(success=False, error=stderr.strip() or f"exit code {code}")
        return DeviceResponse(success=True, data={"path": path})

    # -- Device discovery ----------------------------------------------------

    async def _ensure_device(self) -> str:
        if self._device_id is None:
            self._device_id = await self._find_best_device()
            if self._device_id is None:
                raise ActionExecutionError(
                    f"No simulator device found matching name='{self._device_name}' "
                    f"os='{self._os_version}'"
                )
            logger.info("Using simulator device: %s (name=%s)", self._device_id, self._device_name)
        return self._device_id

    async def _list_devices(self) -> dict[str, Any]:
        """List all simulator devices as a dict keyed by runtime."""
        code, stdout, stderr = await self._exec("xcrun", "simctl", "list", "devices", "--json")
        if code != 0:
            logger.warning("simctl list returned %d: %s", code, stderr.strip())
            return {}
        try:
            return json.loads(stdout).get("devices", {})
        except (json.JSONDecodeError, AttributeError):
            return {}

    async def _find_best_device(self) -> str | None:
        """Pick the best available device, preferring booted ones."""
        return select_device(await self._list_devices(), self._device_name, self._os_version)

    # -- Subprocess helpers --------------------------------------------------

    async def _idb_ui(self, *args: str) -> DeviceResponse:
        try:
            udid = await self._ensure_device()
        except ActionExecutionError as exc:
            return DeviceResponse(success=False, error=str(exc))
        code, stdout, stderr = await self._exec(self._idb, "ui", *args, "--udid", udid)
        if code != 0:
            return DeviceResponse(success=False, error=stderr.strip() or f"idb ui {args[0]} exited with {code}")
        return DeviceResponse(success=True, data=stdout.strip() or None)

    async def _exec(self, *cmd: str) -> tuple[int, str, str]:
        """Run *cmd* and return ``(returncode, stdout, stderr)``.

        A missing executable or a hung command is reported as a non-zero
        return code rather than raised.
        """
        logger.debug("exec: %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return 127, "", f"{cmd[0]} not found. Install it and make sure it is on PATH."
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_COMMAND_TIMEOUT)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return 124, "", f"{cmd[0]} timed out after {_COMMAND_TIMEOUT:g}s"
        return proc.returncode or 0, stdout.decode(errors="replace"), stderr.decode(errors="replace")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def select_device(devices: dict[str, Any], device_name: str, os_version: str | None = None) -> str | None:
    """Choose a UDID from ``simctl list devices --json`` output.

    Prefers available devices whose name contains *device_name* (and whose
    runtime contains *os_version*), booted ones first.  Falls back to any
    available iPhone.
    """
    candidates: list[tuple[str, str, str, bool]] = []  # (udid, name, runtime, booted)
    for runtime, device_list in devices.items():
        for device in device_list:
            if not device.get("isAvailable", False):
                continue
            name = device.get("name", "")
            if device_name.lower() not in name.lower():
                continue
            if os_version and os_version.replace(".", "-") not in runtime and os_version not in runtime:
                continue
            candidates.append((device.get("udid", ""), name, runtime, device.get("state") == "Booted"))

    if not candidates:
        for device_list in devices.values():
            for device in device_list:
                if device.get("isAvailable", False) and "iPhone" in device.get("name", ""):
                    return device.get("udid")
        return None

    for udid, name, runtime, booted in candidates:
        if booted:
            logger.info("Found booted device: %s (%s)", name, runtime)
            return udid

    udid, name, runtime, _ = candidates[0]
    logger.info("Selected device: %s (%s)", name, runtime)
    return udid


def build_tree(data: Any) -> UIElement:
    """Convert ``idb ui describe-all --nested`` JSON into a ``UIElement`` tree.

    idb returns a list of top-level nodes; more than one is wrapped in a
    synthetic ``Application`` root spanning the first node's frame.
    """
    if isinstance(data, dict):
        return UIElement.from_dict(_normalize_idb_node(data))
    nodes = [_normalize_idb_node(n) for n in data or [] if isinstance(n, dict)]
    if len(nodes) == 1:
        return UIElement.from_dict(nodes[0])
    root: dict[str, Any] = {"type": "Application", "children": nodes}
    if nodes:
        root["frame"] = nodes[0].get("frame")
    return UIElement.from_dict(root)


def _normalize_idb_node(node: dict[str, Any]) -> dict[str, Any]:
    frame = node.get("frame")
    if not isinstance(frame, dict):
        frame = _parse_ax_frame(node.get("AXFrame"))
    traits = node.get("traits") or []
    return {
        "type": node.get("type") or node.get("role") or "Other",
        "identifier": node.get("AXUniqueId", node.get("identifier")),
        "label": node.get("AXLabel", node.get("label")),
        "value": node.get("AXValue", node.get("value")),
        "placeholder": node.get("placeholder"),
        "frame": frame,
        "enabled": node.get("enabled", True),
        "visible": not node.get("hidden", False),
        "traits": traits if isinstance(traits, list) else [],
        "children": [_normalize_idb_node(c) for c in node.get("children") or [] if isinstance(c, dict)],
    }


_AX_FRAME_RE = re.compile(r"\{\{([-\d.]+),\s*([-\d.]+)\},\s*\{([-\d.]+),\s*([-\d.]+)\}\}")


def _parse_ax_frame(text: Any) -> dict[str, float] | None:
    """Parse ``"{{x, y}, {w, h}}"`` into a frame dict."""
    if not isinstance(text, str):
        return None
    m = _AX_FRAME_RE.match(text.strip())
    if not m:
        return None
    x, y, w, h = (float(g) for g in m.groups())
    return {"x": x, "y": y, "width": w, "height": h}


def _coord(value: float) -> str:
    return str(int(round(value)))
