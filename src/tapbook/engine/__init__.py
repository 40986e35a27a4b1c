"""tapbook engine -- element resolution and gesture execution.

- UIElement / Frame: immutable UI snapshot tree
- ElementQuery / find_elements: declarative queries over a snapshot
- parse_target: the ``#id`` / ``"label"`` / ``x,y`` target grammar
- GestureDriver: taps, typing, scrolls and swipes with bounded retry
- SimulatorDevice: ``DeviceDriver`` backed by ``xcrun simctl`` and ``idb``
"""

from tapbook.engine.elements import Frame, UIElement
from tapbook.engine.gesture_driver import ActionDetails, ActionResult, DriverState, GestureDriver
from tapbook.engine.protocols import Clock, DeviceDriver, DeviceResponse, SystemClock
from tapbook.engine.query import (
    ElementQuery,
    QueryResult,
    find_by_query_string,
    find_elements,
    find_first,
    parse_element_query,
    sort_by_position,
)
from tapbook.engine.simulator_device import SimulatorDevice
from tapbook.engine.targets import (
    ActionTarget,
    CoordinatesTarget,
    IdentifierTarget,
    LabelTarget,
    parse_direction,
    parse_target,
)

__all__ = [
    "ActionDetails",
    "ActionResult",
    "ActionTarget",
    "Clock",
    "CoordinatesTarget",
    "DeviceDriver",
    "DeviceResponse",
    "DriverState",
    "ElementQuery",
    "Frame",
    "GestureDriver",
    "IdentifierTarget",
    "LabelTarget",
    "QueryResult",
    "SimulatorDevice",
    "SystemClock",
    "UIElement",
    "find_by_query_string",
    "find_elements",
    "find_first",
    "parse_direction",
    "parse_element_query",
    "parse_target",
    "sort_by_position",
]
