"""Built-in action catalog."""

from tapbook.actions.core import assert_action, register_core_actions
from tapbook.actions.ios import (
    DriverFactory,
    IosActions,
    create_default_registry,
    register_ios_actions,
    simulator_driver_factory,
)

__all__ = [
    "DriverFactory",
    "IosActions",
    "assert_action",
    "create_default_registry",
    "register_core_actions",
    "register_ios_actions",
    "simulator_driver_factory",
]
