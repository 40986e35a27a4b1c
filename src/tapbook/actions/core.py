"""Device-independent built-in actions.

``assert`` fails a step when a value (usually a template pulling in an
earlier step's ``store_as`` result) is not truthy::

    - action: ios.inspect
      store_as: screen
      inputs:
        query: "#login_button"

    - action: assert
      inputs:
        condition: "{{ variables.screen.elements[0] }}"
        message: Login button should be on screen
"""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Any, Mapping

from tapbook.errors import ValidationError
from tapbook.playbook.registry import (
    ActionContext,
    ActionDefinition,
    ActionOutcome,
    ActionRegistry,
    InputSpec,
    OutputSpec,
    define_action,
)
from tapbook.playbook.templates import is_truthy

logger = logging.getLogger("tapbook.actions.core")


def assertion_truth(value: Any) -> bool:
    """Truth of an asserted value.

    Result objects carrying a ``success`` or ``passed`` flag are judged by
    that flag; NaN is false; everything else follows template truthiness.
    """
    if isinstance(value, Mapping):
        for key in ("success", "passed"):
            if key in value:
                return assertion_truth(value[key])
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return is_truthy(value)


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, str):
        return repr(value)
    try:
        return json.dumps(value, default=str)
    except ValueError:
        return str(value)


async def _assert_handler(inputs: dict[str, Any], context: ActionContext) -> ActionOutcome:
    started = time.monotonic()
    message = str(inputs.get("message") or "").strip()
    if not message:
        raise ValidationError("Input 'message' of action 'assert' must not be empty")

    raw = inputs.get("condition")
    negate = bool(inputs.get("not", False))
    actual = assertion_truth(raw)
    expected = not negate
    passed = actual == expected

    data = {
        "passed": passed,
        "condition": actual,
        "expected": expected,
        "message": message,
        "raw_value": raw,
    }
    elapsed_ms = round((time.monotonic() - started) * 1000, 1)
    if passed:
        return ActionOutcome(success=True, data=data, message=f"✓ {message}", elapsed_ms=elapsed_ms)

    logger.info("Assertion failed: %s", message)
    wanted = "falsy" if negate else "truthy"
    return ActionOutcome(
        success=False,
        data=data,
        message=f"✗ {message}",
        error=f"Assertion failed: {message}. Expected: {wanted}, Actual: {_format_value(raw)}",
        elapsed_ms=elapsed_ms,
    )


assert_action = define_action(ActionDefinition(
    name="assert",
    description="Fail the step unless a condition is truthy (or falsy with 'not')",
    handler=_assert_handler,
    inputs={
        "condition": InputSpec(type="any", required=True, description="Value to check, usually a {{ }} template"),
        "message": InputSpec(type="string", required=True, description="What the assertion checks"),
        "not": InputSpec(type="boolean", default=False, description="Expect a falsy value instead"),
    },
    outputs={
        "passed": OutputSpec(type="boolean", description="Whether the assertion held"),
        "condition": OutputSpec(type="boolean", description="Truth of the evaluated condition"),
        "expected": OutputSpec(type="boolean", description="Truth the assertion expected"),
        "message": OutputSpec(type="string", description="The assertion message"),
    },
))


def register_core_actions(registry: ActionRegistry) -> None:
    registry.register(assert_action)
