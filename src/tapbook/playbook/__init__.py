"""tapbook playbooks -- parsing, the action registry and the interpreter."""

from tapbook.playbook.interpreter import (
    ExecutionContext,
    PlaybookInterpreter,
    PlaybookRunResult,
    RunOptions,
    StepRecord,
    execute_action,
)
from tapbook.playbook.parser import (
    Playbook,
    ShorthandCommand,
    Step,
    load_playbook,
    parse_playbook,
    parse_shorthand,
)
from tapbook.playbook.registry import (
    ActionContext,
    ActionDefinition,
    ActionOutcome,
    ActionRegistry,
    InputSpec,
    OutputSpec,
    coerce_inputs,
    define_action,
)

__all__ = [
    "ActionContext",
    "ActionDefinition",
    "ActionOutcome",
    "ActionRegistry",
    "ExecutionContext",
    "InputSpec",
    "OutputSpec",
    "Playbook",
    "PlaybookInterpreter",
    "PlaybookRunResult",
    "RunOptions",
    "ShorthandCommand",
    "Step",
    "StepRecord",
    "coerce_inputs",
    "define_action",
    "execute_action",
    "load_playbook",
    "parse_playbook",
    "parse_shorthand",
]
