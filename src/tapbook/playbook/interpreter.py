"""tapbook Playbook Interpreter -- runs a parsed playbook step by step.

For every step: evaluate the condition, resolve ``{{ }}`` templates in the
inputs, look the action up in the registry, coerce inputs to the declared
types, then invoke the handler (optionally raced against a per-step
timeout).  Each step yields exactly one ``StepRecord``.

Failure policy:

- A failed step runs its ``on_failure`` steps once.  Their outcome is
  informational: the parent stays failed.
- Unless the step has ``continue_on_error``, the remaining sibling steps are
  recorded as skipped.
- The run passes only when no top-level step failed and the run was neither
  aborted nor rejected at input resolution.

The interpreter never raises for step failures -- they are captured in the
records.  Handler exceptions are logged and recorded as ``action_failed``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol, Sequence

from tapbook.engine.protocols import Clock, SystemClock
from tapbook.errors import (
    ActionExecutionError,
    StepTimeoutError,
    TapbookError,
    UnknownActionError,
    ValidationError,
)
from tapbook.playbook.parser import Playbook, Step
from tapbook.playbook.registry import (
    ActionContext,
    ActionDefinition,
    ActionOutcome,
    ActionRegistry,
    coerce_inputs,
    coerce_values,
)
from tapbook.playbook.templates import evaluate_condition, render

logger = logging.getLogger("tapbook.playbook.interpreter")

STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

ABORTED_MESSAGE = "Aborted"


class AbortSignal(Protocol):
    """Anything with ``is_set()``: ``asyncio.Event``, ``threading.Event``..."""

    def is_set(self) -> bool: ...


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class StepRecord:
    """Outcome of one executed (or skipped) step."""

    index: int
    path: str
    name: str
    action: str
    status: str = STATUS_PASSED
    duration_ms: float = 0.0
    inputs: dict[str, Any] = dataclasses.field(default_factory=dict)
    data: Any = None
    message: str = ""
    error: str | None = None
    error_kind: str | None = None

    @property
    def passed(self) -> bool:
        return self.status == STATUS_PASSED

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class PlaybookRunResult:
    """Aggregate outcome of a playbook run."""

    playbook_name: str
    passed: bool
    total_steps: int
    passed_steps: int
    failed_steps: int
    skipped_steps: int
    steps: list[StepRecord]
    variables: dict[str, Any]
    duration_ms: float
    dry_run: bool = False
    aborted: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class RunOptions:
    """Per-run settings.  All fields are optional."""

    cwd: Path | None = None
    session_id: str | None = None
    dry_run: bool = False
    step_timeout: float | None = None  # seconds
    variables: dict[str, Any] = dataclasses.field(default_factory=dict)
    abort_signal: AbortSignal | None = None
    on_step_start: Callable[[str, Step], None] | None = None
    on_step_complete: Callable[[StepRecord], None] | None = None


@dataclasses.dataclass
class ExecutionContext:
    """Mutable state of one run."""

    inputs: dict[str, Any]
    variables: dict[str, Any]
    options: RunOptions
    records: list[StepRecord] = dataclasses.field(default_factory=list)
    aborted: bool = False

    @property
    def scope(self) -> Mapping[str, Any]:
        return {"inputs": self.inputs, "variables": self.variables}


# ---------------------------------------------------------------------------
# PlaybookInterpreter
# ---------------------------------------------------------------------------

class PlaybookInterpreter:
    """Executes playbooks against an ``ActionRegistry``.

    Usage::

        interpreter = PlaybookInterpreter(registry)
        result = await interpreter.run(playbook, inputs={"username": "demo"})
        print(result.passed, result.failed_steps)
    """

    def __init__(self, registry: ActionRegistry, clock: Clock | None = None) -> None:
        self._registry = registry
        self._clock = clock or SystemClock()

    async def run(
        self,
        playbook: Playbook,
        inputs: Mapping[str, Any] | None = None,
        options: RunOptions | None = None,
    ) -> PlaybookRunResult:
        options = options or RunOptions()
        start = self._clock.monotonic()
        variables = {**playbook.variables, **options.variables}

        logger.info(
            "Running playbook %r (%d steps%s)",
            playbook.name,
            len(playbook.steps),
            ", dry run" if options.dry_run else "",
        )

        try:
            resolved_inputs = coerce_values(playbook.inputs, inputs, owner=f"playbook '{playbook.name}'")
        except ValidationError as exc:
            logger.error("Playbook %r rejected its inputs: %s", playbook.name, exc)
            records = [
                StepRecord(
                    index=i,
                    path=str(i),
                    name=step.display_name,
                    action=step.action,
                    status=STATUS_SKIPPED,
                    message="Not run: playbook inputs were rejected",
                )
                for i, step in enumerate(playbook.steps, start=1)
            ]
            return self._summarize(playbook, records, variables, start, options, error=str(exc))

        ctx = ExecutionContext(inputs=resolved_inputs, variables=variables, options=options)
        failed = await self._run_block(playbook.steps, "", ctx)

        error = None
        if ctx.aborted:
            error = ABORTED_MESSAGE
        elif failed:
            first = next(r for r in ctx.records if r.status == STATUS_FAILED)
            error = f"Step {first.path} ({first.name}) failed: {first.error}"
        return self._summarize(
            playbook, ctx.records, ctx.variables, start, options,
            error=error, aborted=ctx.aborted, top_level_failed=failed,
        )

    async def execute_step(self, step: Step, index: int, path: str, ctx: ExecutionContext) -> StepRecord:
        """Run one step (without its ``on_failure`` block) and record it."""
        started = self._clock.monotonic()
        record = StepRecord(index=index, path=path, name=step.display_name, action=step.action)
        if ctx.options.on_step_start:
            ctx.options.on_step_start(path, step)

        try:
            if step.condition is not None and not evaluate_condition(step.condition, ctx.scope):
                record.status = STATUS_SKIPPED
                record.message = f"Condition not met: {step.condition}"
            else:
                resolved = render(dict(step.inputs), ctx.scope)
                record.inputs = resolved
                definition = self._registry.get(step.action)
                if definition is None:
                    raise UnknownActionError(step.action)
                coerced = coerce_inputs(definition, resolved)
                record.inputs = coerced

                if ctx.options.dry_run:
                    record.message = "Dry run: not executed"
                else:
                    outcome = await self._invoke(definition, coerced, ctx)
                    record.data = outcome.data
                    record.message = outcome.message
                    if outcome.success:
                        if step.store_as:
                            ctx.variables[step.store_as] = outcome.data
                    else:
                        record.status = STATUS_FAILED
                        record.error = outcome.error or outcome.message or f"Action '{step.action}' failed"
                        record.error_kind = outcome.error_kind or ActionExecutionError.kind
        except TapbookError as exc:
            record.status = STATUS_FAILED
            record.error = str(exc)
            record.error_kind = exc.kind
        except Exception as exc:
            logger.error("Step %s (%s) raised: %s", path, step.action, exc, exc_info=True)
            record.status = STATUS_FAILED
            record.error = str(exc) or type(exc).__name__
            record.error_kind = ActionExecutionError.kind

        record.duration_ms = round((self._clock.monotonic() - started) * 1000, 1)
        if record.status == STATUS_FAILED:
            logger.warning("Step %s %s failed: %s", path, step.action, record.error)
        else:
            logger.info("Step %s %s %s", path, step.action, record.status)

        ctx.records.append(record)
        if ctx.options.on_step_complete:
            ctx.options.on_step_complete(record)
        return record

    # -- Internals -----------------------------------------------------------

    async def _run_block(self, steps: Sequence[Step], prefix: str, ctx: ExecutionContext) -> bool:
        """Run sibling *steps*; return True if any of them failed."""
        any_failed = False
        for i, step in enumerate(steps, start=1):
            path = f"{prefix}{i}"

            if ctx.aborted or self._abort_requested(ctx):
                ctx.aborted = True
                self._skip_rest(steps, i, prefix, ctx, message=ABORTED_MESSAGE, error=ABORTED_MESSAGE)
                break

            record = await self.execute_step(step, i, path, ctx)
            if record.status != STATUS_FAILED:
                continue

            any_failed = True
            if step.on_failure:
                logger.info("Running %d on_failure step(s) for step %s", len(step.on_failure), path)
                await self._run_block(step.on_failure, f"{path}.on_failure.", ctx)
            if not step.continue_on_error:
                if ctx.aborted or self._abort_requested(ctx):
                    ctx.aborted = True
                    self._skip_rest(steps, i + 1, prefix, ctx, message=ABORTED_MESSAGE, error=ABORTED_MESSAGE)
                else:
                    self._skip_rest(steps, i + 1, prefix, ctx, message=f"Skipped: step {path} failed")
                break
        return any_failed

    @staticmethod
    def _skip_rest(
        steps: Sequence[Step],
        first: int,
        prefix: str,
        ctx: ExecutionContext,
        message: str,
        error: str | None = None,
    ) -> None:
        for j in range(first, len(steps) + 1):
            step = steps[j - 1]
            record = StepRecord(
                index=j,
                path=f"{prefix}{j}",
                name=step.display_name,
                action=step.action,
                status=STATUS_SKIPPED,
                message=message,
                error=error,
            )
            ctx.records.append(record)
            if ctx.options.on_step_complete:
                ctx.options.on_step_complete(record)

    @staticmethod
    def _abort_requested(ctx: ExecutionContext) -> bool:
        signal = ctx.options.abort_signal
        return signal is not None and signal.is_set()

    async def _invoke(
        self,
        definition: ActionDefinition,
        inputs: dict[str, Any],
        ctx: ExecutionContext,
    ) -> ActionOutcome:
        context = ActionContext(
            cwd=ctx.options.cwd or Path.cwd(),
            session_id=ctx.options.session_id,
            variables=MappingProxyType(dict(ctx.variables)),
        )
        call = definition.handler(inputs, context)
        timeout = ctx.options.step_timeout
        if timeout is not None and timeout > 0:
            try:
                outcome = await asyncio.wait_for(call, timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise StepTimeoutError(f"Action '{definition.name}' timed out after {timeout:g}s") from exc
        else:
            outcome = await call

        if not isinstance(outcome, ActionOutcome):
            raise ActionExecutionError(
                f"Action '{definition.name}' returned {type(outcome).__name__}, expected ActionOutcome"
            )
        return outcome

    def _summarize(
        self,
        playbook: Playbook,
        records: list[StepRecord],
        variables: dict[str, Any],
        start: float,
        options: RunOptions,
        error: str | None = None,
        aborted: bool = False,
        top_level_failed: bool = False,
    ) -> PlaybookRunResult:
        passed_steps = sum(1 for r in records if r.status == STATUS_PASSED)
        failed_steps = sum(1 for r in records if r.status == STATUS_FAILED)
        skipped_steps = sum(1 for r in records if r.status == STATUS_SKIPPED)
        passed = not top_level_failed and not aborted and error is None
        duration_ms = round((self._clock.monotonic() - start) * 1000, 1)

        logger.info(
            "Playbook %r %s: %d passed, %d failed, %d skipped (%.0fms)",
            playbook.name,
            "passed" if passed else "failed",
            passed_steps,
            failed_steps,
            skipped_steps,
            duration_ms,
        )
        return PlaybookRunResult(
            playbook_name=playbook.name,
            passed=passed,
            total_steps=len(records),
            passed_steps=passed_steps,
            failed_steps=failed_steps,
            skipped_steps=skipped_steps,
            steps=records,
            variables=dict(variables),
            duration_ms=duration_ms,
            dry_run=options.dry_run,
            aborted=aborted,
            error=error,
        )


async def execute_action(
    registry: ActionRegistry,
    name: str,
    inputs: Mapping[str, Any] | None = None,
    options: RunOptions | None = None,
    clock: Clock | None = None,
) -> StepRecord:
    """Run a single action outside any playbook.

    Goes through the same template, lookup, coercion and timeout path as a
    playbook step, with an empty ``inputs`` scope.
    """
    options = options or RunOptions()
    interpreter = PlaybookInterpreter(registry, clock=clock)
    ctx = ExecutionContext(inputs={}, variables=dict(options.variables), options=options)
    step = Step(action=name, inputs=dict(inputs or {}))
    return await interpreter.execute_step(step, 1, "1", ctx)
