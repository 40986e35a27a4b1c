"""Error taxonomy shared by the engine, the registry and the interpreter.

Every error carries a ``kind`` string.  Step records store the kind so a
report can attribute each failure to a category without inspecting
exception classes.
"""

from __future__ import annotations

from pathlib import Path


class TapbookError(Exception):
    """Base class for all tapbook errors."""

    kind = "error"


class ParseError(TapbookError):
    """Raised when a playbook document or shorthand command is malformed."""

    kind = "parse"

    def __init__(
        self,
        message: str,
        file_path: str | Path | None = None,
        step_index: int | None = None,
    ) -> None:
        self.message = message
        self.file_path = str(file_path) if file_path is not None else None
        self.step_index = step_index
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.file_path:
            return f"{self.message} ({self.file_path})"
        return self.message


class ValidationError(TapbookError):
    """Raised when a step cannot be executed as written (bad inputs, bad template)."""

    kind = "validation"


class TemplateError(ValidationError):
    """Raised when a ``{{ expression }}`` cannot be evaluated."""


class UnknownActionError(ValidationError):
    """Raised when a step names an action that is not registered."""

    kind = "unknown_action"

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Action '{action}' is not registered")


class ActionRegistryError(TapbookError):
    """Raised when the action registry is used incorrectly."""

    pass


class ElementNotFoundError(TapbookError):
    """Raised when a target cannot be located in the UI tree."""

    kind = "element_not_found"

    def __init__(self, message: str, suggestions: list[str] | None = None) -> None:
        self.suggestions = list(suggestions or [])
        super().__init__(message)


class ActionExecutionError(TapbookError):
    """Raised when the device rejects or fails an action."""

    kind = "action_failed"


class StepTimeoutError(TapbookError):
    """Raised when a step or a retry loop exceeds its time budget."""

    kind = "timeout"
