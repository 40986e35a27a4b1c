"""``{{ expression }}`` templates for step inputs and conditions.

The expression language is deliberately tiny -- no function calls, no
arithmetic, no attribute access on Python objects::

    expr    := unary (('==' | '!=') unary)?
    unary   := '!' unary | primary
    primary := literal | path
    path    := ('inputs' | 'variables') ('.' name | '[' index ']')*
    literal := true | false | null | number | 'string' | "string"

A string that is exactly one placeholder keeps the native type of the
value (``"{{ variables.user }}"`` yields the dict itself).  Placeholders
embedded in longer text are stringified.  Paths that do not exist resolve
to ``None``; unknown roots and malformed expressions raise ``TemplateError``.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from tapbook.errors import TemplateError

ROOTS = ("inputs", "variables")

FALSY_STRINGS = frozenset({"", "false", "0", "no", "off", "null", "none"})

_PLACEHOLDER_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<op>==|!=|!|\.|\[|\])
      | (?P<number>-?\d+(?:\.\d+)?)
      | (?P<string>"[^"]*"|'[^']*')
      | (?P<name>[A-Za-z_][A-Za-z0-9_\-]*)
    )""",
    re.VERBOSE,
)

_LITERALS = {"true": True, "false": False, "null": None, "none": None}


def _tokenize(expression: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = expression.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m or m.end() == pos:
            raise TemplateError(f"Unexpected character {text[pos:].strip()[:1]!r} in expression {expression.strip()!r}")
        kind = m.lastgroup
        tokens.append((kind, m.group(kind)))
        pos = m.end()
    return tokens


class _Parser:
    """Recursive-descent evaluator over a token list."""

    def __init__(self, expression: str, scope: Mapping[str, Any]) -> None:
        self._expression = expression.strip()
        self._tokens = _tokenize(expression)
        self._pos = 0
        self._scope = scope

    def evaluate(self) -> Any:
        if not self._tokens:
            raise TemplateError("Empty template expression")
        value = self._expr()
        if self._pos < len(self._tokens):
            raise TemplateError(
                f"Unexpected {self._tokens[self._pos][1]!r} in expression {self._expression!r}"
            )
        return value

    def _peek(self) -> tuple[str, str] | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise TemplateError(f"Unexpected end of expression {self._expression!r}")
        self._pos += 1
        return token

    def _expr(self) -> Any:
        left = self._unary()
        token = self._peek()
        if token and token[0] == "op" and token[1] in ("==", "!="):
            self._pos += 1
            right = self._unary()
            equal = values_equal(left, right)
            return equal if token[1] == "==" else not equal
        return left

    def _unary(self) -> Any:
        token = self._peek()
        if token == ("op", "!"):
            self._pos += 1
            return not is_truthy(self._unary())
        return self._primary()

    def _primary(self) -> Any:
        kind, text = self._next()
        if kind == "number":
            return float(text) if "." in text else int(text)
        if kind == "string":
            return text[1:-1]
        if kind == "name":
            if text in _LITERALS:
                return _LITERALS[text]
            return self._path(text)
        raise TemplateError(f"Unexpected {text!r} in expression {self._expression!r}")

    def _path(self, root: str) -> Any:
        if root not in ROOTS:
            raise TemplateError(
                f"Unknown template root '{root}' in {self._expression!r} (expected one of: {', '.join(ROOTS)})"
            )
        current: Any = self._scope.get(root)
        while True:
            token = self._peek()
            if token == ("op", "."):
                self._pos += 1
                kind, key = self._next()
                if kind not in ("name", "number"):
                    raise TemplateError(f"Expected a name after '.' in {self._expression!r}")
                current = _lookup(current, key)
            elif token == ("op", "["):
                self._pos += 1
                kind, key = self._next()
                if kind == "number" and "." not in key:
                    current = _lookup(current, int(key))
                elif kind == "string":
                    current = _lookup(current, key[1:-1])
                else:
                    raise TemplateError(f"Expected an index or quoted key in {self._expression!r}")
                if self._next() != ("op", "]"):
                    raise TemplateError(f"Missing ']' in {self._expression!r}")
            else:
                return current


def _lookup(container: Any, key: str | int) -> Any:
    if container is None:
        return None
    if isinstance(container, Mapping):
        if key in container:
            return container[key]
        return container.get(str(key))
    if isinstance(container, (list, tuple)):
        try:
            index = int(key)
        except ValueError:
            return None
        if -len(container) <= index < len(container):
            return container[index]
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def evaluate(expression: str, scope: Mapping[str, Any]) -> Any:
    """Evaluate a bare expression (no braces) against *scope*."""
    return _Parser(expression, scope).evaluate()


def render(value: Any, scope: Mapping[str, Any]) -> Any:
    """Resolve every placeholder inside *value* (strings, lists and dicts)."""
    if isinstance(value, str):
        return _render_string(value, scope)
    if isinstance(value, Mapping):
        return {k: render(v, scope) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [render(v, scope) for v in value]
    return value


def has_placeholders(text: str) -> bool:
    return "{{" in text


def evaluate_condition(condition: str, scope: Mapping[str, Any]) -> bool:
    """Truth of a step condition: templated (``{{ ... }}``) or bare."""
    if has_placeholders(condition):
        return is_truthy(render(condition, scope))
    return is_truthy(evaluate(condition, scope))


def is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in FALSY_STRINGS
    return bool(value)


def values_equal(left: Any, right: Any) -> bool:
    """Equality that tolerates the string forms YAML and the CLI produce (``"3" == 3``)."""
    if isinstance(left, str) != isinstance(right, str):
        return stringify(left) == stringify(right) or _numeric_equal(left, right)
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def _numeric_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    try:
        return float(left) == float(right)
    except (TypeError, ValueError):
        return False


def _render_string(text: str, scope: Mapping[str, Any]) -> Any:
    matches = list(_PLACEHOLDER_RE.finditer(text))
    if not matches:
        if "{{" in text:
            raise TemplateError(f"Unclosed template expression in {text!r}")
        return text

    if len(matches) == 1 and matches[0].span() == (0, len(text)):
        return evaluate(matches[0].group(1), scope)

    parts: list[str] = []
    last = 0
    for m in matches:
        parts.append(text[last:m.start()])
        parts.append(stringify(evaluate(m.group(1), scope)))
        last = m.end()
    tail = text[last:]
    if "{{" in tail:
        raise TemplateError(f"Unclosed template expression in {text!r}")
    parts.append(tail)
    return "".join(parts)
