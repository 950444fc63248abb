# expressions.py
"""
Workflow expressions.

Two things live here:
  - `${{ ... }}` interpolation inside strings (step names, commands, `with` values)
  - `if:` condition evaluation

The grammar is the small subset release workflows actually use:

    expr    := or
    or      := and ("||" and)*
    and     := unary ("&&" unary)*
    unary   := "!" unary | compare
    compare := atom (("==" | "!=") atom)?
    atom    := literal | context.path | func "()" | "(" expr ")"

Status functions: success(), failure(), always(), cancelled().
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


class ExpressionError(ValueError):
    """Raised for malformed expressions or unknown context references."""


@dataclass
class ExprContext:
    matrix: Dict[str, Any] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    # job status so far, drives success()/failure()
    job_failed: bool = False


_INTERP_RE = re.compile(r"\$\{\{\s*(.*?)\s*\}\}")

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<op>==|!=|&&|\|\||!|\(|\))
      | (?P<str>'(?:[^']|'')*')
      | (?P<num>-?\d+(?:\.\d+)?)
      | (?P<name>[A-Za-z_][A-Za-z0-9_\-]*(?:\.[A-Za-z_][A-Za-z0-9_\-]*)*)
    )
    """,
    re.VERBOSE,
)


def _tokenize(src: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    src = src.strip()
    while pos < len(src):
        m = _TOKEN_RE.match(src, pos)
        if not m or m.end() == pos:
            raise ExpressionError(f"unexpected input at {pos}: {src[pos:]!r}")
        pos = m.end()
        kind = m.lastgroup
        tokens.append((kind, m.group(kind)))
        # trailing whitespace
        while pos < len(src) and src[pos].isspace():
            pos += 1
    return tokens


class _Parser:
    def __init__(self, tokens: List[Tuple[str, str]], ctx: ExprContext):
        self.tokens = tokens
        self.i = 0
        self.ctx = ctx

    def _peek(self) -> Tuple[str, str] | None:
        return self.tokens[self.i] if self.i < len(self.tokens) else None

    def _take(self) -> Tuple[str, str]:
        tok = self._peek()
        if tok is None:
            raise ExpressionError("unexpected end of expression")
        self.i += 1
        return tok

    def _accept_op(self, op: str) -> bool:
        tok = self._peek()
        if tok is not None and tok == ("op", op):
            self.i += 1
            return True
        return False

    def parse(self) -> Any:
        value = self._or()
        if self._peek() is not None:
            raise ExpressionError(f"unexpected token {self._peek()[1]!r}")
        return value

    def _or(self) -> Any:
        left = self._and()
        while self._accept_op("||"):
            right = self._and()
            left = left if _truthy(left) else right
        return left

    def _and(self) -> Any:
        left = self._unary()
        while self._accept_op("&&"):
            right = self._unary()
            left = right if _truthy(left) else left
        return left

    def _unary(self) -> Any:
        if self._accept_op("!"):
            return not _truthy(self._unary())
        return self._compare()

    def _compare(self) -> Any:
        left = self._atom()
        if self._accept_op("=="):
            return _loose_eq(left, self._atom())
        if self._accept_op("!="):
            return not _loose_eq(left, self._atom())
        return left

    def _atom(self) -> Any:
        kind, text = self._take()
        if kind == "op" and text == "(":
            value = self._or()
            if not self._accept_op(")"):
                raise ExpressionError("missing ')'")
            return value
        if kind == "str":
            return text[1:-1].replace("''", "'")
        if kind == "num":
            return float(text) if "." in text else int(text)
        if kind == "name":
            if self._accept_op("("):
                if not self._accept_op(")"):
                    raise ExpressionError(f"{text}() takes no arguments")
                return self._call(text)
            return self._lookup(text)
        raise ExpressionError(f"unexpected token {text!r}")

    def _call(self, fn: str) -> bool:
        if fn == "success":
            return not self.ctx.job_failed
        if fn == "failure":
            return self.ctx.job_failed
        if fn == "always":
            return True
        if fn == "cancelled":
            # a job that is running locally was not cancelled
            return False
        raise ExpressionError(f"unknown function {fn}()")

    def _lookup(self, dotted: str) -> Any:
        if dotted == "true":
            return True
        if dotted == "false":
            return False
        if dotted == "null":
            return None
        head, _, rest = dotted.partition(".")
        if head == "matrix":
            source: Dict[str, Any] = self.ctx.matrix
        elif head == "env":
            source = self.ctx.env
        else:
            raise ExpressionError(f"unknown context {head!r} in {dotted!r}")
        if not rest:
            return source
        # missing keys evaluate to null, like the hosted runner
        return source.get(rest)


def _truthy(v: Any) -> bool:
    return v not in (None, False, 0, "")


def _loose_eq(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a.lower() == b.lower()
    if isinstance(a, (int, float)) and isinstance(b, str) or isinstance(a, str) and isinstance(b, (int, float)):
        try:
            return float(a) == float(b)
        except ValueError:
            return False
    return a == b


def evaluate(expr: str, ctx: ExprContext) -> Any:
    """Evaluate a bare expression (no `${{ }}` wrapper required)."""
    m = _INTERP_RE.fullmatch(expr.strip())
    if m:
        expr = m.group(1)
    return _Parser(_tokenize(expr), ctx).parse()


def evaluate_condition(expr: str | None, ctx: ExprContext) -> bool:
    """
    Evaluate a step `if:`.

    No condition means `success()`. A condition that does not mention any
    status function is implicitly ANDed with `success()`.
    """
    if expr is None or not str(expr).strip():
        return not ctx.job_failed
    text = str(expr)
    value = _truthy(evaluate(text, ctx))
    if not any(fn in text for fn in ("success()", "failure()", "always()", "cancelled()")):
        return value and not ctx.job_failed
    return value


def _to_str(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def interpolate(text: str, ctx: ExprContext) -> str:
    """Replace every `${{ expr }}` in `text` with its evaluated value."""
    if "${{" not in text:
        return text
    return _INTERP_RE.sub(lambda m: _to_str(evaluate(m.group(1), ctx)), text)


def interpolate_value(value: Any, ctx: ExprContext) -> Any:
    if isinstance(value, str):
        return interpolate(value, ctx)
    if isinstance(value, list):
        return [interpolate_value(v, ctx) for v in value]
    if isinstance(value, dict):
        return {k: interpolate_value(v, ctx) for k, v in value.items()}
    return value
