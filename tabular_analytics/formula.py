"""
Arithmetic formula engine for calculated columns.

Grammar (no functions, no strings, no assignment)::

    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := "-" unary | primary
    primary    := NUMBER | IDENTIFIER | "(" expression ")"

Identifiers are column references. Evaluation is strict: a referenced field
that is absent or not a plain number makes that record's value None and adds
an entry to the errors list; the rest of the batch is still evaluated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from tabular_analytics.errors import FormulaEvaluationError, FormulaSyntaxError
from tabular_analytics.schemas import (
    CalculationResult,
    FormulaPreview,
    Record,
    ValidationResult,
)
from tabular_analytics.utils import strict_number

DEFAULT_PREVIEW_ROWS = 10

_TOKEN_RE = re.compile(
    r"(?:"
    r"(?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>[-+*/()])"
    r")"
)


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class ColumnRef:
    name: str


@dataclass(frozen=True)
class Negate:
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, ColumnRef, Negate, BinaryOp]


@dataclass(frozen=True)
class Formula:
    """Parsed formula. ``variables`` is fixed at parse time."""

    expression: str
    variables: frozenset
    tree: Node = field(repr=False, compare=False)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    pos: int


def _tokenize(expr: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while True:
        while pos < len(expr) and expr[pos].isspace():
            pos += 1
        if pos >= len(expr):
            return tokens
        m = _TOKEN_RE.match(expr, pos)
        if not m:
            raise FormulaSyntaxError(f"Unexpected character '{expr[pos]}' at position {pos + 1}")
        tokens.append(_Token(m.lastgroup, m.group(), pos))
        pos = m.end()


class _Parser:
    def __init__(self, tokens: Sequence[_Token]):
        self.tokens = tokens
        self.pos = 0
        self.variables: set = set()

    def _peek(self) -> Optional[_Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _advance(self) -> _Token:
        token = self._peek()
        if token is None:
            raise FormulaSyntaxError("Unexpected end of formula")
        self.pos += 1
        return token

    def parse(self) -> Node:
        node = self._expression()
        extra = self._peek()
        if extra is not None:
            raise FormulaSyntaxError(
                f"Unexpected token '{extra.text}' at position {extra.pos + 1}"
            )
        return node

    def _expression(self) -> Node:
        node = self._term()
        while self._peek() is not None and self._peek().text in ("+", "-"):
            op = self._advance().text
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self._peek() is not None and self._peek().text in ("*", "/"):
            op = self._advance().text
            node = BinaryOp(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        token = self._peek()
        if token is not None and token.text == "-":
            self._advance()
            return Negate(self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._advance()
        if token.kind == "number":
            return Number(float(token.text))
        if token.kind == "name":
            self.variables.add(token.text)
            return ColumnRef(token.text)
        if token.text == "(":
            node = self._expression()
            closing = self._peek()
            if closing is None or closing.text != ")":
                raise FormulaSyntaxError("Missing closing parenthesis")
            self._advance()
            return node
        raise FormulaSyntaxError(f"Unexpected token '{token.text}' at position {token.pos + 1}")


def parse_formula(expr: str) -> Formula:
    """Parse formula text; raises FormulaSyntaxError when malformed."""
    if not isinstance(expr, str) or not expr.strip():
        raise FormulaSyntaxError("Formula is empty")
    parser = _Parser(_tokenize(expr))
    tree = parser.parse()
    return Formula(expression=expr, variables=frozenset(parser.variables), tree=tree)


def variables(formula: Formula) -> frozenset:
    return formula.variables


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _fields(record: Union[Record, Mapping[str, Any]]) -> Mapping[str, Any]:
    return record.fields if isinstance(record, Record) else record


def _eval(node: Node, fields: Mapping[str, Any]) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, ColumnRef):
        if node.name not in fields or fields[node.name] is None:
            raise FormulaEvaluationError(f"Column '{node.name}' is missing")
        value = strict_number(fields[node.name])
        if value is None:
            raise FormulaEvaluationError(
                f"Column '{node.name}' is not numeric ({fields[node.name]!r})"
            )
        return value
    if isinstance(node, Negate):
        return -_eval(node.operand, fields)

    left = _eval(node.left, fields)
    right = _eval(node.right, fields)
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    if right == 0:
        raise FormulaEvaluationError("Division by zero")
    return left / right


def evaluate(formula: Formula, record: Union[Record, Mapping[str, Any]]) -> float:
    """Evaluate against one record; raises FormulaEvaluationError on failure."""
    return _eval(formula.tree, _fields(record))


def execute_formula(
    formula: Union[Formula, str], records: Iterable[Union[Record, Mapping[str, Any]]]
) -> CalculationResult:
    """Evaluate over a batch. Failed rows give None plus a ``Row n: ...`` error."""
    if isinstance(formula, str):
        formula = parse_formula(formula)

    values: List[Optional[float]] = []
    errors: List[str] = []
    for i, record in enumerate(records):
        try:
            values.append(evaluate(formula, record))
        except FormulaEvaluationError as e:
            values.append(None)
            errors.append(f"Row {i + 1}: {e}")
    return CalculationResult(values=values, errors=errors)


# ---------------------------------------------------------------------------
# Validation & preview
# ---------------------------------------------------------------------------

def validate_formula(formula: Union[Formula, str], known_columns: Iterable[str]) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    if isinstance(formula, str):
        try:
            formula = parse_formula(formula)
        except FormulaSyntaxError as e:
            return ValidationResult(is_valid=False, errors=[str(e)])

    known = set(known_columns)
    for name in sorted(formula.variables):
        if name not in known:
            errors.append(f"Column '{name}' not found in dataset")

    if not formula.variables:
        warnings.append("Formula contains no column references")
        # constants evaluate the same for every row, so a fault here is fatal
        try:
            evaluate(formula, {})
        except FormulaEvaluationError as e:
            errors.append(f"Formula evaluation error: {e}")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def generate_preview(
    expr: str,
    records: Sequence[Union[Record, Mapping[str, Any]]],
    known_columns: Iterable[str],
    limit: int = DEFAULT_PREVIEW_ROWS,
    column_name: str = "",
) -> FormulaPreview:
    validation = validate_formula(expr, known_columns)
    if not validation.is_valid:
        return FormulaPreview(column_name=column_name, formula=expr, errors=validation.errors)

    result = execute_formula(parse_formula(expr), list(records)[:limit])
    return FormulaPreview(
        column_name=column_name,
        formula=expr,
        preview_values=result.values,
        errors=result.errors,
    )
