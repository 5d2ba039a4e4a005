"""
Formula engine for KPI definitions.

A formula is an arithmetic expression over a machine's variable names, e.g.
``powerConsumption / (spindleSpeed * 0.001)``. Text is tokenized, parsed by
recursive descent into a small tagged tree and evaluated by walking that tree
against an explicit ``name -> number`` binding. Nothing is ever passed to
``eval``.

Arithmetic runs on numpy float64 scalars with floating point errors silenced,
so division by zero and domain errors yield ``inf``/``nan`` instead of raising.

Public pipeline:
    parse_formula      text -> ParsedFormula (raises FormulaSyntaxError)
    validate_formula   text + known names -> ValidationResult
    evaluate_formula   text + rows -> EvaluationResult
    aggregate_results  values + kind -> float
"""

import logging
import re
from dataclasses import dataclass, field
from functools import reduce
from typing import Any, Callable, Iterable, Mapping, Sequence
import numpy as np
from kpi_dashboard.errors import (
    FormulaError,
    FormulaEvaluationError,
    FormulaSyntaxError,
    FormulaValidationError,
)
from kpi_dashboard.schemas import AggregationKind

logger = logging.getLogger(__name__)

EMPTY_FORMULA_MESSAGE = 'Formula cannot be empty'
NESTING_MESSAGE = 'Formula is too deeply nested'
TIMESTAMP_FIELD = 'timestamp'


# ============================================================================
# Tokenizer
# ============================================================================

@dataclass(frozen=True)
class Token:
    type: str  # NUMBER, IDENT, OP, LPAREN, RPAREN, COMMA, END
    value: str
    pos: int


_TOKEN_PATTERNS = [
    ('WHITESPACE', r'\s+'),
    ('NUMBER', r'(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?'),
    ('IDENT', r'[A-Za-z_][A-Za-z0-9_]*'),
    ('OP', r'[-+*/%^]'),
    ('LPAREN', r'\('),
    ('RPAREN', r'\)'),
    ('COMMA', r','),
]
_TOKEN_RE = re.compile('|'.join(f'(?P<{name}>{pattern})' for name, pattern in _TOKEN_PATTERNS))


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match:
            raise FormulaSyntaxError(f"Unexpected character '{text[pos]}' at position {pos}", pos)
        kind = match.lastgroup
        if kind != 'WHITESPACE':
            tokens.append(Token(kind, match.group(0), pos))
        pos = match.end()
    tokens.append(Token('END', '', len(text)))
    return tokens


# ============================================================================
# Syntax tree
# ============================================================================

@dataclass(frozen=True)
class Literal:
    value: float


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: 'Node'


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: 'Node'
    right: 'Node'


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple['Node', ...]


Node = Literal | Identifier | UnaryOp | BinaryOp | Call


def _round_half_up(x):
    return np.floor(x + 0.5)


def _variadic(ufunc) -> Callable[..., Any]:
    return lambda *args: reduce(ufunc, args)


@dataclass(frozen=True)
class FunctionSpec:
    impl: Callable[..., Any]
    min_args: int
    max_args: int | None


FUNCTIONS: dict[str, FunctionSpec] = {
    'sin': FunctionSpec(np.sin, 1, 1),
    'cos': FunctionSpec(np.cos, 1, 1),
    'tan': FunctionSpec(np.tan, 1, 1),
    'asin': FunctionSpec(np.arcsin, 1, 1),
    'acos': FunctionSpec(np.arccos, 1, 1),
    'atan': FunctionSpec(np.arctan, 1, 1),
    'sinh': FunctionSpec(np.sinh, 1, 1),
    'cosh': FunctionSpec(np.cosh, 1, 1),
    'tanh': FunctionSpec(np.tanh, 1, 1),
    'sqrt': FunctionSpec(np.sqrt, 1, 1),
    'cbrt': FunctionSpec(np.cbrt, 1, 1),
    'abs': FunctionSpec(np.abs, 1, 1),
    'exp': FunctionSpec(np.exp, 1, 1),
    'ln': FunctionSpec(np.log, 1, 1),
    'log': FunctionSpec(np.log, 1, 1),
    'log10': FunctionSpec(np.log10, 1, 1),
    'log2': FunctionSpec(np.log2, 1, 1),
    'ceil': FunctionSpec(np.ceil, 1, 1),
    'floor': FunctionSpec(np.floor, 1, 1),
    'round': FunctionSpec(_round_half_up, 1, 1),
    'trunc': FunctionSpec(np.trunc, 1, 1),
    'sign': FunctionSpec(np.sign, 1, 1),
    'pow': FunctionSpec(np.power, 2, 2),
    'atan2': FunctionSpec(np.arctan2, 2, 2),
    'hypot': FunctionSpec(np.hypot, 2, 2),
    'min': FunctionSpec(_variadic(np.minimum), 1, None),
    'max': FunctionSpec(_variadic(np.maximum), 1, None),
}

CONSTANTS: dict[str, float] = {
    'PI': float(np.pi),
    'E': float(np.e),
}

_BINARY_OPS: dict[str, Callable[[Any, Any], Any]] = {
    '+': np.add,
    '-': np.subtract,
    '*': np.multiply,
    '/': np.divide,
    '%': np.fmod,
    '^': np.power,
}


# ============================================================================
# Parser
# ============================================================================

class _Parser:
    """
    Recursive descent over the token list.

    Precedence, lowest first: ``+ -``, ``* / %``, unary ``- +``, ``^``.
    Exponentiation is right-associative, so ``-2^2`` is ``-(2^2)`` and
    ``2^3^2`` is ``2^(3^2)``.
    """

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0

    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type != 'END':
            self.pos += 1
        return token

    def expect(self, token_type: str, description: str) -> Token:
        token = self.current()
        if token.type != token_type:
            raise self._unexpected(token, expected=description)
        return self.advance()

    def _unexpected(self, token: Token, expected: str | None = None) -> FormulaSyntaxError:
        if token.type == 'END':
            message = 'Unexpected end of formula'
            if expected:
                message += f", expected {expected}"
        else:
            message = f"Unexpected token '{token.value}' at position {token.pos}"
            if expected:
                message += f", expected {expected}"
        return FormulaSyntaxError(message, token.pos)

    def parse(self) -> Node:
        node = self.parse_additive()
        token = self.current()
        if token.type != 'END':
            raise self._unexpected(token)
        return node

    def parse_additive(self) -> Node:
        node = self.parse_multiplicative()
        while self.current().type == 'OP' and self.current().value in '+-':
            op = self.advance().value
            node = BinaryOp(op, node, self.parse_multiplicative())
        return node

    def parse_multiplicative(self) -> Node:
        node = self.parse_unary()
        while self.current().type == 'OP' and self.current().value in '*/%':
            op = self.advance().value
            node = BinaryOp(op, node, self.parse_unary())
        return node

    def parse_unary(self) -> Node:
        token = self.current()
        if token.type == 'OP' and token.value in '+-':
            self.advance()
            return UnaryOp(token.value, self.parse_unary())
        return self.parse_power()

    def parse_power(self) -> Node:
        base = self.parse_primary()
        if self.current().type == 'OP' and self.current().value == '^':
            self.advance()
            return BinaryOp('^', base, self.parse_unary())
        return base

    def parse_primary(self) -> Node:
        token = self.current()

        if token.type == 'NUMBER':
            self.advance()
            return Literal(float(token.value))

        if token.type == 'LPAREN':
            self.advance()
            node = self.parse_additive()
            self.expect('RPAREN', "')'")
            return node

        if token.type == 'IDENT':
            self.advance()
            if self.current().type == 'LPAREN':
                return self.parse_call(token)
            if token.value in FUNCTIONS:
                raise FormulaSyntaxError(
                    f"Function '{token.value}' must be called with arguments", token.pos
                )
            if token.value in CONSTANTS:
                return Literal(CONSTANTS[token.value])
            return Identifier(token.value)

        raise self._unexpected(token, expected='a number, variable or function')

    def parse_call(self, name_token: Token) -> Node:
        name = name_token.value
        spec = FUNCTIONS.get(name)
        if spec is None:
            raise FormulaSyntaxError(f"Unknown function '{name}'", name_token.pos)

        self.expect('LPAREN', "'('")
        args: list[Node] = []
        if self.current().type != 'RPAREN':
            args.append(self.parse_additive())
            while self.current().type == 'COMMA':
                self.advance()
                args.append(self.parse_additive())
        self.expect('RPAREN', "')'")

        if len(args) < spec.min_args or (spec.max_args is not None and len(args) > spec.max_args):
            if spec.max_args is None:
                expected, count = f"at least {spec.min_args}", spec.min_args
            elif spec.min_args == spec.max_args:
                expected, count = str(spec.min_args), spec.min_args
            else:
                expected, count = f"{spec.min_args} to {spec.max_args}", spec.max_args
            plural = '' if count == 1 else 's'
            raise FormulaSyntaxError(
                f"Function '{name}' expects {expected} argument{plural}, got {len(args)}",
                name_token.pos,
            )
        return Call(name, tuple(args))


# ============================================================================
# Compiled formula
# ============================================================================

def _collect_identifiers(node: Node, seen: dict[str, None]) -> None:
    if isinstance(node, Identifier):
        seen.setdefault(node.name, None)
    elif isinstance(node, UnaryOp):
        _collect_identifiers(node.operand, seen)
    elif isinstance(node, BinaryOp):
        _collect_identifiers(node.left, seen)
        _collect_identifiers(node.right, seen)
    elif isinstance(node, Call):
        for arg in node.args:
            _collect_identifiers(arg, seen)


def _to_number(name: str, value: Any) -> np.float64:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        raise FormulaEvaluationError(f"Variable '{name}' is not numeric")
    try:
        return np.float64(value)
    except OverflowError:
        raise FormulaEvaluationError(f"Variable '{name}' is out of range") from None


def _walk(node: Node, bindings: Mapping[str, Any]):
    if isinstance(node, Literal):
        return np.float64(node.value)
    if isinstance(node, Identifier):
        if node.name not in bindings:
            raise FormulaEvaluationError(f"undefined variable: {node.name}")
        return _to_number(node.name, bindings[node.name])
    if isinstance(node, UnaryOp):
        operand = _walk(node.operand, bindings)
        return np.negative(operand) if node.op == '-' else operand
    if isinstance(node, BinaryOp):
        return _BINARY_OPS[node.op](_walk(node.left, bindings), _walk(node.right, bindings))
    if isinstance(node, Call):
        args = [_walk(arg, bindings) for arg in node.args]
        return FUNCTIONS[node.name].impl(*args)
    raise FormulaEvaluationError(f"Unsupported node: {type(node).__name__}")


@dataclass(frozen=True)
class ParsedFormula:
    """Immutable compiled formula; rebuild it whenever the text changes."""

    source: str
    tree: Node
    _variables: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        seen: dict[str, None] = {}
        _collect_identifiers(self.tree, seen)
        object.__setattr__(self, '_variables', tuple(seen))

    def variables(self) -> list[str]:
        """Free identifiers in first-occurrence order."""
        return list(self._variables)

    def evaluate(self, bindings: Mapping[str, Any]) -> float:
        try:
            with np.errstate(all='ignore'):
                return float(_walk(self.tree, bindings))
        except RecursionError:
            raise FormulaEvaluationError(NESTING_MESSAGE) from None


def parse_formula(text: str) -> ParsedFormula:
    if not text or not text.strip():
        raise FormulaSyntaxError(EMPTY_FORMULA_MESSAGE)
    try:
        return ParsedFormula(text, _Parser(tokenize(text)).parse())
    except RecursionError:
        raise FormulaSyntaxError(NESTING_MESSAGE) from None


# ============================================================================
# Pipeline
# ============================================================================

@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: str | None = None
    position: int | None = None  # offset of the offending token, syntax errors only

    def to_dict(self) -> dict:
        result = {'isValid': self.is_valid, 'error': self.error}
        if self.position is not None:
            result['position'] = self.position
        return result


@dataclass(frozen=True)
class EvaluationResult:
    is_valid: bool
    result: list[float] | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {'isValid': self.is_valid, 'result': self.result, 'error': self.error}


def check_variables(parsed: ParsedFormula, variables: Iterable[str]) -> None:
    known = set(variables)
    unknown = [name for name in parsed.variables() if name not in known]
    if unknown:
        raise FormulaValidationError(unknown)


def validate_formula(formula: str, variables: Iterable[str]) -> ValidationResult:
    """
    Check that formula parses and only references names in ``variables``.

    Never raises; failures come back as ``ValidationResult(False, message)``.
    """
    if not formula or not formula.strip():
        return ValidationResult(False, EMPTY_FORMULA_MESSAGE)

    try:
        check_variables(parse_formula(formula), variables)
    except FormulaSyntaxError as e:
        return ValidationResult(False, str(e), e.position)
    except FormulaError as e:
        return ValidationResult(False, str(e))

    return ValidationResult(True)


def row_bindings(row: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in row.items() if key != TIMESTAMP_FIELD}


def evaluate_formula(formula: str, rows: Sequence[Mapping[str, Any]]) -> EvaluationResult:
    """
    Evaluate formula once per row, in row order.

    The formula is parsed a single time. Any failure aborts the whole call;
    there is no partial result.
    """
    if not formula or not formula.strip():
        return EvaluationResult(False, error=EMPTY_FORMULA_MESSAGE)

    try:
        parsed = parse_formula(formula)
        results = [parsed.evaluate(row_bindings(row)) for row in rows]
    except FormulaError as e:
        logger.debug(f"Formula evaluation failed for '{formula}': {e}")
        return EvaluationResult(False, error=str(e))

    return EvaluationResult(True, result=results)


def aggregate_results(results: Sequence[float], aggregation_type: AggregationKind | str) -> float:
    """Reduce a numeric series to one number. An empty series gives 0."""
    if len(results) == 0:
        return 0

    try:
        kind = AggregationKind(aggregation_type)
    except ValueError:
        logger.warning(f"Unknown aggregation type '{aggregation_type}', falling back to average")
        kind = AggregationKind.AVERAGE

    # np.array copies; the caller's sequence is never reordered
    values = np.array(results, dtype=float)

    if kind == AggregationKind.MEDIAN:
        return float(np.median(values))
    if kind == AggregationKind.SUM:
        return float(np.sum(values))
    if kind == AggregationKind.INTEGRATION:
        return float(np.sum((values[1:] + values[:-1]) / 2))
    if kind == AggregationKind.MIN:
        return float(np.min(values))
    if kind == AggregationKind.MAX:
        return float(np.max(values))
    return float(np.mean(values))
