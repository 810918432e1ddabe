from __future__ import annotations
import operator
import re
from typing import Callable, Dict, List, Optional, Sequence

from lexer import DivisionByZero, InvalidSyntax, UndefinedVariable, UnsupportedOperator
from scope import Scope, Value


# Detection order only; there is no precedence and no chaining.
ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "%")

NUMERIC_COMPARISONS: Dict[str, Callable[[int, int], bool]] = {
    "not": operator.ne,
    "!=": operator.ne,
    "is": operator.eq,
    "==": operator.eq,
    "gt": operator.gt,
    ">": operator.gt,
    "ge": operator.ge,
    ">=": operator.ge,
    "lt": operator.lt,
    "<": operator.lt,
    "le": operator.le,
    "<=": operator.le,
}

STRING_COMPARISONS: Dict[str, Callable[[str, str], bool]] = {
    "not": operator.ne,
    "!=": operator.ne,
    "is": operator.eq,
    "==": operator.eq,
}

_INTEGER = re.compile(r"^\s*[+-]?\d+\s*$")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def as_integer(value: Value) -> Optional[int]:
    if isinstance(value, int):
        return value
    if _INTEGER.match(value):
        return int(value)
    return None


def _truncating_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _div(a: int, b: int) -> int:
    if b == 0:
        raise DivisionByZero(f"Division by zero in '{a}/{b}'", rule="/")
    return _truncating_div(a, b)


def _mod(a: int, b: int) -> int:
    if b == 0:
        raise DivisionByZero(f"Modulo by zero in '{a}%{b}'", rule="%")
    return a - b * _truncating_div(a, b)


ARITHMETIC: Dict[str, Callable[[int, int], int]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": _div,
    "%": _mod,
}


class Evaluator:
    """Resolves operands, predicates and format strings for one invocation.

    ``args[0]`` is the invocation identity returned by ``#0``; the program or
    call arguments follow from index 1.
    """

    def __init__(self, scope: Scope, args: Sequence[str]) -> None:
        self.scope = scope
        self.args: List[str] = list(args)

    def positional(self, token: str) -> str:
        index_text = token[1:]
        if not index_text.isdigit():
            return ""
        index = int(index_text)
        if index >= len(self.args):
            return ""
        return self.args[index]

    def resolve_operand(self, token: str, *, strict: bool = False) -> Value:
        if token.startswith("#"):
            return self.positional(token)
        if self.scope.defined(token):
            return self.scope.read(token)
        for symbol in ARITHMETIC_OPERATORS:
            if symbol in token:
                return self._arithmetic(symbol, token, strict)
        if strict and _IDENTIFIER.match(token):
            raise UndefinedVariable(f"Undefined reference to variable '{token}'", rule="read")
        number = as_integer(token)
        return number if number is not None else token

    def _arithmetic(self, symbol: str, token: str, strict: bool) -> int:
        parts = token.split(symbol)
        # Only the first two fields take part: "1+2+3" is "1+2".
        lhs = self._arithmetic_operand(parts[0], symbol, token, strict)
        rhs = self._arithmetic_operand(parts[1], symbol, token, strict)
        return ARITHMETIC[symbol](lhs, rhs)

    def _arithmetic_operand(self, text: str, symbol: str, token: str, strict: bool) -> int:
        if text == "":
            return 0
        value = self.resolve_operand(text, strict=strict)
        number = as_integer(value) if value != "" else 0
        if number is None:
            raise UnsupportedOperator(
                f"Operator '{symbol}' requires integer operands in '{token}' (got '{value}')",
                rule=symbol,
            )
        return number

    def split_predicate(self, predicate: str) -> List[str]:
        tokens = predicate.split()
        if len(tokens) != 3:
            raise InvalidSyntax(
                f"Invalid predicate '{predicate}' (expected '<operand> <operator> <operand>')",
                rule="predicate",
            )
        return tokens

    def evaluate_predicate(self, lhs_token: str, op: str, rhs_token: str) -> bool:
        lhs = self.resolve_operand(lhs_token)
        rhs = self.resolve_operand(rhs_token)
        left, right = as_integer(lhs), as_integer(rhs)
        if left is not None and right is not None:
            numeric = NUMERIC_COMPARISONS.get(op)
            if numeric is None:
                raise UnsupportedOperator(f"Unknown operator '{op}' between '{lhs}' and '{rhs}'", rule=op)
            return numeric(left, right)
        textual = STRING_COMPARISONS.get(op)
        if textual is None:
            raise UnsupportedOperator(f"Unknown operator '{op}' between '{lhs}' and '{rhs}'", rule=op)
        return textual(str(lhs), str(rhs))

    def test(self, predicate: str) -> bool:
        lhs, op, rhs = self.split_predicate(predicate)
        return self.evaluate_predicate(lhs, op, rhs)

    def evaluate_format(self, text: str) -> str:
        out: List[str] = []
        operand: List[str] = []
        on_escape = False
        on_operand = False
        for ch in text:
            if on_escape:
                out.append(ch)
                on_escape = False
                continue
            if on_operand:
                if ch == "}":
                    on_operand = False
                    out.append(str(self.resolve_operand("".join(operand), strict=True)))
                    operand.clear()
                else:
                    operand.append(ch)
                continue
            if ch == "\\":
                on_escape = True
            elif ch == "{":
                on_operand = True
            else:
                out.append(ch)
        return "".join(out)
