from __future__ import annotations
import re
from dataclasses import dataclass
from typing import List, Optional

from lexer import InvalidSyntax, SourceCursor, SourceLine, SourceLocation, UnterminatedBlock


_BLOCK_HEADER = re.compile(r"^(while|if|function)\s+(.*?)\s+do\s*$")
_ELSE_CLAUSE = re.compile(r"^else(?:\s+if\s+(?P<predicate>.+?))?(?:\s+do)?\s*$")
_NAMED = re.compile(r"^(clear|incr|decr)\s+(\S+)")
_SET = re.compile(r"^set\s+(\S+)(?:\s(?P<format>.*))?$")


@dataclass
class Node:
    location: SourceLocation


class Statement(Node):
    pass


@dataclass
class ClearStatement(Statement):
    name: str


@dataclass
class IncrementStatement(Statement):
    name: str
    delta: int


@dataclass
class DebugStatement(Statement):
    name: str


@dataclass
class PrintStatement(Statement):
    format: str


@dataclass
class SetStatement(Statement):
    name: str
    format: str


@dataclass
class WhileStatement(Statement):
    predicate: str


@dataclass
class IfStatement(Statement):
    predicate: str


@dataclass
class FuncDef(Statement):
    name: str


@dataclass
class CallStatement(Statement):
    name: str
    args: List[str]


@dataclass
class ElseClause(Node):
    # None for a bare ``else``.
    predicate: Optional[str]


@dataclass
class Block(Node):
    kind: str
    lines: List[SourceLine]
    # The line that ended the block: its own ``end`` (consumed) or an
    # ``else`` clause (left on the cursor).
    terminator: SourceLine

    @property
    def stopped_at_else(self) -> bool:
        return is_else_clause(self.terminator.text)


def is_block_header(text: str) -> bool:
    return _BLOCK_HEADER.match(text.strip()) is not None


def is_block_end(text: str) -> bool:
    return text.strip() == "end"


def is_else_clause(text: str) -> bool:
    return _ELSE_CLAUSE.match(text.strip()) is not None


def parse_else_clause(line: SourceLine) -> ElseClause:
    match = _ELSE_CLAUSE.match(line.text.strip())
    if match is None:
        raise InvalidSyntax(f"Invalid else clause: '{line.text.strip()}'", location=line.location, rule="if")
    return ElseClause(location=line.location, predicate=match.group("predicate"))


def _parse_header(kind: str, line: SourceLine) -> str:
    match = _BLOCK_HEADER.match(line.text.strip())
    if match is None or match.group(1) != kind:
        raise InvalidSyntax(
            f"Invalid {kind} header: '{line.text.strip()}' (expected '{kind} ... do')",
            location=line.location,
            rule=kind,
        )
    return match.group(2)


def parse_statement(line: SourceLine) -> Statement:
    """Classify one stripped source line; first matching prefix wins."""
    text = line.text
    location = line.location

    for keyword in ("clear", "incr", "decr"):
        if text.startswith(keyword + " "):
            match = _NAMED.match(text)
            if match is None:
                raise InvalidSyntax(
                    f"Got blank variable name in '{text.strip()}'", location=location, rule=keyword
                )
            name = match.group(2)
            if keyword == "clear":
                return ClearStatement(location=location, name=name)
            return IncrementStatement(location=location, name=name, delta=1 if keyword == "incr" else -1)

    if text.startswith("debug "):
        name = text[len("debug ") :].strip()
        if not name:
            raise InvalidSyntax("Got blank variable name in 'debug'", location=location, rule="debug")
        return DebugStatement(location=location, name=name)

    if text.startswith("print "):
        return PrintStatement(location=location, format=text[len("print ") :])

    if text.startswith("while "):
        return WhileStatement(location=location, predicate=_parse_header("while", line))

    if text.startswith("if "):
        return IfStatement(location=location, predicate=_parse_header("if", line))

    if text.startswith("function "):
        name = _parse_header("function", line)
        if not name or len(name.split()) != 1:
            raise InvalidSyntax(f"Invalid function name '{name}'", location=location, rule="function")
        return FuncDef(location=location, name=name)

    if text.startswith("set "):
        match = _SET.match(text)
        if match is None:
            raise InvalidSyntax("Got blank variable name in 'set'", location=location, rule="set")
        return SetStatement(location=location, name=match.group(1), format=match.group("format") or "")

    stripped = text.strip()
    if is_block_end(stripped) or is_else_clause(stripped):
        raise InvalidSyntax(f"Unexpected '{stripped}' outside of a block", location=location, rule="block")

    words = stripped.split()
    return CallStatement(location=location, name=words[0], args=words[1:])


class BlockReader:
    """Carves the body of a block construct out of a cursor.

    The header line must already be consumed. Nesting is tracked with a plain
    depth counter over ``while``/``if``/``function`` headers and ``end`` lines;
    every opener owns exactly one ``end``.
    """

    def __init__(self, cursor: SourceCursor) -> None:
        self.cursor = cursor

    def read(self, kind: str, header: SourceLocation, *, stop_at_else: bool = False) -> Block:
        cursor = self.cursor
        depth = 0
        body: List[SourceLine] = []
        while True:
            line = cursor.peek()
            if line is None:
                raise UnterminatedBlock(
                    f"Reached end of file while trying to parse {kind} block",
                    location=header,
                    rule=kind,
                )
            if depth == 0 and stop_at_else and is_else_clause(line.text):
                return Block(location=header, kind=kind, lines=body, terminator=line)
            cursor.advance()
            if is_block_header(line.text):
                depth += 1
            elif is_block_end(line.text):
                depth -= 1
            if depth < 0:
                return Block(location=header, kind=kind, lines=body, terminator=line)
            body.append(line)
