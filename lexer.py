from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class SourceLocation:
    file: str
    line: int
    statement: str

    def describe(self) -> str:
        return f"\"{self.file}\", line {self.line}"


class BareError(Exception):
    """Base class for interpreter errors."""


class EndOfInput(BareError):
    """Raised when a cursor is advanced past its last line."""


class BareRuntimeError(BareError):
    """Raised for faults while running a program."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rule = rule
        self.step_index: Optional[int] = None


class UndefinedVariable(BareRuntimeError):
    pass


class InvalidSyntax(BareRuntimeError):
    pass


class UnterminatedBlock(BareRuntimeError):
    pass


class UnsupportedOperator(BareRuntimeError):
    pass


class DivisionByZero(BareRuntimeError):
    pass


@dataclass
class SourceLine:
    location: SourceLocation
    # Leading whitespace trimmed, comment removed.
    text: str

    @property
    def blank(self) -> bool:
        return self.text.strip() == ""


def strip_comment(text: str) -> str:
    """Drop everything from the first unescaped ';' to the end of the line."""
    escaped = False
    for index, ch in enumerate(text):
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == ";":
            return text[:index]
    return text


class Lexer:
    def __init__(self, text: str, filename: str) -> None:
        self.text = text
        self.filename = filename

    def lines(self) -> List[SourceLine]:
        out: List[SourceLine] = []
        for number, raw in enumerate(self.text.splitlines(), start=1):
            trimmed = raw.lstrip()
            out.append(
                SourceLine(
                    location=SourceLocation(file=self.filename, line=number, statement=trimmed.rstrip()),
                    text=strip_comment(trimmed),
                )
            )
        return out


class SourceCursor:
    """Walks a sequence of source lines one statement at a time.

    Blank lines (including lines that only held a comment) are skipped by
    ``peek`` but keep their numbers, so positions stay accurate.
    """

    def __init__(self, lines: List[SourceLine]) -> None:
        self._lines = lines
        self._index = 0

    def _skip_blank(self) -> None:
        lines = self._lines
        while self._index < len(lines) and lines[self._index].blank:
            self._index += 1

    @property
    def at_end(self) -> bool:
        self._skip_blank()
        return self._index >= len(self._lines)

    @property
    def line_number(self) -> Optional[int]:
        line = self.peek()
        return line.location.line if line is not None else None

    def peek(self) -> Optional[SourceLine]:
        self._skip_blank()
        if self._index >= len(self._lines):
            return None
        return self._lines[self._index]

    def advance(self) -> SourceLine:
        self._skip_blank()
        if self._index >= len(self._lines):
            raise EndOfInput("No lines remaining")
        line = self._lines[self._index]
        self._index += 1
        return line
