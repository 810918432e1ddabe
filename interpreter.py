from __future__ import annotations
import json
import os
import sys
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from evaluator import Evaluator, as_integer
from hooks import HookRegistry
from lexer import (
    BareError,
    BareRuntimeError,
    InvalidSyntax,
    Lexer,
    SourceCursor,
    SourceLine,
    SourceLocation,
    UnsupportedOperator,
)
from parser import (
    Block,
    BlockReader,
    CallStatement,
    ClearStatement,
    DebugStatement,
    FuncDef,
    IfStatement,
    IncrementStatement,
    PrintStatement,
    SetStatement,
    Statement,
    WhileStatement,
    parse_else_clause,
    parse_statement,
)
from scope import Function, Scope, ScopeStore


PSEUDO_FILES = ("<string>", "<stdin>", "<repl>")

DEFAULT_MAX_DEPTH = 10_000


@dataclass
class Frame:
    """One invocation: a body being walked by its own cursor in its own scope."""

    name: str
    scope: Scope
    args: List[str]
    frame_id: str
    call_location: Optional[SourceLocation]
    cursor: SourceCursor = field(default_factory=lambda: SourceCursor([]))
    # Runs once the body is exhausted, after the frame is popped.
    on_return: Optional[Callable[[], None]] = None
    evaluator: Evaluator = field(init=False)

    def __post_init__(self) -> None:
        self.evaluator = Evaluator(self.scope, [self.scope.path, *self.args])


@dataclass
class StateEntry:
    step: int
    frame_id: Optional[str]
    location: Optional[SourceLocation]
    rule: str
    snapshot: Optional[Dict[str, str]]


class StateLogger:
    """Bounded log of executed statements.

    The newest entry of every live frame is kept apart from the history so a
    traceback can point into each frame even after the history wrapped.
    """

    def __init__(self, history: int = 1000) -> None:
        self.entries: Deque[StateEntry] = deque(maxlen=history)
        self.steps = 0
        self._latest: Dict[str, StateEntry] = {}

    @property
    def last(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None

    def record(
        self,
        frame: Optional[Frame],
        location: Optional[SourceLocation],
        rule: str,
        snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        self.steps += 1
        entry = StateEntry(
            step=self.steps,
            frame_id=frame.frame_id if frame else None,
            location=location,
            rule=rule,
            snapshot=snapshot,
        )
        self.entries.append(entry)
        if frame is not None:
            self._latest[frame.frame_id] = entry
        return entry

    def latest_for(self, frame_id: str) -> Optional[StateEntry]:
        return self._latest.get(frame_id)

    def forget(self, frame_id: str) -> None:
        self._latest.pop(frame_id, None)


def program_name_for(filename: str) -> str:
    if filename in PSEUDO_FILES:
        return filename.strip("<>")
    base = os.path.basename(filename)
    stem, _ext = os.path.splitext(base)
    return stem or base


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool,
        args: Optional[Sequence[str]] = None,
        hooks: Optional[HookRegistry] = None,
        output_sink: Optional[Callable[[str], None]] = None,
        debug_sink: Optional[Callable[[str], None]] = None,
        history: int = 1000,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.source = source
        self.filename = filename if filename in PSEUDO_FILES else os.path.abspath(filename)
        self.program_name = program_name_for(filename)
        self.verbose = verbose
        self.args: List[str] = [str(a) for a in (args or [])]
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.output_sink = output_sink or (lambda text: print(text))
        self.debug_sink = debug_sink or (lambda text: print(text, file=sys.stderr))
        self.max_depth = max_depth

        self.store = ScopeStore()
        self.logger = StateLogger(history=history)
        self.call_stack: List[Frame] = []
        self.frame_counter = 0

    def run(self) -> None:
        lines = Lexer(self.source, self.filename).lines()
        program_frame = self.begin()
        self._emit_event("program_start", self, program_frame.scope)
        try:
            self._execute_block(lines, program_frame)
        except BareRuntimeError as error:
            self._fail(error)
            raise
        except Exception as exc:
            last = self.logger.last
            wrapped = BareRuntimeError(
                f"Internal interpreter error: {exc}",
                location=last.location if last else None,
                rule="internal",
            )
            self._fail(wrapped)
            raise wrapped from exc
        self._emit_event("program_end", self, 0)
        self.call_stack.pop()

    def begin(self) -> Frame:
        """Push the top-level frame for the program scope."""
        scope = self.store.program(self.program_name)
        frame = self._new_frame(self.program_name, scope, self.args, None)
        self.call_stack.append(frame)
        return frame

    def execute_source(self, text: str, frame: Frame) -> None:
        """Run more source against an existing frame (used by the REPL)."""
        self._execute_block(Lexer(text, self.filename).lines(), frame)

    def emit(self, text: str, location: SourceLocation) -> None:
        if self.verbose:
            self.output_sink(f"log: {location.describe()}: {text}")
        else:
            self.output_sink(text)

    def _debug(self, location: Optional[SourceLocation], message: str) -> None:
        if not self.verbose:
            return
        if location is None:
            self.debug_sink(f"debug: {message}")
        else:
            self.debug_sink(f"debug: {location.describe()}: {message}")

    def _fail(self, error: BareRuntimeError) -> None:
        if self.logger.last is not None:
            error.step_index = self.logger.last.step
        self._emit_event("on_error", self, error)

    def _execute_block(self, lines: List[SourceLine], frame: Frame) -> None:
        """Run ``lines`` in ``frame`` until it and everything it spawned are done.

        ``frame`` must be on top of the call stack and stays there. Nested
        invocations are pushed onto the call stack instead of recursing, so
        the depth of a program is bounded only by ``max_depth``.
        """
        frame.cursor = SourceCursor(lines)
        while True:
            current = self.call_stack[-1]
            line = current.cursor.peek()
            if line is None:
                if current is frame:
                    return
                self._return_from(current)
                continue
            current.cursor.advance()
            self._debug(line.location, f"Parsing line '{line.text.strip()}'")
            try:
                statement = parse_statement(line)
                self._emit_event("before_statement", self, statement, current)
                deferred = self._execute_statement(statement, current)
            except BareRuntimeError as err:
                if err.location is None:
                    err.location = line.location
                raise
            if not deferred:
                self._emit_event("after_statement", self, statement, current)

    def _execute_statement(self, statement: Statement, frame: Frame) -> bool:
        """Execute one statement; True when it finishes in a spawned invocation."""
        self._log_step(statement.__class__.__name__, statement.location)
        scope = frame.scope
        if isinstance(statement, ClearStatement):
            scope.write(statement.name, 0)
            return False
        if isinstance(statement, IncrementStatement):
            previous = scope.read(statement.name)
            number = as_integer(previous)
            if number is None:
                verb = "increment" if statement.delta > 0 else "decrement"
                raise UnsupportedOperator(
                    f"Cannot {verb} non-integer variable '{statement.name}' (value '{previous}')",
                    location=statement.location,
                    rule="incr" if statement.delta > 0 else "decr",
                )
            scope.write(statement.name, number + statement.delta)
            return False
        if isinstance(statement, DebugStatement):
            self.emit(f"{statement.name}={scope.read(statement.name)}", statement.location)
            return False
        if isinstance(statement, PrintStatement):
            self.emit(frame.evaluator.evaluate_format(statement.format), statement.location)
            return False
        if isinstance(statement, SetStatement):
            value = frame.evaluator.evaluate_format(statement.format)
            self._debug(statement.location, f"Setting '{statement.name}' to '{value}'")
            scope.write(statement.name, value)
            return False
        if isinstance(statement, FuncDef):
            body = BlockReader(frame.cursor).read("function", statement.location)
            scope.define_function(Function(statement.name, body))
            self._debug(statement.location, f"Defined function '{statement.name}' in scope '{scope.path}'")
            return False
        if isinstance(statement, WhileStatement):
            self._execute_while(statement, frame)
            return True
        if isinstance(statement, IfStatement):
            return self._execute_if(statement, frame)
        if isinstance(statement, CallStatement):
            self._execute_call(statement, frame)
            return True
        raise InvalidSyntax("Unsupported statement", location=statement.location)

    def _test(self, predicate: str, frame: Frame, location: SourceLocation) -> bool:
        try:
            result = frame.evaluator.test(predicate)
        except BareRuntimeError as err:
            if err.location is None:
                err.location = location
            raise
        self._debug(location, f"Testing predicate '{predicate}' -> {'true' if result else 'false'}")
        return result

    def _execute_while(self, statement: WhileStatement, frame: Frame) -> None:
        block = BlockReader(frame.cursor).read("while", statement.location)
        label = f"while_{statement.location.line}"
        # One scope for every iteration: loop locals carry over.
        body_scope = frame.scope.child(label)

        def iterate() -> None:
            if self._test(statement.predicate, frame, statement.location):
                self._spawn(block, body_scope, frame.args, label, statement.location, iterate)
            else:
                self._emit_event("after_statement", self, statement, frame)

        iterate()

    def _execute_if(self, statement: IfStatement, frame: Frame) -> bool:
        cursor = frame.cursor
        reader = BlockReader(cursor)
        predicate: Optional[str] = statement.predicate
        location = statement.location
        while True:
            block = reader.read("if", location, stop_at_else=True)
            if predicate is None or self._test(predicate, frame, location):
                break
            if not block.stopped_at_else:
                return False
            clause = parse_else_clause(cursor.advance())
            predicate = clause.predicate
            location = clause.location

        def finish() -> None:
            if block.stopped_at_else:
                # Skip the remaining branches up to the chain's own end.
                cursor.advance()
                reader.read("if", block.terminator.location)
            self._emit_event("after_statement", self, statement, frame)

        label = f"if_{location.line}"
        self._spawn(block, frame.scope.child(label), frame.args, label, location, finish)
        return True

    def _execute_call(self, statement: CallStatement, frame: Frame) -> None:
        function = frame.scope.find_function(statement.name)
        if function is None:
            raise InvalidSyntax(
                f"Invalid syntax: '{statement.location.statement}'",
                location=statement.location,
                rule="call",
            )
        call = (function.name, statement.args, frame, statement.location)
        self._emit_event("before_call", self, *call)

        def finish() -> None:
            self._emit_event("after_call", self, *call)
            self._emit_event("after_statement", self, statement, frame)

        self._spawn(
            function.body,
            frame.scope.child(function.name),
            statement.args,
            function.name,
            statement.location,
            finish,
        )

    def _spawn(
        self,
        block: Block,
        scope: Scope,
        args: Sequence[str],
        name: str,
        call_location: SourceLocation,
        on_return: Callable[[], None],
    ) -> None:
        if len(self.call_stack) >= self.max_depth:
            raise BareRuntimeError(
                f"Invocation depth limit of {self.max_depth} exceeded",
                location=call_location,
                rule="depth",
            )
        frame = self._new_frame(name, scope, args, call_location)
        frame.cursor = SourceCursor(block.lines)
        frame.on_return = on_return
        if self.verbose:
            self._debug(call_location, f"Spawning invocation '{scope.path}' with arguments {list(args)}")
        self.call_stack.append(frame)

    def _return_from(self, frame: Frame) -> None:
        # Frames are only unwound on success so a traceback still sees the
        # failing chain.
        self.call_stack.pop()
        self.logger.forget(frame.frame_id)
        if frame.on_return is not None:
            frame.on_return()

    def _new_frame(
        self,
        name: str,
        scope: Scope,
        args: Sequence[str],
        call_location: Optional[SourceLocation],
    ) -> Frame:
        frame_id = f"f_{self.frame_counter:04d}"
        self.frame_counter += 1
        return Frame(name=name, scope=scope, args=list(args), frame_id=frame_id, call_location=call_location)

    def _emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hooks.emit(event, *args)
        except BareError:
            raise
        except Exception as exc:
            last = self.logger.last
            raise BareRuntimeError(
                f"Hook for '{event}' failed: {exc}",
                location=last.location if last else None,
                rule="hook",
            ) from exc

    def _log_step(self, rule: str, location: SourceLocation) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        snapshot = frame.scope.snapshot() if (self.verbose and frame) else None
        self.logger.record(frame, location, rule, snapshot)


@dataclass
class TracebackFrame:
    name: str
    path: str
    location: Optional[SourceLocation]
    step: Optional[int]
    snapshot: Dict[str, str]


class TracebackFormatter:
    """Renders a runtime error against the call stack left behind by it."""

    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def frames(self) -> List[TracebackFrame]:
        out: List[TracebackFrame] = []
        for frame in self.interpreter.call_stack:
            entry = self.interpreter.logger.latest_for(frame.frame_id)
            out.append(
                TracebackFrame(
                    name=frame.name,
                    path=frame.scope.path,
                    location=entry.location if entry else frame.call_location,
                    step=entry.step if entry else None,
                    snapshot=frame.scope.snapshot(),
                )
            )
        return out

    def format_short(self, error: BareRuntimeError) -> str:
        if error.location is None:
            return f"error: {error.message}"
        return f"error: {error.location.describe()}: {error.message}"

    def format_text(self, error: BareRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.frames():
            if frame.location is None:
                lines.append(f"  <unknown location>, in {frame.path}")
            else:
                lines.append(f"  {frame.location.describe()}, in {frame.path}")
                lines.append(f"    {frame.location.statement}")
            if verbose and frame.snapshot:
                lines.append("    locals: " + ", ".join(f"{k}={v}" for k, v in frame.snapshot.items()))
        lines.append(f"{error.__class__.__name__}: {error.message} (rule: {error.rule or 'runtime'})")
        return "\n".join(lines)

    def to_json(self, error: BareRuntimeError) -> str:
        frames: List[Dict[str, Any]] = []
        for frame in self.frames():
            item: Dict[str, Any] = {"name": frame.name, "scope": frame.path, "step": frame.step}
            if frame.location is not None:
                item["line"] = frame.location.line
                item["statement"] = frame.location.statement
            item["locals"] = frame.snapshot
            frames.append(item)
        report: Dict[str, Any] = {
            "kind": error.__class__.__name__,
            "message": error.message,
            "rule": error.rule,
            "step": error.step_index,
            "file": error.location.file if error.location else None,
            "line": error.location.line if error.location else None,
            "frames": frames,
        }
        return json.dumps(report, indent=2)
