"""Bare Bones entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
import time
from typing import List, Optional, Sequence

from hooks import HookRegistry
from interpreter import DEFAULT_MAX_DEPTH, Interpreter, TracebackFormatter
from lexer import BareRuntimeError

VERSION = "0.0.1"

_BLOCK_OPENERS = ("while ", "if ", "function ")


def _install_timer(hooks: HookRegistry) -> None:
    started: List[float] = []

    def _start(*_args: object) -> None:
        started.append(time.perf_counter())

    def _finish(*_args: object) -> None:
        if not started:
            return
        elapsed = int((time.perf_counter() - started.pop()) * 1000)
        seconds = f" (~{elapsed // 1000} second(s))" if elapsed > 1000 else ""
        print(f"Done in {elapsed} milliseconds{seconds}", file=sys.stderr)

    hooks.on("program_start", _start)
    hooks.on("program_end", _finish)


def _report(interpreter: Interpreter, error: BareRuntimeError, *, verbose: bool, traceback_json: bool = False) -> None:
    formatter = TracebackFormatter(interpreter)
    if verbose:
        print(formatter.format_text(error, verbose=True), file=sys.stderr)
    print(formatter.format_short(error), file=sys.stderr)
    if traceback_json:
        print(formatter.to_json(error), file=sys.stderr)


def run_repl(
    verbose: bool,
    args: Sequence[str],
    hooks: Optional[HookRegistry] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> int:
    print("\x1b[38;2;153;221;255mBare Bones\033[0m REPL. Enter statements, blank line to run a block.")
    interpreter = Interpreter(source="", filename="<repl>", verbose=verbose, args=args, hooks=hooks, max_depth=max_depth)
    top_frame = interpreter.begin()
    buffer: List[str] = []

    while True:
        prompt = "\x1b[38;2;153;221;255m>>>\033[0m " if not buffer else "\x1b[38;2;153;221;255m..>\033[0m "
        try:
            line = input(prompt)
        except EOFError:
            print()
            break

        stripped = line.strip()
        if stripped == "exit" and not buffer:
            break

        if not buffer and stripped != "" and not stripped.startswith(_BLOCK_OPENERS):
            source_text = line
        elif stripped == "" and buffer:
            source_text = "\n".join(buffer)
            buffer.clear()
        else:
            if stripped != "":
                buffer.append(line)
            continue

        try:
            interpreter.execute_source(source_text, top_frame)
        except BareRuntimeError as error:
            _report(interpreter, error, verbose=interpreter.verbose)
            # Drop any frames left by the failed statement to keep the REPL usable.
            interpreter.call_stack = [top_frame]

    return 0


def _read_stdin() -> str:
    return sys.stdin.read()


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bare",
        description="Interpreter for the Bare Bones programming language",
        epilog="Provide a file to run, '-' to read the program from stdin, or pipe a program through stdin.",
    )
    parser.add_argument("program", nargs="?", help="Source file path, '-' for stdin, or literal source with -source")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Program arguments, available as #1, #2, ...")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-d", "--debug", dest="verbose", action="store_true", help="Trace execution and show which line produced every output")
    parser.add_argument("-t", "--time", dest="time_execution", action="store_true", help="Measure how long the program took to run")
    parser.add_argument("-v", "--version", action="version", version=VERSION)
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH, metavar="N", help="Maximum nesting of loop, branch and function invocations")
    args = parser.parse_args(argv)

    hooks = HookRegistry()
    if args.time_execution:
        _install_timer(hooks)

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        if sys.stdin.isatty():
            return run_repl(verbose=args.verbose, args=args.args, hooks=hooks, max_depth=args.max_depth)
        source_text = _read_stdin()
        filename = "<stdin>"
    elif args.source_mode:
        source_text = args.program
        filename = "<string>"
    elif args.program == "-":
        source_text = _read_stdin()
        filename = "<stdin>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"error: Invalid input: couldn't read source file '{filename}': {exc}", file=sys.stderr)
            return 1

    interpreter = Interpreter(
        source=source_text,
        filename=filename,
        verbose=args.verbose,
        args=args.args,
        hooks=hooks,
        max_depth=args.max_depth,
    )
    try:
        interpreter.run()
    except BareRuntimeError as error:
        _report(interpreter, error, verbose=args.verbose, traceback_json=args.traceback_json)
        return 1
    if args.verbose:
        print("debug: Done", file=sys.stderr)
    return 0


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
