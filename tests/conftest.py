from typing import Any, Callable, List, Sequence

import pytest

from interpreter import Interpreter


class Run:
    def __init__(self, interpreter: Interpreter, output: List[str], debug: List[str]) -> None:
        self.interpreter = interpreter
        self.output = output
        self.debug = debug


@pytest.fixture
def make_run() -> Callable[..., Run]:
    """Builds an interpreter whose output is captured in lists."""

    def _make(
        source: str,
        args: Sequence[str] = (),
        *,
        verbose: bool = False,
        filename: str = "<string>",
        **options: Any,
    ) -> Run:
        output: List[str] = []
        debug: List[str] = []
        interpreter = Interpreter(
            source=source,
            filename=filename,
            verbose=verbose,
            args=args,
            output_sink=output.append,
            debug_sink=debug.append,
            **options,
        )
        return Run(interpreter, output, debug)

    return _make


@pytest.fixture
def run_bare(make_run) -> Callable[..., List[str]]:
    """Runs a program and returns its output lines."""

    def _run(source: str, *args: str, verbose: bool = False) -> List[str]:
        run = make_run(source, args, verbose=verbose)
        run.interpreter.run()
        return run.output

    return _run
