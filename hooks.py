"""Event hooks fired by the interpreter while a program runs.

Handlers receive the interpreter first, then the event's own arguments:

    program_start     scope
    before_statement  statement, frame
    after_statement   statement, frame
    before_call       name, args, frame, location
    after_call        name, args, frame, location
    on_error          error
    program_end       status
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from lexer import BareError


EVENTS = (
    "program_start",
    "before_statement",
    "after_statement",
    "before_call",
    "after_call",
    "on_error",
    "program_end",
)

Handler = Callable[..., None]


class HookError(BareError):
    pass


@dataclass
class HookRegistry:
    # event -> [(priority, handler)], highest priority first
    handlers: Dict[str, List[Tuple[int, Handler]]] = field(default_factory=dict)

    def on(self, event: str, handler: Optional[Handler] = None, *, priority: int = 0):
        """Register ``handler`` for ``event``, or return a decorator that does.

        Handlers with equal priority run in registration order.
        """
        if event not in EVENTS:
            raise HookError(f"Unknown event '{event}'")

        def register(fn: Handler) -> Handler:
            entries = self.handlers.setdefault(event, [])
            entries.append((priority, fn))
            entries.sort(key=lambda entry: entry[0], reverse=True)
            return fn

        if handler is None:
            return register
        return register(handler)

    def emit(self, event: str, *args: Any) -> None:
        for _priority, handler in self.handlers.get(event, ()):
            handler(*args)
