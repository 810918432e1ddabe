from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Union

from lexer import UndefinedVariable

if TYPE_CHECKING:
    from parser import Block


Value = Union[int, str]


@dataclass
class Function:
    name: str
    body: Block


class Scope:
    def __init__(self, name: str, parent: Optional["Scope"] = None) -> None:
        self.name = name
        self.parent = parent
        self.values: Dict[str, Value] = {}
        self.functions: Dict[str, Function] = {}
        self.children: Dict[str, Scope] = {}

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def path(self) -> str:
        names: List[str] = []
        scope: Optional[Scope] = self
        while scope is not None and not scope.is_root:
            names.append(scope.name)
            scope = scope.parent
        return "/".join(reversed(names))

    def _chain(self):
        scope: Optional[Scope] = self
        while scope is not None and not scope.is_root:
            yield scope
            scope = scope.parent

    def _find_scope(self, name: str) -> Optional["Scope"]:
        for scope in self._chain():
            if name in scope.values:
                return scope
        return None

    def read(self, name: str) -> Value:
        scope = self._find_scope(name)
        if scope is not None:
            return scope.values[name]
        raise UndefinedVariable(f"Undefined reference to variable '{name}'", rule="read")

    def write(self, name: str, value: Value) -> None:
        # An existing binding anywhere up the chain wins over a new local one.
        scope = self._find_scope(name)
        if scope is None:
            scope = self
        scope.values[name] = value

    def defined(self, name: str) -> bool:
        return self._find_scope(name) is not None

    def child(self, label: str) -> "Scope":
        existing = self.children.get(label)
        if existing is not None:
            return existing
        created = Scope(label, parent=self)
        self.children[label] = created
        return created

    def define_function(self, function: Function) -> None:
        self.functions[function.name] = function

    def find_function(self, name: str) -> Optional[Function]:
        for scope in self._chain():
            function = scope.functions.get(name)
            if function is not None:
                return function
        return None

    def snapshot(self) -> Dict[str, str]:
        def _render(value: Value) -> str:
            rendered = str(value)
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            kind = "INT" if isinstance(value, int) else "STR"
            return f"{kind}:{rendered}"

        return {k: _render(v) for k, v in self.values.items()}

    def __repr__(self) -> str:
        return f"Scope({self.path or '<root>'!r})"


class ScopeStore:
    """Tree of persistent scopes for one interpreter run."""

    def __init__(self) -> None:
        self.root = Scope("")

    def program(self, name: str) -> Scope:
        return self.root.child(name)

