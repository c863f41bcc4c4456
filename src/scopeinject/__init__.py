"""
scopeinject: a scope-graph resolver and code-model generator for lifecycle-bound injection scopes.

## Core Design Principle: Resolve First, Render Last

Declarations are resolved into a pure-data graph before any code is generated:

- Nodes are frozen records produced by an extraction pass (see ``scopeinject.declarations``)
- Parent references are matched by type-subtype queries against an injected oracle
  (see ``scopeinject.relations``)
- The children/parents multimaps are computed in full (see ``scopeinject.graph``)
- Each node gets exactly one Category (see ``scopeinject.classifier``)
- Container and injector descriptors are built from the finished graph
  (see ``scopeinject.codegen``), and only then rendered to text (see ``scopeinject.render``)

## Example

```python
from scopeinject import Category, Node, TypeRef
from scopeinject.relations import FrameworkTypes, RelationTable
from scopeinject.session import Session

table = RelationTable()
table.declare(TypeRef("test.TestApp"), (FrameworkTypes.ANDROID.application,))
table.declare(TypeRef("test.ui.TestActivity"), (FrameworkTypes.ANDROID.activity,))

root = Node(identity=TypeRef("test.TestApp"), generated_name="RondelTestApp", namespace="test", is_root=True)
activity = Node(identity=TypeRef("test.ui.TestActivity"), generated_name="RondelTestActivity", namespace="test.ui")

result = Session(oracle=table).process_round((root, activity))
result.root.container.accessors  # one accessor: rondelTestActivityComponentBuilder
```
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Final, Iterator, Sequence

_logger: Final[logging.Logger] = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TypeRef:
    """
    An opaque reference to a declared type, identified by its qualified name.

    Identity and subtype questions are never answered by a TypeRef itself;
    they are delegated to a ``TypeOracle``.
    """

    qualified_name: str

    @property
    def namespace(self) -> str:
        namespace, _, _ = self.qualified_name.rpartition(".")
        return namespace

    @property
    def simple_name(self) -> str:
        _, _, simple_name = self.qualified_name.rpartition(".")
        return simple_name

    def sibling(self, simple_name: str) -> "TypeRef":
        """Return a reference to another type in the same namespace."""
        if self.namespace:
            return TypeRef(f"{self.namespace}.{simple_name}")
        return TypeRef(simple_name)

    def __str__(self) -> str:
        return self.qualified_name


class Category(Enum):
    """
    The runtime lifecycle kind of a scope. Drives accessor synthesis.
    """

    LONG_LIVED = auto()
    ACTIVITY_LIKE = auto()
    SERVICE_LIKE = auto()
    FRAGMENT_LIKE = auto()
    VIEW_LIKE = auto()


@dataclass(frozen=True, kw_only=True, slots=True)
class Constructor:
    parameters: tuple[TypeRef, ...] = ()

    @property
    def arity(self) -> int:
        return len(self.parameters)


@dataclass(frozen=True, kw_only=True, slots=True)
class Module:
    """
    A unit supplying constructed dependencies to a container.

    A module that declares no constructor has the implicit zero-argument one.
    """

    identity: TypeRef
    constructors: tuple[Constructor, ...] = (Constructor(),)
    is_marked: bool = True
    """Whether the module carries the module marker."""


@dataclass(frozen=True, kw_only=True, slots=True, weakref_slot=True)
class Node:
    """
    A declared injection scope.

    Nodes are immutable: the graph refers to them by ``identity``, and a
    finished graph is never mutated.
    """

    identity: TypeRef
    generated_name: str
    namespace: str
    declared_parents: tuple[TypeRef, ...] = ()
    declared_capabilities: tuple[TypeRef, ...] = ()
    declared_modules: tuple[Module, ...] = ()
    explicit_category: Category | None = None
    is_root: bool = False


def lower_first(name: str) -> str:
    return name[:1].lower() + name[1:]


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, kw_only=True, slots=True)
class Diagnostic:
    severity: Severity
    message: str
    node: Node | None = None

    def __str__(self) -> str:
        if self.node is None:
            return f"{self.severity.value}: {self.message}"
        return f"{self.severity.value}: {self.message} [{self.node.identity}]"


_LOG_LEVELS: Final = {
    Severity.ERROR: logging.ERROR,
    Severity.WARNING: logging.WARNING,
}


@dataclass(kw_only=True, slots=True)
class Diagnostics(Sequence[Diagnostic]):
    """
    An ordered diagnostics sink.

    Every record is kept in arrival order and also forwarded to the logger.
    """

    _records: list[Diagnostic] = field(default_factory=list, init=False)

    def error(self, message: str, node: Node | None = None) -> None:
        self.report(Diagnostic(severity=Severity.ERROR, message=message, node=node))

    def warning(self, message: str, node: Node | None = None) -> None:
        self.report(Diagnostic(severity=Severity.WARNING, message=message, node=node))

    def report(self, diagnostic: Diagnostic) -> None:
        self._records.append(diagnostic)
        _logger.log(_LOG_LEVELS[diagnostic.severity], "%s", diagnostic)

    def report_error(self, error: "ScopeGraphError") -> None:
        self.error(error.message, error.node)

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(
            record for record in self._records if record.severity is Severity.ERROR
        )

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(
            record for record in self._records if record.severity is Severity.WARNING
        )

    def __getitem__(self, index):  # type: ignore[override]
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._records)


class ScopeGraphError(Exception):
    """
    Base class for every failure raised while resolving or generating scopes.
    """

    def __init__(self, message: str, node: Node | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.node = node


class StructuralError(ScopeGraphError):
    """Wrong Root count. Aborts the whole round."""


class DeclarationError(ScopeGraphError):
    """Malformed module or capability reference. Aborts the round before graph building."""


class ResolutionError(ScopeGraphError):
    """Unmatched parent reference or undetermined Category. Local to one node."""


class ConstructionError(ScopeGraphError):
    """No valid module constructor. Local to one node."""


PARENT_NOT_FOUND: Final[str] = "Parent not found"
"""
The message generated code raises when a structural ascent runs out of containers.
"""
