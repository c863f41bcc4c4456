"""
Declaration extraction from decorated Python classes.

## Explicit Decorator Marking

Only classes marked with one of these decorators are extracted:

- ``@app``: the Root scope (exactly one per compilation run)
- ``@scope``: a scope with optional parents, capabilities and modules
- ``@module``: a module class; its ``__init__`` signature is its constructor

## Example

```python
from scopeinject.declarations import Activity, Application, Extractor, app, module, scope
from scopeinject.session import Session

@module
class AppModule:
    def __init__(self, app: "TestApp") -> None: ...

@app(modules=(AppModule,))
class TestApp(Application): ...

@scope()
class TestActivity(Activity): ...

extractor = Extractor()
nodes = extractor.extract(TestApp, TestActivity)
session = Session(oracle=extractor.relations)
```
"""

from __future__ import annotations

import inspect
import typing
from dataclasses import dataclass, field
from types import ModuleType
from typing import Callable, Iterator, Sequence, TypeVar

from scopeinject import Category, Constructor, Module, Node, TypeRef
from scopeinject.relations import FrameworkTypes, RelationTable

T = TypeVar("T", bound=type)

_DECLARATION_ATTRIBUTE = "__scopeinject_declaration__"
_MODULE_ATTRIBUTE = "__scopeinject_module__"


class Application:
    """Base of long-lived hosts."""


class Activity:
    """Base of activity-like hosts."""


class Service:
    """Base of service-like hosts."""


class Fragment:
    """Base of fragment-like hosts."""


class View:
    """Base of view-like hosts."""


def type_ref(cls: type) -> TypeRef:
    return TypeRef(f"{cls.__module__}.{cls.__qualname__}")


PYTHON_FRAMEWORK = FrameworkTypes(
    application=type_ref(Application),
    activity=type_ref(Activity),
    service=type_ref(Service),
    fragment=type_ref(Fragment),
    view=type_ref(View),
)


@dataclass(frozen=True, kw_only=True, slots=True)
class Declaration:
    is_root: bool
    parents: tuple[type, ...] = ()
    capabilities: tuple[type, ...] = ()
    modules: tuple[type, ...] = ()
    category: Category | None = None


def _declare(declaration: Declaration) -> Callable[[T], T]:
    def decorator(cls: T) -> T:
        setattr(cls, _DECLARATION_ATTRIBUTE, declaration)
        return cls

    return decorator


def app(
    *, capabilities: Sequence[type] = (), modules: Sequence[type] = ()
) -> Callable[[T], T]:
    """
    Mark a class as the Root scope.
    """
    return _declare(
        Declaration(is_root=True, capabilities=tuple(capabilities), modules=tuple(modules))
    )


def scope(
    *,
    parent: type | Sequence[type] | None = None,
    capabilities: Sequence[type] = (),
    modules: Sequence[type] = (),
    category: Category | None = None,
) -> Callable[[T], T]:
    """
    Mark a class as an injection scope.

    ``parent`` is one class or several; without it, the scope is a direct
    child of the Root. ``category`` overrides the category inferred from the
    class's framework base.
    """
    if parent is None:
        parents: tuple[type, ...] = ()
    elif isinstance(parent, type):
        parents = (parent,)
    else:
        parents = tuple(parent)
    return _declare(
        Declaration(
            is_root=False,
            parents=parents,
            capabilities=tuple(capabilities),
            modules=tuple(modules),
            category=category,
        )
    )


def module(cls: T) -> T:
    """
    Mark a class as a module.
    """
    setattr(cls, _MODULE_ATTRIBUTE, True)
    return cls


def _own_declaration(cls: type) -> Declaration | None:
    declaration = cls.__dict__.get(_DECLARATION_ATTRIBUTE)
    if isinstance(declaration, Declaration):
        return declaration
    return None


def _is_interface(cls: type) -> bool:
    return bool(cls.__dict__.get("_is_protocol", False))


@dataclass(kw_only=True, slots=True)
class Extractor:
    """
    Turns decorated classes into Nodes.

    Every class seen is recorded with its MRO in ``relations``, which can then
    serve as the session's oracle. The extractor is meant to live as long as
    the session, so relations accumulate over rounds.
    """

    class_prefix: str = "Rondel"
    relations: RelationTable = field(
        default_factory=lambda: RelationTable(framework=PYTHON_FRAMEWORK)
    )

    def register(self, cls: type) -> TypeRef:
        reference = type_ref(cls)
        self.relations.declare(
            reference,
            (type_ref(base) for base in cls.__mro__[1:]),
            interface=_is_interface(cls),
        )
        return reference

    def _constructor(self, cls: type) -> Constructor:
        initializer = cls.__init__
        if initializer is object.__init__:
            return Constructor()
        hints = typing.get_type_hints(initializer)
        parameters = list(inspect.signature(initializer).parameters.values())[1:]
        parameter_types: list[TypeRef] = []
        for parameter in parameters:
            if parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
                continue
            annotation = hints.get(parameter.name, object)
            if not isinstance(annotation, type):
                annotation = object
            parameter_types.append(self.register(annotation))
        return Constructor(parameters=tuple(parameter_types))

    def module(self, cls: type) -> Module:
        return Module(
            identity=self.register(cls),
            constructors=(self._constructor(cls),),
            is_marked=bool(cls.__dict__.get(_MODULE_ATTRIBUTE, False)),
        )

    def node(self, cls: type) -> Node | None:
        """
        Extract the Node declared by ``cls``, or ``None`` if ``cls`` is not declared.
        """
        declaration = _own_declaration(cls)
        if declaration is None:
            return None
        identity = self.register(cls)
        return Node(
            identity=identity,
            generated_name=self.class_prefix + cls.__name__,
            namespace=identity.namespace,
            declared_parents=tuple(self.register(parent) for parent in declaration.parents),
            declared_capabilities=tuple(
                self.register(capability) for capability in declaration.capabilities
            ),
            declared_modules=tuple(self.module(module) for module in declaration.modules),
            explicit_category=declaration.category,
            is_root=declaration.is_root,
        )

    def _classes(self, objects: Sequence[object]) -> Iterator[type]:
        for obj in objects:
            if isinstance(obj, ModuleType):
                for value in vars(obj).values():
                    if isinstance(value, type) and value.__module__ == obj.__name__:
                        yield value
            elif isinstance(obj, type):
                yield obj
            else:
                raise TypeError(f"Cannot extract declarations from {obj!r}")

    def extract(self, *objects: object) -> tuple[Node, ...]:
        """
        Extract Nodes from classes and modules, in discovery order with any
        Root first.
        """
        nodes: list[Node] = []
        seen: set[TypeRef] = set()
        for cls in self._classes(objects):
            node = self.node(cls)
            if node is None or node.identity in seen:
                continue
            seen.add(node.identity)
            nodes.append(node)
        return tuple(sorted(nodes, key=lambda node: not node.is_root))
