"""
Code model generation.

Descriptors are structured data: calls are kept as operation names with
argument expressions and only become text in ``scopeinject.render``.

A parent's container is final only once every child has been built, because
accessor declarations live on the parent. Two interchangeable emission
strategies handle that:

- ``TreeEmission`` recurses depth-first from the Root, so accessors
  accumulate bottom-up;
- ``FlatEmission`` makes a single pass over all nodes and appends each
  node's accessor to every one of its parents.

Both run over the same precomputed ``ScopeGraph`` and produce artifacts in
discovery order.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Callable, Final, Iterable, Mapping, TypeAlias

from typing_extensions import override

from scopeinject import (
    PARENT_NOT_FOUND,
    Category,
    ConstructionError,
    Constructor,
    Diagnostics,
    Module,
    Node,
    ResolutionError,
    ScopeGraphError,
    TypeRef,
    lower_first,
)
from scopeinject.classifier import Classification
from scopeinject.graph import ScopeGraph
from scopeinject.options import GeneratorOptions
from scopeinject.relations import TypeOracle

_logger: Final[logging.Logger] = logging.getLogger(__name__)

PARENT_VARIABLE: Final[str] = "parent"
PARENT_CONTAINER_VARIABLE: Final[str] = "baseComponent"
CONTAINER_VARIABLE: Final[str] = "component"


@dataclass(frozen=True, slots=True)
class Name:
    identifier: str


@dataclass(frozen=True, kw_only=True, slots=True)
class Call:
    """
    A call descriptor.

    ``target`` is the receiver expression, a type for a static call, or
    ``None`` for an unqualified call (or the next link of a builder chain).
    """

    operation: str
    arguments: tuple["Expression", ...] = ()
    target: "Expression | TypeRef | None" = None


@dataclass(frozen=True, kw_only=True, slots=True)
class New:
    type: TypeRef
    arguments: tuple["Expression", ...] = ()


@dataclass(frozen=True, slots=True)
class ClassLiteral:
    type: TypeRef


Expression: TypeAlias = "Name | Call | New | ClassLiteral"


def chain(target: Expression | TypeRef, operations: Iterable[str]) -> Expression:
    """Chain argument-less calls off ``target``, in order."""
    expression: Expression | TypeRef = target
    for operation in operations:
        expression = Call(operation=operation, target=expression)
    assert not isinstance(expression, TypeRef)
    return expression


def count_calls(expression: Expression | TypeRef | None) -> int:
    """Number of calls in a receiver chain, arguments excluded."""
    count = 0
    while isinstance(expression, Call):
        count += 1
        expression = expression.target
    return count


@dataclass(frozen=True, kw_only=True, slots=True)
class Accessor:
    """A factory method on a parent's container producing a child's container builder."""

    name: str
    child: TypeRef
    """The child's container type."""


@dataclass(frozen=True, kw_only=True, slots=True)
class BuilderSetter:
    name: str
    module: TypeRef


@dataclass(frozen=True, kw_only=True, slots=True)
class BuilderDescriptor:
    setters: tuple[BuilderSetter, ...]


@dataclass(frozen=True, kw_only=True, slots=True)
class ContainerDescriptor:
    """
    A generated container interface: capabilities, a nested builder, an
    injection entry point and one accessor per child scope.
    """

    name: str
    namespace: str
    host: TypeRef
    is_root: bool
    annotation: TypeRef
    scope_marker: TypeRef
    capabilities: tuple[TypeRef, ...]
    modules: tuple[TypeRef, ...]
    builder: BuilderDescriptor
    accessors: tuple[Accessor, ...] = ()

    @property
    def identity(self) -> TypeRef:
        return TypeRef(f"{self.namespace}.{self.name}" if self.namespace else self.name)

    def references(self, options: GeneratorOptions) -> tuple[TypeRef, ...]:
        return _sorted_references(
            (
                options.generated_annotation,
                self.annotation,
                self.scope_marker,
                self.host,
                *self.capabilities,
                *self.modules,
                *(accessor.child for accessor in self.accessors),
            )
        )


@dataclass(frozen=True, kw_only=True, slots=True)
class ModuleSupply:
    """
    How an injector supplies one module to its container's builder.

    The injector keeps an override slot per supplied module, so a test can
    install its own instance before injection.
    """

    module: TypeRef
    setter: str
    construction: New

    @property
    def override_field(self) -> str:
        return lower_first(self.module.simple_name)

    @property
    def override_setter(self) -> str:
        return "set" + self.module.simple_name

    @property
    def getter(self) -> str:
        return "get" + self.module.simple_name


@dataclass(frozen=True, kw_only=True, slots=True)
class ParentLookup:
    """
    How generated code reaches the governing parent from the host instance.
    """

    parent: Node
    parent_container: TypeRef
    steps: tuple[Call, ...]
    """Accessor calls chained off the host instance, in call order."""

    expression: Expression
    """The full expression producing the parent instance."""

    ascends: bool = False
    """Whether ``steps`` only yield the starting point of a structural ascent."""


@dataclass(frozen=True, kw_only=True, slots=True)
class InjectorDescriptor:
    name: str
    namespace: str
    host: TypeRef
    container: TypeRef
    parent: ParentLookup | None
    builder_chain: tuple[Call, ...]
    """The container builder chain: its first call has a target, the rest chain off it."""

    supplies: tuple[ModuleSupply, ...]
    is_public: bool = False

    def references(self, options: GeneratorOptions) -> tuple[TypeRef, ...]:
        references: list[TypeRef] = [
            options.generated_annotation,
            self.host,
            self.container,
            *(supply.module for supply in self.supplies),
        ]
        if self.parent is not None:
            references.append(self.parent.parent.identity)
            references.append(self.parent.parent_container)
        target = self.builder_chain[0].target if self.builder_chain else None
        if isinstance(target, TypeRef):
            references.append(target)
        references.extend(_expression_types(self.parent.expression if self.parent else None))
        return _sorted_references(references)


@dataclass(frozen=True, kw_only=True, slots=True)
class AscentDescriptor:
    """
    The shared runtime ascent helper.

    Starting from a structural container, the generated loop tests each
    container against the required type, steps to the enclosing container via
    ``step`` and raises ``failure`` with ``message`` once none is left.
    """

    name: str
    namespace: str
    container_type: TypeRef
    step: str
    failure: TypeRef
    message: str = PARENT_NOT_FOUND

    @property
    def identity(self) -> TypeRef:
        return TypeRef(f"{self.namespace}.{self.name}" if self.namespace else self.name)

    def references(self, options: GeneratorOptions) -> tuple[TypeRef, ...]:
        return _sorted_references(
            (options.generated_annotation, self.container_type, self.failure)
        )


@dataclass(frozen=True, kw_only=True, slots=True)
class ScopeArtifacts:
    node: Node
    container: ContainerDescriptor
    injector: InjectorDescriptor


@dataclass(frozen=True, kw_only=True, slots=True)
class GeneratedModel:
    root: ScopeArtifacts | None
    scopes: tuple[ScopeArtifacts, ...]
    """Artifacts of generated non-root nodes, in discovery order."""

    ascent: AscentDescriptor | None = None


def _sorted_references(references: Iterable[TypeRef]) -> tuple[TypeRef, ...]:
    return tuple(sorted(set(references), key=lambda reference: reference.qualified_name))


def _expression_types(expression: Expression | TypeRef | None) -> Iterable[TypeRef]:
    match expression:
        case TypeRef():
            yield expression
        case Call(arguments=arguments, target=target):
            yield from _expression_types(target)
            for argument in arguments:
                yield from _expression_types(argument)
        case New(type=type_ref, arguments=arguments):
            yield type_ref
            for argument in arguments:
                yield from _expression_types(argument)
        case ClassLiteral(type=type_ref):
            yield type_ref


_PARENT_LOOKUPS: Final[Mapping[tuple[Category, Category], tuple[str, ...]]] = {
    (Category.ACTIVITY_LIKE, Category.LONG_LIVED): ("getApplicationContext",),
    (Category.SERVICE_LIKE, Category.LONG_LIVED): ("getApplicationContext",),
    (Category.FRAGMENT_LIKE, Category.LONG_LIVED): (
        "getActivity",
        "getApplicationContext",
    ),
    (Category.FRAGMENT_LIKE, Category.ACTIVITY_LIKE): ("getActivity",),
    (Category.FRAGMENT_LIKE, Category.FRAGMENT_LIKE): ("getParentFragment",),
    (Category.VIEW_LIKE, Category.LONG_LIVED): (
        "getContext",
        "getApplicationContext",
    ),
    (Category.VIEW_LIKE, Category.ACTIVITY_LIKE): ("getContext",),
}
"""
Accessor calls off the host reaching the governing parent, keyed by
(node category, parent category). View-like parents of view-like nodes are
found by structural ascent instead.
"""


@dataclass(frozen=True, kw_only=True, slots=True)
class CodeModelGenerator:
    oracle: TypeOracle
    options: GeneratorOptions

    def select_constructor(self, module: Module, host: TypeRef) -> Constructor:
        """
        Pick the first constructor, in declaration order, that takes nothing or
        takes exactly one parameter the host can be passed as.

        :raises ConstructionError: if no constructor qualifies.
        """
        for constructor in module.constructors:
            if constructor.arity == 0:
                return constructor
            if constructor.arity == 1:
                (parameter,) = constructor.parameters
                if self.oracle.is_identical(host, parameter) or self.oracle.is_subtype(
                    host, parameter
                ):
                    return constructor
        raise ConstructionError(f"No valid constructor for module {module.identity}.")

    def module_supplies(self, node: Node) -> tuple[ModuleSupply, ...]:
        """
        Supplies for the node's modules, in declaration order.

        Modules with a zero-argument constructor are left to the container.
        """
        supplies: list[ModuleSupply] = []
        for module in node.declared_modules:
            try:
                constructor = self.select_constructor(module, node.identity)
            except ConstructionError as error:
                raise ConstructionError(error.message, node) from error
            if constructor.arity == 0:
                continue
            supplies.append(
                ModuleSupply(
                    module=module.identity,
                    setter=lower_first(module.identity.simple_name),
                    construction=New(
                        type=module.identity,
                        arguments=(Name(self.options.host_parameter),),
                    ),
                )
            )
        return tuple(supplies)

    def container_identity(self, node: Node) -> TypeRef:
        name = self.options.container_name(node.generated_name)
        return TypeRef(f"{node.namespace}.{name}" if node.namespace else name)

    def accessor(self, child: Node) -> Accessor:
        child_container = self.container_identity(child)
        return Accessor(
            name=self.options.accessor_name(child_container.simple_name),
            child=child_container,
        )

    def container(
        self, node: Node, category: Category, supplies: tuple[ModuleSupply, ...]
    ) -> ContainerDescriptor:
        options = self.options
        return ContainerDescriptor(
            name=options.container_name(node.generated_name),
            namespace=node.namespace,
            host=node.identity,
            is_root=node.is_root,
            annotation=(
                options.root_component_annotation
                if node.is_root
                else options.component_annotation
            ),
            scope_marker=options.scope_markers[category],
            capabilities=(
                options.root_marker if node.is_root else options.component_marker,
                *node.declared_capabilities,
            ),
            modules=tuple(module.identity for module in node.declared_modules),
            builder=BuilderDescriptor(
                setters=tuple(
                    BuilderSetter(name=supply.setter, module=supply.module)
                    for supply in supplies
                )
            ),
        )

    def parent_lookup(
        self,
        node: Node,
        category: Category,
        parent: Node,
        parent_category: Category,
        root: Node,
    ) -> ParentLookup:
        """
        :raises ResolutionError: if the (category, parent category) pair has no lookup.
        """
        host = Name(self.options.host_parameter)
        parent_container = self.container_identity(parent)
        if category is Category.VIEW_LIKE and parent_category is Category.VIEW_LIKE:
            start = Call(operation=self.options.structural_step, target=host)
            helper = self.ascent_identity(root)
            return ParentLookup(
                parent=parent,
                parent_container=parent_container,
                steps=(start,),
                expression=Call(
                    operation="find",
                    arguments=(start, ClassLiteral(parent.identity)),
                    target=helper,
                ),
                ascends=True,
            )

        operations = _PARENT_LOOKUPS.get((category, parent_category))
        if operations is None:
            if category is Category.LONG_LIVED:
                raise ResolutionError("Only the root scope can be long-lived.", node)
            if category in (Category.ACTIVITY_LIKE, Category.SERVICE_LIKE):
                raise ResolutionError("Only views and fragments can specify parent.", node)
            raise ResolutionError(f"Unknown parent type {parent.identity}.", node)
        expression = chain(host, operations)
        steps: list[Call] = []
        current: Expression | TypeRef | None = expression
        while isinstance(current, Call):
            steps.insert(0, current)
            current = current.target
        return ParentLookup(
            parent=parent,
            parent_container=parent_container,
            steps=tuple(steps),
            expression=expression,
        )

    def ascent_identity(self, root: Node) -> TypeRef:
        name = self.options.ascent_helper
        return TypeRef(f"{root.namespace}.{name}" if root.namespace else name)

    def ascent(self, root: Node) -> AscentDescriptor:
        return AscentDescriptor(
            name=self.options.ascent_helper,
            namespace=root.namespace,
            container_type=self.options.structural_container,
            step=self.options.structural_step,
            failure=self.options.runtime_failure,
        )

    def _builder_chain(
        self, first: Call, supplies: tuple[ModuleSupply, ...]
    ) -> tuple[Call, ...]:
        host = Name(self.options.host_parameter)
        return (
            first,
            *(
                Call(
                    operation=supply.setter,
                    arguments=(Call(operation=supply.getter, arguments=(host,)),),
                )
                for supply in supplies
            ),
            Call(operation="build"),
        )

    def root_artifacts(self, root: Node) -> ScopeArtifacts:
        supplies = self.module_supplies(root)
        container = self.container(root, Category.LONG_LIVED, supplies)
        factory = container.identity.sibling(
            self.options.root_factory_prefix + container.name
        )
        injector = InjectorDescriptor(
            name=root.generated_name,
            namespace=root.namespace,
            host=root.identity,
            container=container.identity,
            parent=None,
            builder_chain=self._builder_chain(
                Call(operation="builder", target=factory), supplies
            ),
            supplies=supplies,
            is_public=True,
        )
        return ScopeArtifacts(node=root, container=container, injector=injector)

    def scope_artifacts(
        self,
        node: Node,
        graph: ScopeGraph,
        classifications: Mapping[Node, Classification],
    ) -> ScopeArtifacts:
        """
        Build the container (without accessors) and the injector of a non-root node.

        :raises ScopeGraphError: on a resolution or construction failure local to the node.
        """
        classification = classifications.get(node)
        if classification is None:
            raise ResolutionError(f"{node.identity} has no category.", node)
        parents = graph.parents_of(node)
        if not parents:
            raise ResolutionError(f"{node.identity} has no resolved parent.", node)
        governing = parents[0]
        parent_category = self._dispatch_category(governing, classifications)
        if parent_category is None:
            raise ResolutionError(f"Unknown parent type {governing.identity}.", node)

        lookup = self.parent_lookup(
            node,
            classification.dispatch_category,
            governing,
            parent_category,
            graph.root,
        )
        _logger.debug(
            "%s reaches %s through %s (%d calls)",
            node.identity,
            governing.identity,
            ".".join(step.operation for step in lookup.steps),
            count_calls(lookup.expression),
        )
        supplies = self.module_supplies(node)
        container = self.container(node, classification.category, supplies)
        injector = InjectorDescriptor(
            name=node.generated_name,
            namespace=node.namespace,
            host=node.identity,
            container=container.identity,
            parent=lookup,
            builder_chain=self._builder_chain(
                Call(
                    operation=self.options.accessor_name(container.name),
                    target=Name(PARENT_CONTAINER_VARIABLE),
                ),
                supplies,
            ),
            supplies=supplies,
        )
        return ScopeArtifacts(node=node, container=container, injector=injector)

    @staticmethod
    def _dispatch_category(
        node: Node, classifications: Mapping[Node, Classification]
    ) -> Category | None:
        if node.is_root:
            return Category.LONG_LIVED
        classification = classifications.get(node)
        if classification is None:
            return None
        return classification.dispatch_category

    def generate(
        self,
        graph: ScopeGraph,
        classifications: Mapping[Node, Classification],
        diagnostics: Diagnostics,
        emission: "Emission",
    ) -> GeneratedModel:
        def build(node: Node) -> ScopeArtifacts | None:
            try:
                if node.is_root:
                    artifacts = self.root_artifacts(node)
                else:
                    artifacts = self.scope_artifacts(node, graph, classifications)
            except ScopeGraphError as error:
                diagnostics.report_error(
                    error if error.node is not None else type(error)(error.message, node)
                )
                return None
            _logger.debug("Generated %s", artifacts.container.identity)
            return artifacts

        root, scopes = emission.emit(graph, build, self.accessor)
        ascent = (
            self.ascent(graph.root)
            if any(
                artifacts.injector.parent is not None and artifacts.injector.parent.ascends
                for artifacts in scopes
            )
            else None
        )
        return GeneratedModel(root=root, scopes=scopes, ascent=ascent)


Build: TypeAlias = Callable[[Node], ScopeArtifacts | None]
AccessorFactory: TypeAlias = Callable[[Node], Accessor]


def _with_accessors(
    artifacts: ScopeArtifacts, accessors: Iterable[Accessor]
) -> ScopeArtifacts:
    return replace(
        artifacts,
        container=replace(artifacts.container, accessors=tuple(accessors)),
    )


class Emission(ABC):
    """
    Decides the order containers are built and finalized in.
    """

    @abstractmethod
    def emit(
        self, graph: ScopeGraph, build: Build, accessor: AccessorFactory
    ) -> tuple[ScopeArtifacts | None, tuple[ScopeArtifacts, ...]]:
        """
        Build every resolved node once and return the finalized Root artifacts
        and non-root artifacts in discovery order.
        """


class FlatEmission(Emission):
    """Single pass over all nodes; works for any DAG."""

    @override
    def emit(
        self, graph: ScopeGraph, build: Build, accessor: AccessorFactory
    ) -> tuple[ScopeArtifacts | None, tuple[ScopeArtifacts, ...]]:
        built: dict[TypeRef, ScopeArtifacts] = {}
        pending: dict[TypeRef, list[Accessor]] = {}
        for node in graph.resolved_nodes:
            artifacts = build(node)
            if artifacts is None:
                continue
            built[node.identity] = artifacts
            for parent in graph.parents_of(node):
                pending.setdefault(parent.identity, []).append(accessor(node))

        root = build(graph.root)
        return (
            None
            if root is None
            else _with_accessors(root, pending.get(graph.root.identity, ())),
            tuple(
                _with_accessors(built[node.identity], pending.get(node.identity, ()))
                for node in graph.nodes
                if node.identity in built
            ),
        )


class TreeEmission(Emission):
    """Depth-first from the Root; every child is finalized before its parent."""

    @override
    def emit(
        self, graph: ScopeGraph, build: Build, accessor: AccessorFactory
    ) -> tuple[ScopeArtifacts | None, tuple[ScopeArtifacts, ...]]:
        if not graph.is_tree:
            raise ValueError("Tree emission requires every scope to have one parent")
        finalized: dict[TypeRef, ScopeArtifacts] = {}
        visited: set[TypeRef] = set()

        def visit(node: Node) -> tuple[Accessor, ...]:
            accessors: list[Accessor] = []
            for child in graph.children_of(node):
                if child.identity in visited:
                    continue
                visited.add(child.identity)
                artifacts = build(child) if graph.is_resolved(child) else None
                child_accessors = visit(child)
                if artifacts is not None:
                    finalized[child.identity] = _with_accessors(artifacts, child_accessors)
                    accessors.append(accessor(child))
            return tuple(accessors)

        root_accessors = visit(graph.root)
        root = build(graph.root)
        return (
            None if root is None else _with_accessors(root, root_accessors),
            tuple(
                finalized[node.identity]
                for node in graph.nodes
                if node.identity in finalized
            ),
        )
