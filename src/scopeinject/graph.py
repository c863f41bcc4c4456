"""
Scope graph construction.

Parent references are resolved into children/parents multimaps before any
code is generated. The multimaps are pure data: emission order is decided
later and never affects which edges exist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Final, Iterable, Mapping, Sequence

from scopeinject import (
    Category,
    DeclarationError,
    Diagnostics,
    Node,
    ResolutionError,
    TypeRef,
)
from scopeinject.classifier import infer_category
from scopeinject.options import ResolutionMode
from scopeinject.relations import TypeOracle

_logger: Final[logging.Logger] = logging.getLogger(__name__)


def validate_declarations(nodes: Iterable[Node], oracle: TypeOracle) -> None:
    """
    Check capability and module references of every node.

    :raises DeclarationError: on the first malformed reference.
    """
    for node in nodes:
        for capability in node.declared_capabilities:
            if not oracle.is_interface(capability):
                raise DeclarationError(
                    f"Component has to be interface: {capability}", node
                )
        for module in node.declared_modules:
            if not module.is_marked:
                raise DeclarationError(
                    f"Module {module.identity} is missing the module marker.", node
                )


@dataclass(frozen=True, kw_only=True, slots=True)
class ScopeGraph:
    """
    The resolved scope graph of one round.

    ``children`` and ``parents`` are keyed by node identity and keep insertion
    order. ``failed`` holds the identities of nodes with resolution errors;
    they stay in the multimaps but are never generated.
    """

    root: Node
    nodes: tuple[Node, ...]
    """Non-root nodes in discovery order."""

    children: Mapping[TypeRef, tuple[Node, ...]]
    parents: Mapping[TypeRef, tuple[Node, ...]]
    failed: frozenset[TypeRef] = frozenset()

    def children_of(self, node: Node) -> tuple[Node, ...]:
        return self.children.get(node.identity, ())

    def parents_of(self, node: Node) -> tuple[Node, ...]:
        return self.parents.get(node.identity, ())

    def is_resolved(self, node: Node) -> bool:
        return node.identity not in self.failed

    @property
    def resolved_nodes(self) -> tuple[Node, ...]:
        return tuple(node for node in self.nodes if self.is_resolved(node))

    @property
    def is_tree(self) -> bool:
        return all(len(self.parents_of(node)) <= 1 for node in self.nodes)

    def excluding(self, identities: Iterable[TypeRef]) -> ScopeGraph:
        """Mark more nodes as failed. Edges are kept."""
        return replace(self, failed=self.failed | frozenset(identities))


class _Multimap:
    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[TypeRef, list[Node]] = {}

    def put(self, key: TypeRef, value: Node) -> bool:
        values = self._entries.setdefault(key, [])
        if value in values:
            return False
        values.append(value)
        return True

    def freeze(self) -> Mapping[TypeRef, tuple[Node, ...]]:
        return {key: tuple(values) for key, values in self._entries.items()}


def _match_parent(
    reference: TypeRef, root: Node, candidates: Sequence[Node], oracle: TypeOracle
) -> Node | None:
    if oracle.is_identical(reference, root.identity) or oracle.is_subtype(
        reference, root.identity
    ):
        return root
    for candidate in candidates:
        if oracle.is_identical(reference, candidate.identity) or oracle.is_subtype(
            reference, candidate.identity
        ):
            return candidate
    return None


def _check_tree_declaration(node: Node, oracle: TypeOracle) -> None:
    if len(node.declared_parents) > 1:
        raise ResolutionError("Only one parent can be specified.", node)
    category = infer_category(node, oracle) or node.explicit_category
    if node.declared_parents and category is not Category.VIEW_LIKE:
        raise ResolutionError("Only View can specify parent.", node)


def _find_cyclic(
    nodes: Sequence[Node], parents: Mapping[TypeRef, tuple[Node, ...]]
) -> list[Node]:
    """Nodes whose parent chain leads back to themselves."""

    def loops_back(node: Node) -> bool:
        visited: set[TypeRef] = set()
        pending = list(parents.get(node.identity, ()))
        while pending:
            current = pending.pop()
            if current.identity == node.identity:
                return True
            if current.identity in visited:
                continue
            visited.add(current.identity)
            pending.extend(parents.get(current.identity, ()))
        return False

    return [node for node in nodes if loops_back(node)]


def build_graph(
    root: Node,
    nodes: Sequence[Node],
    oracle: TypeOracle,
    diagnostics: Diagnostics,
    *,
    mode: ResolutionMode = ResolutionMode.DAG,
) -> ScopeGraph:
    """
    Resolve every node's declared parents against the Root and the other nodes.

    A node with unresolved references gets one error listing all of them and
    is excluded from generation; the rest of the round is unaffected.
    """
    candidates = tuple(node for node in nodes if not node.is_root)
    children = _Multimap()
    parents = _Multimap()
    failed: set[TypeRef] = set()

    def fail(error: ResolutionError) -> None:
        diagnostics.report_error(error)
        if error.node is not None:
            failed.add(error.node.identity)

    def bind(child: Node, parent: Node) -> None:
        if children.put(parent.identity, child):
            parents.put(child.identity, parent)
            _logger.debug("Bound %s under %s", child.identity, parent.identity)

    for node in candidates:
        if mode is ResolutionMode.TREE:
            try:
                _check_tree_declaration(node, oracle)
            except ResolutionError as error:
                fail(error)
                continue

        if not node.declared_parents:
            bind(node, root)
            continue

        unresolved: list[TypeRef] = []
        for reference in node.declared_parents:
            parent = _match_parent(reference, root, candidates, oracle)
            if parent is None:
                unresolved.append(reference)
            else:
                bind(node, parent)
        if unresolved:
            references = ", ".join(str(reference) for reference in unresolved)
            fail(ResolutionError(f"Unresolved parent {references}.", node))

    frozen_parents = parents.freeze()
    for node in _find_cyclic(candidates, frozen_parents):
        if node.identity not in failed:
            fail(ResolutionError(f"Cyclic parent declaration on {node.identity}.", node))

    graph = ScopeGraph(
        root=root,
        nodes=candidates,
        children=children.freeze(),
        parents=frozen_parents,
        failed=frozenset(failed),
    )
    _logger.info(
        "Resolved %d scopes under %s (%d failed)",
        len(candidates),
        root.identity,
        len(failed),
    )
    return graph
