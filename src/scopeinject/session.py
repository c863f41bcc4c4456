"""
Round processing.

A ``Session`` lives for one compilation run. It remembers the Root across
discovery rounds; everything else is rebuilt every round.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Final, Sequence

from scopeinject import (
    DeclarationError,
    Diagnostics,
    Node,
    StructuralError,
)
from scopeinject.classifier import classify_all
from scopeinject.codegen import (
    CodeModelGenerator,
    Emission,
    FlatEmission,
    GeneratedModel,
    ScopeArtifacts,
    TreeEmission,
)
from scopeinject.graph import ScopeGraph, build_graph, validate_declarations
from scopeinject.options import GeneratorOptions, ResolutionMode
from scopeinject.relations import TypeOracle
from scopeinject.render import SourceFile, render_model

_logger: Final[logging.Logger] = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True, slots=True)
class RoundResult:
    diagnostics: Diagnostics
    graph: ScopeGraph | None = None
    model: GeneratedModel | None = None
    aborted: bool = False
    """Whether a structural or declaration failure stopped the round."""

    @property
    def deferred(self) -> bool:
        """Whether the round produced nothing because no Root is known yet."""
        return not self.aborted and self.graph is None

    @property
    def root(self) -> ScopeArtifacts | None:
        return None if self.model is None else self.model.root

    @property
    def scopes(self) -> tuple[ScopeArtifacts, ...]:
        return () if self.model is None else self.model.scopes

    def artifacts_for(self, node: Node) -> ScopeArtifacts | None:
        for artifacts in self.scopes:
            if artifacts.node.identity == node.identity:
                return artifacts
        return None


def emission_for(mode: ResolutionMode) -> Emission:
    match mode:
        case ResolutionMode.TREE:
            return TreeEmission()
        case ResolutionMode.DAG:
            return FlatEmission()


@dataclass(kw_only=True, slots=True)
class Session:
    """
    Processes discovery rounds of one compilation run.

    The Root, once discovered, is kept for every later round. A round that
    arrives before any Root is deferred.
    """

    oracle: TypeOracle
    options: GeneratorOptions = field(default_factory=GeneratorOptions)
    root: Node | None = field(default=None, init=False)

    def _accept_root(self, nodes: Sequence[Node]) -> Node | None:
        roots = [node for node in nodes if node.is_root]
        if len(roots) > 1 or (roots and self.root is not None):
            raise StructuralError("Only one App level view is allowed.", roots[-1])
        if roots:
            (self.root,) = roots
            _logger.info("Root scope is %s", self.root.identity)
        return self.root

    def process_round(self, nodes: Sequence[Node]) -> RoundResult:
        """
        Resolve and generate one round of declarations.

        Structural and declaration failures abort the whole round and are
        reported once. Every other failure is reported against its node while
        the remaining nodes are still generated.
        """
        diagnostics = Diagnostics()
        try:
            root = self._accept_root(nodes)
            if root is None:
                diagnostics.warning("No App level view provided.")
                _logger.info("Deferring round of %d declarations", len(nodes))
                return RoundResult(diagnostics=diagnostics)
            validate_declarations(nodes, self.oracle)
        except (StructuralError, DeclarationError) as error:
            diagnostics.report_error(error)
            return RoundResult(diagnostics=diagnostics, aborted=True)

        scopes = tuple(node for node in nodes if not node.is_root)
        graph = build_graph(
            root, scopes, self.oracle, diagnostics, mode=self.options.mode
        )
        classifications = classify_all(graph.resolved_nodes, self.oracle, diagnostics)
        graph = graph.excluding(
            node.identity
            for node in graph.resolved_nodes
            if node not in classifications
        )
        generator = CodeModelGenerator(oracle=self.oracle, options=self.options)
        model = generator.generate(
            graph, classifications, diagnostics, emission_for(self.options.mode)
        )
        _logger.info(
            "Generated %d of %d scopes with %d errors",
            len(model.scopes),
            len(scopes),
            len(diagnostics.errors),
        )
        return RoundResult(diagnostics=diagnostics, graph=graph, model=model)

    def render(self, result: RoundResult) -> tuple[SourceFile, ...]:
        if result.model is None:
            return ()
        return render_model(result.model, self.options)

    def close(self) -> None:
        """
        End the compilation run.

        :raises StructuralError: if no round ever provided a Root.
        """
        if self.root is None:
            raise StructuralError("No App level view provided.")
