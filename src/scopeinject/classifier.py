"""
Category classification.

Every non-root node gets exactly one Category. An explicit override wins for
the container's scope marker; accessor synthesis dispatches on the inferred
category whenever one can be inferred.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from scopeinject import Category, Diagnostics, Node, ResolutionError
from scopeinject.relations import TypeOracle

_logger: Final[logging.Logger] = logging.getLogger(__name__)


def infer_category(node: Node, oracle: TypeOracle) -> Category | None:
    """
    Test the node's identity against the oracle's predicates in priority order.
    """
    if node.is_root:
        return Category.LONG_LIVED
    for category, predicate in oracle.category_predicates():
        if predicate(node.identity):
            return category
    return None


@dataclass(frozen=True, kw_only=True, slots=True)
class Classification:
    category: Category
    """The node's Category: the explicit override if any, otherwise the inferred one."""

    dispatch_category: Category
    """The Category accessor synthesis dispatches on."""

    @property
    def is_conflicting(self) -> bool:
        return self.category is not self.dispatch_category


def classify(node: Node, oracle: TypeOracle) -> Classification:
    """
    :raises ResolutionError: if the node has no override and matches no predicate.
    """
    inferred = infer_category(node, oracle)
    explicit = node.explicit_category
    if explicit is None:
        if inferred is None:
            raise ResolutionError(f"{node.identity} is not an injectable type.", node)
        return Classification(category=inferred, dispatch_category=inferred)
    return Classification(
        category=explicit,
        dispatch_category=explicit if inferred is None else inferred,
    )


def classify_all(
    nodes: tuple[Node, ...], oracle: TypeOracle, diagnostics: Diagnostics
) -> dict[Node, Classification]:
    """
    Classify each node, collecting failures instead of raising them.

    Nodes that cannot be classified are left out of the result.
    """
    classifications: dict[Node, Classification] = {}
    for node in nodes:
        try:
            classification = classify(node, oracle)
        except ResolutionError as error:
            diagnostics.report_error(error)
            continue
        if classification.is_conflicting:
            diagnostics.warning(
                f"Scope {classification.category.name} of {node.identity} differs from "
                f"its type {classification.dispatch_category.name}; "
                f"parent lookup follows {classification.dispatch_category.name}.",
                node,
            )
        _logger.debug("%s classified as %s", node.identity, classification.category.name)
        classifications[node] = classification
    return classifications
