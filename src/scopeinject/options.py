"""Generator configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from scopeinject import Category, TypeRef, lower_first


class ResolutionMode(Enum):
    DAG = "dag"
    """Multiple parents per node; flat emission."""

    TREE = "tree"
    """
    Legacy single-parent tree. Only view-like nodes may declare a parent;
    emission recurses depth-first from the Root.
    """


_DEFAULT_SCOPE_MARKERS: Mapping[Category, TypeRef] = MappingProxyType(
    {
        Category.LONG_LIVED: TypeRef("javax.inject.Singleton"),
        Category.ACTIVITY_LIKE: TypeRef("solar.blaz.rondel.ActivityScope"),
        Category.SERVICE_LIKE: TypeRef("solar.blaz.rondel.ServiceScope"),
        Category.FRAGMENT_LIKE: TypeRef("solar.blaz.rondel.FragmentScope"),
        Category.VIEW_LIKE: TypeRef("solar.blaz.rondel.ViewScope"),
    }
)


@dataclass(frozen=True, kw_only=True, slots=True)
class GeneratorOptions:
    mode: ResolutionMode = ResolutionMode.DAG

    container_suffix: str = "Component"
    accessor_suffix: str = "Builder"

    host_parameter: str = "injectie"
    """Name of the host instance parameter in generated injectors."""

    generator: str = "scopeinject"
    """Value of the ``@Generated`` annotation on every generated unit."""

    generated_annotation: TypeRef = TypeRef("javax.annotation.Generated")
    root_component_annotation: TypeRef = TypeRef("dagger.Component")
    component_annotation: TypeRef = TypeRef("dagger.Subcomponent")
    root_marker: TypeRef = TypeRef("solar.blaz.rondel.BaseAppComponent")
    component_marker: TypeRef = TypeRef("solar.blaz.rondel.RondelComponent")
    scope_markers: Mapping[Category, TypeRef] = field(
        default_factory=lambda: _DEFAULT_SCOPE_MARKERS
    )

    root_factory_prefix: str = "Dagger"
    """Prefix of the framework-generated implementation of the Root container."""

    component_getter: str = "getComponent"
    """Accessor every parent host exposes for its own container."""

    structural_container: TypeRef = TypeRef("android.view.ViewParent")
    structural_step: str = "getParent"
    """Primitive returning the enclosing structural container, or null at the top."""

    ascent_helper: str = "RondelParents"
    runtime_failure: TypeRef = TypeRef("java.lang.IllegalStateException")

    def container_name(self, generated_name: str) -> str:
        return generated_name + self.container_suffix

    def accessor_name(self, container_name: str) -> str:
        return lower_first(container_name) + self.accessor_suffix
