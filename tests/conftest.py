"""Test utilities and fixtures for scopeinject tests."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import final

import pytest

from scopeinject import Category, Constructor, Module, Node, TypeRef
from scopeinject.relations import FrameworkTypes, RelationTable

ANDROID = FrameworkTypes.ANDROID


@final
@dataclass(kw_only=True, slots=True)
class ScopeFactory:
    """Test utility: declares nodes and records their supertypes in one relation table."""

    relations: RelationTable = field(default_factory=RelationTable)
    prefix: str = "Rondel"

    def declare(
        self,
        qualified_name: str,
        *supertypes: TypeRef,
        parents: Sequence[Node | TypeRef] = (),
        modules: Sequence[Module] = (),
        capabilities: Sequence[TypeRef] = (),
        category: Category | None = None,
        is_root: bool = False,
    ) -> Node:
        identity = TypeRef(qualified_name)
        self.relations.declare(identity, supertypes)
        return Node(
            identity=identity,
            generated_name=self.prefix + identity.simple_name,
            namespace=identity.namespace,
            declared_parents=tuple(
                parent.identity if isinstance(parent, Node) else parent
                for parent in parents
            ),
            declared_modules=tuple(modules),
            declared_capabilities=tuple(capabilities),
            explicit_category=category,
            is_root=is_root,
        )

    def app(self, qualified_name: str = "test.TestApp", **kwargs) -> Node:
        return self.declare(qualified_name, ANDROID.application, is_root=True, **kwargs)

    def activity(self, qualified_name: str = "test.ui.TestActivity", **kwargs) -> Node:
        return self.declare(qualified_name, ANDROID.activity, **kwargs)

    def service(self, qualified_name: str = "test.service.TestService", **kwargs) -> Node:
        return self.declare(qualified_name, ANDROID.service, **kwargs)

    def fragment(self, qualified_name: str = "test.ui.fragment.TestFragment", **kwargs) -> Node:
        return self.declare(qualified_name, ANDROID.fragment, **kwargs)

    def view(self, qualified_name: str = "test.ui.view.TestView", **kwargs) -> Node:
        return self.declare(qualified_name, ANDROID.view, **kwargs)

    def interface(self, qualified_name: str) -> TypeRef:
        identity = TypeRef(qualified_name)
        self.relations.declare(identity, interface=True)
        return identity

    def module(
        self, qualified_name: str, *parameters: Node | TypeRef, marked: bool = True
    ) -> Module:
        """A module with a single constructor taking ``parameters``."""
        return Module(
            identity=TypeRef(qualified_name),
            constructors=(
                Constructor(
                    parameters=tuple(
                        parameter.identity if isinstance(parameter, Node) else parameter
                        for parameter in parameters
                    )
                ),
            ),
            is_marked=marked,
        )


@pytest.fixture
def scopes() -> ScopeFactory:
    return ScopeFactory()
