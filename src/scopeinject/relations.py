"""
Type-relation oracle.

The resolver never inspects types directly. Identity, subtype and interface
questions, and the priority-ordered category predicates, are answered by a
``TypeOracle`` passed in explicitly, so resolution can run against a plain
relation table.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Iterable, Iterator, Mapping, Sequence

from typing_extensions import override

from scopeinject import Category, TypeRef

CategoryPredicate = Callable[[TypeRef], bool]


@dataclass(frozen=True, kw_only=True, slots=True)
class FrameworkTypes:
    """
    The framework base types that category predicates test against.
    """

    application: TypeRef
    activity: TypeRef
    service: TypeRef
    fragment: TypeRef
    view: TypeRef

    ANDROID: ClassVar["FrameworkTypes"]

    def category_bases(self) -> Sequence[tuple[Category, TypeRef]]:
        """
        Framework bases for non-root nodes, highest priority first.
        """
        return (
            (Category.ACTIVITY_LIKE, self.activity),
            (Category.SERVICE_LIKE, self.service),
            (Category.FRAGMENT_LIKE, self.fragment),
            (Category.VIEW_LIKE, self.view),
        )


FrameworkTypes.ANDROID = FrameworkTypes(
    application=TypeRef("android.app.Application"),
    activity=TypeRef("android.app.Activity"),
    service=TypeRef("android.app.Service"),
    fragment=TypeRef("android.app.Fragment"),
    view=TypeRef("android.view.View"),
)


class TypeOracle(ABC):
    """
    Answers identity and subtype queries about declared types.
    """

    @abstractmethod
    def is_identical(self, a: TypeRef, b: TypeRef, /) -> bool: ...

    @abstractmethod
    def is_subtype(self, a: TypeRef, b: TypeRef, /) -> bool:
        """Whether ``a`` is ``b`` or a subtype of ``b``."""

    @abstractmethod
    def is_interface(self, type_ref: TypeRef, /) -> bool: ...

    @abstractmethod
    def category_predicates(self) -> Sequence[tuple[Category, CategoryPredicate]]:
        """
        Category predicates for non-root nodes, highest priority first.
        """


@dataclass(kw_only=True, slots=True)
class RelationTable(TypeOracle):
    """
    A ``TypeOracle`` backed by a table of declared direct supertypes.

    Subtyping is the reflexive, transitive closure of the declared table.
    Types never declared are only related to themselves.
    """

    framework: FrameworkTypes = FrameworkTypes.ANDROID
    _supertypes: dict[TypeRef, tuple[TypeRef, ...]] = field(
        default_factory=dict, init=False, repr=False
    )
    _interfaces: set[TypeRef] = field(default_factory=set, init=False, repr=False)

    def declare(
        self,
        type_ref: TypeRef,
        supertypes: Iterable[TypeRef] = (),
        /,
        *,
        interface: bool = False,
    ) -> None:
        """
        Record the direct supertypes of ``type_ref``.

        Declaring the same type again appends new supertypes, keeping order.
        """
        known = self._supertypes.get(type_ref, ())
        self._supertypes[type_ref] = known + tuple(
            supertype for supertype in supertypes if supertype not in known
        )
        if interface:
            self._interfaces.add(type_ref)

    def _ancestors(self, type_ref: TypeRef) -> Iterator[TypeRef]:
        visited: set[TypeRef] = set()
        pending = [type_ref]
        while pending:
            current = pending.pop()
            if current in visited:
                continue
            visited.add(current)
            yield current
            pending.extend(reversed(self._supertypes.get(current, ())))

    @override
    def is_identical(self, a: TypeRef, b: TypeRef, /) -> bool:
        return a == b

    @override
    def is_subtype(self, a: TypeRef, b: TypeRef, /) -> bool:
        return any(ancestor == b for ancestor in self._ancestors(a))

    @override
    def is_interface(self, type_ref: TypeRef, /) -> bool:
        return type_ref in self._interfaces

    @override
    def category_predicates(self) -> Sequence[tuple[Category, CategoryPredicate]]:
        def predicate_for(base: TypeRef) -> CategoryPredicate:
            return lambda type_ref: self.is_subtype(type_ref, base)

        return tuple(
            (category, predicate_for(base))
            for category, base in self.framework.category_bases()
        )

    @classmethod
    def from_mapping(
        cls,
        supertypes: Mapping[TypeRef, Iterable[TypeRef]],
        *,
        interfaces: Iterable[TypeRef] = (),
        framework: FrameworkTypes = FrameworkTypes.ANDROID,
    ) -> RelationTable:
        table = cls(framework=framework)
        for type_ref, direct_supertypes in supertypes.items():
            table.declare(type_ref, direct_supertypes)
        for interface in interfaces:
            table.declare(interface, interface=True)
        return table
