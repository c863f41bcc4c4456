"""
Java source rendering of generated descriptors.

This is the only place descriptors become text. Rendering is deterministic:
imports are sorted and members keep descriptor order.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator

from scopeinject import TypeRef
from scopeinject.codegen import (
    CONTAINER_VARIABLE,
    PARENT_CONTAINER_VARIABLE,
    PARENT_VARIABLE,
    AscentDescriptor,
    Call,
    ClassLiteral,
    ContainerDescriptor,
    Expression,
    GeneratedModel,
    InjectorDescriptor,
    Name,
    New,
)
from scopeinject.options import GeneratorOptions

INDENT = " " * 4
_IMPLICIT_NAMESPACES = frozenset({"", "java.lang"})


@dataclass(frozen=True, kw_only=True, slots=True)
class SourceFile:
    identity: TypeRef
    text: str


class _Writer:
    __slots__ = ("_lines", "_depth")

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._depth = 0

    def line(self, text: str = "") -> None:
        self._lines.append(INDENT * self._depth + text if text else "")

    @contextmanager
    def block(self, header: str) -> Iterator[None]:
        self.line(header + " {")
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            self.line("}")

    def text(self) -> str:
        return "\n".join(self._lines) + "\n"


def _string_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_expression(expression: Expression | TypeRef) -> str:
    match expression:
        case TypeRef(simple_name=simple_name):
            return simple_name
        case Name(identifier=identifier):
            return identifier
        case ClassLiteral(type=type_ref):
            return f"{type_ref.simple_name}.class"
        case New(type=type_ref, arguments=arguments):
            return f"new {type_ref.simple_name}({_arguments(arguments)})"
        case Call(operation=operation, arguments=arguments, target=None):
            return f"{operation}({_arguments(arguments)})"
        case Call(operation=operation, arguments=arguments, target=target):
            assert target is not None
            return f"{render_expression(target)}.{operation}({_arguments(arguments)})"
    raise TypeError(f"Cannot render {expression!r}")


def _arguments(arguments: Iterable[Expression]) -> str:
    return ", ".join(render_expression(argument) for argument in arguments)


def _header(
    writer: _Writer,
    namespace: str,
    references: Iterable[TypeRef],
    options: GeneratorOptions,
) -> None:
    if namespace:
        writer.line(f"package {namespace};")
        writer.line()
    imports = [
        reference
        for reference in references
        if reference.namespace != namespace
        and reference.namespace not in _IMPLICIT_NAMESPACES
    ]
    for reference in imports:
        writer.line(f"import {reference.qualified_name};")
    if imports:
        writer.line()
    writer.line(
        f"@{options.generated_annotation.simple_name}({_string_literal(options.generator)})"
    )


def render_container(
    container: ContainerDescriptor, options: GeneratorOptions
) -> str:
    writer = _Writer()
    _header(writer, container.namespace, container.references(options), options)
    annotation = container.annotation.simple_name
    if container.modules:
        modules = ", ".join(f"{module.simple_name}.class" for module in container.modules)
        writer.line(f"@{annotation}(modules = {{ {modules} }})")
    else:
        writer.line(f"@{annotation}")
    writer.line(f"@{container.scope_marker.simple_name}")
    extends = ", ".join(capability.simple_name for capability in container.capabilities)
    with writer.block(f"public interface {container.name} extends {extends}"):
        writer.line()
        writer.line(f"void inject({container.host.simple_name} instance);")
        writer.line()
        for accessor in container.accessors:
            writer.line(f"{accessor.child.simple_name}.Builder {accessor.name}();")
            writer.line()
        writer.line(f"@{annotation}.Builder")
        with writer.block("interface Builder"):
            for setter in container.builder.setters:
                writer.line(
                    f"Builder {setter.name}({setter.module.simple_name} module);"
                )
            writer.line(f"{container.name} build();")
        writer.line()
    return writer.text()


def render_injector(injector: InjectorDescriptor, options: GeneratorOptions) -> str:
    writer = _Writer()
    _header(writer, injector.namespace, injector.references(options), options)
    host = injector.host.simple_name
    container = injector.container.simple_name
    host_parameter = options.host_parameter
    modifiers = "public final class" if injector.is_public else "final class"
    with writer.block(f"{modifiers} {injector.name}"):
        writer.line()
        if injector.supplies:
            for supply in injector.supplies:
                writer.line(
                    f"private static {supply.module.simple_name} {supply.override_field};"
                )
            writer.line()
        with writer.block(f"private {injector.name}()"):
            pass
        writer.line()

        with writer.block(
            f"public static {container} inject({host} {host_parameter})"
        ):
            lookup = injector.parent
            if lookup is not None:
                parent = lookup.parent.identity.simple_name
                parent_container = lookup.parent_container.simple_name
                expression = render_expression(lookup.expression)
                if lookup.ascends:
                    writer.line(f"{parent} {PARENT_VARIABLE} = {expression};")
                else:
                    writer.line(
                        f"{parent} {PARENT_VARIABLE} = ({parent}) {expression};"
                    )
                getter = render_expression(
                    Call(operation=options.component_getter, target=Name(PARENT_VARIABLE))
                )
                writer.line(
                    f"{parent_container} {PARENT_CONTAINER_VARIABLE} = "
                    f"({parent_container}) {getter};"
                )
            first, *rest = injector.builder_chain
            writer.line(f"{container} {CONTAINER_VARIABLE} = {render_expression(first)}")
            for index, link in enumerate(rest):
                terminator = ";" if index == len(rest) - 1 else ""
                writer.line(f"{INDENT * 2}.{render_expression(link)}{terminator}")
            writer.line(f"{CONTAINER_VARIABLE}.inject({host_parameter});")
            writer.line(f"return {CONTAINER_VARIABLE};")
        writer.line()

        for supply in injector.supplies:
            module = supply.module.simple_name
            with writer.block(
                f"public static void {supply.override_setter}({module} module)"
            ):
                writer.line(f"{supply.override_field} = module;")
            writer.line()
            with writer.block(
                f"private static {module} {supply.getter}({host} {host_parameter})"
            ):
                with writer.block(f"if ({supply.override_field} != null)"):
                    writer.line(f"return {supply.override_field};")
                writer.line(f"return {render_expression(supply.construction)};")
            writer.line()
    return writer.text()


def render_ascent(ascent: AscentDescriptor, options: GeneratorOptions) -> str:
    writer = _Writer()
    _header(writer, ascent.namespace, ascent.references(options), options)
    container = ascent.container_type.simple_name
    with writer.block(f"public final class {ascent.name}"):
        writer.line()
        with writer.block(f"private {ascent.name}()"):
            pass
        writer.line()
        with writer.block(f"public static <T> T find({container} start, Class<T> type)"):
            writer.line(f"{container} current = start;")
            with writer.block("while (current != null)"):
                with writer.block("if (type.isInstance(current))"):
                    writer.line("return type.cast(current);")
                writer.line(f"current = current.{ascent.step}();")
            writer.line(
                f"throw new {ascent.failure.simple_name}({_string_literal(ascent.message)});"
            )
        writer.line()
    return writer.text()


def render_model(
    model: GeneratedModel, options: GeneratorOptions
) -> tuple[SourceFile, ...]:
    """
    Render every unit of a generated round: the Root's, each scope's, then the
    shared ascent helper.
    """
    files: list[SourceFile] = []
    artifacts = ((model.root,) if model.root is not None else ()) + model.scopes
    for scope in artifacts:
        files.append(
            SourceFile(
                identity=scope.container.identity,
                text=render_container(scope.container, options),
            )
        )
        injector = scope.injector
        files.append(
            SourceFile(
                identity=TypeRef(
                    f"{injector.namespace}.{injector.name}"
                    if injector.namespace
                    else injector.name
                ),
                text=render_injector(injector, options),
            )
        )
    if model.ascent is not None:
        files.append(
            SourceFile(
                identity=model.ascent.identity,
                text=render_ascent(model.ascent, options),
            )
        )
    return tuple(files)
