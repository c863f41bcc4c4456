"""Tests for Java source rendering."""

import pytest
from syrupy.assertion import SnapshotAssertion

from conftest import ScopeFactory

from scopeinject import TypeRef
from scopeinject.codegen import Call, ClassLiteral, Name, New
from scopeinject.render import SourceFile, render_expression
from scopeinject.session import Session


@pytest.fixture
def sample_files(scopes: ScopeFactory) -> dict[str, SourceFile]:
    app_module = scopes.module("test.AppModule", TypeRef("android.app.Application"))
    root = scopes.app(modules=(app_module,))
    capability = scopes.interface("test.ui.ActivityCapability")
    activity = scopes.activity(
        capabilities=(capability,),
        modules=(
            scopes.module("test.ui.ActivityModule", TypeRef("test.ui.TestActivity")),
            scopes.module("test.ui.PlainModule"),
        ),
    )
    outer = scopes.view("test.ui.view.OuterView", parents=(activity,))
    inner = scopes.view("test.ui.view.InnerView", parents=(outer,))
    session = Session(oracle=scopes.relations)
    files = session.render(session.process_round((root, activity, outer, inner)))
    return {file.identity.qualified_name: file for file in files}


def lines(file: SourceFile) -> tuple[str, ...]:
    return tuple(file.text.splitlines())


class TestRenderExpression:
    """Test rendering of call descriptors."""

    def test_chained_calls(self) -> None:
        expression = Call(
            operation="getApplicationContext",
            target=Call(operation="getActivity", target=Name("injectie")),
        )
        assert render_expression(expression) == "injectie.getActivity().getApplicationContext()"

    def test_static_call_with_arguments(self) -> None:
        expression = Call(
            operation="find",
            arguments=(Name("start"), ClassLiteral(TypeRef("test.ui.view.OuterView"))),
            target=TypeRef("test.RondelParents"),
        )
        assert render_expression(expression) == "RondelParents.find(start, OuterView.class)"

    def test_construction(self) -> None:
        expression = New(type=TypeRef("test.AppModule"), arguments=(Name("injectie"),))
        assert render_expression(expression) == "new AppModule(injectie)"


class TestRenderModel:
    """Test the rendered units of one round."""

    def test_file_order(self, sample_files: dict[str, SourceFile]) -> None:
        assert list(sample_files) == [
            "test.RondelTestAppComponent",
            "test.RondelTestApp",
            "test.ui.RondelTestActivityComponent",
            "test.ui.RondelTestActivity",
            "test.ui.view.RondelOuterViewComponent",
            "test.ui.view.RondelOuterView",
            "test.ui.view.RondelInnerViewComponent",
            "test.ui.view.RondelInnerView",
            "test.RondelParents",
        ]

    def test_container_without_modules(self, sample_files: dict[str, SourceFile]) -> None:
        text = sample_files["test.ui.view.RondelInnerViewComponent"].text
        assert "@Subcomponent\n@ViewScope\n" in text
        assert "extends RondelComponent {" in text

    def test_root_container(
        self, sample_files: dict[str, SourceFile], snapshot: SnapshotAssertion
    ) -> None:
        assert lines(sample_files["test.RondelTestAppComponent"]) == snapshot

    def test_root_injector(
        self, sample_files: dict[str, SourceFile], snapshot: SnapshotAssertion
    ) -> None:
        assert lines(sample_files["test.RondelTestApp"]) == snapshot

    def test_activity_container(
        self, sample_files: dict[str, SourceFile], snapshot: SnapshotAssertion
    ) -> None:
        assert lines(sample_files["test.ui.RondelTestActivityComponent"]) == snapshot

    def test_activity_injector(
        self, sample_files: dict[str, SourceFile], snapshot: SnapshotAssertion
    ) -> None:
        assert lines(sample_files["test.ui.RondelTestActivity"]) == snapshot

    def test_ascending_injector(
        self, sample_files: dict[str, SourceFile], snapshot: SnapshotAssertion
    ) -> None:
        assert lines(sample_files["test.ui.view.RondelInnerView"]) == snapshot

    def test_ascent_helper(
        self, sample_files: dict[str, SourceFile], snapshot: SnapshotAssertion
    ) -> None:
        assert lines(sample_files["test.RondelParents"]) == snapshot
