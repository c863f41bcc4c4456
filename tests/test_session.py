"""Tests for round processing."""

import logging

import pytest

from conftest import ScopeFactory

from scopeinject import Category, StructuralError, TypeRef
from scopeinject.options import GeneratorOptions, ResolutionMode
from scopeinject.session import Session


class TestRootHandling:
    """Test the session-held Root."""

    def test_round_without_root_is_deferred(self, scopes: ScopeFactory) -> None:
        session = Session(oracle=scopes.relations)
        result = session.process_round((scopes.activity(),))
        assert result.deferred
        assert not result.aborted
        assert result.scopes == ()
        assert [w.message for w in result.diagnostics.warnings] == [
            "No App level view provided."
        ]
        assert session.render(result) == ()

    def test_root_is_kept_across_rounds(self, scopes: ScopeFactory) -> None:
        session = Session(oracle=scopes.relations)
        root = scopes.app()
        first = session.process_round((root,))
        assert first.root is not None
        assert first.scopes == ()

        activity = scopes.activity()
        second = session.process_round((activity,))
        assert session.root == root
        assert second.root is not None
        assert [a.name for a in second.root.container.accessors] == [
            "rondelTestActivityComponentBuilder"
        ]
        assert second.artifacts_for(activity) is not None

    def test_two_roots_in_one_round(self, scopes: ScopeFactory) -> None:
        session = Session(oracle=scopes.relations)
        result = session.process_round(
            (scopes.app("test.FirstApp"), scopes.app("test.SecondApp"))
        )
        assert result.aborted
        assert [e.message for e in result.diagnostics.errors] == [
            "Only one App level view is allowed."
        ]
        assert result.model is None

    def test_second_root_in_later_round(self, scopes: ScopeFactory) -> None:
        session = Session(oracle=scopes.relations)
        session.process_round((scopes.app("test.FirstApp"),))
        result = session.process_round((scopes.app("test.SecondApp"),))
        assert result.aborted
        assert session.root is not None
        assert session.root.identity == TypeRef("test.FirstApp")

    def test_close_without_root(self, scopes: ScopeFactory) -> None:
        session = Session(oracle=scopes.relations)
        session.process_round((scopes.activity(),))
        with pytest.raises(StructuralError, match="No App level view provided."):
            session.close()

    def test_close_with_root(self, scopes: ScopeFactory) -> None:
        session = Session(oracle=scopes.relations)
        session.process_round((scopes.app(),))
        session.close()


class TestRoundFailures:
    """Test round-fatal and node-local failures."""

    def test_declaration_error_aborts_round(self, scopes: ScopeFactory) -> None:
        session = Session(oracle=scopes.relations)
        activity = scopes.activity(capabilities=(TypeRef("test.ui.NotAnInterface"),))
        result = session.process_round((scopes.app(), activity, scopes.service()))
        assert result.aborted
        assert not result.deferred
        assert result.graph is None
        assert [e.node for e in result.diagnostics.errors] == [activity]

    def test_node_errors_are_local(self, scopes: ScopeFactory) -> None:
        session = Session(oracle=scopes.relations)
        activity = scopes.activity()
        orphan = scopes.fragment(parents=(TypeRef("test.ui.Missing"),))
        plain = scopes.declare("test.Plain")
        result = session.process_round((scopes.app(), activity, orphan, plain))
        assert not result.aborted
        assert [e.node for e in result.diagnostics.errors] == [orphan, plain]
        assert [scope.node for scope in result.scopes] == [activity]

    @pytest.mark.parametrize("mode", [ResolutionMode.DAG, ResolutionMode.TREE])
    def test_non_injectable_node_reported_once(
        self, scopes: ScopeFactory, mode: ResolutionMode
    ) -> None:
        session = Session(oracle=scopes.relations, options=GeneratorOptions(mode=mode))
        activity = scopes.activity()
        plain = scopes.declare("test.Plain")
        service = scopes.service()
        result = session.process_round((scopes.app(), activity, plain, service))
        assert [e.message for e in result.diagnostics.errors] == [
            "test.Plain is not an injectable type."
        ]
        assert result.graph is not None
        assert not result.graph.is_resolved(plain)
        assert [scope.node for scope in result.scopes] == [activity, service]
        assert result.root is not None
        assert len(result.root.container.accessors) == 2

    def test_diagnostics_are_logged(
        self, scopes: ScopeFactory, caplog: pytest.LogCaptureFixture
    ) -> None:
        session = Session(oracle=scopes.relations)
        orphan = scopes.fragment(parents=(TypeRef("test.ui.Missing"),))
        with caplog.at_level(logging.INFO, logger="scopeinject"):
            session.process_round((scopes.app(), orphan))
        assert "Unresolved parent test.ui.Missing." in caplog.text
        assert "Root scope is test.TestApp" in caplog.text


class TestRoundOutput:
    """Test properties of a generated round as a whole."""

    def test_one_container_per_scope(self, scopes: ScopeFactory) -> None:
        root = scopes.app()
        activity = scopes.activity()
        nodes = (
            activity,
            scopes.service(),
            scopes.fragment(parents=(activity,)),
            scopes.view(parents=(activity,)),
        )
        result = Session(oracle=scopes.relations).process_round((root, *nodes))
        assert len(result.diagnostics) == 0
        assert len(result.scopes) == len(nodes)
        assert result.root is not None
        assert not result.root.injector.parent

    def test_rendering_is_deterministic(self, scopes: ScopeFactory) -> None:
        root = scopes.app()
        activity = scopes.activity()
        fragment = scopes.fragment(parents=(activity,))
        view = scopes.view(parents=(activity,))

        def render() -> list[str]:
            session = Session(oracle=scopes.relations)
            return [
                file.text
                for file in session.render(
                    session.process_round((root, activity, fragment, view))
                )
            ]

        assert render() == render()

    def test_tree_mode_matches_dag_mode(self, scopes: ScopeFactory) -> None:
        root = scopes.app()
        activity = scopes.activity()
        outer = scopes.view("test.ui.view.OuterView", parents=(activity,))
        inner = scopes.view("test.ui.view.InnerView", parents=(outer,))
        nodes = (root, activity, outer, inner)
        dag = Session(oracle=scopes.relations)
        tree = Session(
            oracle=scopes.relations, options=GeneratorOptions(mode=ResolutionMode.TREE)
        )
        assert dag.render(dag.process_round(nodes)) == tree.render(
            tree.process_round(nodes)
        )

    def test_explicit_category_sets_scope_marker(self, scopes: ScopeFactory) -> None:
        root = scopes.app()
        view = scopes.view(category=Category.FRAGMENT_LIKE)
        result = Session(oracle=scopes.relations).process_round((root, view))
        (artifacts,) = result.scopes
        assert artifacts.container.scope_marker == TypeRef("solar.blaz.rondel.FragmentScope")
        assert [step.operation for step in artifacts.injector.parent.steps] == [
            "getContext",
            "getApplicationContext",
        ]
        assert len(result.diagnostics.warnings) == 1

    def test_custom_options(self, scopes: ScopeFactory) -> None:
        options = GeneratorOptions(container_suffix="Graph", host_parameter="host")
        session = Session(oracle=scopes.relations, options=options)
        activity = scopes.activity()
        result = session.process_round((scopes.app(), activity))
        assert result.root is not None
        (accessor,) = result.root.container.accessors
        assert accessor.name == "rondelTestActivityGraphBuilder"
        files = session.render(result)
        assert "inject(TestActivity host)" in files[3].text
