from cppprune.reachability import compute_used
from cppprune.source_model import Declaration, DeclKind, SourceRange


def _decl(key, kind=DeclKind.FUNCTION, in_main_file=True, canonical=None, start=0):
    return Declaration(
        key=f"loc:{key}:{start}",
        canonical_key=canonical or key,
        kind=kind,
        name=key,
        range=SourceRange(start, start + 1),
        in_main_file=in_main_file,
    )


def test_transitive_closure_from_main():
    graph = {"main": {"f"}, "f": {"g"}, "g": set(), "h": {"f"}}
    used = compute_used({"main"}, graph)
    assert set(used) == {"main", "f", "g"}
    assert "h" not in used


def test_cycles_and_self_loops_terminate():
    graph = {"main": {"a"}, "a": {"b", "a"}, "b": {"a", "main"}}
    used = compute_used(["main"], graph)
    assert set(used) == {"main", "a", "b"}


def test_disconnected_component_is_unused():
    graph = {"main": set(), "x": {"y"}, "y": {"x"}}
    used = compute_used({"main"}, graph)
    assert set(used) == {"main"}


def test_empty_roots_give_empty_set():
    used = compute_used(set(), {"a": {"b"}})
    assert len(used) == 0
    assert list(used) == []


def test_roots_missing_from_graph_are_still_used():
    used = compute_used({"main", "orphan"}, {})
    assert used.contains("orphan")
    assert "main" in used


def test_main_file_registry_tracks_only_main_file_entities():
    decls = [
        _decl("main"),
        _decl("helper"),
        _decl("printf", in_main_file=False),
    ]
    graph = {"main": {"helper", "printf"}}
    used = compute_used({"main"}, graph, decls)
    assert set(used) == {"main", "helper", "printf"}
    assert used.kept_in_main_file == {"main", "helper"}
    assert used.in_main_file("helper")
    assert not used.in_main_file("printf")


def test_entity_is_in_main_file_if_any_occurrence_is():
    decls = [
        _decl("f-header", canonical="f", in_main_file=False, start=0),
        _decl("f-def", canonical="f", in_main_file=True, start=10),
    ]
    used = compute_used({"f"}, {}, decls)
    assert used.in_main_file("f")


def test_namespaces_are_tracked_per_occurrence():
    first = Declaration("ns@1", "ns@1", DeclKind.NAMESPACE, "ns", SourceRange(0, 10))
    second = Declaration("ns@2", "ns@2", DeclKind.NAMESPACE, "ns", SourceRange(20, 30))
    f = _decl("f", start=5)
    first.children.append(f)
    graph = {"main": {"f"}, "f": {"ns@1"}}
    used = compute_used({"main"}, graph, [first, second])
    assert "ns@1" in used
    assert "ns@2" not in used
