import pytest

cindex = pytest.importorskip("clang.cindex")

from cppprune.errors import AnalysisFailure  # noqa: E402
from cppprune.frontend import ClangAnalyzer, analyze_file, force_template_bodies  # noqa: E402
from cppprune.optimizer import Optimizer  # noqa: E402


@pytest.fixture(scope="module")
def analyzer():
    try:
        index = cindex.Index.create()
    except cindex.LibclangError as e:
        pytest.skip(f"libclang unavailable: {e}")
    return ClangAnalyzer(index=index)


def _write(tmp_path, text, name="solution.cpp"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def _optimize(analyzer, path):
    return Optimizer(analyzer=analyzer).optimize(path)


def test_unused_function_is_removed(analyzer, tmp_path):
    text = (
        "int used() { return 1; }\n"
        "int unused() { return 2; }\n"
        "int main() { return used(); }\n"
    )
    out = _optimize(analyzer, _write(tmp_path, text))
    assert out == "int used() { return 1; }\nint main() { return used(); }\n"


def test_unused_struct_goes_and_used_struct_keeps_members(analyzer, tmp_path):
    text = (
        "struct S { int f() { return 1; } int g() { return 2; } };\n"
        "struct T {};\n"
        "int main() { S s; return s.f(); }\n"
    )
    out = _optimize(analyzer, _write(tmp_path, text))
    assert out == (
        "struct S { int f() { return 1; } int g() { return 2; } };\n"
        "int main() { S s; return s.f(); }\n"
    )


def test_forward_declaration_follows_definition(analyzer, tmp_path):
    text = (
        "int f();\n"
        "int g();\n"
        "int main() { return f(); }\n"
        "int f() { return 1; }\n"
        "int g() { return 2; }\n"
    )
    out = _optimize(analyzer, _write(tmp_path, text))
    assert out == "int f();\nint main() { return f(); }\nint f() { return 1; }\n"


def test_unused_declarator_is_split_out(analyzer, tmp_path):
    text = "int a = 1, b = 2, c = 3;\nint main() { return a + c; }\n"
    out = _optimize(analyzer, _write(tmp_path, text))
    assert out == "int a = 1, c = 3;\nint main() { return a + c; }\n"


def test_unused_namespace_member(analyzer, tmp_path):
    text = (
        "namespace ns {\n"
        "int f() { return 1; }\n"
        "int g() { return 2; }\n"
        "}\n"
        "namespace other {\n"
        "int h() { return 3; }\n"
        "}\n"
        "int main() { return ns::f(); }\n"
    )
    out = _optimize(analyzer, _write(tmp_path, text))
    assert "int f()" in out
    assert "int g()" not in out
    assert "other" not in out
    assert out.endswith("int main() { return ns::f(); }\n")


def test_analysis_reports_roots_and_edges(analyzer, tmp_path):
    text = "int helper() { return 1; }\nint main() { return helper(); }\n"
    analysis = analyzer.analyze(_write(tmp_path, text))
    by_name = {d.name: d for d in analysis.declarations}
    main, helper = by_name["main"], by_name["helper"]
    assert main.canonical_key in analysis.roots
    assert helper.canonical_key in analysis.use_graph[main.canonical_key]


def test_compilation_error_raises(analyzer, tmp_path):
    path = _write(tmp_path, "int main() { return undefined_symbol; }\n")
    with pytest.raises(AnalysisFailure) as excinfo:
        analyzer.analyze(path)
    assert "Compilation error" in str(excinfo.value)
    assert excinfo.value.diagnostics


def test_keep_names_make_roots(tmp_path, analyzer):
    keeping = ClangAnalyzer(keep_names=["debug_dump"], index=analyzer.index)
    text = "void debug_dump() {}\nint main() { return 0; }\n"
    out = _optimize(keeping, _write(tmp_path, text))
    assert out == text


def test_parse_args_force_template_bodies():
    args = ClangAnalyzer(["-std=c++20", "-DLOCAL"]).parse_args()
    assert args[:2] == ["-x", "c++"]
    assert "-std=c++17" not in args
    assert args[-len(force_template_bodies()):] == force_template_bodies()


def test_analyze_file_helper(analyzer, tmp_path):
    text = "int main() { return 0; }\n"
    analysis = analyze_file(_write(tmp_path, text))
    assert analysis.text == text
    assert [d.name for d in analysis.declarations] == ["main"]


def test_qualified_name_does_not_keep_unrelated_namespace_block(analyzer, tmp_path):
    text = (
        "namespace A { int x = 1; }\n"
        "namespace A { int y = 2; }\n"
        "int main() { return A::x; }\n"
    )
    out = _optimize(analyzer, _write(tmp_path, text))
    assert out == "namespace A { int x = 1; }\nint main() { return A::x; }\n"


def test_using_directive_keeps_its_namespace(analyzer, tmp_path):
    text = (
        "namespace A { int x = 1; }\n"
        "using namespace A;\n"
        "int main() { return x; }\n"
    )
    out = _optimize(analyzer, _write(tmp_path, text))
    assert out == text


def test_declarator_split_uses_compiler_tokens(analyzer, tmp_path):
    text = (
        "#define PAIR(x, y) x + y\n"
        "int a = PAIR(1, 2), b = 3, c = 4;\n"
        "int main() { return a + c; }\n"
    )
    analysis = analyzer.analyze(_write(tmp_path, text))
    locator = analysis.token_locator
    assert locator is not None
    assert locator.find_token_after(text.index("a ="), ",") == text.index(", b")
    # directive lines are not part of the token stream
    assert locator.next_token(0) == (text.index("int a"), "int")

    out = _optimize(analyzer, _write(tmp_path, text))
    assert out == (
        "#define PAIR(x, y) x + y\n"
        "int a = PAIR(1, 2), c = 4;\n"
        "int main() { return a + c; }\n"
    )
