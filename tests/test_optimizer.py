from cppprune.config_loader import PruneConfig
from cppprune.optimizer import Optimizer, run_passes
from cppprune.tokens import TextTokenLocator
from cppprune.source_model import (
    Declaration,
    Declarator,
    DeclaratorGroup,
    DeclKind,
    SourceRange,
    TranslationUnitAnalysis,
)

SOURCE = (
    "#include <cstdio>\n"
    "#define DEAD_MACRO 1\n"
    "int a = 1, b = 2, c = 3;\n"
    "void unused() {}\n"
    "#if 0\n"
    "int old_code;\n"
    "#endif\n"
    "int main() { return a + c; }\n"
)


def _function(text, snippet, name):
    start = text.index(snippet)
    return Declaration(f"{name}@{start}", name, DeclKind.FUNCTION, name, SourceRange(start, start + len(snippet)))


def _analysis(text=SOURCE):
    type_start = text.index("int a")
    declarators = []
    decls = []
    for name in ("a", "b", "c"):
        start = text.index(f"{name} = ")
        end = start + len(f"{name} = 1")
        declarators.append(Declarator(name, name, start, end))
        decls.append(Declaration(
            f"{name}@{start}", name, DeclKind.VARIABLE, name, SourceRange(type_start, end), grouped=True,
        ))
    decls.append(_function(text, "void unused() {}", "unused"))
    decls.append(_function(text, "int main() { return a + c; }", "main"))
    return TranslationUnitAnalysis(
        file_name="solution.cpp",
        text=text,
        declarations=decls,
        use_graph={"main": {"a", "c"}},
        roots={"main"},
        groups=[DeclaratorGroup(type_start, declarators)],
    )


class FakeAnalyzer:
    def __init__(self, analysis):
        self.analysis = analysis
        self.paths = []

    def analyze(self, path):
        self.paths.append(path)
        return self.analysis


def test_all_passes_share_one_ledger():
    result = run_passes(_analysis())
    assert result.text == (
        "#include <cstdio>\n"
        "int a = 1, c = 3;\n"
        "int main() { return a + c; }\n"
    )
    assert result.removed_declarations == ["unused"]
    assert result.removed_declarators == 1
    assert result.removed_conditionals == 1
    assert result.removed_macros == ["DEAD_MACRO"]
    assert result.rejected_removals == 0


def test_nothing_to_remove_is_byte_identical():
    text = "#include <cstdio>\r\nint main() {\r\n  return 0;\r\n}\r\n"
    main = _function(text, text[text.index("int"):].rstrip("\r\n"), "main")
    analysis = TranslationUnitAnalysis("t.cpp", text, [main], {}, {"main"})
    assert run_passes(analysis).text == text


def test_macros_to_keep_protects_definitions():
    result = run_passes(_analysis(), macros_to_keep=["DEAD_MACRO"])
    assert "#define DEAD_MACRO 1\n" in result.text
    assert result.removed_macros == []


def test_macro_pruning_can_be_disabled():
    result = run_passes(_analysis(), prune_macros=False)
    assert "#define DEAD_MACRO 1\n" in result.text


def test_collapse_disabled_leaves_blank_lines():
    result = run_passes(_analysis(), collapse_empty_lines=False)
    assert "\n\n" in result.text
    assert "unused" not in result.text


def test_optimizer_uses_analyzer_and_compile_defines():
    text = "#ifdef FAST\nint main() { return 0; }\n#else\nint main() { return 1; }\n#endif\n"
    start = text.index("int main() { return 0; }")
    main = Declaration("main@0", "main", DeclKind.FUNCTION, "main", SourceRange(start, start + 24))
    analyzer = FakeAnalyzer(TranslationUnitAnalysis("fast.cpp", text, [main], {}, {"main"}))

    optimizer = Optimizer(compile_args=["-DFAST"], analyzer=analyzer)
    assert optimizer.optimize("fast.cpp") == "int main() { return 0; }\n"
    assert analyzer.paths == ["fast.cpp"]


def test_optimizer_merges_config_with_arguments():
    config = PruneConfig(compile_args=["-std=c++17"], macros_to_keep=["LOCAL"], keep_names=["debug"])
    optimizer = Optimizer(["-DFAST"], ["ONLINE_JUDGE", "LOCAL"], ["trace"], config=config)
    assert optimizer.config.compile_args == ["-std=c++17", "-DFAST"]
    assert optimizer.config.macros_to_keep == ["LOCAL", "ONLINE_JUDGE"]
    assert optimizer.config.keep_names == ["debug", "trace"]
    # the passed-in config is not modified
    assert config.compile_args == ["-std=c++17"]


def test_result_summary():
    result = run_passes(_analysis())
    data = result.to_dict()
    assert data["file"] == "solution.cpp"
    assert data["summary"]["removed_declarations"] == 1
    assert data["summary"]["removed_macros"] == 1
    assert data["summary"]["used"] == 3
    assert data["removed_macros"] == ["DEAD_MACRO"]


class RecordingLocator(TextTokenLocator):
    def __init__(self, text):
        super().__init__(text)
        self.queries = []

    def find_token_after(self, offset, spelling):
        self.queries.append((offset, spelling))
        return super().find_token_after(offset, spelling)


def test_front_end_token_locator_is_used_for_declarators():
    analysis = _analysis()
    analysis.token_locator = RecordingLocator(analysis.text)
    result = run_passes(analysis)
    assert analysis.token_locator.queries
    assert "int a = 1, c = 3;\n" in result.text


def test_comment_opener_in_string_does_not_hide_directives():
    text = (
        'const char* s = "/*";\n'
        "#if 0\n"
        "int old_code;\n"
        "#endif\n"
        "int main() { return s[0]; }\n"
    )
    main = _function(text, "int main() { return s[0]; }", "main")
    analysis = TranslationUnitAnalysis("t.cpp", text, [main], {}, {"main"})
    result = run_passes(analysis)
    assert result.text == 'const char* s = "/*";\nint main() { return s[0]; }\n'
    assert result.removed_conditionals == 1
