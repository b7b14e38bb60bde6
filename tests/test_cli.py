import json

from cppprune import cli
from cppprune import optimizer as optimizer_module
from cppprune.errors import AnalysisFailure
from cppprune.source_model import Declaration, DeclKind, SourceRange, TranslationUnitAnalysis

SOURCE = "void helper() {}\nint main() { return 0; }\n"


class FakeAnalyzer:
    def __init__(self, fail=False):
        self.fail = fail

    def analyze(self, path):
        if self.fail:
            raise AnalysisFailure("Compilation error", ["t.cpp:1:1: error: boom"])
        helper = Declaration("helper@0", "helper", DeclKind.FUNCTION, "helper", SourceRange(0, 16))
        start = SOURCE.index("int main")
        main = Declaration("main@17", "main", DeclKind.FUNCTION, "main", SourceRange(start, len(SOURCE) - 1))
        return TranslationUnitAnalysis(path, SOURCE, [helper, main], {}, {"main"})


def _use_fake(monkeypatch, fail=False):
    fake = FakeAnalyzer(fail)
    monkeypatch.setattr(optimizer_module.Optimizer, "analyzer", property(lambda self: fake))


def test_split_compile_args():
    assert cli._split_compile_args(["a.cpp", "--", "-DX", "-I."]) == (["a.cpp"], ["-DX", "-I."])
    assert cli._split_compile_args(["a.cpp"]) == (["a.cpp"], [])


def test_no_file_prints_help(capsys):
    assert cli.main([]) == 2
    assert "usage" in capsys.readouterr().out


def test_init_writes_config_once(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert cli.main(["--init"]) == 0
    assert (tmp_path / "cppprune.yaml").exists()
    assert cli.main(["--init"]) == 1


def test_optimizes_to_stdout(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    _use_fake(monkeypatch)
    assert cli.main(["t.cpp"]) == 0
    assert capsys.readouterr().out == "int main() { return 0; }\n"


def test_writes_output_and_report(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _use_fake(monkeypatch)
    rc = cli.main(["t.cpp", "-o", "out.cpp", "--report", "report.json", "--", "-std=c++17"])
    assert rc == 0
    assert (tmp_path / "out.cpp").read_text(encoding="utf-8") == "int main() { return 0; }\n"
    report = json.loads((tmp_path / "report.json").read_text(encoding="utf-8"))
    assert report["removed_declarations"] == ["helper"]


def test_analysis_failure_returns_error(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    _use_fake(monkeypatch, fail=True)
    assert cli.main(["t.cpp"]) == 1
    err = capsys.readouterr().err
    assert "Compilation error" in err
    assert "boom" in err


def test_bad_config_path_returns_error(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert cli.main(["t.cpp", "--config", "missing.yaml"]) == 2
