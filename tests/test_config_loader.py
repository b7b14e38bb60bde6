import pytest

from cppprune.config_loader import (
    PruneConfig,
    create_example_config,
    find_config_file,
    load_config,
    save_example_config,
)


def test_defaults_when_no_config(tmp_path):
    config = load_config(cwd=tmp_path)
    assert config == PruneConfig()
    assert config.collapse_empty_lines is True


def test_yaml_config(tmp_path):
    pytest.importorskip("yaml")
    path = tmp_path / "cppprune.yaml"
    path.write_text(
        "compile_args: -std=c++20 -DLOCAL\n"
        "macros_to_keep: [ONLINE_JUDGE]\n"
        "keep: [debug_dump]\n"
        "collapse_empty_lines: false\n"
        "graph:\n"
        "  output: build/graph\n"
        "  format: PNG\n",
        encoding="utf-8",
    )
    config = load_config(cwd=tmp_path)
    assert config.compile_args == ["-std=c++20", "-DLOCAL"]
    assert config.macros_to_keep == ["ONLINE_JUDGE"]
    assert config.keep_names == ["debug_dump"]
    assert config.collapse_empty_lines is False
    assert config.graph == "build/graph"
    assert config.graph_format == "png"


def test_pyproject_tool_section(tmp_path):
    path = tmp_path / "pyproject.toml"
    path.write_text(
        "[project]\nname = \"x\"\n\n"
        "[tool.cppprune]\n"
        "compile_args = [\"-DFAST\"]\n"
        "remove_unused_macros = false\n"
        "report = \"report.json\"\n",
        encoding="utf-8",
    )
    assert find_config_file(tmp_path) == path
    config = load_config(cwd=tmp_path)
    assert config.compile_args == ["-DFAST"]
    assert config.remove_unused_macros is False
    assert config.report == "report.json"


def test_pyproject_without_section_is_ignored(tmp_path):
    (tmp_path / "pyproject.toml").write_text("[project]\nname = \"x\"\n", encoding="utf-8")
    assert find_config_file(tmp_path) is None


def test_yaml_takes_priority_over_pyproject(tmp_path):
    (tmp_path / "pyproject.toml").write_text("[tool.cppprune]\nkeep = [\"a\"]\n", encoding="utf-8")
    yaml_path = tmp_path / ".cppprune.yml"
    yaml_path.write_text("keep: [b]\n", encoding="utf-8")
    assert find_config_file(tmp_path) == yaml_path


def test_explicit_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_unsupported_suffix_raises(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[x]\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_empty_yaml_gives_defaults(tmp_path):
    pytest.importorskip("yaml")
    path = tmp_path / "cppprune.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == PruneConfig()


def test_example_config_round_trips(tmp_path):
    pytest.importorskip("yaml")
    out = save_example_config(tmp_path / "cppprune.yaml")
    assert out.read_text(encoding="utf-8") == create_example_config()
    config = load_config(out)
    assert config.compile_args == ["-std=c++17", "-Iinclude"]
    assert config.macros_to_keep == ["ONLINE_JUDGE"]
    assert config.keep_names == []
