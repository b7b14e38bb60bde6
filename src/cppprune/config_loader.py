"""
Configuration loader - YAML files or [tool.cppprune] in pyproject.toml
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

try:
    import yaml
except ImportError:
    yaml = None

try:  # py3.11+
    import tomllib as tomli
except ImportError:
    try:
        import tomli
    except ImportError:
        tomli = None

logger = logging.getLogger(__name__)

CONFIG_CANDIDATES = (
    'cppprune.yaml',
    'cppprune.yml',
    '.cppprune.yaml',
    '.cppprune.yml',
    'pyproject.toml',  # [tool.cppprune]
)


@dataclass
class PruneConfig:
    """Settings for one optimization run"""
    # passed to the front end as-is (include paths, -D/-U, -std=...)
    compile_args: List[str] = field(default_factory=list)
    # macros whose conditionals and definitions are never touched
    macros_to_keep: List[str] = field(default_factory=list)
    # declarations kept regardless of use, by name
    keep_names: List[str] = field(default_factory=list)
    collapse_empty_lines: bool = True
    remove_unused_macros: bool = True
    output: Optional[str] = None
    graph: Optional[str] = None
    graph_format: str = "svg"
    report: Optional[str] = None

    def merged(
        self,
        compile_args: Optional[List[str]] = None,
        macros_to_keep: Optional[List[str]] = None,
        keep_names: Optional[List[str]] = None,
    ) -> "PruneConfig":
        """Copy with command-line values appended to the configured ones."""
        return PruneConfig(
            compile_args=self.compile_args + list(compile_args or []),
            macros_to_keep=_unique(self.macros_to_keep + list(macros_to_keep or [])),
            keep_names=_unique(self.keep_names + list(keep_names or [])),
            collapse_empty_lines=self.collapse_empty_lines,
            remove_unused_macros=self.remove_unused_macros,
            output=self.output,
            graph=self.graph,
            graph_format=self.graph_format,
            report=self.report,
        )


def _unique(items: List[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def load_config(config_path: Optional[Path] = None, cwd: Optional[Path] = None) -> PruneConfig:
    """
    Load configuration.

    Args:
        config_path: explicit file; when None the working directory is searched

    Returns:
        PruneConfig: loaded settings, defaults when nothing is found
    """
    if config_path:
        return _load_config_file(Path(config_path))

    found_config = find_config_file(cwd)
    if found_config:
        logger.info("using config file %s", found_config)
        return _load_config_file(found_config)

    return PruneConfig()


def find_config_file(cwd: Optional[Path] = None) -> Optional[Path]:
    """Return the first config file found in ``cwd`` by priority, or None."""
    base = Path(cwd) if cwd else Path.cwd()
    for name in CONFIG_CANDIDATES:
        candidate = base / name
        if candidate.exists():
            if candidate.name == 'pyproject.toml':
                if _has_cppprune_config(candidate):
                    return candidate
                continue
            return candidate

    return None


def _load_config_file(config_path: Path) -> PruneConfig:
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    if suffix in ['.yaml', '.yml']:
        return _load_yaml_config(config_path)
    elif suffix == '.toml':
        return _load_toml_config(config_path)
    else:
        raise ValueError(f"unsupported config format: {suffix}")


def _load_yaml_config(config_path: Path) -> PruneConfig:
    if yaml is None:
        raise ImportError("PyYAML is required to read YAML config files: pip install pyyaml")

    with config_path.open('r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if not data:
        return PruneConfig()

    return _parse_config_data(data)


def _load_toml_config(config_path: Path) -> PruneConfig:
    if tomli is None:
        raise ImportError("tomli is required to read TOML config files: pip install tomli")

    with config_path.open('rb') as f:
        data = tomli.load(f)

    if 'tool' in data and 'cppprune' in data['tool']:
        config_data = data['tool']['cppprune']
    else:
        config_data = data

    return _parse_config_data(config_data)


def _has_cppprune_config(pyproject_path: Path) -> bool:
    if tomli is None:
        return False

    try:
        with pyproject_path.open('rb') as f:
            data = tomli.load(f)
        return 'tool' in data and 'cppprune' in data['tool']
    except (OSError, ValueError):
        return False


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return [str(v) for v in value]


def _parse_config_data(data: Dict[str, Any]) -> PruneConfig:
    config = PruneConfig()

    if 'compile_args' in data:
        config.compile_args = _str_list(data['compile_args'])
    if 'macros_to_keep' in data:
        config.macros_to_keep = _str_list(data['macros_to_keep'])
    if 'keep' in data:
        config.keep_names = _str_list(data['keep'])
    if 'keep_names' in data:
        config.keep_names = _str_list(data['keep_names'])
    if 'collapse_empty_lines' in data:
        config.collapse_empty_lines = bool(data['collapse_empty_lines'])
    if 'remove_unused_macros' in data:
        config.remove_unused_macros = bool(data['remove_unused_macros'])
    if 'output' in data:
        config.output = data['output']
    if 'report' in data:
        config.report = data['report']

    graph = data.get('graph')
    if isinstance(graph, dict):
        config.graph = graph.get('output')
        fmt = str(graph.get('format', config.graph_format)).strip().lower()
        if fmt:
            config.graph_format = fmt
    elif graph:
        config.graph = str(graph)

    return config


def create_example_config() -> str:
    return """# cppprune configuration
version: "1.0"

# Arguments for the C++ front end (include paths, defines, standard)
compile_args:
  - "-std=c++17"
  - "-Iinclude"

# Conditionals mentioning these macros are never pruned,
# and their #define lines are never removed
macros_to_keep:
  - "ONLINE_JUDGE"

# Declarations kept even when nothing uses them
keep: []

collapse_empty_lines: true
remove_unused_macros: true

# Optional outputs
# output: "solution.min.cpp"
# report: "cppprune_report.json"
# graph:
#   output: "use_graph"
#   format: "svg"
"""


def save_example_config(output_path: Optional[Path] = None) -> Path:
    if output_path is None:
        output_path = Path("cppprune.yaml")

    content = create_example_config()
    output_path.write_text(content, encoding='utf-8')

    return output_path
