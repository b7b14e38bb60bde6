#!/usr/bin/env python3
"""
Command line entrypoint for cppprune

  cppprune solution.cpp -o solution.min.cpp -- -std=c++17 -Iinclude
  cppprune solution.cpp --keep-macro ONLINE_JUDGE --report report.json
  cppprune --init

Everything after "--" is passed to the C++ front end.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple


def _split_compile_args(argv: List[str]) -> Tuple[List[str], List[str]]:
    if "--" in argv:
        idx = argv.index("--")
        return argv[:idx], argv[idx + 1:]
    return argv, []


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cppprune",
        description="Remove declarations and preprocessor branches a C++ program does not need",
    )
    parser.add_argument("file", nargs="?", help="Flattened C++ source file")
    parser.add_argument("-o", "--output", default=None, help="Write the result here instead of stdout")
    parser.add_argument("--config", default=None, help="Path to config (YAML or pyproject.toml)")
    parser.add_argument("--keep-macro", action="append", default=[], help="Macro to preserve (repeatable)")
    parser.add_argument("--keep", action="append", default=[], help="Declaration name to keep (repeatable)")
    parser.add_argument("--graph", default=None, help="Render the use-graph to this base path")
    parser.add_argument("--graph-format", default=None, help="Graphviz output format (default svg)")
    parser.add_argument("--report", default=None, help="Write a JSON summary to this path")
    parser.add_argument("--keep-macros-defined", action="store_true", help="Do not remove unused #define lines")
    parser.add_argument("--init", action="store_true", help="Generate cppprune.yaml in the current directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    raw = list(sys.argv[1:] if argv is None else argv)
    own_args, compile_args = _split_compile_args(raw)
    parser = build_parser()
    args = parser.parse_args(own_args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.init:
        from .config_loader import save_example_config

        target = Path("cppprune.yaml")
        if target.exists():
            print(f"⚠ {target} already exists; not overwritten")
            return 1
        save_example_config(target)
        print(f"✓ Generated config: {target}")
        return 0

    if not args.file:
        parser.print_help()
        return 2

    from .config_loader import load_config
    from .errors import AnalysisFailure
    from .optimizer import Optimizer

    try:
        config = load_config(Path(args.config) if args.config else None)
    except (FileNotFoundError, ValueError, ImportError) as e:
        print(f"❌ Failed to load config: {e}", file=sys.stderr)
        return 2
    if args.keep_macros_defined:
        config.remove_unused_macros = False

    optimizer = Optimizer(compile_args, args.keep_macro, args.keep, config=config)
    try:
        result = optimizer.optimize_result(args.file)
    except AnalysisFailure as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    output = args.output or config.output
    if output:
        Path(output).write_text(result.text, encoding="utf-8")
        print(f"✓ Wrote {output}", file=sys.stderr)
    else:
        sys.stdout.write(result.text)

    report = args.report or config.report
    if report:
        Path(report).write_text(json.dumps(result.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        print(f"📄 Report written to {report}", file=sys.stderr)

    graph = args.graph or config.graph
    if graph:
        _render_graph(result, graph, args.graph_format or config.graph_format)
    return 0


def _render_graph(result, graph: str, fmt: str) -> None:
    try:
        from .graphviz_render import render_use_graph
    except ImportError as e:
        print(f"⚠ graphviz package not available: {e}", file=sys.stderr)
        return
    dot_path, rendered = render_use_graph(result.analysis, result.used, graph, fmt)
    if rendered:
        print(f"✓ Use-graph rendered: {rendered}", file=sys.stderr)
    else:
        print(f"⚠ Graphviz executable not found; wrote {dot_path} only", file=sys.stderr)


if __name__ == "__main__":
    sys.exit(main())
