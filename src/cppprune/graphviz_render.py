from __future__ import annotations

from typing import Dict, Set, Tuple

from graphviz import Digraph
from graphviz.backend import ExecutableNotFound

from .reachability import UsedDeclarations
from .source_model import Declaration, DeclKind, TranslationUnitAnalysis, iter_declarations


KEPT_COLOR = "#4CAF50"  # green
REMOVED_COLOR = "#F44336"  # red
EXTERNAL_COLOR = "#BDBDBD"  # grey


def _label(decl: Declaration) -> str:
    name = decl.name or "(anonymous)"
    return f"{name}\n{decl.kind.value}"


def _node_table(analysis: TranslationUnitAnalysis) -> Dict[str, Declaration]:
    nodes: Dict[str, Declaration] = {}
    for decl in iter_declarations(analysis.declarations):
        nodes.setdefault(decl.graph_key, decl)
    return nodes


def render_use_graph(
    analysis: TranslationUnitAnalysis,
    used: UsedDeclarations,
    output_base: str,
    fmt: str = "svg",
    include_external: bool = False,
) -> Tuple[str, str]:
    """Render declarations of the main file coloured by survival.

    Returns (dot_path, rendered_path); rendered_path is "" when the Graphviz
    executable is not installed.
    """
    dot = Digraph(
        "cppprune",
        graph_attr={"rankdir": "LR", "splines": "spline"},
        node_attr={"shape": "box", "style": "rounded,filled", "fontname": "Helvetica"},
        edge_attr={"arrowhead": "vee"},
    )

    nodes = _node_table(analysis)
    ids: Dict[str, str] = {}
    for i, (key, decl) in enumerate(sorted(nodes.items(), key=lambda kv: kv[1].range.start)):
        node_id = f"d{i}"
        ids[key] = node_id
        color = KEPT_COLOR if key in used else REMOVED_COLOR
        shape = "folder" if decl.kind == DeclKind.NAMESPACE else "box"
        penwidth = "3" if key in analysis.roots else "1"
        dot.node(node_id, label=_label(decl), fillcolor=color, shape=shape, penwidth=penwidth)

    external: Dict[str, str] = {}
    edges: Set[Tuple[str, str]] = set()
    for src, dsts in analysis.use_graph.items():
        if src not in ids:
            continue
        for dst in dsts:
            if dst in ids:
                edges.add((ids[src], ids[dst]))
            elif include_external:
                ext_id = external.setdefault(dst, f"x{len(external)}")
                edges.add((ids[src], ext_id))

    for key, ext_id in sorted(external.items()):
        dot.node(ext_id, label=key.rsplit("@", 1)[-1], fillcolor=EXTERNAL_COLOR)

    for src, dst in sorted(edges):
        dot.edge(src, dst, color="black", style="solid")

    dot_path = f"{output_base}.dot"
    out_path = f"{output_base}.{fmt}"
    dot.save(dot_path)

    try:
        dot.render(output_base, format=fmt, cleanup=True)
    except ExecutableNotFound:
        # Only DOT written; caller should inform user
        out_path = ""
    return dot_path, out_path
