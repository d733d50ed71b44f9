"""Multigraph model of a link dataset built on NetworkX.

This module provides small helpers to:
- build an undirected multigraph where every link is kept as its own edge
- compute connected components and the largest connected component (LCC)
- list the edges induced by a vertex set in insertion order
- remove and restore single edges without rebuilding the graph
- summarise a graph for dataset analysis

Edges are keyed by their insertion index, so parallel links between the same
pair of nodes never collapse, and the original orientation is kept in the
edge data because NetworkX does not preserve it for undirected graphs.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Set, Tuple

import networkx as nx

from .link import Link, LinkKind


@dataclass(frozen=True)
class Edge:
    """An edge of the multigraph, tagged with its insertion index and link kind."""

    src: int
    dst: int
    weight: float
    index: int
    kind: LinkKind = LinkKind.REAL

    def to_link(self) -> Link:
        return Link(self.src, self.dst, self.weight, self.kind)


@dataclass(frozen=True)
class GraphAnalysis:
    """Read-only summary of a graph and of its largest connected component."""

    num_nodes: int
    num_edges: int
    component_count: int
    lcc_node_count: int
    lcc_edge_count: int

    def as_dict(self) -> Dict[str, int]:
        return {
            "numnodes": self.num_nodes,
            "numlinks": self.num_edges,
            "cc_vertexsets": self.component_count,
            "lcc_numnodes": self.lcc_node_count,
            "lcc_numlinks": self.lcc_edge_count,
        }


def canonical_pair(u: int, v: int) -> Tuple[int, int]:
    """Return the undirected pair ``(min(u, v), max(u, v))``."""
    return (u, v) if u <= v else (v, u)


def build_graph(links: Iterable[Link]) -> nx.MultiGraph:
    """Construct a multigraph with one edge per link, in input order.

    Args:
        links: Links to insert; both endpoints of each become vertices.

    Returns:
        A NetworkX MultiGraph whose edge keys are insertion indices starting at 0.
    """
    g = nx.MultiGraph()
    for index, link in enumerate(links):
        # Weights are never merged: a repeated pair simply gets another key
        g.add_edge(
            link.src,
            link.dst,
            key=index,
            weight=link.weight,
            src=link.src,
            dst=link.dst,
            kind=link.kind,
        )
    return g


def connected_components(g: nx.MultiGraph) -> List[Set[int]]:
    """Return the connected components ordered by their smallest vertex id."""
    return sorted((set(c) for c in nx.connected_components(g)), key=min)


def largest_component(g: nx.MultiGraph) -> Set[int]:
    """Return the vertex set of the largest connected component.

    When several components share the maximum size, the one containing the
    smallest vertex id wins: components are scanned by ascending minimum id
    and only a strictly larger component replaces the current best.

    Returns:
        The LCC vertex set, or an empty set for a graph without vertices.
    """
    largest: Set[int] = set()
    for component in connected_components(g):
        if len(component) > len(largest):
            largest = component
    return largest


def edge_list(g: nx.MultiGraph) -> List[Edge]:
    """Return every edge of ``g`` sorted by insertion index."""
    edges = [
        Edge(data["src"], data["dst"], data["weight"], key, data["kind"])
        for _, _, key, data in g.edges(keys=True, data=True)
    ]
    return sorted(edges, key=lambda e: e.index)


def induced_edges(g: nx.MultiGraph, vertices: Set[int]) -> List[Edge]:
    """Return the edges with both endpoints in ``vertices``, by insertion index."""
    return [e for e in edge_list(g) if e.src in vertices and e.dst in vertices]


def is_single_component(g: nx.MultiGraph) -> bool:
    """Return True iff every vertex of ``g`` belongs to its largest component."""
    return len(largest_component(g)) == g.number_of_nodes()


def remove_edge(g: nx.MultiGraph, edge: Edge) -> None:
    """Remove ``edge`` from ``g`` in place.

    An endpoint left without incident edges is dropped from the vertex set,
    so ``g`` stays equal to the graph built from the remaining links.

    Raises:
        KeyError: If ``edge`` is not in ``g``.
    """
    if not g.has_edge(edge.src, edge.dst, key=edge.index):
        raise KeyError(f"Edge {edge.index} ({edge.src},{edge.dst}) is not in the graph")
    g.remove_edge(edge.src, edge.dst, key=edge.index)
    for node in {edge.src, edge.dst}:
        if g.degree(node) == 0:
            g.remove_node(node)


def restore_edge(g: nx.MultiGraph, edge: Edge) -> None:
    """Insert ``edge`` back into ``g`` with its original key and orientation."""
    g.add_edge(
        edge.src,
        edge.dst,
        key=edge.index,
        weight=edge.weight,
        src=edge.src,
        dst=edge.dst,
        kind=edge.kind,
    )


def lcc_links(g: nx.MultiGraph) -> List[Link]:
    """Return the links of the largest connected component in insertion order, kinds kept."""
    return [e.to_link() for e in induced_edges(g, largest_component(g))]


def analyze_graph(g: nx.MultiGraph) -> GraphAnalysis:
    """Summarise node, edge and component counts of ``g`` and of its LCC."""
    components = connected_components(g)
    lcc = largest_component(g)
    return GraphAnalysis(
        num_nodes=g.number_of_nodes(),
        num_edges=g.number_of_edges(),
        component_count=len(components),
        lcc_node_count=len(lcc),
        lcc_edge_count=len(induced_edges(g, lcc)),
    )
