"""Layered automatic placement for netlist elements.

Elements are ranked by a breadth-first walk of the dependency graph starting
from the netlist's sources. An element joins a layer only once every element
driving it sits in an earlier layer. Whatever the walk cannot reach (feedback
loops through flip-flops, floating parts) is collected into one trailing
layer so every element always receives a position.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

import networkx as nx

from ..config import Config
from ..netlist.model import SOURCE_TYPES, Connection, Element, Netlist


def dependency_graph(netlist: Netlist) -> nx.DiGraph:
    """Return a ``source -> destination`` graph keyed by element id.

    Every element becomes a node, in netlist order, even when unconnected.
    Connections with a missing endpoint contribute no edge.
    """

    g = nx.DiGraph()
    for el in netlist.elements:
        g.add_node(el.id)
    for conn in netlist.connections:
        ends = netlist.endpoints(conn)
        if ends is None:
            continue
        src, dst = ends
        g.add_edge(src.id, dst.id)
    return g


def assign_layers(elements: Sequence[Element], graph: nx.DiGraph) -> List[List[int]]:
    """Group element ids into layers.

    Parameters
    ----------
    elements:
        Elements in the order used to break ties within a layer.
    graph:
        Dependency graph as built by :func:`dependency_graph`.

    Returns
    -------
    list of list of int
        Layers of element ids. The final layer holds every element the walk
        never reached.
    """

    first = [
        el.id for el in elements if el.type in SOURCE_TYPES or not el.inputs
    ]
    visited = set(first)
    layers: List[List[int]] = []
    current = first
    while current:
        layers.append(current)
        placed = set(visited)
        nxt: List[int] = []
        for src in current:
            for dst in graph.successors(src):
                if dst in visited:
                    continue
                if all(p in placed for p in graph.predecessors(dst)):
                    visited.add(dst)
                    nxt.append(dst)
        current = nxt

    remaining = [el.id for el in elements if el.id not in visited]
    if remaining:
        layers.append(remaining)
    return layers


def arrange(
    elements: Iterable[Element],
    connections: Iterable[Connection],
    *,
    layout: Dict[str, float] | None = None,
) -> List[Element]:
    """Return positioned copies of ``elements``.

    The inputs are left untouched. Layer index drives ``x`` and the slot
    within a layer drives ``y``; spacing comes from :attr:`Config.layout`
    unless ``layout`` overrides it.
    """

    params = dict(Config.layout)
    if layout:
        params.update(layout)
    netlist = Netlist(list(elements), list(connections))
    layers = assign_layers(netlist.elements, dependency_graph(netlist))

    positions: Dict[int, tuple[float, float]] = {}
    for layer_idx, ids in enumerate(layers):
        x = params["origin_x"] + layer_idx * params["horizontal_spacing"]
        for slot, eid in enumerate(ids):
            y = params["origin_y"] + slot * params["vertical_spacing"]
            positions[eid] = (float(x), float(y))
    return [el.moved(*positions[el.id]) for el in netlist.elements]
