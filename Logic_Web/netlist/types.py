from __future__ import annotations

from typing import List, TypedDict

# Reusable typed mappings for netlist JSON files

PortData = TypedDict(
    "PortData",
    {
        "name": str,
        "wireName": str,
    },
    total=False,
)

ElementData = TypedDict(
    "ElementData",
    {
        "id": int,
        "name": str,
        "type": str,
        "x": float,
        "y": float,
        "inputs": List[PortData],
        "outputs": List[PortData],
    },
    total=False,
)

ConnectionData = TypedDict(
    "ConnectionData",
    {
        "name": str,
    },
    total=False,
)

NetlistDict = TypedDict(
    "NetlistDict",
    {
        "elements": List[ElementData],
        "connections": List[ConnectionData],
    },
    total=False,
)
