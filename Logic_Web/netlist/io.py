"""File IO helpers for :mod:`Logic_Web.netlist`."""

from __future__ import annotations

import json
from typing import Any

from .model import ELEMENT_TYPES, Netlist


def load_netlist(path: str) -> Netlist:
    """Load a netlist from ``path`` and return a :class:`Netlist`."""
    with open(path) as f:
        data = json.load(f)
    validate_netlist(data)
    return Netlist.from_dict(data)


def save_netlist(path: str, netlist: Netlist) -> None:
    """Write ``netlist`` to ``path`` in JSON format."""
    with open(path, "w") as f:
        json.dump(netlist.to_dict(), f, indent=2)


def new_netlist() -> Netlist:
    """Return a new blank netlist."""
    return Netlist.blank()


def validate_netlist(data: Any) -> None:
    """Raise ``ValueError`` if ``data`` is not a well formed netlist."""

    if not isinstance(data, dict):
        raise ValueError("Netlist must be a JSON object")
    if "elements" not in data or "connections" not in data:
        raise ValueError("Netlist must contain 'elements' and 'connections'")
    if not isinstance(data["elements"], list):
        raise ValueError("'elements' must be a list")
    if not isinstance(data["connections"], list):
        raise ValueError("'connections' must be a list")
    seen: set[int] = set()
    for element in data["elements"]:
        if not isinstance(element, dict):
            raise ValueError("element entries must be objects")
        if "id" not in element or "type" not in element:
            raise ValueError("element missing 'id' or 'type'")
        if element["type"] not in ELEMENT_TYPES:
            raise ValueError(f"unknown element type {element['type']!r}")
        if element["id"] in seen:
            raise ValueError(f"duplicate element id {element['id']!r}")
        seen.add(element["id"])
        for key in ("inputs", "outputs"):
            ports = element.get(key, [])
            if not isinstance(ports, list):
                raise ValueError(f"'{key}' must be a list")
            for port in ports:
                if not isinstance(port, dict) or "wireName" not in port:
                    raise ValueError("port entries must be objects with 'wireName'")
    names: set[str] = set()
    for conn in data["connections"]:
        if not isinstance(conn, dict) or "name" not in conn:
            raise ValueError("connection entries must be objects with 'name'")
        if conn["name"] in names:
            raise ValueError(f"duplicate connection {conn['name']!r}")
        names.add(conn["name"])
