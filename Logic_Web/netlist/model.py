from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Tuple

from .types import ConnectionData, ElementData, NetlistDict, PortData

MODULE_INPUT = "module_input"
MODULE_OUTPUT = "module_output"
CLOCK = "clk"
DFF = "DFF"
DFF_NE = "DFF_NE"

FLIP_FLOP_TYPES = frozenset({DFF, DFF_NE})
SOURCE_TYPES = frozenset({MODULE_INPUT, CLOCK})
GATE_TYPES = frozenset({"and", "or", "nand", "nor", "xor", "nxor"})
LUT_TYPES = frozenset({"LUT1", "LUT2", "LUT3", "LUT4"})
ELEMENT_TYPES = (
    frozenset({MODULE_INPUT, MODULE_OUTPUT, CLOCK}) | FLIP_FLOP_TYPES | GATE_TYPES | LUT_TYPES
)


@dataclass(frozen=True)
class Port:
    """Named pin on an element; ``wire_name`` joins it to a connection."""

    wire_name: str
    name: str = ""

    def to_dict(self) -> PortData:
        data: PortData = {"wireName": self.wire_name}
        if self.name:
            data["name"] = self.name
        return data


@dataclass(frozen=True)
class Element:
    """A placed netlist element. Positions change by replacement."""

    id: int
    type: str
    name: str = ""
    x: float = 0.0
    y: float = 0.0
    inputs: Tuple[Port, ...] = ()
    outputs: Tuple[Port, ...] = ()

    @property
    def label(self) -> str:
        """Return ``name`` or a fallback derived from the id."""
        return self.name or f"element-{self.id}"

    @property
    def is_flip_flop(self) -> bool:
        return self.type in FLIP_FLOP_TYPES

    def moved(self, x: float, y: float) -> "Element":
        """Return a copy of the element at ``(x, y)``."""
        return replace(self, x=float(x), y=float(y))

    def to_dict(self) -> ElementData:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "x": self.x,
            "y": self.y,
            "inputs": [p.to_dict() for p in self.inputs],
            "outputs": [p.to_dict() for p in self.outputs],
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Element":
        return cls(
            id=int(data["id"]),
            type=str(data["type"]),
            name=str(data.get("name") or ""),
            x=float(data.get("x") or 0.0),
            y=float(data.get("y") or 0.0),
            inputs=tuple(_port(p) for p in data.get("inputs") or []),
            outputs=tuple(_port(p) for p in data.get("outputs") or []),
        )


@dataclass(frozen=True)
class Connection:
    """A named wire from one output port to one input port."""

    name: str

    def to_dict(self) -> ConnectionData:
        return {"name": self.name}


def _port(data: Mapping) -> Port:
    return Port(wire_name=str(data["wireName"]), name=str(data.get("name") or ""))


@dataclass
class Netlist:
    """Elements and connections with wire lookups.

    Wire endpoints are resolved by scanning port lists once on construction.
    When a wire name shows up on several elements the first one in element
    order wins, later duplicates are ignored.
    """

    elements: List[Element] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)
    _by_id: Dict[int, Element] = field(default_factory=dict, init=False, repr=False)
    _sources: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _dests: Dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.elements = list(self.elements)
        self.connections = list(self.connections)
        self._reindex()

    def _reindex(self) -> None:
        self._by_id = {el.id: el for el in self.elements}
        self._sources = {}
        self._dests = {}
        for el in self.elements:
            for port in el.outputs:
                self._sources.setdefault(port.wire_name, el.id)
            for port in el.inputs:
                self._dests.setdefault(port.wire_name, el.id)

    # ------------------------------------------------------------------
    def element(self, element_id: int) -> Element | None:
        """Return the element with ``element_id`` if present."""
        return self._by_id.get(element_id)

    def source_of(self, wire_name: str) -> Element | None:
        """Return the element driving ``wire_name``."""
        eid = self._sources.get(wire_name)
        return None if eid is None else self._by_id[eid]

    def dest_of(self, wire_name: str) -> Element | None:
        """Return the element receiving ``wire_name``."""
        eid = self._dests.get(wire_name)
        return None if eid is None else self._by_id[eid]

    def endpoints(self, connection: Connection) -> Tuple[Element, Element] | None:
        """Return ``(source, dest)`` or ``None`` when the wire is inert."""
        src = self.source_of(connection.name)
        dst = self.dest_of(connection.name)
        if src is None or dst is None:
            return None
        return src, dst

    def connections_from(self, element_id: int) -> List[Connection]:
        """Return resolvable connections driven by ``element_id``."""
        return [
            c
            for c in self.connections
            if self._sources.get(c.name) == element_id and c.name in self._dests
        ]

    def of_type(self, *types: str) -> List[Element]:
        return [el for el in self.elements if el.type in types]

    def with_elements(self, elements: Iterable[Element]) -> "Netlist":
        """Return a new netlist sharing connections but using ``elements``."""
        return Netlist(list(elements), list(self.connections))

    def positions(self) -> Dict[int, Tuple[float, float]]:
        return {el.id: (el.x, el.y) for el in self.elements}

    def with_positions(self, positions: Mapping[int, Tuple[float, float]]) -> "Netlist":
        """Return a new netlist with positions taken from ``positions``."""
        return self.with_elements(
            el.moved(*positions[el.id]) if el.id in positions else el
            for el in self.elements
        )

    def has_layout(self) -> bool:
        """Return ``True`` if any element sits away from the origin."""
        return any(el.x or el.y for el in self.elements)

    # ------------------------------------------------------------------
    def to_dict(self) -> NetlistDict:
        """Serialize the netlist to a plain ``dict`` suitable for JSON."""
        return {
            "elements": [el.to_dict() for el in self.elements],
            "connections": [c.to_dict() for c in self.connections],
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Netlist":
        """Construct a :class:`Netlist` from ``data``."""
        elements = [Element.from_dict(e) for e in data.get("elements") or []]
        connections = [Connection(str(c["name"])) for c in data.get("connections") or []]
        return cls(elements, connections)

    @classmethod
    def blank(cls) -> "Netlist":
        """Return a new empty netlist."""
        return cls()
