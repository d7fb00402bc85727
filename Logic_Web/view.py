"""UI-facing snapshot dataclasses."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, FrozenSet, List


@dataclass(frozen=True)
class ElementView:
    """Placed element as seen by the renderer."""

    id: int
    name: str
    type: str
    x: float
    y: float


@dataclass(frozen=True)
class SignalView:
    """Signal in flight with its interpolated location."""

    connection: str
    progress: float
    x: float
    y: float
    total_length: float
    source_name: str
    dest_name: str


@dataclass(frozen=True)
class FlipFlopView:
    """Indicator state of a flip-flop."""

    id: int
    name: str
    type: str
    has_d: bool
    has_en: bool
    output_value: bool


@dataclass(frozen=True)
class ViewSnapshot:
    """Read-only copy of the engine state handed to the GUI."""

    time_ms: float
    running: bool
    clock_frequency: float
    elements: List[ElementView] = field(default_factory=list)
    signals: List[SignalView] = field(default_factory=list)
    active_inputs: FrozenSet[int] = frozenset()
    active_outputs: Dict[int, float] = field(default_factory=dict)
    flip_flops: List[FlipFlopView] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON friendly mapping of the snapshot."""

        data = asdict(self)
        data["active_inputs"] = sorted(self.active_inputs)
        data["active_outputs"] = {str(k): v for k, v in self.active_outputs.items()}
        return data
