"""Flip-flop memory and its clock, data and enable transitions.

Every transition is a pure function taking the previous
:class:`FlipFlopState` and returning a new one so the driver can swap whole
state maps per tick.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Tuple

from ..config import Config
from ..netlist.model import DFF, DFF_NE, Element


class PortRole(str, Enum):
    """Function of a flip-flop input pin."""

    D = "D"
    CLOCK = "clk"
    ENABLE = "en"


_ROLE_BY_INDEX = (PortRole.D, PortRole.CLOCK, PortRole.ENABLE)


def port_role(element: Element, wire_name: str) -> PortRole | None:
    """Return the role of the input fed by ``wire_name``.

    The position in ``element.inputs`` decides first (``0`` data, ``1`` clock,
    ``2`` enable). Pins beyond those fall back to the wire name: ``"D"`` or a
    ``_0`` suffix, ``"clk"`` or ``_1``, ``"en"`` or ``_2``.
    """

    for idx, port in enumerate(element.inputs):
        if port.wire_name == wire_name and idx < len(_ROLE_BY_INDEX):
            return _ROLE_BY_INDEX[idx]
    if "D" in wire_name or wire_name.endswith("_0"):
        return PortRole.D
    if "clk" in wire_name or wire_name.endswith("_1"):
        return PortRole.CLOCK
    if "en" in wire_name or wire_name.endswith("_2"):
        return PortRole.ENABLE
    return None


@dataclass(frozen=True)
class FlipFlopState:
    """Latched value and pending inputs of one flip-flop."""

    id: int
    name: str
    type: str
    has_d: bool = False
    has_en: bool = False
    output_value: bool = False
    last_clock_time: float = 0.0

    @classmethod
    def initial(cls, element: Element) -> "FlipFlopState":
        return cls(
            id=element.id,
            name=element.name or f"flip-flop-{element.id}",
            type=element.type,
            has_en=element.type == DFF_NE,
        )

    def reset(self) -> "FlipFlopState":
        return replace(
            self,
            has_d=False,
            has_en=self.type == DFF_NE,
            output_value=False,
            last_clock_time=0.0,
        )


@dataclass(frozen=True)
class EnableTracker:
    """Recent data/enable activity, kept apart so enable can lapse alone."""

    d: bool = False
    en: bool = False
    last_en_update: float = 0.0

    @classmethod
    def initial(cls, ff_type: str) -> "EnableTracker":
        return cls(en=ff_type == DFF_NE)


def on_data(state: FlipFlopState, tracker: EnableTracker) -> Tuple[FlipFlopState, EnableTracker]:
    """Register a pulse on the D pin."""

    return replace(state, has_d=True), replace(tracker, d=True)


def on_enable(
    state: FlipFlopState, tracker: EnableTracker, now: float
) -> Tuple[FlipFlopState, EnableTracker]:
    """Register a pulse on the enable pin. ``DFF_NE`` ignores it."""

    if state.type != DFF:
        return state, tracker
    return replace(state, has_en=True), replace(tracker, en=True, last_en_update=now)


def on_clock(
    state: FlipFlopState,
    tracker: EnableTracker,
    now: float,
    *,
    debounce_ms: float | None = None,
) -> Tuple[FlipFlopState, EnableTracker, bool]:
    """Apply a clock edge.

    Returns
    -------
    tuple
        ``(state, tracker, accepted)``. ``accepted`` is ``False`` when the edge
        arrived inside the debounce window, in which case both inputs are
        returned unchanged.

    Notes
    -----
    ``last_clock_time == 0`` means no edge has been accepted since load or
    reset, so the first edge is never debounced. Every accepted edge clears
    the pending data pulse, whether or not the flip-flop latched.
    """

    if debounce_ms is None:
        debounce_ms = Config.timing["debounce_ms"]
    if state.last_clock_time and now - state.last_clock_time < debounce_ms:
        return state, tracker, False

    latch = state.type == DFF_NE or (state.type == DFF and state.has_en)
    output = state.has_d if latch else state.output_value
    new_state = replace(
        state, last_clock_time=now, output_value=output, has_d=False
    )
    return new_state, replace(tracker, d=False), True


def expire_enables(
    states: Dict[int, FlipFlopState],
    trackers: Dict[int, EnableTracker],
    now: float,
    *,
    timeout_ms: float | None = None,
) -> Tuple[Dict[int, FlipFlopState], Dict[int, EnableTracker], list[int]]:
    """Deassert enables that have not been refreshed within ``timeout_ms``.

    Only ``DFF`` elements are considered. Returns new maps plus the ids whose
    enable lapsed.
    """

    if timeout_ms is None:
        timeout_ms = Config.timing["enable_timeout_ms"]
    expired: list[int] = []
    new_states = dict(states)
    new_trackers = dict(trackers)
    for fid, state in states.items():
        if state.type != DFF:
            continue
        tracker = trackers.get(fid)
        if tracker is None or not tracker.en:
            continue
        if now - tracker.last_en_update > timeout_ms:
            new_trackers[fid] = replace(tracker, en=False)
            new_states[fid] = replace(state, has_en=False)
            expired.append(fid)
    return new_states, new_trackers, expired


def initial_states(
    elements: Iterable[Element],
) -> Tuple[Dict[int, FlipFlopState], Dict[int, EnableTracker]]:
    """Build fresh state and tracker maps for every flip-flop element."""

    states: Dict[int, FlipFlopState] = {}
    trackers: Dict[int, EnableTracker] = {}
    for el in elements:
        if el.is_flip_flop:
            states[el.id] = FlipFlopState.initial(el)
            trackers[el.id] = EnableTracker.initial(el.type)
    return states, trackers


def reset_states(
    states: Dict[int, FlipFlopState],
) -> Tuple[Dict[int, FlipFlopState], Dict[int, EnableTracker]]:
    """Return reset copies of ``states`` and matching fresh trackers."""

    return (
        {fid: s.reset() for fid, s in states.items()},
        {fid: EnableTracker.initial(s.type) for fid, s in states.items()},
    )
