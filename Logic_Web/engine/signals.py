"""Signals in flight and their emission, advancement and arrival.

All helpers take the current collections and hand back new ones; nothing is
mutated in place. The driver decides when each helper runs.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Set, Tuple

from ..config import Config
from ..netlist.model import CLOCK, MODULE_INPUT, MODULE_OUTPUT, Connection, Netlist
from .flipflop import (
    EnableTracker,
    FlipFlopState,
    PortRole,
    on_clock,
    on_data,
    on_enable,
    port_role,
)
from .routing import Point, path_length, point_at, route

# Tolerance absorbing float drift when fixed steps should land exactly on 1.0
PROGRESS_EPSILON = 1e-9


@dataclass(frozen=True)
class Signal:
    """A pulse travelling along one connection."""

    connection: str
    points: Tuple[Point, ...]
    total_length: float
    created_at: float
    source_name: str
    dest_name: str
    progress: float = 0.0

    def position(self) -> Point:
        """Return the current interpolated location on the wire."""
        return point_at(self.points, self.progress)


def make_signal(netlist: Netlist, connection: Connection, now: float) -> Signal | None:
    """Return a new signal at the start of ``connection`` or ``None`` if inert."""

    ends = netlist.endpoints(connection)
    if ends is None:
        return None
    src, dst = ends
    points = tuple(route(src, dst, connection))
    return Signal(
        connection=connection.name,
        points=points,
        total_length=path_length(points),
        created_at=now,
        source_name=src.label,
        dest_name=dst.label,
    )


def emission_sources(netlist: Netlist, active_inputs: Iterable[int]) -> List[Connection]:
    """Return connections to pulse on an emission tick.

    Wires driven by clock elements come first, followed by wires driven by
    ``module_input`` elements listed in ``active_inputs``.
    """

    active = set(active_inputs)
    clocks = {el.id for el in netlist.of_type(CLOCK)}
    inputs = {el.id for el in netlist.of_type(MODULE_INPUT) if el.id in active}
    out: List[Connection] = []
    for group in (clocks, inputs):
        for conn in netlist.connections:
            src = netlist.source_of(conn.name)
            if src is not None and src.id in group:
                out.append(conn)
    return out


def emit(
    signals: Tuple[Signal, ...],
    netlist: Netlist,
    connections: Iterable[Connection],
    now: float,
) -> Tuple[Tuple[Signal, ...], List[Signal]]:
    """Start a signal on each of ``connections`` that is currently free.

    Returns the new signal tuple and the list of signals created. Wires that
    already carry a signal, or whose endpoints cannot be resolved, are
    skipped.
    """

    occupied: Set[str] = {s.connection for s in signals}
    created: List[Signal] = []
    for conn in connections:
        if conn.name in occupied:
            continue
        sig = make_signal(netlist, conn, now)
        if sig is None:
            continue
        occupied.add(conn.name)
        created.append(sig)
    return signals + tuple(created), created


def step_size(clock_frequency: float, interval_ms: float | None = None) -> float:
    """Return the progress gained per advancement tick.

    A full traversal takes ``1 / clock_frequency`` seconds whatever the wire
    length, so raising the clock speeds every wire up uniformly.
    """

    if interval_ms is None:
        interval_ms = Config.timing["advance_interval_ms"]
    # (interval / 1000) / signal_speed with signal_speed = 1 / clock_frequency
    return interval_ms * clock_frequency / 1000.0


def advance(
    signals: Tuple[Signal, ...], step: float
) -> Tuple[Tuple[Signal, ...], List[Signal]]:
    """Move every signal forward by ``step``.

    Returns ``(in_flight, arrived)``. A signal appears in ``arrived`` in the
    single tick where its progress first reaches 1.0 and is absent from
    ``in_flight`` from then on.
    """

    in_flight: List[Signal] = []
    arrived: List[Signal] = []
    for sig in signals:
        progress = sig.progress + step
        if progress >= 1.0 - PROGRESS_EPSILON:
            arrived.append(replace(sig, progress=1.0))
        else:
            in_flight.append(replace(sig, progress=progress))
    return tuple(in_flight), arrived


@dataclass(frozen=True)
class ArrivalOutcome:
    """What a signal arrival did, for logging and follow-up scheduling."""

    connection: str
    dest_id: int | None = None
    dest_type: str | None = None
    role: PortRole | None = None
    accepted: bool = True
    drives_output: bool = False


def dispatch_arrival(
    signal: Signal,
    netlist: Netlist,
    flip_flops: Dict[int, FlipFlopState],
    trackers: Dict[int, EnableTracker],
    active_outputs: Dict[int, float],
    now: float,
) -> Tuple[
    Dict[int, FlipFlopState], Dict[int, EnableTracker], Dict[int, float], ArrivalOutcome
]:
    """Apply the effect of ``signal`` reaching its destination.

    A ``module_output`` destination is stamped in ``active_outputs``. A
    flip-flop destination receives a data, enable or clock pulse depending on
    the pin. Anything else absorbs the signal. ``drives_output`` in the
    outcome is set when an accepted clock edge leaves the flip-flop output
    high.
    """

    dest = netlist.dest_of(signal.connection)
    if dest is None:
        return flip_flops, trackers, active_outputs, ArrivalOutcome(signal.connection)

    outcome = ArrivalOutcome(signal.connection, dest_id=dest.id, dest_type=dest.type)
    if dest.type == MODULE_OUTPUT:
        return flip_flops, trackers, {**active_outputs, dest.id: now}, outcome

    state = flip_flops.get(dest.id)
    if state is None:
        return flip_flops, trackers, active_outputs, outcome
    tracker = trackers.get(dest.id) or EnableTracker.initial(state.type)
    role = port_role(dest, signal.connection)
    accepted = True
    drives = False
    if role is PortRole.D:
        state, tracker = on_data(state, tracker)
    elif role is PortRole.ENABLE:
        state, tracker = on_enable(state, tracker, now)
    elif role is PortRole.CLOCK:
        state, tracker, accepted = on_clock(state, tracker, now)
        drives = accepted and state.output_value
    outcome = replace(outcome, role=role, accepted=accepted, drives_output=drives)
    return (
        {**flip_flops, dest.id: state},
        {**trackers, dest.id: tracker},
        active_outputs,
        outcome,
    )
