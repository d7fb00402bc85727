"""Simulation driver owning the run loop and all transient engine state.

The :class:`SimulationDriver` keeps a virtual millisecond clock. Periodic
ticks (emission, advancement, enable sweep, output sweep) and deferred
flip-flop emissions are entries in a single :class:`EventQueue`, and
:meth:`SimulationDriver.advance` processes them strictly in time order.
Stopping clears the queue, which cancels every pending tick and deferred
emission at once.

Transient collections (signals, flip-flop states, active outputs) are
replaced wholesale on every tick rather than mutated, so a snapshot taken
before a tick is never affected by it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, FrozenSet, Mapping, Tuple

from ..command_stack import ArrangeCommand, CommandStack, MoveElementCommand
from ..config import Config
from ..netlist.io import load_netlist as read_netlist, validate_netlist
from ..netlist.model import MODULE_INPUT, Element, Netlist
from ..view import ElementView, FlipFlopView, SignalView, ViewSnapshot
from .flipflop import (
    EnableTracker,
    FlipFlopState,
    PortRole,
    expire_enables,
    initial_states,
    reset_states,
)
from .layout import arrange
from .logging.logger import flush_metrics, log_record
from .scheduler import EventKind, EventQueue
from .signals import (
    Signal,
    advance as advance_signals,
    dispatch_arrival,
    emission_sources,
    emit,
    step_size,
)

logger = logging.getLogger(__name__)

Position = Tuple[float, float]


class SimulationDriver:
    """Own the netlist, the run/stop lifecycle and the periodic ticks."""

    def __init__(self, netlist: Netlist | Mapping[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._queue = EventQueue()
        self._history = CommandStack()
        self._netlist = Netlist.blank()
        self._initial_positions: Dict[int, Position] = {}
        self._now = 0.0
        self._frame = 0
        self._running = False
        self._reset_requested = False
        self._clock_frequency = float(Config.clamp_frequency(Config.clock_frequency))
        self._signals: Tuple[Signal, ...] = ()
        self._flip_flops: Dict[int, FlipFlopState] = {}
        self._trackers: Dict[int, EnableTracker] = {}
        self._active_outputs: Dict[int, float] = {}
        self._active_inputs: FrozenSet[int] = frozenset()
        self._realtime = False
        self._thread: threading.Thread | None = None
        if netlist is not None:
            self.load_netlist(netlist)

    # ------------------------------------------------------------------
    @property
    def netlist(self) -> Netlist:
        return self._netlist

    @property
    def now(self) -> float:
        """Current virtual time in milliseconds."""
        return self._now

    @property
    def frame(self) -> int:
        """Number of advancement ticks processed so far."""
        return self._frame

    @property
    def running(self) -> bool:
        return self._running

    @property
    def clock_frequency(self) -> float:
        return self._clock_frequency

    @property
    def signals(self) -> Tuple[Signal, ...]:
        return self._signals

    @property
    def flip_flops(self) -> Dict[int, FlipFlopState]:
        return dict(self._flip_flops)

    @property
    def enable_trackers(self) -> Dict[int, EnableTracker]:
        return dict(self._trackers)

    @property
    def active_outputs(self) -> Dict[int, float]:
        return dict(self._active_outputs)

    @property
    def active_inputs(self) -> FrozenSet[int]:
        return self._active_inputs

    @property
    def reset_pending(self) -> bool:
        return self._reset_requested

    @property
    def history(self) -> CommandStack:
        return self._history

    # ------------------------------------------------------------------
    def load_netlist(
        self, data: Netlist | Mapping[str, Any] | None, *, arrange_layout: bool | None = None
    ) -> Netlist:
        """Replace the current netlist.

        Parameters
        ----------
        data:
            A :class:`Netlist` or a mapping with ``elements`` and
            ``connections``. Malformed input is logged and replaced by an empty
            netlist.
        arrange_layout:
            ``True`` forces the automatic layout, ``False`` keeps the stored
            positions. ``None`` arranges only when every element still sits at
            the origin.
        """

        if isinstance(data, Netlist):
            netlist = data
        elif data is None:
            logger.warning("No netlist provided; loading an empty netlist")
            netlist = Netlist.blank()
        else:
            try:
                validate_netlist(data)
                netlist = Netlist.from_dict(data)
            except (ValueError, TypeError, KeyError) as exc:
                logger.warning("Malformed netlist ignored: %s", exc)
                netlist = Netlist.blank()

        if arrange_layout or (arrange_layout is None and not netlist.has_layout()):
            netlist = netlist.with_elements(arrange(netlist.elements, netlist.connections))

        with self._lock:
            self._netlist = netlist
            self._initial_positions = netlist.positions()
            self._history.clear()
            self._flip_flops, self._trackers = initial_states(netlist.elements)
            self._signals = ()
            self._active_outputs = {}
            self._active_inputs = frozenset()
            self._queue.discard(lambda kind, _p: kind == EventKind.DEFERRED_EMIT)
        log_record(
            "event",
            "netlist_loaded",
            time_ms=self._now,
            elements=len(netlist.elements),
            connections=len(netlist.connections),
        )
        return netlist

    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start the four periodic ticks from a clean signal slate."""

        with self._lock:
            if self._running:
                return
            self._running = True
            self._signals = ()
            timing = Config.timing
            now = self._now
            self._queue.push(now + self._emit_period(), EventKind.EMIT)
            self._queue.push(now + timing["advance_interval_ms"], EventKind.ADVANCE)
            self._queue.push(now + timing["enable_sweep_ms"], EventKind.ENABLE_SWEEP)
            self._queue.push(now + timing["output_sweep_ms"], EventKind.OUTPUT_SWEEP)
        logger.debug("Simulation started at %.1f ms", self._now)

    def stop(self) -> None:
        """Stop every tick, cancel deferred emissions and drop live signals."""

        with self._lock:
            self._running = False
            self._queue.clear()
            self._signals = ()
            self._active_outputs = {}
        logger.debug("Simulation stopped at %.1f ms", self._now)

    def reset(self) -> None:
        """Return signals, outputs, inputs and flip-flops to their initial state.

        Independent of the run state; periodic ticks keep running if the
        simulation is running, but pending deferred emissions are dropped.
        """

        with self._lock:
            self._reset_requested = False
            self._signals = ()
            self._active_outputs = {}
            self._active_inputs = frozenset()
            self._flip_flops, self._trackers = reset_states(self._flip_flops)
            self._queue.discard(lambda kind, _p: kind == EventKind.DEFERRED_EMIT)
        log_record("event", "reset", time_ms=self._now)

    def request_reset(self) -> None:
        """Raise the reset trigger, consumed by the next :meth:`advance`."""

        with self._lock:
            self._reset_requested = True

    def set_clock_frequency(self, hz: float) -> float:
        """Set the clock rate, clamped to the configured range.

        A running emission tick is rescheduled one new period from now.
        """

        with self._lock:
            self._clock_frequency = float(Config.clamp_frequency(hz))
            if self._running:
                self._queue.discard(lambda kind, _p: kind == EventKind.EMIT)
                self._queue.push(self._now + self._emit_period(), EventKind.EMIT)
            return self._clock_frequency

    def toggle_input(self, element_id: int) -> bool:
        """Flip a ``module_input`` on or off and return its new state.

        Ids that do not name a ``module_input`` are ignored.
        """

        with self._lock:
            el = self._netlist.element(element_id)
            if el is None or el.type != MODULE_INPUT:
                logger.debug("Ignoring toggle for element %s", element_id)
                return element_id in self._active_inputs
            if element_id in self._active_inputs:
                self._active_inputs = self._active_inputs - {element_id}
                return False
            self._active_inputs = self._active_inputs | {element_id}
            return True

    # ------------------------------------------------------------------
    def set_positions(self, positions: Dict[int, Position]) -> None:
        """Replace positions of the listed elements."""

        with self._lock:
            self._netlist = self._netlist.with_positions(positions)

    def move_element(self, element_id: int, x: float, y: float) -> None:
        """Drag ``element_id`` to ``(x, y)`` as an undoable edit."""

        with self._lock:
            if self._netlist.element(element_id) is None:
                return
            self._history.do(MoveElementCommand(self, element_id, (float(x), float(y))))

    def auto_arrange(self) -> None:
        """Replace every position with the automatic layout, undoably."""

        with self._lock:
            self._history.do(ArrangeCommand(self))

    def undo(self) -> bool:
        with self._lock:
            return self._history.undo()

    def redo(self) -> bool:
        with self._lock:
            return self._history.redo()

    def restore_layout(self) -> None:
        """Return to the positions the netlist had when it was loaded."""

        with self._lock:
            self.set_positions(self._initial_positions)
            self._history.clear()

    def element_at(self, x: float, y: float) -> Element | None:
        """Return the first element whose box contains ``(x, y)``."""

        size = Config.element_size
        for el in self._netlist.elements:
            if el.x <= x <= el.x + size and el.y <= y <= el.y + size:
                return el
        return None

    # ------------------------------------------------------------------
    def advance(self, ms: float) -> int:
        """Advance virtual time by ``ms`` and process every event due.

        Returns the number of events processed. A pending reset trigger is
        consumed before any event runs. Virtual time never runs backwards, so
        a negative ``ms`` raises ``ValueError``.
        """

        if ms < 0:
            raise ValueError(f"cannot advance by a negative duration ({ms} ms)")
        processed = 0
        with self._lock:
            if self._reset_requested:
                self.reset()
            target = self._now + ms
            while self._queue and self._queue.peek_time() <= target:
                when, kind, payload = self._queue.pop()
                self._now = when
                self._handle(kind, payload)
                processed += 1
            self._now = target
        return processed

    def _emit_period(self) -> float:
        return 1000.0 / self._clock_frequency

    def _handle(self, kind: EventKind, payload: Any) -> None:
        timing = Config.timing
        now = self._now
        if kind == EventKind.EMIT:
            self._on_emit()
            self._queue.push(now + self._emit_period(), EventKind.EMIT)
        elif kind == EventKind.ADVANCE:
            self._on_advance()
            self._queue.push(now + timing["advance_interval_ms"], EventKind.ADVANCE)
        elif kind == EventKind.DEFERRED_EMIT:
            self._on_deferred_emit(payload)
        elif kind == EventKind.ENABLE_SWEEP:
            self._on_enable_sweep()
            self._queue.push(now + timing["enable_sweep_ms"], EventKind.ENABLE_SWEEP)
        elif kind == EventKind.OUTPUT_SWEEP:
            self._on_output_sweep()
            self._queue.push(now + timing["output_sweep_ms"], EventKind.OUTPUT_SWEEP)

    def _on_emit(self) -> None:
        sources = emission_sources(self._netlist, self._active_inputs)
        self._signals, created = emit(self._signals, self._netlist, sources, self._now)
        for sig in created:
            log_record(
                "signal",
                "emit",
                frame=self._frame,
                time_ms=self._now,
                connection=sig.connection,
                source=sig.source_name,
                dest=sig.dest_name,
            )

    def _on_advance(self) -> None:
        self._frame += 1
        step = step_size(self._clock_frequency)
        self._signals, arrived = advance_signals(self._signals, step)
        for sig in arrived:
            self._flip_flops, self._trackers, self._active_outputs, outcome = (
                dispatch_arrival(
                    sig,
                    self._netlist,
                    self._flip_flops,
                    self._trackers,
                    self._active_outputs,
                    self._now,
                )
            )
            log_record(
                "signal",
                "arrival",
                frame=self._frame,
                time_ms=self._now,
                connection=sig.connection,
                dest=sig.dest_name,
                role=outcome.role.value if outcome.role else None,
            )
            if outcome.role is PortRole.CLOCK:
                self._log_clock_edge(outcome.dest_id, outcome.accepted)
            if outcome.drives_output:
                self._queue.push(
                    self._now + Config.timing["latch_emit_delay_ms"],
                    EventKind.DEFERRED_EMIT,
                    outcome.dest_id,
                )
        flush_metrics(self._frame)

    def _log_clock_edge(self, ff_id: int | None, accepted: bool) -> None:
        state = self._flip_flops.get(ff_id) if ff_id is not None else None
        if state is None:
            return
        if accepted:
            log_record(
                "flipflop",
                "latch",
                frame=self._frame,
                time_ms=self._now,
                id=state.id,
                name=state.name,
                output=state.output_value,
            )
        else:
            log_record(
                "flipflop", "debounce", frame=self._frame, time_ms=self._now, id=state.id
            )

    def _on_deferred_emit(self, ff_id: int) -> None:
        if not self._running:
            return
        state = self._flip_flops.get(ff_id)
        if state is None:
            return
        conns = self._netlist.connections_from(ff_id)
        self._signals, created = emit(self._signals, self._netlist, conns, self._now)
        for sig in created:
            log_record(
                "signal",
                "emit",
                frame=self._frame,
                time_ms=self._now,
                connection=sig.connection,
                source=sig.source_name,
                dest=sig.dest_name,
            )
        if not created:
            log_record(
                "signal", "suppressed", frame=self._frame, time_ms=self._now, id=ff_id
            )

    def _on_enable_sweep(self) -> None:
        self._flip_flops, self._trackers, expired = expire_enables(
            self._flip_flops, self._trackers, self._now
        )
        for fid in expired:
            log_record("flipflop", "enable_timeout", time_ms=self._now, id=fid)

    def _on_output_sweep(self) -> None:
        timeout = Config.timing["output_timeout_ms"]
        now = self._now
        kept = {
            oid: ts for oid, ts in self._active_outputs.items() if now - ts <= timeout
        }
        for oid in self._active_outputs.keys() - kept.keys():
            log_record("event", "output_timeout", time_ms=now, id=oid)
        self._active_outputs = kept

    # ------------------------------------------------------------------
    def run_realtime(self) -> None:
        """Advance virtual time with wall-clock time in a background thread."""

        with self._lock:
            if self._realtime:
                return
            self._realtime = True
            self._thread = threading.Thread(target=self._run_loop, daemon=True)
            self._thread.start()

    def stop_realtime(self) -> None:
        self._realtime = False
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

    def _run_loop(self) -> None:
        last = time.monotonic()
        while self._realtime:
            time.sleep(Config.realtime_poll)
            now = time.monotonic()
            self.advance((now - last) * 1000.0)
            last = now

    # ------------------------------------------------------------------
    def snapshot_for_ui(self) -> ViewSnapshot:
        """Return a :class:`ViewSnapshot` of the current engine state."""

        with self._lock:
            elements = [
                ElementView(id=el.id, name=el.name, type=el.type, x=el.x, y=el.y)
                for el in self._netlist.elements
            ]
            signals = []
            for sig in self._signals:
                x, y = sig.position()
                signals.append(
                    SignalView(
                        connection=sig.connection,
                        progress=sig.progress,
                        x=x,
                        y=y,
                        total_length=sig.total_length,
                        source_name=sig.source_name,
                        dest_name=sig.dest_name,
                    )
                )
            flip_flops = [
                FlipFlopView(
                    id=s.id,
                    name=s.name,
                    type=s.type,
                    has_d=s.has_d,
                    has_en=s.has_en,
                    output_value=s.output_value,
                )
                for s in self._flip_flops.values()
            ]
            return ViewSnapshot(
                time_ms=self._now,
                running=self._running,
                clock_frequency=self._clock_frequency,
                elements=elements,
                signals=signals,
                active_inputs=self._active_inputs,
                active_outputs=dict(self._active_outputs),
                flip_flops=flip_flops,
            )

    # ------------------------------------------------------------------
    def handle_control(self, msg: Dict[str, Any]) -> Dict[str, Any] | None:
        """Handle a command message from the UI.

        Supported ``cmd`` values are ``start``, ``stop``, ``reset``,
        ``toggle_input`` (``id``), ``set_clock`` (``hz``), ``move`` (``id``,
        ``x``, ``y``), ``arrange``, ``undo``, ``redo``, ``restore_layout``,
        ``advance`` (``ms``) and ``load_netlist`` (``netlist``). Unknown commands
        are logged and ignored.
        """

        cmd = msg.get("cmd")
        if cmd == "start":
            self.start()
        elif cmd == "stop":
            self.stop()
        elif cmd == "reset":
            self.reset()
        elif cmd == "toggle_input":
            return {"id": msg.get("id"), "active": self.toggle_input(int(msg["id"]))}
        elif cmd == "set_clock":
            return {"clock_frequency": self.set_clock_frequency(float(msg["hz"]))}
        elif cmd == "move":
            self.move_element(int(msg["id"]), float(msg["x"]), float(msg["y"]))
        elif cmd == "arrange":
            self.auto_arrange()
        elif cmd == "undo":
            return {"changed": self.undo()}
        elif cmd == "redo":
            return {"changed": self.redo()}
        elif cmd == "restore_layout":
            self.restore_layout()
        elif cmd == "advance":
            return {"events": self.advance(float(msg.get("ms", 0.0)))}
        elif cmd == "load_netlist":
            self.load_netlist(msg.get("netlist"))
            return self._netlist.to_dict()
        else:
            logger.warning("Unknown control command %r", cmd)
        return None


# Lazily constructed driver instance shared by the CLI and GUI helpers.
_ENGINE: SimulationDriver | None = None


def get_engine() -> SimulationDriver:
    """Return the module-level :class:`SimulationDriver` instance."""

    global _ENGINE
    if _ENGINE is None:
        _ENGINE = SimulationDriver()
    return _ENGINE


def build_netlist(path: str | None = None, *, arrange_layout: bool | None = None) -> Netlist:
    """Load the netlist at ``path`` into the shared driver.

    Missing or malformed files leave the driver with an empty netlist and a
    logged warning.
    """

    engine = get_engine()
    path = path or Config.netlist_file
    try:
        netlist = read_netlist(path)
    except (OSError, ValueError) as exc:
        logger.warning("Could not load netlist %s: %s", path, exc)
        netlist = Netlist.blank()
    return engine.load_netlist(netlist, arrange_layout=arrange_layout)


def start_simulation() -> None:
    """Start the shared driver and flag the run in :class:`Config`."""

    get_engine().start()
    with Config.state_lock:
        Config.is_running = True


def stop_simulation() -> None:
    """Stop the shared driver."""

    get_engine().stop()
    with Config.state_lock:
        Config.is_running = False


def get_snapshot() -> ViewSnapshot:
    """Return a snapshot of the shared driver."""

    return get_engine().snapshot_for_ui()


__all__ = [
    "SimulationDriver",
    "get_engine",
    "build_netlist",
    "start_simulation",
    "stop_simulation",
    "get_snapshot",
]
