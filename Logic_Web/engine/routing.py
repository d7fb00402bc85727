"""Orthogonal wire routing between element ports.

A route always has four waypoints: the source pin, two corners on the
vertical column halfway between the pins, and the destination pin. The same
path is used for drawing and for converting a signal's progress into a
screen position.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from ..config import Config
from ..netlist.model import Connection, Element
from .flipflop import PortRole, port_role

Point = Tuple[float, float]


def port_position(
    element: Element, direction: str, wire_name: str, *, size: float | None = None
) -> Point:
    """Return the pin location on ``element`` for ``wire_name``.

    Parameters
    ----------
    element:
        Element owning the pin.
    direction:
        ``"input"`` or ``"output"``.
    wire_name:
        Wire attached to the pin; decides the pin role on flip-flops.
    size:
        Edge length of the element box. Defaults to
        :attr:`Config.element_size`.
    """

    if size is None:
        size = Config.element_size
    x, y = float(element.x), float(element.y)
    px = x if direction == "input" else x + size
    py = y + size / 2

    if element.is_flip_flop and direction == "input":
        role = port_role(element, wire_name)
        if role is PortRole.D:
            py = y + size * 0.25
        elif role is PortRole.CLOCK:
            px, py = x + size / 2, y + size
        elif role is PortRole.ENABLE:
            py = y + size * 0.75
    return px, py


def route(source: Element, dest: Element, connection: Connection) -> List[Point]:
    """Return the four waypoints of the wire from ``source`` to ``dest``."""

    sx, sy = port_position(source, "output", connection.name)
    ex, ey = port_position(dest, "input", connection.name)
    mid_x = sx + (ex - sx) / 2
    return [(sx, sy), (mid_x, sy), (mid_x, ey), (ex, ey)]


def _segment_lengths(points: Sequence[Point]) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if len(arr) < 2:
        return np.zeros(0)
    deltas = np.diff(arr, axis=0)
    return np.hypot(deltas[:, 0], deltas[:, 1])


def path_length(points: Sequence[Point]) -> float:
    """Return the summed Euclidean length of ``points``."""

    return float(_segment_lengths(points).sum())


def point_at(points: Sequence[Point], progress: float) -> Point:
    """Return the location ``progress`` of the way along ``points``.

    ``progress`` is clamped to ``[0, 1]``. Degenerate paths collapse onto the
    first waypoint.
    """

    if not points:
        raise ValueError("path has no points")
    seg = _segment_lengths(points)
    total = float(seg.sum())
    if total <= 0.0:
        return float(points[0][0]), float(points[0][1])
    target = min(max(progress, 0.0), 1.0) * total
    cum = np.cumsum(seg)
    idx = int(np.searchsorted(cum, target, side="left"))
    idx = min(idx, len(seg) - 1)
    start = cum[idx] - seg[idx]
    (x1, y1), (x2, y2) = points[idx], points[idx + 1]
    if seg[idx] == 0.0:
        return float(x1), float(y1)
    frac = (target - start) / seg[idx]
    return float(x1 + (x2 - x1) * frac), float(y1 + (y2 - y1) * frac)
