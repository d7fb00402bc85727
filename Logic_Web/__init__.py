"""Logic_Web package initialization."""

from __future__ import annotations

from typing import Any

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .engine.driver import SimulationDriver

__all__ = ["SimulationDriver"]


def __getattr__(name: str) -> Any:  # pragma: no cover - attribute access
    """Lazily expose SimulationDriver."""

    if name == "SimulationDriver":
        from .engine.driver import SimulationDriver as _SimulationDriver

        return _SimulationDriver
    raise AttributeError(name)
