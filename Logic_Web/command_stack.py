"""Undo/redo command stack for element placement edits."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Tuple

from .engine.layout import arrange
from .netlist.model import Netlist

Position = Tuple[float, float]


class PositionTarget(Protocol):
    """Object exposing a netlist whose positions can be replaced."""

    @property
    def netlist(self) -> Netlist: ...

    def set_positions(self, positions: Dict[int, Position]) -> None: ...


class Command:
    """Base class for actions that can be undone and redone."""

    def execute(self) -> None:  # pragma: no cover - interface
        """Apply the command."""

    def undo(self) -> None:  # pragma: no cover - interface
        """Reverse the command."""


@dataclass
class CommandStack:
    """Maintain undo and redo stacks for commands."""

    undo_stack: List[Command] = field(default_factory=list)
    redo_stack: List[Command] = field(default_factory=list)

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def do(self, command: Command) -> None:
        """Execute ``command`` and push it onto the undo stack."""

        command.execute()
        self.undo_stack.append(command)
        self.redo_stack.clear()

    def undo(self) -> bool:
        """Undo the most recent command if any."""

        if not self.undo_stack:
            return False
        cmd = self.undo_stack.pop()
        cmd.undo()
        self.redo_stack.append(cmd)
        return True

    def redo(self) -> bool:
        """Redo the most recently undone command if any."""

        if not self.redo_stack:
            return False
        cmd = self.redo_stack.pop()
        cmd.execute()
        self.undo_stack.append(cmd)
        return True

    def clear(self) -> None:
        self.undo_stack.clear()
        self.redo_stack.clear()


@dataclass
class MoveElementCommand(Command):
    """Command that changes one element's ``(x, y)`` position."""

    target: PositionTarget
    element_id: int
    new_pos: Position
    _old_pos: Position | None = None

    def execute(self) -> None:
        el = self.target.netlist.element(self.element_id)
        if el is None:
            return
        self._old_pos = (el.x, el.y)
        self.target.set_positions({self.element_id: self.new_pos})

    def undo(self) -> None:
        if self._old_pos is None:
            return
        self.target.set_positions({self.element_id: self._old_pos})


@dataclass
class ArrangeCommand(Command):
    """Command that replaces every position with the automatic layout."""

    target: PositionTarget
    _old: Dict[int, Position] | None = None
    _new: Dict[int, Position] | None = None

    def execute(self) -> None:
        netlist = self.target.netlist
        self._old = netlist.positions()
        if self._new is None:
            arranged = arrange(netlist.elements, netlist.connections)
            self._new = {el.id: (el.x, el.y) for el in arranged}
        self.target.set_positions(self._new)

    def undo(self) -> None:
        if self._old is None:
            return
        self.target.set_positions(self._old)
