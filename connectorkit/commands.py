from __future__ import annotations

from PyQt6.QtCore import QRectF
from PyQt6.QtGui import QUndoCommand

DRAG_CONNECTION_COMMAND_ID = 4201


def capture_geometry(figures) -> tuple[dict, dict]:
    """Bounds of ``figures`` and snapshots of every connection attached to them."""
    bounds = {}
    snapshots = {}
    for figure in figures:
        for part in figure.decomposition():
            bounds[part] = QRectF(part.bounds())
            for connection in part.connections():
                if connection not in snapshots:
                    snapshots[connection] = connection.clone()
    return bounds, snapshots


class DragConnectionCommand(QUndoCommand):
    """Edit of one connection's ends, pushed after the edit already happened."""

    def __init__(self, connection, before, after, description: str = "Drag Connection") -> None:
        super().__init__(description)
        self.connection = connection
        self.before = before
        self.after = after
        self._skip_redo = True

    def id(self) -> int:
        return DRAG_CONNECTION_COMMAND_ID

    def mergeWith(self, other: QUndoCommand) -> bool:
        if not isinstance(other, DragConnectionCommand) or other.connection is not self.connection:
            return False
        self.after = other.after
        return True

    def redo(self) -> None:
        if self._skip_redo:
            self._skip_redo = False
            return
        self.connection.restore(self.after)

    def undo(self) -> None:
        self.connection.restore(self.before)


class ChangeConnectorStrategyCommand(QUndoCommand):
    def __init__(
        self,
        tracker,
        connections,
        strategy_name: str,
        is_start: bool,
        description: str = "Change Connector Strategy",
    ) -> None:
        super().__init__(description)
        self.tracker = tracker
        self.connections = list(connections)
        self.strategy_name = strategy_name
        self.is_start = is_start
        self.old_names = [connection.strategy_name(is_start) for connection in self.connections]
        self.old_connectors = []
        for connection in self.connections:
            for connector in (connection.start_connector, connection.end_connector):
                if connector is not None and not connector.is_pending:
                    self.old_connectors.append(connector.clone())

    def _owners(self) -> list:
        owners = []
        for connection in self.connections:
            for owner in (connection.start_figure, connection.end_figure):
                if owner is not None and owner not in owners:
                    owners.append(owner)
        return owners

    def redo(self) -> None:
        for connection in self.connections:
            connection.set_strategy_name(self.is_start, self.strategy_name)
            connector = connection.connector(self.is_start)
            if connector is not None:
                self.tracker.touch_connector(connector)

    def undo(self) -> None:
        for connection, name in zip(self.connections, self.old_names):
            connection.set_strategy_name(self.is_start, name)
        self.tracker.restore_connectors(self._owners(), self.old_connectors)


class AddConnectionCommand(QUndoCommand):
    def __init__(self, drawing, connection, description: str = "Add Connection") -> None:
        super().__init__(description)
        self.drawing = drawing
        self.connection = connection

    def redo(self) -> None:
        self.drawing.add_connection(self.connection)

    def undo(self) -> None:
        self.drawing.remove_connection(self.connection.id)


class RemoveConnectionCommand(QUndoCommand):
    def __init__(self, drawing, connection, description: str = "Remove Connection") -> None:
        super().__init__(description)
        self.drawing = drawing
        self.connection = connection

    def redo(self) -> None:
        self.drawing.remove_connection(self.connection.id)

    def undo(self) -> None:
        self.drawing.add_connection(self.connection)


class ChangeGeometryCommand(QUndoCommand):
    def __init__(self, before: tuple[dict, dict], after: tuple[dict, dict], description: str) -> None:
        super().__init__(description)
        self.before_bounds, self.before_connections = before
        self.after_bounds, self.after_connections = after

    @staticmethod
    def _apply(bounds: dict, snapshots: dict) -> None:
        for figure, rect in bounds.items():
            if figure.kind != "group" or not figure.children:
                figure.set_bounds(rect)
        for connection, snapshot in snapshots.items():
            connection.restore(snapshot)

    def redo(self) -> None:
        self._apply(self.after_bounds, self.after_connections)

    def undo(self) -> None:
        self._apply(self.before_bounds, self.before_connections)
