from __future__ import annotations

from dataclasses import dataclass, field
import logging

from PyQt6.QtCore import QPointF, QRectF, Qt
from PyQt6.QtGui import QUndoStack

from .commands import (
    AddConnectionCommand,
    ChangeConnectorStrategyCommand,
    ChangeGeometryCommand,
    RemoveConnectionCommand,
    capture_geometry,
)
from .connection import LineConnection
from .constants import DEFAULT_FIGURE_HEIGHT, DEFAULT_FIGURE_WIDTH
from .model import Drawing, Figure, new_id, normalize_figure_kind
from .strategies import StrategyKind
from .tracker import ConnectorSubTracker, Track

logger = logging.getLogger(__name__)

SELF_CONNECTION_LOOP = 40.0


@dataclass
class StrategyChangeResult:
    accepted: bool
    messages: list[str] = field(default_factory=list)
    incompatible: list[LineConnection] = field(default_factory=list)


class ConnectorController:
    def __init__(self, drawing: Drawing, undo_stack: QUndoStack, view=None) -> None:
        self.drawing = drawing
        self.undo_stack = undo_stack
        self.view = view
        self.tracker = ConnectorSubTracker(view, undo_stack)

    def add_figure(
        self,
        kind: str,
        x: float,
        y: float,
        width: float = DEFAULT_FIGURE_WIDTH,
        height: float = DEFAULT_FIGURE_HEIGHT,
        **kwargs,
    ) -> Figure:
        figure = Figure(
            id=new_id(), kind=normalize_figure_kind(kind), x=x, y=y, width=width, height=height, **kwargs
        )
        self.drawing.add_figure(figure)
        return figure

    def connect(
        self,
        start_figure: Figure,
        end_figure: Figure,
        start_strategy: str | None = StrategyKind.EDGE.value,
        end_strategy: str | None = StrategyKind.EDGE.value,
        start_point: QPointF | None = None,
        end_point: QPointF | None = None,
        points: list[QPointF] | None = None,
        liner: str | None = None,
    ) -> LineConnection | None:
        """Create a connection the way a connection tool gesture would."""
        if start_point is None:
            start_point = start_figure.bounds().center()
        if end_point is None:
            end_point = end_figure.bounds().center()
        if points is None:
            points = [start_point, end_point]
            if start_figure is end_figure:
                r = start_figure.bounds()
                points.insert(1, QPointF(r.right() + SELF_CONNECTION_LOOP, r.center().y()))
        connection = LineConnection(points)
        connection.start_strategy_name = start_strategy
        connection.end_strategy_name = end_strategy
        connection.liner = liner

        tracker = self.tracker
        tracker.create_new_connection(None, None, connection, Track.START)
        start = tracker.find_connector(start_point, start_figure, connection)
        end = tracker.find_connector(end_point, end_figure, connection)
        if start is None or end is None:
            tracker.discard()
            logger.warning("connection points are not inside their figures")
            return None
        new_start, new_end = tracker.create_new_connection(start, end, connection, Track.END)
        if new_start is None or new_end is None:
            logger.warning("connection vetoed: %s", "; ".join(tracker.veto_messages))
            return None
        self.undo_stack.push(AddConnectionCommand(self.drawing, connection))
        return connection

    def reconnect(
        self, connection: LineConnection, is_start: bool, figure: Figure, point: QPointF
    ) -> bool:
        """Move one end of ``connection`` onto ``figure``."""
        tracker = self.tracker
        connector = connection.connector(is_start)
        tracker.drag_connector(connector, Track.START, is_start, point)
        pending = tracker.find_connector(point, figure, connection, is_start)
        if pending is None or not pending.is_pending:
            tracker.discard()
            return False
        result = tracker.drag_connector(pending, Track.END, is_start, point)
        return result is not None

    def disconnect(self, connection: LineConnection) -> None:
        self.undo_stack.push(RemoveConnectionCommand(self.drawing, connection))

    def set_connector_strategy(
        self, connections, strategy_name: str, is_start: bool
    ) -> StrategyChangeResult:
        connections = list(connections)
        messages: list[str] = []
        incompatible = ConnectorSubTracker.check_strategy_compatibility(
            connections, strategy_name, is_start, messages
        )
        if incompatible:
            logger.warning("rejected change to %s: %s", strategy_name, "; ".join(messages))
            return StrategyChangeResult(False, messages, incompatible)
        self.undo_stack.push(
            ChangeConnectorStrategyCommand(self.tracker, connections, strategy_name, is_start)
        )
        return StrategyChangeResult(True, messages)

    def move_figures(
        self, figures, dx: float, dy: float, modifiers=Qt.KeyboardModifier.NoModifier
    ) -> None:
        figures = list(figures)
        before = capture_geometry(figures)
        tracker = self.tracker
        tracker.adjust_connectors_for_moving(figures, Track.START)
        try:
            for figure in figures:
                figure.move_by(dx, dy)
            tracker.adjust_connectors_for_moving(figures, Track.STEP, modifiers)
        finally:
            tracker.adjust_connectors_for_moving(figures, Track.END)
        self.drawing.figures_changed.emit()
        self.undo_stack.push(ChangeGeometryCommand(before, capture_geometry(figures), "Move"))

    def resize_figure(self, figure: Figure, rect: QRectF) -> None:
        before = capture_geometry([figure])
        tracker = self.tracker
        tracker.adjust_connectors_for_resizing([figure], Track.START)
        try:
            figure.set_bounds(rect)
            tracker.adjust_connectors_for_resizing([figure], Track.STEP)
        finally:
            tracker.adjust_connectors_for_resizing([figure], Track.END)
        self.drawing.figures_changed.emit()
        self.undo_stack.push(ChangeGeometryCommand(before, capture_geometry([figure]), "Resize"))

    def drag_connector_to(
        self,
        connection: LineConnection,
        is_start: bool,
        to_point: QPointF,
        modifiers=Qt.KeyboardModifier.NoModifier,
    ) -> QPointF:
        tracker = self.tracker
        connector = connection.connector(is_start)
        tracker.drag_connector(connector, Track.START, is_start, to_point, modifiers)
        try:
            tracker.drag_connector(connector, Track.STEP, is_start, to_point, modifiers)
        finally:
            tracker.drag_connector(connector, Track.END, is_start, to_point, modifiers)
        return connector.point()

    def migrate_legacy_connections(self) -> int:
        migrated = 0
        for connection in self.drawing.connections.values():
            if ConnectorSubTracker.migrate_to_relative_connectors(connection):
                migrated += 1
        if migrated:
            logger.info("migrated %d legacy connections to chop connectors", migrated)
        return migrated

    def touch_all(self) -> None:
        for connection in self.drawing.connections.values():
            if not ConnectorSubTracker.include_connection(connection):
                continue
            self.tracker.touch_connector(connection.start_connector)
            self.tracker.touch_connector(connection.end_connector)
