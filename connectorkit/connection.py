from __future__ import annotations

import logging
import uuid

from PyQt6.QtCore import QObject, QPointF, QRectF, pyqtSignal

from . import geometry, strategies
from .connector import RelativeConnector
from .constants import END_STRATEGY_KEY, SEGMENT_HIT_TOLERANCE, SELF_CONNECTION_LINER, START_STRATEGY_KEY

logger = logging.getLogger(__name__)


def _segment_distance(p: QPointF, a: QPointF, b: QPointF) -> float:
    dx = b.x() - a.x()
    dy = b.y() - a.y()
    length_sq = dx * dx + dy * dy
    if length_sq == 0.0:
        return geometry.distance(p, a)
    t = geometry.clamp(((p.x() - a.x()) * dx + (p.y() - a.y()) * dy) / length_sq, 0.0, 1.0)
    return geometry.distance(p, QPointF(a.x() + t * dx, a.y() + t * dy))


class LineConnection(QObject):
    """A polyline whose first and last points are attached to figures."""

    connection_changed = pyqtSignal()

    def __init__(self, points: list[QPointF] | None = None, connection_id: str | None = None) -> None:
        super().__init__()
        self.id = connection_id or uuid.uuid4().hex
        if points is None:
            points = [QPointF(0.0, 0.0), QPointF(0.0, 0.0)]
        if len(points) < 2:
            raise ValueError("a connection needs at least two points")
        self._points = [QPointF(p) for p in points]
        self._start_connector: RelativeConnector | None = None
        self._end_connector: RelativeConnector | None = None
        self.start_strategy_name: str | None = None
        self.end_strategy_name: str | None = None
        self.liner: str | None = None
        self._change_depth = 0

    def __repr__(self) -> str:
        return f"LineConnection(id={self.id!r}, points={self.node_count()})"

    # change bracketing

    def will_change(self) -> None:
        self._change_depth += 1

    def changed(self) -> None:
        self._change_depth = max(0, self._change_depth - 1)
        if self._change_depth == 0:
            self.connection_changed.emit()

    # points

    def node_count(self) -> int:
        return len(self._points)

    def points(self) -> list[QPointF]:
        return [QPointF(p) for p in self._points]

    def point(self, index: int) -> QPointF:
        return QPointF(self._points[index])

    def set_point(self, index: int, p: QPointF) -> None:
        self._points[index] = QPointF(p)

    def set_points(self, points: list[QPointF]) -> None:
        if len(points) < 2:
            raise ValueError("a connection needs at least two points")
        self._points = [QPointF(p) for p in points]

    def start_point(self) -> QPointF:
        return self.point(0)

    def end_point(self) -> QPointF:
        return self.point(-1)

    def find_segment(self, p: QPointF, tolerance: float = SEGMENT_HIT_TOLERANCE) -> int:
        """Index of the first segment within ``tolerance`` of ``p``, or -1."""
        for index in range(len(self._points) - 1):
            if _segment_distance(p, self._points[index], self._points[index + 1]) <= tolerance:
                return index
        return -1

    def move_by(self, dx: float, dy: float) -> None:
        self._points = [QPointF(p.x() + dx, p.y() + dy) for p in self._points]

    # connectors

    @property
    def start_connector(self) -> RelativeConnector | None:
        return self._start_connector

    @property
    def end_connector(self) -> RelativeConnector | None:
        return self._end_connector

    @property
    def start_figure(self):
        return self._start_connector.owner if self._start_connector is not None else None

    @property
    def end_figure(self):
        return self._end_connector.owner if self._end_connector is not None else None

    def _register(self, connector: RelativeConnector | None) -> None:
        if connector is None or connector.is_pending or connector.owner is None:
            return
        connector.owner.add_connection(self)

    def _unregister(self, connector: RelativeConnector | None) -> None:
        if connector is None or connector.is_pending or connector.owner is None:
            return
        owner = connector.owner
        for other in (self._start_connector, self._end_connector):
            if other is not None and other is not connector and not other.is_pending and other.owner is owner:
                return
        owner.remove_connection(self)

    def set_start_connector(self, connector: RelativeConnector | None) -> None:
        if connector is self._start_connector:
            return
        self._unregister(self._start_connector)
        self._start_connector = connector
        if connector is not None:
            connector.connection = self
        self._register(connector)

    def set_end_connector(self, connector: RelativeConnector | None) -> None:
        if connector is self._end_connector:
            return
        self._unregister(self._end_connector)
        self._end_connector = connector
        if connector is not None:
            connector.connection = self
        self._register(connector)

    def set_connector(self, is_start: bool, connector: RelativeConnector | None) -> None:
        if is_start:
            self.set_start_connector(connector)
        else:
            self.set_end_connector(connector)

    def connector(self, is_start: bool) -> RelativeConnector | None:
        return self._start_connector if is_start else self._end_connector

    def strategy_name(self, is_start: bool) -> str | None:
        return self.start_strategy_name if is_start else self.end_strategy_name

    def set_strategy_name(self, is_start: bool, name: str | None) -> None:
        if is_start:
            self.start_strategy_name = name
        else:
            self.end_strategy_name = name

    def is_self_connection(self) -> bool:
        return self.start_figure is not None and self.start_figure is self.end_figure

    def set_self_connection(self) -> None:
        self.liner = SELF_CONNECTION_LINER

    def update_connection(self) -> None:
        self.will_change()
        if self._start_connector is not None and self._start_connector.owner is not None:
            self.set_point(0, strategies.connection_point(self._start_connector))
        if self._end_connector is not None and self._end_connector.owner is not None:
            self.set_point(self.node_count() - 1, strategies.connection_point(self._end_connector))
        self.changed()

    # selection protocol shared with figures

    def decomposition(self) -> list:
        return [self]

    def connections(self) -> list:
        return []

    def bounds(self) -> QRectF:
        xs = [p.x() for p in self._points]
        ys = [p.y() for p in self._points]
        return QRectF(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def contains(self, p: QPointF) -> bool:
        return self.find_segment(p) >= 0

    # owner registration

    def detach(self) -> None:
        for connector in (self._start_connector, self._end_connector):
            if connector is not None and not connector.is_pending and connector.owner is not None:
                connector.owner.remove_connection(self)

    def attach(self) -> None:
        self._register(self._start_connector)
        self._register(self._end_connector)

    # snapshots

    def clone(self) -> "LineConnection":
        """Detached copy: owners do not know about it and nothing is wired."""
        copy = LineConnection(self.points(), self.id)
        copy.start_strategy_name = self.start_strategy_name
        copy.end_strategy_name = self.end_strategy_name
        copy.liner = self.liner
        for connector, slot in ((self._start_connector, "_start_connector"), (self._end_connector, "_end_connector")):
            if connector is None or connector.is_pending:
                continue
            snapshot = RelativeConnector(connector.owner, connector.relative_x, connector.relative_y, copy)
            setattr(copy, slot, snapshot)
        return copy

    def restore(self, snapshot: "LineConnection") -> None:
        self.will_change()
        self.set_start_connector(None)
        self.set_end_connector(None)
        self.set_points(snapshot.points())
        self.start_strategy_name = snapshot.start_strategy_name
        self.end_strategy_name = snapshot.end_strategy_name
        self.liner = snapshot.liner
        for connector, is_start in ((snapshot.start_connector, True), (snapshot.end_connector, False)):
            if connector is None:
                continue
            self.set_connector(
                is_start, RelativeConnector(connector.owner, connector.relative_x, connector.relative_y)
            )
        self.changed()

    # persistence

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "points": [[p.x(), p.y()] for p in self._points],
        }
        for key, connector in (("start", self._start_connector), ("end", self._end_connector)):
            if connector is None or connector.is_pending or connector.owner is None:
                continue
            entry = connector.to_dict()
            entry["figure"] = connector.owner.id
            data[key] = entry
        if self.start_strategy_name is not None:
            data[START_STRATEGY_KEY] = self.start_strategy_name
        if self.end_strategy_name is not None:
            data[END_STRATEGY_KEY] = self.end_strategy_name
        if self.liner is not None:
            data["liner"] = self.liner
        return data

    @staticmethod
    def from_dict(data: dict, figures_by_id: dict) -> "LineConnection":
        points = [QPointF(float(x), float(y)) for x, y in data.get("points", [])]
        connection = LineConnection(points or None, data.get("id"))
        connection.start_strategy_name = data.get(START_STRATEGY_KEY)
        connection.end_strategy_name = data.get(END_STRATEGY_KEY)
        connection.liner = data.get("liner")
        for key, is_start in (("start", True), ("end", False)):
            entry = data.get(key)
            if entry is None:
                continue
            owner = figures_by_id.get(entry.get("figure"))
            if owner is None:
                logger.warning("connection %s refers to missing figure %r", connection.id, entry.get("figure"))
                continue
            connection.set_connector(is_start, RelativeConnector.from_dict(entry, owner))
        return connection
