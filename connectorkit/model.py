from __future__ import annotations

from dataclasses import dataclass, field
import uuid

from PyQt6.QtCore import QObject, QPointF, QRectF, pyqtSignal
from PyQt6.QtGui import QPainterPath, QPolygonF

from . import geometry
from .connection import LineConnection
from .constants import DEFAULT_FIGURE_HEIGHT, DEFAULT_FIGURE_WIDTH, FIGURE_KINDS, SCHEMA_VERSION
from .geometry import Outline, ShapeKind


def new_id() -> str:
    return uuid.uuid4().hex


def normalize_figure_kind(value: object) -> str:
    kind = str(value or "rectangle").strip().lower()
    if kind not in FIGURE_KINDS:
        return "rectangle"
    return kind


@dataclass(eq=False)
class Figure:
    id: str
    kind: str = "rectangle"
    x: float = 0.0
    y: float = 0.0
    width: float = DEFAULT_FIGURE_WIDTH
    height: float = DEFAULT_FIGURE_HEIGHT
    # polygon vertices in the unit square, scaled into the bounds
    vertices: list[tuple[float, float]] = field(default_factory=list)
    children: list["Figure"] = field(default_factory=list)
    connect_to_bounds: bool = False
    _connections: list[LineConnection] = field(default_factory=list, init=False, repr=False)

    def bounds(self) -> QRectF:
        if self.kind == "group" and self.children:
            rect = self.children[0].bounds()
            for child in self.children[1:]:
                rect = rect.united(child.bounds())
            return rect
        return QRectF(self.x, self.y, self.width, self.height)

    def set_bounds(self, rect: QRectF) -> None:
        if self.kind == "group" and self.children:
            old = self.bounds()
            for child in self.children:
                child_rect = child.bounds()
                top_left = geometry.normalize_transform(child_rect.topLeft(), old, rect)
                bottom_right = geometry.normalize_transform(child_rect.bottomRight(), old, rect)
                child.set_bounds(QRectF(top_left, bottom_right))
            return
        self.x = rect.x()
        self.y = rect.y()
        self.width = max(0.0, rect.width())
        self.height = max(0.0, rect.height())

    def move_by(self, dx: float, dy: float) -> None:
        if self.kind == "group" and self.children:
            for child in self.children:
                child.move_by(dx, dy)
            return
        self.x += dx
        self.y += dy

    def shape_kind(self) -> ShapeKind:
        if self.connect_to_bounds or self.kind == "rectangle":
            return ShapeKind.RECTANGLE
        if self.kind == "ellipse":
            return ShapeKind.ELLIPSE
        return ShapeKind.GENERAL

    def connectible_outline(self) -> Outline:
        r = self.bounds()
        if self.connect_to_bounds or self.kind == "rectangle":
            return Outline.rectangle(r)
        if self.kind == "ellipse":
            return Outline.ellipse(r)
        if self.kind == "polygon" and len(self.vertices) >= 3:
            polygon = QPolygonF(
                [QPointF(r.x() + vx * r.width(), r.y() + vy * r.height()) for vx, vy in self.vertices]
            )
            path = QPainterPath()
            path.addPolygon(polygon)
            path.closeSubpath()
            return Outline(ShapeKind.GENERAL, r, path)
        if self.kind == "group" and self.children:
            path = QPainterPath()
            for child in self.children:
                path.addPath(child.connectible_outline().painter_path())
            return Outline(ShapeKind.GENERAL, r, path)
        return Outline.rectangle(r)

    def contains(self, p: QPointF) -> bool:
        return self.connectible_outline().contains(p)

    def decomposition(self) -> list["Figure"]:
        figures = [self]
        for child in self.children:
            figures.extend(child.decomposition())
        return figures

    def connections(self) -> list[LineConnection]:
        return list(self._connections)

    def add_connection(self, connection: LineConnection) -> None:
        if connection not in self._connections:
            self._connections.append(connection)

    def remove_connection(self, connection: LineConnection) -> None:
        if connection in self._connections:
            self._connections.remove(connection)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "kind": self.kind,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
        if self.vertices:
            data["vertices"] = [[vx, vy] for vx, vy in self.vertices]
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        if self.connect_to_bounds:
            data["connect_to_bounds"] = True
        return data

    @staticmethod
    def from_dict(data: dict) -> "Figure":
        return Figure(
            id=data["id"],
            kind=normalize_figure_kind(data.get("kind")),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data.get("width", DEFAULT_FIGURE_WIDTH)),
            height=float(data.get("height", DEFAULT_FIGURE_HEIGHT)),
            vertices=[(float(vx), float(vy)) for vx, vy in data.get("vertices", [])],
            children=[Figure.from_dict(c) for c in data.get("children", [])],
            connect_to_bounds=bool(data.get("connect_to_bounds", False)),
        )


class Drawing(QObject):
    figures_changed = pyqtSignal()
    connections_changed = pyqtSignal()

    def __init__(self) -> None:
        super().__init__()
        self.figures: dict[str, Figure] = {}
        self.connections: dict[str, LineConnection] = {}

    def add_figure(self, figure: Figure) -> None:
        self.figures[figure.id] = figure
        self.figures_changed.emit()

    def remove_figure(self, figure_id: str) -> Figure | None:
        figure = self.figures.pop(figure_id, None)
        if figure is not None:
            self.figures_changed.emit()
        return figure

    def get_figure(self, figure_id: str) -> Figure | None:
        figure = self.figures.get(figure_id)
        if figure is not None:
            return figure
        for top in self.figures.values():
            for part in top.decomposition():
                if part.id == figure_id:
                    return part
        return None

    def figure_at(self, p: QPointF) -> Figure | None:
        for figure in reversed(list(self.figures.values())):
            if figure.contains(p):
                return figure
        return None

    def add_connection(self, connection: LineConnection) -> None:
        connection.attach()
        self.connections[connection.id] = connection
        self.connections_changed.emit()

    def remove_connection(self, connection_id: str) -> LineConnection | None:
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return None
        connection.detach()
        self.connections_changed.emit()
        return connection

    def get_connection(self, connection_id: str) -> LineConnection | None:
        return self.connections.get(connection_id)

    def figures_by_id(self) -> dict[str, Figure]:
        result = {}
        for figure in self.figures.values():
            for part in figure.decomposition():
                result[part.id] = part
        return result

    def to_dict(self) -> dict:
        return {
            "schema_version": SCHEMA_VERSION,
            "figures": [figure.to_dict() for figure in self.figures.values()],
            "connections": [connection.to_dict() for connection in self.connections.values()],
        }

    @staticmethod
    def from_dict(data: dict) -> "Drawing":
        schema_version = data.get("schema_version", 0)
        if schema_version != SCHEMA_VERSION:
            raise ValueError(f"Unsupported schema version: {schema_version}")
        drawing = Drawing()
        drawing.figures = {
            figure.id: figure for figure in (Figure.from_dict(f) for f in data.get("figures", []))
        }
        figures_by_id = drawing.figures_by_id()
        for entry in data.get("connections", []):
            connection = LineConnection.from_dict(entry, figures_by_id)
            drawing.connections[connection.id] = connection
        return drawing
