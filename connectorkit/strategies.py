from __future__ import annotations

from enum import Enum
import logging
import math
from types import MappingProxyType

from PyQt6.QtCore import QPointF, QRectF, Qt

from . import geometry
from .connector import ConnectorEnd, RelativeConnector
from .constants import CURVED_LINER
from .geometry import Outline, ShapeKind, Side

logger = logging.getLogger(__name__)


class UnknownStrategyError(LookupError):
    def __init__(self, name: str | None) -> None:
        if name is None:
            message = "no connector strategy named for this end"
        else:
            message = f"unknown connector strategy {name!r}"
        super().__init__(message)
        self.name = name


class StrategyKind(Enum):
    FIXED = "FixedBoundaryConnectorStrategy"
    INTERIOR = "InteriorConnectorStrategy"
    EDGE = "EdgeConnectorStrategy"
    RECTILINEAR = "RectilinearConnectorStrategy"
    ROTATIONAL = "RotationalConnectorStrategy"
    CHOP = "ChopConnectorStrategy"
    CENTER = "CenterConnectorStrategy"
    EXPERIMENTAL = "ExperimentalConnectorStrategy"


# -- lookups shared by strategies and the tracker -----------------------------


def find_connector_strategy_name(connector: RelativeConnector) -> str | None:
    connection = connector.connection
    if connection is None:
        return None
    end = connector.end
    if end is ConnectorEnd.START:
        return connection.start_strategy_name
    if end is ConnectorEnd.END:
        return connection.end_strategy_name
    start = connection.start_connector
    if start is None or start is connector:
        return connection.start_strategy_name
    return connection.end_strategy_name


def find_connector_strategy(connector: RelativeConnector) -> "ConnectorStrategy":
    return find_strategy(find_connector_strategy_name(connector))


def find_opposite_connector(connector: RelativeConnector) -> RelativeConnector | None:
    connection = connector.connection
    if connection is None:
        return None
    end = connector.end
    if end is ConnectorEnd.START:
        return connection.end_connector
    if end is ConnectorEnd.END:
        return connection.start_connector
    # committed connector not yet placed in a slot
    start = connection.start_connector
    finish = connection.end_connector
    if start is not None and start.owner is connector.owner:
        return finish
    if finish is not None and finish.owner is connector.owner:
        return start
    return None


def find_opposite_bounds(connector: RelativeConnector) -> QRectF:
    opposite = find_opposite_connector(connector)
    return find_connector_strategy(opposite).effective_bounds(opposite.owner)


def find_opposite_connection_point(connector: RelativeConnector) -> QPointF:
    connection = connector.connection
    if connection.node_count() > 2:
        index = 1 if connector.is_start_connector() else connection.node_count() - 2
        return connection.point(index)
    return find_opposite_connector(connector).point()


def connection_point(connector: RelativeConnector) -> QPointF:
    """Rendered end point of ``connector``; legacy ends use the raw point."""
    if find_connector_strategy_name(connector) is None:
        return connector.point()
    try:
        strategy = find_connector_strategy(connector)
    except UnknownStrategyError as exc:
        logger.warning("%s; using raw connector point", exc)
        return connector.point()
    return strategy.find_connection_point(connector)


# -- base strategy ------------------------------------------------------------


class ConnectorStrategy:
    """Stateless placement policy for one connection end.

    Everything a hook needs arrives as arguments: the tracker holding the
    gesture session and the connectors being adjusted.
    """

    kind: StrategyKind
    bounds_mode = False
    singular_connector_point = False
    tightly_coupled = False

    @property
    def name(self) -> str:
        return self.kind.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def is_bounds_mode(self) -> bool:
        return self.bounds_mode

    def has_singular_connector_point(self) -> bool:
        return self.singular_connector_point

    def is_connector_tightly_coupled(self) -> bool:
        return self.tightly_coupled

    # effective geometry

    def effective_shape(self, owner) -> Outline:
        outline = owner.connectible_outline()
        if self.bounds_mode:
            return Outline.rectangle(outline.bounds)
        return outline

    def effective_bounds(self, owner) -> QRectF:
        return QRectF(self.effective_shape(owner).bounds)

    def effective_shape_kind(self, owner) -> ShapeKind:
        if self.bounds_mode:
            return ShapeKind.RECTANGLE
        return owner.connectible_outline().kind

    # event hooks

    def adjust_for_resizing(self, tracker, connector: RelativeConnector) -> None:
        self.preserve_connection(tracker, connector)

    def adjust_for_moving(self, tracker, connectors: list[RelativeConnector]) -> None:
        raise NotImplementedError

    def adjust_for_moving_opposite(self, tracker, connectors: list[RelativeConnector]) -> None:
        raise NotImplementedError

    def adjust_multi_for_moving(self, tracker, connectors: list[RelativeConnector]) -> None:
        raise NotImplementedError

    def adjust_multi_for_moving_opposite(self, tracker, connectors: list[RelativeConnector]) -> None:
        raise NotImplementedError

    def preserve_connection(self, tracker, connector: RelativeConnector) -> None:
        raise NotImplementedError

    def slide_connector(self, tracker, connector: RelativeConnector) -> None:
        self.preserve_connection(tracker, connector)

    def drag_connector(
        self,
        tracker,
        connector: RelativeConnector,
        from_point: QPointF,
        to_point: QPointF,
        modifiers: Qt.KeyboardModifier = Qt.KeyboardModifier.NoModifier,
    ) -> QPointF:
        self.change_connector_point(tracker, connector, from_point, to_point)
        return connector.point()

    def touch_connector(self, tracker, connector: RelativeConnector) -> QPointF:
        p = connector.point()
        connection = connector.connection
        connection.will_change()
        self.change_connector_point(tracker, connector, p, p)
        connection.update_connection()
        connection.changed()
        return connector.point()

    # point computation

    def update_connector_point(self, p: QPointF | None, connector: RelativeConnector) -> QPointF:
        """Store ``p`` as the connector offset, clamped into the owner bounds."""
        if p is None or not (math.isfinite(p.x()) and math.isfinite(p.y())):
            logger.warning("cannot update %r to point %s; keeping previous point", connector, p)
            return self.clamp_connector(connector)
        r = connector.owner.bounds()
        connector.set_offset(p.x() - r.x(), p.y() - r.y())
        return self.clamp_connector(connector)

    def clamp_connector(self, connector: RelativeConnector) -> QPointF:
        """Pull the stored offset back inside the owner bounds."""
        r = connector.owner.bounds()
        connector.set_offset(
            geometry.clamp(connector.relative_x, 0.0, max(r.width(), 0.0)),
            geometry.clamp(connector.relative_y, 0.0, max(r.height(), 0.0)),
        )
        return connector.point()

    def change_connector_point(
        self, tracker, connector: RelativeConnector, from_point: QPointF, to_point: QPointF
    ) -> None:
        connection = connector.connection
        r1 = self.effective_bounds(connector.owner)
        on_left_right = geometry.on_left_right_side(connector.point(), r1)
        opposite = find_opposite_connector(connector)
        opposite_strategy = find_connector_strategy(opposite)

        to_p = self.find_connector_point(
            connector, to_point, connector.owner, connection, connector.is_start_connector()
        )
        if to_p is None:
            return
        if geometry.is_vertex_point(to_p, r1):
            to_p = geometry.make_non_vertex(to_p, r1, on_left_right, True)
        self.update_connector_point(to_p, connector)

        if (
            connection.node_count() == 2
            and opposite_strategy.is_connector_tightly_coupled()
            and not self.has_singular_connector_point()
        ):
            r2 = opposite_strategy.effective_bounds(opposite.owner)
            opposite_strategy.adjust_for_moving_opposite(tracker, [opposite])
            p = opposite.point()
            if geometry.is_vertex_point(p, r2):
                p = geometry.make_non_vertex(p, r2, on_left_right, True)
            self.update_connector_point(p, opposite)

    def find_connection_point(self, connector: RelativeConnector) -> QPointF:
        return connector.point()

    def find_connector_point(
        self, connector: RelativeConnector, p: QPointF, owner, connection, is_start: bool
    ) -> QPointF | None:
        if owner is not connector.owner or not owner.contains(p):
            return connector.point()
        return geometry.project(p, self.effective_bounds(connector.owner))

    def find_connector_point_new_connection(
        self, connector: RelativeConnector, p: QPointF, owner, opposite_owner, is_start: bool
    ) -> QPointF | None:
        if owner.contains(p):
            return QPointF(p)
        return connector.point()

    def find_transformed_connector_point(self, connector: RelativeConnector, bounds: QRectF) -> QPointF:
        r1 = self.effective_bounds(connector.owner)
        p = connector.point()
        return QPointF(
            bounds.x() + geometry.clamp(p.x() - r1.x(), 0.0, bounds.width()),
            bounds.y() + geometry.clamp(p.y() - r1.y(), 0.0, bounds.height()),
        )

    def find_connectors(
        self,
        owner,
        opposite_owner,
        strategy_name: str,
        opposite_strategy_name: str,
        include_multi: bool,
        exclude=None,
    ) -> list[RelativeConnector]:
        if not strategy_name:
            raise ValueError("a strategy name is required to find connectors")
        result = []
        for line in owner.connections():
            if line is exclude:
                continue
            if not include_multi and line.node_count() > 2:
                continue
            connector = line.start_connector
            opposite = line.end_connector
            name = line.start_strategy_name
            opposite_name = line.end_strategy_name
            if connector is None or opposite is None:
                continue
            if connector.owner is not owner:
                connector, opposite = opposite, connector
                name, opposite_name = opposite_name, name
            if name is None or opposite_name is None:
                continue
            if name != strategy_name or opposite_name != opposite_strategy_name:
                continue
            if opposite.owner is not opposite_owner:
                continue
            result.append(connector)
        return result

    def find_related_connectors(self, connector: RelativeConnector) -> list[RelativeConnector]:
        opposite = find_opposite_connector(connector)
        return self.find_connectors(
            connector.owner,
            opposite.owner,
            find_connector_strategy(connector).name,
            find_connector_strategy(opposite).name,
            False,
        )

    def find_max_min_connector_points(
        self, connectors: list[RelativeConnector]
    ) -> tuple[float, float, float, float]:
        if not connectors:
            raise ValueError("no connectors to measure")
        owner = connectors[0].owner
        r1 = self.effective_bounds(owner)
        min_x, min_y = r1.right(), r1.bottom()
        max_x, max_y = r1.x(), r1.y()
        for connector in connectors:
            if connector.owner is not owner:
                raise ValueError("connectors do not share one owner")
            p = connector.point()
            min_x = min(min_x, p.x())
            min_y = min(min_y, p.y())
            max_x = max(max_x, p.x())
            max_y = max(max_y, p.y())
        return min_x, min_y, max_x, max_y

    def modify_opposite_connection_point_multi(self, connector: RelativeConnector) -> None:
        r1 = self.effective_bounds(connector.owner)
        conn_pt = connector.point()
        connection = connector.connection
        opposite_point = find_opposite_connection_point(connector)
        if geometry.on_left_right_side(conn_pt, r1):
            new_point = QPointF(opposite_point.x(), conn_pt.y())
        else:
            new_point = QPointF(conn_pt.x(), opposite_point.y())
        index = 1 if connector.is_start_connector() else connection.node_count() - 2
        connection.will_change()
        connection.set_point(index, new_point)
        connection.changed()

    # compatibility

    def compatible_with_opposite(
        self, connector: RelativeConnector, is_start: bool, messages: list[str], change_count: int
    ) -> bool:
        connection = connector.connection
        if connection.node_count() > 2:
            return True
        opposite = connection.end_connector if is_start else connection.start_connector
        if opposite is None:
            return True
        try:
            opposite_strategy = find_connector_strategy(opposite)
        except UnknownStrategyError as exc:
            messages.append(str(exc))
            return False

        existing = self.find_connectors(
            connector.owner, opposite.owner, self.name, opposite_strategy.name, False, connection
        )
        strategy_count = change_count + len(existing)
        singular = self.has_singular_connector_point()
        tight = self.is_connector_tightly_coupled()
        opposite_singular = opposite_strategy.has_singular_connector_point()
        opposite_tight = opposite_strategy.is_connector_tightly_coupled()
        if strategy_count > 1 and (
            (singular and opposite_singular)
            or (singular and opposite_tight)
            or (tight and opposite_singular)
        ):
            messages.append(
                f"{self.name} with opposite {opposite_strategy.name}: only one such "
                f"connection allowed between the same figures ({strategy_count} requested)"
            )
            return False
        return opposite_strategy.compatible_with_new_opposite_strategy(
            self, opposite, not is_start, messages, change_count
        )

    def compatible_with_new_opposite_strategy(
        self,
        new_opposite_strategy: "ConnectorStrategy",
        connector: RelativeConnector,
        is_start: bool,
        messages: list[str],
        change_count: int,
    ) -> bool:
        return True

    def compatible_with_owner_figure(self, connector: RelativeConnector, owner, messages: list[str]) -> bool:
        return True

    def confirm_or_veto_connector(self, tracker, connector: RelativeConnector, is_start: bool) -> bool:
        messages: list[str] = []
        # the connector being confirmed is itself one more connection
        accepted = self.compatible_with_opposite(
            connector, is_start, messages, 1
        ) and self.compatible_with_owner_figure(connector, connector.owner, messages)
        if not accepted:
            tracker.report_veto(connector, messages)
        return accepted


# -- interior family ------------------------------------------------------------


class InteriorConnectorStrategy(ConnectorStrategy):
    kind = StrategyKind.INTERIOR

    def adjust_for_moving(self, tracker, connectors):
        pass

    def adjust_for_moving_opposite(self, tracker, connectors):
        pass

    def adjust_multi_for_moving(self, tracker, connectors):
        pass

    def adjust_multi_for_moving_opposite(self, tracker, connectors):
        pass

    def preserve_connection(self, tracker, connector):
        owner = connector.owner
        r1 = self.effective_bounds(owner)
        prev_bounds = tracker.prev_bounds(owner)
        prev_pt = tracker.prev_point(connector)
        p = None
        if geometry.side_of(prev_pt, prev_bounds) != Side.NONE:
            opposite = find_opposite_connector(connector)
            if opposite is not None and opposite.owner is not owner:
                hits = geometry.intersection_points(
                    self.effective_shape(owner), opposite.point(), prev_pt
                )
                p = geometry.nearest_point(prev_pt, hits)
        else:
            p = geometry.normalize_transform(prev_pt, prev_bounds, r1)
        if p is None:
            p = geometry.project(prev_pt, r1)
        self.update_connector_point(p, connector)


class CenterConnectorStrategy(InteriorConnectorStrategy):
    kind = StrategyKind.CENTER
    singular_connector_point = True

    def _center(self, owner) -> QPointF:
        return self.effective_bounds(owner).center()

    def adjust_for_resizing(self, tracker, connector):
        self.update_connector_point(self._center(connector.owner), connector)

    def preserve_connection(self, tracker, connector):
        self.update_connector_point(self._center(connector.owner), connector)

    def drag_connector(self, tracker, connector, from_point, to_point, modifiers=Qt.KeyboardModifier.NoModifier):
        return connector.point()

    def find_connector_point(self, connector, p, owner, connection, is_start):
        return self._center(owner)

    def find_connector_point_new_connection(self, connector, p, owner, opposite_owner, is_start):
        return self._center(owner)

    def find_transformed_connector_point(self, connector, bounds):
        return QRectF(bounds).center()


# -- boundary family ------------------------------------------------------------


class BoundaryConnectorStrategy(ConnectorStrategy):
    """Keeps the connector on the effective outline of its owner."""

    def adjust_multi_for_moving(self, tracker, connectors):
        for connector in connectors:
            self.modify_opposite_connection_point_multi(connector)

    def adjust_multi_for_moving_opposite(self, tracker, connectors):
        pass

    def calculate_bounds_point(self, connector: RelativeConnector) -> QPointF:
        r1 = self.effective_bounds(connector.owner)
        p = connector.point()
        if geometry.on_left_right_side(p, r1) or geometry.on_top_bottom_side(p, r1):
            return p
        rect = Outline.rectangle(r1)
        opposite_point = find_opposite_connection_point(connector)
        p2 = geometry.boundary_point(rect, opposite_point, p, opposite_point)
        if p2 is None:
            p2 = geometry.boundary_point_thru_center(rect, p)
        return p2 if p2 is not None else p

    def change_connector_point(self, tracker, connector, from_point, to_point):
        original_side = self.find_sides(connector)
        super().change_connector_point(tracker, connector, from_point, to_point)
        connection = connector.connection
        if connection.node_count() > 2:
            r1 = self.effective_bounds(connector.owner)
            code = geometry.point_outcode(r1, find_opposite_connection_point(connector))
            if code == original_side and code == self.find_sides(connector):
                self.modify_opposite_connection_point_multi(connector)

    def check_for_vertex_connector(self, connectors: list[RelativeConnector]) -> bool:
        for connector in connectors:
            if geometry.is_vertex_point(connector.point(), self.effective_bounds(connector.owner)):
                return True
        return False

    def find_connection_point(self, connector):
        owner = connector.owner
        p = connector.point()
        outline = owner.connectible_outline()
        if self.bounds_mode and outline.kind != ShapeKind.RECTANGLE:
            hit = geometry.boundary_point_thru_bounds_point(
                outline, p, self.on_left_right_side(connector)
            )
            if hit is not None:
                p = hit
        return p

    def find_connector_point(self, connector, p, owner, connection, is_start):
        result = super().find_connector_point(connector, p, owner, connection, is_start)
        opposite = connection.end_connector if is_start else connection.start_connector
        if opposite is None or opposite.owner is None or connector.owner is opposite.owner:
            return result
        opposite_point = opposite.point()
        shape = self.effective_shape(owner)
        r1 = self.effective_bounds(owner)
        if connection.node_count() == 2:
            result = geometry.boundary_point(shape, opposite_point, p, opposite_point)
        elif result is not None:
            result = geometry.boundary_point_thru_center(shape, result)
        if result is None:
            result = geometry.boundary_point_thru_center(shape, geometry.project(p, r1))
        if result is None:
            return connector.point()
        if geometry.is_vertex_point(result, r1):
            on_left_right = geometry.on_left_right_side(connector.point(), r1)
            result = geometry.make_non_vertex(result, r1, on_left_right, True)
        return result

    def find_connector_point_new_connection(self, connector, p, owner, opposite_owner, is_start):
        result = super().find_connector_point_new_connection(connector, p, owner, opposite_owner, is_start)
        connection = connector.connection
        shape = self.effective_shape(owner)
        r1 = self.effective_bounds(owner)
        if is_start or owner is opposite_owner:
            end_point = connection.end_point()
            hit = geometry.boundary_point(shape, result, end_point, end_point)
            return hit if hit is not None else result

        opposite = find_opposite_connector(connector)
        result = geometry.project(opposite.point(), r1)
        if self.effective_shape_kind(owner) != ShapeKind.RECTANGLE:
            result = geometry.boundary_point(shape, result, p, result)
        if result is None:
            result = geometry.boundary_point_thru_center(shape, geometry.project(p, r1))
        return result

    def find_sides(self, connector: RelativeConnector) -> Side:
        p = connector.point()
        if self.effective_shape_kind(connector.owner) != ShapeKind.RECTANGLE:
            p = self.calculate_bounds_point(connector)
        return geometry.side_of(p, self.effective_bounds(connector.owner))

    def _side_point(self, connector: RelativeConnector) -> tuple[QPointF, QRectF]:
        r1 = self.effective_bounds(connector.owner)
        p = connector.point()
        if self.effective_shape_kind(connector.owner) != ShapeKind.RECTANGLE:
            p = self.calculate_bounds_point(connector)
        return p, r1

    def on_left_side(self, connector: RelativeConnector) -> bool:
        return geometry.on_left_side(*self._side_point(connector))

    def on_right_side(self, connector: RelativeConnector) -> bool:
        return geometry.on_right_side(*self._side_point(connector))

    def on_top_side(self, connector: RelativeConnector) -> bool:
        return geometry.on_top_side(*self._side_point(connector))

    def on_bottom_side(self, connector: RelativeConnector) -> bool:
        return geometry.on_bottom_side(*self._side_point(connector))

    def on_left_right_side(self, connector: RelativeConnector) -> bool:
        return geometry.on_left_right_side(*self._side_point(connector))

    def on_top_bottom_side(self, connector: RelativeConnector) -> bool:
        return geometry.on_top_bottom_side(*self._side_point(connector))

    def preserve_connection(self, tracker, connector):
        owner = connector.owner
        connection = connector.connection
        shape = self.effective_shape(owner)
        r1 = self.effective_bounds(owner)
        if connection.start_figure is connection.end_figure:
            p = QPointF(
                geometry.clamp(r1.x() + connector.relative_x, r1.x(), r1.right()),
                geometry.clamp(r1.y() + connector.relative_y, r1.y(), r1.bottom()),
            )
            self.update_connector_point(geometry.boundary_point_thru_center(shape, p), connector)
            return

        prev_pt = tracker.prev_point(connector)
        opposite_point = find_opposite_connector(connector).point()
        hits = geometry.intersection_points(shape, opposite_point, prev_pt)
        if hits:
            p = geometry.nearest_point(opposite_point, hits)
        else:
            p = geometry.boundary_point_thru_center(shape, connector.point())
        self.update_connector_point(p, connector)

    def project(self, connector: RelativeConnector) -> QPointF:
        """``connector``'s point projected onto its opposite owner."""
        opposite = find_opposite_connector(connector)
        opposite_strategy = find_connector_strategy(opposite)
        r2 = opposite_strategy.effective_bounds(opposite.owner)
        p2 = geometry.project(connector.point(), r2)
        if opposite_strategy.effective_shape_kind(opposite.owner) != ShapeKind.RECTANGLE:
            hit = geometry.boundary_point_thru_bounds_point(
                opposite_strategy.effective_shape(opposite.owner),
                p2,
                self.on_left_right_side(connector),
            )
            if hit is not None:
                p2 = hit
        return p2

    def _rotate_owner_point(self, owner, r1: QRectF, p: QPointF, angle: float) -> QPointF:
        kind = self.effective_shape_kind(owner)
        if kind == ShapeKind.ELLIPSE:
            return geometry.rotate_normalized_ellipse_point(angle, r1, p)
        p1 = geometry.rotate_normalized_rect_point(angle, r1, p)
        if kind != ShapeKind.RECTANGLE:
            hit = geometry.boundary_point_thru_center(self.effective_shape(owner), p1)
            if hit is not None:
                p1 = hit
        return p1

    def rotate_normalized_point(
        self, connector: RelativeConnector, angle: float, rotation_rect: QRectF | None = None
    ) -> QPointF:
        owner = connector.owner
        r1 = self.effective_bounds(owner)
        if rotation_rect is None or self.effective_shape_kind(owner) != ShapeKind.RECTANGLE:
            rotation_rect = r1
        rotated = self._rotate_owner_point(owner, rotation_rect, connector.point(), angle)
        if geometry.is_vertex_point(rotated, rotation_rect):
            rotated = geometry.make_non_vertex(
                rotated, rotation_rect, self.on_left_right_side(connector), False
            )
        return rotated


class FixedBoundaryConnectorStrategy(BoundaryConnectorStrategy):
    """Stays where it was put; only an explicit drag moves it."""

    kind = StrategyKind.FIXED

    def adjust_for_moving(self, tracker, connectors):
        pass

    def adjust_for_moving_opposite(self, tracker, connectors):
        pass

    def adjust_multi_for_moving(self, tracker, connectors):
        pass

    def adjust_multi_for_moving_opposite(self, tracker, connectors):
        pass

    def adjust_for_resizing(self, tracker, connector):
        # a shrinking owner must still contain the point
        self.clamp_connector(connector)

    def preserve_connection(self, tracker, connector):
        self.adjust_for_resizing(tracker, connector)

    def slide_connector(self, tracker, connector):
        pass

    def touch_connector(self, tracker, connector):
        return connector.point()


class RotationalConnectorStrategy(BoundaryConnectorStrategy):
    """Turns both ends with the centre line so they keep facing each other."""

    kind = StrategyKind.ROTATIONAL

    def _rotate_group(self, tracker, connectors):
        first = connectors[0]
        opposite = find_opposite_connector(first)
        angle = tracker.angle_delta(first.owner, opposite.owner)
        if abs(angle) < geometry.EPSILON:
            return
        for connector in connectors:
            self.update_connector_point(self.rotate_normalized_point(connector, angle), connector)

    def adjust_for_moving(self, tracker, connectors):
        self._rotate_group(tracker, connectors)

    def adjust_for_moving_opposite(self, tracker, connectors):
        self._rotate_group(tracker, connectors)


class ChopConnectorStrategy(BoundaryConnectorStrategy):
    kind = StrategyKind.CHOP
    singular_connector_point = True

    def _chop(self, connector: RelativeConnector, owner=None, opposite_owner=None) -> QPointF | None:
        owner = owner if owner is not None else connector.owner
        opposite = find_opposite_connector(connector)
        if opposite is not None and opposite.owner is not None:
            opposite_shape = find_connector_strategy(opposite).effective_shape(opposite.owner)
        elif opposite_owner is not None:
            opposite_shape = self.effective_shape(opposite_owner)
        else:
            return None
        return geometry.chop_point(self.effective_shape(owner), opposite_shape)

    def _chop_all(self, connectors):
        for connector in connectors:
            self.update_connector_point(self._chop(connector), connector)

    def adjust_for_resizing(self, tracker, connector):
        opposite = find_opposite_connector(connector)
        opposite_strategy = find_connector_strategy(opposite)
        p = geometry.chop_point(
            self.effective_shape(connector.owner), opposite_strategy.effective_shape(opposite.owner)
        )
        p1 = geometry.chop_point(
            opposite_strategy.effective_shape(opposite.owner), self.effective_shape(connector.owner)
        )
        self.update_connector_point(p, connector)
        self.update_connector_point(p1, opposite)

    def adjust_for_moving(self, tracker, connectors):
        self._chop_all(connectors)

    def adjust_for_moving_opposite(self, tracker, connectors):
        self._chop_all(connectors)

    def adjust_multi_for_moving(self, tracker, connectors):
        for connector in connectors:
            self.update_connector_point(self._chop(connector), connector)
            self.modify_opposite_connection_point_multi(connector)

    def adjust_multi_for_moving_opposite(self, tracker, connectors):
        self._chop_all(connectors)

    def drag_connector(self, tracker, connector, from_point, to_point, modifiers=Qt.KeyboardModifier.NoModifier):
        return connector.point()

    def find_connector_point(self, connector, p, owner, connection, is_start):
        chop = self._chop(connector, owner)
        return chop if chop is not None else connector.point()

    def find_connector_point_new_connection(self, connector, p, owner, opposite_owner, is_start):
        chop = self._chop(connector, owner, opposite_owner)
        if chop is None:
            return super().find_connector_point_new_connection(
                connector, p, owner, opposite_owner, is_start
            )
        return chop

    def find_transformed_connector_point(self, connector, bounds):
        opposite = find_opposite_connector(connector)
        opposite_shape = find_connector_strategy(opposite).effective_shape(opposite.owner)
        chop = geometry.chop_point(Outline.rectangle(bounds), opposite_shape)
        return chop if chop is not None else super().find_transformed_connector_point(connector, bounds)

    def slide_connector(self, tracker, connector):
        self.update_connector_point(self._chop(connector), connector)


class EdgeConnectorStrategy(BoundaryConnectorStrategy):
    """Boundary strategy in bounds mode that turns with the owner's side."""

    kind = StrategyKind.EDGE
    bounds_mode = True

    def _rotate_for_side(self, connectors):
        if self.effective_shape_kind(connectors[0].owner) == ShapeKind.RECTANGLE:
            angle = self.check_rotation_angle_for_side(connectors)
            if abs(angle) > 0:
                self.rotate_normalized_all_connections(connectors, angle)

    def adjust_for_moving(self, tracker, connectors):
        self._rotate_for_side(connectors)

    def adjust_for_moving_opposite(self, tracker, connectors):
        self._rotate_for_side(connectors)

    def adjust_multi_for_moving(self, tracker, connectors):
        super().adjust_multi_for_moving(tracker, connectors)
        for connector in connectors:
            self._align_connector_side(connector)

    def adjust_multi_for_moving_opposite(self, tracker, connectors):
        super().adjust_multi_for_moving_opposite(tracker, connectors)
        for connector in connectors:
            self._align_connector_side(connector)

    def _align_connector_side(self, connector: RelativeConnector) -> None:
        opposite_point = find_opposite_connection_point(connector)
        r1 = self.effective_bounds(connector.owner)
        p = connector.point()
        side = geometry.side_of(p, r1)
        if side == Side.NONE:
            return
        if geometry.point_outcode(r1, opposite_point) == geometry.opposite_side(side):
            if geometry.is_left_right(side):
                p = geometry.reflect_x(p, r1)
            else:
                p = geometry.reflect_y(p, r1)
            self.update_connector_point(p, connector)

    def build_minimum_sub_rectangle(
        self, connector: RelativeConnector, max_min: tuple[float, float, float, float]
    ) -> QRectF:
        r1 = self.effective_bounds(connector.owner)
        if self.effective_shape_kind(connector.owner) != ShapeKind.RECTANGLE:
            return r1
        conn_pt = connector.point()
        opposite = find_opposite_connector(connector)
        opposite_strategy = find_connector_strategy(opposite)
        if opposite_strategy.effective_shape_kind(opposite.owner) != ShapeKind.RECTANGLE:
            return r1
        r2 = opposite_strategy.effective_bounds(opposite.owner)
        eps = geometry.EPSILON
        if abs(r1.width() - r2.width()) < eps and abs(r1.height() - r2.height()) < eps:
            return r1
        w = min(r1.width(), r2.width())
        h = min(r1.height(), r2.height())
        if abs(r1.width() - w) < eps and abs(r1.height() - h) < eps:
            return r1
        min_x, min_y, max_x, max_y = max_min
        if max_x - min_x > w or max_y - min_y > h:
            return r1

        x = r1.right() - w if geometry.on_right_side(conn_pt, r1) else r1.x()
        y = r1.bottom() - h if geometry.on_bottom_side(conn_pt, r1) else r1.y()
        if geometry.on_left_right_side(conn_pt, r1) and r1.height() > h:
            y = min_y + (max_y - min_y) / 2.0 - h / 2.0
            if y < r1.y():
                y = min_y - geometry.VERTEX_EPSILON
            if y + h > r1.bottom():
                y -= y + h - r1.bottom()
        if geometry.on_top_bottom_side(conn_pt, r1) and r1.width() > w:
            x = min_x + (max_x - min_x) / 2.0 - w / 2.0
            if x < r1.x():
                x = min_x - geometry.VERTEX_EPSILON
            if x + w > r1.right():
                x -= x + w - r1.right()
        return QRectF(x, y, w, h)

    def change_connector_point(self, tracker, connector, from_point, to_point):
        super().change_connector_point(tracker, connector, from_point, to_point)
        if connector.connection.node_count() > 2:
            self._align_connector_side(connector)

    def check_rotation_angle_for_side(self, connectors: list[RelativeConnector]) -> float:
        first = connectors[0]
        connected_side = self.find_connected_side(connectors)
        r1 = self.effective_bounds(first.owner)
        r2 = find_opposite_bounds(first)
        return geometry.rotation_angle_for_side(connected_side, r1, r2)

    def find_connected_side(self, connectors: list[RelativeConnector]) -> Side:
        opposite_non_vertex = None
        for connector in connectors:
            if not geometry.is_vertex_point(connector.point(), self.effective_bounds(connector.owner)):
                return self.find_sides(connector)
            if opposite_non_vertex is None:
                opposite = find_opposite_connector(connector)
                opposite_strategy = find_connector_strategy(opposite)
                if not geometry.is_vertex_point(
                    opposite.point(), opposite_strategy.effective_bounds(opposite.owner)
                ):
                    opposite_non_vertex = opposite
        if opposite_non_vertex is not None:
            strategy = find_connector_strategy(opposite_non_vertex)
            if isinstance(strategy, BoundaryConnectorStrategy):
                sides = strategy.find_sides(opposite_non_vertex)
            else:
                sides = geometry.side_of(
                    opposite_non_vertex.point(), strategy.effective_bounds(opposite_non_vertex.owner)
                )
            return geometry.opposite_side(sides)

        first = connectors[0]
        r1 = self.effective_bounds(first.owner)
        connected_side = geometry.chop_side(r1, find_opposite_bounds(first))
        if geometry.is_vertex_side(connected_side):
            connected_side = connected_side & (Side.LEFT | Side.RIGHT)
        return Side(connected_side)

    def find_connected_side_of(self, connector: RelativeConnector) -> Side:
        connected_side = self.find_sides(connector)
        if geometry.is_vertex_side(connected_side):
            related = self.find_related_connectors(connector) or [connector]
            connected_side = self.find_connected_side(related)
        return connected_side

    def find_connector_point(self, connector, p, owner, connection, is_start):
        opposite = connection.end_connector if is_start else connection.start_connector
        if opposite is None or opposite.owner is None or connector.owner is opposite.owner:
            return QPointF(p)
        opposite_strategy = find_connector_strategy(opposite)
        result = super().find_connector_point(connector, p, owner, connection, is_start)
        if result is None:
            return None
        kind = self.effective_shape_kind(connector.owner)
        opposite_kind = opposite_strategy.effective_shape_kind(opposite.owner)
        r1 = self.effective_bounds(connector.owner)
        on_left_right = geometry.on_left_right_side(connector.point(), r1)

        if connection.node_count() > 2:
            result = geometry.project(result, r1)
        if (
            connection.node_count() > 2
            or type(self) is not type(opposite_strategy)
            or kind != ShapeKind.RECTANGLE
            or opposite_kind != ShapeKind.RECTANGLE
        ):
            if geometry.is_vertex_point(result, r1):
                result = geometry.make_non_vertex(result, r1, on_left_right, True)
            return result

        x = geometry.clamp(result.x(), r1.x(), r1.right())
        y = geometry.clamp(result.y(), r1.y(), r1.bottom())
        if self.on_left_right_side(connector) and self.on_left_right_side(opposite):
            x = r1.x() if self.on_left_side(connector) else r1.right()
        elif self.on_top_bottom_side(connector) and self.on_top_bottom_side(opposite):
            y = r1.y() if self.on_top_side(connector) else r1.bottom()
        result = QPointF(x, y)
        if geometry.is_vertex_point(result, r1):
            result = geometry.make_non_vertex(result, r1, on_left_right, True)
        return result

    def find_connector_point_new_connection(self, connector, p, owner, opposite_owner, is_start):
        pt = super().find_connector_point_new_connection(connector, p, owner, opposite_owner, is_start)
        if is_start or owner is opposite_owner:
            return pt
        opposite = find_opposite_connector(connector)
        if opposite is None or opposite.owner is None:
            return None
        return self.project(opposite)

    def find_transformed_connector_point(self, connector, bounds):
        connected_side = self.find_connected_side_of(connector)
        r2 = find_opposite_bounds(connector)
        left_right = geometry.is_left_right(geometry.chop_side(bounds, r2))
        preferred = geometry.preferred_connecting_side(bounds, r2, left_right)
        angle = geometry.rotation_angle_for_sides(preferred, connected_side)
        p1 = self.rotate_normalized_point(connector, angle)
        r1 = self.effective_bounds(connector.owner)
        return QPointF(
            bounds.x() + geometry.clamp(p1.x() - r1.x(), 0.0, bounds.width()),
            bounds.y() + geometry.clamp(p1.y() - r1.y(), 0.0, bounds.height()),
        )

    def map_sub_rectangle(self, p: QPointF, sub_rect: QRectF, parent_rect: QRectF) -> QPointF:
        if parent_rect == sub_rect:
            return QPointF(p)
        x = p.x()
        y = p.y()
        if geometry.on_left_right_side(p, sub_rect):
            y += parent_rect.center().y() - sub_rect.center().y()
            x = parent_rect.x() if geometry.on_left_side(p, sub_rect) else parent_rect.right()
        else:
            x += parent_rect.center().x() - sub_rect.center().x()
            y = parent_rect.y() if geometry.on_top_side(p, sub_rect) else parent_rect.bottom()
        return QPointF(x, y)

    def rotate_normalized_all_connections(self, connectors: list[RelativeConnector], angle: float) -> None:
        first = connectors[0]
        r1 = self.effective_bounds(first.owner)
        if self.effective_shape_kind(first.owner) != ShapeKind.RECTANGLE:
            for connector in connectors:
                self.update_connector_point(self.rotate_normalized_point(connector, angle), connector)
            return
        minimum_rect = r1
        if len(connectors) > 1:
            minimum_rect = self.build_minimum_sub_rectangle(
                first, self.find_max_min_connector_points(connectors)
            )
        for connector in connectors:
            rotated = self.rotate_normalized_point(connector, angle, minimum_rect)
            if len(connectors) > 1:
                rotated = self.map_sub_rectangle(rotated, minimum_rect, r1)
            self.update_connector_point(rotated, connector)


class RectilinearConnectorStrategy(EdgeConnectorStrategy):
    """Tightly coupled edge strategy that keeps straight lines square.

    The stationary end is always the projection of the moving end. When an
    owner is dragged past its opposite, the connectors land on corners and
    the group is reversed onto the facing sides.
    """

    kind = StrategyKind.RECTILINEAR
    tightly_coupled = True

    def adjust_for_moving(self, tracker, connectors):
        if self.check_for_vertex_connector(connectors):
            self.reverse(tracker, connectors)
        angle = self.check_rotation_angle_for_side(connectors)
        if abs(angle) > 0:
            self.rotate_normalized_all_connections(connectors, angle)

    def adjust_for_moving_opposite(self, tracker, connectors):
        for connector in connectors:
            self.update_connector_point(self.project(find_opposite_connector(connector)), connector)

    def compatible_with_opposite(self, connector, is_start, messages, change_count):
        if connector.connection.liner == CURVED_LINER:
            messages.append(f"{self.name} incompatible with CurvedLiner")
            return False
        return super().compatible_with_opposite(connector, is_start, messages, change_count)

    def _opposites(self, connectors):
        return [find_opposite_connector(connector) for connector in connectors]

    def reverse(self, tracker, connectors: list[RelativeConnector]) -> None:
        opposite_strategy = find_connector_strategy(find_opposite_connector(connectors[0]))
        if opposite_strategy.name != self.name:
            self.reverse_preferred(connectors)
        else:
            self.reverse_project(tracker, connectors)

    def reverse_preferred(self, connectors: list[RelativeConnector]) -> None:
        first = connectors[0]
        r1 = self.effective_bounds(first.owner)
        opposite_strategy = find_connector_strategy(find_opposite_connector(first))
        r2 = find_opposite_bounds(first)
        r22 = geometry.preferred_position(r2, r1, True)
        for opposite in self._opposites(connectors):
            p22 = opposite_strategy.find_transformed_connector_point(opposite, r22)
            self.update_connector_point(
                geometry.project(p22, r1), find_opposite_connector(opposite)
            )

    def reverse_project(self, tracker, connectors: list[RelativeConnector]) -> None:
        first = connectors[0]
        if self.effective_shape_kind(first.owner) != ShapeKind.RECTANGLE:
            return
        r1 = self.effective_bounds(first.owner)
        opposite = find_opposite_connector(first)
        opposite_strategy = find_connector_strategy(opposite)
        r2 = opposite_strategy.effective_bounds(opposite.owner)
        opposite_shape = opposite_strategy.effective_shape(opposite.owner)
        opposite_kind = opposite_strategy.effective_shape_kind(opposite.owner)
        opposites = self._opposites(connectors)

        r22 = r2
        r11 = r1
        if len(connectors) > 1:
            opposite = opposites[0]
            r22 = self.build_minimum_sub_rectangle(
                opposite, self.find_max_min_connector_points(opposites)
            )
            r11 = QRectF(r1.x(), r1.y(), min(r1.width(), r22.width()), min(r1.height(), r22.height()))
            if geometry.on_left_side(opposite.point(), r2):
                r11.moveLeft(r1.right() - r11.width())
            if geometry.on_top_side(opposite.point(), r2):
                r11.moveTop(r1.bottom() - r11.height())

        for connector, connector_opposite in zip(connectors, opposites):
            original = connector.point()
            conn_pt = geometry.normalize_transform(
                geometry.reflect(connector_opposite.point(), r22), r22, r11
            )
            conn_pt = self.map_sub_rectangle(conn_pt, r11, r1)
            if geometry.is_vertex_point(conn_pt, r1):
                conn_pt = geometry.make_non_vertex(
                    conn_pt, r1, geometry.on_left_right_side(original, r1), True
                )
            self.update_connector_point(conn_pt, connector)

            p = geometry.reflect(geometry.normalize_transform(original, r1, r2), r2)
            if opposite_kind != ShapeKind.RECTANGLE:
                hit = geometry.boundary_point_thru_bounds_point(
                    opposite_shape, p, self.on_left_right_side(connector_opposite)
                )
                if hit is not None:
                    p = hit
            self.update_connector_point(p, connector_opposite)


class ExperimentalConnectorStrategy(RectilinearConnectorStrategy):
    """Rectilinear variant that always reverses by preferred position."""

    kind = StrategyKind.EXPERIMENTAL

    def reverse(self, tracker, connectors):
        self.reverse_preferred(connectors)

    def _accepts(self, other: ConnectorStrategy, messages: list[str]) -> bool:
        if other.kind in (StrategyKind.EXPERIMENTAL, StrategyKind.FIXED):
            return True
        messages.append(
            f"{self.name} is only compatible with itself or "
            f"{StrategyKind.FIXED.value}, not {other.name}"
        )
        return False

    def compatible_with_opposite(self, connector, is_start, messages, change_count):
        connection = connector.connection
        opposite = connection.end_connector if is_start else connection.start_connector
        if opposite is not None and connection.node_count() == 2:
            try:
                opposite_strategy = find_connector_strategy(opposite)
            except UnknownStrategyError as exc:
                messages.append(str(exc))
                return False
            if not self._accepts(opposite_strategy, messages):
                return False
        return super().compatible_with_opposite(connector, is_start, messages, change_count)

    def compatible_with_new_opposite_strategy(
        self, new_opposite_strategy, connector, is_start, messages, change_count
    ):
        return self._accepts(new_opposite_strategy, messages)


# -- registry -------------------------------------------------------------------


STRATEGIES = MappingProxyType(
    {
        strategy.name: strategy
        for strategy in (
            FixedBoundaryConnectorStrategy(),
            InteriorConnectorStrategy(),
            EdgeConnectorStrategy(),
            RectilinearConnectorStrategy(),
            RotationalConnectorStrategy(),
            ChopConnectorStrategy(),
            CenterConnectorStrategy(),
            ExperimentalConnectorStrategy(),
        )
    }
)


def find_strategy(name: str | None) -> ConnectorStrategy:
    if name is None:
        raise UnknownStrategyError(None)
    try:
        return STRATEGIES[name]
    except KeyError:
        raise UnknownStrategyError(name) from None


def strategy_names() -> list[str]:
    return [kind.value for kind in StrategyKind]
