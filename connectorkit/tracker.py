from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging

from PyQt6.QtCore import QPointF, QRectF, Qt

from . import geometry
from .commands import DragConnectionCommand
from .connection import LineConnection
from .connector import ConnectorEnd, PendingConnector, RelativeConnector
from .strategies import (
    STRATEGIES,
    BoundaryConnectorStrategy,
    StrategyKind,
    UnknownStrategyError,
    find_connector_strategy,
    find_opposite_connection_point,
    find_opposite_connector,
    find_strategy,
)

logger = logging.getLogger(__name__)


class Track(Enum):
    START = 1
    STEP = 2
    END = 3


class TrackerSessionError(RuntimeError):
    pass


@dataclass
class TrackerSession:
    """State of one gesture, from ``begin`` to ``end``."""

    dragging: bool
    figures: list = field(default_factory=list)
    prev_bounds: dict = field(default_factory=dict)
    cached_connectors: list[RelativeConnector] = field(default_factory=list)
    cached_connection: LineConnection | None = None
    dragged_line_segment: int = -1
    pending_start: PendingConnector = field(default_factory=lambda: PendingConnector(ConnectorEnd.START))
    pending_end: PendingConnector = field(default_factory=lambda: PendingConnector(ConnectorEnd.END))

    def snapshot_bounds(self) -> None:
        self.prev_bounds = {figure: QRectF(figure.bounds()) for figure in self.figures}


def _is_sliding(modifiers) -> bool:
    if modifiers is None:
        return False
    return bool(modifiers & Qt.KeyboardModifier.AltModifier)


class ConnectorSubTracker:
    """Drives connector strategies through move, resize, drag and create gestures."""

    def __init__(self, view=None, undo_stack=None) -> None:
        self.view = view
        self.undo_stack = undo_stack
        self.session: TrackerSession | None = None
        self.veto_messages: list[str] = []

    # -- session protocol ---------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.session is not None

    def begin(self, selection, dragging: bool) -> TrackerSession:
        if self.session is not None:
            raise TrackerSessionError("a connector session is already active")
        selection = list(selection)
        session = TrackerSession(dragging=dragging)
        for figure in selection:
            for part in figure.decomposition():
                if part not in session.figures:
                    session.figures.append(part)
        session.snapshot_bounds()

        if len(selection) == 1:
            selected = selection[0]
            if isinstance(selected, LineConnection):
                end_connector = selected.end_connector
                if dragging and end_connector is not None and not end_connector.is_pending:
                    session.cached_connection = selected.clone()
            elif not dragging:
                for connection in selected.connections():
                    connector = connection.start_connector
                    if connector is None or connector.owner is not selected:
                        connector = connection.end_connector
                    if connector is not None:
                        session.cached_connectors.append(connector.clone())
        self.session = session
        self.veto_messages = []
        logger.debug("began connector session over %d figures", len(session.figures))
        return session

    def end(self) -> None:
        self.session = None

    def discard(self) -> None:
        if self.session is not None:
            logger.debug("discarded connector session")
        self.session = None

    def _require_session(self) -> TrackerSession:
        if self.session is None:
            raise TrackerSessionError("no connector session is active")
        return self.session

    def _view_selection(self) -> list:
        if self.view is None:
            return []
        return list(self.view.selected_figures())

    # -- session queries ----------------------------------------------------

    def prev_bounds(self, figure) -> QRectF:
        if self.session is not None:
            r = self.session.prev_bounds.get(figure)
            if r is not None:
                return QRectF(r)
        return figure.bounds()

    def prev_point(self, connector: RelativeConnector) -> QPointF:
        r = self.prev_bounds(connector.owner)
        return QPointF(r.x() + connector.relative_x, r.y() + connector.relative_y)

    def angle_delta(self, owner, opposite_owner) -> float:
        return geometry.angle_delta(
            owner.bounds(), self.prev_bounds(owner), opposite_owner.bounds(), self.prev_bounds(opposite_owner)
        )

    def prior_connectors(self) -> list[RelativeConnector]:
        if self.session is None:
            return []
        return list(self.session.cached_connectors)

    def prior_connection(self) -> LineConnection | None:
        if self.session is None:
            return None
        return self.session.cached_connection

    def report_veto(self, connector: RelativeConnector, messages: list[str]) -> None:
        self.veto_messages = list(messages)
        owner_id = getattr(connector.owner, "id", None)
        logger.warning("connector on %s vetoed: %s", owner_id, "; ".join(messages) or "no reason given")

    # -- moving -------------------------------------------------------------

    def adjust_connectors_for_moving(self, figures, tracking: Track, modifiers=Qt.KeyboardModifier.NoModifier) -> None:
        if tracking is Track.START:
            self.begin(figures, False)
        elif tracking is Track.STEP:
            session = self._require_session()
            for figure in session.figures:
                self._adjust_selected_figure(figure, modifiers)
            session.snapshot_bounds()
        else:
            self.end()

    def adjust_connectors_for_moving_view(
        self,
        tracking: Track,
        from_point: QPointF | None = None,
        to_point: QPointF | None = None,
        modifiers=Qt.KeyboardModifier.NoModifier,
    ) -> None:
        selected = self._view_selection()
        dragged_line = None
        if len(selected) == 1 and from_point is not None and to_point is not None:
            if isinstance(selected[0], LineConnection):
                dragged_line = selected[0]

        if tracking is Track.START:
            dragging = not _is_sliding(modifiers) and from_point is not None and to_point is not None
            session = self.begin(selected, dragging)
            if dragged_line is not None and dragged_line.node_count() > 2:
                segment = dragged_line.find_segment(to_point)
                if segment in (0, dragged_line.node_count() - 2):
                    session.dragged_line_segment = segment
        elif tracking is Track.STEP:
            session = self._require_session()
            if dragged_line is None:
                self.adjust_connectors_for_moving(selected, Track.STEP, modifiers)
            elif session.dragged_line_segment != -1:
                self.drag_line_segment(dragged_line, session.dragged_line_segment, from_point, to_point)
            else:
                self.drag_connection(dragged_line, from_point, to_point, modifiers)
        else:
            if dragged_line is not None and self.session is not None:
                self._record_connection_edit(dragged_line)
            self.end()

    def _adjust_selected_figure(self, figure, modifiers) -> None:
        buckets: dict[tuple, list[RelativeConnector]] = {}
        parts = figure.decomposition()
        for connection in figure.connections():
            if not self.include_connection(connection):
                logger.debug("skipping connection %s", connection.id)
                continue
            connector = connection.start_connector
            if connector.owner not in parts:
                connector = connection.end_connector
            opposite = find_opposite_connector(connector)
            try:
                strategy = find_connector_strategy(connector)
                opposite_strategy = find_connector_strategy(opposite)
            except UnknownStrategyError as exc:
                logger.warning("skipping connection %s: %s", connection.id, exc)
                continue

            if _is_sliding(modifiers):
                strategy.slide_connector(self, connector)
                connection.update_connection()
                continue

            owner = connector.owner
            opposite_owner = opposite.owner
            delta = self.angle_delta(owner, opposite_owner)
            if abs(delta) < geometry.EPSILON and connection.node_count() == 2:
                continue
            key = (strategy.name, opposite_strategy.name, id(owner), id(opposite_owner))
            bucket = buckets.setdefault(key, [])
            if connector not in bucket:
                bucket.append(connector)
        if buckets:
            self._adjust_buckets(buckets)

    def _adjust_buckets(self, buckets: dict[tuple, list[RelativeConnector]]) -> None:
        to_update: list[LineConnection] = []
        for (name, opposite_name, _, _), connectors in buckets.items():
            strategy = STRATEGIES[name]
            opposite_strategy = STRATEGIES[opposite_name]
            direct, direct_opposite, multi, multi_opposite = [], [], [], []
            for connector in connectors:
                connection = connector.connection
                if connection not in to_update:
                    to_update.append(connection)
                if connection.node_count() <= 2:
                    direct.append(connector)
                    direct_opposite.append(find_opposite_connector(connector))
                else:
                    multi.append(connector)
                    multi_opposite.append(find_opposite_connector(connector))
            logger.debug(
                "adjusting %s/%s: %d direct, %d multi", name, opposite_name, len(direct), len(multi)
            )
            if direct:
                strategy.adjust_for_moving(self, direct)
                opposite_strategy.adjust_for_moving_opposite(self, direct_opposite)
            if multi:
                strategy.adjust_multi_for_moving(self, multi)
                opposite_strategy.adjust_multi_for_moving_opposite(self, multi_opposite)
        for connection in to_update:
            connection.update_connection()

    # -- resizing -----------------------------------------------------------

    def adjust_connectors_for_resizing(self, figures, tracking: Track) -> None:
        if tracking is Track.START:
            self.begin(figures, False)
        elif tracking is Track.STEP:
            session = self._require_session()
            self._adjust_resized_figures(session.figures)
            session.snapshot_bounds()
        else:
            self.end()

    def adjust_connectors_for_resizing_view(self, tracking: Track) -> None:
        if tracking is Track.START:
            self.begin(self._view_selection(), False)
        else:
            self.adjust_connectors_for_resizing(self._view_selection(), tracking)

    def _adjust_resized_figures(self, figures) -> None:
        connectors: list[RelativeConnector] = []
        for figure in figures:
            for connection in figure.connections():
                if connection.is_self_connection() and connection.start_strategy_name and connection.end_strategy_name:
                    candidates = [connection.start_connector, connection.end_connector]
                elif self.include_connection(connection):
                    start = connection.start_connector
                    candidates = [start if start.owner is figure else connection.end_connector]
                else:
                    continue
                for connector in candidates:
                    if connector not in connectors:
                        connectors.append(connector)
        for connector in connectors:
            try:
                strategy = find_connector_strategy(connector)
            except UnknownStrategyError as exc:
                logger.warning("not resizing connector on %s: %s", getattr(connector.owner, "id", None), exc)
                continue
            strategy.adjust_for_resizing(self, connector)
            connector.connection.update_connection()

    # -- dragging -----------------------------------------------------------

    def drag_connection(
        self,
        connection: LineConnection,
        from_point: QPointF | None,
        to_point: QPointF | None,
        modifiers=Qt.KeyboardModifier.NoModifier,
    ) -> bool:
        """Slide both ends of a direct connection by the drag delta."""
        if from_point is None or to_point is None or connection.node_count() != 2:
            return False
        start = connection.start_connector
        end = connection.end_connector
        if start is None or end is None or start.owner is None or end.owner is None:
            return False
        if self.view is not None and (
            self.view.is_figure_selected(start.owner) or self.view.is_figure_selected(end.owner)
        ):
            return False
        try:
            start_strategy = find_connector_strategy(start)
            end_strategy = find_connector_strategy(end)
        except UnknownStrategyError as exc:
            logger.warning("cannot drag connection %s: %s", connection.id, exc)
            return False
        r_start = start_strategy.effective_bounds(start.owner)
        r_end = end_strategy.effective_bounds(end.owner)

        dx = to_point.x() - from_point.x()
        dy = to_point.y() - from_point.y()
        if abs(dx) < geometry.EPSILON and abs(dy) < geometry.EPSILON:
            return False
        orig_start = start.point()
        orig_end = end.point()
        # the delta both ends can take without leaving their owners
        dx = geometry.clamp(orig_start.x() + dx, r_start.x(), r_start.right()) - orig_start.x()
        dy = geometry.clamp(orig_start.y() + dy, r_start.y(), r_start.bottom()) - orig_start.y()
        dx = geometry.clamp(orig_end.x() + dx, r_end.x(), r_end.right()) - orig_end.x()
        dy = geometry.clamp(orig_end.y() + dy, r_end.y(), r_end.bottom()) - orig_end.y()
        start_point = QPointF(orig_start.x() + dx, orig_start.y() + dy)
        end_point = QPointF(orig_end.x() + dx, orig_end.y() + dy)

        connection.will_change()
        start_strategy.drag_connector(self, start, orig_start, start_point, modifiers)
        end_strategy.drag_connector(self, end, orig_end, end_point, modifiers)
        connection.update_connection()
        connection.changed()
        return True

    def drag_connector(
        self,
        connector: RelativeConnector,
        tracking: Track,
        is_start: bool,
        to_point: QPointF,
        modifiers=Qt.KeyboardModifier.NoModifier,
    ) -> RelativeConnector | None:
        """Drag one end; at END a pending connector is resolved onto its new owner."""
        connection = connector.connection
        result = connector
        if tracking is Track.START:
            self.begin(self._view_selection() or [connection], True)
        elif tracking is Track.STEP:
            self._require_session()
            if not connector.is_pending:
                try:
                    strategy = find_connector_strategy(connector)
                except UnknownStrategyError as exc:
                    logger.warning("cannot drag connector: %s", exc)
                    return connector
                connection.will_change()
                strategy.drag_connector(self, connector, connector.point(), to_point, modifiers)
                connection.update_connection()
                connection.changed()
                self._record_connection_edit(connection)
        else:
            if self.session is not None and connector.is_pending:
                result = self._create_new_connector(connector, connection, is_start, False)
                if result is not None:
                    connection.will_change()
                    connection.set_connector(is_start, result)
                    connection.update_connection()
                    connection.changed()
                    self._record_connection_edit(connection)
            self.end()
        return result

    def drag_line_segment(
        self, connection: LineConnection, segment: int, from_point: QPointF | None, to_point: QPointF | None
    ) -> bool:
        """Square up the end segment of a multi-point line with its neighbour point."""
        is_start = segment != connection.node_count() - 2
        connector = connection.connector(is_start)
        try:
            strategy = find_connector_strategy(connector)
        except UnknownStrategyError as exc:
            logger.warning("cannot drag segment of %s: %s", connection.id, exc)
            return False
        owner = connector.owner
        r1 = strategy.effective_bounds(owner)
        conn_pt = connector.point()
        opposite_point = find_opposite_connection_point(connector)
        side = geometry.side_of(conn_pt, r1)
        if geometry.point_outcode(r1, opposite_point) != side:
            return False
        new_pt = QPointF(conn_pt)
        if geometry.is_left_right(side):
            new_pt.setY(opposite_point.y())
        if geometry.is_top_bottom(side):
            new_pt.setX(opposite_point.x())
        connection.will_change()
        new_pt = strategy.find_connector_point(connector, new_pt, owner, connection, is_start)
        strategy.update_connector_point(new_pt, connector)
        self.touch_connector(find_opposite_connector(connector))
        connection.update_connection()
        connection.changed()
        return True

    def touch_connector(self, connector: RelativeConnector) -> QPointF:
        try:
            strategy = find_connector_strategy(connector)
        except UnknownStrategyError as exc:
            logger.warning("cannot touch connector: %s", exc)
            return connector.point()
        return strategy.touch_connector(self, connector)

    # -- creating and reassigning -------------------------------------------

    def find_connector(
        self, p: QPointF, owner, connection: LineConnection, is_start: bool | None = None
    ) -> RelativeConnector | None:
        """Connector for ``owner`` under ``p``: an existing end or a pending one."""
        if owner is None or not owner.contains(p):
            return None
        for existing in (connection.start_connector, connection.end_connector):
            if existing is not None and not existing.is_pending and existing.owner is owner:
                return existing

        session = self._require_session()
        if is_start is None:
            pending = session.pending_start
            if pending.owner is not None and pending.owner is not owner:
                pending = session.pending_end
        else:
            pending = session.pending_start if is_start else session.pending_end
        pending.connection = connection
        name = connection.strategy_name(pending.end is ConnectorEnd.START)
        if pending.owner is not owner:
            pending.owner = owner
            self._place_pending(pending, p, name)

        start = connection.start_connector
        end = connection.end_connector
        new_connection = (start is None or start.is_pending) and (end is None or end.is_pending)
        if pending is session.pending_start and new_connection:
            start_strategy = STRATEGIES.get(connection.start_strategy_name or "")
            if not isinstance(start_strategy, BoundaryConnectorStrategy):
                return pending
        self._place_pending(pending, p, name)
        return pending

    def _place_pending(self, pending: PendingConnector, p: QPointF, name: str | None) -> None:
        strategy = STRATEGIES.get(name or "")
        if strategy is None:
            if name is not None:
                logger.warning("unknown connector strategy %r while tracking", name)
            r = pending.owner.bounds()
        else:
            r = strategy.effective_bounds(pending.owner)
        p = geometry.project(p, r)
        origin = pending.owner.bounds()
        pending.set_offset(
            geometry.clamp(p.x() - origin.x(), 0.0, max(origin.width(), 0.0)),
            geometry.clamp(p.y() - origin.y(), 0.0, max(origin.height(), 0.0)),
        )

    def create_new_connection(
        self,
        start: RelativeConnector | None,
        end: RelativeConnector | None,
        connection: LineConnection,
        tracking: Track,
    ) -> tuple[RelativeConnector | None, RelativeConnector | None]:
        if tracking is Track.START:
            self.begin(self._view_selection(), False)
            return start, end
        if tracking is Track.STEP:
            self._require_session()
            return start, end

        session = self._require_session()
        try:
            if start is None or end is None:
                return start, end
            if start is end and start.is_pending:
                end = session.pending_end
                end.owner = start.owner
                end.connection = connection
                end.set_offset(start.relative_x, start.relative_y)
            if connection.start_strategy_name is None:
                new_start = start.commit() if start.is_pending else start
                new_end = end.commit() if end.is_pending else end
            else:
                if start.is_pending:
                    connection.set_start_connector(start)
                if end.is_pending and end.connection is not None:
                    connection.set_end_connector(end)
                new_start = self._create_new_connector(start, connection, True, True)
                new_end = self._create_new_connector(end, connection, False, True)
            if new_start is None or new_end is None:
                connection.set_start_connector(None)
                connection.set_end_connector(None)
                return new_start, new_end

            connection.will_change()
            connection.set_start_connector(new_start)
            connection.set_end_connector(new_end)
            if new_start.owner is new_end.owner and connection.start_strategy_name is not None:
                self._create_self_connection(new_start, new_end)
            connection.update_connection()
            connection.changed()
            return new_start, new_end
        finally:
            self.end()

    def _create_new_connector(
        self, connector: RelativeConnector, connection: LineConnection, is_start: bool, is_new: bool
    ) -> RelativeConnector | None:
        if not connector.is_pending:
            return connector
        session = self._require_session()
        owner = connector.owner
        if owner is None:
            return None
        if is_new:
            other = session.pending_end if connector is session.pending_start else session.pending_start
            opposite_owner = other.owner
            if opposite_owner is None and connector is session.pending_start:
                opposite_owner = owner
        else:
            opposite_owner = connection.end_figure if is_start else connection.start_figure
        connector.connection = connection

        try:
            strategy = find_strategy(connection.strategy_name(is_start))
        except UnknownStrategyError as exc:
            logger.warning("cannot place connector on %s: %s", getattr(owner, "id", None), exc)
            return None
        if is_new:
            p = strategy.find_connector_point_new_connection(
                connector, connector.point(), owner, opposite_owner, is_start
            )
        else:
            original = connection.connector(is_start)
            if original is not None and owner is not original.owner:
                parts = owner.decomposition()
                if len(parts) > 1 and original.owner in parts:
                    logger.debug("refusing to reassign onto a group holding the current owner")
                    return None
            p = strategy.find_connector_point(connector, connector.point(), owner, connection, is_start)
        if p is None:
            return None
        strategy.update_connector_point(p, connector)
        return self._create_final_connector(connector, strategy, is_start)

    def _create_final_connector(
        self, pending: PendingConnector, strategy, is_start: bool
    ) -> RelativeConnector | None:
        connector = pending.commit()
        if pending.connection.end_connector is not None:
            if not strategy.confirm_or_veto_connector(self, connector, is_start):
                return None
        return connector

    def _create_self_connection(self, start: RelativeConnector, end: RelativeConnector) -> None:
        strategy = find_connector_strategy(start)
        connection = start.connection
        r1 = strategy.effective_bounds(start.owner)
        p1 = geometry.angle_to_point(r1, geometry.point_to_angle(r1, connection.point(1)))
        connection.set_self_connection()
        strategy.update_connector_point(p1, start)
        strategy.update_connector_point(p1, end)

    # -- restoring ----------------------------------------------------------

    def restore_connectors(self, figures, old_connectors: list[RelativeConnector]) -> None:
        current: list[LineConnection] = []
        for figure in figures:
            for connection in figure.connections():
                if connection not in current:
                    current.append(connection)
        for old in old_connectors:
            match = next((c for c in current if c is old.connection), None)
            if match is None:
                logger.debug("no current connection matches a restored connector")
                continue
            if old.end is not None:
                connector = match.connector(old.end is ConnectorEnd.START)
            else:
                connector = match.start_connector
                if connector is None or connector.owner is not old.owner:
                    connector = match.end_connector
            if connector is None:
                continue
            match.will_change()
            connector.set_offset(old.relative_x, old.relative_y)
            match.update_connection()
            match.changed()

    def _record_connection_edit(self, connection: LineConnection) -> None:
        if self.undo_stack is None or self.session is None:
            return
        before = self.session.cached_connection
        if before is None:
            return
        self.undo_stack.push(DragConnectionCommand(connection, before, connection.clone()))

    # -- connection-level helpers -------------------------------------------

    @staticmethod
    def include_connection(connection: LineConnection) -> bool:
        if not connection.start_strategy_name or not connection.end_strategy_name:
            return False
        if connection.start_connector is None or connection.end_connector is None:
            return False
        return not connection.is_self_connection()

    @staticmethod
    def check_strategy_compatibility(
        connections, strategy_name: str, is_start: bool, messages: list[str]
    ) -> list[LineConnection]:
        """Connections that would reject ``strategy_name`` on the given end."""
        connections = list(connections)
        try:
            new_strategy = find_strategy(strategy_name)
        except UnknownStrategyError as exc:
            messages.append(str(exc))
            return connections
        incompatible = []
        for connection in connections:
            change_count = sum(
                1
                for other in connections
                if other.start_figure is connection.start_figure and other.end_figure is connection.end_figure
            )
            connector = connection.connector(is_start)
            if connector is None:
                messages.append(f"connection {connection.id} has no connector to change")
                incompatible.append(connection)
                continue
            accepted = True
            if connection.strategy_name(not is_start) is not None:
                accepted = new_strategy.compatible_with_opposite(connector, is_start, messages, change_count)
            if accepted:
                accepted = new_strategy.compatible_with_owner_figure(connector, connector.owner, messages)
            if not accepted:
                incompatible.append(connection)
        return incompatible

    @staticmethod
    def migrate_to_relative_connectors(connection: LineConnection) -> bool:
        """Give a legacy connection chop connectors on both ends."""
        if connection.start_strategy_name is not None or connection.end_strategy_name is not None:
            return False
        start_owner = connection.start_figure
        end_owner = connection.end_figure
        if start_owner is None or end_owner is None:
            return False
        start_shape = start_owner.connectible_outline()
        end_shape = end_owner.connectible_outline()
        p1 = geometry.chop_point(start_shape, end_shape) or start_shape.bounds.center()
        p2 = geometry.chop_point(end_shape, start_shape) or end_shape.bounds.center()
        r1 = start_owner.bounds()
        r2 = end_owner.bounds()

        connection.will_change()
        connection.start_strategy_name = StrategyKind.CHOP.value
        connection.end_strategy_name = StrategyKind.CHOP.value
        connection.set_start_connector(RelativeConnector(start_owner, p1.x() - r1.x(), p1.y() - r1.y()))
        connection.set_end_connector(RelativeConnector(end_owner, p2.x() - r2.x(), p2.y() - r2.y()))
        connection.update_connection()
        connection.changed()
        return True

