"""
Integration tests for creating and reassigning connections through the tracker.
"""

import pytest
from PyQt6.QtCore import QPointF

from connectorkit.connection import LineConnection
from connectorkit.constants import SELF_CONNECTION_LINER
from connectorkit.model import Figure
from connectorkit.strategies import StrategyKind
from connectorkit.tracker import ConnectorSubTracker, Track, TrackerSessionError

EDGE = StrategyKind.EDGE.value
CHOP = StrategyKind.CHOP.value


def xy(p):
    return (p.x(), p.y())


def create(tracker, start_figure, end_figure, start_point, end_point, points=None, names=(EDGE, EDGE)):
    connection = LineConnection(points or [start_point, end_point])
    connection.start_strategy_name, connection.end_strategy_name = names
    tracker.create_new_connection(None, None, connection, Track.START)
    start = tracker.find_connector(start_point, start_figure, connection)
    end = tracker.find_connector(end_point, end_figure, connection)
    new_start, new_end = tracker.create_new_connection(start, end, connection, Track.END)
    return connection, new_start, new_end


class TestNewConnections:
    """Tests for the connection creation gesture."""

    def test_edge_to_edge(self, tracker, figure_a, figure_b):
        """Edge ends land on the facing sides."""
        connection, start, end = create(tracker, figure_a, figure_b, QPointF(50, 50), QPointF(250, 50))
        assert start is connection.start_connector
        assert not start.is_pending
        assert xy(connection.start_point()) == (100, 50)
        assert xy(connection.end_point()) == (200, 50)
        assert figure_a.connections() == [connection]
        assert figure_b.connections() == [connection]
        assert not tracker.is_active

    def test_chop_to_chop(self, tracker, figure_a, figure_c):
        """Chop ends land on the centre line."""
        connection, _, _ = create(
            tracker, figure_a, figure_c, QPointF(50, 50), QPointF(50, 250), names=(CHOP, CHOP)
        )
        assert xy(connection.start_point()) == pytest.approx((50, 100))
        assert xy(connection.end_point()) == pytest.approx((50, 200))

    def test_second_chop_pair_vetoed(self, tracker, figure_a, figure_b):
        """A second chop pair between the same figures is refused."""
        create(tracker, figure_a, figure_b, QPointF(50, 50), QPointF(250, 50), names=(CHOP, CHOP))
        connection, start, end = create(
            tracker, figure_a, figure_b, QPointF(50, 50), QPointF(250, 50), names=(CHOP, CHOP)
        )
        assert start is None
        assert connection.start_connector is None
        assert connection.end_connector is None
        assert tracker.veto_messages
        assert len(figure_a.connections()) == 1

    def test_self_connection(self, tracker):
        """A loop on one figure gets both ends on the side facing its bend."""
        owner = Figure(id="self", x=0.0, y=0.0, width=50.0, height=50.0)
        p = QPointF(25, 25)
        connection, start, end = create(
            tracker, owner, owner, p, p, points=[p, QPointF(80, 25), p]
        )
        assert xy(connection.start_point()) == pytest.approx((50, 25))
        assert xy(connection.end_point()) == pytest.approx((50, 25))
        assert connection.liner == SELF_CONNECTION_LINER
        assert connection.is_self_connection()
        assert owner.connections() == [connection]

    def test_legacy_connection_keeps_points(self, tracker, figure_a, figure_b):
        """Without strategy names the tracked points are committed as they are."""
        connection, start, end = create(
            tracker, figure_a, figure_b, QPointF(50, 50), QPointF(250, 50), names=(None, None)
        )
        assert xy(start.point()) == (50, 50)
        assert xy(end.point()) == (250, 50)

    def test_step_requires_session(self, tracker, figure_a):
        """A STEP outside a gesture is a protocol error."""
        with pytest.raises(TrackerSessionError):
            tracker.create_new_connection(None, None, LineConnection(), Track.STEP)


class TestFindConnector:
    """Tests for resolving the connector under the pointer."""

    def test_outside_owner(self, tracker, figure_a):
        """Points outside the owner find nothing."""
        assert tracker.find_connector(QPointF(500, 500), figure_a, LineConnection()) is None

    def test_existing_end_returned(self, tracker, connect, figure_a, figure_b):
        """An end already on the owner is reused without a session."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        assert tracker.find_connector(QPointF(50, 50), figure_a, connection) is connection.start_connector

    def test_pending_requires_session(self, tracker, connect, figure_a, figure_b, figure_c):
        """Placing a pending connector needs an active gesture."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        with pytest.raises(TrackerSessionError):
            tracker.find_connector(QPointF(50, 250), figure_c, connection, False)

    def test_pending_placed_inside_owner(self, tracker, connect, figure_a, figure_b, figure_c):
        """A pending end is placed on the hovered owner."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        tracker.drag_connector(connection.end_connector, Track.START, False, QPointF(50, 250))
        pending = tracker.find_connector(QPointF(50, 250), figure_c, connection, False)
        assert pending.is_pending
        assert pending.owner is figure_c
        assert xy(pending.point()) == (50, 250)
        tracker.discard()
        assert not tracker.is_active


class TestReassign:
    """Tests for dropping a dragged end onto another figure."""

    def test_reassign_end(self, tracker, connect, figure_a, figure_b, figure_c):
        """The end moves to the new owner's boundary facing the start."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        target = QPointF(50, 250)
        tracker.drag_connector(connection.end_connector, Track.START, False, target)
        pending = tracker.find_connector(target, figure_c, connection, False)
        result = tracker.drag_connector(pending, Track.END, False, target)
        assert result is connection.end_connector
        assert result.owner is figure_c
        assert xy(connection.end_point()) == pytest.approx((62.5, 200))
        assert figure_b.connections() == []
        assert figure_c.connections() == [connection]

    def test_restore_connectors(self, tracker, connect, figure_a, figure_b):
        """Cached connectors put offsets back."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        tracker.begin([figure_a], False)
        cached = tracker.prior_connectors()
        tracker.end()
        connection.start_connector.set_offset(100, 10)
        tracker.restore_connectors([figure_a], cached)
        assert xy(connection.start_point()) == (100, 50)

    def test_migrate_legacy(self, connect, figure_a, figure_b):
        """Legacy connections get chop connectors on both ends."""
        connection = connect(figure_a, figure_b, (50, 50), (50, 50), None, None)
        assert ConnectorSubTracker.migrate_to_relative_connectors(connection)
        assert connection.start_strategy_name == CHOP
        assert xy(connection.start_point()) == pytest.approx((100, 50))
        assert xy(connection.end_point()) == pytest.approx((200, 50))
        assert not ConnectorSubTracker.migrate_to_relative_connectors(connection)
