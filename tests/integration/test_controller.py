"""
Integration tests for the controller gestures and their undo history.
"""

import pytest
from PyQt6.QtCore import QPointF, QRectF

from connectorkit.connection import LineConnection
from connectorkit.connector import RelativeConnector
from connectorkit.constants import CURVED_LINER, SELF_CONNECTION_LINER
from connectorkit.strategies import StrategyKind
from connectorkit.tracker import ConnectorSubTracker, Track

EDGE = StrategyKind.EDGE.value
CHOP = StrategyKind.CHOP.value
RECTILINEAR = StrategyKind.RECTILINEAR.value


def xy(p):
    return (p.x(), p.y())


class FakeView:
    """Minimal drawing view exposing a fixed selection."""

    def __init__(self, selection):
        self.selection = list(selection)

    def selected_figures(self):
        return list(self.selection)

    def is_figure_selected(self, figure):
        return figure in self.selection


class TestConnect:
    """Tests for creating connections."""

    def test_connect_and_undo(self, controller, drawing, undo_stack, figure_a, figure_b):
        """A new connection is added to the drawing and undo removes it."""
        connection = controller.connect(figure_a, figure_b)
        assert drawing.get_connection(connection.id) is connection
        assert xy(connection.start_point()) == (100, 50)
        assert xy(connection.end_point()) == (200, 50)

        undo_stack.undo()
        assert drawing.get_connection(connection.id) is None
        assert figure_a.connections() == []

    def test_second_chop_pair_vetoed(self, controller, figure_a, figure_b):
        """The controller reports a vetoed connection as None."""
        assert controller.connect(figure_a, figure_b, CHOP, CHOP) is not None
        assert controller.connect(figure_a, figure_b, CHOP, CHOP) is None
        assert controller.tracker.veto_messages
        assert len(figure_a.connections()) == 1

    def test_self_connection_loop(self, controller):
        """Connecting a figure to itself builds a loop on its right side."""
        owner = controller.add_figure("Rectangle", 400, 400, 50, 50)
        connection = controller.connect(owner, owner)
        assert connection.node_count() == 3
        assert connection.liner == SELF_CONNECTION_LINER
        assert xy(connection.start_point()) == pytest.approx((450, 425))
        assert xy(connection.end_point()) == pytest.approx((450, 425))

    def test_start_point_outside_figure(self, controller, figure_a, figure_b):
        """Points outside their figures create nothing."""
        assert controller.connect(figure_a, figure_b, start_point=QPointF(500, 500)) is None
        assert not controller.tracker.is_active

    def test_disconnect(self, controller, undo_stack, figure_a, figure_b):
        """Disconnecting detaches from both figures."""
        connection = controller.connect(figure_a, figure_b)
        controller.disconnect(connection)
        assert figure_b.connections() == []
        undo_stack.undo()
        assert figure_b.connections() == [connection]


class TestDragging:
    """Tests for dragging ends and whole lines."""

    def test_drag_end_and_undo(self, controller, undo_stack, figure_a, figure_b):
        """Dragging an end is one merged undo step."""
        connection = controller.connect(figure_a, figure_b)
        controller.drag_connector_to(connection, False, QPointF(200, 80))
        assert xy(connection.end_point()) == (200, 80)
        controller.drag_connector_to(connection, False, QPointF(200, 90))
        assert xy(connection.end_point()) == (200, 90)
        assert undo_stack.count() == 2

        undo_stack.undo()
        assert xy(connection.end_point()) == (200, 50)
        assert xy(connection.start_point()) == (100, 50)

    def test_reconnect_and_undo(self, controller, undo_stack, figure_a, figure_b, figure_c):
        """Reconnecting moves the end to another figure."""
        connection = controller.connect(figure_a, figure_b)
        assert controller.reconnect(connection, False, figure_c, QPointF(50, 250))
        assert connection.end_figure is figure_c
        assert xy(connection.end_point()) == pytest.approx((62.5, 200))
        assert figure_b.connections() == []

        undo_stack.undo()
        assert connection.end_figure is figure_b
        assert figure_b.connections() == [connection]
        assert figure_c.connections() == []

    def test_reconnect_outside_target(self, controller, figure_a, figure_b, figure_c):
        """A drop outside the target figure changes nothing."""
        connection = controller.connect(figure_a, figure_b)
        assert not controller.reconnect(connection, False, figure_c, QPointF(500, 500))
        assert connection.end_figure is figure_b
        assert not controller.tracker.is_active

    def test_view_drag_moves_whole_line(self, undo_stack, connect, figure_a, figure_b):
        """Dragging a selected line slides both ends together."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        tracker = ConnectorSubTracker(FakeView([connection]), undo_stack)
        start, to = QPointF(150, 50), QPointF(150, 70)
        tracker.adjust_connectors_for_moving_view(Track.START, start, to)
        tracker.adjust_connectors_for_moving_view(Track.STEP, start, to)
        tracker.adjust_connectors_for_moving_view(Track.END, start, to)
        assert connection.start_point().y() == pytest.approx(70)
        assert connection.end_point().y() == pytest.approx(70)
        assert undo_stack.count() == 1

    def test_view_drag_skips_selected_owner(self, undo_stack, connect, figure_a, figure_b):
        """A line moved along with its owner is left to the owner."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        view = FakeView([connection])
        tracker = ConnectorSubTracker(view, undo_stack)
        view.is_figure_selected = lambda figure: figure is figure_a
        assert not tracker.drag_connection(connection, QPointF(150, 50), QPointF(150, 70))
        assert xy(connection.start_point()) == (100, 50)

    def test_view_resize(self, undo_stack, connect, figure_a, figure_b):
        """Resizing through the view adjusts the selected figure's connectors."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50), StrategyKind.FIXED.value, EDGE)
        tracker = ConnectorSubTracker(FakeView([figure_a]), undo_stack)
        tracker.adjust_connectors_for_resizing_view(Track.START)
        figure_a.set_bounds(QRectF(0, 0, 60, 100))
        tracker.adjust_connectors_for_resizing_view(Track.STEP)
        tracker.adjust_connectors_for_resizing_view(Track.END)
        assert xy(connection.start_point()) == (60, 50)


class TestGeometry:
    """Tests for moving and resizing through the controller."""

    def test_move_and_undo(self, controller, undo_stack, figure_a, figure_b):
        """Moving is undone together with its connector changes."""
        connection = controller.connect(figure_a, figure_b, RECTILINEAR, RECTILINEAR)
        controller.move_figures([figure_a], 0, 150)
        assert xy(connection.end_point()) == pytest.approx((200, 100))

        undo_stack.undo()
        assert figure_a.bounds() == QRectF(0, 0, 100, 100)
        assert xy(connection.end_point()) == pytest.approx((200, 50))

    def test_resize_and_undo(self, controller, undo_stack, figure_a, figure_b):
        """Resizing re-chops both ends and undo restores them."""
        connection = controller.connect(figure_a, figure_b, CHOP, CHOP)
        controller.resize_figure(figure_a, QRectF(0, 0, 100, 200))
        assert xy(connection.start_point()) == pytest.approx((100, 87.5))

        undo_stack.undo()
        assert figure_a.bounds() == QRectF(0, 0, 100, 100)
        assert xy(connection.start_point()) == pytest.approx((100, 50))


class TestStrategyChanges:
    """Tests for changing connector strategies."""

    def test_change_and_undo(self, controller, undo_stack, figure_a, figure_b):
        """A compatible change moves the end and is undoable."""
        connection = controller.connect(figure_a, figure_b)
        result = controller.set_connector_strategy([connection], StrategyKind.CENTER.value, True)
        assert result.accepted
        assert xy(connection.start_point()) == (50, 50)

        undo_stack.undo()
        assert connection.start_strategy_name == EDGE
        assert xy(connection.start_point()) == (100, 50)

    def test_rejected_change_keeps_names(self, controller, figure_a, figure_b):
        """An incompatible change is refused before anything moves."""
        first = controller.connect(figure_a, figure_b, EDGE, CHOP, QPointF(50, 30), QPointF(250, 30))
        second = controller.connect(figure_a, figure_b, EDGE, CHOP, QPointF(50, 70), QPointF(250, 70))
        result = controller.set_connector_strategy([first, second], CHOP, True)
        assert not result.accepted
        assert result.incompatible == [first, second]
        assert first.start_strategy_name == EDGE
        assert second.start_strategy_name == EDGE

    def test_curved_line_refuses_rectilinear(self, controller, figure_a, figure_b):
        """The refusal carries a readable reason."""
        connection = controller.connect(figure_a, figure_b, liner=CURVED_LINER)
        result = controller.set_connector_strategy([connection], RECTILINEAR, True)
        assert not result.accepted
        assert "RectilinearConnectorStrategy incompatible with CurvedLiner" in result.messages


class TestMaintenance:
    """Tests for whole-drawing operations."""

    def test_migrate_legacy_connections(self, controller, drawing, figure_a, figure_b):
        """Legacy connections are migrated once."""
        connection = LineConnection([QPointF(50, 50), QPointF(250, 50)])
        connection.set_start_connector(RelativeConnector(figure_a, 50, 50))
        connection.set_end_connector(RelativeConnector(figure_b, 50, 50))
        drawing.add_connection(connection)
        assert controller.migrate_legacy_connections() == 1
        assert connection.end_strategy_name == CHOP
        assert xy(connection.start_point()) == pytest.approx((100, 50))
        assert xy(connection.end_point()) == pytest.approx((200, 50))
        assert controller.migrate_legacy_connections() == 0

    def test_touch_all_squares_rectilinear(self, controller, drawing, connect, figure_a, figure_b):
        """Touching every connection straightens rectilinear lines."""
        connection = connect(figure_a, figure_b, (100, 30), (0, 70), RECTILINEAR, RECTILINEAR)
        drawing.add_connection(connection)
        controller.touch_all()
        assert connection.start_point().y() == pytest.approx(30)
        assert connection.end_point().y() == pytest.approx(30)
