"""
Unit tests for the connector strategy registry and per-strategy placement.
"""

import logging
from types import MappingProxyType

import pytest
from PyQt6.QtCore import QPointF, QRectF

from connectorkit.geometry import Side
from connectorkit.model import Figure
from connectorkit.strategies import (
    STRATEGIES,
    StrategyKind,
    UnknownStrategyError,
    find_connector_strategy_name,
    find_opposite_connector,
    find_strategy,
    strategy_names,
)


def xy(p):
    return (p.x(), p.y())


class TestRegistry:
    """Tests for strategy lookup by persisted name."""

    def test_every_kind_registered(self):
        """Each kind resolves to a strategy reporting the same name."""
        for name in strategy_names():
            assert find_strategy(name).name == name
        assert set(STRATEGIES) == set(strategy_names())

    def test_registry_is_read_only(self):
        """The registry cannot be modified at runtime."""
        assert isinstance(STRATEGIES, MappingProxyType)
        with pytest.raises(TypeError):
            STRATEGIES["Other"] = None

    def test_unknown_name(self):
        """Unknown names raise a lookup error carrying the name."""
        with pytest.raises(UnknownStrategyError) as info:
            find_strategy("NoSuchStrategy")
        assert isinstance(info.value, LookupError)
        assert info.value.name == "NoSuchStrategy"

    def test_missing_name(self):
        """A legacy end without a name has no strategy."""
        with pytest.raises(UnknownStrategyError):
            find_strategy(None)

    def test_capabilities(self):
        """Capability flags match each placement policy."""
        assert find_strategy(StrategyKind.CHOP.value).has_singular_connector_point()
        assert find_strategy(StrategyKind.CENTER.value).has_singular_connector_point()
        assert find_strategy(StrategyKind.RECTILINEAR.value).is_connector_tightly_coupled()
        assert find_strategy(StrategyKind.EDGE.value).is_bounds_mode()
        assert not find_strategy(StrategyKind.ROTATIONAL.value).is_bounds_mode()


class TestLookups:
    """Tests for the helpers shared by strategies and the tracker."""

    def test_names_by_end(self, connect, figure_a, figure_b):
        """Each end resolves its own strategy name."""
        connection = connect(
            figure_a, figure_b, (100, 50), (0, 50), StrategyKind.CHOP.value, StrategyKind.FIXED.value
        )
        assert find_connector_strategy_name(connection.start_connector) == StrategyKind.CHOP.value
        assert find_connector_strategy_name(connection.end_connector) == StrategyKind.FIXED.value
        assert find_opposite_connector(connection.start_connector) is connection.end_connector

    def test_unknown_name_uses_raw_point(self, connect, figure_a, figure_b, caplog):
        """Rendering an unknown strategy falls back to the stored point."""
        with caplog.at_level(logging.WARNING):
            connection = connect(figure_a, figure_b, (100, 50), (0, 50), "NoSuchStrategy")
        assert xy(connection.start_point()) == (100, 50)
        assert "NoSuchStrategy" in caplog.text

    def test_find_connectors(self, connect, figure_a, figure_b):
        """Connectors are matched by owner pair and strategy names."""
        first = connect(figure_a, figure_b, (100, 30), (0, 30))
        second = connect(figure_a, figure_b, (100, 70), (0, 70))
        edge = find_strategy(StrategyKind.EDGE.value)
        found = edge.find_connectors(figure_a, figure_b, edge.name, edge.name, False)
        assert found == [first.start_connector, second.start_connector]
        found = edge.find_connectors(figure_a, figure_b, edge.name, edge.name, False, first)
        assert found == [second.start_connector]
        assert edge.find_connectors(figure_b, figure_a, edge.name, StrategyKind.CHOP.value, False) == []

    def test_find_connectors_needs_name(self, figure_a, figure_b):
        """An empty strategy name is a caller error."""
        edge = find_strategy(StrategyKind.EDGE.value)
        with pytest.raises(ValueError):
            edge.find_connectors(figure_a, figure_b, "", edge.name, False)

    def test_max_min_points(self, connect, figure_a, figure_b):
        """Extremes are taken over connectors of one owner."""
        first = connect(figure_a, figure_b, (100, 30), (0, 30))
        second = connect(figure_a, figure_b, (100, 70), (0, 70))
        edge = find_strategy(StrategyKind.EDGE.value)
        points = edge.find_max_min_connector_points([first.start_connector, second.start_connector])
        assert points == (100, 30, 100, 70)
        with pytest.raises(ValueError):
            edge.find_max_min_connector_points([first.start_connector, first.end_connector])
        with pytest.raises(ValueError):
            edge.find_max_min_connector_points([])


class TestPlacement:
    """Tests for single strategy point computations."""

    def test_update_clamps_into_owner(self, connect, figure_a, figure_b):
        """Stored offsets never leave the owner bounds."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        connector = connection.start_connector
        fixed = find_strategy(StrategyKind.FIXED.value)
        fixed.update_connector_point(QPointF(150, 50), connector)
        assert (connector.relative_x, connector.relative_y) == (100, 50)

    def test_update_rejects_missing_point(self, connect, figure_a, figure_b, caplog):
        """A missing point keeps the previous offset."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        connector = connection.start_connector
        with caplog.at_level(logging.WARNING):
            point = find_strategy(StrategyKind.EDGE.value).update_connector_point(None, connector)
        assert xy(point) == (100, 50)
        assert "keeping previous point" in caplog.text

    def test_edge_on_ellipse_renders_on_outline(self, connect, figure_b):
        """A bounds-mode connector is rendered on the real outline."""
        ellipse = Figure(id="e", kind="ellipse", width=100.0, height=100.0)
        connection = connect(ellipse, figure_b, (100, 20), (0, 50))
        assert xy(connection.start_point()) == pytest.approx((90, 20))
        assert xy(connection.start_connector.point()) == (100, 20)

    def test_center_always_centre(self, connect, figure_a, figure_b):
        """Center connectors ignore the requested point."""
        connection = connect(
            figure_a, figure_b, (100, 50), (0, 50), StrategyKind.CENTER.value, StrategyKind.EDGE.value
        )
        center = find_strategy(StrategyKind.CENTER.value)
        p = center.find_connector_point(
            connection.start_connector, QPointF(10, 10), figure_a, connection, True
        )
        assert xy(p) == (50, 50)
        assert xy(center.find_transformed_connector_point(connection.start_connector, QRectF(0, 0, 40, 20))) == (20, 10)

    def test_chop_faces_opposite(self, connect, figure_a, figure_c):
        """Chop points lie where the centre line leaves the owner."""
        connection = connect(
            figure_a, figure_c, (50, 50), (50, 50), StrategyKind.CHOP.value, StrategyKind.CHOP.value
        )
        chop = find_strategy(StrategyKind.CHOP.value)
        p = chop.find_connector_point(connection.start_connector, QPointF(0, 0), figure_a, connection, True)
        assert xy(p) == pytest.approx((50, 100))

    @pytest.mark.parametrize("kind", [StrategyKind.CHOP, StrategyKind.CENTER])
    def test_singular_points_ignore_hint(self, connect, figure_a, figure_c, kind):
        """Singular strategies answer the same point for any hint."""
        connection = connect(figure_a, figure_c, (50, 50), (50, 50), kind.value, kind.value)
        strategy = find_strategy(kind.value)
        connector = connection.start_connector
        points = {
            xy(strategy.find_connector_point(connector, QPointF(x, y), figure_a, connection, True))
            for x, y in ((0, 0), (90, 10), (50, 100))
        }
        new_points = {
            xy(strategy.find_connector_point_new_connection(connector, QPointF(x, y), figure_a, figure_c, True))
            for x, y in ((0, 0), (90, 10))
        }
        assert len(points) == 1
        assert new_points == points

    def test_fixed_touch_is_noop(self, tracker, connect, figure_a, figure_b):
        """Touching a fixed connector leaves it in place."""
        connection = connect(
            figure_a, figure_b, (100, 10), (0, 90), StrategyKind.FIXED.value, StrategyKind.FIXED.value
        )
        tracker.touch_connector(connection.start_connector)
        assert xy(connection.start_point()) == (100, 10)

    def test_rectilinear_touch_squares_line(self, tracker, connect, figure_a, figure_b):
        """Touching a rectilinear end makes the line straight and is idempotent."""
        connection = connect(
            figure_a, figure_b, (100, 30), (0, 70),
            StrategyKind.RECTILINEAR.value, StrategyKind.RECTILINEAR.value,
        )
        tracker.touch_connector(connection.start_connector)
        assert xy(connection.start_point()) == pytest.approx((100, 30))
        assert xy(connection.end_point()) == pytest.approx((200, 30))
        tracker.touch_connector(connection.start_connector)
        assert xy(connection.end_point()) == pytest.approx((200, 30))

    def test_side_queries(self, connect, figure_a, figure_b):
        """Boundary strategies classify their connector's side."""
        connection = connect(figure_a, figure_b, (100, 50), (0, 50))
        edge = find_strategy(StrategyKind.EDGE.value)
        assert edge.on_right_side(connection.start_connector)
        assert edge.on_left_side(connection.end_connector)
        assert edge.find_sides(connection.start_connector) == Side.RIGHT
