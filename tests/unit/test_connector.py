"""
Unit tests for relative and pending connectors.
"""

from connectorkit.connection import LineConnection
from connectorkit.connector import ConnectorEnd, PendingConnector, RelativeConnector
from connectorkit.constants import RELATIVE_X_KEY, RELATIVE_Y_KEY


def xy(p):
    return (p.x(), p.y())


class TestRelativeConnector:
    """Tests for offsets and slot lookup."""

    def test_point_follows_owner(self, figure_a):
        """The point is the owner origin plus the stored offset."""
        connector = RelativeConnector(figure_a, 100.0, 50.0)
        assert xy(connector.point()) == (100.0, 50.0)
        figure_a.move_by(10.0, 20.0)
        assert xy(connector.point()) == (110.0, 70.0)

    def test_end_reports_slot(self, figure_a, figure_b):
        """A connector knows which end of its connection holds it."""
        connection = LineConnection()
        start = RelativeConnector(figure_a, 100.0, 50.0)
        end = RelativeConnector(figure_b, 0.0, 50.0)
        connection.set_start_connector(start)
        connection.set_end_connector(end)
        assert start.end is ConnectorEnd.START
        assert end.end is ConnectorEnd.END
        assert start.is_start_connector()
        assert not end.is_start_connector()

    def test_unslotted_connector_has_no_end(self, figure_a):
        """Without a connection no end is known."""
        assert RelativeConnector(figure_a).end is None

    def test_clone_is_independent(self, figure_a):
        """Changing a clone leaves the original offset alone."""
        connector = RelativeConnector(figure_a, 10.0, 20.0)
        copy = connector.clone()
        copy.set_offset(30.0, 40.0)
        assert (connector.relative_x, connector.relative_y) == (10.0, 20.0)
        assert copy.owner is figure_a

    def test_clone_remembers_end(self, figure_a):
        """A clone taken from a slot keeps reporting that end."""
        connection = LineConnection()
        connection.set_start_connector(RelativeConnector(figure_a, 100.0, 50.0))
        connection.set_end_connector(RelativeConnector(figure_a, 100.0, 80.0))
        assert connection.end_connector.clone().end is ConnectorEnd.END
        assert connection.start_connector.clone().end is ConnectorEnd.START

    def test_dict_keys(self, figure_a):
        """Offsets persist under the relative keys."""
        data = RelativeConnector(figure_a, 12.5, 7.0).to_dict()
        assert data == {RELATIVE_X_KEY: 12.5, RELATIVE_Y_KEY: 7.0}
        restored = RelativeConnector.from_dict(data, figure_a)
        assert xy(restored.point()) == (12.5, 7.0)


class TestPendingConnector:
    """Tests for the placeholder used while tracking."""

    def test_end_is_fixed(self):
        """A pending connector reports its end before it is slotted."""
        pending = PendingConnector(ConnectorEnd.END)
        assert pending.is_pending
        assert pending.end is ConnectorEnd.END

    def test_commit_creates_real_connector(self, figure_a):
        """Committing copies owner and offset into a real connector."""
        pending = PendingConnector(ConnectorEnd.START, figure_a)
        pending.set_offset(100.0, 25.0)
        connector = pending.commit()
        assert not connector.is_pending
        assert connector.owner is figure_a
        assert xy(connector.point()) == (100.0, 25.0)
