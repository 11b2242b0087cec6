"""
Pytest configuration and shared fixtures for connectorkit tests.
"""

import pytest

from PyQt6.QtCore import QCoreApplication, QPointF
from PyQt6.QtGui import QUndoStack

from connectorkit.connection import LineConnection
from connectorkit.connector import RelativeConnector
from connectorkit.controller import ConnectorController
from connectorkit.model import Drawing, Figure
from connectorkit.strategies import StrategyKind
from connectorkit.tracker import ConnectorSubTracker


# ============== Qt Fixtures ==============

@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Create the Qt core application once for signal delivery."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def undo_stack() -> QUndoStack:
    """Create an empty undo stack."""
    return QUndoStack()


# ============== Figure Fixtures ==============

@pytest.fixture
def figure_a() -> Figure:
    """Square figure at the origin."""
    return Figure(id="a", x=0.0, y=0.0, width=100.0, height=100.0)


@pytest.fixture
def figure_b() -> Figure:
    """Square figure to the right of figure_a."""
    return Figure(id="b", x=200.0, y=0.0, width=100.0, height=100.0)


@pytest.fixture
def figure_c() -> Figure:
    """Square figure below figure_a."""
    return Figure(id="c", x=0.0, y=200.0, width=100.0, height=100.0)


# ============== Connection Fixtures ==============

def _connect(
    start_figure,
    end_figure,
    start_offset,
    end_offset,
    start_name=StrategyKind.EDGE.value,
    end_name=StrategyKind.EDGE.value,
    points=None,
):
    connection = LineConnection(points)
    connection.start_strategy_name = start_name
    connection.end_strategy_name = end_name
    connection.set_start_connector(RelativeConnector(start_figure, *start_offset))
    connection.set_end_connector(RelativeConnector(end_figure, *end_offset))
    connection.update_connection()
    return connection


@pytest.fixture
def connect():
    """Factory wiring a connection between two figures with given offsets."""
    return _connect


@pytest.fixture
def three_point_line():
    """Intermediate point list factory for multi-point connections."""
    def make(*coords):
        return [QPointF(x, y) for x, y in coords]
    return make


# ============== Engine Fixtures ==============

@pytest.fixture
def tracker(undo_stack) -> ConnectorSubTracker:
    """Tracker without a view, recording edits on the undo stack."""
    return ConnectorSubTracker(None, undo_stack)


@pytest.fixture
def drawing(figure_a, figure_b, figure_c) -> Drawing:
    """Drawing holding the three standard figures."""
    drawing = Drawing()
    for figure in (figure_a, figure_b, figure_c):
        drawing.add_figure(figure)
    return drawing


@pytest.fixture
def controller(drawing, undo_stack) -> ConnectorController:
    """Controller over the standard drawing."""
    return ConnectorController(drawing, undo_stack)
