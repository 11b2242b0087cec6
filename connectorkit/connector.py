from __future__ import annotations

from enum import Enum

from PyQt6.QtCore import QPointF

from .constants import (
    DEFAULT_RELATIVE_X,
    DEFAULT_RELATIVE_Y,
    RELATIVE_X_KEY,
    RELATIVE_Y_KEY,
)


class ConnectorEnd(Enum):
    START = "start"
    END = "end"


class RelativeConnector:
    """Attachment of a connection end to an owner figure.

    The point is stored as an offset from the owner's bounds origin; strategies
    only ever write offsets that keep the point inside the closed bounds.
    """

    is_pending = False

    def __init__(
        self,
        owner=None,
        relative_x: float = DEFAULT_RELATIVE_X,
        relative_y: float = DEFAULT_RELATIVE_Y,
        connection=None,
    ) -> None:
        self.owner = owner
        self.relative_x = float(relative_x)
        self.relative_y = float(relative_y)
        self.connection = connection
        # end held when this copy was cloned out of a slot
        self.snapshot_end: ConnectorEnd | None = None

    def __repr__(self) -> str:
        owner_id = getattr(self.owner, "id", None)
        return (
            f"{type(self).__name__}(owner={owner_id!r}, "
            f"relative_x={self.relative_x:.4f}, relative_y={self.relative_y:.4f})"
        )

    @property
    def end(self) -> ConnectorEnd | None:
        connection = self.connection
        if connection is None:
            return None
        if connection.start_connector is self:
            return ConnectorEnd.START
        if connection.end_connector is self:
            return ConnectorEnd.END
        return self.snapshot_end

    def is_start_connector(self) -> bool:
        return self.end is ConnectorEnd.START

    def point(self) -> QPointF:
        if self.owner is None:
            return QPointF(self.relative_x, self.relative_y)
        r = self.owner.bounds()
        return QPointF(r.x() + self.relative_x, r.y() + self.relative_y)

    def set_offset(self, relative_x: float, relative_y: float) -> None:
        self.relative_x = float(relative_x)
        self.relative_y = float(relative_y)

    def clone(self) -> "RelativeConnector":
        copy = RelativeConnector(self.owner, self.relative_x, self.relative_y, self.connection)
        copy.snapshot_end = self.end
        return copy

    def to_dict(self) -> dict:
        return {RELATIVE_X_KEY: self.relative_x, RELATIVE_Y_KEY: self.relative_y}

    @staticmethod
    def from_dict(data: dict, owner=None) -> "RelativeConnector":
        return RelativeConnector(
            owner,
            float(data.get(RELATIVE_X_KEY, DEFAULT_RELATIVE_X)),
            float(data.get(RELATIVE_Y_KEY, DEFAULT_RELATIVE_Y)),
        )


class PendingConnector(RelativeConnector):
    """Placeholder end used while a connection is created or reassigned."""

    is_pending = True

    def __init__(self, end: ConnectorEnd, owner=None, connection=None) -> None:
        super().__init__(owner, DEFAULT_RELATIVE_X, DEFAULT_RELATIVE_Y, connection)
        self._end = end

    @property
    def end(self) -> ConnectorEnd:
        return self._end

    def clone(self) -> "PendingConnector":
        pending = PendingConnector(self._end, self.owner, self.connection)
        pending.set_offset(self.relative_x, self.relative_y)
        return pending

    def commit(self) -> RelativeConnector:
        return RelativeConnector(self.owner, self.relative_x, self.relative_y, self.connection)
