from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntFlag
import logging
import math

from PyQt6.QtCore import QPointF, QRectF
from PyQt6.QtGui import QPainterPath

from .constants import EPSILON, MIN_ROTATION_EXTENT, VERTEX_EPSILON

logger = logging.getLogger(__name__)

# Quarter turns indexed by [opposite side][connected side] for a shape that
# passed the opposite side of a stationary shape.
ROTATION_GROUP = (
    (math.pi, math.pi / 2, 0.0, -math.pi / 2),
    (-math.pi / 2, math.pi, math.pi / 2, 0.0),
    (0.0, -math.pi / 2, math.pi, math.pi / 2),
    (math.pi / 2, 0.0, -math.pi / 2, math.pi),
)

# Quarter turns indexed by [new side][connected side].
ROTATION_GROUP_SIDES = (
    (0.0, -math.pi / 2, math.pi, math.pi / 2),
    (math.pi / 2, 0.0, -math.pi / 2, math.pi),
    (math.pi, math.pi / 2, 0.0, -math.pi / 2),
    (-math.pi / 2, math.pi, math.pi / 2, 0.0),
)


class Side(IntFlag):
    NONE = 0
    LEFT = 1
    TOP = 2
    RIGHT = 4
    BOTTOM = 8


_SIDE_INDEX = {Side.LEFT: 0, Side.TOP: 1, Side.RIGHT: 2, Side.BOTTOM: 3}


class ShapeKind(Enum):
    GENERAL = "general"
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"


@dataclass
class Outline:
    """Connectible outline of a figure.

    Vertex and side tests for GENERAL outlines run against the bounds point
    and are only approximate for unusual shapes.
    """

    kind: ShapeKind
    bounds: QRectF
    path: QPainterPath | None = None

    @classmethod
    def rectangle(cls, rect: QRectF) -> "Outline":
        return cls(ShapeKind.RECTANGLE, QRectF(rect))

    @classmethod
    def ellipse(cls, rect: QRectF) -> "Outline":
        return cls(ShapeKind.ELLIPSE, QRectF(rect))

    def painter_path(self) -> QPainterPath:
        if self.path is not None:
            return self.path
        path = QPainterPath()
        if self.kind == ShapeKind.ELLIPSE:
            path.addEllipse(self.bounds)
        else:
            path.addRect(self.bounds)
        return path

    def contains(self, p: QPointF) -> bool:
        r = self.bounds
        if self.kind == ShapeKind.RECTANGLE:
            return contains_closed(r, p)
        if self.kind == ShapeKind.ELLIPSE:
            if r.width() <= 0 or r.height() <= 0:
                return False
            nx = (p.x() - r.center().x()) / (r.width() / 2.0)
            ny = (p.y() - r.center().y()) / (r.height() / 2.0)
            return nx * nx + ny * ny <= 1.0 + EPSILON
        return self.painter_path().contains(p)


def set_tolerances(epsilon: float | None = None, vertex_epsilon: float | None = None) -> None:
    global EPSILON, VERTEX_EPSILON
    new_epsilon = EPSILON if epsilon is None else float(epsilon)
    new_vertex = VERTEX_EPSILON if vertex_epsilon is None else float(vertex_epsilon)
    if new_epsilon <= 0.0 or new_vertex <= new_epsilon:
        raise ValueError(
            f"vertex tolerance {new_vertex} must exceed side tolerance {new_epsilon} > 0"
        )
    EPSILON = new_epsilon
    VERTEX_EPSILON = new_vertex


def clamp(value: float, low: float, high: float) -> float:
    if value < low:
        return low
    if value > high:
        return high
    return value


def angle(p1: QPointF, p2: QPointF) -> float:
    return math.atan2(p2.y() - p1.y(), p2.x() - p1.x())


def distance(p1: QPointF, p2: QPointF) -> float:
    return math.hypot(p2.x() - p1.x(), p2.y() - p1.y())


def contains_closed(r: QRectF, p: QPointF) -> bool:
    return (
        r.x() - EPSILON <= p.x() <= r.right() + EPSILON
        and r.y() - EPSILON <= p.y() <= r.bottom() + EPSILON
    )


# -- side classification ----------------------------------------------------


def on_left_side(p: QPointF, r: QRectF) -> bool:
    return abs(r.x() - p.x()) < EPSILON


def on_right_side(p: QPointF, r: QRectF) -> bool:
    return abs(r.right() - p.x()) < EPSILON


def on_top_side(p: QPointF, r: QRectF) -> bool:
    return abs(r.y() - p.y()) < EPSILON


def on_bottom_side(p: QPointF, r: QRectF) -> bool:
    return abs(r.bottom() - p.y()) < EPSILON


def on_left_right_side(p: QPointF, r: QRectF) -> bool:
    return on_left_side(p, r) or on_right_side(p, r)


def on_top_bottom_side(p: QPointF, r: QRectF) -> bool:
    return on_top_side(p, r) or on_bottom_side(p, r)


def is_vertex_point(p: QPointF, r: QRectF) -> bool:
    return on_left_right_side(p, r) and on_top_bottom_side(p, r)


def is_left_right(sides: int) -> bool:
    return bool(sides & (Side.LEFT | Side.RIGHT))


def is_top_bottom(sides: int) -> bool:
    return bool(sides & (Side.TOP | Side.BOTTOM))


def is_vertex_side(sides: int) -> bool:
    return is_left_right(sides) and is_top_bottom(sides)


def opposite_side(sides: int) -> Side:
    if sides < Side.RIGHT:
        return Side(sides << 2)
    return Side(sides >> 2)


def side_of(p: QPointF, r: QRectF) -> Side:
    """Sides of ``r`` that ``p`` lies on, or ``Side.NONE`` when ``p`` is outside."""
    if p.x() < r.x() or p.x() > r.right() or p.y() < r.y() or p.y() > r.bottom():
        return Side.NONE
    side = Side.NONE
    if on_left_side(p, r):
        side |= Side.LEFT
    elif on_right_side(p, r):
        side |= Side.RIGHT
    if on_top_side(p, r):
        side |= Side.TOP
    elif on_bottom_side(p, r):
        side |= Side.BOTTOM
    return side


def point_outcode(r: QRectF, p: QPointF) -> Side:
    out = Side.NONE
    if r.width() <= 0:
        out |= Side.LEFT | Side.RIGHT
    elif p.x() < r.x():
        out |= Side.LEFT
    elif p.x() > r.right():
        out |= Side.RIGHT
    if r.height() <= 0:
        out |= Side.TOP | Side.BOTTOM
    elif p.y() < r.y():
        out |= Side.TOP
    elif p.y() > r.bottom():
        out |= Side.BOTTOM
    return out


def outcode(r1: QRectF, r2: QRectF) -> Side:
    """Where ``r2`` lies relative to ``r1``."""
    out = Side.NONE
    if r2.x() > r1.right():
        out |= Side.RIGHT
    elif r2.right() < r1.x():
        out |= Side.LEFT
    if r2.y() > r1.bottom():
        out |= Side.BOTTOM
    elif r2.bottom() < r1.y():
        out |= Side.TOP
    return out


def make_non_vertex(p: QPointF, r: QRectF, on_left_right: bool, keep_side: bool) -> QPointF:
    x = p.x()
    y = p.y()
    slide_vertically = on_left_right if keep_side else not on_left_right
    if slide_vertically:
        y = clamp(y, r.y() + VERTEX_EPSILON, r.bottom() - VERTEX_EPSILON)
    else:
        x = clamp(x, r.x() + VERTEX_EPSILON, r.right() - VERTEX_EPSILON)
    return QPointF(x, y)


# -- transforms ---------------------------------------------------------------


def normalize(p: QPointF, r: QRectF) -> QPointF:
    x = 0.0 if r.width() == 0 else (p.x() - r.center().x()) / r.width()
    y = 0.0 if r.height() == 0 else (p.y() - r.center().y()) / r.height()
    return QPointF(x, y)


def denormalize(p: QPointF, r: QRectF) -> QPointF:
    return QPointF(r.center().x() + p.x() * r.width(), r.center().y() + p.y() * r.height())


def normalize_transform(p: QPointF, from_rect: QRectF, to_rect: QRectF) -> QPointF:
    return denormalize(normalize(p, from_rect), to_rect)


def project(p: QPointF, r: QRectF) -> QPointF:
    return QPointF(clamp(p.x(), r.x(), r.right()), clamp(p.y(), r.y(), r.bottom()))


def reflect_x(p: QPointF, r: QRectF) -> QPointF:
    if not on_left_right_side(p, r):
        return QPointF(p)
    return QPointF(r.x() + r.right() - project(p, r).x(), p.y())


def reflect_y(p: QPointF, r: QRectF) -> QPointF:
    if not on_top_bottom_side(p, r):
        return QPointF(p)
    return QPointF(p.x(), r.y() + r.bottom() - project(p, r).y())


def reflect(p: QPointF, r: QRectF) -> QPointF:
    return reflect_x(reflect_y(p, r), r)


# -- angles -------------------------------------------------------------------


def phase_normalize(gamma: float) -> float:
    if abs(gamma - math.pi) < EPSILON or abs(gamma + math.pi) < EPSILON:
        return gamma
    while gamma > math.pi:
        gamma -= 2 * math.pi
    while gamma < -math.pi:
        gamma += 2 * math.pi
    return gamma


def point_to_angle(r: QRectF, p: QPointF) -> float:
    return math.atan2(p.y() - r.center().y(), p.x() - r.center().x())


def _square_angle_to_point(r: QRectF, alpha: float) -> QPointF:
    si = math.sin(alpha)
    co = math.cos(alpha)
    e = 0.0001
    if abs(si) > e:
        x = clamp((1.0 + co / abs(si)) / 2.0 * r.width(), 0.0, r.width())
    else:
        x = r.width() if co >= 0.0 else 0.0
    if abs(co) > e:
        y = clamp((1.0 + si / abs(co)) / 2.0 * r.height(), 0.0, r.height())
    else:
        y = r.height() if si >= 0.0 else 0.0
    return QPointF(r.x() + x, r.y() + y)


def angle_to_point(r: QRectF, alpha: float) -> QPointF | None:
    """Point on the outline of ``r`` seen from its centre at angle ``alpha``."""
    if r is None or r.width() == 0 or r.height() == 0:
        return None
    if abs(r.width() - r.height()) < VERTEX_EPSILON:
        return _square_angle_to_point(r, alpha)

    while alpha > math.pi:
        alpha -= 2 * math.pi
    while alpha < -math.pi:
        alpha += 2 * math.pi

    e2 = VERTEX_EPSILON
    w2 = r.width() / 2.0
    h2 = r.height() / 2.0
    cx = r.x() + w2
    cy = r.y() + h2

    if abs(alpha) < e2 or abs(alpha - math.pi) < e2 or abs(alpha + math.pi) < e2:
        return QPointF(cx + w2 if abs(alpha) < e2 else cx - w2, cy)
    if abs(alpha - math.pi / 2) < e2 or abs(alpha + math.pi / 2) < e2:
        return QPointF(cx, cy + h2 if abs(alpha - math.pi / 2) < e2 else cy - h2)

    chi = math.atan2(r.height(), r.width())
    if abs(alpha - chi) < e2 or abs(alpha + chi) < e2:
        return QPointF(cx + w2, cy + h2 if abs(alpha - chi) < e2 else cy - h2)
    if abs(alpha - math.pi + chi) < e2 or abs(alpha + math.pi - chi) < e2:
        return QPointF(cx - w2, cy + h2 if abs(alpha - math.pi + chi) < e2 else cy - h2)

    x: float | None = None
    y: float | None = None
    if -chi < alpha < chi:
        x = cx + w2
    elif chi < alpha < math.pi - chi:
        y = cy + h2
    elif math.pi - chi < alpha < math.pi:
        x = cx - w2
    elif -math.pi < alpha < -math.pi + chi:
        x = cx - w2
    elif -math.pi + chi < alpha < -chi:
        y = cy - h2

    sin_alpha = math.sin(alpha)
    cos_alpha = math.cos(alpha)
    if x is not None:
        y = cy if abs(cos_alpha) < e2 else cy + (x - cx) * sin_alpha / cos_alpha
        return QPointF(x, y)
    if y is not None:
        x = cx if abs(sin_alpha) < e2 else cx + (y - cy) * cos_alpha / sin_alpha
        return QPointF(x, y)
    logger.warning("no outline point for angle %s on %s", alpha, r)
    return None


def angle_delta(r1: QRectF, r1_before: QRectF, r2: QRectF, r2_before: QRectF) -> float:
    """Change of the centre-line angle between two rectangles over one step.

    Zero when both rectangles moved by the same amount.
    """
    d1x = r1.x() - r1_before.x()
    d1y = r1.y() - r1_before.y()
    d2x = r2.x() - r2_before.x()
    d2y = r2.y() - r2_before.y()
    if abs(d1x - d2x) < VERTEX_EPSILON and abs(d1y - d2y) < VERTEX_EPSILON:
        return 0.0
    now = angle(r2.center(), r1.center())
    before = angle(r2_before.center(), r1_before.center())
    return phase_normalize(now - before)


def rotation_angle_for_sides(new_side: int, connected_side: int) -> float:
    new_index = _SIDE_INDEX.get(Side(new_side), -1)
    connected_index = _SIDE_INDEX.get(Side(connected_side), -1)
    if new_index == -1 or connected_index == -1:
        return 0.0
    return ROTATION_GROUP_SIDES[new_index][connected_index]


def rotation_angle_for_side(connected_side: int, moving: QRectF, stationary: QRectF) -> float:
    opposite_index = _SIDE_INDEX.get(outcode(stationary, moving), -1)
    connected_index = _SIDE_INDEX.get(Side(connected_side), -1)
    if opposite_index == -1 or connected_index == -1:
        return 0.0
    return ROTATION_GROUP[opposite_index][connected_index]


# -- preferred sides and positions -------------------------------------------


def chop_side(r1: QRectF, r2: QRectF) -> Side:
    chop = chop_point(Outline.rectangle(r1), Outline.rectangle(r2))
    if chop is None:
        return Side.NONE
    side = Side.NONE
    if on_left_side(chop, r1):
        side |= Side.LEFT
    elif on_right_side(chop, r1):
        side |= Side.RIGHT
    if on_top_side(chop, r1):
        side |= Side.TOP
    elif on_bottom_side(chop, r1):
        side |= Side.BOTTOM
    return side


def preferred_connecting_side(r1: QRectF, r2: QRectF, left_right: bool) -> Side:
    result = outcode(r1, r2)
    if left_right:
        if result & Side.LEFT:
            return Side.LEFT
        if result & Side.RIGHT:
            return Side.RIGHT
    else:
        if result & Side.TOP:
            return Side.TOP
        if result & Side.BOTTOM:
            return Side.BOTTOM
    return result


def preferred_position(r1: QRectF, r2: QRectF, left_right: bool) -> QRectF:
    """``r1`` moved to face ``r2`` squarely across its preferred side."""
    side = preferred_connecting_side(r1, r2, left_right)
    x = r1.x()
    y = r1.y()
    if is_left_right(side):
        y = max(0.0, r2.center().y() - r1.height() / 2.0)
    if is_top_bottom(side):
        x = max(0.0, r2.center().x() - r1.width() / 2.0)
    return QRectF(x, y, r1.width(), r1.height())


# -- intersections ------------------------------------------------------------


def _solve_quadratic(a: float, b: float, c: float) -> list[float]:
    if a == 0.0:
        if b == 0.0:
            return []
        return [-c / b]
    disc = b * b - 4.0 * a * c
    if disc < 0.0:
        return []
    if disc == 0.0:
        return [-b / (2.0 * a)]
    root = math.sqrt(disc)
    return [(-b + root) / (2.0 * a), (-b - root) / (2.0 * a)]


def intersect_rect_line(r: QRectF, p1: QPointF, p2: QPointF) -> list[QPointF]:
    e = 0.000001
    max_x = r.right()
    max_y = r.bottom()
    dx = p1.x() - p2.x()
    dy = p1.y() - p2.y()
    if abs(dx) < e and abs(dy) < e:
        return []
    if abs(dx) < e:
        if p1.x() < r.x() or p1.x() > max_x:
            return []
        return [QPointF(p1.x(), r.y()), QPointF(p1.x(), max_y)]
    if abs(dy) < e:
        if p1.y() < r.y() or p1.y() > max_y:
            return []
        return [QPointF(r.x(), p1.y()), QPointF(max_x, p1.y())]

    # A corner can be hit twice; the edge order keeps the first two hits.
    points: list[QPointF] = []
    m = dy / dx
    cy = p2.y() - m * p2.x()
    calc = m * r.x() + cy
    if r.y() <= calc <= max_y:
        points.append(QPointF(r.x(), calc))
    calc += m * r.width()
    if r.y() <= calc <= max_y:
        points.append(QPointF(max_x, calc))
    if len(points) == 2:
        return points
    calc = (r.y() - cy) / m
    if r.x() <= calc <= max_x:
        points.append(QPointF(calc, r.y()))
    if len(points) == 2:
        return points
    calc += r.height() / m
    if r.x() <= calc <= max_x:
        points.append(QPointF(calc, max_y))
    return points


def intersect_ellipse_line(r: QRectF, p1: QPointF, p2: QPointF) -> list[QPointF]:
    e = 0.0001
    dx = p2.x() - p1.x()
    dy = p2.y() - p1.y()
    if abs(dx) < e and abs(dy) < e:
        return []
    if r.width() <= 0 or r.height() <= 0:
        return []
    cx = r.center().x()
    cy = r.center().y()
    if abs(dx) < e:
        if p1.x() < r.x() or p1.x() > r.right():
            return []
        a = max(0.0, r.width() * r.width() - 4.0 * (p1.x() - cx) ** 2)
        a = math.sqrt(a) * r.height() / (r.width() * 2.0)
        return [QPointF(p1.x(), cy - a), QPointF(p1.x(), cy + a)]
    if abs(dy) < e:
        if p1.y() < r.y() or p1.y() > r.bottom():
            return []
        a = max(0.0, r.height() * r.height() - 4.0 * (p1.y() - cy) ** 2)
        a = math.sqrt(a) * r.width() / (r.height() * 2.0)
        return [QPointF(cx - a, p1.y()), QPointF(cx + a, p1.y())]

    m = dy / dx
    intercept = p1.y() - m * p1.x()
    w = r.width() / 2.0
    h = r.height() / 2.0
    k = intercept - cy
    a = h * h + w * w * m * m
    b = 2.0 * (m * k * w * w - h * h * cx)
    c = h * h * cx * cx + w * w * k * k - w * w * h * h
    return [QPointF(x, m * x + intercept) for x in _solve_quadratic(a, b, c)]


def intersect_path_line(path: QPainterPath, p1: QPointF, p2: QPointF) -> list[QPointF]:
    d = p2 - p1
    if abs(d.x()) < EPSILON and abs(d.y()) < EPSILON:
        return []
    points: list[QPointF] = []
    for polygon in path.toSubpathPolygons():
        count = polygon.count()
        for index in range(count - 1):
            a = polygon.at(index)
            b = polygon.at(index + 1)
            seg = b - a
            denom = d.x() * seg.y() - d.y() * seg.x()
            if abs(denom) < 1e-12:
                continue
            t = ((a.x() - p1.x()) * d.y() - (a.y() - p1.y()) * d.x()) / denom
            if t < -1e-9 or t > 1.0 + 1e-9:
                continue
            hit = QPointF(a.x() + t * seg.x(), a.y() + t * seg.y())
            if any(distance(hit, known) < EPSILON for known in points):
                continue
            points.append(hit)
    return points


def intersection_points(outline: Outline, p1: QPointF, p2: QPointF) -> list[QPointF]:
    if distance(p1, p2) < EPSILON:
        return []
    if outline.kind == ShapeKind.RECTANGLE:
        return intersect_rect_line(outline.bounds, p1, p2)
    if outline.kind == ShapeKind.ELLIPSE:
        return intersect_ellipse_line(outline.bounds, p1, p2)
    return intersect_path_line(outline.painter_path(), p1, p2)


def nearest_point(nearest_to: QPointF, points: list[QPointF]) -> QPointF | None:
    best = None
    best_distance = math.inf
    for point in points:
        if point is None:
            continue
        d = distance(nearest_to, point)
        if d < best_distance:
            best = point
            best_distance = d
    return QPointF(best) if best is not None else None


def _sign(value: float) -> int:
    if value > 0.0:
        return 1
    if value < 0.0:
        return -1
    return 0


# -- boundary points ----------------------------------------------------------


def boundary_point(
    outline: Outline,
    p1: QPointF,
    p2: QPointF,
    nearest_to: QPointF,
    direction: bool = True,
) -> QPointF | None:
    """Outline hit of the line p1-p2 nearest to ``nearest_to``.

    With ``direction`` hits whose angle from p1 has the other sign than the
    p1->p2 direction are dropped.
    """
    points = intersection_points(outline, p1, p2)
    if not points:
        return None
    if direction:
        init = _sign(angle(p1, p2))
        points = [
            pt
            for pt in points
            if not (
                init != _sign(angle(p1, pt)) and pt.x() != p1.x() and pt.y() != p1.y()
            )
        ]
    return nearest_point(nearest_to, points)


def boundary_point_thru_center(outline: Outline, p: QPointF) -> QPointF | None:
    r = outline.bounds
    if outline.kind == ShapeKind.RECTANGLE:
        return angle_to_point(r, point_to_angle(r, p))
    return boundary_point(outline, r.center(), p, p)


def boundary_point_thru_bounds_point(outline: Outline, p: QPointF, left_right: bool) -> QPointF | None:
    if outline.kind == ShapeKind.RECTANGLE:
        return QPointF(p)
    r = outline.bounds
    if on_left_right_side(p, r) and on_top_bottom_side(p, r):
        horizontal = left_right
    else:
        horizontal = on_left_right_side(p, r)
    if horizontal:
        p2 = QPointF(r.right() if on_left_side(p, r) else r.x(), p.y())
    else:
        p2 = QPointF(p.x(), r.bottom() if on_top_side(p, r) else r.y())
    p1 = boundary_point(outline, p2, p, p)
    if p1 is None:
        p1 = boundary_point_thru_center(outline, p)
    return p1


def chop_point(outline1: Outline, outline2: Outline) -> QPointF | None:
    if outline1 is None or outline2 is None:
        return None
    return boundary_point_thru_center(outline1, outline2.bounds.center())


# -- rotations ----------------------------------------------------------------


def rotate_rect_point(rotation: float, r: QRectF, p: QPointF) -> QPointF:
    if r is None or r.width() < MIN_ROTATION_EXTENT or r.height() < MIN_ROTATION_EXTENT:
        return QPointF(p)
    result = angle_to_point(r, point_to_angle(r, p) + rotation)
    return result if result is not None else QPointF(p)


def rotate_normalized_rect_point(rotation: float, r: QRectF, p: QPointF) -> QPointF:
    if abs(r.width() - r.height()) < EPSILON:
        return rotate_rect_point(rotation, r, p)
    n = rotate_rect_point(rotation, QRectF(-0.5, -0.5, 1.0, 1.0), normalize(p, r))
    return denormalize(n, r)


def rotate_ellipse_point(rotation: float, r: QRectF, p: QPointF) -> QPointF:
    if r is None or r.width() == 0 or r.height() == 0:
        return QPointF(p)
    cx = r.center().x()
    cy = r.center().y()
    alpha = math.atan2(p.y() - cy, p.x() - cx) + rotation
    cos_alpha = math.cos(alpha)
    sin_alpha = math.sin(alpha)
    if abs(r.width() - r.height()) < 0.00005:
        return QPointF(cx + r.width() / 2.0 * cos_alpha, cy + r.width() / 2.0 * sin_alpha)
    a = r.width() / 2.0
    b = r.height() / 2.0
    ecc_sq = (a * a - b * b) / (a * a)
    radius = b / math.sqrt(1.0 - ecc_sq * cos_alpha * cos_alpha)
    return QPointF(cx + radius * cos_alpha, cy + radius * sin_alpha)


def rotate_normalized_ellipse_point(rotation: float, r: QRectF, p: QPointF) -> QPointF:
    if abs(r.width() - r.height()) < EPSILON:
        return rotate_ellipse_point(rotation, r, p)
    n = rotate_ellipse_point(rotation, QRectF(-0.5, -0.5, 1.0, 1.0), normalize(p, r))
    return denormalize(n, r)
