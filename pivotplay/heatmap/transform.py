"""Geographic → pitch-relative coordinate transform.

The pitch is described by four corners [bottom-left, bottom-right,
top-right, top-left]. Points are expressed in metres from the bottom-left
corner: x along the bottom sideline, y toward the top-left corner.

Degrees are converted to metres with a flat-earth approximation that is
accurate over the size of a football pitch, then projected onto the two
pitch axes by dot product. The axes are not orthonormalized, so slightly
skewed corner captures still map the sidelines onto the grid edges.
"""

from __future__ import annotations

import math
from typing import Iterable

from pivotplay.core.errors import DegenerateCornersError
from pivotplay.core.models import FieldCorners, GeoPoint, PitchCoordinate

# Metres per degree of latitude (and of longitude at the equator).
METERS_PER_DEGREE = 111_000.0

# Axes shorter than this are treated as coincident corners.
_MIN_AXIS_LENGTH_M = 0.01

# |sin(angle between axes)| below this means the corners are collinear.
_MIN_AXIS_SINE = 1e-6


class CoordinateTransformer:
    """Projects GeoPoints into a pitch coordinate system. Immutable."""

    def __init__(
        self,
        origin: GeoPoint,
        x_axis_m: tuple[float, float],
        y_axis_m: tuple[float, float],
        meters_per_degree_lon: float,
    ) -> None:
        self._origin = origin
        # Axis vectors as (north_m, east_m).
        self._x_axis = x_axis_m
        self._y_axis = y_axis_m
        self._m_per_deg_lon = meters_per_degree_lon
        self._x_len = math.hypot(*x_axis_m)
        self._y_len = math.hypot(*y_axis_m)

    @classmethod
    def build(cls, corners: FieldCorners) -> CoordinateTransformer:
        """Precompute the pitch axes from four corners.

        Raises DegenerateCornersError when an axis has (near) zero length or
        the two axes are parallel.
        """
        origin = corners.bottom_left
        m_per_deg_lon = METERS_PER_DEGREE * math.cos(math.radians(origin.latitude))

        def to_meters(point: GeoPoint) -> tuple[float, float]:
            return (
                (point.latitude - origin.latitude) * METERS_PER_DEGREE,
                (point.longitude - origin.longitude) * m_per_deg_lon,
            )

        x_axis = to_meters(corners.bottom_right)
        y_axis = to_meters(corners.top_left)
        x_len = math.hypot(*x_axis)
        y_len = math.hypot(*y_axis)

        if not (math.isfinite(x_len) and x_len >= _MIN_AXIS_LENGTH_M):
            raise DegenerateCornersError(
                f"bottom sideline length {x_len:.3f}m is too short", code="degenerate_x_axis",
            )
        if not (math.isfinite(y_len) and y_len >= _MIN_AXIS_LENGTH_M):
            raise DegenerateCornersError(
                f"left sideline length {y_len:.3f}m is too short", code="degenerate_y_axis",
            )

        cross = x_axis[0] * y_axis[1] - x_axis[1] * y_axis[0]
        if abs(cross) / (x_len * y_len) < _MIN_AXIS_SINE:
            raise DegenerateCornersError("corners are collinear", code="collinear")

        return cls(origin, x_axis, y_axis, m_per_deg_lon)

    @property
    def origin(self) -> GeoPoint:
        return self._origin

    @property
    def pitch_length_m(self) -> float:
        return self._x_len

    @property
    def pitch_width_m(self) -> float:
        return self._y_len

    def transform(self, point: GeoPoint) -> PitchCoordinate:
        north_m = (point.latitude - self._origin.latitude) * METERS_PER_DEGREE
        east_m = (point.longitude - self._origin.longitude) * self._m_per_deg_lon

        x = (north_m * self._x_axis[0] + east_m * self._x_axis[1]) / self._x_len
        y = (north_m * self._y_axis[0] + east_m * self._y_axis[1]) / self._y_len
        return PitchCoordinate(x=x, y=y)

    def transform_many(self, points: Iterable[GeoPoint]) -> list[PitchCoordinate]:
        return [self.transform(p) for p in points]
