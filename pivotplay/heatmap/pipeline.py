"""Session → heatmap pipeline: corners → transform → grid → pixels."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog

from pivotplay.core.models import WorkoutPayload
from pivotplay.heatmap.raster import build_palette, normalize, occupancy_counts, render
from pivotplay.heatmap.transform import CoordinateTransformer

log = structlog.get_logger()


@dataclass(frozen=True)
class Heatmap:
    grid: np.ndarray      # (height, width) float in [0, 1]
    palette: np.ndarray   # (N, 4) float RGBA
    pixels: np.ndarray    # (height, width, 4) uint8
    points_total: int
    points_on_pitch: int
    peak_count: int

    @property
    def width(self) -> int:
        return int(self.grid.shape[1])

    @property
    def height(self) -> int:
        return int(self.grid.shape[0])

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "grid": np.round(self.grid, 4).tolist(),
            "palette": np.round(self.palette, 4).tolist(),
            "points_total": self.points_total,
            "points_on_pitch": self.points_on_pitch,
            "peak_count": self.peak_count,
        }


def build_heatmap(
    payload: WorkoutPayload,
    grid_size: tuple[int, int] = (105, 68),
    palette_size: int = 15,
) -> Heatmap:
    """Rasterize a session's track on its pitch.

    Raises ValueError for legacy sessions without corners and
    DegenerateCornersError when the recorded corners cannot define a pitch.
    """
    corners = payload.field_corners
    if corners is None:
        raise ValueError("session has no pitch corners")

    transformer = CoordinateTransformer.build(corners)
    coords = transformer.transform_many(s.position for s in payload.track)
    counts = occupancy_counts(coords, grid_size)
    grid = normalize(counts)
    palette = build_palette(palette_size)

    on_pitch = int(counts.sum())
    log.debug("heatmap_built", workout_id=str(payload.workout_id),
              points=len(coords), on_pitch=on_pitch)

    return Heatmap(
        grid=grid,
        palette=palette,
        pixels=render(grid, palette),
        points_total=len(coords),
        points_on_pitch=on_pitch,
        peak_count=int(counts.max()) if counts.size else 0,
    )
