"""Occupancy grid rasterization and colour mapping.

One grid cell covers 1×1 metre of pitch. Counts are max-normalized: the
most visited cell is always 1.0, whatever the absolute visit count, so the
map shows where the player spent time relative to their own peak.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

from pivotplay.core.models import PitchCoordinate

DEFAULT_GRID_SIZE = (105, 68)
DEFAULT_PALETTE_SIZE = 15

# (position, (r, g, b, a)) with components in [0, 1].
DEFAULT_STOPS: tuple[tuple[float, tuple[float, float, float, float]], ...] = (
    (0.0, (0.0, 0.0, 0.0, 0.0)),   # transparent
    (0.07, (0.0, 1.0, 0.0, 0.6)),  # green
    (0.45, (1.0, 1.0, 0.0, 0.8)),  # yellow
    (1.0, (1.0, 0.0, 0.0, 1.0)),   # red
)


def _check_grid_size(grid_size: tuple[int, int]) -> tuple[int, int]:
    width, height = grid_size
    if width <= 0 or height <= 0:
        raise ValueError(f"grid size must be positive, got {width}x{height}")
    return int(width), int(height)


def occupancy_counts(
    points: Iterable[PitchCoordinate],
    grid_size: tuple[int, int] = DEFAULT_GRID_SIZE,
) -> np.ndarray:
    """Count points per cell. Returns an int array of shape (height, width).

    Coordinates round half-up to the nearest cell; points off the pitch are
    dropped.
    """
    width, height = _check_grid_size(grid_size)
    counts = np.zeros((height, width), dtype=np.int64)

    coords = np.array([(p.x, p.y) for p in points], dtype=np.float64).reshape(-1, 2)
    if coords.size == 0:
        return counts

    finite = np.isfinite(coords).all(axis=1)
    cells = np.floor(coords[finite] + 0.5).astype(np.int64)
    xs, ys = cells[:, 0], cells[:, 1]
    in_bounds = (xs >= 0) & (xs < width) & (ys >= 0) & (ys < height)
    np.add.at(counts, (ys[in_bounds], xs[in_bounds]), 1)
    return counts


def normalize(counts: np.ndarray) -> np.ndarray:
    """Divide by the peak count. An all-zero grid stays all zero."""
    peak = counts.max() if counts.size else 0
    if peak <= 0:
        return np.zeros(counts.shape, dtype=np.float64)
    return counts.astype(np.float64) / float(peak)


def rasterize(
    points: Iterable[PitchCoordinate],
    grid_size: tuple[int, int] = DEFAULT_GRID_SIZE,
) -> np.ndarray:
    """Normalized occupancy grid, shape (height, width), values in [0, 1]."""
    return normalize(occupancy_counts(points, grid_size))


def build_palette(
    size: int = DEFAULT_PALETTE_SIZE,
    stops: Sequence[tuple[float, tuple[float, float, float, float]]] = DEFAULT_STOPS,
) -> np.ndarray:
    """Interpolate ``size`` RGBA colours between the given stops.

    Returns a float array of shape (size, 4).
    """
    if size < 2:
        raise ValueError(f"palette needs at least 2 colours, got {size}")
    if len(stops) < 2:
        raise ValueError("palette needs at least 2 stops")

    positions = np.array([pos for pos, _ in stops], dtype=np.float64)
    colors = np.array([color for _, color in stops], dtype=np.float64)
    if np.any(np.diff(positions) <= 0):
        raise ValueError("palette stops must be strictly increasing")

    samples = np.linspace(0.0, 1.0, size)
    palette = np.empty((size, 4), dtype=np.float64)
    for channel in range(4):
        palette[:, channel] = np.interp(samples, positions, colors[:, channel])
    return palette


def palette_indices(grid: np.ndarray, palette_size: int) -> np.ndarray:
    """Map normalized values to the nearest lower palette index."""
    idx = np.floor(grid * (palette_size - 1)).astype(np.int64)
    return np.clip(idx, 0, palette_size - 1)


def render(grid: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """One RGBA pixel per cell, uint8 array of shape (height, width, 4).

    Row 0 is the bottom sideline (y = 0); flip vertically for top-down
    image formats.
    """
    idx = palette_indices(grid, len(palette))
    rgba = np.rint(palette * 255.0).astype(np.uint8)
    return rgba[idx]
