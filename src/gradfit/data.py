from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

import numpy as np

__all__ = ["BinData", "UnBinData"]


def _frozen(arr: Any, dtype=float) -> np.ndarray:
    """Private read-only copy of `arr`."""
    out = np.array(arr, dtype=dtype)
    out.setflags(write=False)
    return out


def _as_points(coords: Any) -> np.ndarray:
    """Normalize coordinates to shape (N, D)."""
    arr = np.asarray(coords, dtype=float)
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.ndim != 2:
        raise ValueError(f"coords must have shape (N, D); got {arr.shape}.")
    return arr


@dataclass(frozen=True)
class BinData:
    """Binned observations: one (coordinate, count, error, volume) row per bin.

    The expected count in bin i is ``scale * volumes[i] * model(coords[i])``.
    Arrays are copied and made read-only at construction.
    """

    coords: np.ndarray
    counts: np.ndarray
    errors: Optional[np.ndarray] = None
    volumes: Optional[np.ndarray] = None
    scale: float = 1.0

    def __post_init__(self) -> None:
        coords = _as_points(self.coords)
        n = coords.shape[0]

        counts = np.asarray(self.counts, dtype=float).reshape(-1)
        if counts.shape != (n,):
            raise ValueError(f"counts has {counts.size} entries; expected {n}.")

        if self.errors is None:
            errors = np.sqrt(np.clip(counts, 0.0, None))
        else:
            errors = np.broadcast_to(np.asarray(self.errors, dtype=float), (n,))
        if np.any(errors < 0) or not np.all(np.isfinite(errors)):
            raise ValueError("errors must be finite and non-negative.")

        if self.volumes is None:
            volumes = np.ones((n,), dtype=float)
        else:
            volumes = np.broadcast_to(np.asarray(self.volumes, dtype=float), (n,))
        if np.any(volumes <= 0):
            raise ValueError("bin volumes must be positive.")

        scale = float(self.scale)
        if not (np.isfinite(scale) and scale > 0):
            raise ValueError("scale must be finite and positive.")

        object.__setattr__(self, "coords", _frozen(coords))
        object.__setattr__(self, "counts", _frozen(counts))
        object.__setattr__(self, "errors", _frozen(errors))
        object.__setattr__(self, "volumes", _frozen(volumes))
        object.__setattr__(self, "scale", scale)

    @property
    def npoints(self) -> int:
        return int(self.coords.shape[0])

    @property
    def ndim(self) -> int:
        return int(self.coords.shape[1])

    def __len__(self) -> int:
        return self.npoints

    @staticmethod
    def from_histogram(
        counts: Any,
        edges: Sequence[Any],
        *,
        errors: Optional[Any] = None,
        scale: Optional[float] = None,
    ) -> "BinData":
        """Build BinData from an N-dimensional histogram.

        counts has shape (n_1, ..., n_D) and edges holds D arrays of n_k + 1 bin
        edges. Coordinates are bin centres, volumes the bin hyper-volumes.
        scale defaults to the total number of entries, so a model normalized to
        1 over the histogram range predicts the observed counts.
        """
        counts = np.asarray(counts, dtype=float)
        edges = [np.asarray(e, dtype=float) for e in edges]
        if counts.ndim != len(edges):
            raise ValueError(
                f"counts is {counts.ndim}-dimensional but {len(edges)} edge arrays were given."
            )
        for k, e in enumerate(edges):
            if e.shape != (counts.shape[k] + 1,):
                raise ValueError(
                    f"edges[{k}] must have {counts.shape[k] + 1} entries; got {e.size}."
                )

        centres = [0.5 * (e[:-1] + e[1:]) for e in edges]
        widths = [np.diff(e) for e in edges]
        grid = np.meshgrid(*centres, indexing="ij")
        wgrid = np.meshgrid(*widths, indexing="ij")
        coords = np.stack([g.reshape(-1) for g in grid], axis=1)
        volumes = np.prod(np.stack([w.reshape(-1) for w in wgrid], axis=0), axis=0)

        total = float(np.sum(counts))
        if scale is None:
            scale = total if total > 0 else 1.0

        err = None if errors is None else np.asarray(errors, dtype=float).reshape(-1)
        return BinData(
            coords=coords,
            counts=counts.reshape(-1),
            errors=err,
            volumes=volumes,
            scale=float(scale),
        )

    @staticmethod
    def from_samples(
        points: Any,
        bins: Any,
        range: Sequence[Tuple[float, float]],
        *,
        scale: Optional[float] = None,
    ) -> "BinData":
        """Histogram raw points (shape (N, D)) and wrap the result as BinData."""
        pts = _as_points(points)
        counts, edges = np.histogramdd(pts, bins=bins, range=range)
        return BinData.from_histogram(counts, edges, scale=scale)


@dataclass(frozen=True)
class UnBinData:
    """Unbinned observations: raw coordinate samples, optionally weighted."""

    coords: np.ndarray
    weights: Optional[np.ndarray] = field(default=None)

    def __post_init__(self) -> None:
        coords = _as_points(self.coords)
        n = coords.shape[0]
        if self.weights is None:
            weights = np.ones((n,), dtype=float)
        else:
            weights = np.broadcast_to(np.asarray(self.weights, dtype=float), (n,))
        if not np.all(np.isfinite(weights)):
            raise ValueError("weights must be finite.")
        object.__setattr__(self, "coords", _frozen(coords))
        object.__setattr__(self, "weights", _frozen(weights))

    @property
    def npoints(self) -> int:
        return int(self.coords.shape[0])

    @property
    def ndim(self) -> int:
        return int(self.coords.shape[1])

    def __len__(self) -> int:
        return self.npoints

    @staticmethod
    def from_points(*points: Sequence[float]) -> "UnBinData":
        """Build from individual points, e.g. ``UnBinData.from_points((x0, y0), (x1, y1))``."""
        if not points:
            raise ValueError("from_points() needs at least one point.")
        return UnBinData(coords=np.asarray(points, dtype=float))

    def append(self, *points: Sequence[float], weight: float = 1.0) -> "UnBinData":
        """Return a new UnBinData with `points` added at the end."""
        extra = _as_points(np.asarray(points, dtype=float))
        if extra.shape[1] != self.ndim:
            raise ValueError(
                f"points are {extra.shape[1]}-dimensional; data is {self.ndim}-dimensional."
            )
        return UnBinData(
            coords=np.concatenate([self.coords, extra], axis=0),
            weights=np.concatenate(
                [self.weights, np.full((extra.shape[0],), float(weight))]
            ),
        )
