"""Synthetic data from a model, with explicitly passed random state."""

from __future__ import annotations

from typing import Any, Optional, Union

import numpy as np

from .data import BinData, UnBinData
from .model import ParametricModel

RandomLike = Union[None, int, np.random.Generator]


def _envelope(model: ParametricModel, npoints: int = 65) -> float:
    """Largest model value on a regular grid over the domain (endpoints included)."""
    axes = [np.linspace(lo, hi, npoints) for lo, hi in model.domain]
    grid = np.meshgrid(*axes, indexing="ij")
    x = np.stack([g.reshape(-1) for g in grid], axis=0)
    f = np.asarray(model.evaluate(x), dtype=float)
    if np.any(f < 0) or not np.all(np.isfinite(f)):
        raise ValueError("Model is negative or non-finite on its domain; cannot sample it.")
    return float(np.max(f))


def sample(
    model: ParametricModel,
    n: int,
    *,
    rng: RandomLike = None,
    fmax: Optional[float] = None,
) -> np.ndarray:
    """Draw `n` points (shape (n, D)) distributed like `model` on its domain.

    Accept-reject against a flat envelope. `fmax` bounds the model from above;
    by default it is taken from a grid scan with a 5% margin, which is exact
    for models whose maximum sits on the grid (e.g. at a domain corner).
    Raises ValueError if a drawn point evaluates above `fmax`.
    """
    n = int(n)
    if n < 0:
        raise ValueError("n must be >= 0.")
    rng = np.random.default_rng(rng)
    if fmax is None:
        fmax = 1.05 * _envelope(model)
    lo = np.array([d[0] for d in model.domain], dtype=float)
    hi = np.array([d[1] for d in model.domain], dtype=float)

    out = np.empty((n, model.ndim), dtype=float)
    filled = 0
    while filled < n:
        batch = max(2 * (n - filled), 1024)
        u = lo + (hi - lo) * rng.random((batch, model.ndim))
        y = fmax * rng.random(batch)
        f = np.asarray(model.evaluate(u.T))
        if np.any(f > fmax):
            raise ValueError(
                f"Model reaches {float(np.max(f)):.6g} above the envelope fmax={fmax:.6g}; "
                "pass a larger fmax."
            )
        keep = u[f > y]
        take = min(keep.shape[0], n - filled)
        out[filled : filled + take] = keep[:take]
        filled += take
    return out


def sample_unbinned(
    model: ParametricModel, n: int, *, rng: RandomLike = None
) -> UnBinData:
    """`n` sampled points wrapped as UnBinData."""
    return UnBinData(coords=sample(model, n, rng=rng))


def sample_binned(
    model: ParametricModel,
    n: int,
    bins: Any,
    *,
    rng: RandomLike = None,
) -> BinData:
    """Histogram `n` sampled points over the model domain into BinData."""
    return BinData.from_samples(sample(model, n, rng=rng), bins, range=model.domain)
