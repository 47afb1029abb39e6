"""Objective functions (least squares, binned and unbinned likelihood).

Every objective takes the full parameter vector, pushes it into the model with
``set_parameters`` and sums per-observation terms into a scalar value and a
gradient of length ``model.npar``. Summation can run as one lane over the whole
dataset, in lanes of ``lane_width`` observations, one observation at a time
(``lane_width=1``), and over ``workers`` threads with one model clone each.

Degenerate predictions (below ``min_prediction``) contribute the value at the
floor and no gradient; they are counted, not raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
import logging
from typing import Any, Dict, List, Optional, Tuple, Type

import numpy as np

from .data import BinData, UnBinData
from .errors import ConfigurationError, NonFiniteObjectiveError
from .model import ParametricModel

logger = logging.getLogger(__name__)

__all__ = [
    "Objective",
    "LeastSquaresObjective",
    "PoissonLikelihoodObjective",
    "UnbinnedLikelihoodObjective",
    "build_objective",
    "resolve_objective",
    "AVAILABLE_OBJECTIVES",
    "DEFAULT_MIN_PREDICTION",
]

DEFAULT_MIN_PREDICTION = float(np.finfo(float).tiny)


class _BlockSum:
    """Partial sums from one contiguous block of observations."""

    __slots__ = ("value", "grad", "degenerate", "bad_value", "bad_grad")

    def __init__(self, npar: int, want_grad: bool) -> None:
        self.value = 0.0
        self.grad = np.zeros((npar,), dtype=float) if want_grad else None
        self.degenerate = 0
        self.bad_value: Optional[int] = None
        self.bad_grad: Optional[int] = None


class Objective(ABC):
    """Scalar objective over a dataset plus its analytic gradient."""

    name: str = ""
    errordef: float = 1.0
    data_type: Type[Any] = object
    excluded: int = 0

    def __init__(
        self,
        model: ParametricModel,
        data: Any,
        *,
        lane_width: Optional[int] = None,
        workers: int = 1,
        min_prediction: float = DEFAULT_MIN_PREDICTION,
    ) -> None:
        if not isinstance(data, self.data_type):
            raise ConfigurationError(
                f"{self.name} objective needs {self.data_type.__name__}; "
                f"got {type(data).__name__}."
            )
        if int(model.ndim) != int(data.ndim):
            raise ConfigurationError(
                f"Model is {model.ndim}-dimensional but data is {data.ndim}-dimensional."
            )
        if lane_width is not None and int(lane_width) < 1:
            raise ConfigurationError("lane_width must be >= 1 or None.")
        if int(workers) < 1:
            raise ConfigurationError("workers must be >= 1.")
        if not float(min_prediction) > 0.0:
            raise ConfigurationError("min_prediction must be positive.")

        self.model = model
        self.data = data
        self.lane_width = None if lane_width is None else int(lane_width)
        self.workers = int(workers)
        self.min_prediction = float(min_prediction)

        self.nevaluations = 0
        self.last_degenerate = 0
        self.total_degenerate = 0

        self._positions = self._active_positions()
        self._clones: List[ParametricModel] = [
            model.clone() for _ in range(self.workers - 1)
        ]

    # ---- per-family pieces ----
    def _active_positions(self) -> np.ndarray:
        """Dataset indices that take part in the sum."""
        return np.arange(self.data.npoints)

    @abstractmethod
    def _terms(
        self, model: ParametricModel, x: Any, i: Any, want_grad: bool
    ) -> Tuple[Any, Optional[np.ndarray], Any]:
        """Per-observation (value terms, gradient terms, degenerate mask).

        `x` is a scalar coordinate (shape (D,)) with an integer `i`, or a lane
        (shape (D, K)) with an index array `i`.
        """

    # ---- public API ----
    @property
    def npoints(self) -> int:
        """Number of observations entering the sum."""
        return int(self._positions.size)

    def value(self, theta: Any) -> float:
        return self._evaluate(theta, want_grad=False)[0]

    __call__ = value

    def gradient(self, theta: Any) -> np.ndarray:
        return self._evaluate(theta, want_grad=True)[1]

    def value_and_gradient(self, theta: Any) -> Tuple[float, np.ndarray]:
        return self._evaluate(theta, want_grad=True)

    # ---- summation ----
    def _evaluate(self, theta: Any, want_grad: bool) -> Tuple[float, Any]:
        theta = np.asarray(theta, dtype=float)
        self.model.set_parameters(theta)
        for clone in self._clones:
            clone.set_parameters(theta)

        blocks = np.array_split(self._positions, self.workers)
        models = [self.model] + self._clones
        if self.workers == 1:
            parts = [self._block_sum(self.model, blocks[0], want_grad)]
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                futures = [
                    executor.submit(self._block_sum, m, b, want_grad)
                    for m, b in zip(models, blocks)
                ]
                parts = [f.result() for f in futures]

        value = 0.0
        grad = np.zeros((self.model.npar,), dtype=float) if want_grad else None
        degenerate = 0
        for part in parts:
            if part.bad_value is not None:
                raise NonFiniteObjectiveError("value", part.bad_value, theta)
            if part.bad_grad is not None:
                raise NonFiniteObjectiveError("gradient", part.bad_grad, theta)
            value += part.value
            if want_grad:
                grad += part.grad
            degenerate += part.degenerate

        if not np.isfinite(value):
            raise NonFiniteObjectiveError("value", None, theta)
        if want_grad and not np.all(np.isfinite(grad)):
            raise NonFiniteObjectiveError("gradient", None, theta)

        self.nevaluations += 1
        self.last_degenerate = degenerate
        self.total_degenerate += degenerate
        if degenerate:
            logger.debug(
                "%s: %d degenerate observation(s) at parameters %s",
                self.name,
                degenerate,
                theta,
            )
        logger.debug("%s: value=%.12g", self.name, value)
        return float(value), grad

    def _block_sum(
        self, model: ParametricModel, positions: np.ndarray, want_grad: bool
    ) -> _BlockSum:
        out = _BlockSum(model.npar, want_grad)
        n = int(positions.size)
        if n == 0:
            return out
        step = n if self.lane_width is None else self.lane_width
        coords = self.data.coords

        for start in range(0, n, step):
            idx = positions[start : start + step]
            if self.lane_width == 1:
                i = int(idx[0])
                vt, gt, deg = self._terms(model, coords[i], i, want_grad)
            else:
                vt, gt, deg = self._terms(model, coords[idx].T, idx, want_grad)

            vt = np.atleast_1d(vt)
            ok = np.isfinite(vt)
            if not np.all(ok):
                out.bad_value = int(np.atleast_1d(idx)[np.flatnonzero(~ok)[0]])
                return out
            out.value += float(np.sum(vt))
            out.degenerate += int(np.count_nonzero(deg))

            if want_grad:
                gt = np.asarray(gt, dtype=float).reshape((model.npar, -1))
                okg = np.all(np.isfinite(gt), axis=0)
                if not np.all(okg):
                    out.bad_grad = int(np.atleast_1d(idx)[np.flatnonzero(~okg)[0]])
                    return out
                out.grad += np.sum(gt, axis=1)
        return out


class LeastSquaresObjective(Objective):
    """Sum over bins of (n - mu)^2 / sigma^2 with mu = scale * volume * f(x).

    Bins with zero error (by default: empty bins) are left out of the sum.
    """

    name = "least_squares"
    errordef = 1.0
    data_type = BinData

    def _active_positions(self) -> np.ndarray:
        keep = np.flatnonzero(self.data.errors > 0.0)
        self.excluded = int(self.data.npoints - keep.size)
        if self.excluded:
            logger.debug("%s: excluding %d zero-error bin(s)", self.name, self.excluded)
        return keep

    def _terms(self, model, x, i, want_grad):
        d = self.data
        w = 1.0 / (d.errors[i] * d.errors[i])
        dmu = d.scale * d.volumes[i]
        resid = d.counts[i] - dmu * model.evaluate(x)
        value = resid * resid * w
        grad = None
        if want_grad:
            grad = (-2.0 * resid * w * dmu) * model.parameter_gradient(x)
        return value, grad, False


class PoissonLikelihoodObjective(Objective):
    """Binned Poisson negative log-likelihood, -sum(n log mu - mu)."""

    name = "poisson"
    errordef = 0.5
    data_type = BinData

    def _terms(self, model, x, i, want_grad):
        d = self.data
        n = d.counts[i]
        dmu = d.scale * d.volumes[i]
        mu = dmu * model.evaluate(x)
        deg = mu < self.min_prediction
        mu_safe = np.where(deg, self.min_prediction, mu)
        value = mu_safe - n * np.log(mu_safe)
        grad = None
        if want_grad:
            # n / mu only where mu is above the floor; n / tiny overflows.
            ratio = np.divide(n, mu_safe, out=np.zeros_like(mu_safe), where=~deg)
            coef = np.where(deg, 0.0, (1.0 - ratio) * dmu)
            grad = np.where(deg, 0.0, coef * model.parameter_gradient(x))
        return value, grad, deg


class UnbinnedLikelihoodObjective(Objective):
    """Unbinned negative log-likelihood, -sum(w log f(x))."""

    name = "unbinned"
    errordef = 0.5
    data_type = UnBinData

    def _terms(self, model, x, i, want_grad):
        w = self.data.weights[i]
        f = model.evaluate(x)
        deg = f < self.min_prediction
        f_safe = np.where(deg, self.min_prediction, f)
        value = -w * np.log(f_safe)
        grad = None
        if want_grad:
            inv = np.divide(w, f_safe, out=np.zeros_like(f_safe), where=~deg)
            grad = np.where(deg, 0.0, -inv * model.parameter_gradient(x))
        return value, grad, deg


_OBJECTIVES: Dict[str, Type[Objective]] = {
    "least_squares": LeastSquaresObjective,
    "chi2": LeastSquaresObjective,
    "poisson": PoissonLikelihoodObjective,
    "unbinned": UnbinnedLikelihoodObjective,
}

AVAILABLE_OBJECTIVES = tuple(_OBJECTIVES.keys()) + ("likelihood",)


def resolve_objective(kind: str, data: Any) -> str:
    """Map an objective name to its registry key for `data`.

    "likelihood" picks the binned or unbinned likelihood from the data type.
    Least squares is only defined for binned data.
    """
    kind = str(kind).lower().strip()
    if kind == "likelihood":
        if isinstance(data, BinData):
            kind = "poisson"
        elif isinstance(data, UnBinData):
            kind = "unbinned"
        else:
            raise ConfigurationError(
                f"Cannot build a likelihood for data of type {type(data).__name__}."
            )
    if kind not in _OBJECTIVES:
        raise ConfigurationError(
            f"Unknown objective {kind!r}. Available: {AVAILABLE_OBJECTIVES}"
        )
    if _OBJECTIVES[kind] is LeastSquaresObjective and isinstance(data, UnBinData):
        raise ConfigurationError(
            "Least-squares fits need binned data; use a likelihood fit for UnBinData."
        )
    return kind


def build_objective(
    kind: str, model: ParametricModel, data: Any, **options: Any
) -> Objective:
    """Return the objective `kind` for `model` and `data`."""
    return _OBJECTIVES[resolve_objective(kind, data)](model, data, **options)
