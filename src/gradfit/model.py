from __future__ import annotations

from abc import ABC, abstractmethod
import copy
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError


class ParametricModel(ABC):
    """A normalized parametric function with exact parameter gradients.

    A model is written as ``f(x; p) = p[a] * g(x; p) / I(p)`` where ``g`` is an
    unnormalized shape, ``I`` its closed-form integral over ``domain`` and
    ``a = amplitude_index``. Subclasses provide ``g``, ``dg/dp``, ``I`` and
    ``dI/dp``; the base class composes value and gradient from them.

    Coordinates are indexed by component (``x[0] .. x[ndim-1]``). Each
    component is either a scalar (one point) or a 1D array of K values (a lane
    of K points). Subclass formulas must be plain arithmetic on the components
    so the same expression serves both modes.
    """

    ndim: int = 0
    npar: int = 0
    param_names: Tuple[str, ...] = ()
    domain: Tuple[Tuple[float, float], ...] = ()
    amplitude_index: Optional[int] = 0

    def __init__(self, parameters: Optional[Sequence[float]] = None) -> None:
        self._parameters: Optional[np.ndarray] = None
        self._norm: Optional[float] = None
        if parameters is not None:
            self.set_parameters(parameters)

    # ---- closed-form pieces (per family) ----
    @abstractmethod
    def _shape(self, x: Any, p: np.ndarray) -> Any:
        """Unnormalized shape g(x; p)."""

    @abstractmethod
    def _shape_gradient(self, x: Any, p: np.ndarray) -> Sequence[Any]:
        """dg/dp[k] for every parameter (zero for the amplitude)."""

    @abstractmethod
    def _integral(self, p: np.ndarray) -> float:
        """Integral of g over the domain."""

    @abstractmethod
    def _integral_gradient(self, p: np.ndarray) -> np.ndarray:
        """dI/dp[k] for every parameter, shape (npar,)."""

    # ---- parameters ----
    def set_parameters(self, p: Sequence[float]) -> None:
        """Store a copy of `p` and recompute the normalization for it."""
        p = self._checked_parameters(p)
        self._parameters = p
        self._norm = float(self._integral(p))

    @property
    def parameters(self) -> Optional[np.ndarray]:
        if self._parameters is None:
            return None
        return self._parameters.copy()

    def normalization(self, p: Optional[Sequence[float]] = None) -> float:
        """Return I(p); the cached value when `p` is omitted."""
        return self._resolve(p)[1]

    def clone(self) -> "ParametricModel":
        """Independent copy sharing no mutable state with this model."""
        return copy.deepcopy(self)

    # ---- evaluation ----
    def evaluate(self, x: Any, p: Optional[Sequence[float]] = None) -> Any:
        """Normalized value at `x`.

        Without `p` the stored parameters and their cached normalization are
        used. With an explicit `p` the normalization is computed for that `p`.
        """
        x = self._coords(x)
        p, integral = self._resolve(p)
        return self._amplitude(p) * self._shape(x, p) / integral

    __call__ = evaluate

    def evaluate_shape(self, x: Any, p: Optional[Sequence[float]] = None) -> Any:
        """Unnormalized shape g(x; p) at explicit or stored parameters."""
        x = self._coords(x)
        if p is None:
            p = self._resolve(None)[0]
        else:
            p = self._checked_parameters(p)
        return self._shape(x, p)

    def parameter_gradient(
        self,
        x: Any,
        p: Optional[Sequence[float]] = None,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """Analytic gradient of `evaluate` w.r.t. every parameter.

        Returns an array of shape ``(npar,) + lane_shape``; when `out` is given
        the result is written into it and `out` is returned.
        """
        x = self._coords(x)
        p, integral = self._resolve(p)
        g = self._shape(x, p)
        dg = self._shape_gradient(x, p)
        di = self._integral_gradient(p)
        amp = self._amplitude(p)
        a = self.amplitude_index

        lane_shape = np.shape(g)
        if out is None:
            out = np.empty((self.npar,) + lane_shape, dtype=float)
        elif out.shape != (self.npar,) + lane_shape:
            raise ValueError(
                f"out has shape {out.shape}; expected {(self.npar,) + lane_shape}."
            )

        for k in range(self.npar):
            if k == a:
                out[k] = g / integral
            else:
                out[k] = amp * (dg[k] / integral - g * di[k] / (integral * integral))
        return out

    def parameter_derivative(
        self, x: Any, ipar: int, p: Optional[Sequence[float]] = None
    ) -> Any:
        """Single component of `parameter_gradient`."""
        if not 0 <= int(ipar) < self.npar:
            raise IndexError(f"Parameter index {ipar} out of range for npar={self.npar}.")
        return self.parameter_gradient(x, p)[int(ipar)]

    # ---- helpers ----
    def _amplitude(self, p: np.ndarray) -> float:
        if self.amplitude_index is None:
            return 1.0
        return float(p[self.amplitude_index])

    def _checked_parameters(self, p: Sequence[float]) -> np.ndarray:
        arr = np.array(p, dtype=float).reshape(-1)
        if arr.shape != (self.npar,):
            raise ConfigurationError(
                f"{type(self).__name__} expects {self.npar} parameters; got {arr.size}."
            )
        return arr

    def _resolve(self, p: Optional[Sequence[float]]) -> Tuple[np.ndarray, float]:
        if p is None:
            if self._parameters is None or self._norm is None:
                raise ConfigurationError(
                    f"{type(self).__name__} has no parameters; call set_parameters() first."
                )
            return self._parameters, self._norm
        arr = self._checked_parameters(p)
        if self._parameters is not None and np.array_equal(arr, self._parameters):
            return self._parameters, self._norm
        return arr, float(self._integral(arr))

    def _coords(self, x: Any) -> Any:
        if isinstance(x, np.ndarray):
            arr = x
        elif np.ndim(x) == 0:
            arr = np.asarray([x], dtype=float)
        else:
            arr = np.asarray(x, dtype=float)
        if arr.ndim == 0:
            arr = arr.reshape((1,))
        if arr.shape[0] != self.ndim:
            raise ValueError(
                f"{type(self).__name__} is {self.ndim}-dimensional; "
                f"coordinate has leading size {arr.shape[0]}."
            )
        return arr

    def __repr__(self) -> str:
        if self._parameters is None:
            return f"{type(self).__name__}(<unset>)"
        body = ", ".join(
            f"{n}={v:.6g}" for n, v in zip(self.param_names, self._parameters)
        )
        return f"{type(self).__name__}({body})"
