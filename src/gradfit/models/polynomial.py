from __future__ import annotations

import numpy as np

from ..model import ParametricModel


# --- Bernstein-style polynomials with a closed-form integral ----------------


class UnitSquarePolynomial(ParametricModel):
    """Normalized 2D polynomial on [0, 1] x [0, 1].

    g(x, y) = 1 + x1*u + x2*u^2 + y1*v + y2*v^2, with u = 1 - x, v = 1 - y.

    Parameters in the model
    -----------------------
    amplitude : integral of the normalized function over the unit square
    x1, x2    : linear/quadratic coefficients along x
    y1, y2    : linear/quadratic coefficients along y
    """

    ndim = 2
    npar = 5
    param_names = ("amplitude", "x1", "x2", "y1", "y2")
    domain = ((0.0, 1.0), (0.0, 1.0))

    def _shape(self, x, p):
        u = 1.0 - x[0]
        v = 1.0 - x[1]
        return 1.0 + p[1] * u + p[2] * u * u + p[3] * v + p[4] * v * v

    def _shape_gradient(self, x, p):
        u = 1.0 - x[0]
        v = 1.0 - x[1]
        return (0.0, u, u * u, v, v * v)

    def _integral(self, p):
        return 1.0 + (p[1] + p[3]) / 2.0 + (p[2] + p[4]) / 3.0

    def _integral_gradient(self, p):
        return np.array([0.0, 0.5, 1.0 / 3.0, 0.5, 1.0 / 3.0])


class UnitIntervalPolynomial(ParametricModel):
    """Normalized quadratic on [0, 1]: g(x) = 1 + c1*u + c2*u^2, u = 1 - x."""

    ndim = 1
    npar = 3
    param_names = ("amplitude", "c1", "c2")
    domain = ((0.0, 1.0),)

    def _shape(self, x, p):
        u = 1.0 - x[0]
        return 1.0 + p[1] * u + p[2] * u * u

    def _shape_gradient(self, x, p):
        u = 1.0 - x[0]
        return (0.0, u, u * u)

    def _integral(self, p):
        return 1.0 + p[1] / 2.0 + p[2] / 3.0

    def _integral_gradient(self, p):
        return np.array([0.0, 0.5, 1.0 / 3.0])
