from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import math
from scipy.optimize import minimize

from .common import GradientFn, MinimizerResult, ObjectiveFn


class ScipyMinimizeBackend:
    name = "scipy.minimize"

    def minimize(
        self,
        fcn: ObjectiveFn,
        grad: GradientFn,
        x0: np.ndarray,
        *,
        names: Sequence[str],
        bounds: Tuple[np.ndarray, np.ndarray],
        errordef: float,
        options: Dict[str, Any],
    ) -> MinimizerResult:
        """Minimize using scipy.optimize.minimize with the analytic gradient.

        Backend options:
        - method: optimizer name (default: BFGS, or L-BFGS-B when any bound
          is finite)
        - options: dict forwarded to scipy.optimize.minimize
        - tol: Minuit-style tolerance; the EDM target is
          0.002 * tol * errordef (default: 0.1)
        - edm_max: explicit EDM target, overrides tol
        - cov_step: relative step for the numeric Hessian used when the
          method returns no inverse Hessian (default: 1e-5)

        EDM is estimated as 0.5 * g^T H^-1 g at the solution. The minimum is
        valid when the EDM is below target and no iteration limit was hit.
        """
        lo, hi = bounds
        scipy_bounds = []
        for i in range(int(np.size(x0))):
            lo_i = float(lo[i])
            hi_i = float(hi[i])
            lo_b = None if (not math.isfinite(lo_i)) else lo_i
            hi_b = None if (not math.isfinite(hi_i)) else hi_i
            scipy_bounds.append((lo_b, hi_b))
        bounded = any(b != (None, None) for b in scipy_bounds)

        method = str(options.get("method", "L-BFGS-B" if bounded else "BFGS"))
        scipy_opts = options.get("options", None) or {}
        tol = float(options.get("tol", 0.1))
        edm_max = float(options.get("edm_max", 0.002 * tol * errordef))
        cov_step = options.get("cov_step", None)

        res = minimize(
            lambda v: float(fcn(np.asarray(v, dtype=float))),
            np.asarray(x0, dtype=float),
            jac=lambda v: np.asarray(grad(np.asarray(v, dtype=float)), dtype=float),
            method=method,
            bounds=scipy_bounds if bounded else None,
            options=scipy_opts,
        )

        theta = np.asarray(res.x, dtype=float)
        g = np.asarray(grad(theta), dtype=float)

        hess_inv = _inverse_hessian(res)
        if hess_inv is None:
            hess = _numdiff_hessian(grad, theta, cov_step)
            hess_inv = np.linalg.pinv(0.5 * (hess + hess.T))

        edm = float(0.5 * g @ hess_inv @ g)
        # status 1: iteration / evaluation limit for BFGS and L-BFGS-B.
        limit_hit = int(getattr(res, "status", 0)) == 1
        valid = bool(np.isfinite(edm) and 0.0 <= edm < edm_max and not limit_hit)

        return MinimizerResult(
            x=theta,
            valid=valid,
            edm=edm,
            fval=float(res.fun),
            cov=2.0 * float(errordef) * hess_inv,
            nfcn=int(getattr(res, "nfev", 0)),
            ngrad=int(getattr(res, "njev", 0)),
            message=str(res.message),
            stats={
                "backend": self.name,
                "method": method,
                "edm_goal": edm_max,
                "success": bool(res.success),
            },
        )


def _inverse_hessian(res: Any) -> Optional[np.ndarray]:
    """Dense inverse Hessian from a scipy result, if the method provides one."""
    hess_inv = getattr(res, "hess_inv", None)
    if hess_inv is None:
        return None
    if hasattr(hess_inv, "todense"):
        hess_inv = hess_inv.todense()
    return np.asarray(hess_inv, dtype=float)


def _numdiff_hessian(grad: GradientFn, x0: np.ndarray, step: Optional[float]) -> np.ndarray:
    """Central-difference Hessian from the analytic gradient."""
    x0 = np.asarray(x0, dtype=float)
    npar = int(x0.shape[0])
    step = 1e-5 if step is None else float(step)
    eps = step * (np.abs(x0) + 1.0)

    hess = np.zeros((npar, npar), dtype=float)
    for i in range(npar):
        ei = np.zeros(npar, dtype=float)
        ei[i] = eps[i]
        gp = np.asarray(grad(x0 + ei), dtype=float)
        gm = np.asarray(grad(x0 - ei), dtype=float)
        hess[:, i] = (gp - gm) / (2.0 * eps[i])
    return hess
