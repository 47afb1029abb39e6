from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
from iminuit import Minuit

from .common import GradientFn, MinimizerResult, ObjectiveFn


class MinuitBackend:
    name = "minuit"

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
        """Minimize with iminuit's MIGRAD, feeding it the analytic gradient.

        Backend options:
        - strategy: Minuit strategy 0, 1 or 2 (default: 1)
        - tol: MIGRAD tolerance; the EDM target is 0.002 * tol * errordef
          (default: 0.1)
        - ncall: function-call budget (default: Minuit's own heuristic)
        - iterate: MIGRAD restarts after a failed attempt (default: 5)
        - hesse: run HESSE after a valid MIGRAD for a full covariance
          (default: False)
        - print_level: Minuit verbosity (default: 0)
        """
        m = Minuit(fcn, np.asarray(x0, dtype=float), grad=grad, name=tuple(names))
        m.errordef = float(errordef)
        strategy = int(options.get("strategy", 1))
        m.strategy = strategy
        m.tol = float(options.get("tol", 0.1))
        m.print_level = int(options.get("print_level", 0))

        lo, hi = bounds
        m.limits = [(float(a), float(b)) for a, b in zip(lo, hi)]

        ncall = options.get("ncall", None)
        m.migrad(
            ncall=None if ncall is None else int(ncall),
            iterate=int(options.get("iterate", 5)),
        )
        if bool(options.get("hesse", False)) and m.valid:
            m.hesse()

        fmin = m.fmin
        cov = None
        if m.covariance is not None:
            cov = np.array(m.covariance, dtype=float)

        return MinimizerResult(
            x=np.array(m.values, dtype=float),
            valid=bool(m.valid),
            edm=float(fmin.edm),
            fval=float(fmin.fval),
            cov=cov,
            nfcn=int(fmin.nfcn),
            ngrad=int(fmin.ngrad),
            message=_describe(fmin),
            stats={
                "backend": self.name,
                "strategy": strategy,
                "edm_goal": float(fmin.edm_goal),
                "accurate_covariance": bool(fmin.has_accurate_covar),
            },
        )


def _describe(fmin: Any) -> str:
    """Short human-readable verdict from a Minuit FMin."""
    if fmin.is_valid:
        return "valid minimum"
    problems: List[str] = []
    if fmin.has_reached_call_limit:
        problems.append("call limit reached")
    if fmin.is_above_max_edm:
        problems.append("EDM above maximum")
    if fmin.hesse_failed:
        problems.append("HESSE failed")
    if not fmin.has_posdef_covar:
        problems.append("covariance not positive definite")
    if not problems:
        problems.append("invalid minimum")
    return "; ".join(problems)
