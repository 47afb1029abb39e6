from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, Tuple

import numpy as np

ObjectiveFn = Callable[[np.ndarray], float]
GradientFn = Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True)
class MinimizerResult:
    """Normalized result returned by any minimizer backend."""

    x: np.ndarray  # free parameters, shape (F,)
    valid: bool
    edm: float
    fval: float
    cov: Optional[np.ndarray] = None  # free-parameter covariance, (F,F)
    nfcn: int = 0
    ngrad: int = 0
    message: str = ""
    stats: Dict[str, Any] = field(default_factory=dict)


class Minimizer(Protocol):
    """Backend protocol: minimize one objective over the free parameters."""

    name: str

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
    ) -> MinimizerResult: ...
