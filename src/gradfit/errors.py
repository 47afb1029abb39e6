from __future__ import annotations

from typing import Optional

import numpy as np


class GradFitError(Exception):
    """Base class for gradfit errors."""


class ConfigurationError(GradFitError, ValueError):
    """Inconsistent fit setup: wrong sizes, unknown names, bad combinations."""


class NonFiniteObjectiveError(GradFitError, FloatingPointError):
    """An objective value or gradient came out NaN/Inf.

    Attributes
    ----------
    quantity:
        "value" or "gradient".
    index:
        Position (in the dataset) of the first observation with a non-finite
        contribution, or None if no single observation could be blamed.
    parameters:
        Full parameter vector the objective was evaluated at.
    """

    def __init__(
        self,
        quantity: str,
        index: Optional[int],
        parameters: np.ndarray,
    ) -> None:
        self.quantity = quantity
        self.index = index
        self.parameters = np.array(parameters, dtype=float)
        where = "unknown observation" if index is None else f"observation {index}"
        super().__init__(
            f"Non-finite objective {quantity} at {where} "
            f"(parameters={np.array2string(self.parameters, precision=6)})"
        )
