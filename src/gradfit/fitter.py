from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union
from warnings import warn

import numpy as np
import uncertainties

from .backends import MinimizerResult, get_backend
from .errors import ConfigurationError, NonFiniteObjectiveError
from .model import ParametricModel
from .objective import (
    DEFAULT_MIN_PREDICTION,
    Objective,
    build_objective,
    resolve_objective,
)
from .params import ParameterSettings

logger = logging.getLogger(__name__)

__all__ = ["FitConfig", "FitResult", "FitState", "Fitter"]


class FitState(str, Enum):
    CONFIGURING = "configuring"
    FITTING = "fitting"
    CONVERGED = "converged"
    FAILED = "failed"


@dataclass(frozen=True)
class FitConfig:
    """How to fit: objective family, minimizer and summation settings."""

    objective: str = "likelihood"
    minimizer: str = "minuit"
    minimizer_options: Dict[str, Any] = field(default_factory=dict)
    # None: one lane over the whole dataset; 1: one observation at a time.
    lane_width: Optional[int] = None
    workers: int = 1
    min_prediction: float = DEFAULT_MIN_PREDICTION

    def objective_options(self) -> Dict[str, Any]:
        return {
            "lane_width": self.lane_width,
            "workers": self.workers,
            "min_prediction": self.min_prediction,
        }


@dataclass(frozen=True)
class FitResult:
    """Outcome of one fit; immutable once produced."""

    parameters: np.ndarray
    param_names: Tuple[str, ...]
    free_names: Tuple[str, ...]
    valid: bool
    edm: float
    fval: float
    state: FitState
    errors: np.ndarray  # nan when no covariance; 0 for fixed parameters
    cov: Optional[np.ndarray] = None  # free-parameter covariance
    nfcn: int = 0
    ngrad: int = 0
    message: str = ""
    minimizer: str = ""
    objective: str = ""
    stats: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: Union[str, int]) -> float:
        """Fitted value by parameter name or index."""
        if isinstance(name, str):
            try:
                i = self.param_names.index(name)
            except ValueError as e:
                raise KeyError(name) from e
        else:
            i = int(name)
        return float(self.parameters[i])

    def as_dict(self) -> Dict[str, float]:
        return {n: float(v) for n, v in zip(self.param_names, self.parameters)}

    def error(self, name: str) -> float:
        return float(self.errors[self.param_names.index(name)])

    def correlated_values(self) -> Dict[str, Any]:
        """Parameters as `uncertainties` numbers carrying the fit covariance.

        Fixed parameters are returned as plain floats.
        """
        if self.cov is None:
            raise ValueError("No covariance available for this fit.")
        free_vals = [self[n] for n in self.free_names]
        corr = uncertainties.correlated_values(free_vals, np.asarray(self.cov, dtype=float))
        out: Dict[str, Any] = self.as_dict()
        out.update(dict(zip(self.free_names, corr)))
        return out

    def summary(self, digits: int = 4) -> str:
        """Return a human-readable summary string for the fit."""
        lines = [
            f"FitResult(objective={self.objective!r}, minimizer={self.minimizer!r}, "
            f"state={self.state.value!r})",
            f"  {'valid':>12s}: {self.valid}",
            f"  {'fval':>12s}: {self.fval:.{digits + 4}g}",
            f"  {'edm':>12s}: {self.edm:.{digits}g}",
            f"  {'nfcn':>12s}: {self.nfcn}",
        ]
        for n, v, e in zip(self.param_names, self.parameters, self.errors):
            if n not in self.free_names:
                lines.append(f"  {n:>12s}: {float(v):.{digits}g} (fixed)")
            elif not np.isfinite(e):
                lines.append(f"  {n:>12s}: {float(v):.{digits}g}")
            else:
                lines.append(f"  {n:>12s}: {float(v):.{digits}g} ± {float(e):.{digits}g}")
        if self.message:
            lines.append(f"  {'message':>12s}: {self.message}")
        return "\n".join(lines)


class _FreeProjection:
    """Objective seen by the minimizer: free parameters in, free gradient out.

    Value and gradient come from one objective pass and are cached per point,
    since minimizers usually ask for both at the same parameters.
    """

    def __init__(self, objective: Objective, settings: ParameterSettings) -> None:
        self.objective = objective
        self.settings = settings
        self.free_indices = settings.free_indices
        self.last_good = settings.values
        self._theta: Optional[np.ndarray] = None
        self._value = 0.0
        self._grad = np.zeros((self.free_indices.size,), dtype=float)

    def _update(self, theta_free: Any) -> None:
        theta_free = np.asarray(theta_free, dtype=float)
        if self._theta is not None and np.array_equal(theta_free, self._theta):
            return
        full = self.settings.full_vector(theta_free)
        value, grad = self.objective.value_and_gradient(full)
        self._theta = theta_free.copy()
        self._value = value
        self._grad = grad[self.free_indices]
        self.last_good = full

    def value(self, theta_free: Any) -> float:
        self._update(theta_free)
        return self._value

    def gradient(self, theta_free: Any) -> np.ndarray:
        self._update(theta_free)
        return self._grad.copy()


class Fitter:
    """Drive one model/data pair through a gradient fit.

    States: CONFIGURING -> FITTING -> CONVERGED | FAILED.
    """

    def __init__(
        self,
        model: ParametricModel,
        data: Any,
        settings: ParameterSettings,
        config: FitConfig,
    ) -> None:
        self.model = model
        self.data = data
        self.config = config
        self.objective_kind = resolve_objective(config.objective, data)
        get_backend(config.minimizer)
        if int(model.ndim) != int(data.ndim):
            raise ConfigurationError(
                f"Model is {model.ndim}-dimensional but data is {data.ndim}-dimensional."
            )
        if len(settings) != int(model.npar):
            raise ConfigurationError(
                f"Model has {model.npar} parameters but settings describe {len(settings)}."
            )

        a = model.amplitude_index
        if self.objective_kind == "unbinned" and a is not None and not settings[a].fixed:
            name = settings.name_of(a)
            warn(
                f"Unbinned likelihood cannot constrain the overall normalization; "
                f"fixing {name!r} to 1.0.",
                UserWarning,
                stacklevel=3,
            )
            settings = settings.fix(**{name: 1.0})

        self.settings = settings
        self.objective: Optional[Objective] = None
        self._state = FitState.CONFIGURING
        self._result: Optional[FitResult] = None

    # ---- constructor ----
    @classmethod
    def configure(
        cls,
        model: ParametricModel,
        data: Any,
        objective: Optional[str] = None,
        initial: Optional[Sequence[float]] = None,
        fixed: Any = None,
        *,
        bounds: Optional[Mapping[Any, Tuple[Optional[float], Optional[float]]]] = None,
        minimizer: Optional[str] = None,
        minimizer_options: Optional[Mapping[str, Any]] = None,
        config: Optional[FitConfig] = None,
    ) -> "Fitter":
        """Validate a fit setup and return a Fitter ready to run.

        Arguments left as None fall back to `config` (or FitConfig defaults).
        `fixed` accepts a bool sequence, names/indices, or a name->value map.
        """
        cfg = config or FitConfig()
        overrides: Dict[str, Any] = {}
        if objective is not None:
            overrides["objective"] = objective
        if minimizer is not None:
            overrides["minimizer"] = minimizer
        if minimizer_options is not None:
            overrides["minimizer_options"] = dict(minimizer_options)
        if overrides:
            cfg = replace(cfg, **overrides)

        settings = ParameterSettings.from_model(model, initial, fixed, bounds)
        return cls(model, data, settings, cfg)

    # ---- state ----
    @property
    def state(self) -> FitState:
        return self._state

    @property
    def result(self) -> Optional[FitResult]:
        return self._result

    # ---- builders (only while configuring) ----
    def fix(self, **values: Optional[float]) -> "Fitter":
        """Fix parameters (None keeps the current value)."""
        self._require_configuring()
        self.settings = self.settings.fix(**values)
        return self

    def release(self, *names: str) -> "Fitter":
        self._require_configuring()
        if self.objective_kind == "unbinned":
            amp = self.model.amplitude_index
            if amp is not None and self.settings.name_of(amp) in names:
                raise ConfigurationError(
                    "The amplitude must stay fixed for unbinned likelihood fits."
                )
        self.settings = self.settings.release(*names)
        return self

    def bound(self, **bounds: Tuple[Optional[float], Optional[float]]) -> "Fitter":
        self._require_configuring()
        self.settings = self.settings.bound(**bounds)
        return self

    def set_value(self, **values: float) -> "Fitter":
        self._require_configuring()
        self.settings = self.settings.set_value(**values)
        return self

    def _require_configuring(self) -> None:
        if self._state is not FitState.CONFIGURING:
            raise ConfigurationError(
                f"Parameter settings can only change while configuring (state={self._state.value})."
            )

    # ---- fitting ----
    def fit(self) -> FitResult:
        """Run the minimizer to convergence or failure and return the result.

        A Fitter runs once; configure a new one to fit again.
        """
        if self._state is not FitState.CONFIGURING:
            raise ConfigurationError(
                f"fit() can only run once, from the configuring state (state={self._state.value})."
            )
        settings = self.settings
        cfg = self.config
        self._state = FitState.FITTING

        objective = build_objective(
            self.objective_kind, self.model, self.data, **cfg.objective_options()
        )
        self.objective = objective
        backend = get_backend(cfg.minimizer)
        free_names = settings.free_names
        projection = _FreeProjection(objective, settings)

        logger.info(
            "Fitting %s (%d points) with %s; free parameters: %s",
            objective.name,
            objective.npoints,
            backend.name,
            ", ".join(free_names) or "none",
        )

        try:
            if free_names:
                lo, hi = settings.free_bounds()
                seeds = settings.values[settings.free_indices]
                theta0 = np.clip(seeds, lo, hi)
                clipped = [n for n, a, b in zip(free_names, seeds, theta0) if a != b]
                if clipped:
                    warn(
                        "Clipped start values into bounds for: " + ", ".join(clipped),
                        UserWarning,
                        stacklevel=2,
                    )
                mres = backend.minimize(
                    projection.value,
                    projection.gradient,
                    theta0,
                    names=free_names,
                    bounds=(lo, hi),
                    errordef=objective.errordef,
                    options=dict(cfg.minimizer_options),
                )
            else:
                mres = MinimizerResult(
                    x=np.empty((0,), dtype=float),
                    valid=True,
                    edm=0.0,
                    fval=objective.value(settings.values),
                    nfcn=1,
                    message="no free parameters",
                )
        except NonFiniteObjectiveError as exc:
            logger.warning("Fit failed: %s", exc)
            result = self._failed_result(settings, objective, projection, exc)
        except Exception:
            self._state = FitState.FAILED
            raise
        else:
            result = self._result_from(settings, objective, backend.name, mres)
            if result.valid:
                logger.info("Fit converged: fval=%.10g edm=%.3g", result.fval, result.edm)
            else:
                logger.warning("Fit did not converge: %s", result.message)

        self.model.set_parameters(result.parameters)
        self._result = result
        self._state = result.state
        return result

    def _stats(self, objective: Objective, extra: Mapping[str, Any]) -> Dict[str, Any]:
        stats = dict(extra)
        stats.update(
            {
                "npoints": objective.npoints,
                "excluded": objective.excluded,
                "evaluations": objective.nevaluations,
                "degenerate_total": objective.total_degenerate,
                "degenerate_last": objective.last_degenerate,
            }
        )
        return stats

    def _result_from(
        self,
        settings: ParameterSettings,
        objective: Objective,
        minimizer: str,
        mres: MinimizerResult,
    ) -> FitResult:
        free_idx = settings.free_indices
        params = settings.full_vector(mres.x)
        errors = np.zeros((settings.values.size,), dtype=float)
        if mres.cov is None:
            errors[free_idx] = np.nan
        else:
            cov = np.asarray(mres.cov, dtype=float)
            errors[free_idx] = np.sqrt(np.clip(np.diag(cov), 0.0, np.inf))

        valid = bool(mres.valid)
        return FitResult(
            parameters=params,
            param_names=settings.names,
            free_names=tuple(settings.free_names),
            valid=valid,
            edm=float(mres.edm),
            fval=float(mres.fval),
            state=FitState.CONVERGED if valid else FitState.FAILED,
            errors=errors,
            cov=None if mres.cov is None else np.asarray(mres.cov, dtype=float),
            nfcn=int(mres.nfcn),
            ngrad=int(mres.ngrad),
            message=str(mres.message),
            minimizer=minimizer,
            objective=objective.name,
            stats=self._stats(objective, mres.stats),
        )

    def _failed_result(
        self,
        settings: ParameterSettings,
        objective: Objective,
        projection: _FreeProjection,
        exc: NonFiniteObjectiveError,
    ) -> FitResult:
        params = np.array(projection.last_good, dtype=float)
        errors = np.zeros((params.size,), dtype=float)
        errors[settings.free_indices] = np.nan
        return FitResult(
            parameters=params,
            param_names=settings.names,
            free_names=tuple(settings.free_names),
            valid=False,
            edm=float("nan"),
            fval=float("nan"),
            state=FitState.FAILED,
            errors=errors,
            message=str(exc),
            minimizer=self.config.minimizer,
            objective=objective.name,
            stats=self._stats(
                objective,
                {
                    "error": "non-finite",
                    "quantity": exc.quantity,
                    "observation": exc.index,
                    "parameters_at_failure": exc.parameters,
                },
            ),
        )
