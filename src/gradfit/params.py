from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ConfigurationError

__all__ = ["ParameterSpec", "ParameterSettings"]

Key = Union[str, int]


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    value: float
    fixed: bool = False
    bounds: Optional[Tuple[Optional[float], Optional[float]]] = None


@dataclass(frozen=True)
class ParameterSettings:
    """Initial values, fixed flags and bounds for every model parameter.

    Builders are pure: each returns a new ParameterSettings.
    """

    params: Tuple[ParameterSpec, ...]

    # ---- constructors ----
    @staticmethod
    def from_model(
        model: Any,
        initial: Optional[Sequence[float]] = None,
        fixed: Any = None,
        bounds: Optional[Mapping[Key, Tuple[Optional[float], Optional[float]]]] = None,
    ) -> "ParameterSettings":
        """Build settings for `model`.

        `initial` defaults to the model's stored parameters. `fixed` may be a
        bool sequence of length npar, a collection of names/indices, or a
        mapping name/index -> fixed value.
        """
        names = tuple(model.param_names)
        if initial is None:
            initial = model.parameters
            if initial is None:
                raise ConfigurationError(
                    "No initial parameter values: pass initial=... or call "
                    "model.set_parameters() first."
                )
        values = np.array(initial, dtype=float).reshape(-1)
        if values.shape != (len(names),):
            raise ConfigurationError(
                f"Model has {len(names)} parameters but {values.size} initial values were given."
            )

        settings = ParameterSettings(
            tuple(ParameterSpec(name=n, value=float(v)) for n, v in zip(names, values))
        )
        if fixed is not None:
            settings = settings._apply_fixed(fixed)
        if bounds:
            settings = settings.bound(**{settings.name_of(k): b for k, b in bounds.items()})
        return settings

    # ---- lookups ----
    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.params)

    @property
    def values(self) -> np.ndarray:
        return np.array([p.value for p in self.params], dtype=float)

    @property
    def fixed_mask(self) -> np.ndarray:
        return np.array([p.fixed for p in self.params], dtype=bool)

    @property
    def free_names(self) -> List[str]:
        return [p.name for p in self.params if not p.fixed]

    @property
    def free_indices(self) -> np.ndarray:
        return np.flatnonzero(~self.fixed_mask)

    def name_of(self, key: Key) -> str:
        """Resolve a parameter name or positional index to its name."""
        if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
            if not 0 <= int(key) < len(self.params):
                raise ConfigurationError(f"Parameter index {key} out of range.")
            return self.params[int(key)].name
        if key not in self.names:
            raise ConfigurationError(
                f"Unknown parameter {key!r}. Available: {self.names}"
            )
        return str(key)

    def __getitem__(self, key: Key) -> ParameterSpec:
        name = self.name_of(key)
        return self.params[self.names.index(name)]

    def __len__(self) -> int:
        return len(self.params)

    # ---- builders ----
    def fix(self, **fixed: Optional[float]) -> "ParameterSettings":
        """Fix parameters; a value of None keeps the current value."""
        m = self._by_name(fixed)
        for k, v in fixed.items():
            value = m[k].value if v is None else float(v)
            m[k] = replace(m[k], fixed=True, value=value)
        return self._rebuilt(m)

    def release(self, *names: str) -> "ParameterSettings":
        """Make parameters free again."""
        m = self._by_name(names)
        for k in names:
            m[k] = replace(m[k], fixed=False)
        return self._rebuilt(m)

    def bound(self, **bounds: Tuple[Optional[float], Optional[float]]) -> "ParameterSettings":
        """Attach (lo, hi) limits; None on either side means unbounded."""
        m = self._by_name(bounds)
        for k, b in bounds.items():
            if b is None:
                m[k] = replace(m[k], bounds=None)
                continue
            lo, hi = b
            if lo is not None and hi is not None and not float(hi) > float(lo):
                raise ConfigurationError(f"Invalid bounds for {k!r}: require hi > lo.")
            m[k] = replace(m[k], bounds=(lo, hi))
        return self._rebuilt(m)

    def set_value(self, **values: float) -> "ParameterSettings":
        """Change initial (or fixed) values."""
        m = self._by_name(values)
        for k, v in values.items():
            m[k] = replace(m[k], value=float(v))
        return self._rebuilt(m)

    # ---- free/fixed projection ----
    def full_vector(self, theta_free: Sequence[float]) -> np.ndarray:
        """Expand a free-parameter vector to the full vector, substituting fixed values."""
        theta_free = np.asarray(theta_free, dtype=float).reshape(-1)
        idx = self.free_indices
        if theta_free.shape != idx.shape:
            raise ConfigurationError(
                f"Expected {idx.size} free parameter values; got {theta_free.size}."
            )
        full = self.values
        full[idx] = theta_free
        return full

    def free_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (lo, hi) arrays of bounds for free parameters."""
        lo: List[float] = []
        hi: List[float] = []
        for p in self.params:
            if p.fixed:
                continue
            b = p.bounds
            if b is None:
                lo.append(-np.inf)
                hi.append(np.inf)
            else:
                lo.append(-np.inf if b[0] is None else float(b[0]))
                hi.append(np.inf if b[1] is None else float(b[1]))
        return (np.array(lo, dtype=float), np.array(hi, dtype=float))

    # ---- internals ----
    def _apply_fixed(self, fixed: Any) -> "ParameterSettings":
        if isinstance(fixed, Mapping):
            return self.fix(**{self.name_of(k): v for k, v in fixed.items()})

        items = list(fixed)
        if items and all(isinstance(f, (bool, np.bool_)) for f in items):
            if len(items) != len(self.params):
                raise ConfigurationError(
                    f"fixed flags have length {len(items)}; model has {len(self.params)} parameters."
                )
            names = [p.name for p, f in zip(self.params, items) if f]
        else:
            names = [self.name_of(k) for k in items]
        return self.fix(**{n: None for n in names})

    def _by_name(self, keys: Iterable[str]) -> dict:
        m = {p.name: p for p in self.params}
        for k in keys:
            if k not in m:
                raise ConfigurationError(
                    f"Unknown parameter {k!r}. Available: {self.names}"
                )
        return m

    def _rebuilt(self, m: Mapping[str, ParameterSpec]) -> "ParameterSettings":
        return replace(self, params=tuple(m[n] for n in self.names))
