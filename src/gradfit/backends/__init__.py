"""Minimizer backends + registry."""

from __future__ import annotations

from typing import Dict

from ..errors import ConfigurationError
from .common import Minimizer, MinimizerResult
from .minuit import MinuitBackend
from .scipy_minimize import ScipyMinimizeBackend

_BACKENDS: Dict[str, Minimizer] = {
    "minuit": MinuitBackend(),
    "scipy.minimize": ScipyMinimizeBackend(),
}


def get_backend(name: str) -> Minimizer:
    """Return a minimizer backend by name."""
    try:
        return _BACKENDS[name]
    except KeyError as e:
        raise ConfigurationError(
            f"Unknown minimizer {name!r}. Available: {tuple(_BACKENDS.keys())}"
        ) from e


AVAILABLE_BACKENDS = tuple(_BACKENDS.keys())

__all__ = [
    "AVAILABLE_BACKENDS",
    "Minimizer",
    "MinimizerResult",
    "get_backend",
]
