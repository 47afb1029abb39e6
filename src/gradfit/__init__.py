"""gradfit public API."""
from .data import BinData, UnBinData
from .errors import ConfigurationError, GradFitError, NonFiniteObjectiveError
from .fitter import FitConfig, FitResult, FitState, Fitter
from .model import ParametricModel
from .objective import build_objective
from .params import ParameterSettings, ParameterSpec
from . import models, sampling

__all__ = [
    "BinData",
    "UnBinData",
    "ConfigurationError",
    "GradFitError",
    "NonFiniteObjectiveError",
    "FitConfig",
    "FitResult",
    "FitState",
    "Fitter",
    "ParametricModel",
    "build_objective",
    "ParameterSettings",
    "ParameterSpec",
    "models",
    "sampling",
]
