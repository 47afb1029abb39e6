"""Built-in model families."""

from .polynomial import UnitIntervalPolynomial, UnitSquarePolynomial

__all__ = ["UnitIntervalPolynomial", "UnitSquarePolynomial"]
