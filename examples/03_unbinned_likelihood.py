"""
Example: unbinned likelihood fit of raw points.

The unbinned likelihood only sees the shape, so the amplitude is held at 1.
Leaving it free would fix it anyway, with a warning.
"""

import logging

import numpy as np

from gradfit import Fitter
from gradfit.models import UnitSquarePolynomial
from gradfit.sampling import sample_unbinned


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    truth = UnitSquarePolynomial([1.0, 1.0, 2.0, 3.0, 0.5])
    data = sample_unbinned(truth, 40101, rng=np.random.default_rng(111))

    fitter = Fitter.configure(
        UnitSquarePolynomial(),
        data,
        "likelihood",
        initial=[1.0, 1.0, 1.0, 2.0, 1.0],
        fixed=["amplitude"],
        minimizer_options={"hesse": True},
    )
    res = fitter.fit()
    print(res.summary(digits=4))

    # Shape coefficients with their covariance, propagated into the
    # normalization integral 1 + (x1 + y1)/2 + (x2 + y2)/3.
    v = res.correlated_values()
    norm = 1.0 + (v["x1"] + v["y1"]) / 2.0 + (v["x2"] + v["y2"]) / 3.0
    print("integral of the unnormalized shape:", norm)
    print("true value:", truth.normalization())


if __name__ == "__main__":
    main()
