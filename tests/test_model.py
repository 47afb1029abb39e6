import numpy as np
import pytest

from gradfit import ConfigurationError
from gradfit.models import UnitIntervalPolynomial, UnitSquarePolynomial

TRUE_2D = [1.0, 1.0, 2.0, 3.0, 0.5]


def _random_params(rng, npar: int) -> np.ndarray:
    p = rng.uniform(0.0, 3.0, size=npar)
    p[0] = rng.uniform(0.5, 2.0)
    return p


def _central_difference(model, x, p, k: int) -> float:
    h = 1e-6 * (abs(p[k]) + 1.0)
    up = np.array(p, dtype=float)
    dn = np.array(p, dtype=float)
    up[k] += h
    dn[k] -= h
    return (model.evaluate(x, up) - model.evaluate(x, dn)) / (2.0 * h)


@pytest.mark.parametrize("cls", [UnitSquarePolynomial, UnitIntervalPolynomial])
def test_gradient_matches_finite_differences(cls) -> None:
    rng = np.random.default_rng(3)
    model = cls()
    for _ in range(20):
        p = _random_params(rng, model.npar)
        x = rng.uniform(0.0, 1.0, size=model.ndim)
        model.set_parameters(p)
        grad = model.parameter_gradient(x)
        assert grad.shape == (model.npar,)
        for k in range(model.npar):
            fd = _central_difference(model, x, p, k)
            assert grad[k] == pytest.approx(fd, rel=1e-5, abs=1e-8)


def test_normalized_integral_equals_amplitude() -> None:
    integrate = pytest.importorskip("scipy.integrate")
    model = UnitSquarePolynomial([2.5, 1.0, 2.0, 3.0, 0.5])

    total, _ = integrate.dblquad(
        lambda y, x: model.evaluate([x, y]), 0.0, 1.0, 0.0, 1.0
    )

    assert total == pytest.approx(2.5, rel=1e-8)


def test_one_dimensional_integral_equals_amplitude() -> None:
    integrate = pytest.importorskip("scipy.integrate")
    model = UnitIntervalPolynomial([0.7, -0.5, 2.0])

    total, _ = integrate.quad(lambda x: model.evaluate(x), 0.0, 1.0)

    assert total == pytest.approx(0.7, rel=1e-8)


def test_normalization_closed_form() -> None:
    model = UnitSquarePolynomial(TRUE_2D)
    assert model.normalization() == pytest.approx(1.0 + 4.0 / 2.0 + 2.5 / 3.0)


def test_lane_matches_scalar_evaluation() -> None:
    rng = np.random.default_rng(7)
    model = UnitSquarePolynomial(TRUE_2D)
    x = rng.uniform(0.0, 1.0, size=(2, 9))

    values = model.evaluate(x)
    grads = model.parameter_gradient(x)

    assert values.shape == (9,)
    assert grads.shape == (5, 9)
    for j in range(9):
        assert values[j] == model.evaluate(x[:, j])
        np.testing.assert_array_equal(grads[:, j], model.parameter_gradient(x[:, j]))


def test_set_parameters_is_idempotent() -> None:
    model = UnitSquarePolynomial(TRUE_2D)
    x = np.array([0.3, 0.8])
    before = model.evaluate(x)

    model.set_parameters(TRUE_2D)
    model.set_parameters(TRUE_2D)

    assert model.evaluate(x) == before
    np.testing.assert_array_equal(model.parameters, TRUE_2D)


def test_explicit_parameters_use_their_own_normalization() -> None:
    other = [1.0, 0.0, 0.0, 0.0, 0.0]
    model = UnitSquarePolynomial(TRUE_2D)
    x = np.array([0.2, 0.4])

    # A flat shape normalized over the unit square is 1 everywhere.
    assert model.evaluate(x, other) == pytest.approx(1.0)
    assert model.normalization(other) == pytest.approx(1.0)
    # The stored parameters are untouched.
    np.testing.assert_array_equal(model.parameters, TRUE_2D)
    assert model.evaluate(x) == pytest.approx(UnitSquarePolynomial(TRUE_2D).evaluate(x))


def test_gradient_with_explicit_parameters_matches_stored() -> None:
    x = np.array([0.6, 0.1])
    a = UnitSquarePolynomial(TRUE_2D)
    b = UnitSquarePolynomial([1.0, 0.0, 0.0, 0.0, 0.0])

    np.testing.assert_allclose(b.parameter_gradient(x, TRUE_2D), a.parameter_gradient(x))


def test_amplitude_derivative_is_unit_normalized_shape() -> None:
    model = UnitSquarePolynomial([3.0, 1.0, 2.0, 3.0, 0.5])
    x = np.array([0.25, 0.75])
    assert model.parameter_derivative(x, 0) == pytest.approx(model.evaluate(x) / 3.0)


def test_parameter_derivative_matches_gradient_component() -> None:
    model = UnitSquarePolynomial(TRUE_2D)
    x = np.array([0.4, 0.9])
    grad = model.parameter_gradient(x)
    for k in range(model.npar):
        assert model.parameter_derivative(x, k) == grad[k]
    with pytest.raises(IndexError):
        model.parameter_derivative(x, 5)


def test_gradient_out_buffer() -> None:
    model = UnitSquarePolynomial(TRUE_2D)
    x = np.full((2, 4), 0.5)
    out = np.zeros((5, 4))

    ret = model.parameter_gradient(x, out=out)

    assert ret is out
    np.testing.assert_allclose(out, model.parameter_gradient(x))
    with pytest.raises(ValueError):
        model.parameter_gradient(x, out=np.zeros((5, 3)))


def test_unset_parameters_raise() -> None:
    model = UnitSquarePolynomial()
    assert model.parameters is None
    with pytest.raises(ConfigurationError):
        model.evaluate([0.5, 0.5])
    with pytest.raises(ConfigurationError):
        model.parameter_gradient([0.5, 0.5])


def test_wrong_parameter_count_raises() -> None:
    model = UnitSquarePolynomial()
    with pytest.raises(ConfigurationError):
        model.set_parameters([1.0, 2.0, 3.0])
    with pytest.raises(ConfigurationError):
        UnitSquarePolynomial(TRUE_2D).evaluate([0.5, 0.5], [1.0, 2.0])


def test_wrong_coordinate_dimension_raises() -> None:
    model = UnitSquarePolynomial(TRUE_2D)
    with pytest.raises(ValueError):
        model.evaluate([0.1, 0.2, 0.3])


def test_one_dimensional_model_accepts_plain_scalar() -> None:
    model = UnitIntervalPolynomial([1.0, 1.0, 1.0])
    assert model.evaluate(0.5) == pytest.approx(model.evaluate([0.5]))


def test_clone_is_independent() -> None:
    model = UnitSquarePolynomial(TRUE_2D)
    copy = model.clone()
    copy.set_parameters([2.0, 0.0, 0.0, 0.0, 0.0])

    np.testing.assert_array_equal(model.parameters, TRUE_2D)
    assert copy.evaluate([0.5, 0.5]) == pytest.approx(2.0)


def test_parameters_property_returns_copy() -> None:
    model = UnitSquarePolynomial(TRUE_2D)
    p = model.parameters
    p[0] = 99.0
    assert model.parameters[0] == 1.0


def test_repr_names_parameters() -> None:
    assert "unset" in repr(UnitSquarePolynomial())
    assert "y2=0.5" in repr(UnitSquarePolynomial(TRUE_2D))
