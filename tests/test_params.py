import numpy as np
import pytest

from gradfit import ConfigurationError, ParameterSettings
from gradfit.models import UnitSquarePolynomial

START = [50.0, 1.0, 1.0, 2.0, 1.0]


def test_from_model_uses_stored_parameters_by_default() -> None:
    model = UnitSquarePolynomial(START)
    settings = ParameterSettings.from_model(model)

    assert settings.names == ("amplitude", "x1", "x2", "y1", "y2")
    np.testing.assert_array_equal(settings.values, START)
    assert settings.free_names == list(settings.names)


def test_from_model_needs_initial_values() -> None:
    with pytest.raises(ConfigurationError):
        ParameterSettings.from_model(UnitSquarePolynomial())
    with pytest.raises(ConfigurationError):
        ParameterSettings.from_model(UnitSquarePolynomial(), initial=[1.0, 2.0])


@pytest.mark.parametrize(
    "fixed",
    [
        [True, False, False, False, False],
        ["amplitude"],
        [0],
        {"amplitude": None},
    ],
)
def test_fixed_forms_are_equivalent(fixed) -> None:
    settings = ParameterSettings.from_model(UnitSquarePolynomial(), START, fixed)

    assert settings.free_names == ["x1", "x2", "y1", "y2"]
    np.testing.assert_array_equal(settings.free_indices, [1, 2, 3, 4])
    assert settings["amplitude"].value == 50.0


def test_fixed_mapping_sets_value() -> None:
    settings = ParameterSettings.from_model(UnitSquarePolynomial(), START, {"y2": 0.5})
    assert settings["y2"].fixed
    assert settings["y2"].value == 0.5


def test_fixed_flags_length_checked() -> None:
    with pytest.raises(ConfigurationError):
        ParameterSettings.from_model(UnitSquarePolynomial(), START, [True, False])


def test_builders_are_pure() -> None:
    base = ParameterSettings.from_model(UnitSquarePolynomial(), START)
    fixed = base.fix(x1=None, x2=3.0)
    released = fixed.release("x1")
    bounded = released.bound(y1=(0.0, None))
    moved = bounded.set_value(amplitude=2.0)

    assert base.free_names == list(base.names)
    assert fixed.free_names == ["amplitude", "y1", "y2"]
    assert fixed["x2"].value == 3.0
    assert released.free_names == ["amplitude", "x1", "y1", "y2"]
    assert bounded["y1"].bounds == (0.0, None)
    assert moved["amplitude"].value == 2.0
    assert bounded["amplitude"].value == 50.0


def test_unknown_names_and_bad_bounds() -> None:
    settings = ParameterSettings.from_model(UnitSquarePolynomial(), START)
    with pytest.raises(ConfigurationError):
        settings.fix(nope=1.0)
    with pytest.raises(ConfigurationError):
        settings.name_of(9)
    with pytest.raises(ConfigurationError):
        settings.bound(x1=(2.0, 1.0))


def test_full_vector_and_free_bounds() -> None:
    settings = (
        ParameterSettings.from_model(UnitSquarePolynomial(), START)
        .fix(amplitude=1.0)
        .bound(x1=(-1.0, 5.0), y2=(None, 4.0))
    )

    full = settings.full_vector([10.0, 11.0, 12.0, 13.0])
    lo, hi = settings.free_bounds()

    np.testing.assert_array_equal(full, [1.0, 10.0, 11.0, 12.0, 13.0])
    np.testing.assert_array_equal(lo, [-1.0, -np.inf, -np.inf, -np.inf])
    np.testing.assert_array_equal(hi, [5.0, np.inf, np.inf, 4.0])
    with pytest.raises(ConfigurationError):
        settings.full_vector([1.0, 2.0])
