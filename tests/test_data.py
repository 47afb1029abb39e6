import numpy as np
import pytest

from gradfit import BinData, UnBinData


def test_bindata_defaults() -> None:
    data = BinData(coords=[[0.1, 0.2], [0.3, 0.4]], counts=[4.0, 9.0])

    assert data.npoints == 2
    assert data.ndim == 2
    assert len(data) == 2
    np.testing.assert_allclose(data.errors, [2.0, 3.0])
    np.testing.assert_allclose(data.volumes, [1.0, 1.0])
    assert data.scale == 1.0


def test_bindata_arrays_are_read_only_copies() -> None:
    counts = np.array([1.0, 2.0, 3.0])
    data = BinData(coords=[0.1, 0.5, 0.9], counts=counts)
    counts[0] = 100.0

    assert data.counts[0] == 1.0
    assert data.coords.shape == (3, 1)
    with pytest.raises(ValueError):
        data.counts[0] = 5.0


def test_bindata_from_histogram_centres_and_volumes() -> None:
    counts = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    edges = [np.array([0.0, 0.5, 1.0]), np.array([0.0, 0.25, 0.5, 1.0])]

    data = BinData.from_histogram(counts, edges)

    assert data.npoints == 6
    assert data.scale == pytest.approx(21.0)
    # Row-major order: the second axis varies fastest.
    np.testing.assert_allclose(data.coords[0], [0.25, 0.125])
    np.testing.assert_allclose(data.coords[2], [0.25, 0.75])
    np.testing.assert_allclose(data.coords[3], [0.75, 0.125])
    np.testing.assert_allclose(data.counts, counts.reshape(-1))
    np.testing.assert_allclose(data.volumes[:3], [0.125, 0.125, 0.25])
    assert float(np.sum(data.volumes)) == pytest.approx(1.0)


def test_bindata_from_samples_counts_every_point() -> None:
    rng = np.random.default_rng(1)
    pts = rng.uniform(0.0, 1.0, size=(500, 2))

    data = BinData.from_samples(pts, bins=(5, 4), range=((0.0, 1.0), (0.0, 1.0)))

    assert data.npoints == 20
    assert float(np.sum(data.counts)) == 500.0
    assert data.scale == 500.0


def test_bindata_validation() -> None:
    with pytest.raises(ValueError):
        BinData(coords=[0.1, 0.2], counts=[1.0])
    with pytest.raises(ValueError):
        BinData(coords=[0.1, 0.2], counts=[1.0, 2.0], errors=[-1.0, 1.0])
    with pytest.raises(ValueError):
        BinData(coords=[0.1, 0.2], counts=[1.0, 2.0], volumes=[0.0, 1.0])
    with pytest.raises(ValueError):
        BinData(coords=[0.1, 0.2], counts=[1.0, 2.0], scale=0.0)
    with pytest.raises(ValueError):
        BinData.from_histogram(np.ones((2, 2)), [np.linspace(0, 1, 3)])


def test_unbindata_from_points_and_append() -> None:
    data = UnBinData.from_points((0.1, 0.2), (0.3, 0.4))
    more = data.append((0.5, 0.6), weight=2.0)

    assert data.npoints == 2
    assert more.npoints == 3
    np.testing.assert_allclose(more.coords[-1], [0.5, 0.6])
    np.testing.assert_allclose(more.weights, [1.0, 1.0, 2.0])
    with pytest.raises(ValueError):
        data.append((0.1, 0.2, 0.3))


def test_unbindata_rejects_non_finite_weights() -> None:
    with pytest.raises(ValueError):
        UnBinData(coords=[0.1, 0.2], weights=[1.0, np.nan])
