import numpy as np
import pytest

from gwcycle import DifferentialEvolutionBuffer, Variables, max_autocorrelation_length


def _point(x):
    return Variables({"x": (float(x), 1), "y": (2.0 * x, 1)})


def test_offer_thins_by_skip():
    buf = DifferentialEvolutionBuffer(max_size=100, skip=3)
    stored = [buf.offer(_point(i)) for i in range(10)]
    assert sum(stored) == 4
    assert [p.get_scalar("x") for p in buf.points()] == [0.0, 3.0, 6.0, 9.0]


def test_max_size_drops_oldest():
    buf = DifferentialEvolutionBuffer(max_size=3)
    for i in range(5):
        buf.append(_point(i))
    assert len(buf) == 3
    assert buf[0].get_scalar("x") == 2.0


def test_append_stores_copy():
    buf = DifferentialEvolutionBuffer()
    p = _point(1)
    buf.append(p)
    p.set_scalar("x", 9.0)
    assert buf[0].get_scalar("x") == 1.0


def test_to_array_step():
    buf = DifferentialEvolutionBuffer()
    for i in range(5):
        buf.append(_point(i))
    arr = buf.to_array(["x", "y"], step=2)
    assert arr.shape == (3, 2)
    np.testing.assert_array_equal(arr[:, 0], [0.0, 2.0, 4.0])


def test_acl_white_noise_is_short():
    x = np.random.default_rng(0).standard_normal((2000, 2))
    acl = max_autocorrelation_length(x)
    assert np.isfinite(acl)
    assert acl < 3.0


def test_acl_infinite_when_window_exceeded():
    assert max_autocorrelation_length(np.arange(100.0)) == np.inf
    assert max_autocorrelation_length(np.zeros((1, 3))) == np.inf


def test_effective_sample_size_assumes_thinned():
    buf = DifferentialEvolutionBuffer(skip=2)
    for i in range(20):
        buf.offer(_point(i))
    assert buf.effective_sample_size(["x"]) == 20


def test_bad_sizes_rejected():
    with pytest.raises(ValueError):
        DifferentialEvolutionBuffer(max_size=0)
    with pytest.raises(ValueError):
        DifferentialEvolutionBuffer(skip=0)
