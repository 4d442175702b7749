import numpy as np
import pytest

from gwcycle import (
    INTRINSIC_NAMES,
    ChainState,
    CycleConfig,
    PriorBounds,
    ProposalError,
    Variables,
    VaryType,
    covariance_eigenvector_jump,
    differential_evolution_extrinsic,
    differential_evolution_full,
    differential_evolution_intrinsic,
    ensemble_stretch_full,
    ensemble_walk_full,
    single_adapt_proposal,
    single_proposal,
)


def _changed(a, b):
    return [n for n in a.names() if a.get(n) != b.get(n)]


def _fill_buffer(chain, current, n, scale=0.01):
    rng = np.random.default_rng(99)
    for _ in range(n):
        p = current.copy()
        for name in p.non_fixed_scalar_names():
            p.set_scalar(name, p.get_scalar(name) + scale * rng.standard_normal())
        chain.buffer.append(p)


def test_single_moves_one_parameter(chain, cbc_params):
    for _ in range(50):
        proposed, ratio = single_proposal(chain, cbc_params)
        assert ratio == 0.0
        assert len(_changed(cbc_params, proposed)) <= 1
        assert proposed.get_scalar("f_ref") == 20.0


def test_single_step_scales_with_prior_width():
    steps = []
    for lo, hi in ((0.0, 1.0), (-4.5, 5.5)):
        chain = ChainState(rng=np.random.default_rng(8), priors=PriorBounds({"x": (lo, hi)}))
        params = Variables({"x": (0.5, VaryType.LINEAR)})
        steps.append([single_proposal(chain, params)[0].get_scalar("x") - 0.5 for _ in range(5)])
    np.testing.assert_allclose(steps[1], 10.0 * np.asarray(steps[0]), rtol=1e-9)


def test_single_sampling_prior_needs_known_name(priors):
    params = Variables({"logdistance": (5.0, VaryType.LINEAR)})
    chain = ChainState(
        rng=np.random.default_rng(0), priors=priors, config=CycleConfig(sampling_prior=True)
    )
    with pytest.raises(ProposalError):
        single_proposal(chain, params)


def test_single_adapt_marks_step(chain, cbc_params):
    proposed, ratio = single_adapt_proposal(chain, cbc_params)
    assert ratio == 0.0
    ctrl = chain.controller
    assert ctrl.adaptable_step
    assert ctrl.proposed_variable_name in cbc_params.non_fixed_scalar_names()
    assert _changed(cbc_params, proposed) in ([], [ctrl.proposed_variable_name])


def test_single_adapt_without_controller(priors, cbc_params):
    chain = ChainState(rng=np.random.default_rng(1), priors=priors)
    proposed, ratio = single_adapt_proposal(chain, cbc_params)
    assert proposed is not None
    assert ratio == 0.0


@pytest.mark.parametrize(
    "kernel",
    [differential_evolution_full, differential_evolution_intrinsic, differential_evolution_extrinsic],
)
def test_de_needs_two_points(chain, cbc_params, kernel):
    assert kernel(chain, cbc_params)[0] is None
    chain.buffer.append(cbc_params)
    assert kernel(chain, cbc_params)[0] is None


def test_de_subspaces(chain, cbc_params):
    _fill_buffer(chain, cbc_params, 10)

    proposed, ratio = differential_evolution_intrinsic(chain, cbc_params)
    assert ratio == 0.0
    assert set(_changed(cbc_params, proposed)) <= set(INTRINSIC_NAMES)

    proposed, ratio = differential_evolution_extrinsic(chain, cbc_params)
    assert ratio == 0.0
    assert not set(_changed(cbc_params, proposed)) & set(INTRINSIC_NAMES)

    proposed, _ = differential_evolution_full(chain, cbc_params)
    assert "f_ref" not in _changed(cbc_params, proposed)


def test_stretch_ratio(chain, cbc_params):
    chain.buffer.append(cbc_params)
    _fill_buffer(chain, cbc_params, 1, scale=0.1)
    other = chain.buffer[1]
    names = cbc_params.non_fixed_scalar_names()

    for _ in range(20):
        proposed, ratio = ensemble_stretch_full(chain, cbc_params)
        y, x, xp = (p.get_scalar("chirpmass") for p in (other, cbc_params, proposed))
        z = (xp - y) / (x - y)
        assert 1.0 / 3.0 < z < 3.0
        assert ratio == pytest.approx(len(names) * np.log(z), rel=1e-6, abs=1e-9)


def test_stretch_needs_distinct_point(chain, cbc_params):
    chain.buffer.append(cbc_params)
    chain.buffer.append(cbc_params)
    assert ensemble_stretch_full(chain, cbc_params)[0] is None


def test_stretch_skips_copies_of_current(chain, cbc_params, monkeypatch):
    for _ in range(3):
        chain.buffer.append(cbc_params)
    other = cbc_params.copy()
    other.set_scalar("chirpmass", cbc_params.get_scalar("chirpmass") + 1.0)
    chain.buffer.append(other)

    def _no_scan():
        raise AssertionError("buffer scanned in full")

    monkeypatch.setattr(chain.buffer, "points", _no_scan)
    proposed, ratio = ensemble_stretch_full(chain, cbc_params)
    assert proposed is not None
    assert np.isfinite(ratio)


def test_walk(chain, cbc_params):
    _fill_buffer(chain, cbc_params, 2)
    assert ensemble_walk_full(chain, cbc_params)[0] is None
    _fill_buffer(chain, cbc_params, 3)
    proposed, ratio = ensemble_walk_full(chain, cbc_params)
    assert ratio == 0.0
    assert _changed(cbc_params, proposed)


def test_covariance_eigenvector(chain, cbc_params):
    assert covariance_eigenvector_jump(chain, cbc_params)[0] is None
    n = len(cbc_params.non_fixed_scalar_names())
    chain.set_covariance(0.01 * np.eye(n))
    proposed, ratio = covariance_eigenvector_jump(chain, cbc_params)
    assert ratio == 0.0
    assert len(_changed(cbc_params, proposed)) == 1


def test_kernels_do_not_touch_current(chain, cbc_params):
    before = cbc_params.copy()
    _fill_buffer(chain, cbc_params, 5)
    for kernel in (single_proposal, differential_evolution_full, ensemble_stretch_full, ensemble_walk_full):
        kernel(chain, cbc_params)
    assert cbc_params.same_values(before)
