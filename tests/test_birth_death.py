import numpy as np
import pytest

from gwcycle import (
    AdaptiveController,
    AdaptiveControllerConfig,
    ChainState,
    GlitchContext,
    GlitchData,
    GlitchPrior,
    PriorBounds,
    ProposalError,
    Variables,
    empty_glitch_params,
    get_component,
    glitch_amplitude_draw,
    glitch_morlet_jump,
    glitch_reverse_jump,
    initialize_glitch_sum,
    literal_glitch_sum,
    log_component_prior,
    log_glitch_amplitude_density,
    morlet_template,
    set_component,
    update_wavelet_sum,
    validate_glitch_data,
)

N, DT = 256, 1.0 / 256.0


def _data(rng):
    nb = N // 2 + 1
    fd = rng.standard_normal(nb) + 1j * rng.standard_normal(nb)
    return GlitchData(fd_data=fd, psd=np.ones(nb), delta_t=DT, n_samples=N, f_low=20.0, f_high=120.0)


def _context(n_det=1):
    rng = np.random.default_rng(11)
    prior = GlitchPrior(t0=(0.2, 0.8), f0=(30.0, 80.0), Q=(3.0, 10.0), dim_max=20)
    return GlitchContext(data=[_data(rng) for _ in range(n_det)], prior=prior)


def _chain(ctx, params, adapt=False, seed=0):
    ctrl = AdaptiveController.init(AdaptiveControllerConfig(no_adapt=not adapt), params)
    return ChainState(rng=np.random.default_rng(seed), priors=PriorBounds(), glitch=ctx, controller=ctrl)


def _params(ctx, n_slots=None):
    p = Variables()
    empty_glitch_params(ctx, p, n_slots)
    return p


def test_validate_glitch_data():
    ctx = _context()
    validate_glitch_data(ctx)
    ctx.data[0].psd = np.ones(10)
    ctx.prior.dim_max = 0
    with pytest.raises(ValueError) as err:
        validate_glitch_data(ctx)
    assert "psd" in str(err.value)
    assert "dimension" in str(err.value)


def test_template_support():
    data = _context().data[0]
    h = morlet_template(data, 0.5, 50.0, 5.0, 1.0, 0.0)
    assert h.shape == (N // 2 + 1,)
    assert np.all(h[:20] == 0)
    assert np.all(h[121:] == 0)
    assert np.any(h[20:100] != 0)


def test_wavelet_sum_add_remove():
    ctx = _context()
    p = _params(ctx, 3)
    set_component(p, 0, 0, (0.5, 50.0, 5.0, 2.0, 1.0))
    fd = p.get_matrix("morlet_FD")
    update_wavelet_sum(ctx, p, fd, 0, 0, 1)
    assert np.any(fd != 0)
    update_wavelet_sum(ctx, p, fd, 0, 0, -1)
    np.testing.assert_allclose(fd, 0.0, atol=1e-12)
    with pytest.raises(ValueError):
        update_wavelet_sum(ctx, p, fd, 0, 0, 2)


def test_initialize_matches_literal_sum():
    ctx = _context(2)
    p = _params(ctx, 3)
    set_component(p, 0, 0, (0.5, 50.0, 5.0, 2.0, 1.0))
    set_component(p, 1, 0, (0.3, 40.0, 8.0, 1.0, 0.0))
    set_component(p, 1, 1, (0.6, 70.0, 4.0, 3.0, 2.0))
    p.set("glitch_size", np.array([1, 2]))
    initialize_glitch_sum(ctx, p)
    np.testing.assert_allclose(p.get_matrix("morlet_FD"), literal_glitch_sum(ctx, p))
    assert np.any(p.get_matrix("morlet_FD")[1] != 0)


def test_amplitude_prior():
    rng = np.random.default_rng(2)
    for _ in range(50):
        A = glitch_amplitude_draw(rng, 5.0, 50.0)
        assert A > 0
        assert np.isfinite(log_glitch_amplitude_density(A, 5.0, 50.0))
    assert log_glitch_amplitude_density(0.0, 5.0, 50.0) == -np.inf


def test_death_at_lower_boundary():
    ctx = _context()
    params = _params(ctx)
    chain = _chain(ctx, params)
    declined = 0
    for _ in range(20):
        proposed, ratio = glitch_reverse_jump(chain, params)
        if proposed is None:
            declined += 1
            assert ratio == 0.0
        else:
            assert proposed.get_vector("glitch_size").sum() == 1
    assert declined > 0
    assert params.get_vector("glitch_size").sum() == 0


def test_birth_then_death_cancels():
    ctx = _context()
    params = _params(ctx)
    chain = _chain(ctx, params)

    for _ in range(100):
        born, r_birth = glitch_reverse_jump(chain, params)
        if born.get_vector("glitch_size")[0] == 1:
            break
    assert r_birth == pytest.approx(-log_component_prior(ctx.prior, born, 0, 0))

    for _ in range(100):
        dead, r_death = glitch_reverse_jump(chain, born)
        if dead.get_vector("glitch_size")[0] == 0:
            break
    assert r_birth + r_death == pytest.approx(0.0, abs=1e-9)
    assert dead.same_values(params)


def test_birth_beyond_slots_raises():
    ctx = _context()
    params = _params(ctx, n_slots=1)
    set_component(params, 0, 0, (0.5, 50.0, 5.0, 2.0, 1.0))
    params.set("glitch_size", np.array([1]))
    chain = _chain(ctx, params)
    with pytest.raises(ProposalError):
        for _ in range(50):
            glitch_reverse_jump(chain, params)


def test_adaptive_birth_maximises():
    ctx = _context()
    params = _params(ctx)
    chain = ChainState(rng=np.random.default_rng(8), priors=PriorBounds(), glitch=ctx)
    for _ in range(100):
        born, _ = glitch_reverse_jump(chain, params)
        if born.get_vector("glitch_size")[0] == 1:
            break
    t0, _, _, _, phi = get_component(born, 0, 0)
    assert 0.0 <= t0 < ctx.data[0].tobs
    assert 0.0 <= phi < 2.0 * np.pi
    np.testing.assert_allclose(born.get_matrix("morlet_FD"), literal_glitch_sum(ctx, born), atol=1e-9)


def test_morlet_jump_without_components():
    ctx = _context()
    params = _params(ctx)
    proposed, ratio = glitch_morlet_jump(_chain(ctx, params), params)
    assert ratio == 0.0
    assert proposed.same_values(params)


def test_cached_sum_tracks_moves():
    ctx = _context(2)
    params = _params(ctx)
    chain = _chain(ctx, params, seed=21)
    current = params
    most = 0
    for _ in range(40):
        for kernel in (glitch_reverse_jump, glitch_morlet_jump):
            proposed, ratio = kernel(chain, current)
            if proposed is not None and ratio > -np.inf:
                current = proposed
                most = max(most, int(current.get_vector("glitch_size").sum()))
    assert most > 0
    np.testing.assert_allclose(
        current.get_matrix("morlet_FD"), literal_glitch_sum(ctx, current), atol=1e-8
    )


def test_glitch_kernels_need_context(priors, cbc_params):
    chain = ChainState(rng=np.random.default_rng(0), priors=priors)
    with pytest.raises(ProposalError):
        glitch_reverse_jump(chain, cbc_params)
