import numpy as np
import pytest

from gwcycle import (
    DBL_MIN,
    AdaptiveController,
    AdaptiveControllerConfig,
    ProposalError,
    initial_sigma,
)


def test_initial_sigmas(cbc_params):
    ctrl = AdaptiveController.init(AdaptiveControllerConfig(), cbc_params)
    assert ctrl.sigma("q") == 0.001
    assert ctrl.sigma("phase") == 0.1
    assert ctrl.sigma("chirpmass") == 0.01
    assert initial_sigma("anything") == 0.01
    with pytest.raises(ProposalError):
        ctrl.sigma("not_there")


def test_sigma_stays_clamped(cbc_params, priors):
    rng = np.random.default_rng(7)
    ctrl = AdaptiveController.init(AdaptiveControllerConfig(s_gamma=50.0), cbc_params)
    for _ in range(2000):
        name = rng.choice(["q", "phase", "time"])
        ctrl.mark_step(name)
        ctrl.update(bool(rng.random() < 0.3), 0.234, priors)
        for n in ("q", "phase", "time"):
            assert DBL_MIN <= ctrl.sigma(n) <= priors.width(n)


def test_update_needs_marked_step(cbc_params, priors):
    ctrl = AdaptiveController.init(AdaptiveControllerConfig(), cbc_params)
    ctrl.update(True, 0.234, priors)
    assert ctrl.table["q"].proposed == 0

    ctrl.mark_step("q")
    ctrl.update(True, 0.234, priors)
    assert ctrl.table["q"].proposed == 1
    assert ctrl.table["q"].accepted == 1
    assert ctrl.sigma("q") > 0.001
    assert not ctrl.adaptable_step


def test_anneal_and_restart(cbc_params):
    ctrl = AdaptiveController.init(AdaptiveControllerConfig(adapt_tau=2), cbc_params)
    assert ctrl.adapt_length == 100
    ctrl.anneal(1)
    assert ctrl.s_gamma == pytest.approx(9.0)
    ctrl.anneal(101)
    assert not ctrl.adapting
    assert ctrl.s_gamma == 0.0

    ctrl.restart(200, -50.0)
    assert ctrl.adapting
    assert ctrl.adapt_start == 300
    assert ctrl.logl_at_adapt_start == -50.0


def test_no_adapt(cbc_params):
    ctrl = AdaptiveController.init(AdaptiveControllerConfig(no_adapt=True), cbc_params)
    assert not ctrl.enabled
    assert not ctrl.adapting
    ctrl.restart(10, 0.0)
    assert not ctrl.adapting
