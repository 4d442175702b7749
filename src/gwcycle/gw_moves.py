"""Jump kernels tied to the compact-binary signal and noise parametrisation."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.stats import truncnorm

from .chain import ChainState
from .errors import ProposalError, require_names
from .priors import (
    approx_log_prior,
    draw_chirp,
    draw_colatitude,
    draw_dec,
    draw_distance,
    draw_flat,
    draw_logdistance,
)
from .proposal import DISTANCE_GIBBS_NAME, KernelResult, Proposal
from .states import Variables

logger = logging.getLogger("gwcycle")

# Drawn flat by the approximate-prior jump.
FLAT_PRIOR_NAMES = (
    "q",
    "eta",
    "time",
    "phase",
    "polarisation",
    "rightascension",
    "costheta_jn",
    "phi_jl",
    "phi12",
    "a_spin1",
    "a_spin2",
)
PSDSCALE_RANGE = (0.1, 10.0)


def sky_loc_wander(chain: ChainState, current: Variables) -> KernelResult:
    rng = chain.rng
    proposed = current.copy()

    sigma = np.sqrt(chain.temperature) / (2.0 * np.pi)
    jump_x = sigma * rng.standard_normal()
    jump_y = sigma * rng.standard_normal()

    proposed.set_scalar("rightascension", proposed.get_scalar("rightascension") + jump_x)
    proposed.set_scalar("declination", proposed.get_scalar("declination") + jump_y)
    return proposed, 0.0


def polarization_phase_jump(chain: ChainState, current: Variables) -> KernelResult:
    """The (psi + pi/2, phi + pi) degeneracy of the dominant harmonic."""

    proposed = current.copy()
    psi = proposed.get_scalar("polarisation") + np.pi / 2.0
    phi = proposed.get_scalar("phase") + np.pi

    proposed.set_scalar("phase", np.mod(phi, 2.0 * np.pi))
    proposed.set_scalar("polarisation", np.mod(psi, np.pi))
    return proposed, 0.0


def corr_polarization_phase_jump(chain: ChainState, current: Variables) -> KernelResult:
    """Redraw psi + phi or psi - phi while keeping the other combination."""

    rng = chain.rng
    proposed = current.copy()
    psi = proposed.get_scalar("polarisation")
    phi = proposed.get_scalar("phase")

    # alpha in [0, 3pi], beta in [-2pi, pi]
    alpha = psi + phi
    beta = psi - phi
    if rng.random() < 0.5:
        alpha = rng.random() * 3.0 * np.pi
    else:
        beta = -2.0 * np.pi + rng.random() * 3.0 * np.pi

    proposed.set_scalar("polarisation", 0.5 * (alpha + beta))
    proposed.set_scalar("phase", 0.5 * (alpha - beta))

    chain.priors.cyclic_reflective_bound(proposed)
    return proposed, 0.0


def draw_approx_prior(chain: ChainState, current: Variables) -> KernelResult:
    """Independence jump from the closed-form approximate prior."""

    rng = chain.rng
    priors = chain.priors
    proposed = current.copy()

    if chain.config.analytic_test:
        for name in proposed.non_fixed_scalar_names():
            proposed.set_scalar(name, draw_flat(rng, priors, name))
        return proposed, 0.0

    log_backward = approx_log_prior(current)

    for name in FLAT_PRIOR_NAMES:
        if proposed.is_non_fixed(name):
            proposed.set_scalar(name, draw_flat(rng, priors, name))

    if proposed.is_non_fixed("chirpmass"):
        proposed.set_scalar("chirpmass", draw_chirp(rng, priors))

    if proposed.is_non_fixed("logdistance"):
        proposed.set_scalar("logdistance", draw_logdistance(rng, priors))
    elif proposed.is_non_fixed("distance"):
        proposed.set_scalar("distance", draw_distance(rng, priors))

    if proposed.is_non_fixed("declination"):
        proposed.set_scalar("declination", draw_dec(rng, priors))

    for name in ("tilt_spin1", "tilt_spin2"):
        if proposed.is_non_fixed(name):
            proposed.set_scalar(name, draw_colatitude(rng, priors, name))

    if proposed.is_non_fixed("psdscale"):
        lo, hi = PSDSCALE_RANGE
        shape = proposed.get_matrix("psdscale").shape
        proposed.set("psdscale", lo + rng.random(shape) * (hi - lo))

    return proposed, log_backward - approx_log_prior(proposed)


# ---- noise and calibration nuisance parameters ----
def psd_fit_jump(chain: ChainState, current: Variables) -> KernelResult:
    """Gaussian step on every PSD scale factor, width per frequency block."""

    sigma = chain.config.psd_sigma
    if sigma is None:
        raise ProposalError("PSD fit jump needs CycleConfig.psd_sigma")

    rng = chain.rng
    proposed = current.copy()
    ny = proposed.get_matrix("psdscale")  # (n_ifo, n_bins)
    sigma = np.asarray(sigma, dtype=float)
    if sigma.shape[0] != ny.shape[1]:
        raise ProposalError(
            f"psd_sigma has {sigma.shape[0]} entries, psdscale has {ny.shape[1]} columns"
        )

    proposed.set("psdscale", ny + rng.standard_normal(ny.shape) * sigma[None, :])
    return proposed, 0.0


def spline_calibration_names(detector_names: Sequence[str]) -> list:
    out = []
    for ifo in detector_names:
        out += [f"{ifo}_spcal_amp", f"{ifo}_spcal_phase"]
    return out


def spline_calibration_jump(chain: ChainState, current: Variables) -> KernelResult:
    """Perturb every calibration spline node of every detector."""

    if chain.geometry is None:
        raise ProposalError("spline calibration jump needs a detector network")

    rng = chain.rng
    cfg = chain.config
    proposed = current.copy()
    names = [d.name for d in chain.geometry.detectors]
    require_names(proposed, spline_calibration_names(names), "spline calibration jump")
    nifo = len(names)

    for ifo in names:
        amps = proposed.get_vector(f"{ifo}_spcal_amp")
        phases = proposed.get_vector(f"{ifo}_spcal_phase")
        norm = np.sqrt(nifo * amps.shape[0])
        amps = amps + cfg.spcal_amp_uncertainty * rng.standard_normal(amps.shape) / norm
        phases = phases + cfg.spcal_phase_uncertainty * rng.standard_normal(phases.shape) / norm
        proposed.set(f"{ifo}_spcal_amp", amps)
        proposed.set(f"{ifo}_spcal_phase", phases)

    return proposed, 0.0


def frequency_bin_jump(chain: ChainState, current: Variables) -> KernelResult:
    """Move a monochromatic signal frequency by one bin up or down."""

    proposed = current.copy()
    f0 = proposed.get_scalar("f0")
    df = proposed.get_scalar("df")
    if chain.rng.random() < 0.5:
        f0 -= df
    else:
        f0 += df
    proposed.set_scalar("f0", f0)
    return proposed, 0.0


# ---- distance ----
_GIBBS_FIT_POINTS = (0.25, 0.5, 0.75)


class DistanceQuasiGibbs(Proposal):
    """Independence proposal for the distance from a quadratic fit in 1/d.

    At fixed other parameters the likelihood is close to quadratic in
    u = 1/d.  Three fit points at fixed fractions of the prior range give
    logL/T = -A u^2 / 2 + B u + C, and u is drawn from N(B/A, 1/A)
    restricted to u > 0.
    The fit points do not depend on the current distance, so the
    forward and reverse proposals share one density.
    """

    def __init__(self, name: str = DISTANCE_GIBBS_NAME):
        super().__init__(name=name)
        self.func = self.propose
        self.fallbacks = 0

    def _fallback_warning(self, A: float) -> None:
        self.fallbacks += 1
        n = self.fallbacks
        if n & (n - 1) == 0:
            logger.warning(
                "%s: non-positive curvature A=%g in the distance fit, drawing from the prior (%d times so far)",
                self.name,
                A,
                n,
            )

    def propose(self, chain: ChainState, current: Variables) -> KernelResult:
        if chain.log_likelihood is None:
            raise ProposalError(f"{self.name} needs a log_likelihood callable on the chain")

        if current.is_non_fixed_scalar("logdistance"):
            pname, logd = "logdistance", True
        elif current.is_non_fixed_scalar("distance"):
            pname, logd = "distance", False
        else:
            return None, 0.0

        rng = chain.rng
        proposed = current.copy()
        lo, hi = chain.priors.get_min_max(pname)
        dmin, dmax = (np.exp(lo), np.exp(hi)) if logd else (lo, hi)
        umin, umax = 1.0 / dmax, 1.0 / dmin

        def to_param(u):
            return -np.log(u) if logd else 1.0 / u

        u_fit = umin + (umax - umin) * np.asarray(_GIBBS_FIT_POINTS)
        ll = np.empty(len(u_fit))
        trial = current.copy()
        for k, u in enumerate(u_fit):
            trial.set_scalar(pname, to_param(u))
            ll[k] = chain.log_likelihood(trial) / chain.temperature

        design = np.stack([-0.5 * u_fit**2, u_fit, np.ones_like(u_fit)], axis=1)  # (3,3)
        A, B, _ = np.linalg.solve(design, ll)

        if not A > 0:
            self._fallback_warning(A)
            proposed.set_scalar(pname, draw_flat(rng, chain.priors, pname))
            return proposed, 0.0

        mu, sd = B / A, 1.0 / np.sqrt(A)
        # normal truncated to u > 0; the truncation constant cancels in the ratio
        u_new = float(truncnorm.rvs(-mu / sd, np.inf, loc=mu, scale=sd, random_state=rng))
        proposed.set_scalar(pname, to_param(u_new))

        u_old = 1.0 / np.exp(current.get_scalar(pname)) if logd else 1.0 / current.get_scalar(pname)
        # density of the sampled parameter: N(u) |du/dparam|
        jac_power = 1.0 if logd else 2.0

        def log_q(u):
            return -0.5 * ((u - mu) / sd) ** 2 + jac_power * np.log(u)

        return proposed, float(log_q(u_old) - log_q(u_new))


__all__ = [name for name in globals() if not name.startswith("_")]
