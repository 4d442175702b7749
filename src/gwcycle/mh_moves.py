"""Metropolis-Hastings jump kernels that know nothing about gravitational waves.

Every kernel takes ``(chain, current)``, works on a copy of ``current``
and returns ``(proposed, log_ratio)``; ``proposed`` is ``None`` when the
kernel's preconditions do not hold and the cycle should try the next
slot.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from .chain import ChainState
from .errors import ProposalError
from .proposal import KernelResult
from .states import INTRINSIC_NAMES, Variables, extrinsic_names

# Fixed step sizes used when sampling the prior.
SAMPLING_PRIOR_SIGMA = {
    "eta": 0.02,
    "q": 0.08,
    "chirpmass": 1.0,
    "time": 0.02,
    "phase": 0.6,
    "distance": 10.0,
    "declination": 0.3,
    "rightascension": 0.6,
    "polarisation": 0.6,
    "costheta_jn": 0.3,
    "a_spin1": 0.1,
    "a_spin2": 0.1,
}

_SMALL_STEP_NAMES = ("eta", "q", "time", "a_spin1", "a_spin2")
_ANGLE_STEP_NAMES = ("polarisation", "phase", "costheta_jn")

STRETCH_SCALE = 3.0
WALK_POINTS = 3
STRETCH_DRAWS = 100


def _step_fraction(name: str) -> float:
    if name in _SMALL_STEP_NAMES:
        return 0.001
    if name in _ANGLE_STEP_NAMES:
        return 0.1
    return 0.01


def _pick_scalar(rng: np.random.Generator, params: Variables) -> Optional[str]:
    names = params.non_fixed_scalar_names()
    if not names:
        return None
    return names[rng.integers(len(names))]


# ---- single-parameter jumps ----
def single_proposal(chain: ChainState, current: Variables) -> KernelResult:
    """Gaussian step on one randomly chosen non-fixed scalar.

    The step is a fixed fraction of the parameter's prior width, or an
    absolute step when the parameter has no prior range.
    """

    rng = chain.rng
    proposed = current.copy()

    sigma = 0.1 * np.sqrt(chain.temperature)
    big_sigma = 1.0
    if rng.random() < 1.0e-3:
        big_sigma = 1.0e1
    if rng.random() < 1.0e-4:
        big_sigma = 1.0e2

    name = _pick_scalar(rng, proposed)
    if name is None:
        return None, 0.0

    x = proposed.get_scalar(name)
    if chain.config.sampling_prior:
        if name not in SAMPLING_PRIOR_SIGMA:
            raise ProposalError(f"no prior-sampling step size for '{name}'")
        x += rng.standard_normal() * SAMPLING_PRIOR_SIGMA[name]
    else:
        step = big_sigma * sigma * _step_fraction(name)
        if chain.priors.check_min_max(name):
            step *= chain.priors.width(name)
        x += rng.standard_normal() * step
    proposed.set_scalar(name, x)

    chain.priors.cyclic_reflective_bound(proposed)
    return proposed, 0.0


def single_adapt_proposal(chain: ChainState, current: Variables) -> KernelResult:
    """Single-parameter step scaled by the adaptive sigma of that parameter."""

    ctrl = chain.controller
    if ctrl is None or not ctrl.enabled:
        return single_proposal(chain, current)

    rng = chain.rng
    proposed = current.copy()
    name = _pick_scalar(rng, proposed)
    if name is None:
        return None, 0.0

    sigma = ctrl.sigma(name)
    x = proposed.get_scalar(name) + rng.standard_normal() * sigma * np.sqrt(chain.temperature)
    proposed.set_scalar(name, x)
    chain.priors.cyclic_reflective_bound(proposed)

    ctrl.mark_step(name)
    return proposed, 0.0


def covariance_eigenvector_jump(chain: ChainState, current: Variables) -> KernelResult:
    """Step along one eigen-direction of the attached covariance."""

    evals, evecs = chain.eigenvalues, chain.eigenvectors
    if evals is None or evecs is None:
        return None, 0.0

    rng = chain.rng
    proposed = current.copy()
    names = proposed.non_fixed_scalar_names()
    n = min(len(evals), len(names))
    if n == 0:
        return None, 0.0

    i = int(rng.integers(len(evals)))
    jump = np.sqrt(chain.temperature * evals[i]) * rng.standard_normal()
    for j in range(n):
        proposed.set_scalar(names[j], proposed.get_scalar(names[j]) + jump * evecs[j, i])

    return proposed, 0.0


# ---- subspaces ----
def subspace_names(current: Variables, names: Optional[Sequence[str]]) -> List[str]:
    """Non-fixed scalars of ``current`` restricted to ``names`` (all of them for None)."""

    if names is None:
        return current.non_fixed_scalar_names()
    return [n for n in names if current.is_non_fixed_scalar(n)]


def _shared(names: Sequence[str], *points: Variables) -> List[str]:
    return [n for n in names if all(n in p for p in points)]


def _extrinsic(chain: ChainState) -> tuple:
    return extrinsic_names(chain.config.marg_time, chain.config.marg_phi)


# ---- differential evolution ----
def differential_evolution(
    chain: ChainState, current: Variables, names: Optional[Sequence[str]] = None
) -> KernelResult:
    """x' = x + gamma (y_j - y_i) on the subspace, two distinct buffer points."""

    buf = chain.buffer
    if len(buf) <= 1:
        return None, 0.0

    rng = chain.rng
    proposed = current.copy()
    sub = subspace_names(proposed, names)
    if not sub:
        return None, 0.0

    i, j = rng.choice(len(buf), size=2, replace=False)
    a, b = buf[int(i)], buf[int(j)]

    if rng.random() < 0.5:
        # mode hopping
        scale = 1.0
    else:
        scale = 2.38 / np.sqrt(len(sub)) * np.exp(np.log(0.1) + np.log(100.0) * rng.random())

    for n in _shared(sub, a, b):
        x = proposed.get_scalar(n) + scale * (b.get_scalar(n) - a.get_scalar(n))
        proposed.set_scalar(n, x)

    return proposed, 0.0


def differential_evolution_full(chain: ChainState, current: Variables) -> KernelResult:
    return differential_evolution(chain, current, None)


def differential_evolution_intrinsic(chain: ChainState, current: Variables) -> KernelResult:
    return differential_evolution(chain, current, INTRINSIC_NAMES)


def differential_evolution_extrinsic(chain: ChainState, current: Variables) -> KernelResult:
    return differential_evolution(chain, current, _extrinsic(chain))


# ---- ensemble moves ----
def ensemble_stretch(
    chain: ChainState, current: Variables, names: Optional[Sequence[str]] = None
) -> KernelResult:
    """Goodman-Weare stretch towards a buffer point that differs from ``current``."""

    buf = chain.buffer
    if len(buf) <= 1:
        return None, 0.0

    rng = chain.rng
    proposed = current.copy()
    sub = subspace_names(proposed, names)
    if not sub:
        return None, 0.0

    other = None
    for _ in range(STRETCH_DRAWS):
        p = buf[int(rng.integers(len(buf)))]
        if not p.same_values(current):
            other = p
            break
    if other is None:
        return None, 0.0

    a = STRETCH_SCALE
    log_a = np.log(a)
    z = np.exp(2.0 * log_a * rng.random() - log_a)

    for n in _shared(sub, other):
        y = other.get_scalar(n)
        proposed.set_scalar(n, y + z * (proposed.get_scalar(n) - y))

    if 1.0 / a < z < a:
        return proposed, float(len(sub) * np.log(z))
    return proposed, -np.inf


def ensemble_stretch_full(chain: ChainState, current: Variables) -> KernelResult:
    return ensemble_stretch(chain, current, None)


def ensemble_stretch_intrinsic(chain: ChainState, current: Variables) -> KernelResult:
    return ensemble_stretch(chain, current, INTRINSIC_NAMES)


def ensemble_stretch_extrinsic(chain: ChainState, current: Variables) -> KernelResult:
    return ensemble_stretch(chain, current, _extrinsic(chain))


def ensemble_walk(
    chain: ChainState, current: Variables, names: Optional[Sequence[str]] = None
) -> KernelResult:
    """Walk move: Gaussian combination of three buffer points about their centroid."""

    buf = chain.buffer
    if len(buf) < WALK_POINTS:
        return None, 0.0

    rng = chain.rng
    proposed = current.copy()
    sub = subspace_names(proposed, names)
    if not sub:
        return None, 0.0

    idx = rng.choice(len(buf), size=WALK_POINTS, replace=False)
    pts = [buf[int(k)] for k in idx]
    use = _shared(sub, *pts)
    if not use:
        return None, 0.0

    Y = np.array([p.scalar_vector(use) for p in pts])  # (3, D)
    centroid = Y.mean(axis=0)
    z = rng.standard_normal(WALK_POINTS)
    step = z @ (Y - centroid)  # (D,)

    for n, s in zip(use, step):
        proposed.set_scalar(n, proposed.get_scalar(n) + s)

    return proposed, 0.0


def ensemble_walk_full(chain: ChainState, current: Variables) -> KernelResult:
    return ensemble_walk(chain, current, None)


def ensemble_walk_intrinsic(chain: ChainState, current: Variables) -> KernelResult:
    return ensemble_walk(chain, current, INTRINSIC_NAMES)


def ensemble_walk_extrinsic(chain: ChainState, current: Variables) -> KernelResult:
    return ensemble_walk(chain, current, _extrinsic(chain))


__all__ = [name for name in globals() if not name.startswith("_")]
