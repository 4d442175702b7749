"""Prior ranges, boundary handling and closed-form approximate-prior draws."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import numpy as np

from .errors import ProposalError, validate_prior_bounds
from .states import Variables, VaryType


class PriorBounds:
    """Name -> (min, max) table with the cyclic/reflective boundary map."""

    def __init__(self, bounds: Optional[Dict[str, Tuple[float, float]]] = None):
        self._bounds: Dict[str, Tuple[float, float]] = {}
        if bounds:
            validate_prior_bounds(bounds)
            for name, (lo, hi) in bounds.items():
                self._bounds[name] = (float(lo), float(hi))

    def add(self, name: str, lo: float, hi: float) -> None:
        validate_prior_bounds({name: (lo, hi)})
        self._bounds[name] = (float(lo), float(hi))

    def check_min_max(self, name: str) -> bool:
        return name in self._bounds

    def get_min_max(self, name: str) -> Tuple[float, float]:
        try:
            return self._bounds[name]
        except KeyError:
            raise ProposalError(f"no prior range for '{name}'") from None

    def width(self, name: str) -> float:
        lo, hi = self.get_min_max(name)
        return hi - lo

    def cyclic_reflective_bound(self, params: Variables) -> None:
        """Wrap circular parameters and reflect linear ones into their range, in place."""

        for name in params.non_fixed_scalar_names():
            if name not in self._bounds:
                continue
            lo, hi = self._bounds[name]
            x = params.get_scalar(name)
            if params.vary(name) == VaryType.CIRCULAR:
                x = wrap(x, lo, hi)
            else:
                x = reflect(x, lo, hi)
            params.set_scalar(name, x)


def wrap(x: float, lo: float, hi: float) -> float:
    delta = hi - lo
    return lo + np.mod(x - lo, delta)


def reflect(x: float, lo: float, hi: float) -> float:
    # fold onto a period of 2*delta, then mirror the upper half
    delta = hi - lo
    y = np.mod(x - lo, 2.0 * delta)
    if y > delta:
        y = 2.0 * delta - y
    return lo + y


# ---- inverse-CDF draws ----
def draw_flat(rng: np.random.Generator, priors: PriorBounds, name: str) -> float:
    lo, hi = priors.get_min_max(name)
    return lo + rng.random() * (hi - lo)


def draw_distance(rng: np.random.Generator, priors: PriorBounds) -> float:
    # uniform in volume
    dmin, dmax = priors.get_min_max("distance")
    x = rng.random()
    return float(np.cbrt(x * (dmax**3 - dmin**3) + dmin**3))


def draw_logdistance(rng: np.random.Generator, priors: PriorBounds) -> float:
    logdmin, logdmax = priors.get_min_max("logdistance")
    dmin, dmax = np.exp(logdmin), np.exp(logdmax)
    x = rng.random()
    return float(np.log(np.cbrt(x * (dmax**3 - dmin**3) + dmin**3)))


def draw_colatitude(rng: np.random.Generator, priors: PriorBounds, name: str) -> float:
    lo, hi = priors.get_min_max(name)
    x = rng.random()
    return float(np.arccos(np.cos(lo) - x * (np.cos(lo) - np.cos(hi))))


def draw_dec(rng: np.random.Generator, priors: PriorBounds) -> float:
    lo, hi = priors.get_min_max("declination")
    x = rng.random()
    return float(np.arcsin(x * (np.sin(hi) - np.sin(lo)) + np.sin(lo)))


def draw_chirp(rng: np.random.Generator, priors: PriorBounds) -> float:
    # p(Mc) ~ Mc^(-11/6)
    lo, hi = priors.get_min_max("chirpmass")
    m_min56 = lo ** (5.0 / 6.0)
    m_max56 = hi ** (5.0 / 6.0)
    delta = 1.0 / m_min56 - 1.0 / m_max56
    u = delta * rng.random()
    return float((1.0 / (1.0 / m_min56 - u)) ** (6.0 / 5.0))


def approx_log_prior(params: Variables) -> float:
    """Unnormalised log density of the approximate prior; flat in the angles and times."""

    logp = 0.0
    if "chirpmass" in params:
        logp += -11.0 / 6.0 * np.log(params.get_scalar("chirpmass"))
    if "logdistance" in params:
        logp += 3.0 * params.get_scalar("logdistance")
    elif "distance" in params:
        logp += 2.0 * np.log(params.get_scalar("distance"))
    if "declination" in params:
        logp += np.log(np.cos(params.get_scalar("declination")))
    # tilts are drawn isotropically
    for name in ("tilt_spin1", "tilt_spin2"):
        if params.is_non_fixed(name):
            logp += np.log(np.sin(params.get_scalar(name)))
    return float(logp)


__all__ = [name for name in globals() if not name.startswith("_")]
