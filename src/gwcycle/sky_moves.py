"""Sky-position kernels that exploit the detector-network degeneracies.

All three kernels need a :class:`~gwcycle.geometry.GeometryContext` on
the chain.  Reflection and the extrinsic-parameter jump are only defined
for a network with exactly three distinct sites; with any other network
they decline to propose and warn once per kernel instance.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from .chain import ChainState
from .errors import ProposalError
from .geometry import (
    C_SI,
    TWO_PI,
    GeometryContext,
    antenna_response,
    gmst,
    line_of_sight,
    reflected_position_and_time,
    unit_vector,
)
from .proposal import (
    EXTRINSIC_PARAM_NAME,
    SKY_REFLECT_NAME,
    SKY_RING_NAME,
    KernelResult,
    Proposal,
)
from .states import Variables

logger = logging.getLogger("gwcycle")

# Fuzz widths of the reflection jumps.
REFLECT_EPS_TIME = 6e-6  # 0.1 / 16 kHz
REFLECT_EPS_ANGLE = 3e-4  # eps_time * c / R_earth
EXTRINSIC_EPS = 1e-8


def _geometry(chain: ChainState, who: str) -> GeometryContext:
    if chain.geometry is None:
        raise ProposalError(f"{who} needs a detector network on the chain")
    return chain.geometry


def _bary_time(params: Variables, geom: GeometryContext) -> Tuple[float, bool]:
    if "time" in params:
        return params.get_scalar("time"), True
    return geom.epoch, False


def _distance(params: Variables) -> Tuple[float, bool]:
    if "logdistance" in params:
        return float(np.exp(params.get_scalar("logdistance"))), True
    return params.get_scalar("distance"), False


def _set_distance(params: Variables, dist: float, logd: bool) -> None:
    if logd:
        params.set_scalar("logdistance", np.log(dist))
    else:
        params.set_scalar("distance", dist)


def _wrap_angle_difference(d: float) -> float:
    # into (-pi, pi]
    return float(d - TWO_PI * np.round(d / TWO_PI))


class _ThreeSiteProposal(Proposal):
    def _network_ok(self, geom: GeometryContext) -> bool:
        n = geom.n_unique
        if n != 3:
            self.warn_once(
                "%s: reflecting through the detector plane with %d geometrically "
                "independent locations; this proposal needs exactly 3",
                self.name,
                n,
            )
            return False
        return True


class SkyReflectDetPlane(_ThreeSiteProposal):
    """Mirror image of the sky position through the plane of the three sites."""

    def __init__(self, name: str = SKY_REFLECT_NAME):
        super().__init__(name=name)
        self.func = self.propose

    def propose(self, chain: ChainState, current: Variables) -> KernelResult:
        geom = _geometry(chain, self.name)
        if not self._network_ok(geom):
            return None, 0.0

        rng = chain.rng
        proposed = current.copy()
        ra = proposed.get_scalar("rightascension")
        dec = proposed.get_scalar("declination")
        bary_time, has_time = _bary_time(proposed, geom)

        new_ra, new_dec, new_time = reflected_position_and_time(geom, ra, dec, bary_time)

        n_fwd = rng.standard_normal(3)
        new_ra += REFLECT_EPS_ANGLE * n_fwd[0]
        new_dec += REFLECT_EPS_ANGLE * n_fwd[1]
        new_time += REFLECT_EPS_TIME * n_fwd[2]

        # the doubly reflected point lands near the original, off by the fuzz
        ref_ra, ref_dec, ref_time = reflected_position_and_time(geom, new_ra, new_dec, new_time)
        n_rev = np.array(
            [
                _wrap_angle_difference(ra - ref_ra) / REFLECT_EPS_ANGLE,
                (dec - ref_dec) / REFLECT_EPS_ANGLE,
                (bary_time - ref_time) / REFLECT_EPS_TIME,
            ]
        )

        proposed.set_scalar("rightascension", new_ra)
        proposed.set_scalar("declination", new_dec)
        if has_time:
            proposed.set_scalar("time", new_time)

        return proposed, float(-0.5 * np.sum(n_rev**2) + 0.5 * np.sum(n_fwd**2))


def reflected_extrinsic_parameters(
    geom: GeometryContext,
    ra: float,
    dec: float,
    bary_time: float,
    dist: float,
    iota: float,
    psi: float,
) -> Tuple[float, float, float, float, float, float]:
    """Reflected sky point plus the (dist, iota, psi) that keep every site's amplitude.

    Returns (ra, dec, time, dist, iota, psi).  When the amplitude system
    has no real solution, dist and iota are returned unchanged.
    """

    g = gmst(bary_time)
    new_ra, new_dec, new_time = reflected_position_and_time(geom, ra, dec, bary_time)
    new_g = gmst(new_time)

    cos_iota = np.cos(iota)
    cos_iota2 = cos_iota * cos_iota
    dist2 = dist * dist

    sites = geom.unique()[:3]
    x = np.empty(3)
    y = np.empty(3)
    R2 = np.empty(3)
    for k, det in enumerate(sites):
        x[k], y[k] = antenna_response(det.response, new_ra, new_dec, 0.0, new_g)
        fp, fc = antenna_response(det.response, ra, dec, psi, g)
        R2[k] = ((1.0 + cos_iota2) ** 2 / (4.0 * dist2)) * fp * fp + (cos_iota2 / dist2) * fc * fc
    # old-position response of the last site, used for the sign fixes below
    old_fp, old_fc = fp, fc

    x1, x2, x3 = x
    y1, y2, y3 = y
    r1, r2, r3 = R2

    a = (
        r3 * x2**2 * y1**2
        - r2 * x3**2 * y1**2
        - r3 * x1**2 * y2**2
        + r1 * x3**2 * y2**2
        + r2 * x1**2 * y3**2
        - r1 * x2**2 * y3**2
    )
    b = (
        -(r3 * x1 * x2**2 * y1)
        + r2 * x1 * x3**2 * y1
        + r3 * x1**2 * x2 * y2
        - r1 * x2 * x3**2 * y2
        + r3 * x2 * y1**2 * y2
        - r3 * x1 * y1 * y2**2
        - r2 * x1**2 * x3 * y3
        + r1 * x2**2 * x3 * y3
        - r2 * x3 * y1**2 * y3
        + r1 * x3 * y2**2 * y3
        + r2 * x1 * y1 * y3**2
        - r1 * x2 * y2 * y3**2
    )

    new_psi = (2.0 * np.arctan((b - a * np.sqrt((a * a + b * b) / (a * a))) / a)) / 4.0
    new_psi = float(np.mod(new_psi, np.pi / 4.0))

    def rotated(p):
        c2, s2 = np.cos(2.0 * p), np.sin(2.0 * p)
        return x * c2 + y * s2, y * c2 - x * s2

    new_fp, new_fc = rotated(new_psi)
    c12 = -2.0 * ((r1 * new_fc[1] ** 2 - r2 * new_fc[0] ** 2) / (r1 * new_fp[1] ** 2 - r2 * new_fp[0] ** 2)) - 1.0

    if c12 < 1.0:
        c12 = (3.0 - c12) / (1.0 + c12)
        new_psi += np.pi / 4.0
        new_fp, new_fc = rotated(new_psi)

    if c12 < 1.0:
        return new_ra, new_dec, new_time, dist, iota, new_psi

    cos_new_iota2 = c12 - np.sqrt(c12 * c12 - 1.0)
    cos_new_iota = np.sqrt(cos_new_iota2)
    new_iota = float(np.arccos(cos_new_iota))

    new_dist = float(
        np.sqrt(
            ((1.0 + cos_new_iota2) ** 2 / 4.0 * new_fp[0] ** 2 + cos_new_iota2 * new_fc[0] ** 2) / r1
        )
    )

    new_fc3 = new_fc[2]
    if old_fp * new_fp[2] < 0:
        new_psi += np.pi / 2.0
        new_fc3 = -new_fc3

    if old_fc * cos_iota * cos_new_iota * new_fc3 < 0:
        new_iota = np.pi - new_iota

    return new_ra, new_dec, new_time, new_dist, new_iota, new_psi


class ExtrinsicParamProposal(_ThreeSiteProposal):
    """Sky reflection that also solves for polarisation, inclination and distance."""

    def __init__(self, name: str = EXTRINSIC_PARAM_NAME):
        super().__init__(name=name)
        self.func = self.propose

    def propose(self, chain: ChainState, current: Variables) -> KernelResult:
        geom = _geometry(chain, self.name)
        if not self._network_ok(geom):
            return None, 0.0

        rng = chain.rng
        proposed = current.copy()
        ra = proposed.get_scalar("rightascension")
        dec = proposed.get_scalar("declination")
        bary_time, has_time = _bary_time(proposed, geom)

        iota = 0.0
        has_iota = "costheta_jn" in proposed
        if has_iota:
            iota = float(np.arccos(proposed.get_scalar("costheta_jn")))
        else:
            logger.warning("%s: no costheta_jn parameter, using zero inclination", self.name)

        psi = proposed.get_scalar("polarisation")
        dist, logd = _distance(proposed)

        orig = np.array([ra, dec, bary_time, dist, iota, psi])
        new = np.array(reflected_extrinsic_parameters(geom, ra, dec, bary_time, dist, iota, psi))

        n_fwd = rng.standard_normal(6)
        new = new + EXTRINSIC_EPS * n_fwd

        ref = np.array(reflected_extrinsic_parameters(geom, *new))
        diff = orig - ref
        diff[0] = _wrap_angle_difference(diff[0])
        n_rev = diff / EXTRINSIC_EPS

        new_ra, new_dec, new_time, new_dist, new_iota, new_psi = new
        proposed.set_scalar("rightascension", new_ra)
        proposed.set_scalar("declination", new_dec)
        if has_time:
            proposed.set_scalar("time", new_time)
        _set_distance(proposed, new_dist, logd)
        if has_iota:
            proposed.set_scalar("costheta_jn", np.cos(new_iota))
        proposed.set_scalar("polarisation", new_psi)

        return proposed, float(-0.5 * np.sum(n_rev**2) + 0.5 * np.sum(n_fwd**2))


def rotate_about_axis(k: np.ndarray, n: np.ndarray, omega: float) -> np.ndarray:
    """Rodrigues rotation of ``k`` by ``omega`` about the unit vector ``n``."""

    c, s = np.cos(omega), np.sin(omega)
    return k * c + np.cross(n, k) * s + n * np.dot(n, k) * (1.0 - c)


class SkyRingProposal(Proposal):
    """Move along the ring of constant time delay between two sites."""

    def __init__(self, name: str = SKY_RING_NAME):
        super().__init__(name=name)
        self.func = self.propose

    def propose(self, chain: ChainState, current: Variables) -> KernelResult:
        geom = _geometry(chain, self.name)
        sites = geom.unique()
        if len(sites) < 2:
            return None, 0.0

        rng = chain.rng
        proposed = current.copy()
        dL, logd = _distance(proposed)
        ra = proposed.get_scalar("rightascension")
        dec = proposed.get_scalar("declination")
        psi = proposed.get_scalar("polarisation")
        bary_time, has_time = _bary_time(proposed, geom)
        g = gmst(bary_time)

        k = line_of_sight(ra, dec, g)

        i, j = rng.choice(len(sites), size=2, replace=False)
        ifo1 = sites[int(i)].location
        n = unit_vector(ifo1 - sites[int(j)].location)

        omega = TWO_PI * rng.random()
        kp = rotate_about_axis(k, n, omega)

        new_dec = float(np.arcsin(np.clip(kp[2], -1.0, 1.0)))
        new_ra = float(np.mod(np.arctan2(kp[1], kp[0]) + g, TWO_PI))

        # arrival time at the first axis site is held fixed
        tx = -np.dot(ifo1, k) / C_SI
        ty = -np.dot(ifo1, kp) / C_SI
        new_time = tx + bary_time - ty
        new_g = gmst(new_time)

        new_psi = np.pi * rng.random()

        fx = 0.0
        fy = 0.0
        for det in geom.detectors:
            fp, fc = antenna_response(det.response, ra, dec, psi, g)
            fx += fp * fp + fc * fc
            fp, fc = antenna_response(det.response, new_ra, new_dec, new_psi, new_g)
            fy += fp * fp + fc * fc
        new_dL = dL * np.sqrt(fy / fx)

        _set_distance(proposed, new_dL, logd)
        proposed.set_scalar("polarisation", new_psi)
        proposed.set_scalar("rightascension", new_ra)
        proposed.set_scalar("declination", new_dec)
        if has_time:
            proposed.set_scalar("time", new_time)

        return proposed, float(np.log(np.cos(dec) / np.cos(new_dec)))


__all__ = [name for name in globals() if not name.startswith("_")]
