"""Reversible-jump glitch model: Morlet-Gabor wavelets per detector.

The parameter set carries, per detector row and component slot, the
wavelet parameters ``morlet_t0``, ``morlet_f0``, ``morlet_Q``,
``morlet_Amp`` and ``morlet_phi``; ``glitch_size`` holds the number of
live components per detector and ``morlet_FD`` the cached
frequency-domain sum of all live wavelets.  The cache is kept in step by
adding and subtracting single templates; only
:func:`initialize_glitch_sum` rebuilds it from scratch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import jax
import jax.numpy as jnp

from .chain import ChainState
from .errors import ProposalError
from .priors import PriorBounds, draw_flat
from .proposal import KernelResult
from .states import Variables

COMPONENT_NAMES = ("morlet_t0", "morlet_f0", "morlet_Q", "morlet_Amp", "morlet_phi")

# Fisher jump scale, 1/sqrt(6)
FISHER_SCALE = 1.0 / np.sqrt(6.0)
FISHER_SNR_FLOOR = 5.0
AMP_FISHER_FACTOR = 0.25
SNR_PEAK = 5.0
PI_TERM = 0.5 * (2.0 / np.sqrt(np.pi)) * np.sqrt(0.5)
ADAPT_BONUS = 10.0


# ---- data and prior ----
@dataclass
class GlitchData:
    """One detector's data segment as seen by the glitch model."""

    fd_data: np.ndarray  # (N//2+1,) complex strain
    psd: np.ndarray  # (N//2+1,) one-sided PSD
    delta_t: float
    n_samples: int
    f_low: float
    f_high: float

    @property
    def tobs(self) -> float:
        return self.n_samples * self.delta_t

    @property
    def delta_f(self) -> float:
        return 1.0 / self.tobs

    @property
    def n_bins(self) -> int:
        return self.n_samples // 2 + 1

    @property
    def asd(self) -> np.ndarray:
        return np.sqrt(self.psd)

    def band(self) -> Tuple[int, int]:
        """Inclusive (lower, upper) bin indices of the analysis band."""

        lower = int(np.ceil(self.f_low / self.delta_f))
        upper = int(np.floor(self.f_high / self.delta_f))
        return lower, min(upper, self.n_bins - 1)


@dataclass
class GlitchPrior:
    """Flat component ranges, dimension range and amplitude normalisation."""

    t0: Tuple[float, float]
    f0: Tuple[float, float]
    Q: Tuple[float, float]
    phi: Tuple[float, float] = (0.0, 2.0 * np.pi)
    dim_min: int = 0
    dim_max: int = 20  # exclusive
    norm: float = 1.0
    bounds: PriorBounds = field(init=False, repr=False)

    def __post_init__(self):
        self.bounds = PriorBounds(
            {
                "morlet_t0": self.t0,
                "morlet_f0": self.f0,
                "morlet_Q": self.Q,
                "morlet_phi": self.phi,
            }
        )

    def log_volume(self) -> float:
        return float(
            sum(np.log(self.bounds.width(n)) for n in ("morlet_t0", "morlet_f0", "morlet_Q", "morlet_phi"))
        )


@dataclass
class GlitchContext:
    data: List[GlitchData]
    prior: GlitchPrior

    @property
    def n_det(self) -> int:
        return len(self.data)


def validate_glitch_data(ctx: GlitchContext) -> None:
    """
    Validates a :class:`GlitchContext`.

    Raises:
        ValueError: If any detector's arrays do not match its sample count,
            the band or prior ranges are empty, or the PSD is not positive
    """
    errors = []

    for i, d in enumerate(ctx.data):
        nb = d.n_samples // 2 + 1
        if np.shape(d.fd_data) != (nb,):
            errors.append(f"Detector {i}: fd_data must have shape ({nb},), got {np.shape(d.fd_data)}")
        if np.shape(d.psd) != (nb,):
            errors.append(f"Detector {i}: psd must have shape ({nb},), got {np.shape(d.psd)}")
        elif not np.all(np.asarray(d.psd) > 0):
            errors.append(f"Detector {i}: psd must be strictly positive")
        if d.delta_t <= 0:
            errors.append(f"Detector {i}: delta_t must be > 0, got {d.delta_t}")
        if not 0 <= d.f_low < d.f_high:
            errors.append(f"Detector {i}: need 0 <= f_low < f_high, got ({d.f_low}, {d.f_high})")

    p = ctx.prior
    if p.dim_min < 0 or p.dim_max <= p.dim_min:
        errors.append(f"Glitch dimension range is empty: [{p.dim_min}, {p.dim_max})")
    if p.norm <= 0:
        errors.append(f"glitch norm must be > 0, got {p.norm}")
    if p.f0[0] <= 0:
        errors.append(f"morlet_f0 prior must be positive, got {p.f0}")
    if p.Q[0] <= 0:
        errors.append(f"morlet_Q prior must be positive, got {p.Q}")

    if errors:
        raise ValueError("Invalid glitch model setup:\n  " + "\n  ".join(errors))


def empty_glitch_params(ctx: GlitchContext, params: Variables, n_slots: Optional[int] = None) -> None:
    """Add a glitch model with no components to ``params``."""

    n_slots = ctx.prior.dim_max if n_slots is None else n_slots
    n_det = ctx.n_det
    params.add("glitch_size", np.zeros(n_det, dtype=int))
    for name in COMPONENT_NAMES:
        params.add(name, np.zeros((n_det, n_slots)))
    n_bins = max(d.n_bins for d in ctx.data)
    params.add("morlet_FD", np.zeros((n_det, n_bins), dtype=complex))


# ---- components ----
def get_component(params: Variables, ifo: int, n: int) -> np.ndarray:
    """(t0, f0, Q, Amp, phi) of component ``n`` on detector ``ifo``."""

    return np.array([params.get_matrix(name)[ifo, n] for name in COMPONENT_NAMES])


def set_component(params: Variables, ifo: int, n: int, values) -> None:
    for name, v in zip(COMPONENT_NAMES, values):
        params.get_matrix(name)[ifo, n] = v


@jax.jit
def _morlet_template(k, asd, df, tobs, lower, upper, t0, f0, Q, amp, phi0):
    # k: (B,) bin indices; asd: (B,)
    tau = Q / (2.0 * jnp.pi * f0)
    lo = jnp.floor((f0 - 1.0 / tau) / df)
    hi = jnp.floor((f0 + 1.0 / tau) / df)
    amparg = (k * df - f0) * jnp.pi * tau
    phiarg = jnp.pi * k + phi0 - 2.0 * jnp.pi * k * df * (t0 - tobs / 2.0)
    Ai = amp * tau * 0.5 * jnp.sqrt(jnp.pi) * jnp.exp(-amparg * amparg) * asd / jnp.sqrt(tobs)
    mask = (k >= lo) & (k < hi) & (k >= lower) & (k <= upper)
    return jnp.where(mask, Ai * jnp.exp(1j * phiarg), 0.0 + 0.0j)


def morlet_template(data: GlitchData, t0: float, f0: float, Q: float, amp: float, phi0: float) -> np.ndarray:
    """Frequency-domain wavelet on every bin of ``data`` (zero outside its support)."""

    lower, upper = data.band()
    k = np.arange(data.n_bins, dtype=float)
    return np.asarray(
        _morlet_template(k, data.asd, data.delta_f, data.tobs, lower, upper, t0, f0, Q, amp, phi0)
    )


def update_wavelet_sum(
    ctx: GlitchContext, params: Variables, fd: np.ndarray, ifo: int, n: int, flag: int
) -> None:
    """Add (+1), subtract (-1) or replace with (0) component ``n`` in ``fd[ifo]``, in place."""

    data = ctx.data[ifo]
    t0, f0, Q, amp, phi0 = get_component(params, ifo, n)
    h = morlet_template(data, t0, f0, Q, amp, phi0)
    nb = data.n_bins

    if flag == 0:
        lower, upper = data.band()
        fd[ifo, lower : upper + 1] = 0.0
        fd[ifo, :nb] += h
    elif flag == 1:
        fd[ifo, :nb] += h
    elif flag == -1:
        fd[ifo, :nb] -= h
    else:
        raise ValueError(f"flag must be -1, 0 or 1, got {flag}")


def initialize_glitch_sum(ctx: GlitchContext, params: Variables) -> None:
    """Rebuild ``morlet_FD`` from the live components."""

    params.set("morlet_FD", literal_glitch_sum(ctx, params))


def literal_glitch_sum(ctx: GlitchContext, params: Variables) -> np.ndarray:
    """Sum of the live templates computed from scratch, without touching ``params``."""

    fd = np.zeros_like(params.get_matrix("morlet_FD"))
    gsize = params.get_vector("glitch_size")
    for ifo in range(ctx.n_det):
        for n in range(int(gsize[ifo])):
            update_wavelet_sum(ctx, params, fd, ifo, n, 1)
    return fd


# ---- amplitude prior ----
def glitch_amplitude_draw(rng: np.random.Generator, Q: float, f: float) -> float:
    """Amplitude whose SNR follows SNR/a^2 exp(-SNR/a) on [0, 20a]."""

    peak = 1.0 / (SNR_PEAK * np.e)
    while True:
        snr = 20.0 * SNR_PEAK * rng.random()
        den = snr / SNR_PEAK**2 * np.exp(-snr / SNR_PEAK) / peak
        if rng.random() <= den:
            break
    return float(snr / np.sqrt(PI_TERM * Q / f))


def log_glitch_amplitude_density(A: float, Q: float, f: float) -> float:
    snr = A * np.sqrt(PI_TERM * Q / f)
    if snr <= 0:
        return -np.inf
    return float(np.log(snr / SNR_PEAK**2) - snr / SNR_PEAK)


def log_component_prior(prior: GlitchPrior, params: Variables, ifo: int, n: int) -> float:
    """Flat in (t0, f0, Q, phi) times the amplitude density."""

    _, f, Q, A, _ = get_component(params, ifo, n)
    return -prior.log_volume() + log_glitch_amplitude_density(A * prior.norm, Q, f)


# ---- time/phase maximisation ----
def maximize_glitch_parameters(ctx: GlitchContext, params: Variables, ifo: int, n: int) -> None:
    """Shift component ``n`` in time and phase to the peak of its residual correlation."""

    data = ctx.data[ifo]
    N = data.n_samples
    dt = data.delta_t
    tobs = data.tobs
    nb = data.n_bins
    lower, upper = data.band()
    sq = np.sqrt(2.0 * dt / N)

    t0, f0, Q, amp, ph0 = get_component(params, ifo, n)

    i = np.arange(nb)
    inband = (i > lower) & (i < upper) & (i < N // 2)
    h = np.where(inband, sq * morlet_template(data, t0, f0, Q, amp, ph0), 0.0)

    g = np.zeros(nb, dtype=complex)
    if params.get_vector("glitch_size")[ifo] > 0:
        g = params.get_matrix("morlet_FD")[ifo, :nb]
    r = np.where(inband, sq * (data.fd_data / dt - g), 0.0)

    cross = np.where(inband, r * np.conj(h) / data.psd, 0.0)
    AC = np.fft.irfft(cross, n=N)
    AF = np.fft.irfft(1j * cross, n=N)

    imax = int(np.argmax(np.sqrt(AC * AC + AF * AF)))
    d_phase = np.arctan2(AF[imax], AC[imax])
    if imax < N // 2 - 1:
        d_time = imax / N * tobs
    else:
        d_time = (imax - N) / N * tobs

    t0 = np.mod(t0 + d_time, tobs)
    ph0 = np.mod(ph0 - d_phase, 2.0 * np.pi)
    set_component(params, ifo, n, (t0, f0, Q, amp, ph0))


# ---- kernels ----
def morlet_diagonal_fisher(x: np.ndarray) -> np.ndarray:
    """Diagonal Fisher sigmas for (t0, f0, Q, Amp, phi)."""

    _, f0, Q, amp, _ = x
    snr = max(amp * np.sqrt(Q / (2.0 * np.sqrt(2.0 * np.pi) * f0)), FISHER_SNR_FLOOR)
    return np.array(
        [
            1.0 / (2.0 * np.pi * f0 * snr),
            2.0 * f0 / (Q * snr),
            2.0 * Q / (np.sqrt(3.0) * snr),
            amp / snr,
            1.0 / snr,
        ]
    )


def _glitch_context(chain: ChainState) -> GlitchContext:
    if chain.glitch is None:
        raise ProposalError("glitch jumps need a GlitchContext on the chain")
    return chain.glitch


def glitch_morlet_jump(chain: ChainState, current: Variables) -> KernelResult:
    """Gaussian jump of one component with widths from its diagonal Fisher matrix."""

    ctx = _glitch_context(chain)
    rng = chain.rng
    proposed = current.copy()
    gsize = proposed.get_vector("glitch_size")
    fd = proposed.get_matrix("morlet_FD")
    anorm = AMP_FISHER_FACTOR * ctx.prior.norm

    ifo = int(np.floor(rng.random() * len(gsize)))
    if gsize[ifo] == 0:
        return proposed, 0.0
    n = int(np.floor(rng.random() * gsize[ifo]))

    update_wavelet_sum(ctx, proposed, fd, ifo, n, -1)

    x = get_component(proposed, ifo, n)
    x[3] *= anorm
    sx = FISHER_SCALE * morlet_diagonal_fisher(x)
    y = x + rng.standard_normal(5) * sx

    set_component(proposed, ifo, n, (y[0], y[1], y[2], y[3] / anorm, y[4]))
    update_wavelet_sum(ctx, proposed, fd, ifo, n, 1)

    sy = FISHER_SCALE * morlet_diagonal_fisher(y)
    d = x - y
    qyx = -0.5 * np.sum((d / sx) ** 2) - np.sum(np.log(sx))
    qxy = -0.5 * np.sum((d / sy) ** 2) - np.sum(np.log(sy))
    return proposed, float(qxy - qyx)


def glitch_reverse_jump(chain: ChainState, current: Variables) -> KernelResult:
    """Birth or death of one wavelet on a randomly chosen detector.

    The discrete choice terms are zero: births append at slot nx, deaths
    choose one of the nx live slots, and the component prior is
    exchangeable over slots, so the labelling factor cancels the
    1/nx choice.  The +10 bonus while adapting favours births near the
    data peak found by :func:`maximize_glitch_parameters`.
    """

    ctx = _glitch_context(chain)
    prior = ctx.prior
    rng = chain.rng
    proposed = current.copy()
    gsize = proposed.get_vector("glitch_size")
    fd = proposed.get_matrix("morlet_FD")

    adapting = chain.controller.adapting if chain.controller is not None else True

    ifo = int(np.floor(rng.random() * len(gsize)))
    nx = int(gsize[ifo])
    rj = 1 if rng.random() < 0.5 else -1
    ny = nx + rj

    if ny < prior.dim_min or ny >= prior.dim_max:
        return None, 0.0

    qx = qy = qxy = qyx = 0.0

    if rj == 1:
        n_slots = proposed.get_matrix("morlet_t0").shape[1]
        if nx >= n_slots:
            raise ProposalError(f"glitch arrays hold {n_slots} slots, cannot add component {nx + 1}")
        t = draw_flat(rng, prior.bounds, "morlet_t0")
        f = draw_flat(rng, prior.bounds, "morlet_f0")
        Q = draw_flat(rng, prior.bounds, "morlet_Q")
        A = glitch_amplitude_draw(rng, Q, f) / prior.norm
        phi = draw_flat(rng, prior.bounds, "morlet_phi")
        set_component(proposed, ifo, nx, (t, f, Q, A, phi))

        if adapting:
            maximize_glitch_parameters(ctx, proposed, ifo, nx)

        update_wavelet_sum(ctx, proposed, fd, ifo, nx, 1)
        qy = log_component_prior(prior, proposed, ifo, nx)
        if adapting:
            qy += ADAPT_BONUS
    else:
        n = int(np.floor(rng.random() * nx))
        update_wavelet_sum(ctx, proposed, fd, ifo, n, -1)
        qx = log_component_prior(prior, current, ifo, n)

        # remove and compact
        for name in COMPONENT_NAMES:
            row = proposed.get_matrix(name)[ifo]
            row[n:ny] = row[n + 1 : nx]
            row[ny] = 0.0

        if adapting:
            qx += ADAPT_BONUS

    gsize[ifo] = ny
    return proposed, float((qxy + qx) - (qyx + qy))


__all__ = [name for name in globals() if not name.startswith("_")]
