"""Typed run configuration for the proposal cycle."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Optional

import numpy as np

BIG_WEIGHT = 20
SMALL_WEIGHT = 5
TINY_WEIGHT = 1

# Kernel families that can be switched on and off, in cycle order.
FAMILY_NAMES = (
    "singleadapt",
    "psiphi",
    "extrinsicparam",
    "skywander",
    "skyreflect",
    "drawprior",
    "eigenvectors",
    "differentialevolution",
    "stretch",
    "walk",
    "skyring",
    "kde",
    "spline_cal",
    "psdfit",
    "glitchfit",
    "distance_gibbs",
)

# Families that need a signal model; switched off for noise-only runs.
SIGNAL_FAMILIES = (
    "singleadapt",
    "psiphi",
    "extrinsicparam",
    "skywander",
    "skyreflect",
    "drawprior",
    "eigenvectors",
    "differentialevolution",
    "stretch",
    "walk",
    "skyring",
    "spline_cal",
)

SKY_FAMILIES = ("extrinsicparam", "skywander", "skyreflect", "skyring")


@dataclass
class CycleConfig:
    """Which kernel families run, with what weights, under which run modifiers.

    Family flags hold the MCMC defaults. ``overrides`` maps a family name
    to an explicit on/off request and is applied after every modifier.
    """

    # kernel families
    singleadapt: bool = True
    psiphi: bool = True
    extrinsicparam: bool = True
    skywander: bool = True
    skyreflect: bool = True
    drawprior: bool = True
    eigenvectors: bool = False
    differentialevolution: bool = True
    stretch: bool = True
    walk: bool = False
    skyring: bool = True
    kde: bool = False
    spline_cal: bool = False
    psdfit: bool = False
    glitchfit: bool = False
    distance_gibbs: bool = False

    # run modifiers
    noise_only: bool = False
    marg_time: bool = False
    marg_phi: bool = False
    sky_frame: bool = False
    analytic_test: bool = False
    sampling_prior: bool = False
    nested_sampling: bool = False

    overrides: Dict[str, bool] = field(default_factory=dict)

    big_weight: int = BIG_WEIGHT
    small_weight: int = SMALL_WEIGHT
    tiny_weight: int = TINY_WEIGHT

    # DE buffer
    de_skip: int = 1
    de_max_size: int = 100_000

    # nuisance-parameter jump widths
    psd_sigma: Optional[np.ndarray] = None  # (n_bins,) per psdscale column
    spcal_amp_uncertainty: float = 0.0
    spcal_phase_uncertainty: float = 0.0

    cyclic_reflective_kde: bool = False
    verbose: bool = False

    @staticmethod
    def nested_sampling_defaults(**kwargs) -> "CycleConfig":
        """Flag set used by the nested sampler: ensemble and covariance moves only."""

        flags = {name: False for name in FAMILY_NAMES}
        flags.update(eigenvectors=True, differentialevolution=True, stretch=True, walk=True)
        flags["nested_sampling"] = True
        flags.update(kwargs)
        return CycleConfig(**flags)

    def family_flags(self) -> Dict[str, bool]:
        return {name: bool(getattr(self, name)) for name in FAMILY_NAMES}

    def resolved_flags(self, n_unique_det: int) -> Dict[str, bool]:
        """Family flags after the run modifiers and explicit overrides."""

        flags = self.family_flags()

        if self.noise_only:
            for name in SIGNAL_FAMILIES:
                flags[name] = False

        if self.marg_phi:
            flags["psiphi"] = False

        if n_unique_det < 2:
            flags["skyring"] = False

        if n_unique_det != 3:
            flags["skyreflect"] = False
            flags["extrinsicparam"] = False

        if self.sky_frame:
            for name in SKY_FAMILIES:
                flags[name] = False

        flags.update({k: bool(v) for k, v in self.overrides.items()})
        return flags

    def with_overrides(self, **overrides: bool) -> "CycleConfig":
        merged = dict(self.overrides)
        merged.update(overrides)
        return replace(self, overrides=merged)


def validate_cycle_config(cfg: CycleConfig) -> None:
    """
    Validates a :class:`CycleConfig`.

    Raises:
        ValueError: If any override names an unknown family, a weight is
            negative, or a buffer/width setting is out of range
    """
    errors = []

    for name in cfg.overrides:
        if name not in FAMILY_NAMES:
            errors.append(f"Unknown proposal family in overrides: '{name}'")

    for f in ("big_weight", "small_weight", "tiny_weight"):
        w = getattr(cfg, f)
        if int(w) != w or w < 0:
            errors.append(f"{f} must be a non-negative integer, got {w}")

    if cfg.de_skip < 1:
        errors.append(f"de_skip must be >= 1, got {cfg.de_skip}")
    if cfg.de_max_size < 1:
        errors.append(f"de_max_size must be >= 1, got {cfg.de_max_size}")

    if cfg.spcal_amp_uncertainty < 0 or cfg.spcal_phase_uncertainty < 0:
        errors.append("Spline calibration uncertainties must be >= 0")

    if cfg.psd_sigma is not None:
        sig = np.asarray(cfg.psd_sigma, dtype=float)
        if sig.ndim != 1:
            errors.append(f"psd_sigma must be 1-D, got shape {sig.shape}")
        elif np.any(sig < 0) or not np.all(np.isfinite(sig)):
            errors.append("psd_sigma entries must be finite and >= 0")

    if errors:
        raise ValueError("Invalid cycle configuration:\n  " + "\n  ".join(errors))


__all__ = [name for name in globals() if not name.startswith("_")]
