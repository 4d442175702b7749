"""Robbins-Monro step-size adaptation for the single-parameter jumps."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict

import numpy as np

from .errors import ProposalError
from .priors import PriorBounds
from .states import Variables

logger = logging.getLogger("gwcycle")

DBL_MIN = np.finfo(float).tiny

# Initial single-parameter step sizes.
_SMALL_SIGMA_NAMES = ("eta", "q", "time", "a_spin1", "a_spin2")
_ANGLE_SIGMA_NAMES = ("polarisation", "phase", "costheta_jn")


def initial_sigma(name: str) -> float:
    if name in _SMALL_SIGMA_NAMES:
        return 0.001
    if name in _ANGLE_SIGMA_NAMES:
        return 0.1
    return 0.01


@dataclass
class AdaptiveControllerConfig:
    """Configuration for :class:`AdaptiveController`."""

    no_adapt: bool = False
    adapt_tau: int = 5  # adaptation lasts 10**tau iterations
    reset_buffer: int = 100  # iterations to wait after a restart
    s_gamma: float = 1.0


@dataclass
class AdaptiveSigma:
    sigma: float
    proposed: int = 0
    accepted: int = 0


@dataclass
class AdaptiveController:
    """Per-parameter sigma table plus the adaptation schedule state."""

    cfg: AdaptiveControllerConfig
    table: Dict[str, AdaptiveSigma] = field(default_factory=dict)
    adapting: bool = True
    adaptable_step: bool = False
    proposed_variable_name: str = "none"
    s_gamma: float = 1.0
    adapt_length: int = 100_000
    adapt_start: int = 0
    logl_at_adapt_start: float = -np.inf

    @staticmethod
    def init(cfg: AdaptiveControllerConfig, params: Variables) -> "AdaptiveController":
        """Build the sigma table for every parameter of the initial set."""

        table = {name: AdaptiveSigma(sigma=initial_sigma(name)) for name in params}
        return AdaptiveController(
            cfg=cfg,
            table=table,
            adapting=not cfg.no_adapt,
            s_gamma=cfg.s_gamma,
            adapt_length=int(10 ** cfg.adapt_tau),
        )

    @property
    def enabled(self) -> bool:
        return not self.cfg.no_adapt

    def sigma(self, name: str) -> float:
        try:
            return self.table[name].sigma
        except KeyError:
            raise ProposalError(
                f"single-parameter jump for '{name}' has no adaptive sigma entry"
            ) from None

    def mark_step(self, name: str) -> None:
        """Record that a single-parameter jump on ``name`` was proposed."""

        self.proposed_variable_name = name
        self.adaptable_step = True

    def update(
        self, accepted: bool, target_acceptance: float, priors: PriorBounds
    ) -> None:
        """Update counters and sigma after the sampler's accept/reject decision."""

        if not self.adaptable_step:
            return

        name = self.proposed_variable_name
        if self.adapting:
            entry = self.table.get(name)
            if entry is None:
                raise ProposalError(f"no adaptive sigma entry for '{name}'")
            entry.proposed += 1
            if accepted:
                entry.accepted += 1

            dprior = priors.width(name)
            step = self.s_gamma * (dprior / 100.0)
            if accepted:
                entry.sigma += step * (1.0 - target_acceptance)
            else:
                entry.sigma -= step * target_acceptance
            entry.sigma = clamp_sigma(entry.sigma, dprior)

        self.adaptable_step = False

    def anneal(self, iteration: int) -> None:
        """Decay s_gamma with the iteration count and stop after adapt_length."""

        if not self.adapting:
            return
        elapsed = iteration - self.adapt_start
        if elapsed > self.adapt_length:
            self.adapting = False
            self.s_gamma = 0.0
            logger.info("Adaptation finished after %d iterations", elapsed)
            return
        if elapsed > 0:
            tau = float(self.cfg.adapt_tau)
            self.s_gamma = 10.0 * np.exp(-(1.0 / tau) * np.log(float(elapsed))) - 1.0
            self.s_gamma = max(self.s_gamma, 0.0)

    def restart(self, iteration: int, logl: float) -> None:
        """Re-enable adaptation once ``reset_buffer`` iterations have passed."""

        if self.cfg.no_adapt:
            return
        self.adapt_start = iteration + self.cfg.reset_buffer
        self.logl_at_adapt_start = float(logl)
        self.adapting = True
        self.s_gamma = self.cfg.s_gamma


def clamp_sigma(sigma: float, dprior: float) -> float:
    return float(min(max(sigma, DBL_MIN), dprior))


__all__ = [name for name in globals() if not name.startswith("_")]
