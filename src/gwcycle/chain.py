"""Per-chain state handed to every kernel."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

from .adaptation import AdaptiveController, AdaptiveControllerConfig
from .buffer import DifferentialEvolutionBuffer
from .config import CycleConfig
from .geometry import GeometryContext
from .priors import PriorBounds
from .states import Variables

if TYPE_CHECKING:
    from .birth_death import GlitchContext
    from .kde import KDEProposalSet


@dataclass
class ChainState:
    """Everything a kernel may read besides the current point.

    One instance per chain (temperature rung); nothing in here is shared
    mutably between chains.
    """

    rng: np.random.Generator
    priors: PriorBounds
    config: CycleConfig = field(default_factory=CycleConfig)
    temperature: float = 1.0
    buffer: DifferentialEvolutionBuffer = field(default_factory=DifferentialEvolutionBuffer)
    controller: Optional[AdaptiveController] = None
    geometry: Optional[GeometryContext] = None
    glitch: Optional["GlitchContext"] = None
    kde_set: Optional["KDEProposalSet"] = None
    eigenvalues: Optional[np.ndarray] = None  # (N,)
    eigenvectors: Optional[np.ndarray] = None  # (P, N) columns are directions
    log_likelihood: Optional[Callable[[Variables], float]] = None
    current: Optional[Variables] = None

    @staticmethod
    def create(
        rng: np.random.Generator,
        priors: PriorBounds,
        params: Variables,
        config: Optional[CycleConfig] = None,
        adapt: Optional[AdaptiveControllerConfig] = None,
        **kwargs,
    ) -> "ChainState":
        """Chain with a DE buffer sized from ``config`` and a fresh sigma table."""

        config = config if config is not None else CycleConfig()
        adapt = adapt if adapt is not None else AdaptiveControllerConfig()
        return ChainState(
            rng=rng,
            priors=priors,
            config=config,
            buffer=DifferentialEvolutionBuffer(config.de_max_size, config.de_skip),
            controller=AdaptiveController.init(adapt, params),
            current=params.copy(),
            **kwargs,
        )

    def set_covariance(self, cov: np.ndarray) -> None:
        """Attach the eigenbasis of a covariance over the non-fixed scalars."""

        evals, evecs = np.linalg.eigh(np.asarray(cov, dtype=float))
        self.eigenvalues = np.clip(evals, 0.0, None)
        self.eigenvectors = evecs


__all__ = [name for name in globals() if not name.startswith("_")]
