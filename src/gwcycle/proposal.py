"""Kernel record shared by the proposal cycle and every jump family."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Tuple

from .states import Variables

if TYPE_CHECKING:
    from .chain import ChainState

logger = logging.getLogger("gwcycle")

# (proposed or None, log q(x|y) - log q(y|x))
KernelResult = Tuple[Optional[Variables], float]
KernelFunc = Callable[["ChainState", Variables], KernelResult]

# Kernel names as they appear in acceptance summaries and tracking files.
SINGLE_ADAPT_NAME = "SingleAdapt"
SINGLE_NAME = "Single"
POLARIZATION_PHASE_NAME = "PolarizationPhase"
CORR_POLARIZATION_PHASE_NAME = "CorrPolarizationPhase"
EXTRINSIC_PARAM_NAME = "ExtrinsicParamProposal"
SKY_WANDER_NAME = "SkyLocWander"
SKY_REFLECT_NAME = "SkyReflectDetPlane"
DRAW_PRIOR_NAME = "DrawApproxPrior"
COVARIANCE_EIGENVECTOR_NAME = "CovarianceEigenvector"
DE_FULL_NAME = "DifferentialEvolutionFull"
DE_INTRINSIC_NAME = "DifferentialEvolutionIntrinsic"
DE_EXTRINSIC_NAME = "DifferentialEvolutionExtrinsic"
STRETCH_FULL_NAME = "EnsembleStretchFull"
STRETCH_INTRINSIC_NAME = "EnsembleStretchIntrinsic"
STRETCH_EXTRINSIC_NAME = "EnsembleStretchExtrinsic"
WALK_FULL_NAME = "EnsembleWalkFull"
WALK_INTRINSIC_NAME = "EnsembleWalkIntrinsic"
WALK_EXTRINSIC_NAME = "EnsembleWalkExtrinsic"
SKY_RING_NAME = "SkyRingProposal"
KDE_NAME = "ClusteredKDEProposal"
SPLINE_CAL_NAME = "SplineCalibration"
PSD_FIT_NAME = "PSDFitJump"
GLITCH_MORLET_NAME = "glitchMorletJump"
GLITCH_REVERSE_JUMP_NAME = "glitchMorletReverseJump"
FREQUENCY_BIN_NAME = "FrequencyBin"
DISTANCE_GIBBS_NAME = "DistanceQuasiGibbs"


@dataclass
class Proposal:
    """A named jump kernel plus its acceptance counters.

    ``warning_delivered`` belongs to this instance, so two chains running
    the same kernel warn independently.
    """

    name: str
    func: Optional[KernelFunc] = None
    proposed: int = 0
    accepted: int = 0
    warning_delivered: bool = False

    def __call__(self, chain: "ChainState", current: Variables) -> KernelResult:
        return self.func(chain, current)

    def warn_once(self, msg: str, *args) -> None:
        if not self.warning_delivered:
            logger.warning(msg, *args)
            self.warning_delivered = True

    @property
    def acceptance_rate(self) -> float:
        return self.accepted / self.proposed if self.proposed else float("nan")


__all__ = [name for name in globals() if not name.startswith("_")]
