"""Weighted, shuffled schedule of jump kernels."""

from __future__ import annotations

import logging
from typing import IO, Dict, List, Optional, Tuple

import numpy as np

from .birth_death import glitch_morlet_jump, glitch_reverse_jump
from .chain import ChainState
from .config import CycleConfig, validate_cycle_config
from .errors import CycleExhaustedError, EmptyCycleError, validate_weights
from .gw_moves import (
    DistanceQuasiGibbs,
    draw_approx_prior,
    polarization_phase_jump,
    psd_fit_jump,
    sky_loc_wander,
    spline_calibration_jump,
)
from .kde import KDEProposalSet, clustered_kde_proposal
from .mh_moves import (
    covariance_eigenvector_jump,
    differential_evolution_extrinsic,
    differential_evolution_full,
    differential_evolution_intrinsic,
    ensemble_stretch_extrinsic,
    ensemble_stretch_full,
    ensemble_stretch_intrinsic,
    ensemble_walk_extrinsic,
    ensemble_walk_full,
    ensemble_walk_intrinsic,
    single_adapt_proposal,
)
from .proposal import (
    COVARIANCE_EIGENVECTOR_NAME,
    DE_EXTRINSIC_NAME,
    DE_FULL_NAME,
    DE_INTRINSIC_NAME,
    DRAW_PRIOR_NAME,
    GLITCH_MORLET_NAME,
    GLITCH_REVERSE_JUMP_NAME,
    KDE_NAME,
    POLARIZATION_PHASE_NAME,
    PSD_FIT_NAME,
    SINGLE_ADAPT_NAME,
    SKY_WANDER_NAME,
    SPLINE_CAL_NAME,
    STRETCH_EXTRINSIC_NAME,
    STRETCH_FULL_NAME,
    STRETCH_INTRINSIC_NAME,
    WALK_EXTRINSIC_NAME,
    WALK_FULL_NAME,
    WALK_INTRINSIC_NAME,
    Proposal,
)
from .sky_moves import ExtrinsicParamProposal, SkyReflectDetPlane, SkyRingProposal
from .states import Variables

logger = logging.getLogger("gwcycle")


class ProposalCycle:
    """Kernels plus the schedule that interleaves them.

    A kernel added with weight w occupies w slots of the schedule.  Each
    call to :meth:`next` reads the slot under the cursor and moves the
    cursor on, whether or not that kernel produced a proposal.
    """

    def __init__(self):
        self.kernels: List[Proposal] = []
        self.schedule: List[int] = []
        self.cursor = 0
        self.last_proposal: Optional[str] = None
        self._index: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.schedule)

    def names(self) -> List[str]:
        return [k.name for k in self.kernels]

    def kernel(self, name: str) -> Proposal:
        return self.kernels[self._index[name]]

    def add(self, kernel: Proposal, weight: int) -> None:
        validate_weights({kernel.name: weight})
        if weight == 0:
            return
        if kernel.name in self._index:
            raise ValueError(f"A kernel named '{kernel.name}' is already in the cycle")
        idx = len(self.kernels)
        self.kernels.append(kernel)
        self._index[kernel.name] = idx
        self.schedule.extend([idx] * int(weight))

    def shuffle(self, rng: np.random.Generator) -> None:
        # Fisher-Yates, in place
        order = self.schedule
        for i in range(len(order) - 1, 0, -1):
            j = int(rng.integers(i + 1))
            order[i], order[j] = order[j], order[i]

    def next(self, chain: ChainState, current: Variables) -> Tuple[Variables, float, str]:
        """Proposed point, log proposal ratio and kernel name from the next willing kernel."""

        if not self.schedule:
            raise EmptyCycleError("proposal cycle has no kernels")

        for _ in range(len(self.schedule)):
            kernel = self.kernels[self.schedule[self.cursor]]
            self.cursor = (self.cursor + 1) % len(self.schedule)
            self.last_proposal = kernel.name

            proposed, log_ratio = kernel(chain, current)
            if proposed is not None:
                return proposed, float(log_ratio), kernel.name
            logger.debug("%s made no proposal, moving to the next slot", kernel.name)

        raise CycleExhaustedError(
            f"no kernel in a full pass of {len(self.schedule)} slots produced a proposal"
        )

    def track_acceptance(self, accepted: bool) -> None:
        if self.last_proposal is None:
            return
        k = self.kernel(self.last_proposal)
        k.proposed += 1
        if accepted:
            k.accepted += 1

    def zero_stats(self) -> None:
        for k in self.kernels:
            k.proposed = 0
            k.accepted = 0

    def acceptance_summary(self) -> Dict[str, Dict[str, float]]:
        return {
            k.name: {"proposed": k.proposed, "accepted": k.accepted, "rate": k.acceptance_rate}
            for k in self.kernels
        }


# ---- proposal tracking ----
def write_tracking_header(fp: IO[str], params: Variables) -> None:
    names = params.non_fixed_scalar_names()
    cols = ["proposal"] + names + [n + "p" for n in names] + ["prop_ratio", "accepted"]
    fp.write("\t".join(cols) + "\n")


def write_tracking_row(
    fp: IO[str],
    cycle: ProposalCycle,
    theta: Variables,
    theta_prime: Variables,
    log_ratio: float,
    accepted: bool,
) -> None:
    names = theta.non_fixed_scalar_names()
    cols = [cycle.last_proposal or ""]
    cols += [f"{theta.get_scalar(n):.12g}" for n in names]
    cols += [f"{theta_prime.get_scalar(n):.12g}" for n in names]
    cols += [f"{np.exp(log_ratio):.12g}", str(int(bool(accepted)))]
    fp.write("\t".join(cols) + "\n")


# ---- default inspiral cycle ----
def setup_default_cycle(
    config: CycleConfig,
    n_unique_det: int,
    kde_set: Optional[KDEProposalSet] = None,
    rng: Optional[np.random.Generator] = None,
) -> ProposalCycle:
    """Cycle with every enabled family at its standard weight, shuffled when ``rng`` is given."""

    validate_cycle_config(config)
    flags = config.resolved_flags(n_unique_det)
    if kde_set is not None and len(kde_set) > 0 and config.overrides.get("kde", True):
        flags["kde"] = True

    big, small, tiny = config.big_weight, config.small_weight, config.tiny_weight
    cycle = ProposalCycle()

    if flags["singleadapt"]:
        cycle.add(Proposal(SINGLE_ADAPT_NAME, single_adapt_proposal), big)

    if flags["psiphi"]:
        cycle.add(Proposal(POLARIZATION_PHASE_NAME, polarization_phase_jump), tiny)

    if flags["extrinsicparam"]:
        cycle.add(ExtrinsicParamProposal(), small)

    if flags["skywander"]:
        cycle.add(Proposal(SKY_WANDER_NAME, sky_loc_wander), small)

    if flags["skyreflect"]:
        cycle.add(SkyReflectDetPlane(), tiny)

    if flags["drawprior"]:
        cycle.add(Proposal(DRAW_PRIOR_NAME, draw_approx_prior), tiny)

    if flags["eigenvectors"]:
        cycle.add(Proposal(COVARIANCE_EIGENVECTOR_NAME, covariance_eigenvector_jump), big)

    if flags["differentialevolution"]:
        cycle.add(Proposal(DE_FULL_NAME, differential_evolution_full), big)
        cycle.add(Proposal(DE_INTRINSIC_NAME, differential_evolution_intrinsic), small)
        cycle.add(Proposal(DE_EXTRINSIC_NAME, differential_evolution_extrinsic), small)

    if flags["stretch"]:
        cycle.add(Proposal(STRETCH_FULL_NAME, ensemble_stretch_full), big)
        cycle.add(Proposal(STRETCH_INTRINSIC_NAME, ensemble_stretch_intrinsic), small)
        cycle.add(Proposal(STRETCH_EXTRINSIC_NAME, ensemble_stretch_extrinsic), small)

    if flags["walk"]:
        cycle.add(Proposal(WALK_FULL_NAME, ensemble_walk_full), big)
        cycle.add(Proposal(WALK_INTRINSIC_NAME, ensemble_walk_intrinsic), small)
        cycle.add(Proposal(WALK_EXTRINSIC_NAME, ensemble_walk_extrinsic), small)

    if flags["skyring"]:
        cycle.add(SkyRingProposal(), small)

    if flags["kde"]:
        cycle.add(Proposal(KDE_NAME, clustered_kde_proposal), big)

    if flags["spline_cal"]:
        cycle.add(Proposal(SPLINE_CAL_NAME, spline_calibration_jump), small)

    if flags["psdfit"]:
        cycle.add(Proposal(PSD_FIT_NAME, psd_fit_jump), small)

    if flags["glitchfit"]:
        cycle.add(Proposal(GLITCH_MORLET_NAME, glitch_morlet_jump), small)
        cycle.add(Proposal(GLITCH_REVERSE_JUMP_NAME, glitch_reverse_jump), small)

    if flags["distance_gibbs"]:
        cycle.add(DistanceQuasiGibbs(), small)

    if rng is not None:
        cycle.shuffle(rng)

    logger.info(
        "Proposal cycle: %d kernels, %d slots (%s)",
        len(cycle.kernels),
        len(cycle),
        ", ".join(cycle.names()),
    )
    return cycle


__all__ = [name for name in globals() if not name.startswith("_")]
