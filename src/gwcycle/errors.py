"""Exception types and configuration validation for GWCYCLE."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Tuple

import numpy as np

logger = logging.getLogger("gwcycle")


class ProposalError(RuntimeError):
    """Broken proposal setup. Not a runtime condition to recover from."""


class ParameterTypeError(ProposalError, TypeError):
    """A numeric kernel was handed a parameter of the wrong value kind."""


class EmptyCycleError(ProposalError):
    """A proposal cycle without kernels was asked for a proposal."""


class CycleExhaustedError(ProposalError):
    """Every kernel in a full pass of the schedule declined to propose."""


def validate_prior_bounds(bounds: Dict[str, Tuple[float, float]]) -> None:
    """
    Validates a name -> (min, max) prior-range table.

    Raises:
        ValueError: If any range is non-finite or empty
    """
    errors = []

    for name, (lo, hi) in bounds.items():
        if not (np.isfinite(lo) and np.isfinite(hi)):
            errors.append(f"Prior range for '{name}' is not finite: ({lo}, {hi})")
        elif hi <= lo:
            errors.append(f"Prior range for '{name}' is empty: min={lo} >= max={hi}")

    if errors:
        raise ValueError("Invalid prior bounds:\n  " + "\n  ".join(errors))


def validate_weights(weights: Dict[str, int]) -> None:
    """Weights must be non-negative integers."""
    errors = []

    for name, w in weights.items():
        if int(w) != w:
            errors.append(f"Weight for '{name}' must be an integer, got {w}")
        elif w < 0:
            errors.append(f"Weight for '{name}' must be >= 0, got {w}")

    if errors:
        raise ValueError("Invalid proposal weights:\n  " + "\n  ".join(errors))


def require_names(have: Iterable[str], need: Iterable[str], where: str) -> None:
    """Raise :class:`ProposalError` naming every missing entry at once."""
    have = set(have)
    missing = [n for n in need if n not in have]
    if missing:
        raise ProposalError(f"{where}: missing required entries {missing}")


__all__ = [name for name in globals() if not name.startswith("_")]
