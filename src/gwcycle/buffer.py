"""Differential-evolution history buffer and autocorrelation diagnostics."""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional, Sequence

import numpy as np

from .states import Variables


def max_autocorrelation_length(array: np.ndarray, M: int = 5, K: int = 2) -> float:
    """Largest single-column autocorrelation length of ``array`` (N, P).

    For each column the ACL is the smallest s = lag/M for which
    1 + 2*sum(ACF(1..lag)) drops below s.  The window is restricted to
    N/K lags; a column that never settles inside it gives ``inf``.
    """

    x = np.asarray(array, dtype=float)
    if x.ndim == 1:
        x = x[:, None]
    n_points, n_par = x.shape
    if n_points <= 1:
        return np.inf

    imax = n_points // K
    max_acl = 0.0
    for par in range(n_par):
        col = x[:, par] - x[:, par].mean()
        lag = 1
        s = 1.0
        cum_acf = 1.0
        acl = 1.0
        while cum_acf >= s:
            a, b = col[: n_points - lag], col[lag:]
            a = a - a.mean()
            b = b - b.mean()
            den = np.sqrt(np.sum(a * a) * np.sum(b * b))
            acf = np.sum(a * b) / den if den > 0 else 0.0
            cum_acf += 2.0 * acf
            lag += 1
            s = lag / M
            if lag > imax:
                acl = np.inf
                break
        else:
            acl = s
        max_acl = max(max_acl, acl)
    return max_acl


class DifferentialEvolutionBuffer:
    """Bounded history of accepted samples read by the DE-family kernels.

    ``offer`` is called once per sampler iteration; only every ``skip``-th
    offer is stored, and once ``max_size`` samples are held the oldest is
    dropped.
    """

    def __init__(self, max_size: int = 100_000, skip: int = 1):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if skip < 1:
            raise ValueError(f"skip must be >= 1, got {skip}")
        self.max_size = int(max_size)
        self.skip = int(skip)
        self._points: Deque[Variables] = deque(maxlen=self.max_size)
        self._offered = 0
        self.acl: Optional[int] = None

    def __len__(self) -> int:
        return len(self._points)

    def __getitem__(self, i: int) -> Variables:
        return self._points[i]

    def points(self) -> List[Variables]:
        return list(self._points)

    def append(self, params: Variables) -> None:
        self._points.append(params.copy())

    def offer(self, params: Variables) -> bool:
        """Store ``params`` if this offer falls on the thinning stride."""

        stored = self._offered % self.skip == 0
        self._offered += 1
        if stored:
            self.append(params)
        return stored

    def clear(self) -> None:
        self._points.clear()
        self._offered = 0

    def to_array(self, names: Sequence[str], step: int = 1) -> np.ndarray:
        """(ceil(n/step), len(names)) array of every ``step``-th stored point."""

        pts = list(self._points)[:: max(int(step), 1)]
        out = np.empty((len(pts), len(names)), dtype=float)
        for i, p in enumerate(pts):
            out[i] = [p.get_scalar(n) for n in names]
        return out

    def max_acl(self, names: Sequence[str]) -> float:
        """ACL from the latter half of the buffer, in sampler iterations."""

        arr = self.to_array(names)
        n = arr.shape[0]
        return self.skip * max_autocorrelation_length(arr[n // 2 :])

    def update_acl(self, names: Sequence[str]) -> int:
        acl = self.max_acl(names)
        self.acl = int(acl) if np.isfinite(acl) else np.iinfo(np.int32).max
        return self.acl

    def effective_sample_size(self, names: Sequence[str]) -> int:
        """Independent samples represented by the buffer.

        Until an ACL estimate has been requested once the buffer is
        assumed already thinned (ACL of one).
        """

        acl = 1
        if self.acl is not None:
            acl = max(self.update_acl(names), 1)
        return (len(self._points) * self.skip) // acl


__all__ = [name for name in globals() if not name.startswith("_")]
