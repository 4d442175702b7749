"""Clustered kernel-density-estimate proposals.

Samples are whitened, partitioned with k-means (k chosen by BIC) and a
Gaussian KDE is fitted inside every cluster.  The resulting mixture is
used as an independence proposal.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import IO, List, Optional, Sequence, Tuple

import numpy as np
from scipy.cluster.vq import kmeans2
from scipy.special import logsumexp
from scipy.stats import gaussian_kde
from tqdm.auto import tqdm

from .buffer import max_autocorrelation_length
from .chain import ChainState
from .errors import ProposalError
from .proposal import KDE_NAME, KernelResult
from .states import Variables

logger = logging.getLogger("gwcycle")

KMEANS_MAX_ITER = 100
ASCII_TRIALS = 50
BUFFER_TRIALS = 5
BUFFER_WEIGHT = 2.0


@dataclass
class _Cluster:
    kde: gaussian_kde  # Scott bandwidth over the whitened member points
    weight: float

    @staticmethod
    def fit(points: np.ndarray, weight: float) -> "_Cluster":
        m, d = points.shape
        if m < d + 1:
            raise np.linalg.LinAlgError(f"cluster of {m} points in {d} dimensions")
        return _Cluster(gaussian_kde(points.T), weight)

    def logpdf(self, Y: np.ndarray) -> np.ndarray:
        # Y: (N,D)
        return self.kde.logpdf(Y.T)

    def draw(self, rng: np.random.Generator) -> np.ndarray:
        return self.kde.resample(1, seed=rng)[:, 0]


def kmeans(
    rng: np.random.Generator, Y: np.ndarray, k: int, max_iter: int = KMEANS_MAX_ITER
) -> Tuple[np.ndarray, np.ndarray]:
    """k-means with k-means++ seeding; returns (centroids (k,D), assignments (N,))."""

    centroids, assign = kmeans2(Y, k, iter=max_iter, minit="++", seed=rng)
    return centroids, assign


class ClusteredKDE:
    """Mixture of per-cluster Gaussian KDEs over a named parameter subspace."""

    def __init__(
        self,
        name: str,
        names: Sequence[str],
        weight: float,
        mean: np.ndarray,
        white: np.ndarray,
        clusters: List[_Cluster],
        bic: float,
    ):
        self.name = name
        self.names = list(names)
        self.weight = float(weight)
        self.mean = mean
        self.white = white  # (D,D) lower Cholesky factor of the sample covariance
        self.white_inv = np.linalg.inv(white)
        self.clusters = clusters
        self.bic = bic
        self._log_det_white = float(np.sum(np.log(np.diag(white))))

    @property
    def k(self) -> int:
        return len(self.clusters)

    @property
    def dimension(self) -> int:
        return len(self.names)

    @staticmethod
    def fit(
        samples: np.ndarray,
        names: Sequence[str],
        rng: np.random.Generator,
        ntrials: int = BUFFER_TRIALS,
        weight: float = 1.0,
        name: str = KDE_NAME,
        verbose: bool = False,
    ) -> "ClusteredKDE":
        """Whiten, choose k by BIC and fit. Failure raises :class:`ProposalError`."""

        X = np.asarray(samples, dtype=float)
        if X.ndim != 2 or X.shape[1] != len(names):
            raise ProposalError(f"KDE samples must have shape (n, {len(names)}), got {X.shape}")
        n, d = X.shape
        if n < d + 2:
            raise ProposalError(f"{n} samples are too few for a {d}-dimensional KDE")

        mean = X.mean(axis=0)
        try:
            white = np.linalg.cholesky(np.atleast_2d(np.cov(X, rowvar=False)))
        except np.linalg.LinAlgError as err:
            raise ProposalError(f"cannot whiten KDE samples: {err}") from err
        Y = np.linalg.solve(white, (X - mean).T).T  # (n,d)

        best: Optional[Tuple[float, List[_Cluster]]] = None
        k = 1
        while k <= n // (d + 1):
            trial_best: Optional[Tuple[float, List[_Cluster]]] = None
            for _ in tqdm(range(ntrials), desc=f"{name} k={k}", disable=not verbose, leave=False):
                clusters = _try_clusters(rng, Y, k)
                if clusters is None:
                    continue
                bic = _bic(Y, clusters)
                if trial_best is None or bic > trial_best[0]:
                    trial_best = (bic, clusters)
            if trial_best is None or (best is not None and trial_best[0] <= best[0]):
                break
            best = trial_best
            k += 1

        if best is None:
            raise ProposalError(f"k-means clustering failed for {name}")

        kde = ClusteredKDE(name, names, weight, mean, white, best[1], best[0])
        logger.info("%s: %d clusters from %d samples in %d dimensions", name, kde.k, n, d)
        return kde

    # ---- density / draws ----
    def _whiten(self, X: np.ndarray) -> np.ndarray:
        return (X - self.mean) @ self.white_inv.T

    def logpdf(self, X: np.ndarray) -> np.ndarray:
        """Log density at the rows of ``X`` (N,D) in parameter space."""

        Y = self._whiten(np.atleast_2d(X))
        parts = np.stack([np.log(c.weight) + c.logpdf(Y) for c in self.clusters])  # (k,N)
        return logsumexp(parts, axis=0) - self._log_det_white

    def draw(self, rng: np.random.Generator) -> np.ndarray:
        w = np.array([c.weight for c in self.clusters])
        c = self.clusters[rng.choice(len(w), p=w / w.sum())]
        y = c.draw(rng)
        return self.mean + self.white @ y


def _try_clusters(rng: np.random.Generator, Y: np.ndarray, k: int) -> Optional[List[_Cluster]]:
    _, assign = kmeans(rng, Y, k)
    n = Y.shape[0]
    clusters = []
    for c in range(k):
        pts = Y[assign == c]
        try:
            clusters.append(_Cluster.fit(pts, len(pts) / n))
        except np.linalg.LinAlgError:
            return None
    return clusters


def _bic(Y: np.ndarray, clusters: List[_Cluster]) -> float:
    n, d = Y.shape
    parts = np.stack([np.log(c.weight) + c.logpdf(Y) for c in clusters])
    loglike = float(np.sum(logsumexp(parts, axis=0)))
    k = len(clusters)
    # centroid, covariance and weight of each cluster
    n_par = k * (d + d * (d + 1) / 2) + (k - 1)
    return loglike - 0.5 * n_par * np.log(n)


class KDEProposalSet:
    """Ordered, name-keyed KDE estimates; adding an existing name replaces it in place."""

    def __init__(self):
        self._kdes: "OrderedDict[str, ClusteredKDE]" = OrderedDict()

    def add(self, kde: ClusteredKDE) -> None:
        self._kdes[kde.name] = kde

    def __len__(self) -> int:
        return len(self._kdes)

    def __iter__(self):
        return iter(self._kdes.values())

    def __getitem__(self, name: str) -> ClusteredKDE:
        return self._kdes[name]

    def names(self) -> List[str]:
        return list(self._kdes)

    def choose(self, rng: np.random.Generator) -> ClusteredKDE:
        kdes = list(self._kdes.values())
        w = np.array([k.weight for k in kdes])
        return kdes[rng.choice(len(kdes), p=w / w.sum())]


def clustered_kde_proposal(chain: ChainState, current: Variables) -> KernelResult:
    """Independence jump from a weight-chosen KDE of the chain's set."""

    kset = chain.kde_set
    if kset is None or len(kset) == 0:
        return None, 0.0

    rng = chain.rng
    kde = kset.choose(rng)
    proposed = current.copy()

    x = kde.draw(rng)
    for name, v in zip(kde.names, x):
        proposed.set_scalar(name, v)
    if chain.config.cyclic_reflective_kde:
        chain.priors.cyclic_reflective_bound(proposed)

    cur = current.scalar_vector(kde.names)
    new = proposed.scalar_vector(kde.names)
    log_p = kde.logpdf(np.stack([cur, new]))
    return proposed, float(log_p[0] - log_p[1])


# ---- construction from runs ----
def _ensure_set(chain: ChainState):
    if chain.kde_set is None:
        chain.kde_set = KDEProposalSet()
    return chain.kde_set


def setup_kde_from_samples(
    chain: ChainState,
    samples: np.ndarray,
    ntrials: int = BUFFER_TRIALS,
    weight: float = BUFFER_WEIGHT,
    name: str = KDE_NAME,
) -> ClusteredKDE:
    """Fit a KDE over the chain's non-fixed scalars (columns in set order) and add it."""

    names = chain.current.non_fixed_scalar_names()
    kde = ClusteredKDE.fit(samples, names, chain.rng, ntrials, weight, name, chain.config.verbose)
    _ensure_set(chain).add(kde)
    return kde


def setup_kde_from_buffer(chain: ChainState) -> ClusteredKDE:
    """Fit from the DE buffer thinned to roughly independent samples."""

    buf = chain.buffer
    names = chain.current.non_fixed_scalar_names()
    n = len(buf)
    ess = buf.effective_sample_size(names)
    step = int(np.floor(n / ess)) if ess > 0 else 1
    step = max(step, 1)
    samples = buf.to_array(names, step)
    logger.info("Building KDE from %d of %d buffered samples", samples.shape[0], n)
    return setup_kde_from_samples(chain, samples, BUFFER_TRIALS, BUFFER_WEIGHT, KDE_NAME)


def _read_ascii(stream: IO[str], skip_comments: bool) -> Tuple[List[str], List[List[float]]]:
    header: Optional[List[str]] = None
    rows = []
    for line in stream:
        text = line.strip()
        if not text:
            continue
        if skip_comments and text.startswith("#") and header is None:
            continue
        if header is None:
            header = text.lstrip("#").split()
            continue
        rows.append([float(v) for v in text.split()])
    if header is None:
        raise ProposalError("sample file has no header line")
    return header, rows


def setup_kde_from_ascii(
    chain: ChainState,
    stream: IO[str],
    burnin: int = 0,
    weight: float = 1.0,
    ptmcmc: bool = False,
    name: str = KDE_NAME,
) -> ClusteredKDE:
    """Fit a KDE to a whitespace-delimited posterior-sample file.

    Only columns naming non-fixed parameters of the chain are kept.  For
    parallel-tempering output the leading comment block is skipped, the
    burn-in is taken as the samples before ``logl`` first comes within
    ``d/2`` of its maximum, and the remainder is thinned by its ACL.
    Construction failure raises :class:`ProposalError`.
    """

    header, rows = _read_ascii(stream, skip_comments=ptmcmc)
    data = np.asarray(rows, dtype=float)
    if data.ndim != 2 or data.shape[0] == 0:
        raise ProposalError("sample file holds no samples")

    current = chain.current
    cols = [
        (j, col)
        for j, col in enumerate(header)
        if col != "logl" and current.is_non_fixed_scalar(col)
    ]
    if not cols:
        raise ProposalError("no sampled parameter appears in the sample file header")
    names = [c for _, c in cols]
    samples = data[:, [j for j, _ in cols]]

    if ptmcmc:
        if "logl" in header:
            logl = data[:, header.index("logl")]
            target = logl.max() - len(names) / 2.0
            start = int(np.argmax(logl >= target))
            samples = samples[start:]
        acl = max_autocorrelation_length(samples)
        acl = int(acl) if np.isfinite(acl) else samples.shape[0]
        acl = max(acl, 1)
        samples = samples[::acl]
        logger.info("Downsampling to achieve %d samples", samples.shape[0])
    else:
        samples = samples[burnin:]

    kde = ClusteredKDE.fit(samples, names, chain.rng, ASCII_TRIALS, weight, name, chain.config.verbose)
    _ensure_set(chain).add(kde)
    return kde


__all__ = [name for name in globals() if not name.startswith("_")]
