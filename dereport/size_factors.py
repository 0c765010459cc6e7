"""
Median-of-ratios size factors.

References:
    - Anders S, Huber W (2010). Differential expression analysis for sequence
      count data. Genome Biology 11:R106
"""

import numpy as np


def log_geometric_means(counts, type="ratio"):
    """
    Per-gene log geometric mean across samples.

    ``ratio`` uses every sample, so any zero gives ``-inf`` and the gene is
    left out of the size factor estimate. ``poscounts`` averages the logs
    of the positive counts only (all-zero genes still give ``-inf``).
    """
    counts = np.asarray(counts, dtype=float)

    if type == "ratio":
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.mean(np.log(counts), axis=1)

    if type == "poscounts":
        positive = counts > 0
        logs = np.log(counts, where=positive, out=np.zeros_like(counts))
        n_pos = positive.sum(axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            log_geomeans = logs.sum(axis=1) / n_pos
        log_geomeans[n_pos == 0] = -np.inf
        return log_geomeans

    raise ValueError(f"Unknown size factor type: {type!r}")


def estimate_size_factors(counts, type="ratio"):
    """
    Estimate per-sample size factors (DESeq2 estimateSizeFactorsForMatrix).

    Parameters
    ----------
    counts : np.ndarray or pd.DataFrame
        Raw counts (genes x samples).
    type : {"ratio", "poscounts"}
        ``poscounts`` size factors are scaled to a geometric mean of one.

    Returns
    -------
    np.ndarray
        One size factor per sample.
    """
    counts = np.asarray(counts, dtype=float)
    S = counts.shape[1]

    log_geomeans = log_geometric_means(counts, type=type)
    if np.all(np.isinf(log_geomeans)):
        raise ValueError(
            "every gene contains at least one zero; cannot compute size factors "
            "(try type='poscounts')")

    size_factors = np.empty(S)
    for j in range(S):
        c = counts[:, j]
        usable = np.isfinite(log_geomeans) & (c > 0)
        if not usable.any():
            raise ValueError(f"sample {j} has no positive counts in usable genes")
        size_factors[j] = np.exp(np.median(np.log(c[usable]) - log_geomeans[usable]))

    if type == "poscounts":
        size_factors = size_factors / np.exp(np.mean(np.log(size_factors)))

    return size_factors
