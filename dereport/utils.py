"""
Library-size normalization helpers.

References:
    - Robinson MD, McCarthy DJ, Smyth GK (2010). edgeR: a Bioconductor
      package for differential expression analysis of digital gene
      expression data. Bioinformatics 26:139-140
"""

import numpy as np
import pandas as pd


def _unwrap(counts):
    if isinstance(counts, pd.DataFrame):
        return counts.to_numpy(dtype=float), counts.index, counts.columns
    return np.asarray(counts, dtype=float), None, None


def _wrap(values, index, columns):
    if index is None:
        return values
    return pd.DataFrame(values, index=index, columns=columns)


def cpm(counts):
    """
    Counts per million using each sample's raw library size.

    Parameters
    ----------
    counts : np.ndarray or pd.DataFrame
        Raw count matrix (genes x samples).

    Returns
    -------
    np.ndarray or pd.DataFrame
        Same shape as the input; each column sums to 1e6. A sample with an
        empty library gives NaN.

    Examples
    --------
    >>> cpm(np.array([[100, 200], [300, 800]]))
    array([[250000., 200000.],
           [750000., 800000.]])
    """
    values, index, columns = _unwrap(counts)
    lib_sizes = values.sum(axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        rates = np.where(lib_sizes > 0, values / lib_sizes * 1e6, np.nan)
    return _wrap(rates, index, columns)


def normalize_counts(counts, size_factors):
    """Counts divided by per-sample size factors."""
    values, index, columns = _unwrap(counts)
    size_factors = np.asarray(size_factors, dtype=float)
    if size_factors.shape != (values.shape[1],):
        raise ValueError("size_factors length must equal number of samples")
    return _wrap(values / size_factors, index, columns)
