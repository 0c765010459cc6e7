"""
DESeq2-style differential expression engine.

Any callable ``engine(matrix, assignment) -> DEResult`` can drive the
reporting pipeline; ``deseq_engine`` is the bundled one.
"""

import logging
import time
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .dispersion import estimate_dispersions
from .errors import InvalidParameterError, SchemaError
from .independent_filtering import independent_filtering
from .nbinom_wald import benjamini_hochberg, nb_glm_wald
from .size_factors import estimate_size_factors

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj"]
SIZE_FACTOR_TYPES = ("ratio", "poscounts")


@dataclass(frozen=True)
class DEResult:
    """
    Output of a differential expression engine.

    Attributes
    ----------
    table : pd.DataFrame
        One row per gene, in matrix row order, with at least
        ``log2FoldChange``, ``pvalue`` and ``padj``. NaN means undefined.
    size_factors : pd.Series
        Per-sample normalization factors used by the engine.
    """

    table: pd.DataFrame
    size_factors: pd.Series


def shrink_lfc_normal(log2_fc, lfc_se, base_means):
    """
    Normal-prior shrinkage of log2 fold changes toward zero.

    The prior width is the spread of fold changes among well-expressed
    genes (top quartile of mean counts), floored at 0.1.
    """
    stable = (base_means > np.nanpercentile(base_means, 75)) & np.isfinite(log2_fc)
    prior_std = max(np.std(log2_fc[stable]), 0.1) if stable.sum() > 10 else 1.0
    prior_var = prior_std ** 2

    with np.errstate(divide="ignore", invalid="ignore"):
        factor = prior_var / (prior_var + lfc_se ** 2)
    factor[~np.isfinite(factor)] = 0.0
    return log2_fc * factor


def run_deseq(counts, condition, alpha=0.05, independent_filter=True,
              lfc_shrinkage=False, size_factor_type="ratio"):
    """
    Size factors, dispersions, NB Wald test and BH correction.

    Parameters
    ----------
    counts : np.ndarray
        Counts (genes x samples). Non-integer values are rounded.
    condition : np.ndarray
        1.0 for numerator samples, 0.0 for reference samples. The reported
        log2 fold change is numerator relative to reference.
    alpha : float, default 0.05
        FDR used by independent filtering.
    independent_filter : bool, default True
    lfc_shrinkage : bool, default False
        Report shrunken fold changes instead of the MLE.
    size_factor_type : {"ratio", "poscounts"}

    Returns
    -------
    dict of np.ndarray
        ``baseMean``, ``log2FoldChange``, ``lfcMLE``, ``lfcSE``, ``stat``,
        ``pvalue``, ``padj``, ``dispersion`` and ``sizeFactor``.

    Raises
    ------
    SchemaError
        Size factors cannot be estimated (every gene has a zero, or a
        sample has no usable counts).
    InvalidParameterError
        No residual degrees of freedom, or an unknown ``size_factor_type``.
    """
    counts = np.asarray(counts, dtype=float)
    if size_factor_type not in SIZE_FACTOR_TYPES:
        raise InvalidParameterError(
            f"size_factor_type must be one of {SIZE_FACTOR_TYPES}, got {size_factor_type!r}")
    G, S = counts.shape
    cond = np.asarray(condition, dtype=float)
    if cond.shape != (S,):
        raise ValueError("condition length must equal number of samples")

    rounded = np.rint(counts)
    if not np.array_equal(rounded, counts):
        logger.info("Rounding non-integer counts to the nearest integer")
        counts = rounded

    X = np.column_stack([np.ones(S), cond])
    if S - X.shape[1] < 1:
        raise InvalidParameterError(
            f"{S} samples leave no residual degrees of freedom; replicates are required")

    try:
        size_factors = estimate_size_factors(counts, type=size_factor_type)
    except ValueError as exc:
        raise SchemaError(
            f"Cannot normalize counts with size_factor_type='{size_factor_type}': {exc}"
        ) from exc
    disp = estimate_dispersions(counts, size_factors, X)
    wald = nb_glm_wald(counts, size_factors, disp["dispersion"], X, coef_index=1)

    pvalue = wald["pvalue"]
    if independent_filter:
        padj = independent_filtering(disp["baseMean"], pvalue, alpha=alpha)["padj"]
    else:
        padj = benjamini_hochberg(pvalue)

    lfc = wald["lfcMLE"]
    if lfc_shrinkage:
        lfc = shrink_lfc_normal(lfc, wald["lfcSE"], disp["baseMean"])

    return {
        "baseMean": disp["baseMean"],
        "log2FoldChange": lfc,
        "lfcMLE": wald["lfcMLE"],
        "lfcSE": wald["lfcSE"],
        "stat": wald["stat"],
        "pvalue": pvalue,
        "padj": padj,
        "dispersion": disp["dispersion"],
        "sizeFactor": size_factors,
    }


def deseq_engine(matrix, assignment, alpha=0.05, independent_filter=True,
                 lfc_shrinkage=False, size_factor_type="ratio"):
    """
    Run ``run_deseq`` on an ExpressionMatrix with group A as numerator.

    Returns
    -------
    DEResult
    """
    counts = matrix.counts.loc[:, assignment.sample_ids]
    logger.info("Running DESeq2 (%s) on %d genes...",
                assignment.comparison_name, counts.shape[0])
    start_time = time.time()

    res = run_deseq(counts.to_numpy(dtype=float, copy=True),
                    assignment.condition_vector(),
                    alpha=alpha,
                    independent_filter=independent_filter,
                    lfc_shrinkage=lfc_shrinkage,
                    size_factor_type=size_factor_type)

    logger.info("Done in %.1f seconds.", time.time() - start_time)

    table = pd.DataFrame({col: res[col] for col in RESULT_COLUMNS}, index=counts.index)
    size_factors = pd.Series(res["sizeFactor"], index=counts.columns, name="sizeFactor")
    return DEResult(table, size_factors)
