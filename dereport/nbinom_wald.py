import logging
import warnings

import numpy as np
import statsmodels.api as sm
from scipy.stats import norm
from statsmodels.tools.sm_exceptions import ModelWarning, PerfectSeparationError

logger = logging.getLogger(__name__)


def benjamini_hochberg(pvals):
    """
    Benjamini-Hochberg FDR correction.

    NaN p-values are left out of the correction (they do not count towards
    the number of tests) and stay NaN in the output.

    Parameters
    ----------
    pvals : array-like

    Returns
    -------
    padj : np.ndarray
    """
    pvals = np.asarray(pvals, dtype=float)
    padj = np.full(pvals.shape, np.nan)

    tested = np.isfinite(pvals)
    p = pvals[tested]
    m = p.size
    if m == 0:
        return padj

    order = np.argsort(p, kind="mergesort")
    ranked = p[order] * m / np.arange(1, m + 1)
    # monotone non-decreasing in the raw p-value
    ranked = np.minimum.accumulate(ranked[::-1])[::-1]

    adj = np.empty(m)
    adj[order] = np.clip(ranked, 0.0, 1.0)
    padj[tested] = adj
    return padj


def nb_glm_wald(counts, size_factors, dispersions, design_matrix, coef_index=1):
    """
    Negative binomial GLM with log link and a Wald test on one coefficient.

    Parameters
    ----------
    counts : (G, S) array
        Raw counts (genes x samples).
    size_factors : (S,) array
        Per-sample size factors, used as ``log`` offsets.
    dispersions : (G,) array
        Final per-gene dispersion.
    design_matrix : (S, P) array
        Design matrix, columns ``[intercept, condition, ...]``.
    coef_index : int
        Coefficient to test (default 1 = condition).

    Returns
    -------
    dict
        ``lfcMLE`` and ``lfcSE`` on the log2 scale, ``stat`` (Wald z) and
        two-sided ``pvalue``. Genes with all-zero counts or a failed fit
        (e.g. statsmodels raising on perfect separation when a gene is zero
        in every sample of one group) are NaN in every field.
    """
    Y = np.asarray(counts, dtype=float)
    sf = np.asarray(size_factors, dtype=float)
    disp = np.asarray(dispersions, dtype=float)
    X = np.asarray(design_matrix, dtype=float)

    G, S = Y.shape
    S2, P = X.shape
    if S2 != S:
        raise ValueError("design_matrix must have same number of rows as samples")
    if sf.ndim != 1 or sf.shape[0] != S:
        raise ValueError("size_factors length must equal number of samples")
    if disp.shape[0] != G:
        raise ValueError("dispersions length must equal number of genes")
    if coef_index < 0 or coef_index >= P:
        raise ValueError("coef_index out of bounds")

    offset = np.log(sf)

    log2_fc = np.full(G, np.nan)
    se_log2 = np.full(G, np.nan)
    wald = np.full(G, np.nan)
    pvals = np.full(G, np.nan)

    n_failed = 0
    for g in range(G):
        y = Y[g, :]
        if y.sum() == 0:
            continue

        alpha = float(disp[g])
        if not np.isfinite(alpha) or alpha <= 0:
            alpha = 1e-8

        model = sm.GLM(y, X, family=sm.families.NegativeBinomial(alpha=alpha),
                       offset=offset)
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ModelWarning)
                warnings.simplefilter("ignore", RuntimeWarning)
                res = model.fit()
        except (ValueError, np.linalg.LinAlgError, PerfectSeparationError) as exc:
            logger.debug("GLM fit failed for gene %d: %s", g, exc)
            n_failed += 1
            continue

        b = res.params[coef_index]
        s = res.bse[coef_index]
        if not np.isfinite(b) or not np.isfinite(s) or s <= 0:
            n_failed += 1
            continue

        z = b / s
        log2_fc[g] = b / np.log(2.0)
        se_log2[g] = s / np.log(2.0)
        wald[g] = z
        pvals[g] = 2.0 * norm.sf(abs(z))

    if n_failed:
        logger.warning("GLM fit failed for %d gene(s); their statistics are NA", n_failed)

    return {"lfcMLE": log2_fc, "lfcSE": se_log2, "stat": wald, "pvalue": pvals}
