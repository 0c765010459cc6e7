"""
Cutoff filters and ordered result views.

Every view is computed from the full annotated table, never from another
view, and is sorted by descending log2 fold change with ties kept in the
original gene order.
"""

import logging
from collections import namedtuple
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .annotation import ABUNDANCE_COLUMN, BIOTYPE_COLUMN, NAME_COLUMN
from .errors import InvalidParameterError

logger = logging.getLogger(__name__)

LFC_COLUMN = "log2FoldChange"
PADJ_COLUMN = "padj"
REPORT_COLUMNS = [NAME_COLUMN, BIOTYPE_COLUMN, LFC_COLUMN, PADJ_COLUMN, ABUNDANCE_COLUMN]

CutoffSummary = namedtuple("CutoffSummary", ["cutoff_name", "cutoff_value", "signif_genes"])


@dataclass(frozen=True)
class FilterThresholds:
    padj_cutoff: float = 0.05
    log2_cutoff: float = 1.0
    abundance_cutoff: float = 1.0

    @classmethod
    def from_config(cls, config):
        return cls(config.padj_cutoff, config.log2_cutoff, config.abundance_cutoff)


@dataclass(frozen=True)
class FilteredViews:
    by_significance: pd.DataFrame
    by_magnitude: pd.DataFrame
    by_abundance: pd.DataFrame
    all_annotated: pd.DataFrame
    summary: list

    def summary_frame(self):
        return pd.DataFrame(self.summary, columns=CutoffSummary._fields)


def sort_by_fold_change(df, column=LFC_COLUMN):
    """
    Descending sort on ``column``; ties keep their input order and NaN
    goes last.
    """
    key = -df[column].to_numpy(dtype=float)
    key[np.isnan(key)] = np.inf
    return df.iloc[np.argsort(key, kind="stable")]


def _project(annotated, mask, sample_ids):
    view = annotated.loc[mask, REPORT_COLUMNS + list(sample_ids)]
    return sort_by_fold_change(view)


def filter_results(annotated, thresholds, sample_ids):
    """
    Apply the significance, magnitude and abundance cutoffs.

    Parameters
    ----------
    annotated : pd.DataFrame
        Output of ``annotate_results``.
    thresholds : FilterThresholds
    sample_ids : sequence of str
        Normalized-count columns to carry into every view.

    Returns
    -------
    FilteredViews
        ``by_significance``: padj < padj_cutoff.
        ``by_magnitude``: |log2FC| > log2_cutoff and padj < padj_cutoff.
        ``by_abundance``: avg_cpm > abundance_cutoff and padj < padj_cutoff.
        ``all_annotated``: every row.
        Undefined padj never passes a cutoff.
    """
    missing = [c for c in REPORT_COLUMNS + list(sample_ids) if c not in annotated.columns]
    if missing:
        raise InvalidParameterError(
            f"Annotated table is missing column(s): {', '.join(map(str, missing))}")

    padj = annotated[PADJ_COLUMN].to_numpy(dtype=float)
    lfc = annotated[LFC_COLUMN].to_numpy(dtype=float)
    abundance = annotated[ABUNDANCE_COLUMN].to_numpy(dtype=float)

    # NaN compares False, so undefined values drop out of each cutoff
    significant = padj < thresholds.padj_cutoff
    large = np.abs(lfc) > thresholds.log2_cutoff
    abundant = abundance > thresholds.abundance_cutoff

    by_significance = _project(annotated, significant, sample_ids)
    by_magnitude = _project(annotated, significant & large, sample_ids)
    by_abundance = _project(annotated, significant & abundant, sample_ids)
    all_annotated = _project(annotated, np.ones(len(annotated), dtype=bool), sample_ids)

    summary = [
        CutoffSummary("padj", thresholds.padj_cutoff, len(by_significance)),
        CutoffSummary("log2fc", thresholds.log2_cutoff, len(by_magnitude)),
        CutoffSummary("cpm", thresholds.abundance_cutoff, len(by_abundance)),
    ]
    for row in summary:
        logger.info("%s cutoff %g: %d gene(s)", row.cutoff_name, row.cutoff_value,
                    row.signif_genes)

    return FilteredViews(by_significance, by_magnitude, by_abundance, all_annotated, summary)


def summarize_results(annotated, alpha=0.05, lfc_cutoff=0.0):
    """
    Direction counts among significant genes.

    Returns
    -------
    dict
        ``total_genes``, ``genes_tested`` (defined padj), ``significant``,
        ``upregulated`` and ``downregulated``.
    """
    padj = annotated[PADJ_COLUMN].to_numpy(dtype=float)
    lfc = annotated[LFC_COLUMN].to_numpy(dtype=float)

    significant = padj < alpha
    return {
        "total_genes": len(annotated),
        "genes_tested": int(np.isfinite(padj).sum()),
        "significant": int(significant.sum()),
        "upregulated": int((significant & (lfc > lfc_cutoff)).sum()),
        "downregulated": int((significant & (lfc < -lfc_cutoff)).sum()),
    }
