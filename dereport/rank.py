"""Pre-ranked gene list for gene-set enrichment tools."""

import logging

import numpy as np

from .annotation import BIOTYPE_COLUMN, NAME_COLUMN
from .filtering import LFC_COLUMN, sort_by_fold_change

logger = logging.getLogger(__name__)


def export_rank(annotated, biotype="protein_coding"):
    """
    Build the rank list.

    Rows are restricted to ``biotype``, rows without a fold change or a
    gene name are dropped, names are upper-cased and the list is sorted by
    descending log2 fold change (ties in input order). Names that collide after
    upper-casing are all kept.

    Parameters
    ----------
    annotated : pd.DataFrame
        Output of ``annotate_results``.
    biotype : str, default "protein_coding"

    Returns
    -------
    pd.DataFrame
        Columns ``gene_name`` and ``log2FoldChange``, indexed by gene id.
    """
    in_biotype = (annotated[BIOTYPE_COLUMN] == biotype).to_numpy(dtype=bool)
    named = annotated[NAME_COLUMN].notna().to_numpy(dtype=bool)
    keep = in_biotype & np.isfinite(annotated[LFC_COLUMN].to_numpy(dtype=float))

    n_unnamed = int((keep & ~named).sum())
    if n_unnamed:
        logger.warning("Dropping %d %s gene(s) without a gene name from the rank list",
                       n_unnamed, biotype)
    keep = keep & named

    rank = annotated.loc[keep, [NAME_COLUMN, LFC_COLUMN]].copy()
    rank[NAME_COLUMN] = rank[NAME_COLUMN].astype("string").str.upper().astype(object)
    rank = sort_by_fold_change(rank)

    n_dup = int(rank[NAME_COLUMN].duplicated().sum())
    if n_dup:
        logger.warning("Rank file has %d duplicated gene name(s) after upper-casing", n_dup)
    logger.info("Rank list: %d %s gene(s)", len(rank), biotype)
    return rank
