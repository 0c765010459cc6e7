"""
Gene annotation and abundance join.

The annotation table is read once into a ``GeneAnnotation`` lookup and
shared by the result join and the rank export.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from .errors import SchemaError
from .utils import cpm, normalize_counts

logger = logging.getLogger(__name__)

NAME_COLUMN = "gene_name"
BIOTYPE_COLUMN = "gene_biotype"
ABUNDANCE_COLUMN = "avg_cpm"


@dataclass(frozen=True)
class GeneAnnotation:
    """Read-only gene id -> (gene_name, gene_biotype) lookup."""

    table: pd.DataFrame

    def __len__(self):
        return len(self.table)

    def __contains__(self, gene_id):
        return gene_id in self.table.index

    def lookup(self, gene_ids):
        """Annotation rows for ``gene_ids`` in order; unknown ids give NaN."""
        return self.table.reindex(pd.Index(gene_ids))

    @classmethod
    def from_frame(cls, df, id_column="gene_id", name_column=NAME_COLUMN,
                   biotype_column=BIOTYPE_COLUMN):
        missing = [c for c in (id_column, name_column, biotype_column)
                   if c not in df.columns]
        if missing:
            raise SchemaError(
                f"Annotation table is missing column(s): {', '.join(missing)}")

        table = df[[id_column, name_column, biotype_column]].dropna(subset=[id_column])
        table = table.astype({id_column: str})
        n_dup = int(table[id_column].duplicated().sum())
        if n_dup:
            logger.warning("Annotation table has %d duplicated gene id(s); keeping the first",
                           n_dup)
            table = table.drop_duplicates(id_column, keep="first")

        table = table.set_index(id_column).rename(
            columns={name_column: NAME_COLUMN, biotype_column: BIOTYPE_COLUMN})
        table.index.name = "gene_id"
        return cls(table)


def load_annotation(path, id_column="gene_id", name_column=NAME_COLUMN,
                    biotype_column=BIOTYPE_COLUMN, sep=None):
    """
    Load the annotation table once.

    Parameters
    ----------
    path : str or Path
        Delimited file; ``.csv`` is read comma-separated, anything else as
        tab-separated unless ``sep`` is given.

    Returns
    -------
    GeneAnnotation
    """
    path = Path(path)
    if sep is None:
        sep = "," if path.suffix.lower() == ".csv" else "\t"
    logger.info("Loading annotation table %s", path)
    df = pd.read_csv(path, sep=sep, dtype={id_column: str})
    annotation = GeneAnnotation.from_frame(df, id_column, name_column, biotype_column)
    logger.info("Loaded annotation for %d genes", len(annotation))
    return annotation


def average_cpm(counts):
    """Mean across samples of counts per million (raw library sizes)."""
    return cpm(counts).mean(axis=1)


def annotate_results(de_result, annotation, counts):
    """
    Left-join engine statistics with annotation and abundance.

    Parameters
    ----------
    de_result : DEResult
        Engine output; its row order is preserved.
    annotation : GeneAnnotation
    counts : pd.DataFrame
        Raw (pre-normalization) counts, genes x samples.

    Returns
    -------
    pd.DataFrame
        Indexed by gene id with ``gene_name``, ``gene_biotype``, the engine
        statistics, ``avg_cpm`` and one normalized-count column per sample.
        Genes missing from the annotation keep NaN name and biotype.
    """
    stats = de_result.table
    missing = stats.index.difference(counts.index)
    if len(missing):
        raise SchemaError(
            f"{len(missing)} gene(s) in the results are absent from the count matrix")

    reserved = {"gene_id", NAME_COLUMN, BIOTYPE_COLUMN, ABUNDANCE_COLUMN, *stats.columns}
    clashing = [s for s in de_result.size_factors.index if s in reserved]
    if clashing:
        raise SchemaError(
            f"Sample id(s) clash with result column names: {', '.join(map(str, clashing))}")

    counts = counts.loc[:, list(de_result.size_factors.index)]
    annot = annotation.lookup(stats.index)
    annot.index = stats.index

    n_unmatched = int(annot[NAME_COLUMN].isna().sum())
    if n_unmatched:
        logger.info("%d of %d gene(s) have no annotation", n_unmatched, len(stats))

    # library sizes come from the full matrix, not just the reported genes
    abundance = average_cpm(counts).loc[stats.index].rename(ABUNDANCE_COLUMN)
    normalized = normalize_counts(counts.loc[stats.index], de_result.size_factors.to_numpy())

    annotated = pd.concat([annot, stats, abundance, normalized], axis=1)
    annotated.index.name = "gene_id"
    return annotated

