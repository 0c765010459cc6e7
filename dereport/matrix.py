"""
Long-format expression table to gene x sample matrix.

Quantification tools emit one row per (gene, sample) observation. This
module reshapes those rows into the dense count matrix consumed by the
differential expression engine, keyed by a stable gene identifier.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .errors import IdentifierAmbiguityError, SchemaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpressionMatrix:
    """
    Dense gene x sample matrix.

    Attributes
    ----------
    counts : pd.DataFrame
        Values with gene ids as index (first-occurrence order) and sample ids
        as columns (first-occurrence order). No missing cells.
    gene_names : pd.Series
        Display name per gene id, aligned to ``counts.index``. May contain
        NaN when the input table has no name for a gene.
    """

    counts: pd.DataFrame
    gene_names: pd.Series

    @property
    def gene_ids(self):
        return list(self.counts.index)

    @property
    def sample_ids(self):
        return list(self.counts.columns)

    @property
    def shape(self):
        return self.counts.shape

    def subset_samples(self, sample_ids):
        """Matrix restricted to ``sample_ids``, in the given order."""
        missing = [s for s in sample_ids if s not in self.counts.columns]
        if missing:
            raise SchemaError(f"Unknown sample ids: {', '.join(map(str, missing))}")
        return ExpressionMatrix(self.counts.loc[:, list(sample_ids)].copy(),
                                self.gene_names.copy())

    def __repr__(self):
        G, S = self.counts.shape
        return f"ExpressionMatrix with {G} genes and {S} samples"


def read_expression_table(path, sep="\t", id_columns=("gene_id", "sample_id")):
    """
    Read a long-format expression table.

    Identifier columns are kept as strings so accessions with leading zeros
    or version suffixes survive unchanged.
    """
    logger.info("Loading expression table %s", path)
    return pd.read_csv(path, sep=sep, dtype={c: str for c in id_columns})


def _require_columns(records, columns):
    missing = [c for c in columns if c not in records.columns]
    if missing:
        raise SchemaError(
            f"Expression table is missing column(s): {', '.join(missing)}; "
            f"available: {', '.join(map(str, records.columns))}")


def _check_values(records, value_column):
    values = pd.to_numeric(records[value_column], errors="coerce")
    bad = values.isna() & records[value_column].notna()
    if bad.any():
        example = records.loc[bad, value_column].iloc[0]
        raise SchemaError(
            f"Column '{value_column}' has {int(bad.sum())} non-numeric value(s), "
            f"e.g. {example!r}")
    if values.isna().any():
        raise SchemaError(
            f"Column '{value_column}' has {int(values.isna().sum())} missing value(s)")
    if not np.isfinite(values.to_numpy(dtype=float)).all():
        raise SchemaError(f"Column '{value_column}' has non-finite values")
    if (values < 0).any():
        raise SchemaError(
            f"Column '{value_column}' has {int((values < 0).sum())} negative value(s)")
    return values.astype(float)


def _check_key_unique(records, key_column, id_column):
    """A non-identifier row key must map to exactly one stable id."""
    ids_per_key = records.groupby(key_column, sort=False)[id_column].nunique()
    ambiguous = ids_per_key[ids_per_key > 1]
    if len(ambiguous):
        examples = ", ".join(map(str, ambiguous.index[:5]))
        raise IdentifierAmbiguityError(
            f"Row key '{key_column}' is shared by several '{id_column}' values "
            f"for {len(ambiguous)} key(s) (e.g. {examples}); use '{id_column}' "
            f"as the row key")


def build_expression_matrix(records, value_column, id_column="gene_id",
                            name_column="gene_name", sample_column="sample_id",
                            key_column=None):
    """
    Reshape long-format records into an ExpressionMatrix.

    Parameters
    ----------
    records : pd.DataFrame
        One row per (gene, sample) observation.
    value_column : str
        Numeric column to place in the matrix cells.
    id_column : str, default "gene_id"
        Stable gene identifier column.
    name_column : str or None, default "gene_name"
        Display name column. Optional in the input.
    sample_column : str, default "sample_id"
        Sample identifier column.
    key_column : str, optional
        Column used as the row key. Defaults to ``id_column``.

    Returns
    -------
    ExpressionMatrix

    Raises
    ------
    SchemaError
        Missing columns, non-numeric or negative values, conflicting
        duplicate observations, or a (gene, sample) cell with no value.
    IdentifierAmbiguityError
        ``key_column`` is not unique per stable identifier.
    """
    key_column = key_column or id_column
    required = [key_column, id_column, sample_column, value_column]
    _require_columns(records, list(dict.fromkeys(required)))

    for col in dict.fromkeys([key_column, id_column, sample_column]):
        if records[col].isna().any():
            raise SchemaError(f"Column '{col}' has missing identifiers")

    values = _check_values(records, value_column)
    if key_column != id_column:
        _check_key_unique(records, key_column, id_column)

    long = pd.DataFrame({
        "key": records[key_column].astype(str).to_numpy(),
        "sample": records[sample_column].astype(str).to_numpy(),
        "value": values.to_numpy(),
    })

    # exact repeats collapse; repeats with different values are an error
    long = long.drop_duplicates()
    dup = long.duplicated(subset=["key", "sample"], keep=False)
    if dup.any():
        first = long.loc[dup].iloc[0]
        raise SchemaError(
            f"{int(dup.sum())} conflicting observations for the same "
            f"(gene, sample) pair, e.g. ({first['key']}, {first['sample']})")

    gene_order = pd.unique(long["key"])
    sample_order = pd.unique(long["sample"])

    counts = long.pivot(index="key", columns="sample", values="value")
    counts = counts.reindex(index=gene_order, columns=sample_order)
    counts.index.name = key_column
    counts.columns.name = None

    if counts.isna().any().any():
        n_missing = int(counts.isna().sum().sum())
        row, col = np.argwhere(counts.isna().to_numpy())[0]
        gene, sample = counts.index[row], counts.columns[col]
        raise SchemaError(
            f"Expression table is not rectangular: {n_missing} missing "
            f"(gene, sample) cell(s), e.g. ({gene}, {sample})")

    if name_column and name_column in records.columns:
        names = (records.assign(_key=records[key_column].astype(str))
                 .drop_duplicates("_key")
                 .set_index("_key")[name_column])
        gene_names = names.reindex(gene_order)
    else:
        gene_names = pd.Series(np.nan, index=gene_order, dtype=object)
    gene_names.index.name = key_column
    gene_names.name = "gene_name"

    logger.info("Built expression matrix: %d genes x %d samples (%s)",
                counts.shape[0], counts.shape[1], value_column)
    return ExpressionMatrix(counts, gene_names)
