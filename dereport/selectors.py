"""
Gene lookup by position, display name or stable identifier.

Selectors are explicit tagged values; ``resolve_gene`` is the single place
that turns one into a stable gene id.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .errors import IdentifierAmbiguityError, InvalidParameterError
from .utils import normalize_counts


@dataclass(frozen=True)
class ByIndex:
    index: int


@dataclass(frozen=True)
class ByName:
    name: str


@dataclass(frozen=True)
class ById:
    gene_id: str


def resolve_gene(matrix, selector):
    """
    Stable gene id for ``selector``.

    Parameters
    ----------
    matrix : ExpressionMatrix
    selector : ByIndex, ByName or ById

    Raises
    ------
    InvalidParameterError
        Not a selector, index out of range, or no matching gene.
    IdentifierAmbiguityError
        A display name shared by several gene ids.
    """
    gene_ids = matrix.counts.index

    if isinstance(selector, ByIndex):
        idx = selector.index
        if isinstance(idx, bool) or not isinstance(idx, (int, np.integer)):
            raise InvalidParameterError(f"ByIndex needs an integer, got {idx!r}")
        if not 0 <= idx < len(gene_ids):
            raise InvalidParameterError(
                f"Gene index {idx} out of range for {len(gene_ids)} genes")
        return gene_ids[idx]

    if isinstance(selector, ById):
        if selector.gene_id not in gene_ids:
            raise InvalidParameterError(f"Unknown gene id: {selector.gene_id!r}")
        return selector.gene_id

    if isinstance(selector, ByName):
        hits = matrix.gene_names.index[matrix.gene_names == selector.name]
        if len(hits) == 0:
            raise InvalidParameterError(f"Unknown gene name: {selector.name!r}")
        if len(hits) > 1:
            raise IdentifierAmbiguityError(
                f"Gene name {selector.name!r} matches {len(hits)} ids: "
                f"{', '.join(map(str, hits))}")
        return hits[0]

    raise InvalidParameterError(
        f"Expected ByIndex, ByName or ById, got {type(selector).__name__}")


def gene_counts(matrix, selector, assignment, size_factors=None):
    """
    Per-sample values of one gene with group labels.

    Parameters
    ----------
    matrix : ExpressionMatrix
    selector : ByIndex, ByName or ById
    assignment : GroupAssignment
    size_factors : pd.Series, optional
        When given, counts are divided by the sample's size factor.

    Returns
    -------
    pd.DataFrame
        Indexed by sample id with ``count`` and ``group`` columns.
    """
    gene_id = resolve_gene(matrix, selector)
    counts = matrix.counts.loc[[gene_id], assignment.sample_ids]
    if size_factors is not None:
        sf = pd.Series(size_factors).reindex(assignment.sample_ids)
        if sf.isna().any():
            raise InvalidParameterError("size_factors do not cover every sample")
        counts = normalize_counts(counts, sf.to_numpy())

    out = pd.DataFrame({
        "count": counts.iloc[0].to_numpy(dtype=float),
        "group": assignment.labels.to_numpy(),
    }, index=pd.Index(assignment.sample_ids, name="sample_id"))
    out.attrs["gene_id"] = gene_id
    return out
