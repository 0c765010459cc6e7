from __future__ import annotations

import pandas as pd
import pytest

from dereport.errors import IdentifierAmbiguityError, InvalidParameterError
from dereport.groups import assign_groups
from dereport.matrix import build_expression_matrix
from dereport.selectors import ById, ByIndex, ByName, gene_counts, resolve_gene


@pytest.fixture
def matrix(make_records):
    records = make_records({"ENSG1": [1, 2, 3, 4], "ENSG2": [5, 6, 7, 8],
                            "ENSG3": [9, 9, 9, 9]},
                           ["s1", "s2", "s3", "s4"],
                           names={"ENSG1": "Actb", "ENSG2": "Gapdh", "ENSG3": "Gapdh"})
    return build_expression_matrix(records, "expected_count")


def test_resolve_each_selector_kind(matrix):
    assert resolve_gene(matrix, ByIndex(0)) == "ENSG1"
    assert resolve_gene(matrix, ById("ENSG2")) == "ENSG2"
    assert resolve_gene(matrix, ByName("Actb")) == "ENSG1"


@pytest.mark.parametrize("selector", [ByIndex(3), ByIndex(-1), ById("ENSG9"),
                                      ByName("Nope"), ByIndex("0"), "ENSG1", 0])
def test_invalid_selectors(matrix, selector):
    with pytest.raises(InvalidParameterError):
        resolve_gene(matrix, selector)


def test_shared_name_is_ambiguous(matrix):
    with pytest.raises(IdentifierAmbiguityError, match="ENSG2, ENSG3"):
        resolve_gene(matrix, ByName("Gapdh"))


def test_gene_counts_normalizes_and_labels(matrix):
    assignment = assign_groups(matrix.sample_ids, ["s1", "s2"], "KO", "WT")
    sf = pd.Series([1.0, 2.0, 1.0, 4.0], index=["s1", "s2", "s3", "s4"])

    table = gene_counts(matrix, ById("ENSG2"), assignment, size_factors=sf)

    assert list(table["count"]) == [5.0, 3.0, 7.0, 2.0]
    assert list(table["group"]) == ["KO", "KO", "WT", "WT"]
    assert table.attrs["gene_id"] == "ENSG2"

    raw = gene_counts(matrix, ByIndex(0), assignment)
    assert list(raw["count"]) == [1.0, 2.0, 3.0, 4.0]
