from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from dereport.errors import IdentifierAmbiguityError, SchemaError
from dereport.matrix import build_expression_matrix, read_expression_table


def test_matrix_is_rectangular_in_first_occurrence_order(make_records):
    records = make_records({"G2": [1, 2, 3], "G1": [4, 5, 6]}, ["b", "a", "c"])
    # shuffle rows; order must follow first occurrence, not sorting
    records = records.iloc[[1, 0, 2, 4, 3, 5]].reset_index(drop=True)

    matrix = build_expression_matrix(records, "expected_count")

    assert matrix.gene_ids == ["G2", "G1"]
    assert matrix.sample_ids == ["a", "b", "c"]
    assert matrix.shape == (2, 3)
    assert not matrix.counts.isna().any().any()
    assert matrix.counts.loc["G2", "a"] == 2
    assert matrix.counts.loc["G1", "c"] == 6
    assert matrix.gene_names["G1"] == "g1"


def test_missing_cell_raises_schema_error(make_records):
    records = make_records({"G1": [1, 2], "G2": [3, 4]}, ["s1", "s2"])
    records = records.drop(index=3)
    with pytest.raises(SchemaError, match="not rectangular"):
        build_expression_matrix(records, "expected_count")


def test_conflicting_duplicate_raises(make_records):
    records = make_records({"G1": [1, 2]}, ["s1", "s2"])
    dup = records.iloc[[0]].assign(expected_count=99)
    records = pd.concat([records, dup], ignore_index=True)
    with pytest.raises(SchemaError, match="conflicting"):
        build_expression_matrix(records, "expected_count")


def test_identical_duplicate_collapses(make_records):
    records = make_records({"G1": [1, 2]}, ["s1", "s2"])
    records = pd.concat([records, records.iloc[[0]]], ignore_index=True)
    matrix = build_expression_matrix(records, "expected_count")
    assert matrix.shape == (1, 2)


@pytest.mark.parametrize("bad", ["abc", -1.0, np.nan])
def test_bad_values_raise(make_records, bad):
    records = make_records({"G1": [1, 2]}, ["s1", "s2"])
    records["expected_count"] = records["expected_count"].astype(object)
    records.loc[0, "expected_count"] = bad
    with pytest.raises(SchemaError):
        build_expression_matrix(records, "expected_count")


def test_missing_value_column(make_records):
    records = make_records({"G1": [1, 2]}, ["s1", "s2"])
    with pytest.raises(SchemaError, match="missing column"):
        build_expression_matrix(records, "TPM")


def test_display_name_key_must_be_unique_per_gene(make_records):
    records = make_records({"ENSG1": [1, 2], "ENSG2": [3, 4]}, ["s1", "s2"],
                           names={"ENSG1": "MATR3", "ENSG2": "MATR3"})
    with pytest.raises(IdentifierAmbiguityError, match="gene_id"):
        build_expression_matrix(records, "expected_count", key_column="gene_name")

    # the stable identifier stays usable
    matrix = build_expression_matrix(records, "expected_count")
    assert matrix.gene_ids == ["ENSG1", "ENSG2"]


def test_read_expression_table_keeps_ids_as_strings(tmp_path):
    path = tmp_path / "expr.tsv"
    path.write_text(
        "gene_id\tgene_name\tsample_id\texpected_count\n"
        "0001\tA\t01\t5\n"
        "0001\tA\t02\t7\n", encoding="utf-8")
    records = read_expression_table(path)
    matrix = build_expression_matrix(records, "expected_count")
    assert matrix.gene_ids == ["0001"]
    assert matrix.sample_ids == ["01", "02"]


def test_subset_samples(make_records):
    records = make_records({"G1": [1, 2, 3]}, ["a", "b", "c"])
    matrix = build_expression_matrix(records, "expected_count")
    sub = matrix.subset_samples(["c", "a"])
    assert sub.sample_ids == ["c", "a"]
    assert matrix.sample_ids == ["a", "b", "c"]
    with pytest.raises(SchemaError):
        matrix.subset_samples(["zz"])
