from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from dereport.engine import deseq_engine, run_deseq, shrink_lfc_normal
from dereport.errors import InvalidParameterError, SchemaError
from dereport.groups import assign_groups
from dereport.independent_filtering import independent_filtering
from dereport.matrix import ExpressionMatrix
from dereport.nbinom_wald import benjamini_hochberg, nb_glm_wald
from dereport.size_factors import estimate_size_factors


def test_size_factors_recover_library_scaling():
    base = np.array([[10, 20, 40], [100, 200, 400], [7, 14, 28]], dtype=float)
    sf = estimate_size_factors(base)
    assert sf == pytest.approx([0.5, 1.0, 2.0])


def test_size_factors_skip_genes_with_zeros():
    counts = np.array([[0, 5], [10, 20], [30, 60]], dtype=float)
    sf = estimate_size_factors(counts)
    assert sf[1] / sf[0] == pytest.approx(2.0)


def test_size_factors_need_a_gene_without_zeros():
    with pytest.raises(ValueError, match="poscounts"):
        estimate_size_factors(np.array([[0, 1], [2, 0]], dtype=float))
    sf = estimate_size_factors(np.array([[0, 1], [2, 0], [4, 4]], dtype=float),
                               type="poscounts")
    assert np.all(np.isfinite(sf))


def test_benjamini_hochberg_keeps_nan_and_is_monotone():
    p = np.array([0.01, np.nan, 0.04, 0.03, 0.5])
    padj = benjamini_hochberg(p)

    assert np.isnan(padj[1])
    tested = ~np.isnan(p)
    # four tests, not five
    assert padj[0] == pytest.approx(0.04)
    assert np.all(padj[tested] >= p[tested])
    order = np.argsort(p[tested])
    assert np.all(np.diff(padj[tested][order]) >= 0)


def test_independent_filtering_marks_filtered_genes_na():
    base_means = np.array([1.0, 100.0, 200.0])
    pvalues = np.array([0.01, 0.02, np.nan])
    res = independent_filtering(base_means, pvalues, theta=50.0)
    assert np.isnan(res["padj"][0])
    assert res["padj"][1] == pytest.approx(0.02)
    assert np.isnan(res["padj"][2])


def test_lfc_shrinkage_pulls_toward_zero():
    lfc = np.array([2.0, -2.0, 0.5])
    se = np.array([0.1, 5.0, 1.0])
    shrunk = shrink_lfc_normal(lfc, se, np.array([10.0, 10.0, 10.0]))
    assert np.all(np.abs(shrunk) <= np.abs(lfc))
    assert abs(shrunk[1]) < abs(shrunk[0])


def _synthetic_counts():
    rng = np.random.default_rng(7)
    G, S = 30, 6
    means = rng.uniform(100, 1000, size=G)
    counts = rng.poisson(np.repeat(means[:, None], S, axis=1)).astype(float)
    # gene 0: ten-fold higher in the first three samples
    counts[0, :3] = rng.poisson(5000, size=3)
    counts[0, 3:] = rng.poisson(500, size=3)
    counts[1, :] = 0
    return counts


def test_run_deseq_detects_fold_change_and_leaves_zero_gene_undefined():
    counts = _synthetic_counts()
    condition = np.array([1, 1, 1, 0, 0, 0], dtype=float)

    res = run_deseq(counts, condition)

    assert res["log2FoldChange"][0] == pytest.approx(np.log2(10), abs=0.3)
    assert res["pvalue"][0] < 1e-6
    assert res["padj"][0] < 0.05

    assert np.isnan(res["pvalue"][1])
    assert np.isnan(res["padj"][1])
    assert np.isnan(res["log2FoldChange"][1])

    finite = np.isfinite(res["pvalue"])
    assert np.all((res["pvalue"][finite] >= 0) & (res["pvalue"][finite] <= 1))
    defined = np.isfinite(res["padj"])
    assert np.all(res["padj"][defined] >= res["pvalue"][defined] - 1e-12)


def test_deseq_engine_orients_fold_change_group_a_over_b():
    counts = _synthetic_counts()
    samples = [f"s{i}" for i in range(6)]
    genes = [f"G{i}" for i in range(30)]
    matrix = ExpressionMatrix(pd.DataFrame(counts, index=genes, columns=samples),
                              pd.Series(genes, index=genes))

    up = deseq_engine(matrix, assign_groups(samples, samples[:3], "hi", "lo"),
                      independent_filter=False)
    down = deseq_engine(matrix, assign_groups(samples, samples[3:], "lo", "hi"),
                        independent_filter=False)

    assert list(up.table.index) == genes
    assert list(up.size_factors.index) == samples
    assert up.table.loc["G0", "log2FoldChange"] > 2
    assert down.table.loc["G0", "log2FoldChange"] == pytest.approx(
        -up.table.loc["G0", "log2FoldChange"], abs=1e-4)


def test_run_deseq_requires_replicates():
    counts = np.array([[10, 20], [30, 40]], dtype=float)
    with pytest.raises(InvalidParameterError, match="replicates"):
        run_deseq(counts, np.array([1.0, 0.0]))


def test_wald_survives_gene_absent_from_one_group():
    counts = np.array([[0, 0, 0, 10, 10, 10],
                       [5, 6, 5, 6, 5, 6],
                       [50, 60, 55, 52, 58, 61]], dtype=float)
    X = np.column_stack([np.ones(6), [1, 1, 1, 0, 0, 0]])

    res = nb_glm_wald(counts, np.ones(6), np.array([0.1, 0.1, 0.1]), X)

    assert np.isfinite(res["pvalue"][1])
    assert np.isfinite(res["pvalue"][2])
    p0 = res["pvalue"][0]
    assert np.isnan(p0) or 0.0 <= p0 <= 1.0


def test_run_deseq_with_zero_group_gene():
    counts = _synthetic_counts()
    counts[2, :3] = 0

    res = run_deseq(counts, np.array([1, 1, 1, 0, 0, 0], dtype=float))

    assert len(res["padj"]) == counts.shape[0]
    assert res["pvalue"][0] < 1e-6


def test_size_factor_failure_is_a_schema_error():
    counts = _synthetic_counts()
    for i in range(counts.shape[0]):
        counts[i, i % 6] = 0
    condition = np.array([1, 1, 1, 0, 0, 0], dtype=float)

    with pytest.raises(SchemaError, match="poscounts"):
        run_deseq(counts, condition)

    res = run_deseq(counts, condition, size_factor_type="poscounts")
    assert np.all(np.isfinite(res["sizeFactor"]))
    assert len(res["padj"]) == counts.shape[0]


def test_empty_sample_is_a_schema_error():
    counts = _synthetic_counts()
    counts[:, 4] = 0
    with pytest.raises(SchemaError):
        run_deseq(counts, np.array([1, 1, 1, 0, 0, 0], dtype=float),
                  size_factor_type="poscounts")


def test_unknown_size_factor_type():
    with pytest.raises(InvalidParameterError, match="size_factor_type"):
        run_deseq(_synthetic_counts(), np.array([1, 1, 1, 0, 0, 0], dtype=float),
                  size_factor_type="upperquartile")
