from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from dereport.annotation import GeneAnnotation
from dereport.config import AnalysisConfig
from dereport.engine import DEResult


def long_table(counts: dict[str, list[float]], samples: list[str],
               names: dict[str, str] | None = None) -> pd.DataFrame:
    """Long-format records from a {gene_id: [value per sample]} mapping."""
    names = names or {}
    rows = []
    for gene_id, values in counts.items():
        for sample_id, value in zip(samples, values):
            rows.append({
                "gene_id": gene_id,
                "gene_name": names.get(gene_id, gene_id.lower()),
                "sample_id": sample_id,
                "expected_count": value,
            })
    return pd.DataFrame(rows)


class StubEngine:
    """Engine returning fixed statistics, one row per matrix gene."""

    def __init__(self, stats: dict[str, tuple[float, float]]):
        self.stats = stats
        self.calls = 0

    def __call__(self, matrix, assignment):
        self.calls += 1
        lfc = [self.stats[g][0] for g in matrix.gene_ids]
        padj = [self.stats[g][1] for g in matrix.gene_ids]
        table = pd.DataFrame({
            "baseMean": matrix.counts.mean(axis=1).to_numpy(),
            "log2FoldChange": lfc,
            "pvalue": [p / 2 if np.isfinite(p) else np.nan for p in padj],
            "padj": padj,
        }, index=matrix.counts.index)
        size_factors = pd.Series(1.0, index=assignment.sample_ids, name="sizeFactor")
        return DEResult(table, size_factors)


SAMPLES = ["s1", "s2", "s3", "s4"]


@pytest.fixture
def example_records() -> pd.DataFrame:
    return long_table({
        "G1": [400, 380, 100, 95],
        "G2": [30, 50, 120, 110],
        "G3": [200, 210, 190, 185],
    }, SAMPLES, names={"G1": "Abc1", "G2": "Def2", "G3": "Ghi3"})


@pytest.fixture
def example_engine() -> StubEngine:
    return StubEngine({
        "G1": (2.0, 0.0001),
        "G2": (-1.5, 0.2),
        "G3": (0.1, 0.00005),
    })


@pytest.fixture
def example_annotation() -> GeneAnnotation:
    df = pd.DataFrame({
        "gene_id": ["G1", "G2", "G3"],
        "gene_name": ["Abc1", "Def2", "Ghi3"],
        "gene_biotype": ["protein_coding", "lncRNA", "protein_coding"],
    })
    return GeneAnnotation.from_frame(df)


@pytest.fixture
def example_config(tmp_path) -> AnalysisConfig:
    return AnalysisConfig(
        group_a_samples=("s1", "s2"),
        group_a="treated",
        group_b="control",
        output_dir=str(tmp_path / "out"),
        padj_cutoff=0.001,
        log2_cutoff=0.5,
        abundance_cutoff=1.0,
    )


@pytest.fixture
def make_records():
    return long_table


@pytest.fixture
def make_engine():
    return StubEngine
