"""
Two-group differential expression report.

Long table -> matrix -> groups -> engine -> annotation join -> filters
-> rank list -> artifacts. Each stage consumes the previous stage's output
unchanged and returns a new object.
"""

import logging
from dataclasses import dataclass
from functools import partial

import pandas as pd

from .annotation import annotate_results, load_annotation
from .engine import deseq_engine
from .errors import InvalidParameterError, SchemaError
from .filtering import FilterThresholds, filter_results, summarize_results
from .groups import assign_groups
from .matrix import build_expression_matrix, read_expression_table
from .rank import export_rank
from .report import write_report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonResult:
    matrix: object
    assignment: object
    de_result: object
    annotated: pd.DataFrame
    views: object
    rank: pd.DataFrame

    @property
    def comparison_name(self):
        return self.assignment.comparison_name

    @property
    def summary(self):
        return self.views.summary


def default_engine(config):
    """The bundled DESeq2-style engine with the config's options bound."""
    return partial(deseq_engine,
                   alpha=config.padj_cutoff,
                   independent_filter=config.independent_filtering,
                   lfc_shrinkage=config.lfc_shrinkage,
                   size_factor_type=config.size_factor_type)


def run_comparison(records, annotation, config, engine=None):
    """
    Run one comparison in memory.

    Parameters
    ----------
    records : pd.DataFrame
        Long-format expression table.
    annotation : GeneAnnotation
        Loaded once by the caller and shared read-only.
    config : AnalysisConfig
    engine : callable, optional
        ``engine(matrix, assignment) -> DEResult``. Defaults to the
        bundled engine.

    Returns
    -------
    ComparisonResult
    """
    engine = engine or default_engine(config)

    matrix = build_expression_matrix(
        records, config.value_column,
        id_column=config.id_column,
        name_column=config.name_column,
        sample_column=config.sample_column)

    assignment = assign_groups(matrix.sample_ids, config.group_a_samples,
                               config.group_a, config.group_b)

    de_result = engine(matrix, assignment)
    if list(de_result.table.index) != matrix.gene_ids:
        raise SchemaError("Engine results must contain one row per matrix gene, in order")

    annotated = annotate_results(de_result, annotation, matrix.counts)

    views = filter_results(annotated, FilterThresholds.from_config(config),
                           assignment.sample_ids)
    rank = export_rank(annotated, config.rank_biotype)

    counts = summarize_results(annotated, alpha=config.padj_cutoff)
    logger.info("%s: %d significant (padj < %g), %d up, %d down, %d of %d genes tested",
                assignment.comparison_name, counts["significant"], config.padj_cutoff,
                counts["upregulated"], counts["downregulated"],
                counts["genes_tested"], counts["total_genes"])

    return ComparisonResult(matrix, assignment, de_result, annotated, views, rank)


def run_from_config(config, engine=None):
    """
    Read inputs, run the comparison and write all artifacts.

    Returns
    -------
    (ComparisonResult, dict)
        The in-memory result and the written artifact paths by suffix.
    """
    if not config.expression_path or not config.annotation_path:
        raise InvalidParameterError("Config needs both 'expression_path' and 'annotation_path'")

    records = read_expression_table(
        config.expression_path,
        id_columns=(config.id_column, config.sample_column))
    annotation = load_annotation(
        config.annotation_path,
        id_column=config.annotation_id_column,
        name_column=config.annotation_name_column,
        biotype_column=config.biotype_column)

    result = run_comparison(records, annotation, config, engine=engine)
    paths = write_report(config.output_dir, result.comparison_name, result.views, result.rank)
    return result, paths
