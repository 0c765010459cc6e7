"""
Two-group differential expression reporting for RNA-seq data.

Builds a gene x sample matrix from a long-format quantification table,
runs a DESeq2-style negative binomial test between two sample groups, and
writes significance-, magnitude- and abundance-filtered gene tables plus a
pre-ranked gene list for enrichment tools.

Main Functions:
    run_comparison : Run one comparison in memory
    run_from_config : Read inputs, run and write all artifacts
    build_expression_matrix : Long table to gene x sample matrix
    assign_groups : Two-group sample assignment
    annotate_results : Join statistics with annotation and average CPM
    filter_results : Cutoff views and summary
    export_rank : Rank list for enrichment tools
    write_report : Write every artifact

References:
    Love MI, Huber W, Anders S (2014). Moderated estimation of fold change
    and dispersion for RNA-seq data with DESeq2. Genome Biology 15:550
"""

# Configuration and errors
from .config import AnalysisConfig, load_json_config
from .errors import (
    DEReportError,
    SchemaError,
    IdentifierAmbiguityError,
    EmptyGroupError,
    InvalidParameterError,
    ReportWriteError,
)

# Pipeline stages
from .matrix import ExpressionMatrix, build_expression_matrix, read_expression_table
from .groups import GroupAssignment, assign_groups
from .annotation import GeneAnnotation, load_annotation, annotate_results, average_cpm
from .filtering import (
    CutoffSummary,
    FilterThresholds,
    FilteredViews,
    filter_results,
    summarize_results,
)
from .rank import export_rank
from .report import artifact_name, write_report
from .pipeline import ComparisonResult, run_comparison, run_from_config

# Engine
from .engine import DEResult, deseq_engine, run_deseq
from .size_factors import estimate_size_factors
from .dispersion import estimate_dispersions
from .nbinom_wald import nb_glm_wald, benjamini_hochberg
from .independent_filtering import independent_filtering

# Gene lookup
from .selectors import ByIndex, ByName, ById, resolve_gene, gene_counts

# Utilities
from .utils import cpm, normalize_counts

__version__ = "0.1.0"

__all__ = [
    # Config / errors
    'AnalysisConfig',
    'load_json_config',
    'DEReportError',
    'SchemaError',
    'IdentifierAmbiguityError',
    'EmptyGroupError',
    'InvalidParameterError',
    'ReportWriteError',

    # Stages
    'ExpressionMatrix',
    'build_expression_matrix',
    'read_expression_table',
    'GroupAssignment',
    'assign_groups',
    'GeneAnnotation',
    'load_annotation',
    'annotate_results',
    'average_cpm',
    'CutoffSummary',
    'FilterThresholds',
    'FilteredViews',
    'filter_results',
    'summarize_results',
    'export_rank',
    'artifact_name',
    'write_report',
    'ComparisonResult',
    'run_comparison',
    'run_from_config',

    # Engine
    'DEResult',
    'deseq_engine',
    'run_deseq',
    'estimate_size_factors',
    'estimate_dispersions',
    'nb_glm_wald',
    'benjamini_hochberg',
    'independent_filtering',

    # Selectors
    'ByIndex',
    'ByName',
    'ById',
    'resolve_gene',
    'gene_counts',

    # Utilities
    'cpm',
    'normalize_counts',
]
