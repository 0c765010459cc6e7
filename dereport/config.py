"""
Run configuration for a two-group differential expression report.

All thresholds and the group membership list live on a single immutable
``AnalysisConfig`` that is passed into each pipeline invocation.
"""

import json
import math
from dataclasses import dataclass, fields, replace
from pathlib import Path

from .engine import SIZE_FACTOR_TYPES
from .errors import InvalidParameterError


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Parameters of one comparison run.

    Parameters
    ----------
    group_a_samples : tuple of str
        Sample identifiers assigned to group A. Every other sample in the
        expression table is assigned to group B.
    group_a, group_b : str
        Group labels; artifacts are named ``<group_a>_vs_<group_b>_<suffix>``.
    value_column : str
        Numeric column of the long-format table used to build the matrix.
    annotation_id_column, annotation_name_column : str, optional
        Headers of the annotation table; default to ``id_column`` and
        ``name_column``.
    padj_cutoff : float
        Adjusted p-value cutoff (strict ``<``).
    log2_cutoff : float
        Absolute log2 fold change cutoff (strict ``>``).
    abundance_cutoff : float
        Average CPM cutoff (strict ``>``).
    rank_biotype : str
        Biotype kept in the rank file.
    independent_filtering : bool
        Apply mean-count independent filtering before BH correction.
    lfc_shrinkage : bool
        Report normal-prior shrunken fold changes instead of the MLE.
    size_factor_type : {"ratio", "poscounts"}
        Size factor estimator; ``poscounts`` works when every gene has a
        zero in some sample.
    """

    group_a_samples: tuple
    group_a: str = "A"
    group_b: str = "B"
    expression_path: str = None
    annotation_path: str = None
    output_dir: str = "results"
    value_column: str = "expected_count"
    id_column: str = "gene_id"
    name_column: str = "gene_name"
    sample_column: str = "sample_id"
    annotation_id_column: str = None
    annotation_name_column: str = None
    biotype_column: str = "gene_biotype"
    padj_cutoff: float = 0.05
    log2_cutoff: float = 1.0
    abundance_cutoff: float = 1.0
    rank_biotype: str = "protein_coding"
    independent_filtering: bool = True
    lfc_shrinkage: bool = False
    size_factor_type: str = "ratio"

    def __post_init__(self):
        if isinstance(self.group_a_samples, str):
            raise InvalidParameterError(
                "group_a_samples must be a sequence of sample ids, not a string")
        object.__setattr__(self, "group_a_samples", tuple(self.group_a_samples))
        if self.annotation_id_column is None:
            object.__setattr__(self, "annotation_id_column", self.id_column)
        if self.annotation_name_column is None:
            object.__setattr__(self, "annotation_name_column", self.name_column)
        if self.size_factor_type not in SIZE_FACTOR_TYPES:
            raise InvalidParameterError(
                f"size_factor_type must be one of {SIZE_FACTOR_TYPES}, "
                f"got {self.size_factor_type!r}")

        if not self.group_a or not self.group_b:
            raise InvalidParameterError("group labels must be non-empty")
        if self.group_a == self.group_b:
            raise InvalidParameterError(
                f"group labels must differ, got '{self.group_a}' twice")

        padj = _as_float("padj_cutoff", self.padj_cutoff)
        if not 0.0 < padj <= 1.0:
            raise InvalidParameterError(f"padj_cutoff must be in (0, 1], got {padj}")
        for name in ("log2_cutoff", "abundance_cutoff"):
            value = _as_float(name, getattr(self, name))
            if value < 0:
                raise InvalidParameterError(f"{name} must be >= 0, got {value}")

    @property
    def comparison_name(self):
        return f"{self.group_a}_vs_{self.group_b}"

    @classmethod
    def from_dict(cls, data):
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidParameterError(f"Unknown config keys: {', '.join(unknown)}")
        if "group_a_samples" not in data:
            raise InvalidParameterError("Config is missing 'group_a_samples'")
        return cls(**dict(data))

    def with_overrides(self, **overrides):
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def _as_float(name, value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(f"{name} must be a number, got {value!r}") from None
    if math.isnan(value):
        raise InvalidParameterError(f"{name} must not be NaN")
    return value


def load_json_config(path):
    """Load a run config from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise InvalidParameterError(
            f"Unsupported config format for '{config_path}'. Use a .json config file.")

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise InvalidParameterError(
            f"Invalid JSON in config '{config_path}' at line {exc.lineno}, "
            f"column {exc.colno}: {exc.msg}"
        ) from exc

    if not isinstance(data, dict):
        raise InvalidParameterError(
            f"Invalid config root in '{config_path}': expected JSON object, "
            f"got {type(data).__name__}.")
    return AnalysisConfig.from_dict(data)
