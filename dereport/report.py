"""
Tabular report artifacts.

Each artifact is written to a temporary file next to its destination and
moved into place only when complete, so a failed write leaves neither a
truncated file nor a stale partial one, and does not stop the remaining
artifacts from being written.
"""

import logging
import os
import tempfile
from pathlib import Path

from .errors import ReportWriteError

logger = logging.getLogger(__name__)

NA_REP = "NA"

VIEW_SUFFIXES = {
    "by_significance": "padj_cutoff",
    "by_magnitude": "log2f_cutoff",
    "by_abundance": "cpm_cutoff",
    "all_annotated": "allgenes",
}
RANK_SUFFIX = "rank"
SUMMARY_SUFFIX = "summary"

EXTENSIONS = {RANK_SUFFIX: ".rnk"}


def artifact_name(comparison, suffix):
    """``<groupA>_vs_<groupB>_<suffix>`` plus the artifact's extension."""
    return f"{comparison}_{suffix}{EXTENSIONS.get(suffix, '.tsv')}"


def _write_atomic(path, write_fn):
    path = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            write_fn(fh)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def write_table(df, path, index_label="gene_id"):
    """Tab-delimited table with header; the index is the first column."""
    _write_atomic(path, lambda fh: df.to_csv(
        fh, sep="\t", na_rep=NA_REP, index=True, index_label=index_label,
        lineterminator="\n"))


def write_rank(rank, path):
    """Header-less two-column rank file: gene name, log2 fold change."""
    _write_atomic(path, lambda fh: rank.to_csv(
        fh, sep="\t", na_rep=NA_REP, index=False, header=False,
        lineterminator="\n"))


def write_summary(summary, path):
    _write_atomic(path, lambda fh: summary.to_csv(
        fh, sep="\t", na_rep=NA_REP, index=False, lineterminator="\n"))


def write_report(output_dir, comparison, views, rank):
    """
    Write every view, the rank file and the cutoff summary.

    Parameters
    ----------
    output_dir : str or Path
        Created if missing.
    comparison : str
        ``<groupA>_vs_<groupB>``.
    views : FilteredViews
    rank : pd.DataFrame
        Output of ``export_rank``.

    Returns
    -------
    dict
        Artifact suffix -> written path.

    Raises
    ------
    ReportWriteError
        After attempting all artifacts, if any of them failed.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    jobs = []
    for attr, suffix in VIEW_SUFFIXES.items():
        jobs.append((suffix, write_table, getattr(views, attr)))
    jobs.append((RANK_SUFFIX, write_rank, rank))
    jobs.append((SUMMARY_SUFFIX, write_summary, views.summary_frame()))

    written = {}
    failures = {}
    for suffix, writer, data in jobs:
        path = output_dir / artifact_name(comparison, suffix)
        try:
            writer(data, path)
        except OSError as exc:
            logger.error("Could not write %s: %s", path, exc)
            failures[suffix] = exc
            continue
        logger.info("  Saved: %s (%d rows)", path, len(data))
        written[suffix] = path

    if failures:
        raise ReportWriteError(failures)
    return written
