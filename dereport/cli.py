"""Command-line entry point: ``dereport --config run.json``."""

import argparse
import logging
import sys

from .config import load_json_config
from .errors import DEReportError
from .pipeline import run_from_config

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="dereport",
        description="Two-group differential expression report: filtered gene "
                    "tables, a rank file and a cutoff summary.")
    parser.add_argument("--config", required=True, help="JSON run configuration.")
    parser.add_argument("--output-dir", help="Override the output directory.")
    parser.add_argument("--padj-cutoff", type=float, help="Adjusted p-value cutoff.")
    parser.add_argument("--log2-cutoff", type=float, help="Absolute log2 fold change cutoff.")
    parser.add_argument("--cpm-cutoff", type=float, dest="abundance_cutoff",
                        help="Average CPM cutoff.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def format_summary(summary):
    lines = ["cutoff_name\tcutoff_value\tsignif_genes"]
    lines.extend(f"{row.cutoff_name}\t{row.cutoff_value:g}\t{row.signif_genes}"
                 for row in summary)
    return "\n".join(lines)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = load_json_config(args.config).with_overrides(
            output_dir=args.output_dir,
            padj_cutoff=args.padj_cutoff,
            log2_cutoff=args.log2_cutoff,
            abundance_cutoff=args.abundance_cutoff)
        result, paths = run_from_config(config)
    except (DEReportError, FileNotFoundError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1

    print(format_summary(result.summary))
    logger.info("Wrote %d artifact(s) to %s", len(paths), config.output_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
