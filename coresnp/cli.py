#!/usr/bin/env python3
"""
Core-SNP alignment graph for many heterogeneous samples.

Each input is a folder of reads, a (compressed) contig FASTA, or a tarball of
contig FASTA files. Inputs are named after their folder or file, aligned
against a shared reference, and jointly variant-called; the core extractor
then writes the core alignment and report. All steps are emitted as rules of
a Makefile inside the output directory, so re-running only recomputes what
is out of date.

Steps
-----
1. Validation of the reference, inputs, output location and external tools.
2. Sample naming and read discovery.
3. CPU partitioning into parallel jobs x threads per job.
4. Graph construction and Makefile/manifest emission.
5. Optional immediate execution (`--run`), otherwise `make -C <outdir>`.

Usage
-----
    coresnp --reference ref.fasta --outdir results --cpus 16 \\
        reads/sampleA reads/sampleB assemblies/sampleC.fasta.gz

    coresnp --outdir results --extend assemblies/sampleD.tar.gz --run

Exit status is 0 on success, 1 when validation fails (nothing is written),
and 2 when the build itself fails after the graph was emitted.
"""

import argparse
import logging
import multiprocessing
import sys
from pathlib import Path
from typing import List, Optional

from .config import PipelineConfig
from .errors import EXIT_OK, PipelineError
from .extend import ExtensionManager
from .pipeline import PreparedGraph, prepare_fresh, run_prepared
from .report import log_core_summary
from .substrate import MakeSubstrate
from .tools import ToolLocator

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="coresnp",
        description=(
            "Build an incremental alignment and core-variant graph for a set "
            "of read folders and contig files."
        ),
    )
    parser.add_argument(
        "inputs",
        nargs="*",
        type=Path,
        help="Sample inputs: read folders, contig FASTA files or contig tarballs.",
    )
    parser.add_argument(
        "--reference",
        type=Path,
        default=None,
        help="Reference genome FASTA (omit with --extend).",
    )
    parser.add_argument(
        "--outdir",
        type=Path,
        required=True,
        help="Output directory holding the Makefile and all results.",
    )
    parser.add_argument(
        "--cpus",
        type=int,
        default=multiprocessing.cpu_count(),
        help="Total CPU budget shared across parallel jobs.",
    )
    parser.add_argument("--basequal", type=int, default=13, help="Minimum base quality.")
    parser.add_argument("--mapqual", type=int, default=60, help="Minimum mapping quality.")
    parser.add_argument(
        "--mincov",
        type=int,
        default=10,
        help="Minimum depth for a site to be called.",
    )
    parser.add_argument(
        "--minfrac",
        type=float,
        default=0.0,
        help="Minimum fraction of reads supporting a variant (0 = caller default).",
    )
    parser.add_argument(
        "--prefix",
        default="core",
        help="Prefix of the core alignment and report files.",
    )
    parser.add_argument(
        "--coverage",
        type=int,
        default=20,
        help="Coverage of pseudo-reads synthesized from contig inputs.",
    )
    parser.add_argument(
        "--per-sample-calls",
        action="store_true",
        help="Also call variants for each sample on its own.",
    )
    parser.add_argument(
        "--tool-dir",
        type=Path,
        default=None,
        help="Directory of bundled tools searched before PATH.",
    )
    parser.add_argument(
        "--noref",
        action="store_true",
        help="Exclude the reference from the core alignment.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Reuse an existing output directory.",
    )
    parser.add_argument(
        "--extend",
        action="store_true",
        help="Add the given samples to an existing output directory.",
    )
    parser.add_argument(
        "--run",
        action="store_true",
        help="Run make immediately after writing the graph.",
    )
    return parser.parse_args(argv)


def configure_logging() -> None:
    """Configure logging to stdout."""
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def add_log_file(log_path: Path) -> None:
    """Also log to a file inside the output directory once it exists."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)


def prepare(config: PipelineConfig, tools: ToolLocator) -> PreparedGraph:
    if config.extend:
        return ExtensionManager(config).extend(tools)
    return prepare_fresh(config, tools)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging()

    try:
        config = PipelineConfig.from_args(args)
        tools = ToolLocator(config.tool_dir)
        prepared = prepare(config, tools)
        add_log_file(config.log_dir / "coresnp.log")
        logging.info("Graph written to %s", prepared.makefile)

        if not config.run:
            logging.info(
                "Run 'make -C %s -j %d' to build the results.",
                config.outdir,
                prepared.budget.job_count,
            )
            return EXIT_OK

        run_prepared(prepared, MakeSubstrate(config.outdir, tools))
        if config.core_report.exists():
            try:
                log_core_summary(config.core_report)
            except ValueError as exc:
                logging.warning("Could not summarise %s: %s", config.core_report, exc)
        logging.info("Pipeline complete. Outputs written to %s", config.outdir)
        return EXIT_OK

    except PipelineError as exc:
        logging.error("%s", exc)
        return exc.exit_code
    except Exception as exc:  # pylint: disable=broad-except
        logging.exception("Pipeline failed: %s", exc)
        raise


if __name__ == "__main__":
    sys.exit(main())
