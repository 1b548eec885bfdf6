"""Run configuration and output-directory layout.

A `PipelineConfig` is built once per invocation from the command line and
passed to every component. Nothing in the package reads options from the
environment or from module-level state.
"""

import argparse
import multiprocessing
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Tuple

from .errors import InputValidationError

REFERENCE_ALIAS = "ref"
REFERENCE_FASTA = f"{REFERENCE_ALIAS}.fa"
JOINT_NAME = "joint"

MAKEFILE = "Makefile"
ALIGNMENT_MANIFEST = "alignments.txt"
SAMPLE_MANIFEST = "samples.txt"
SAMPLE_SHEET = "samples.tsv"
METADATA_FILE = "metadata.json"
REGIONS_FILE = "regions.txt"
JOINT_VCF = f"{JOINT_NAME}.vcf"
DEPTH_PROFILE = "depth.tsv.gz"
LOG_DIR = "logs"

ALIGNER_INDEX_SUFFIXES = (".amb", ".ann", ".bwt", ".pac", ".sa")
CORE_SUFFIXES = (".full.aln", ".aln", ".tab", ".txt")


def primary_alignment(sample_id: str) -> str:
    """Sorted, filtered BAM for a sample, relative to the output directory."""
    return f"{sample_id}/{sample_id}.bam"


def alignment_index(sample_id: str) -> str:
    return primary_alignment(sample_id) + ".bai"


def core_outputs(prefix: str) -> Tuple[str, ...]:
    return tuple(prefix + suffix for suffix in CORE_SUFFIXES)


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable option set for one invocation."""

    outdir: Path
    inputs: Tuple[Path, ...] = ()
    reference: Optional[Path] = None
    cpus: int = field(default_factory=multiprocessing.cpu_count)
    basequal: int = 13
    mapqual: int = 60
    mincov: int = 10
    minfrac: float = 0.0
    prefix: str = "core"
    coverage: int = 20
    force: bool = False
    extend: bool = False
    noref: bool = False
    run: bool = False
    per_sample_calls: bool = False
    tool_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.cpus < 1:
            raise InputValidationError(f"--cpus must be a positive integer, got {self.cpus}.")
        if self.coverage < 1:
            raise InputValidationError(f"--coverage must be a positive integer, got {self.coverage}.")
        if self.basequal < 0 or self.mapqual < 0 or self.mincov < 0:
            raise InputValidationError("Quality and depth thresholds must be non-negative.")
        if not 0.0 <= self.minfrac <= 1.0:
            raise InputValidationError(f"--minfrac must lie in [0, 1], got {self.minfrac}.")
        if not self.prefix or "/" in self.prefix or any(ch.isspace() for ch in self.prefix):
            raise InputValidationError(f"Invalid output prefix {self.prefix!r}.")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "PipelineConfig":
        return cls(
            outdir=Path(args.outdir).resolve(),
            inputs=tuple(Path(p) for p in args.inputs),
            reference=Path(args.reference).resolve() if args.reference else None,
            cpus=args.cpus,
            basequal=args.basequal,
            mapqual=args.mapqual,
            mincov=args.mincov,
            minfrac=args.minfrac,
            prefix=args.prefix,
            coverage=args.coverage,
            force=args.force,
            extend=args.extend,
            noref=args.noref,
            run=args.run,
            per_sample_calls=args.per_sample_calls,
            tool_dir=Path(args.tool_dir).resolve() if args.tool_dir else None,
        )

    def reserved_names(self) -> FrozenSet[str]:
        """Ids a sample may never take."""
        return frozenset({REFERENCE_ALIAS, self.prefix, JOINT_NAME})

    @property
    def reference_copy(self) -> Path:
        return self.outdir / REFERENCE_FASTA

    @property
    def makefile(self) -> Path:
        return self.outdir / MAKEFILE

    @property
    def log_dir(self) -> Path:
        return self.outdir / LOG_DIR

    @property
    def core_report(self) -> Path:
        return self.outdir / f"{self.prefix}.txt"
