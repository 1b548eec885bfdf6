"""Resolve raw inputs into named samples with concrete dependency files.

Inputs come in three shapes:

* a directory holding one or two read files (`READ_FOLDER`),
* a plain or compressed multi-contig FASTA file (`CONTIG_FILE`),
* a tarball of FASTA contig files (`CONTIG_ARCHIVE`).

Classification only looks at the path itself; file contents are never read.
"""

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pandas as pd

from .errors import (
    DuplicateSampleID,
    InputValidationError,
    NoReadsFoundInFolder,
    ReservedNameCollision,
)

# Paired-end layouts before single-end ones.
READ_PATTERNS = (
    "*_R[12]_*.f*q.gz",
    "*_R[12].f*q.gz",
    "*R[12].f*q.gz",
    "*_[12].f*q.gz",
    "*.f*q.gz",
    "*_R[12]_*.f*q",
    "*_[12].f*q",
    "*.f*q",
)

ARCHIVE_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz")

# Characters that would break a make target or an unquoted shell word.
UNSAFE_ID = re.compile(r"[\s:$#%=;/\\'\"{}()*?\[\]|&<>]")

# Paths end up in rule lines and command templates.
UNSAFE_PATH = re.compile(r"[\s{}:#$=;]")


class SampleKind(Enum):
    READ_FOLDER = "reads"
    CONTIG_FILE = "contigs"
    CONTIG_ARCHIVE = "archive"


@dataclass(frozen=True)
class Sample:
    """A named input and the files its alignment depends on."""

    sample_id: str
    kind: SampleKind
    source_path: Path
    dependency_files: Tuple[Path, ...]

    @property
    def is_paired(self) -> bool:
        return self.kind is SampleKind.READ_FOLDER and len(self.dependency_files) == 2


def classify(path: Path) -> SampleKind:
    """Return the sample kind implied by the path's type and name."""
    if path.is_dir():
        return SampleKind.READ_FOLDER
    if path.name.lower().endswith(ARCHIVE_SUFFIXES):
        return SampleKind.CONTIG_ARCHIVE
    return SampleKind.CONTIG_FILE


def derive_sample_id(path: Path) -> str:
    """Directory name, or the file name with every extension removed."""
    if path.is_dir():
        sample_id = path.name
    else:
        sample_id = path.name.split(".", 1)[0]
    if not sample_id:
        raise InputValidationError(f"Cannot derive a sample name from {path}.")
    if UNSAFE_ID.search(sample_id):
        raise InputValidationError(
            f"Sample name {sample_id!r} derived from {path} contains characters "
            "that are not allowed in output file names."
        )
    return sample_id


def find_reads(folder: Path) -> Tuple[Path, ...]:
    """Pick the read files of a folder using the first decisive pattern."""
    for pattern in READ_PATTERNS:
        matches = sorted(p for p in folder.glob(pattern) if p.is_file())
        if len(matches) in (1, 2):
            logging.debug("Pattern %s matched %d read file(s) in %s", pattern, len(matches), folder)
            return tuple(matches)
    raise NoReadsFoundInFolder(
        f"Could not find one or two read files in {folder} "
        f"(tried: {', '.join(READ_PATTERNS)})."
    )


def check_path_is_safe(path: Path) -> None:
    match = UNSAFE_PATH.search(str(path))
    if match:
        raise InputValidationError(
            f"Paths containing {match.group()!r} are not supported: {path}"
        )


class SampleResolver:
    """Assign ids to inputs, enforcing uniqueness and reserved names.

    `known_ids` holds samples that already exist (extend mode); a new input
    may not reuse one of them.
    """

    def __init__(self, reserved: Iterable[str], known_ids: Iterable[str] = ()) -> None:
        self.reserved = frozenset(reserved)
        self.known_ids: Set[str] = set(known_ids)
        self.assigned: Dict[str, Path] = {}

    def resolve(self, path: Path) -> Sample:
        if not path.exists():
            raise InputValidationError(f"Sample input does not exist: {path}")
        # Named after the path as given; symlinks are only followed for the sources.
        given = Path(os.path.abspath(path))
        source = path.resolve()
        check_path_is_safe(source)
        kind = classify(given)
        sample_id = derive_sample_id(given)

        if sample_id in self.reserved:
            raise ReservedNameCollision(
                f"Sample name {sample_id!r} (from {path}) is reserved; rename the input."
            )
        if sample_id in self.known_ids:
            raise DuplicateSampleID(
                f"Sample {sample_id!r} (from {path}) already exists in the output directory."
            )
        if sample_id in self.assigned:
            raise DuplicateSampleID(
                f"Sample {sample_id!r} derived from both {self.assigned[sample_id]} and {path}."
            )

        if kind is SampleKind.READ_FOLDER:
            dependencies = find_reads(source)
            for read_file in dependencies:
                check_path_is_safe(read_file)
        else:
            dependencies = (source,)

        self.assigned[sample_id] = path
        sample = Sample(
            sample_id=sample_id,
            kind=kind,
            source_path=source,
            dependency_files=dependencies,
        )
        logging.info(
            "Sample %s: %s (%s)",
            sample_id,
            kind.value,
            ", ".join(p.name for p in dependencies),
        )
        return sample

    def resolve_all(self, paths: Iterable[Path]) -> List[Sample]:
        """Resolve every input; the result is sorted by sample id."""
        samples = [self.resolve(Path(p)) for p in paths]
        return sorted(samples, key=lambda s: s.sample_id)


def write_sample_sheet(samples: List[Sample], output_path: Path, merge: bool = False) -> None:
    """Persist sample provenance as TSV.

    With `merge`, rows of an existing sheet are kept and new samples appended.
    The sheet is informational; sample recovery never reads it.
    """
    rows = [
        {
            "sample_id": sample.sample_id,
            "kind": sample.kind.value,
            "source": str(sample.source_path),
            "reads": ",".join(str(p) for p in sample.dependency_files),
        }
        for sample in samples
    ]
    df = pd.DataFrame(rows, columns=["sample_id", "kind", "source", "reads"])
    existing: Optional[pd.DataFrame] = None
    if merge and output_path.exists():
        existing = pd.read_csv(output_path, sep="\t", dtype=str)
    if existing is not None:
        existing = existing[~existing["sample_id"].isin(df["sample_id"])]
        df = pd.concat([existing, df], ignore_index=True)
    df = df.sort_values("sample_id").reset_index(drop=True)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, sep="\t", index=False)
