"""Shared fixtures: fake tool directory, reference and sample inputs."""

import gzip
import os
from pathlib import Path

import pytest

from coresnp.config import PipelineConfig
from coresnp.tools import CALLER, GRAPH_TOOLS, MAKE, ToolLocator


def make_executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\nexit 0\n")
    os.chmod(path, 0o755)
    return path


@pytest.fixture
def tool_dir(tmp_path):
    """Directory of stub executables for every tool the graph uses."""
    bin_dir = tmp_path / "bin"
    for name in (*GRAPH_TOOLS, CALLER, MAKE):
        make_executable(bin_dir / name)
    return bin_dir


@pytest.fixture
def tools(tool_dir):
    # Search only the stub directory; commands keep bare tool names.
    return ToolLocator(search_path=str(tool_dir))


@pytest.fixture
def reference(tmp_path):
    path = tmp_path / "inputs" / "genome.fasta"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(">chr1\n" + "ACGT" * 1000 + "\n")
    return path


def make_read_folder(root: Path, name: str, files=("R1.fastq.gz", "R2.fastq.gz")) -> Path:
    folder = root / name
    folder.mkdir(parents=True, exist_ok=True)
    for filename in files:
        (folder / filename).write_bytes(gzip.compress(b"@r\nACGT\n+\nIIII\n"))
    return folder


def make_contigs(root: Path, filename: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    path = root / filename
    path.write_text(">contig1\nACGTACGT\n")
    return path


@pytest.fixture
def sample_inputs(tmp_path):
    """Two read folders and one compressed contig file."""
    root = tmp_path / "inputs"
    return [
        make_read_folder(root, "beta"),
        make_read_folder(root, "alpha", files=("alpha_R1_001.fastq.gz", "alpha_R2_001.fastq.gz")),
        make_contigs(root, "gamma.fasta.gz"),
    ]


@pytest.fixture
def make_config(tmp_path, reference, sample_inputs):
    def _make(**overrides):
        options = dict(
            outdir=tmp_path / "out",
            inputs=tuple(sample_inputs),
            reference=reference,
            cpus=8,
        )
        options.update(overrides)
        return PipelineConfig(**options)

    return _make
