"""Serialize a graph into a Makefile plus sample manifests."""

import logging
from pathlib import Path
from typing import List, Sequence

from .config import ALIGNMENT_MANIFEST, MAKEFILE, REFERENCE_FASTA, SAMPLE_MANIFEST, primary_alignment
from .graph import Graph, GraphNode
from .resources import ResourceBudget
from .substrate import BuildSubstrate

MAKE_VARIABLES = {
    "target": "$@",
    "prereq": "$<",
    "prereqs": "$^",
    "target_dir": "$(@D)",
}


def write_if_changed(path: Path, text: str) -> bool:
    """Write `text` unless the file already holds it; keeps mtimes of unchanged files."""
    if path.exists() and path.read_text() == text:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(text)
    tmp_path.replace(path)
    return True


def render_recipe(node: GraphNode) -> str:
    escaped = node.command.replace("$", "$$")
    return escaped.format(**MAKE_VARIABLES)


def render_rule(node: GraphNode) -> str:
    separator = " &:" if len(node.outputs) > 1 else ":"
    lines = [
        f"# {node.label}",
        f"{' '.join(node.outputs)}{separator} {' '.join(node.inputs)}",
    ]
    if any("/" in output for output in node.outputs):
        lines.append("\t@mkdir -p $(@D)")
    lines.append(f"\t{render_recipe(node)}")
    return "\n".join(lines) + "\n"


def render(graph: Graph, budget: ResourceBudget) -> str:
    """Rule description for GNU make (4.3 or later, for grouped targets)."""
    header = [
        f"# Generated by coresnp. Re-run with: make -j {budget.job_count}",
        f"CPUS := {budget.total_cores}",
        f"THREADS := {budget.threads_per_job}",
        f"JOBS := {budget.job_count}",
        f"CHUNK := {budget.region_chunk_size}",
        f"REF := {REFERENCE_FASTA}",
        "",
        "SHELL := /bin/bash",
        ".SHELLFLAGS := -o pipefail -c",
        ".DELETE_ON_ERROR:",
        ".DEFAULT_GOAL := all",
        ".PHONY: all",
        f"all: {' '.join(graph.terminal_outputs())}",
        "",
    ]
    rules = [render_rule(node) for node in graph]
    return "\n".join(header) + "\n" + "\n".join(rules)


class GraphEmitter:
    """Write the rule description and manifests into the output directory."""

    def __init__(self, outdir: Path) -> None:
        self.outdir = outdir

    def emit(self, graph: Graph, budget: ResourceBudget, sample_ids: Sequence[str]) -> Path:
        ordered: List[str] = sorted(sample_ids)
        # Rendered before anything is written so a bad graph leaves no files behind.
        text = render(graph, budget)
        self.outdir.mkdir(parents=True, exist_ok=True)
        manifests = {
            ALIGNMENT_MANIFEST: "".join(primary_alignment(sid) + "\n" for sid in ordered),
            SAMPLE_MANIFEST: "".join(sid + "\n" for sid in ordered),
        }
        for name, text in manifests.items():
            if write_if_changed(self.outdir / name, text):
                logging.info("Wrote %s (%d samples).", name, len(ordered))

        makefile = self.outdir / MAKEFILE
        if write_if_changed(makefile, text):
            logging.info("Wrote %s with %d rules.", makefile, len(graph))
        else:
            logging.info("%s is unchanged.", makefile)
        return makefile

    def run(self, graph: Graph, substrate: BuildSubstrate, jobs: int) -> int:
        """Hand the graph to a build substrate; returns its exit status."""
        for node in graph:
            substrate.declare(node)
        status = substrate.run(jobs)
        if status != 0:
            logging.error("Build exited with status %d.", status)
        else:
            logging.info("Build finished successfully.")
        return status
