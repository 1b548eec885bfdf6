"""Two-phase orchestration: prepare (validate, build, emit) then run.

Preparation validates every input before writing anything. The emitted
Makefile can be executed immediately with `run_prepared` or later with
`make -C <outdir>`.
"""

import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence

from .builder import GraphBuilder
from .config import METADATA_FILE, SAMPLE_SHEET, PipelineConfig, core_outputs, primary_alignment
from .emitter import GraphEmitter
from .errors import ExecutorFailure, InputValidationError, OutputDirectoryExists
from .graph import Graph
from .resources import ResourceBudget, allocate
from .samples import Sample, SampleResolver, check_path_is_safe, write_sample_sheet
from .substrate import BuildSubstrate
from .tools import CALLER, GRAPH_TOOLS, MAKE, ToolLocator

MIN_SAMPLES = 2


@dataclass
class PreparedGraph:
    """Everything produced by the prepare phase."""

    config: PipelineConfig
    samples: List[Sample]
    budget: ResourceBudget
    graph: Graph
    makefile: Path
    recovered_ids: List[str] = field(default_factory=list)

    @property
    def sample_ids(self) -> List[str]:
        return sorted(set(self.recovered_ids) | {s.sample_id for s in self.samples})


def required_tools(config: PipelineConfig) -> List[str]:
    tools = list(GRAPH_TOOLS)
    if config.per_sample_calls:
        tools.append(CALLER)
    if config.run:
        tools.append(MAKE)
    return tools


def check_tools(config: PipelineConfig, tools: ToolLocator) -> None:
    if config.tool_dir is not None:
        check_path_is_safe(config.tool_dir)
    tools.check(required_tools(config))


def validate_reference(config: PipelineConfig) -> Path:
    reference = config.reference
    if reference is None:
        raise InputValidationError("A reference FASTA is required (--reference).")
    if not reference.is_file() or not os.access(reference, os.R_OK):
        raise InputValidationError(f"Reference is missing or unreadable: {reference}")
    check_path_is_safe(reference)
    return reference


def validate_output_location(config: PipelineConfig) -> None:
    outdir = config.outdir
    if outdir.exists():
        if not config.force:
            raise OutputDirectoryExists(
                f"Output directory {outdir} already exists; use --force to reuse it "
                "or --extend to add samples."
            )
        if not outdir.is_dir() or not os.access(outdir, os.W_OK):
            raise InputValidationError(f"Output location is not a writable directory: {outdir}")
        return
    parent = outdir.parent
    while not parent.exists():
        parent = parent.parent
    if not os.access(parent, os.W_OK):
        raise InputValidationError(f"Cannot create output directory {outdir}.")


def assemble_metadata(
    script_start: float,
    prepared: PreparedGraph,
    metadata_path: Path,
) -> None:
    """Write metadata.json capturing run context."""
    config = prepared.config
    params: Dict[str, object] = {
        "reference": str(config.reference) if config.reference else None,
        "inputs": [str(p) for p in config.inputs],
        "cpus": config.cpus,
        "basequal": config.basequal,
        "mapqual": config.mapqual,
        "mincov": config.mincov,
        "minfrac": config.minfrac,
        "prefix": config.prefix,
        "coverage": config.coverage,
        "force": config.force,
        "extend": config.extend,
        "noref": config.noref,
        "per_sample_calls": config.per_sample_calls,
    }
    metadata = {
        "script": "coresnp",
        "date": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "runtime_seconds": time.time() - script_start,
        "parameters": params,
        "budget": asdict(prepared.budget),
        "samples": prepared.sample_ids,
        "recovered_samples": prepared.recovered_ids,
        "outputs": {
            "makefile": prepared.makefile.name,
            "alignments": [primary_alignment(sid) for sid in prepared.sample_ids],
            "core": list(core_outputs(config.prefix)),
        },
    }
    metadata_path.write_text(json.dumps(metadata, indent=2))


def build_and_emit(
    config: PipelineConfig,
    tools: ToolLocator,
    samples: Sequence[Sample],
    reference_size: int,
    recovered_ids: Sequence[str] = (),
) -> PreparedGraph:
    """Allocate resources, build the graph and write it out."""
    script_start = time.time()
    recovered = sorted(recovered_ids)
    sample_ids = sorted(set(recovered) | {s.sample_id for s in samples})
    budget = allocate(config.cpus, len(sample_ids), reference_size)

    graph = GraphBuilder(config, tools).build(samples, budget, recovered_ids=recovered)
    makefile = GraphEmitter(config.outdir).emit(graph, budget, sample_ids)
    prepared = PreparedGraph(
        config=config,
        samples=list(samples),
        budget=budget,
        graph=graph,
        makefile=makefile,
        recovered_ids=recovered,
    )

    write_sample_sheet(list(samples), config.outdir / SAMPLE_SHEET, merge=bool(recovered))
    assemble_metadata(script_start, prepared, config.outdir / METADATA_FILE)
    return prepared


def prepare_fresh(config: PipelineConfig, tools: ToolLocator) -> PreparedGraph:
    """Validate a new analysis and emit its graph."""
    reference = validate_reference(config)
    if len(config.inputs) < MIN_SAMPLES:
        raise InputValidationError(
            f"At least {MIN_SAMPLES} samples are required, got {len(config.inputs)}."
        )
    validate_output_location(config)
    resolver = SampleResolver(config.reserved_names())
    samples = resolver.resolve_all(config.inputs)
    check_tools(config, tools)

    logging.info("Preparing %d samples against %s", len(samples), reference)
    return build_and_emit(config, tools, samples, reference.stat().st_size)


def run_prepared(prepared: PreparedGraph, substrate: BuildSubstrate) -> None:
    """Execute a prepared graph; raises ExecutorFailure on a non-zero exit."""
    emitter = GraphEmitter(prepared.config.outdir)
    status = emitter.run(prepared.graph, substrate, prepared.budget.job_count)
    if status != 0:
        raise ExecutorFailure(
            f"Build failed with exit status {status}; see {prepared.config.log_dir}. "
            "Completed steps are kept and will not be recomputed.",
            returncode=status,
        )
