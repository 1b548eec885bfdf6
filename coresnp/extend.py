"""Add samples to an output directory that already holds a built graph.

Previously known samples are recovered from the per-sample alignments found
in the output directory. Their outputs are never modified: they enter the new
graph as source files. Only joint outputs, which depend on the full sample
set, are removed so they get rebuilt.
"""

import logging
from pathlib import Path
from typing import List, Sequence

from .config import (
    DEPTH_PROFILE,
    JOINT_VCF,
    PipelineConfig,
    alignment_index,
    core_outputs,
    primary_alignment,
)
from .errors import ConflictingReference, InputValidationError, ReservedNameCollision
from .pipeline import PreparedGraph, build_and_emit, check_tools
from .samples import Sample, SampleResolver
from .tools import ToolLocator


class ExtensionManager:
    def __init__(self, config: PipelineConfig) -> None:
        self.config = config
        self.outdir = config.outdir

    def recover_sample_ids(self) -> List[str]:
        """Sample ids with a primary alignment in the output directory."""
        if not self.outdir.is_dir():
            return []
        recovered = [
            child.name
            for child in self.outdir.iterdir()
            if child.is_dir() and (self.outdir / primary_alignment(child.name)).is_file()
        ]
        return sorted(recovered)

    def check_reference(self) -> None:
        if self.config.reference is not None:
            raise ConflictingReference(
                "Cannot use a new reference when extending; "
                f"{self.config.reference_copy} is used instead."
            )

    def check_preconditions(self, recovered: Sequence[str]) -> None:
        self.check_reference()
        if not self.config.reference_copy.is_file():
            raise InputValidationError(
                f"No reference copy found at {self.config.reference_copy}; nothing to extend."
            )
        if not recovered:
            raise InputValidationError(f"No existing samples found in {self.outdir}; nothing to extend.")
        clashes = sorted(set(recovered) & self.config.reserved_names())
        if clashes:
            raise ReservedNameCollision(
                f"Existing sample(s) {', '.join(clashes)} use a reserved name; "
                "choose another --prefix."
            )
        missing = [
            alignment_index(sid)
            for sid in recovered
            if not (self.outdir / alignment_index(sid)).is_file()
        ]
        if missing:
            raise InputValidationError(
                "Existing samples are incomplete (missing " + ", ".join(missing) + "); "
                "finish the previous run before extending."
            )
        if not self.config.inputs:
            raise InputValidationError("No new samples given to add.")

    def resolve_new_samples(self, recovered: Sequence[str]) -> List[Sample]:
        resolver = SampleResolver(self.config.reserved_names(), known_ids=recovered)
        return resolver.resolve_all(self.config.inputs)

    def stale_artifacts(self) -> List[Path]:
        """Joint outputs that become invalid once the sample set changes."""
        names = [JOINT_VCF, DEPTH_PROFILE, *core_outputs(self.config.prefix)]
        return [self.outdir / name for name in names]

    def extend(self, tools: ToolLocator) -> PreparedGraph:
        """Validate, drop joint outputs and emit a graph over old and new samples."""
        self.check_reference()
        if not self.outdir.is_dir():
            raise InputValidationError(f"Output directory {self.outdir} does not exist; nothing to extend.")
        recovered = self.recover_sample_ids()
        self.check_preconditions(recovered)
        samples = self.resolve_new_samples(recovered)
        check_tools(self.config, tools)

        logging.info(
            "Extending %d existing samples with %d new: %s",
            len(recovered),
            len(samples),
            ", ".join(s.sample_id for s in samples),
        )
        self.remove_stale_artifacts()
        reference_size = self.config.reference_copy.stat().st_size
        return build_and_emit(self.config, tools, samples, reference_size, recovered_ids=recovered)

    def remove_stale_artifacts(self) -> List[Path]:
        removed = []
        for path in self.stale_artifacts():
            if path.exists():
                path.unlink()
                removed.append(path)
        if removed:
            logging.info("Removed %d joint outputs: %s", len(removed), ", ".join(p.name for p in removed))
        return removed
