"""Assemble per-sample and joint nodes into a dependency graph.

Node commands are pure functions of the node kind, its ordered inputs and the
configured option values. Re-running with the same samples and options
therefore yields the same command text, and the executor can judge freshness
from file times alone.

Every command writes to temporary names and renames on success so that an
interrupted node never leaves a complete-looking output behind.
"""

import logging
from typing import Iterable, List, Sequence, Tuple

from .config import (
    ALIGNER_INDEX_SUFFIXES,
    ALIGNMENT_MANIFEST,
    CORE_SUFFIXES,
    DEPTH_PROFILE,
    JOINT_VCF,
    REFERENCE_FASTA,
    REGIONS_FILE,
    SAMPLE_MANIFEST,
    PipelineConfig,
    alignment_index,
    core_outputs,
    primary_alignment,
)
from .graph import Graph, GraphNode
from .resources import ResourceBudget
from .samples import Sample, SampleKind
from .tools import (
    ALIGNER,
    CALLER,
    CORE_EXTRACTOR,
    PARALLEL_CALLER,
    READ_SYNTHESIZER,
    REGION_SPLITTER,
    SAMTOOLS,
    ToolLocator,
)

REFERENCE_INDEX = REFERENCE_FASTA + ".fai"
ALIGNER_INDEX = tuple(REFERENCE_FASTA + ext for ext in ALIGNER_INDEX_SUFFIXES)

# Drop unmapped (0x4), secondary (0x100) and supplementary (0x800) records.
FILTER_FLAGS = "0x904"


def commit(command: str, target: str = "{target}") -> str:
    """Append the rename that publishes a finished temporary output."""
    return f"{command} && mv {target}.tmp {target}"


class GraphBuilder:
    """Build the graph for one invocation.

    `recovered_ids` are samples whose per-sample outputs already exist in the
    output directory (extend mode). Their alignments enter the graph as
    source files so the joint nodes see the full sample set while nothing can
    rebuild them.
    """

    def __init__(self, config: PipelineConfig, tools: ToolLocator) -> None:
        self.config = config
        self.tools = tools

    def build(
        self,
        samples: Sequence[Sample],
        budget: ResourceBudget,
        recovered_ids: Iterable[str] = (),
    ) -> Graph:
        graph = Graph()
        self.add_reference_nodes(graph, budget)

        recovered = sorted(set(recovered_ids))
        for sample_id in recovered:
            graph.add_sources([primary_alignment(sample_id), alignment_index(sample_id)])

        for sample in sorted(samples, key=lambda s: s.sample_id):
            self.add_sample_nodes(graph, sample, budget)

        sample_ids = sorted(set(recovered) | {s.sample_id for s in samples})
        self.add_joint_nodes(graph, sample_ids, budget)
        logging.info(
            "Graph has %d nodes for %d samples (%d recovered).",
            len(graph),
            len(sample_ids),
            len(recovered),
        )
        return graph

    # Reference

    def add_reference_nodes(self, graph: Graph, budget: ResourceBudget) -> None:
        samtools = self.tools.command(SAMTOOLS)
        if self.config.extend or self.config.reference is None:
            graph.add_source(REFERENCE_FASTA)
        else:
            reference = str(self.config.reference)
            graph.add_source(reference)
            graph.add(
                GraphNode(
                    kind="reference-copy",
                    label="reference-copy",
                    outputs=(REFERENCE_FASTA,),
                    inputs=(reference,),
                    command=commit("gzip -dcf {prereq} > {target}.tmp"),
                )
            )

        graph.add(
            GraphNode(
                kind="reference-index",
                label="reference-index:fai",
                outputs=(REFERENCE_INDEX,),
                inputs=(REFERENCE_FASTA,),
                command=commit(f"{samtools} faidx {{prereq}} --fai-idx {{target}}.tmp"),
            )
        )

        extensions = " ".join(ext.lstrip(".") for ext in ALIGNER_INDEX_SUFFIXES)
        graph.add(
            GraphNode(
                kind="reference-index",
                label="reference-index:bwa",
                outputs=ALIGNER_INDEX,
                inputs=(REFERENCE_FASTA,),
                command=(
                    f"{self.tools.command(ALIGNER)} index -p {REFERENCE_FASTA}.tmp {{prereq}}"
                    f" && for ext in {extensions}; do"
                    f" mv {REFERENCE_FASTA}.tmp.$ext {REFERENCE_FASTA}.$ext; done"
                ),
            )
        )

        graph.add(
            GraphNode(
                kind="region-split",
                label="region-split",
                outputs=(REGIONS_FILE,),
                inputs=(REFERENCE_INDEX,),
                command=commit(
                    f"{self.tools.command(REGION_SPLITTER)} {{prereq}} "
                    f"{budget.region_chunk_size} > {{target}}.tmp"
                ),
            )
        )

    # Per sample

    def read_stream(self, sample: Sample) -> Tuple[str, str]:
        """Shell fragment producing reads for the aligner, and the aligner's read arguments."""
        if sample.kind is SampleKind.READ_FOLDER:
            return "", " ".join(str(p) for p in sample.dependency_files)

        source = str(sample.source_path)
        if sample.kind is SampleKind.CONTIG_ARCHIVE:
            unpack = f"tar -xOf {source} | gzip -dcf"
        else:
            unpack = f"gzip -dcf {source}"
        synthesize = f"{self.tools.command(READ_SYNTHESIZER)} --coverage {self.config.coverage}"
        return f"{unpack} | {synthesize} | ", "-"

    def add_sample_nodes(self, graph: Graph, sample: Sample, budget: ResourceBudget) -> None:
        sid = sample.sample_id
        threads = budget.threads_per_job
        samtools = self.tools.command(SAMTOOLS)
        dependencies = [str(p) for p in sample.dependency_files]
        graph.add_sources(p for p in dependencies if p not in graph.sources)

        raw_bam = f"{sid}/{sid}.raw.bam"
        filtered_bam = f"{sid}/{sid}.filt.bam"
        sorted_bam = primary_alignment(sid)
        bam_index = alignment_index(sid)

        stream, reads = self.read_stream(sample)
        read_group = f"'@RG\\tID:{sid}\\tSM:{sid}'"
        graph.add(
            GraphNode(
                kind="align",
                label=f"align:{sid}",
                outputs=(raw_bam,),
                inputs=(REFERENCE_FASTA,) + ALIGNER_INDEX + tuple(dependencies),
                command=commit(
                    f"{stream}{self.tools.command(ALIGNER)} mem -v 1 -t {threads} -R {read_group} "
                    f"{REFERENCE_FASTA} {reads} | {samtools} view -b -o {{target}}.tmp -"
                ),
            )
        )
        graph.add(
            GraphNode(
                kind="filter",
                label=f"filter:{sid}",
                outputs=(filtered_bam,),
                inputs=(raw_bam,),
                command=commit(
                    f"{samtools} view -b -q {self.config.mapqual} -F {FILTER_FLAGS} "
                    f"-o {{target}}.tmp {{prereq}}"
                ),
            )
        )
        graph.add(
            GraphNode(
                kind="sort",
                label=f"sort:{sid}",
                outputs=(sorted_bam,),
                inputs=(filtered_bam,),
                command=commit(
                    f"{samtools} sort -@ {threads} -O bam -T {{target}}.sort "
                    f"-o {{target}}.tmp {{prereq}}"
                ),
            )
        )
        graph.add(
            GraphNode(
                kind="index",
                label=f"index:{sid}",
                outputs=(bam_index,),
                inputs=(sorted_bam,),
                command=commit(f"{samtools} index {{prereq}} {{target}}.tmp"),
            )
        )
        if self.config.per_sample_calls:
            graph.add(
                GraphNode(
                    kind="call",
                    label=f"call:{sid}",
                    outputs=(f"{sid}/{sid}.vcf",),
                    inputs=(sorted_bam, bam_index, REFERENCE_FASTA, REFERENCE_INDEX),
                    command=commit(
                        f"{self.tools.command(CALLER)} {self.caller_options()} "
                        f"-f {REFERENCE_FASTA} {{prereq}} > {{target}}.tmp"
                    ),
                )
            )

    # Joint

    def caller_options(self) -> str:
        options = [
            "-p 2",
            f"-C {self.config.mincov}",
            f"--min-base-quality {self.config.basequal}",
            f"--min-mapping-quality {self.config.mapqual}",
        ]
        if self.config.minfrac > 0:
            options.append(f"-F {self.config.minfrac:g}")
        return " ".join(options)

    def add_joint_nodes(self, graph: Graph, sample_ids: List[str], budget: ResourceBudget) -> None:
        prefix = self.config.prefix
        graph.add_sources([ALIGNMENT_MANIFEST, SAMPLE_MANIFEST])
        alignments: List[str] = []
        for sample_id in sample_ids:
            alignments.extend([primary_alignment(sample_id), alignment_index(sample_id)])

        graph.add(
            GraphNode(
                kind="joint-call",
                label="joint-call",
                outputs=(JOINT_VCF,),
                inputs=(REGIONS_FILE, REFERENCE_FASTA, REFERENCE_INDEX, ALIGNMENT_MANIFEST)
                + tuple(alignments),
                command=commit(
                    f"{self.tools.command(PARALLEL_CALLER)} {{prereq}} {budget.total_cores} "
                    f"{self.caller_options()} -f {REFERENCE_FASTA} -L {ALIGNMENT_MANIFEST} "
                    "> {target}.tmp"
                ),
            )
        )
        graph.add(
            GraphNode(
                kind="depth-profile",
                label="depth-profile",
                outputs=(DEPTH_PROFILE,),
                inputs=(ALIGNMENT_MANIFEST,) + tuple(alignments),
                command=commit(
                    f"{self.tools.command(SAMTOOLS)} depth -aa -q {self.config.basequal} "
                    f"-Q {self.config.mapqual} -f {{prereq}} | gzip -c > {{target}}.tmp"
                ),
            )
        )

        options = [f"--mincov {self.config.mincov}"]
        if self.config.minfrac > 0:
            options.append(f"--minfrac {self.config.minfrac:g}")
        if self.config.noref:
            options.append("--noref")
        extensions = " ".join(suffix.lstrip(".") for suffix in CORE_SUFFIXES)
        graph.add(
            GraphNode(
                kind="core-extract",
                label="core-extract",
                outputs=core_outputs(prefix),
                inputs=(JOINT_VCF, DEPTH_PROFILE, REFERENCE_FASTA, SAMPLE_MANIFEST),
                command=(
                    f"{self.tools.command(CORE_EXTRACTOR)} --vcf {{prereq}} --depth {DEPTH_PROFILE} "
                    f"--ref {REFERENCE_FASTA} --samples {SAMPLE_MANIFEST} {' '.join(options)} "
                    f"--prefix {prefix}.tmp"
                    f" && for ext in {extensions}; do mv {prefix}.tmp.$ext {prefix}.$ext; done"
                ),
            )
        )
