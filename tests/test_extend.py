"""Adding samples to an existing output directory."""

import pytest

from conftest import make_contigs, make_read_folder
from coresnp.errors import (
    ConflictingReference,
    DuplicateSampleID,
    InputValidationError,
    ReservedNameCollision,
)
from coresnp.extend import ExtensionManager
from coresnp.pipeline import prepare_fresh
from coresnp.substrate import FreshnessSimulator

PER_SAMPLE_SUFFIXES = (".raw.bam", ".filt.bam", ".bam", ".bam.bai")


def execute(prepared):
    substrate = FreshnessSimulator(prepared.config.outdir)
    for node in prepared.graph:
        substrate.declare(node)
    assert substrate.run(prepared.budget.job_count) == 0
    return substrate


def snapshot(outdir, sample_ids):
    state = {}
    for sid in sample_ids:
        for suffix in PER_SAMPLE_SUFFIXES:
            path = outdir / sid / f"{sid}{suffix}"
            state[path] = (path.read_bytes(), path.stat().st_mtime_ns)
    return state


@pytest.fixture
def built(make_config, tools):
    """An output directory after a complete first run."""
    prepared = prepare_fresh(make_config(), tools)
    execute(prepared)
    return prepared


def extend_config(make_config, inputs, **overrides):
    return make_config(reference=None, extend=True, inputs=tuple(inputs), **overrides)


def test_recover_sample_ids(built):
    manager = ExtensionManager(built.config)
    assert manager.recover_sample_ids() == ["alpha", "beta", "gamma"]


def test_extend_keeps_existing_per_sample_outputs(built, make_config, tools, tmp_path):
    outdir = built.config.outdir
    before = snapshot(outdir, ["alpha", "beta", "gamma"])
    new_folder = make_read_folder(tmp_path / "more", "delta")

    config = extend_config(make_config, [new_folder])
    prepared = ExtensionManager(config).extend(tools)
    substrate = execute(prepared)

    assert prepared.sample_ids == ["alpha", "beta", "delta", "gamma"]
    assert prepared.recovered_ids == ["alpha", "beta", "gamma"]
    assert substrate.executed == [
        "align:delta",
        "filter:delta",
        "sort:delta",
        "index:delta",
        "joint-call",
        "depth-profile",
        "core-extract",
    ]
    assert snapshot(outdir, ["alpha", "beta", "gamma"]) == before
    assert (outdir / "samples.txt").read_text() == "alpha\nbeta\ndelta\ngamma\n"
    assert "delta/delta.bam" in (outdir / "alignments.txt").read_text()


def test_extend_removes_only_joint_outputs(built, make_config, tmp_path):
    config = extend_config(make_config, [make_contigs(tmp_path / "more", "eps.fa")])
    manager = ExtensionManager(config)
    removed = {p.name for p in manager.remove_stale_artifacts()}

    assert removed == {"joint.vcf", "depth.tsv.gz", "core.full.aln", "core.aln", "core.tab", "core.txt"}
    assert (config.outdir / "alpha" / "alpha.bam").exists()
    assert (config.outdir / "regions.txt").exists()


def test_extend_rejects_new_reference(built, make_config, reference, tools, tmp_path):
    config = make_config(
        extend=True,
        reference=reference,
        inputs=(make_contigs(tmp_path / "more", "eps.fa"),),
    )
    with pytest.raises(ConflictingReference):
        ExtensionManager(config).extend(tools)
    assert (config.outdir / "joint.vcf").exists()


def test_extend_rejects_known_sample(built, make_config, tools, tmp_path):
    config = extend_config(make_config, [make_contigs(tmp_path / "more", "beta.fasta")])
    with pytest.raises(DuplicateSampleID):
        ExtensionManager(config).extend(tools)
    assert (config.outdir / "joint.vcf").exists()


def test_extend_requires_existing_graph(make_config, tools, tmp_path):
    config = extend_config(make_config, [make_contigs(tmp_path / "more", "eps.fa")])
    with pytest.raises(InputValidationError):
        ExtensionManager(config).extend(tools)
    config.outdir.mkdir()
    with pytest.raises(InputValidationError):
        ExtensionManager(config).extend(tools)


def test_extend_rejects_prefix_matching_existing_sample(built, make_config, tools, tmp_path):
    config = extend_config(make_config, [make_contigs(tmp_path / "more", "eps.fa")], prefix="alpha")
    with pytest.raises(ReservedNameCollision):
        ExtensionManager(config).extend(tools)
    assert (config.outdir / "joint.vcf").exists()
    assert (config.outdir / "core.aln").exists()


def test_new_reference_is_reported_before_missing_outdir(make_config, reference, tools, tmp_path):
    config = make_config(
        extend=True,
        reference=reference,
        inputs=(make_contigs(tmp_path / "more", "eps.fa"),),
    )
    assert not config.outdir.exists()
    with pytest.raises(ConflictingReference):
        ExtensionManager(config).extend(tools)
