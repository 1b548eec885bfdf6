"""Freshness semantics of the in-process executor."""

import os

import pytest

from coresnp.errors import ExecutorFailure
from coresnp.pipeline import prepare_fresh, run_prepared
from coresnp.substrate import FreshnessSimulator


def run(prepared, **kwargs):
    substrate = FreshnessSimulator(prepared.config.outdir, **kwargs)
    for node in prepared.graph:
        substrate.declare(node)
    return substrate, substrate.run(prepared.budget.job_count)


def test_first_run_executes_everything_then_nothing(make_config, tools):
    prepared = prepare_fresh(make_config(), tools)
    first, status = run(prepared)
    assert status == 0
    assert first.executed == [n.label for n in prepared.graph]
    assert (prepared.config.outdir / "core.aln").exists()

    second, status = run(prepared)
    assert status == 0
    assert second.executed == []


def backdate(root, seconds):
    stamp = seconds * 1_000_000_000
    for path in root.rglob("*"):
        if path.is_file():
            os.utime(path, ns=(stamp, stamp))


def test_touched_input_rebuilds_downstream_only(make_config, tools, sample_inputs, tmp_path):
    prepared = prepare_fresh(make_config(), tools)
    run(prepared)

    # Everything old, then one read file slightly newer than its outputs.
    backdate(tmp_path, 1_000_000_000)
    read_file = sample_inputs[0] / "R1.fastq.gz"
    os.utime(read_file, ns=(1_000_000_010_000_000_000, 1_000_000_010_000_000_000))

    substrate, _ = run(prepared)
    assert substrate.executed == [
        "align:beta",
        "filter:beta",
        "sort:beta",
        "index:beta",
        "joint-call",
        "depth-profile",
        "core-extract",
    ]


def test_failure_stops_run_and_keeps_completed_outputs(make_config, tools):
    prepared = prepare_fresh(make_config(), tools)
    substrate, status = run(prepared, fail_on={"joint-call"})
    outdir = prepared.config.outdir

    assert status != 0
    assert substrate.failed == "joint-call"
    assert (outdir / "gamma" / "gamma.bam.bai").exists()
    assert not (outdir / "joint.vcf").exists()

    retry, status = run(prepared)
    assert status == 0
    assert retry.executed == ["joint-call", "depth-profile", "core-extract"]


def test_run_prepared_raises_executor_failure(make_config, tools):
    prepared = prepare_fresh(make_config(), tools)
    substrate = FreshnessSimulator(prepared.config.outdir, fail_on={"align:alpha"})
    with pytest.raises(ExecutorFailure) as excinfo:
        run_prepared(prepared, substrate)
    assert excinfo.value.exit_code == 2
    assert prepared.makefile.exists()
