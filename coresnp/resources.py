"""Split a CPU budget into concurrent jobs and threads per job."""

import logging
from dataclasses import dataclass

# Regions per core handed to the joint caller.
REGIONS_PER_CORE = 3


@dataclass(frozen=True)
class ResourceBudget:
    total_cores: int
    sample_count: int
    threads_per_job: int
    job_count: int
    region_chunk_size: int


def allocate(total_cores: int, sample_count: int, reference_size_bytes: int) -> ResourceBudget:
    """Compute the job grid and region chunk size.

    `threads_per_job * job_count` never exceeds `total_cores` and at most one
    job runs per sample. Callers pass positive core and sample counts.
    """
    threads_per_job = max(1, total_cores // sample_count)
    job_count = min(sample_count, total_cores // threads_per_job)
    region_chunk_size = reference_size_bytes // total_cores // REGIONS_PER_CORE
    if region_chunk_size == 0:
        logging.warning(
            "Reference of %d bytes is too small for %d cores; region chunk size is 0.",
            reference_size_bytes,
            total_cores,
        )
    budget = ResourceBudget(
        total_cores=total_cores,
        sample_count=sample_count,
        threads_per_job=threads_per_job,
        job_count=job_count,
        region_chunk_size=region_chunk_size,
    )
    logging.info(
        "Using %d cores: %d jobs x %d threads, region chunk size %d bp.",
        total_cores,
        job_count,
        threads_per_job,
        region_chunk_size,
    )
    return budget
