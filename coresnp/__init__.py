"""Incremental core-SNP alignment graphs for heterogeneous sample inputs."""

__version__ = "0.1.0"
