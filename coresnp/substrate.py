"""Executors that bring a declared graph up to date.

`MakeSubstrate` drives GNU make over the emitted Makefile.
`FreshnessSimulator` applies the same freshness rule in-process and writes
placeholder outputs instead of running tools.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional

from .config import LOG_DIR, MAKEFILE
from .graph import GraphNode
from .tools import MAKE, ToolLocator, run_command

EXIT_NODE_FAILED = 2


class BuildSubstrate(ABC):
    """Incremental executor: accepts node declarations, then runs stale ones."""

    def __init__(self) -> None:
        self.nodes: List[GraphNode] = []

    def declare(self, node: GraphNode) -> None:
        self.nodes.append(node)

    @abstractmethod
    def run(self, parallelism: int) -> int:
        """Run stale nodes with at most `parallelism` in flight; return exit status."""


class MakeSubstrate(BuildSubstrate):
    """Run `make` in the output directory, logging its streams to files.

    The Makefile written by the emitter already encodes every declared node,
    so declarations are only kept for reporting.
    """

    def __init__(self, outdir: Path, tools: ToolLocator) -> None:
        super().__init__()
        self.outdir = outdir
        self.tools = tools

    def run(self, parallelism: int) -> int:
        log_dir = self.outdir / LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        stdout_path = log_dir / "make.out"
        stderr_path = log_dir / "make.err"
        logging.info(
            "Running %d declared nodes with %d parallel jobs (logs in %s).",
            len(self.nodes),
            parallelism,
            log_dir,
        )
        with stdout_path.open("w") as out, stderr_path.open("w") as err:
            result = run_command(
                [self.tools.command(MAKE), "-j", str(parallelism), "-f", MAKEFILE],
                cwd=self.outdir,
                stdout=out,
                stderr=err,
                check=False,
            )
        return result.returncode


class FreshnessSimulator(BuildSubstrate):
    """In-process stand-in for make.

    A node is stale when any output is missing or older than any input.
    Running a stale node writes its expanded command into every output.
    Nodes whose kind or label is listed in `fail_on` fail instead; no further
    nodes are started after a failure, and outputs of nodes that completed
    earlier are left in place.
    """

    def __init__(self, outdir: Path, fail_on: Iterable[str] = ()) -> None:
        super().__init__()
        self.outdir = outdir
        self.fail_on = set(fail_on)
        self.executed: List[str] = []
        self.failed: Optional[str] = None

    def path(self, name: str) -> Path:
        candidate = Path(name)
        return candidate if candidate.is_absolute() else self.outdir / candidate

    def is_stale(self, node: GraphNode) -> bool:
        outputs = [self.path(p) for p in node.outputs]
        if not all(p.exists() for p in outputs):
            return True
        oldest_output = min(p.stat().st_mtime_ns for p in outputs)
        for name in node.inputs:
            source = self.path(name)
            if not source.exists():
                raise FileNotFoundError(f"No rule to make {name}, needed by {node.label}")
            if source.stat().st_mtime_ns > oldest_output:
                return True
        return False

    def run(self, parallelism: int) -> int:
        self.executed = []
        self.failed = None
        for node in self.nodes:
            if not self.is_stale(node):
                continue
            if node.kind in self.fail_on or node.label in self.fail_on:
                logging.error("Node %s failed.", node.label)
                self.failed = node.label
                return EXIT_NODE_FAILED
            command = node.expand()
            for name in node.outputs:
                output = self.path(name)
                output.parent.mkdir(parents=True, exist_ok=True)
                output.write_text(command + "\n")
            self.executed.append(node.label)
        return 0
