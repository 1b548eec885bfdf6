"""Location of external executables and a logged subprocess wrapper."""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import IO, Dict, Iterable, List, Optional

from .errors import MissingRequiredTool

ALIGNER = "bwa"
SAMTOOLS = "samtools"
CALLER = "freebayes"
PARALLEL_CALLER = "freebayes-parallel"
REGION_SPLITTER = "fasta_generate_regions.py"
READ_SYNTHESIZER = "shred-contigs"
CORE_EXTRACTOR = "core-extract"
MAKE = "make"

GRAPH_TOOLS = (
    ALIGNER,
    SAMTOOLS,
    PARALLEL_CALLER,
    REGION_SPLITTER,
    READ_SYNTHESIZER,
    CORE_EXTRACTOR,
)


class ToolLocator:
    """Resolve executables over an explicit search path.

    With a `tool_dir`, that directory is searched before `PATH` and commands
    embed the absolute location of tools found there, so a bundled tool set
    never requires changing the caller's environment.
    """

    def __init__(self, tool_dir: Optional[Path] = None, search_path: Optional[str] = None) -> None:
        self.tool_dir = tool_dir
        base = search_path if search_path is not None else os.environ.get("PATH", "")
        parts = [str(tool_dir)] if tool_dir else []
        if base:
            parts.append(base)
        self.search_path = os.pathsep.join(parts)

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name, path=self.search_path)

    def check(self, names: Iterable[str]) -> None:
        """Ensure required external binaries are available."""
        missing = [exe for exe in names if self.which(exe) is None]
        if missing:
            raise MissingRequiredTool(
                "Missing required executables: "
                + ", ".join(missing)
                + ". Please install them and re-run."
            )

    def command(self, name: str) -> str:
        """Name of a tool as it should appear inside a node command."""
        if self.tool_dir is not None:
            candidate = self.tool_dir / name
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)
        return name


def run_command(
    command: Iterable[str | Path],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    stdout: Optional[IO] = None,
    stderr: Optional[IO] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Wrapper around subprocess.run with logging.

    Accepts Path objects in the command iterable and coerces them to strings.
    """
    cmd_list: List[str] = [str(part) for part in command]
    logging.info("Running command: %s", " ".join(cmd_list))
    merged_env = os.environ.copy()
    if env:
        merged_env.update({k: str(v) for k, v in env.items()})
    return subprocess.run(
        cmd_list,
        cwd=str(cwd) if cwd else None,
        env=merged_env,
        stdout=stdout,
        stderr=stderr,
        check=check,
    )
