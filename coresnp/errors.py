"""Error types raised while preparing or running a core-SNP graph.

Validation errors are raised before anything is written to the output
directory and map to exit code 1. `ExecutorFailure` is only raised after the
rule description has been emitted and maps to exit code 2.
"""

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_EXECUTOR = 2


class PipelineError(RuntimeError):
    """Base class for failures reported to the user with an exit code."""

    exit_code = EXIT_VALIDATION


class InputValidationError(PipelineError):
    """Missing or unreadable reference, too few samples, bad output location."""


class DuplicateSampleID(PipelineError):
    """Two inputs (or an input and a recovered sample) derive the same id."""


class ReservedNameCollision(PipelineError):
    """A sample id equals the reference alias, output prefix or joint name."""


class NoReadsFoundInFolder(PipelineError):
    """No read pattern matched one or two files inside a read folder."""


class ConflictingReference(PipelineError):
    """A new reference was supplied while extending an existing graph."""


class OutputDirectoryExists(PipelineError):
    """The output directory already exists and --force was not given."""


class MissingRequiredTool(PipelineError):
    """A required executable could not be located."""


class ExecutorFailure(PipelineError):
    """The build executor exited with a non-zero status."""

    exit_code = EXIT_EXECUTOR

    def __init__(self, message: str, returncode: int) -> None:
        super().__init__(message)
        self.returncode = returncode


class GraphError(ValueError):
    """A graph invariant was violated while adding a node."""
