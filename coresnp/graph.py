"""Dependency graph of pipeline nodes keyed by their output files."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Set, Tuple

from .errors import GraphError


@dataclass(frozen=True)
class GraphNode:
    """One unit of work: ordered inputs, outputs and a command template.

    The command may reference `{target}` (first output), `{prereq}` (first
    input), `{prereqs}` (all inputs) and `{target_dir}`. All other text is
    literal, so braces must not appear elsewhere in it.
    """

    kind: str
    label: str
    outputs: Tuple[str, ...]
    inputs: Tuple[str, ...]
    command: str

    def expand(self, **overrides: str) -> str:
        """Command with placeholders replaced by concrete paths."""
        values = {
            "target": self.outputs[0],
            "prereq": self.inputs[0] if self.inputs else "",
            "prereqs": " ".join(self.inputs),
            "target_dir": self.outputs[0].rsplit("/", 1)[0] if "/" in self.outputs[0] else ".",
        }
        values.update(overrides)
        return self.command.format(**values)


class Graph:
    """Append-only node list with a global output index.

    A node can only be added once all of its inputs are either declared
    source files or outputs of nodes already in the graph, which keeps the
    graph acyclic and its order topological.
    """

    def __init__(self) -> None:
        self.nodes: List[GraphNode] = []
        self.output_index: Dict[str, GraphNode] = {}
        self.sources: Set[str] = set()

    def add_source(self, path: str) -> str:
        if path in self.output_index:
            raise GraphError(f"{path} is already produced by node {self.output_index[path].label}")
        self.sources.add(path)
        return path

    def add_sources(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.add_source(path)

    def add(self, node: GraphNode) -> GraphNode:
        if not node.outputs:
            raise GraphError(f"Node {node.label} declares no outputs")
        if len(node.outputs) > 1 and "{target" in node.command:
            # Grouped targets: the executor may bind {target} to any member.
            raise GraphError(f"Multi-output node {node.label} may not use target placeholders")
        for output in node.outputs:
            if output in self.output_index:
                raise GraphError(
                    f"Output {output} of {node.label} is already produced by "
                    f"{self.output_index[output].label}"
                )
            if output in self.sources:
                raise GraphError(f"Output {output} of {node.label} is a source file")
        for path in node.inputs:
            if path not in self.sources and path not in self.output_index:
                raise GraphError(f"Input {path} of {node.label} has no producer")
        self.nodes.append(node)
        for output in node.outputs:
            self.output_index[output] = node
        return node

    def producer(self, path: str) -> GraphNode:
        return self.output_index[path]

    def terminal_outputs(self) -> List[str]:
        """Outputs not consumed by any other node, in node order."""
        consumed = {path for node in self.nodes for path in node.inputs}
        return [
            output
            for node in self.nodes
            for output in node.outputs
            if output not in consumed
        ]

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)
