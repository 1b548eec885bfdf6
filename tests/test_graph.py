import pytest

from coresnp.errors import GraphError
from coresnp.graph import Graph, GraphNode


def node(label, outputs, inputs, command="touch {target}"):
    return GraphNode(kind=label, label=label, outputs=tuple(outputs), inputs=tuple(inputs), command=command)


def test_inputs_must_have_a_producer():
    graph = Graph()
    with pytest.raises(GraphError):
        graph.add(node("a", ["a.txt"], ["missing.txt"]))


def test_outputs_are_unique():
    graph = Graph()
    graph.add_source("/data/in.txt")
    graph.add(node("a", ["a.txt"], ["/data/in.txt"]))
    with pytest.raises(GraphError):
        graph.add(node("b", ["a.txt"], ["/data/in.txt"]))


def test_source_cannot_be_an_output():
    graph = Graph()
    graph.add_source("x.txt")
    with pytest.raises(GraphError):
        graph.add(node("a", ["x.txt"], []))


def test_multi_output_nodes_cannot_use_target():
    graph = Graph()
    with pytest.raises(GraphError):
        graph.add(node("a", ["a.1", "a.2"], [], command="split {target}"))


def test_terminal_outputs_and_index():
    graph = Graph()
    graph.add_source("in.txt")
    first = graph.add(node("a", ["a.txt"], ["in.txt"]))
    graph.add(node("b", ["b.txt", "b.log"], ["a.txt"], command="run {prereq}"))

    assert graph.producer("a.txt") is first
    assert graph.terminal_outputs() == ["b.txt", "b.log"]
    assert len(graph) == 2


def test_expand_placeholders():
    step = node("sort", ["s1/s1.bam"], ["s1/s1.raw.bam", "ref.fa"], command="sort {prereq} -o {target} # {prereqs} {target_dir}")
    assert step.expand() == "sort s1/s1.raw.bam -o s1/s1.bam # s1/s1.raw.bam ref.fa s1"
