"""Task graph declaration, validation and build-time pruning.

Tasks declare which streams they read (bindings) and which streams they
write. Edges are never declared directly: task B depends on task A when B
binds to a stream A produces, possibly through a merge. Activation
predicates are evaluated once in :meth:`GraphBuilder.build`; the resulting
:class:`TaskGraph` only contains active tasks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import networkx as nx

from smrnaflow.core.streams import Item
from smrnaflow.exceptions import (
    CyclicGraphError,
    DanglingInputError,
    GraphError,
    UnsatisfiedDependency,
)
from smrnaflow.utils.logging import LogTemplates, get_logger

if TYPE_CHECKING:
    from smrnaflow.core.routing import PublishRule
    from smrnaflow.core.scheduler import TaskContext


class BindingKind(str, Enum):
    """How a task consumes an input stream."""

    EACH = "each"
    PAIRED = "paired"
    BROADCAST = "broadcast"
    COLLECT = "collect"


@dataclass(frozen=True)
class InputBinding:
    """Binding of one task input slot to a named stream."""

    stream: str
    kind: BindingKind
    optional: bool = False


def each(stream: str, optional: bool = False) -> InputBinding:
    """One task instance per item of ``stream``."""
    return InputBinding(stream, BindingKind.EACH, optional)


def paired(stream: str, optional: bool = False) -> InputBinding:
    """Item of ``stream`` whose sample key matches the driving item."""
    return InputBinding(stream, BindingKind.PAIRED, optional)


def broadcast(stream: str, optional: bool = False) -> InputBinding:
    """Single-item stream handed to every instance."""
    return InputBinding(stream, BindingKind.BROADCAST, optional)


def collect(stream: str, optional: bool = False) -> InputBinding:
    """Whole stream as one sorted batch, released when the stream closes."""
    return InputBinding(stream, BindingKind.COLLECT, optional)


WorkFn = Callable[["TaskContext"], Any]


@dataclass
class TaskNode:
    """A named unit of work with stream bindings."""

    name: str
    work: WorkFn
    inputs: Dict[str, InputBinding] = field(default_factory=dict)
    outputs: Dict[str, str] = field(default_factory=dict)
    when: bool = True
    ignorable: bool = False
    publish: Optional["PublishRule"] = None
    description: str = ""

    @property
    def driver(self) -> Optional[str]:
        """Slot name of the EACH binding, if any."""
        for slot, binding in self.inputs.items():
            if binding.kind is BindingKind.EACH:
                return slot
        return None


@dataclass
class SourceNode:
    """Externally supplied stream (input files, reference files)."""

    name: str
    items: List[Item]
    when: bool = True


@dataclass
class MergeNode:
    """Fan-in of several streams into one."""

    name: str
    sources: List[str]


def _task_id(name: str) -> Tuple[str, str]:
    return ("task", name)


def _stream_id(name: str) -> Tuple[str, str]:
    return ("stream", name)


class TaskGraph:
    """Pruned, validated task graph ready for scheduling."""

    def __init__(
        self,
        tasks: Dict[str, TaskNode],
        sources: Dict[str, SourceNode],
        merges: Dict[str, MergeNode],
        active_streams: Set[str],
        fallbacks: Dict[Tuple[str, str], str],
        pruned: Dict[str, str],
        producers: Dict[str, str],
        order: List[str],
    ):
        self.tasks = tasks
        self.sources = sources
        self.merges = merges
        self.active_streams = active_streams
        self.fallbacks = fallbacks
        self.pruned = pruned
        self._producers = producers
        self._order = order
        self._graph = nx.DiGraph()
        self._graph.add_nodes_from(order)
        for name in order:
            for binding in self.bound_streams(name).values():
                for upstream in self.stream_producers(binding):
                    self._graph.add_edge(upstream, name, stream=binding)

    # -------------------------- shape inspection --------------------------
    def has_task(self, name: str) -> bool:
        return name in self.tasks

    @property
    def task_names(self) -> List[str]:
        """Active task names in topological (declaration-stable) order."""
        return list(self._order)

    def task(self, name: str) -> TaskNode:
        try:
            return self.tasks[name]
        except KeyError:
            raise GraphError(f"Task not in graph: {name}") from None

    def is_stream_active(self, name: str) -> bool:
        return name in self.active_streams

    def bound_streams(self, name: str) -> Dict[str, str]:
        """Slot -> effective stream name, with empty fallbacks substituted."""
        node = self.task(name)
        return {
            slot: self.fallbacks.get((name, slot), binding.stream)
            for slot, binding in node.inputs.items()
        }

    def stream_producers(self, stream: str) -> List[str]:
        """Tasks whose outputs feed ``stream`` (looking through merges)."""
        if stream in self.merges:
            found: List[str] = []
            for src in self.merges[stream].sources:
                for producer in self.stream_producers(src):
                    if producer not in found:
                        found.append(producer)
            return found
        producer = self._producers.get(stream)
        if producer is None or producer not in self.tasks:
            return []
        return [producer]

    def dependencies(self, name: str) -> List[str]:
        return sorted(self._graph.predecessors(name), key=self._order.index)

    def dependents(self, name: str) -> List[str]:
        return sorted(self._graph.successors(name), key=self._order.index)

    def descendants(self, name: str) -> Set[str]:
        return set(nx.descendants(self._graph, name))

    def topological_order(self) -> List[str]:
        return list(self._order)

    def to_networkx(self) -> nx.DiGraph:
        return self._graph.copy()

    def describe(self) -> List[str]:
        """Human-readable lines for ``show-graph``."""
        lines = []
        for name in self._order:
            node = self.tasks[name]
            bound = self.bound_streams(name)
            ins = ", ".join(
                f"{slot}<-{node.inputs[slot].kind.value}({stream})" for slot, stream in bound.items()
            )
            outs = ", ".join(f"{slot}->{stream}" for slot, stream in node.outputs.items())
            flag = " [best-effort]" if node.ignorable else ""
            lines.append(f"{name}{flag}: {ins or '-'} => {outs or '-'}")
        for name, reason in self.pruned.items():
            lines.append(f"{name}: pruned ({reason})")
        return lines


class GraphBuilder:
    """Collects source, task and merge declarations and builds a TaskGraph."""

    def __init__(self):
        self._tasks: Dict[str, TaskNode] = {}
        self._sources: Dict[str, SourceNode] = {}
        self._merges: Dict[str, MergeNode] = {}
        self._declared: List[Tuple[str, str]] = []
        self.logger = get_logger("graph")

    def _check_name(self, name: str) -> None:
        if not isinstance(name, str) or not name.strip():
            raise GraphError("Names must be non-empty strings")

    def source(self, name: str, items: Sequence[Item], when: bool = True) -> str:
        """Declare an externally supplied stream; returns its name."""
        self._check_name(name)
        self._sources[name] = SourceNode(name, list(items), bool(when))
        self._declared.append(("source", name))
        return name

    def task(
        self,
        name: str,
        work: WorkFn,
        inputs: Optional[Mapping[str, InputBinding]] = None,
        outputs: Optional[Mapping[str, str]] = None,
        when: bool = True,
        ignorable: bool = False,
        publish: Optional["PublishRule"] = None,
        description: str = "",
    ) -> TaskNode:
        self._check_name(name)
        if name in self._tasks:
            raise GraphError(f"Duplicate task name: {name}")
        inputs = dict(inputs or {})
        kinds = [b.kind for b in inputs.values()]
        if kinds.count(BindingKind.EACH) > 1:
            raise GraphError(f"Task '{name}' declares more than one each() binding")
        if BindingKind.PAIRED in kinds and BindingKind.EACH not in kinds:
            raise GraphError(f"Task '{name}' uses paired() without an each() driver")
        node = TaskNode(
            name=name,
            work=work,
            inputs=inputs,
            outputs=dict(outputs or {}),
            when=bool(when),
            ignorable=ignorable,
            publish=publish,
            description=description,
        )
        self._tasks[name] = node
        self._declared.append(("task", name))
        return node

    def merge(self, name: str, sources: Sequence[str]) -> str:
        """Declare a fan-in stream fed by ``sources``; returns its name."""
        self._check_name(name)
        if not sources:
            raise GraphError(f"Merge '{name}' needs at least one source")
        self._merges[name] = MergeNode(name, list(sources))
        self._declared.append(("merge", name))
        return name

    # ------------------------------ build ------------------------------
    def _producers(self) -> Dict[str, str]:
        producers: Dict[str, str] = {}

        def claim(stream: str, owner: str) -> None:
            if stream in producers:
                raise GraphError(
                    f"Stream '{stream}' has more than one producer: "
                    f"{producers[stream]} and {owner}"
                )
            producers[stream] = owner

        for name in self._sources:
            claim(name, "<source>")
        for name in self._merges:
            claim(name, "<merge>")
        for task in self._tasks.values():
            for stream in task.outputs.values():
                claim(stream, task.name)
        return producers

    def _declared_graph(self, producers: Dict[str, str]) -> nx.DiGraph:
        graph = nx.DiGraph()
        for stream in producers:
            graph.add_node(_stream_id(stream))
        for task in self._tasks.values():
            graph.add_node(_task_id(task.name))
            for slot, binding in task.inputs.items():
                if binding.stream not in producers:
                    raise DanglingInputError(
                        f"Task '{task.name}' input '{slot}' binds to stream "
                        f"'{binding.stream}' which nothing produces",
                        task=task.name,
                        stream=binding.stream,
                    )
                graph.add_edge(_stream_id(binding.stream), _task_id(task.name))
            for stream in task.outputs.values():
                graph.add_edge(_task_id(task.name), _stream_id(stream))
        for merge in self._merges.values():
            for src in merge.sources:
                if src not in producers:
                    raise DanglingInputError(
                        f"Merge '{merge.name}' reads stream '{src}' which nothing produces",
                        task=merge.name,
                        stream=src,
                    )
                graph.add_edge(_stream_id(src), _stream_id(merge.name))
        return graph

    def build(self) -> TaskGraph:
        """Validate declarations, evaluate predicates and prune.

        Raises:
            DanglingInputError: an input stream is never produced.
            CyclicGraphError: bindings form a cycle.
            UnsatisfiedDependency: an active task needs an inactive stream.
        """
        producers = self._producers()
        declared = self._declared_graph(producers)

        try:
            cycle = nx.find_cycle(declared)
        except nx.NetworkXNoCycle:
            cycle = None
        if cycle:
            names = [node[1] for node, _ in cycle]
            raise CyclicGraphError(
                "Cycle detected in task graph: " + " -> ".join(names + names[:1]), cycle=names
            )

        position = {node_id: i for i, node_id in enumerate(self._declared)}

        def sort_key(node: Tuple[str, str]) -> Tuple[int, str]:
            kind, name = node
            if kind == "task":
                return (position.get(("task", name), 0), name)
            for declared_kind in ("source", "merge"):
                if (declared_kind, name) in position:
                    return (position[(declared_kind, name)], name)
            owner = producers.get(name)
            return (position.get(("task", owner), 0), name)

        active_streams: Set[str] = set()
        active_tasks: List[str] = []
        fallbacks: Dict[Tuple[str, str], str] = {}
        pruned: Dict[str, str] = {}

        for kind, name in nx.lexicographical_topological_sort(declared, key=sort_key):
            if kind == "stream":
                if name in self._sources:
                    if self._sources[name].when:
                        active_streams.add(name)
                elif name in self._merges:
                    if any(s in active_streams for s in self._merges[name].sources):
                        active_streams.add(name)
                elif producers[name] in active_tasks:
                    active_streams.add(name)
                continue

            task = self._tasks[name]
            if not task.when:
                pruned[name] = "activation predicate is false"
                self.logger.debug(LogTemplates.TASK_PRUNED.format(task=name, reason=pruned[name]))
                continue

            inactive = {
                slot: b for slot, b in task.inputs.items() if b.stream not in active_streams
            }
            if task.inputs and len(inactive) == len(task.inputs):
                pruned[name] = "all inputs inactive"
                self.logger.debug(LogTemplates.TASK_PRUNED.format(task=name, reason=pruned[name]))
                continue
            for slot, binding in inactive.items():
                if not binding.optional:
                    raise UnsatisfiedDependency(
                        f"Task '{name}' input '{slot}' needs stream '{binding.stream}', "
                        "which is only produced by inactive tasks; declare the binding "
                        "optional or guard the task with the same condition",
                        task=name,
                        stream=binding.stream,
                    )
                fallbacks[(name, slot)] = f"{binding.stream}.empty"
            active_tasks.append(name)

        active_merges = {}
        for name, merge in self._merges.items():
            if name in active_streams:
                active_merges[name] = MergeNode(
                    name, [s for s in merge.sources if s in active_streams]
                )

        return TaskGraph(
            tasks={name: self._tasks[name] for name in active_tasks},
            sources={n: s for n, s in self._sources.items() if n in active_streams},
            merges=active_merges,
            active_streams=active_streams,
            fallbacks=fallbacks,
            pruned=pruned,
            producers=producers,
            order=active_tasks,
        )
