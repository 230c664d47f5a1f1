"""Graph-walking scheduler with a bounded worker pool.

The main thread owns all scheduling decisions: it polls stream
subscriptions, decides which task instances are ready and hands them to a
``ThreadPoolExecutor``. Workers only run the work unit, route its outputs and
publish them; every stream event wakes the main thread again.

Failure policy: a failed instance of a non-ignorable task poisons the
task's output streams when they close. Consumers that need the complete
stream (collect/broadcast) are cancelled; per-sample consumers simply never
see the failed sample, so independent samples and branches run to completion.
A cancellation with no failed upstream task (an empty broadcast stream, a
missing pairing partner) is recorded as stranded and fails the run.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from smrnaflow.constants import DEFAULT_MAX_WORKERS
from smrnaflow.core.graph import BindingKind, TaskGraph, TaskNode
from smrnaflow.core.pipeline_types import RunResult, TaskRecord, TaskStatus
from smrnaflow.core.routing import OutputRouter
from smrnaflow.core.streams import Item, Stream, StreamRouter, Subscription
from smrnaflow.exceptions import (
    PipelineError,
    StreamClosedError,
    TaskExecutionFailure,
)
from smrnaflow.utils.logging import LogTemplates, get_logger
from smrnaflow.utils.progress import task_progress

InputValue = Union[Item, List[Item], None]


class TaskContext:
    """Everything a work unit sees: bound inputs, sample key, scratch dir."""

    def __init__(
        self,
        task: TaskNode,
        key: Optional[str],
        inputs: Dict[str, InputValue],
        workdir: Path,
        config: Any = None,
    ):
        self.task = task
        self.key = key
        self.inputs = inputs
        self.workdir = workdir
        self.config = config
        self.logger = get_logger(f"task.{task.name}")
        self.emitted: List[Tuple[str, Item]] = []

    def input(self, slot: str) -> Item:
        value = self.inputs.get(slot)
        if not isinstance(value, Item):
            raise PipelineError(f"Input '{slot}' of task '{self.task.name}' is not a single item")
        return value

    def optional_input(self, slot: str) -> Optional[Item]:
        value = self.inputs.get(slot)
        return value if isinstance(value, Item) else None

    def batch(self, slot: str) -> List[Item]:
        value = self.inputs.get(slot)
        if value is None:
            return []
        if isinstance(value, Item):
            return [value]
        return list(value)

    def emit(self, slot: str, path: Union[str, Path], key: Optional[str] = None) -> Item:
        """Register an output artifact for ``slot``.

        The item keeps this instance's sample key unless ``key`` is given;
        whole-task instances resolve the key from the filename.
        """
        if slot not in self.task.outputs:
            raise PipelineError(f"Task '{self.task.name}' has no output slot '{slot}'")
        if key is None and self.key is not None:
            key = self.key
        item = Item.from_path(path, key=key)
        self.emitted.append((slot, item))
        return item


@dataclass
class _Pending:
    """A driver item waiting for its other inputs."""

    item: Item
    record: TaskRecord


@dataclass
class _TaskState:
    node: TaskNode
    streams: Dict[str, Stream]
    driver_sub: Optional[Subscription] = None
    collect_subs: Dict[str, Subscription] = field(default_factory=dict)
    collected: Dict[str, List[Item]] = field(default_factory=dict)
    waiting: List[_Pending] = field(default_factory=list)
    running: int = 0
    shared: Optional[Dict[str, InputValue]] = None
    launched: bool = False
    instances: Dict[str, int] = field(default_factory=dict)
    finished: bool = False
    poisoned: bool = False


class Scheduler:
    """Execute a :class:`TaskGraph` over a :class:`StreamRouter`."""

    def __init__(
        self,
        graph: TaskGraph,
        workdir: Path,
        output_router: Optional[OutputRouter] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        config: Any = None,
        on_record: Optional[Callable[[TaskRecord], None]] = None,
        show_progress: bool = False,
    ):
        if max_workers < 1:
            raise PipelineError("max_workers must be >= 1")
        self.graph = graph
        self.workdir = Path(workdir)
        self.output_router = output_router
        self.max_workers = max_workers
        self.config = config
        self.on_record = on_record
        self.show_progress = show_progress
        self.logger = get_logger("scheduler")
        self._wake = threading.Event()
        self.router = StreamRouter(on_event=lambda _stream, _event: self._wake.set())
        self._states: Dict[str, _TaskState] = {}
        self._futures: Dict[Future, Tuple[str, TaskRecord]] = {}
        self.result = RunResult()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def _create_streams(self) -> None:
        for name, source in self.graph.sources.items():
            stream = self.router.create(name)
            for item in source.items:
                stream.publish(item)
            stream.close()

        for name in self.graph.task_names:
            for stream_name in self.graph.task(name).outputs.values():
                self.router.create(stream_name)

        remaining = dict(self.graph.merges)
        while remaining:
            ready = [
                m for m in remaining.values() if all(s in self.router for s in m.sources)
            ]
            if not ready:
                raise PipelineError(
                    "Merge sources are missing: " + ", ".join(sorted(remaining))
                )
            for merge in ready:
                self.router.merge(merge.name, merge.sources)
                del remaining[merge.name]

        for fallback in set(self.graph.fallbacks.values()):
            if fallback not in self.router:
                self.router.empty(fallback)

    def _init_states(self) -> None:
        for name in self.graph.task_names:
            node = self.graph.task(name)
            bound = {slot: self.router[s] for slot, s in self.graph.bound_streams(name).items()}
            state = _TaskState(node=node, streams=bound)
            for slot, binding in node.inputs.items():
                if binding.kind is BindingKind.EACH:
                    state.driver_sub = bound[slot].subscribe(collecting=False)
                elif binding.kind is BindingKind.COLLECT:
                    state.collect_subs[slot] = bound[slot].subscribe(collecting=True)
            self._states[name] = state

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------
    def _emit_record(self, record: TaskRecord) -> None:
        self.result.records.append(record)
        if self.on_record is not None:
            self.on_record(record)

    @staticmethod
    def _upstream_failed(state: _TaskState) -> bool:
        return any(stream.poisoned for stream in state.streams.values())

    def _cancel_task(self, state: _TaskState, reason: str) -> None:
        stranded = not self._upstream_failed(state)
        record = TaskRecord(task=state.node.name, ignorable=state.node.ignorable)
        record.cancel(reason, stranded=stranded)
        self.logger.warning(
            LogTemplates.TASK_CANCELLED.format(task=state.node.name, key="*", reason=reason)
        )
        self._emit_record(record)
        for pending in state.waiting:
            pending.record.cancel(reason, stranded=stranded)
            self._emit_record(pending.record)
        state.waiting.clear()
        state.poisoned = True
        self._finish_task(state)

    def _finish_task(self, state: _TaskState) -> None:
        state.finished = True
        for stream_name in state.node.outputs.values():
            self.router.close(stream_name, poisoned=state.poisoned)

    def _shared_inputs(self, state: _TaskState) -> Tuple[Optional[Dict[str, InputValue]], Optional[str]]:
        """Resolve broadcast/collect inputs once.

        Returns ``(values, None)`` when ready, ``(None, None)`` when still
        waiting, and ``(None, reason)`` when the task must be cancelled.
        """
        if state.shared is not None:
            return state.shared, None
        values: Dict[str, InputValue] = {}
        for slot, binding in state.node.inputs.items():
            stream = state.streams[slot]
            if binding.kind is BindingKind.BROADCAST:
                if stream.closed and stream.poisoned:
                    return None, f"upstream of '{stream.name}' failed"
                items = stream.snapshot()
                if items:
                    values[slot] = items[0]
                elif stream.closed:
                    if not binding.optional:
                        return None, f"broadcast stream '{stream.name}' closed empty"
                    values[slot] = None
                else:
                    return None, None
            elif binding.kind is BindingKind.COLLECT:
                if slot not in state.collected:
                    batch = state.collect_subs[slot].poll()
                    if not state.collect_subs[slot].exhausted:
                        return None, None
                    if stream.poisoned:
                        return None, f"upstream of '{stream.name}' failed"
                    state.collected[slot] = batch
                values[slot] = state.collected[slot]
        state.shared = values
        return values, None

    def _pair(self, state: _TaskState, item: Item) -> Tuple[Optional[Dict[str, InputValue]], Optional[str]]:
        """Match ``item`` with same-key items of the paired inputs.

        Same return convention as :meth:`_shared_inputs`.
        """
        inputs: Dict[str, InputValue] = dict(state.shared or {})
        inputs[state.node.driver] = item
        for slot, binding in state.node.inputs.items():
            if binding.kind is not BindingKind.PAIRED:
                continue
            stream = state.streams[slot]
            partner = stream.find(item.key)
            if partner is not None:
                inputs[slot] = partner
            elif not stream.closed:
                return None, None
            elif binding.optional and not stream.poisoned:
                inputs[slot] = None
            else:
                return None, f"no '{stream.name}' item for sample {item.key}"
        return inputs, None

    def _advance(self, name: str, executor: ThreadPoolExecutor) -> bool:
        """Move one task forward; returns True if anything changed."""
        state = self._states[name]
        if state.finished:
            return False
        node = state.node
        changed = False

        if state.driver_sub is None:
            if not state.launched:
                shared, reason = self._shared_inputs(state)
                if reason is not None:
                    self._cancel_task(state, reason)
                    return True
                if shared is None:
                    return False
                record = TaskRecord(task=name, ignorable=node.ignorable)
                self._launch(state, record, None, shared, executor)
                state.launched = True
                changed = True
            if state.running == 0:
                self._finish_task(state)
                changed = True
            return changed

        for item in state.driver_sub.poll():
            record = TaskRecord(task=name, key=item.key, ignorable=node.ignorable)
            state.waiting.append(_Pending(item=item, record=record))
            changed = True

        shared, reason = self._shared_inputs(state)
        if reason is not None:
            self._cancel_task(state, reason)
            return True

        if shared is not None:
            still_waiting: List[_Pending] = []
            for pending in state.waiting:
                inputs, reason = self._pair(state, pending.item)
                if reason is not None:
                    pending.record.cancel(reason, stranded=not self._upstream_failed(state))
                    self.logger.warning(
                        LogTemplates.TASK_CANCELLED.format(task=name, key=pending.item.key, reason=reason)
                    )
                    self._emit_record(pending.record)
                    state.poisoned = True
                    changed = True
                elif inputs is None:
                    still_waiting.append(pending)
                else:
                    self._launch(state, pending.record, pending.item.key, inputs, executor)
                    changed = True
            state.waiting = still_waiting

        if state.driver_sub.exhausted and not state.waiting and state.running == 0:
            driver_stream = state.streams[node.driver]
            if driver_stream.poisoned:
                state.poisoned = True
                if not len(driver_stream) and not node.inputs[node.driver].optional:
                    self._cancel_task(state, f"upstream of '{driver_stream.name}' failed")
                    return True
            self._finish_task(state)
            changed = True
        return changed

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def _launch(
        self,
        state: _TaskState,
        record: TaskRecord,
        key: Optional[str],
        inputs: Dict[str, InputValue],
        executor: ThreadPoolExecutor,
    ) -> None:
        record.status = TaskStatus.READY
        state.running += 1
        # Several items of a merged stream can share one sample key
        label = key if key is not None else "all"
        count = state.instances.get(label, 0)
        state.instances[label] = count + 1
        workdir = self.workdir / state.node.name / (label if not count else f"{label}.{count}")
        future = executor.submit(self._execute, state.node, record, key, inputs, workdir)
        future.add_done_callback(lambda _f: self._wake.set())
        self._futures[future] = (state.node.name, record)

    def _execute(
        self,
        node: TaskNode,
        record: TaskRecord,
        key: Optional[str],
        inputs: Dict[str, InputValue],
        workdir: Path,
    ) -> TaskRecord:
        """Worker-side: run the work unit, route outputs, publish on success."""
        workdir.mkdir(parents=True, exist_ok=True)
        ctx = TaskContext(node, key, inputs, workdir, config=self.config)
        label = key if key is not None else "*"

        record.start()
        self.logger.info(LogTemplates.TASK_START.format(task=node.name, key=label))
        try:
            node.work(ctx)
            if node.publish is not None and self.output_router is not None:
                for slot, item in ctx.emitted:
                    dest = self.output_router.publish(node.name, node.publish, slot, item)
                    if dest is not None:
                        record.published.append(str(dest))
        except StreamClosedError:
            raise
        except Exception as exc:
            failure = TaskExecutionFailure(
                f"{node.name}[{label}]: {exc}", task=node.name, sample_key=key, cause=exc
            )
            record.finish(TaskStatus.FAILED, failure)
            if node.ignorable:
                self.logger.warning(LogTemplates.TASK_IGNORED.format(task=node.name, key=label))
            self.logger.error(
                LogTemplates.TASK_FAILURE.format(task=node.name, key=label, error=exc)
            )
            return record

        for slot, item in ctx.emitted:
            self.router.publish(node.outputs[slot], item)
            record.outputs.append(str(item.path))
        record.finish(TaskStatus.SUCCEEDED)
        self.logger.info(
            LogTemplates.TASK_SUCCESS.format(task=node.name, key=label, duration=record.duration or 0.0)
        )
        return record

    def _drain(self, progress: Any) -> bool:
        changed = False
        for future in [f for f in self._futures if f.done()]:
            name, record = self._futures.pop(future)
            state = self._states[name]
            state.running -= 1
            # Re-raises StreamClosedError and other scheduler bugs
            future.result()
            if record.status is TaskStatus.FAILED and not state.node.ignorable:
                state.poisoned = True
            self._emit_record(record)
            progress.update(1)
            changed = True
        return changed

    def run(self) -> RunResult:
        """Execute the graph and return the aggregate result.

        Raises:
            StreamClosedError: a producer published after close (fatal).
        """
        self._create_streams()
        self._init_states()
        progress = task_progress("Tasks", enabled=self.show_progress)
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="smrnaflow")
        try:
            while True:
                self._wake.clear()
                changed = self._drain(progress)
                for name in self.graph.task_names:
                    changed = self._advance(name, executor) or changed
                if all(s.finished for s in self._states.values()):
                    break
                if not changed and not self._futures:
                    stuck = [n for n, s in self._states.items() if not s.finished]
                    raise PipelineError("Scheduler stalled; unfinished tasks: " + ", ".join(stuck))
                if not changed:
                    self._wake.wait(timeout=1.0)
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        finally:
            progress.close()
        executor.shutdown(wait=True)
        self.result.end_time = time.time()
        return self.result
