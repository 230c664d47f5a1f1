"""Shared pipeline types.

This module intentionally contains only lightweight dataclasses/constants so it can
be imported by task definitions and the summary renderer without pulling in the
scheduler.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ReportKeys:
    """Canonical run-summary field names to avoid typos."""

    RUN_NAME = "Run Name"
    READS = "Reads"
    SAMPLES = "Samples"
    GENOME = "Genome"
    MATURE = "miRBase mature"
    HAIRPIN = "miRBase hairpin"
    GTF = "GTF Annotation"
    BT_INDEX = "Bowtie Index for Ref"
    MIRNA_CHAIN = "miRBase alignment order"
    PROTOCOL = "Library Protocol"
    ADAPTER = "3' adapter"
    CLIP_R1 = "Trim 5' R1"
    THREE_PRIME_CLIP_R1 = "Trim 3' R1"
    MIN_LENGTH = "Min read length"
    MIRTRACE_SPECIES = "miRTrace species"
    MAX_WORKERS = "Max workers"
    THREADS = "Threads per task"
    OUTDIR = "Output dir"
    WORK_DIR = "Working dir"
    EMAIL = "E-mail Address"
    ACTIVE_TASKS = "Active tasks"
    PRUNED_TASKS = "Pruned tasks"
    STATUS = "Status"
    DURATION = "Duration"
    START_TIME = "Started"
    END_TIME = "Completed"


class TaskStatus(str, Enum):
    """Lifecycle of one task instance."""

    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def finished(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELLED)


@dataclass
class TaskRecord:
    """Outcome of one task instance (one sample, or the whole task)."""

    task: str
    key: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    ignorable: bool = False
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    duration: Optional[float] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    # Cancelled although no upstream task failed
    stranded: bool = False
    outputs: List[str] = field(default_factory=list)
    published: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.task}[{self.key}]" if self.key is not None else self.task

    def start(self) -> None:
        self.status = TaskStatus.RUNNING
        self.start_time = time.time()

    def finish(self, status: TaskStatus, error: Optional[BaseException] = None) -> None:
        self.status = status
        self.end_time = time.time()
        if self.start_time is not None:
            self.duration = self.end_time - self.start_time
        if error is not None:
            cause = getattr(error, "cause", None) or error
            self.error_type = cause.__class__.__name__
            self.error_message = str(error) or self.error_type

    def cancel(self, reason: str, stranded: bool = False) -> None:
        self.status = TaskStatus.CANCELLED
        self.stranded = stranded
        self.end_time = time.time()
        self.error_message = reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task,
            "sample": self.key,
            "status": self.status.value,
            "ignorable": self.ignorable,
            "start_time": (
                datetime.fromtimestamp(self.start_time).isoformat() if self.start_time else None
            ),
            "duration": round(self.duration, 3) if self.duration is not None else None,
            "error_type": self.error_type,
            "error": self.error_message,
            "stranded": self.stranded,
            "outputs": list(self.outputs),
            "published": list(self.published),
        }


@dataclass
class RunResult:
    """Aggregate outcome of a graph execution."""

    records: List[TaskRecord] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @property
    def failures(self) -> List[TaskRecord]:
        """Non-ignorable failed instances; any of these fails the run."""
        return [
            r for r in self.records if r.status is TaskStatus.FAILED and not r.ignorable
        ]

    @property
    def ignored_failures(self) -> List[TaskRecord]:
        return [r for r in self.records if r.status is TaskStatus.FAILED and r.ignorable]

    @property
    def cancelled(self) -> List[TaskRecord]:
        return [r for r in self.records if r.status is TaskStatus.CANCELLED]

    @property
    def stranded(self) -> List[TaskRecord]:
        """Non-ignorable instances cancelled without any upstream failure."""
        return [
            r
            for r in self.records
            if r.status is TaskStatus.CANCELLED and r.stranded and not r.ignorable
        ]

    @property
    def success(self) -> bool:
        return not self.failures and not self.stranded

    def for_task(self, task: str) -> List[TaskRecord]:
        return [r for r in self.records if r.task == task]

    def record(self, task: str, key: Optional[str] = None) -> Optional[TaskRecord]:
        for r in self.records:
            if r.task == task and r.key == key:
                return r
        return None

    def get_total_runtime(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time
