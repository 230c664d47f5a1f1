"""Tests for utils progress module."""

from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from tqdm import tqdm

from smrnaflow.utils.progress import NullProgress, task_progress


class TestTaskProgress:
    def test_disabled_returns_null_progress(self):
        bar = task_progress("tasks", enabled=False)
        assert isinstance(bar, NullProgress)
        bar.update()
        bar.set_postfix_str("fastqc[s1]")
        bar.close()

    def test_enabled_counts_finished_instances(self):
        bar = task_progress("tasks", enabled=True)
        try:
            assert isinstance(bar, tqdm)
            assert bar.total is None
            bar.update()
            bar.update(2)
            assert bar.n == 3
        finally:
            bar.close()

    def test_description_is_padded(self):
        bar = task_progress("run")
        try:
            assert bar.desc.startswith("· run")
        finally:
            bar.close()
