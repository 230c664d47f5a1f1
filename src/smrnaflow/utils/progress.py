"""Progress helpers (tqdm integration)."""

from __future__ import annotations

from typing import Any, Optional

from tqdm import tqdm


class NullProgress:
    """Stand-in used when progress display is disabled."""

    def update(self, n: int = 1) -> None:
        pass

    def set_postfix_str(self, s: str = "", refresh: bool = True) -> None:
        pass

    def close(self) -> None:
        pass


def task_progress(desc: Optional[str] = None, enabled: bool = True) -> Any:
    """Return an open-ended tqdm counter for finished task instances."""
    if not enabled:
        return NullProgress()
    formatted_desc = f"· {desc:<12} " if desc else ""
    return tqdm(
        total=None,
        desc=formatted_desc,
        unit="task",
        bar_format="{desc}: {n_fmt} done [{elapsed}]{postfix}",
        ncols=80,
    )
