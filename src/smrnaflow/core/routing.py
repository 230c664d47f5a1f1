"""Output routing: where each published artifact ends up under the outdir."""

from __future__ import annotations

import fnmatch
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from smrnaflow.constants import MIRBASE_REFERENCES, PUBLISH_BOWTIE
from smrnaflow.core.streams import Item
from smrnaflow.exceptions import UnroutableArtifact
from smrnaflow.utils.logging import LogTemplates, get_logger

Classifier = Callable[[Item], str]


@dataclass(frozen=True)
class PublishRule:
    """Static directory template or per-file classifier for a task's outputs.

    ``directory`` may use ``{task}`` and ``{key}`` placeholders. ``outputs``
    limits publishing to some output slots; ``patterns`` to matching names.
    """

    directory: Optional[str] = None
    classifier: Optional[Classifier] = None
    outputs: Optional[Sequence[str]] = None
    patterns: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        if (self.directory is None) == (self.classifier is None):
            raise ValueError("PublishRule needs exactly one of directory or classifier")

    def applies_to(self, slot: str, item: Item) -> bool:
        if self.outputs is not None and slot not in self.outputs:
            return False
        if self.patterns is not None:
            return any(fnmatch.fnmatch(item.name, p) for p in self.patterns)
        return True


def mirbase_classifier(item: Item) -> str:
    """Route miRBase post-alignment files by their mature/hairpin marker.

    Only the part of the name after the sample key is inspected.
    """
    stage = item.name[len(item.key) :] if item.name.startswith(item.key) else item.name
    hits = [ref for ref in MIRBASE_REFERENCES if ref in stage]
    if len(hits) != 1:
        raise UnroutableArtifact(
            f"Cannot classify '{item.name}': expected exactly one of "
            f"{', '.join(MIRBASE_REFERENCES)} in the name",
            artifact=item.name,
        )
    return f"{PUBLISH_BOWTIE}/miRBase_{hits[0]}"


class OutputRouter:
    """Map task outputs to final destinations and copy them there."""

    def __init__(self, outdir: Path, dry_run: bool = False):
        self.outdir = Path(outdir)
        self.dry_run = dry_run
        self.logger = get_logger("routing")
        self._claimed: Dict[Path, Path] = {}
        self._lock = threading.Lock()

    def destination(self, task: str, rule: PublishRule, item: Item) -> Path:
        """Return the final path for ``item`` produced by ``task``.

        Raises:
            UnroutableArtifact: the classifier rejects the item, or another
                artifact already claimed the same destination.
        """
        if rule.classifier is not None:
            try:
                subdir = rule.classifier(item)
            except UnroutableArtifact as exc:
                raise UnroutableArtifact(str(exc), task=task, artifact=item.name) from exc
        else:
            subdir = rule.directory.format(task=task, key=item.key)
        dest = self.outdir / subdir / item.name

        with self._lock:
            owner = self._claimed.get(dest)
            if owner is not None and owner != item.path:
                raise UnroutableArtifact(
                    f"{dest} is already claimed by {owner}", task=task, artifact=item.name
                )
            self._claimed[dest] = item.path
        return dest

    def publish(self, task: str, rule: PublishRule, slot: str, item: Item) -> Optional[Path]:
        """Copy ``item`` to its destination if ``rule`` covers it."""
        if not rule.applies_to(slot, item):
            return None
        dest = self.destination(task, rule, item)
        if self.dry_run:
            return dest
        dest.parent.mkdir(parents=True, exist_ok=True)
        if item.path.is_dir():
            shutil.copytree(item.path, dest, dirs_exist_ok=True)
        else:
            shutil.copy2(item.path, dest)
        self.logger.debug(LogTemplates.FILE_PUBLISHED.format(path=item.path, dest=dest))
        return dest
