"""MultiQC wrapper."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Optional, Sequence

from smrnaflow.external.base import ExternalTool


class MultiQC(ExternalTool):
    """Aggregate QC reports into one HTML report."""

    tool_name = "multiqc"

    def report(
        self,
        inputs: Sequence[Path],
        output_dir: Path,
        title: Optional[str] = None,
        config: Optional[Path] = None,
        additional_args: str = "",
    ) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = [self.executable, "-f", "-o", str(output_dir)]
        if title:
            cmd.extend(["--title", title])
        if config:
            cmd.extend(["-c", str(config)])
        if additional_args:
            cmd.extend(shlex.split(additional_args))
        cmd.extend(str(p) for p in inputs)
        self.run(cmd)
        return output_dir / "multiqc_report.html"
