"""FastQC wrapper."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import List

from smrnaflow.external.base import ExternalTool


class FastQC(ExternalTool):
    """Read quality reports."""

    tool_name = "fastqc"

    def run_qc(self, reads: Path, output_dir: Path, additional_args: str = "") -> List[Path]:
        """Run FastQC on one reads file; returns the report files it wrote."""
        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = [
            self.executable,
            "-q",
            "-t", str(self.threads),
            "-o", str(output_dir),
        ]
        if additional_args:
            cmd.extend(shlex.split(additional_args))
        cmd.append(str(reads))
        self.run(cmd)
        reports = sorted(output_dir.glob("*_fastqc.html")) + sorted(output_dir.glob("*_fastqc.zip"))
        self.logger.info(f"FastQC reports for {reads.name}: {len(reports)} files")
        return reports
