"""Trim Galore wrapper."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List

from smrnaflow.exceptions import ExternalToolError
from smrnaflow.external.base import ExternalTool


@dataclass
class TrimResult:
    """Files written by one Trim Galore run."""

    trimmed: Path
    reports: List[Path]


class TrimGalore(ExternalTool):
    """Adapter and quality trimming with Trim Galore (cutadapt)."""

    tool_name = "trim_galore"
    install_hint = "conda install -c bioconda trim-galore"

    def _get_required_tools(self):
        return ["cutadapt"]

    def build_command(
        self,
        reads: Path,
        output_dir: Path,
        adapter: str,
        min_length: int,
        clip_r1: int = 0,
        three_prime_clip_r1: int = 0,
        additional_args: str = "",
    ) -> List[str]:
        cmd = [
            self.executable,
            "--adapter", adapter,
            "--length", str(min_length),
            "--gzip",
            "--fastqc",
            "-o", str(output_dir),
        ]
        # Trim Galore rejects zero clip lengths
        if clip_r1 > 0:
            cmd.extend(["--clip_R1", str(clip_r1)])
        if three_prime_clip_r1 > 0:
            cmd.extend(["--three_prime_clip_R1", str(three_prime_clip_r1)])
        if self.threads > 1:
            cmd.extend(["--cores", str(self.threads)])
        if additional_args:
            cmd.extend(shlex.split(additional_args))
        cmd.append(str(reads))
        return cmd

    def trim(self, reads: Path, output_dir: Path, **options) -> TrimResult:
        """Trim one single-end reads file."""
        output_dir.mkdir(parents=True, exist_ok=True)
        self.run(self.build_command(reads, output_dir, **options))

        trimmed = sorted(output_dir.glob("*_trimmed.fq.gz"))
        if not trimmed:
            raise ExternalToolError(
                f"Trim Galore produced no trimmed reads for {reads.name}",
                command=None,
                returncode=0,
            )
        reports = sorted(output_dir.glob("*trimming_report.txt"))
        reports += sorted(output_dir.glob("*_fastqc.html")) + sorted(output_dir.glob("*_fastqc.zip"))
        self.logger.info(f"Trimmed reads saved to: {trimmed[0]}")
        return TrimResult(trimmed=trimmed[0], reports=reports)
