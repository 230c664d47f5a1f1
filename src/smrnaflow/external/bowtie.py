"""Bowtie (v1) index build and short-read alignment."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import List, Optional

from smrnaflow.external.base import ExternalTool


class BowtieBuild(ExternalTool):
    """Build a Bowtie index from a FASTA file."""

    tool_name = "bowtie-build"
    install_hint = "conda install -c bioconda bowtie"

    def build(self, fasta: Path, index_prefix: Path) -> Path:
        index_prefix.parent.mkdir(parents=True, exist_ok=True)
        cmd = [self.executable]
        if self.threads > 1:
            cmd.extend(["--threads", str(self.threads)])
        cmd.extend([str(fasta), str(index_prefix)])
        self.run(cmd)
        self.logger.info(f"Bowtie index built: {index_prefix}")
        return index_prefix


class Bowtie(ExternalTool):
    """Align short reads with Bowtie, writing SAM."""

    tool_name = "bowtie"
    required_version = "1.2"
    version_regex = r"version\s+(\d+\.\d+(?:\.\d+)*)"
    install_hint = "conda install -c bioconda bowtie"

    def build_command(
        self,
        index_prefix: Path,
        reads: Path,
        args: str,
        unmapped: Optional[Path] = None,
        chunkmbs: Optional[int] = None,
    ) -> List[str]:
        cmd = [self.executable, "-p", str(self.threads), "-t"]
        cmd.extend(shlex.split(args))
        if chunkmbs:
            cmd.extend(["--chunkmbs", str(chunkmbs)])
        if unmapped is not None:
            cmd.extend(["--un", str(unmapped)])
        cmd.extend(["-S", str(index_prefix), "-q", str(reads)])
        return cmd

    def align(
        self,
        index_prefix: Path,
        reads: Path,
        output_sam: Path,
        args: str,
        unmapped: Optional[Path] = None,
        chunkmbs: Optional[int] = None,
    ) -> Path:
        """Align ``reads`` (FASTQ, optionally gzipped) and write SAM to ``output_sam``."""
        cmd = self.build_command(index_prefix, reads, args, unmapped=unmapped, chunkmbs=chunkmbs)
        _, stderr = self.run(cmd, stdout_path=output_sam)
        # Bowtie reports alignment rates on stderr
        if stderr:
            self.logger.info(f"bowtie summary for {reads.name}: {stderr.strip().splitlines()[-1]}")
        return output_sam
