"""miRTrace wrapper."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Iterable, Tuple

from smrnaflow.external.base import ExternalTool


class MiRTrace(ExternalTool):
    """miRNA-seq quality control and clade tracing."""

    tool_name = "mirtrace"
    version_command = "--version"

    @staticmethod
    def write_config(entries: Iterable[Tuple[Path, str]], config_path: Path) -> Path:
        """Write the ``path,name`` sample sheet miRTrace reads with ``--config``."""
        lines = [f"{path},{name}" for path, name in entries]
        config_path.write_text("\n".join(lines) + "\n")
        return config_path

    def qc(
        self,
        config_path: Path,
        output_dir: Path,
        species: str,
        adapter: str,
        protocol: str,
        additional_args: str = "",
    ) -> Path:
        cmd = [
            self.executable, "qc",
            "--species", species,
            "--adapter", adapter,
            "--protocol", protocol,
            "--config", str(config_path),
            "--write-fasta",
            "--output-dir", str(output_dir),
            "--force",
        ]
        if self.threads > 1:
            cmd.extend(["--num-threads", str(self.threads)])
        if additional_args:
            cmd.extend(shlex.split(additional_args))
        self.run(cmd)
        self.logger.info(f"miRTrace report written to: {output_dir}")
        return output_dir
