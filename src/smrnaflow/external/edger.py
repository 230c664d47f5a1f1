"""edgeR normalisation script, run through Rscript."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from smrnaflow.external.base import ExternalTool


class EdgeR(ExternalTool):
    """Run the edgeR miRBase count script over idxstats tables.

    The script writes its tables and plots into the working directory.
    """

    tool_name = "Rscript"
    version_regex = r"version (\d+\.\d+(?:\.\d+)*)"
    install_hint = "conda install -c bioconda bioconductor-edger"

    def __init__(self, script: str = "edgeR_miRBase.r", **kwargs):
        self.script = script
        super().__init__(**kwargs)

    def normalise(self, stats_files: Sequence[Path], output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = [self.executable, self.script] + [str(p) for p in stats_files]
        self.run(cmd, cwd=output_dir)
        return output_dir
