"""NGI biotype visualisations for host-genome alignments."""

from __future__ import annotations

from pathlib import Path

from smrnaflow.external.base import ExternalTool


class NGIVisualizations(ExternalTool):
    """Biotype counts and plots from a genome BAM and a GTF annotation."""

    tool_name = "ngi_visualizations"
    version_command = None
    install_hint = "pip install git+https://github.com/NationalGenomicsInfrastructure/ngi_visualizations"

    def plot_biotypes(self, gtf: Path, bam: Path, output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        self.run([self.executable, str(gtf), str(bam)], cwd=output_dir)
        return output_dir
