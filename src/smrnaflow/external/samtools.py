"""Samtools wrapper."""

from pathlib import Path

from smrnaflow.external.base import ExternalTool


class Samtools(ExternalTool):
    """Samtools BAM/SAM manipulation."""

    tool_name = "samtools"
    required_version = "1.9"

    def sam_to_bam(self, input_sam: Path, output_bam: Path) -> None:
        """Convert SAM to BAM."""
        cmd = [
            self.executable, "view",
            "-@", str(self.threads),
            "-b", "-S",
            "-o", str(output_bam),
            str(input_sam),
        ]
        output_bam.parent.mkdir(parents=True, exist_ok=True)
        self.run(cmd, capture_output=True)
        self.logger.info(f"BAM saved to: {output_bam}")

    def sort_bam(self, input_bam: Path, output_bam: Path) -> None:
        """Sort SAM/BAM file."""
        cmd = [
            self.executable, "sort",
            "-@", str(self.threads),
            "-o", str(output_bam),
            str(input_bam),
        ]
        output_bam.parent.mkdir(parents=True, exist_ok=True)
        self.run(cmd, capture_output=True)
        self.logger.info(f"Sorted BAM saved to: {output_bam}")

    def index_bam(self, bam_file: Path) -> Path:
        """Index BAM file."""
        self.run([self.executable, "index", str(bam_file)], capture_output=True)
        self.logger.info(f"BAM index created: {bam_file}.bai")
        return Path(f"{bam_file}.bai")

    def idxstats(self, bam_file: Path, output_path: Path) -> Path:
        """Write per-reference read counts of an indexed BAM."""
        self.run([self.executable, "idxstats", str(bam_file)], stdout_path=output_path)
        self.logger.info(f"idxstats written: {output_path}")
        return output_path
