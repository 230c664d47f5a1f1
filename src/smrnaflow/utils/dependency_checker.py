"""Dependency checker for smrnaflow.

Pre-flight check of the executables needed by the tasks of a built graph.
A tool is required when a non-ignorable active task uses it and optional when
only best-effort tasks do.
"""

import re
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from smrnaflow.exceptions import DependencyError
from smrnaflow.utils.logging import get_logger


@dataclass
class Tool:
    """Tool dependency definition."""

    name: str
    purpose: str
    install_hint: str
    # Task names (or prefixes ending in "_") that run this tool
    tasks: Tuple[str, ...] = ()
    min_version: Optional[str] = None
    alt_names: Optional[List[str]] = None

    def used_by(self, task: str) -> bool:
        return any(task == t or (t.endswith("_") and task.startswith(t)) for t in self.tasks)


def find_tool(name: str, alt_names: Optional[List[str]] = None) -> Optional[str]:
    """Find a tool by name, checking alternative names if provided."""
    if shutil.which(name) is not None:
        return name
    for alt in alt_names or []:
        if shutil.which(alt) is not None:
            return alt
    return None


def get_tool_version(tool_name: str, version_arg: str = "--version") -> Optional[str]:
    """Get version string from a tool."""
    try:
        result = subprocess.run(
            [tool_name, version_arg],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    match = re.search(r"(\d+\.\d+(?:\.\d+)?)", result.stdout + result.stderr)
    return match.group(1) if match else None


def compare_versions(current: str, minimum: str) -> bool:
    """Return True if ``current`` >= ``minimum`` (unparseable counts as OK)."""

    def parse_version(v: str) -> Tuple[int, ...]:
        return tuple(int(x) for x in re.split(r"[.\-]", v) if x.isdigit())

    try:
        return parse_version(current) >= parse_version(minimum)
    except (ValueError, TypeError):
        return True


# Tool dependency definitions
TOOLS = [
    Tool(
        name="fastqc",
        purpose="Read quality reports",
        install_hint="conda install -c bioconda fastqc",
        tasks=("fastqc",),
    ),
    Tool(
        name="trim_galore",
        purpose="Adapter trimming",
        install_hint="conda install -c bioconda trim-galore",
        tasks=("trim_galore",),
    ),
    Tool(
        name="cutadapt",
        purpose="Adapter trimming backend of Trim Galore",
        install_hint="conda install -c bioconda cutadapt",
        tasks=("trim_galore",),
    ),
    Tool(
        name="bowtie",
        purpose="Short-read alignment",
        install_hint="conda install -c bioconda bowtie",
        tasks=("bowtie_",),
        min_version="1.2",
    ),
    Tool(
        name="bowtie-build",
        purpose="miRBase index construction",
        install_hint="conda install -c bioconda bowtie",
        tasks=("index_",),
    ),
    Tool(
        name="samtools",
        purpose="BAM conversion, sorting and counting",
        install_hint="conda install -c bioconda samtools",
        tasks=("bowtie_", "mirna_post_alignment"),
        min_version="1.9",
    ),
    Tool(
        name="mirtrace",
        purpose="miRNA-seq QC and clade tracing",
        install_hint="conda install -c bioconda mirtrace",
        tasks=("mirtrace",),
    ),
    Tool(
        name="Rscript",
        purpose="edgeR normalisation",
        install_hint="conda install -c bioconda bioconductor-edger",
        tasks=("edger",),
    ),
    Tool(
        name="ngi_visualizations",
        purpose="Biotype plots for genome alignments",
        install_hint="pip install git+https://github.com/NationalGenomicsInfrastructure/ngi_visualizations",
        tasks=("ngi_visualizations",),
    ),
    Tool(
        name="multiqc",
        purpose="Aggregate QC report",
        install_hint="pip install multiqc",
        tasks=("multiqc",),
    ),
]


class DependencyChecker:
    """Check and report on tool dependencies for a set of active tasks."""

    def __init__(self, logger=None, tools: Optional[List[Tool]] = None):
        self.logger = logger or get_logger("dependency_checker")
        self.tools = tools if tools is not None else TOOLS
        self.missing_required: List[Tool] = []
        self.missing_optional: List[Tool] = []
        self.found_tools: List[str] = []
        self.version_warnings: List[str] = []

    def classify(self, tasks: Dict[str, bool]) -> Tuple[List[Tool], List[Tool]]:
        """Split tools into (required, optional) for ``{task: ignorable}``."""
        required, optional = [], []
        for tool in self.tools:
            users = [name for name in tasks if tool.used_by(name)]
            if not users:
                continue
            if any(not tasks[name] for name in users):
                required.append(tool)
            else:
                optional.append(tool)
        return required, optional

    def check_all(self, tasks: Dict[str, bool], executables: Optional[Dict[str, str]] = None) -> bool:
        """Check the tools needed by ``tasks``.

        Args:
            tasks: active task name -> ignorable flag
            executables: configured executable overrides, by tool name

        Returns:
            True if all required tools are available
        """
        self.logger.info("Checking dependencies...")
        executables = executables or {}
        required, optional = self.classify(tasks)

        for tool in required + optional:
            is_required = tool in required
            found_name = find_tool(executables.get(tool.name, tool.name), tool.alt_names)
            if found_name is None:
                if is_required:
                    self.missing_required.append(tool)
                    self.logger.error(f"✗ {tool.name} not found (REQUIRED)")
                else:
                    self.missing_optional.append(tool)
                    self.logger.warning(f"⚠ {tool.name} not found (optional)")
                continue

            self.found_tools.append(found_name)
            if tool.min_version:
                current_version = get_tool_version(found_name)
                if current_version and not compare_versions(current_version, tool.min_version):
                    warning = (
                        f"{tool.name}: version {current_version} < "
                        f"recommended {tool.min_version}"
                    )
                    self.version_warnings.append(warning)
                    self.logger.warning(f"⚠ {warning}")
                    continue
            self.logger.debug(f"✓ {tool.name} found")

        return not self.missing_required

    def print_report(self) -> None:
        """Print a detailed dependency report."""
        print("\n" + "=" * 70)
        print("smrnaflow Dependency Check")
        print("=" * 70)

        if self.found_tools:
            print("\n✓ Found tools:")
            for tool in sorted(self.found_tools):
                print(f"  - {tool}")

        if self.version_warnings:
            print("\n⚠ Version warnings:")
            for warning in self.version_warnings:
                print(f"  - {warning}")

        if self.missing_optional:
            print("\n⚠ Missing optional tools (best-effort tasks will fail):")
            for tool in self.missing_optional:
                print(f"  - {tool.name}")
                print(f"    Purpose: {tool.purpose}")
                print(f"    Install: {tool.install_hint}")

        if self.missing_required:
            print("\n✗ Missing REQUIRED tools:")
            for tool in self.missing_required:
                print(f"  - {tool.name}")
                print(f"    Purpose: {tool.purpose}")
                print(f"    Install: {tool.install_hint}")
            print("\n" + "=" * 70)
            print("ERROR: Cannot proceed without required dependencies.")
            print("=" * 70 + "\n")
        else:
            print("\n" + "=" * 70)
            print("✓ All required dependencies satisfied!")
            print("=" * 70 + "\n")

    def raise_if_missing_required(self) -> None:
        if self.missing_required:
            raise DependencyError(
                "Missing required tools: " + ", ".join(t.name for t in self.missing_required)
            )


def check_dependencies(tasks: Iterable[Tuple[str, bool]], executables=None, logger=None) -> DependencyChecker:
    """Run the check and raise :class:`DependencyError` if anything required is missing."""
    checker = DependencyChecker(logger=logger)
    if not checker.check_all(dict(tasks), executables=executables):
        checker.print_report()
        checker.raise_if_missing_required()
    return checker
