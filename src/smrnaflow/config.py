"""Configuration management for smrnaflow."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from smrnaflow.constants import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_MIN_LENGTH,
    DEFAULT_MIRNA_CHAIN,
    DEFAULT_PROTOCOL,
    MIRBASE_REFERENCES,
    PROTOCOLS,
)
from smrnaflow.exceptions import ConfigurationError

REFERENCE_KEYS = ("mature", "hairpin", "gtf", "bt_index", "mirtrace_species")


@dataclass
class ReferenceConfig:
    """Reference inputs; any of them may come from the ``genomes`` registry."""

    genome: Optional[str] = None
    mature: Optional[Path] = None
    hairpin: Optional[Path] = None
    gtf: Optional[Path] = None
    # Bowtie index prefix (``<prefix>.1.ebwt`` ...)
    bt_index: Optional[Path] = None
    mirtrace_species: Optional[str] = None
    mirna_chain: List[str] = field(default_factory=lambda: list(DEFAULT_MIRNA_CHAIN))
    genomes: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class TrimmingConfig:
    """Adapter trimming; unset values are filled from the protocol preset."""

    protocol: str = DEFAULT_PROTOCOL
    three_prime_adapter: Optional[str] = None
    clip_r1: Optional[int] = None
    three_prime_clip_r1: Optional[int] = None
    min_length: int = DEFAULT_MIN_LENGTH


@dataclass
class RuntimeConfig:
    """Runtime configuration."""

    log_level: str = "INFO"
    log_file: Optional[Path] = None
    work_dir: Path = Path("work")
    keep_work: bool = False
    # Enable tqdm progress where available
    enable_progress: bool = True


@dataclass
class PerformanceConfig:
    """Performance-related configuration."""

    # Threads handed to each external tool
    threads: int = 1
    # Task instances running at the same time
    max_workers: int = DEFAULT_MAX_WORKERS


@dataclass
class NotificationConfig:
    """Completion e-mail. Nothing is sent unless ``email`` is set."""

    email: Optional[str] = None
    sender: str = "smrnaflow@localhost"
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_timeout: int = 30
    mail_command: str = "mail"


@dataclass
class ToolConfig:
    """External tool configuration."""

    fastqc: Dict[str, Any] = field(default_factory=lambda: {"additional_args": ""})
    trim_galore: Dict[str, Any] = field(default_factory=lambda: {"additional_args": ""})
    bowtie: Dict[str, Any] = field(
        default_factory=lambda: {
            "mirna_args": "-n 0 -l 15 -e 99999 -k 200 --best --strata",
            "genome_args": "-n 1 -l 15 -e 99999 -k 200",
            "chunkmbs": 2048,
        }
    )
    mirtrace: Dict[str, Any] = field(default_factory=lambda: {"additional_args": ""})
    edger: Dict[str, Any] = field(
        default_factory=lambda: {"rscript": "Rscript", "script": "edgeR_miRBase.r"}
    )
    ngi_visualizations: Dict[str, Any] = field(
        default_factory=lambda: {"executable": "ngi_visualizations"}
    )
    multiqc: Dict[str, Any] = field(
        default_factory=lambda: {"config": None, "additional_args": ""}
    )


@dataclass
class Config:
    """Main configuration class."""

    reads: List[Path] = field(default_factory=list)
    outdir: Path = Path("results")
    run_name: Optional[str] = None

    # Step skip flags
    skip_qc: bool = False
    skip_fastqc: bool = False
    skip_multiqc: bool = False

    # Sub-configurations
    reference: ReferenceConfig = field(default_factory=ReferenceConfig)
    trimming: TrimmingConfig = field(default_factory=TrimmingConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)

    # Convenience properties
    @property
    def threads(self) -> int:
        return self.performance.threads

    @threads.setter
    def threads(self, value: int):
        self.performance.threads = value

    @property
    def max_workers(self) -> int:
        return self.performance.max_workers

    @max_workers.setter
    def max_workers(self, value: int):
        self.performance.max_workers = value

    @property
    def run_fastqc(self) -> bool:
        return not (self.skip_qc or self.skip_fastqc)

    @property
    def run_multiqc(self) -> bool:
        return not (self.skip_qc or self.skip_multiqc)

    @property
    def genome_branch_active(self) -> bool:
        """Host-genome alignment needs both an annotation and a Bowtie index."""
        return bool(self.reference.gtf and self.reference.bt_index)

    @property
    def mirtrace_active(self) -> bool:
        return bool(self.reference.mirtrace_species)

    def resolve_references(self) -> None:
        """Fill unset reference paths from the ``genomes`` registry.

        Explicit values win. A registry entry may omit any key; absent keys
        just leave the matching branch inactive.
        """
        ref = self.reference
        if not ref.genome:
            return
        entry = ref.genomes.get(ref.genome)
        if entry is None:
            if ref.genomes:
                raise ConfigurationError(
                    f"Genome '{ref.genome}' not found in the genomes registry. "
                    f"Available: {', '.join(sorted(ref.genomes))}"
                )
            return
        for key in REFERENCE_KEYS:
            if getattr(ref, key) is None and entry.get(key):
                value = entry[key]
                setattr(ref, key, value if key == "mirtrace_species" else Path(value))

    def apply_protocol(self) -> None:
        """Fill adapter and clip settings from the selected protocol preset."""
        apply_protocol(self.trimming)

    def validate(self) -> None:
        """Validate configuration."""
        if not self.reads:
            raise ConfigurationError("At least one input reads file is required (--reads)")
        for path in self.reads:
            if not Path(path).exists():
                raise ConfigurationError(f"Reads file not found: {path}")

        ref = self.reference
        for key in ("mature", "hairpin"):
            value = getattr(ref, key)
            if value is None:
                raise ConfigurationError(
                    f"Missing miRBase {key} reference: set --{key} or a genomes registry entry"
                )
            if not Path(value).exists():
                raise ConfigurationError(f"miRBase {key} file not found: {value}")
        if ref.gtf is not None and not Path(ref.gtf).exists():
            raise ConfigurationError(f"GTF file not found: {ref.gtf}")
        if ref.bt_index is not None and not Path(ref.bt_index).parent.exists():
            raise ConfigurationError(f"Bowtie index directory not found: {Path(ref.bt_index).parent}")

        if not ref.mirna_chain:
            raise ConfigurationError("reference.mirna_chain must name at least one reference")
        unknown = [r for r in ref.mirna_chain if r not in MIRBASE_REFERENCES]
        if unknown:
            raise ConfigurationError(
                f"Unknown miRBase reference(s) in mirna_chain: {', '.join(unknown)}"
            )
        if len(set(ref.mirna_chain)) != len(ref.mirna_chain):
            raise ConfigurationError("reference.mirna_chain contains duplicates")

        if self.trimming.protocol not in PROTOCOLS:
            raise ConfigurationError(
                f"Unknown protocol '{self.trimming.protocol}'. "
                f"Choose from: {', '.join(PROTOCOLS)}"
            )
        if self.trimming.protocol == "custom" and not self.trimming.three_prime_adapter:
            raise ConfigurationError("Protocol 'custom' requires three_prime_adapter")
        if self.trimming.min_length < 1:
            raise ConfigurationError("trimming.min_length must be >= 1")

        # Validate numeric ranges
        if self.performance.threads < 1:
            raise ConfigurationError("Threads must be >= 1")
        if self.performance.max_workers < 1:
            raise ConfigurationError("max_workers must be >= 1")

        work_dir = Path(self.runtime.work_dir)
        if not work_dir.is_absolute():
            if str(work_dir).strip() in {"", "."}:
                raise ConfigurationError("Invalid runtime.work_dir: must be a subdirectory (not '.')")
            if ".." in work_dir.parts:
                raise ConfigurationError("Invalid runtime.work_dir: must not contain '..'")

    def prepare(self) -> None:
        """Resolve references, apply the protocol preset and validate."""
        self.resolve_references()
        self.validate()
        self.apply_protocol()

    @property
    def work_path(self) -> Path:
        work_dir = Path(self.runtime.work_dir)
        return work_dir if work_dir.is_absolute() else self.outdir / work_dir

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""

        def path_to_str(obj):
            if isinstance(obj, Path):
                return str(obj)
            elif isinstance(obj, dict):
                return {k: path_to_str(v) for k, v in obj.items()}
            elif isinstance(obj, (list, tuple)):
                return [path_to_str(item) for item in obj]
            return obj

        return path_to_str(asdict(self))


def apply_protocol(trimming: TrimmingConfig) -> TrimmingConfig:
    """Fill unset adapter/clip values from ``PROTOCOLS[trimming.protocol]``."""
    preset = PROTOCOLS.get(trimming.protocol)
    if preset is None:
        raise ConfigurationError(
            f"Unknown protocol '{trimming.protocol}'. Choose from: {', '.join(PROTOCOLS)}"
        )
    if trimming.three_prime_adapter is None:
        trimming.three_prime_adapter = preset["three_prime_adapter"]
    if trimming.clip_r1 is None:
        trimming.clip_r1 = preset["clip_r1"]
    if trimming.three_prime_clip_r1 is None:
        trimming.three_prime_clip_r1 = preset["three_prime_clip_r1"]
    if not trimming.three_prime_adapter:
        raise ConfigurationError(f"Protocol '{trimming.protocol}' requires three_prime_adapter")
    return trimming


def _update_section(section: Any, values: Optional[Dict[str, Any]], paths=()) -> None:
    for key, value in (values or {}).items():
        if not hasattr(section, key):
            raise ConfigurationError(
                f"Unknown config option: {type(section).__name__}.{key}"
            )
        if key in paths and value is not None:
            value = Path(value)
        setattr(section, key, value)


def load_config(path: Path) -> Config:
    """Load configuration from YAML file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    cfg = Config()

    reads = data.get("reads")
    if reads:
        if isinstance(reads, (str, Path)):
            reads = [reads]
        cfg.reads = [Path(r) for r in reads]
    if data.get("outdir") is not None:
        cfg.outdir = Path(data["outdir"])
    if "run_name" in data:
        cfg.run_name = data["run_name"]

    for flag in ("skip_qc", "skip_fastqc", "skip_multiqc"):
        if flag in data:
            setattr(cfg, flag, bool(data[flag]))

    _update_section(cfg.reference, data.get("reference"), paths=("mature", "hairpin", "gtf", "bt_index"))
    _update_section(cfg.trimming, data.get("trimming"))
    _update_section(cfg.runtime, data.get("runtime"), paths=("log_file", "work_dir"))
    _update_section(cfg.performance, data.get("performance"))
    _update_section(cfg.notification, data.get("notification"))

    # Registry may also sit at top level, as in nf-core style params files
    if data.get("genomes"):
        cfg.reference.genomes.update(data["genomes"])

    for tool, params in (data.get("tools") or {}).items():
        if not hasattr(cfg.tools, tool):
            raise ConfigurationError(f"Unknown tool section: tools.{tool}")
        if params is None:
            continue
        merged = dict(getattr(cfg.tools, tool))
        merged.update(params)
        setattr(cfg.tools, tool, merged)

    return cfg


def save_config(cfg: Config, path: Path) -> None:
    """Save configuration to YAML file."""
    data = cfg.to_dict()
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
