"""Resource files and configuration templates."""


def get_default_config() -> str:
    """Return default configuration YAML content."""
    return """# smrnaflow Configuration File

# Input reads (can be overridden by --reads)
reads: []
outdir: "results"
run_name: ~

# Step skip flags
skip_qc: false
skip_fastqc: false
skip_multiqc: false

# Reference inputs. Unset paths are looked up in `genomes` under `genome`.
# Host-genome alignment runs only when both gtf and bt_index are set;
# miRTrace runs only when mirtrace_species is set.
reference:
  genome: ~
  mature: ~
  hairpin: ~
  gtf: ~
  bt_index: ~
  mirtrace_species: ~
  # Order of the miRBase alignment chain; each stage aligns the reads the
  # previous stage left unmapped.
  mirna_chain: ["mature", "hairpin"]
  genomes: {}
#   GRCh38:
#     mature: "/refs/mirbase/mature.fa"
#     hairpin: "/refs/mirbase/hairpin.fa"
#     gtf: "/refs/GRCh38/genes.gtf"
#     bt_index: "/refs/GRCh38/BowtieIndex/genome"
#     mirtrace_species: "hsa"

# Library protocol: illumina | nextflex | qiaseq | cats | custom
trimming:
  protocol: "illumina"
  three_prime_adapter: ~
  clip_r1: ~
  three_prime_clip_r1: ~
  min_length: 18

# Runtime settings
runtime:
  log_level: "INFO"
  log_file: ~
  work_dir: "work"
  keep_work: false
  enable_progress: true

# Performance settings
performance:
  threads: 1
  max_workers: 4

# Completion e-mail (SMTP first, `mail` command as fallback)
notification:
  email: ~
  sender: "smrnaflow@localhost"
  smtp_host: "localhost"
  smtp_port: 25
  smtp_timeout: 30
  mail_command: "mail"

# External tool parameters
tools:
  fastqc:
    additional_args: ""
  trim_galore:
    additional_args: ""
  bowtie:
    mirna_args: "-n 0 -l 15 -e 99999 -k 200 --best --strata"
    genome_args: "-n 1 -l 15 -e 99999 -k 200"
    chunkmbs: 2048
  mirtrace:
    additional_args: ""
  edger:
    rscript: "Rscript"
    script: "edgeR_miRBase.r"
  ngi_visualizations:
    executable: "ngi_visualizations"
  multiqc:
    config: ~
    additional_args: ""
"""
