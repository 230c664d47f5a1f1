"""smrnaflow: small RNA-seq QC, trimming, miRBase alignment and reporting."""

from smrnaflow.__version__ import __version__

__all__ = ["__version__"]
