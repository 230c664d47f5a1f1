"""Version information for smrnaflow."""

__version__ = "1.0.0"
__license__ = "MIT"
__description__ = "Small RNA-seq analysis pipeline built on a stream-routing task graph"
