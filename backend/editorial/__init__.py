"""Editorial workflow manager for an academic journal."""

__version__ = "1.0.0"
