"""Extract, create and validate WALL-E DPC archives, and split object files."""

__version__ = "1.0.0"