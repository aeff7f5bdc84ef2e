"""Campus Safety — incident reporting, duplicate detection and severity heatmap."""

__version__ = "0.1.0"
