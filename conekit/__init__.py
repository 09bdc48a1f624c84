"""Cone projections, Anderson acceleration and sparse-matrix equilibration."""

__version__ = "0.1.0"