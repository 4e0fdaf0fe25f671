"""Unattended rolling maintenance for hyper-converged cluster nodes."""

__version__ = "0.1.0"
