"""Struct Fingerprinter - heuristic structure layout inference for live process memory."""

__version__ = "1.0.0"
