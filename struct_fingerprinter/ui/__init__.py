"""PyQt6 presentation layer for the fingerprinter."""
