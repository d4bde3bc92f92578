"""flowpilot: optimistic mutation and reconciliation engine for CMS collections."""

__version__ = "0.1.0"
