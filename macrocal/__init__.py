"""macrocal: economic release ingestion and reconciliation."""

__version__ = "0.1.0"
