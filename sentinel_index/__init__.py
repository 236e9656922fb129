"""Index of Microsoft Sentinel solution connectors and the tables they ingest."""

__version__ = "1.0.0"
