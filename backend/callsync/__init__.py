"""LiveKit room webhook ingestion and call-record reconciliation."""

__version__ = "0.1.0"
