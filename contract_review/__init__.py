"""Contract review service: upload, AI risk analysis and versioned editing of contracts."""

__version__ = "1.0.0"
