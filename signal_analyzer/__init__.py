"""Trade signal ingestion, outcome evaluation and reporting."""

__version__ = "0.1.0"
