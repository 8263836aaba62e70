"""Release manager: release metadata ingestion, artifact storage and admin listing."""

__version__ = "1.0.0"
