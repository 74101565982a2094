"""Ingestion module for DeathCast Market."""

from app.services.ingestion.predictions import IngestResult, PredictionIngestionService

__all__ = ["PredictionIngestionService", "IngestResult"]
