"""External collaborator clients."""

from app.services.collaborators.client import (
    CollaboratorClient,
    PredictionProducerClient,
    VerificationOracleClient,
)

__all__ = ["CollaboratorClient", "PredictionProducerClient", "VerificationOracleClient"]
