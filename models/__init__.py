"""Data models for the voice relay."""

from .session_model import Session, DialogueTurn, SessionInfo, SYSTEM_INSTRUCTION
from .turn_models import (
    TurnRequest, TurnResult,
    ErrorResponse, HealthResponse, ProviderStatus
)

__all__ = [
    "Session", "DialogueTurn", "SessionInfo", "SYSTEM_INSTRUCTION",
    "TurnRequest", "TurnResult",
    "ErrorResponse", "HealthResponse", "ProviderStatus"
]
