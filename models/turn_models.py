"""
Data models for voice turns and the HTTP surface.
"""

from dataclasses import dataclass
from typing import Optional
from pydantic import BaseModel, Field

from speech.streams import AudioStream


@dataclass
class TurnRequest:
    """One audio submission as received from the client."""
    audio: bytes
    mime_type: str
    session_id: Optional[str] = None
    tts_provider: Optional[str] = None
    voice_preference: Optional[str] = None
    file_count: int = 1


@dataclass
class TurnResult:
    """Everything the delivery stage needs to answer the client."""
    session_id: str
    transcript: str
    reply: str
    provider: str
    voice_id: str
    audio: AudioStream
    processing_ms: int
    media_type: str = "audio/mpeg"
    message_count: int = 0


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    code: str
    sessionId: Optional[str] = None
    details: Optional[str] = None
    stack: Optional[str] = None


class ProviderStatus(BaseModel):
    """Initialization state of each capability provider."""
    gemini: bool = False
    elevenlabs: bool = False
    deepgram: bool = False


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: str
    active_sessions: int
    uptime: float
    environment: str
    apis: ProviderStatus = Field(default_factory=ProviderStatus)
    error: Optional[str] = None
